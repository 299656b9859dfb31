#!/usr/bin/env python3
"""
Command line tools for TallyTasks: run the API, manage API keys, view the
matrix, update single tasks and maintain the trash.
"""

import argparse
import asyncio
import sys
from typing import Any, Awaitable, Callable, List, Mapping, Optional

from TallyTasks.backend.services.api_keys import issue_api_key, regenerate_api_key
from TallyTasks.backend.services.task_service import TaskService
from TallyTasks.shared.config import AppConfig, load_config
from TallyTasks.shared.models import QuadrantScheme
from TallyTasks.shared.query import group_by_quadrant, quadrant_for
from TallyTasks.shared.store import TaskStore, create_store

QUADRANT_TITLES = {
    "do-first": "Do first (important, urgent)",
    "schedule": "Schedule (important, not urgent)",
    "delegate": "Delegate (urgent, not important)",
    "eliminate": "Eliminate (neither)",
    "UI": "UI (important, urgent)",
    "NUI": "NUI (important, not urgent)",
    "UNI": "UNI (urgent, not important)",
    "NUNI": "NUNI (neither)",
}


def format_matrix(groups: Mapping[str, List[Mapping[str, Any]]]) -> str:
    lines = []
    for code, tasks in groups.items():
        lines.append(f"== {QUADRANT_TITLES.get(code, code)} [{len(tasks)}]")
        for task in tasks:
            mark = "x" if task.get("done") else " "
            due = f" (due {task['dueDate']})" if task.get("dueDate") else ""
            lines.append(f"  [{mark}] {task.get('title', '')}{due}  #{task.get('id', '')}")
    return "\n".join(lines)


async def _with_store(config: AppConfig, action: Callable[[TaskStore], Awaitable[int]]) -> int:
    store = create_store(config)
    await store.connect()
    try:
        return await action(store)
    finally:
        await store.disconnect()


def cmd_serve(args: argparse.Namespace, config: AppConfig) -> int:
    import uvicorn

    from TallyTasks.backend.main import configure_logging, create_app

    configure_logging(config)
    uvicorn.run(create_app(config), host=args.host or config.host, port=args.port or config.port)
    return 0


def cmd_issue_key(args: argparse.Namespace, config: AppConfig) -> int:
    async def action(store: TaskStore) -> int:
        print(await issue_api_key(store, args.user))
        return 0

    return asyncio.run(_with_store(config, action))


def cmd_regenerate_key(args: argparse.Namespace, config: AppConfig) -> int:
    async def action(store: TaskStore) -> int:
        print(await regenerate_api_key(store, args.user))
        return 0

    return asyncio.run(_with_store(config, action))


def cmd_matrix(args: argparse.Namespace, config: AppConfig) -> int:
    scheme = QuadrantScheme(args.scheme)

    async def action(store: TaskStore) -> int:
        params = {"status": args.status, "sort": "due"}
        if args.search:
            params["q"] = args.search
        result = await TaskService(store).list_tasks(args.user, params, scheme)
        print(format_matrix(group_by_quadrant(result.tasks, scheme)))
        return 0

    return asyncio.run(_with_store(config, action))


def format_task(task: Mapping[str, Any], scheme: QuadrantScheme = QuadrantScheme.MATRIX) -> str:
    mark = "x" if task.get("done") else " "
    quadrant = quadrant_for(task.get("important"), task.get("urgent"), scheme)
    return f"[{mark}] {task.get('title', '')}  {quadrant}  {task.get('status', 'active')}  #{task.get('id', '')}"


def _task_command(
    args: argparse.Namespace,
    config: AppConfig,
    change: Callable[[TaskService], Awaitable[Optional[Mapping[str, Any]]]],
) -> int:
    async def action(store: TaskStore) -> int:
        try:
            task = await change(TaskService(store))
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return 2
        if task is None:
            print(f"Task not found: {args.task}", file=sys.stderr)
            return 1
        print(format_task(task))
        return 0

    return asyncio.run(_with_store(config, action))


def cmd_archive(args: argparse.Namespace, config: AppConfig) -> int:
    return _task_command(args, config, lambda service: service.archive_task(args.user, args.task))


def cmd_restore(args: argparse.Namespace, config: AppConfig) -> int:
    return _task_command(args, config, lambda service: service.restore_task(args.user, args.task))


def cmd_toggle_done(args: argparse.Namespace, config: AppConfig) -> int:
    return _task_command(args, config, lambda service: service.toggle_done(args.user, args.task))


def cmd_move(args: argparse.Namespace, config: AppConfig) -> int:
    return _task_command(
        args, config, lambda service: service.move_to_quadrant(args.user, args.task, args.quadrant)
    )


def cmd_purge_trash(args: argparse.Namespace, config: AppConfig) -> int:
    days = args.days if args.days is not None else config.trash_retention_days

    async def action(store: TaskStore) -> int:
        removed = await TaskService(store).purge_expired_trash(args.user, retention_days=days)
        print(f"Removed {len(removed)} task(s) older than {days} days from the trash")
        return 0

    return asyncio.run(_with_store(config, action))


def cmd_empty_trash(args: argparse.Namespace, config: AppConfig) -> int:
    async def action(store: TaskStore) -> int:
        removed = await TaskService(store).empty_trash(args.user)
        print(f"Removed {len(removed)} task(s) from the trash")
        return 0

    return asyncio.run(_with_store(config, action))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tallytasks", description="TallyTasks tools")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(func=cmd_serve)

    issue = sub.add_parser("issue-key", help="Print the user's API key, creating one if needed")
    issue.add_argument("--user", required=True)
    issue.set_defaults(func=cmd_issue_key)

    regenerate = sub.add_parser("regenerate-key", help="Invalidate the user's API key and issue a new one")
    regenerate.add_argument("--user", required=True)
    regenerate.set_defaults(func=cmd_regenerate_key)

    matrix = sub.add_parser("matrix", help="Show the user's tasks grouped by quadrant")
    matrix.add_argument("--user", required=True)
    matrix.add_argument("--status", default="active")
    matrix.add_argument("--search", default=None)
    matrix.add_argument("--scheme", choices=[s.value for s in QuadrantScheme], default=QuadrantScheme.MATRIX.value)
    matrix.set_defaults(func=cmd_matrix)

    for name, func, help_text in (
        ("archive", cmd_archive, "Archive a task"),
        ("restore", cmd_restore, "Bring an archived or trashed task back to the matrix"),
        ("toggle-done", cmd_toggle_done, "Flip a task's done flag"),
    ):
        command = sub.add_parser(name, help=help_text)
        command.add_argument("--user", required=True)
        command.add_argument("--task", required=True)
        command.set_defaults(func=func)

    move = sub.add_parser("move", help="Move a task to another quadrant")
    move.add_argument("--user", required=True)
    move.add_argument("--task", required=True)
    move.add_argument("--quadrant", required=True, help="do-first/schedule/delegate/eliminate or UI/NUI/UNI/NUNI")
    move.set_defaults(func=cmd_move)

    purge = sub.add_parser("purge-trash", help="Delete trashed tasks past the retention window")
    purge.add_argument("--user", required=True)
    purge.add_argument("--days", type=int, default=None)
    purge.set_defaults(func=cmd_purge_trash)

    empty = sub.add_parser("empty-trash", help="Delete everything in the user's trash")
    empty.add_argument("--user", required=True)
    empty.set_defaults(func=cmd_empty_trash)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args, load_config())


if __name__ == "__main__":
    sys.exit(main())
