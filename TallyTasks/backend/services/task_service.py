"""
Task business logic service.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from TallyTasks.shared.models import Priority, QuadrantScheme, Task, TaskStatus, now_millis
from TallyTasks.shared.query import (
    QueryResult,
    TaskQuery,
    quadrant_flags,
    run_query,
    store_filters,
    timestamp_millis,
)
from TallyTasks.shared.store import TaskStore

logger = logging.getLogger(__name__)

DAY_MILLIS = 24 * 60 * 60 * 1000


def _clean_due_date(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_task(data: Mapping[str, Any]) -> Task:
    """Validate a create payload into a new Task; ValueError when invalid."""
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValueError("Title is required")

    description = data.get("description")
    now = now_millis()
    return Task(
        title=title.strip(),
        description=description.strip() if isinstance(description, str) else "",
        dueDate=_clean_due_date(data.get("dueDate")),
        priority=Priority.parse(data.get("priority")) or Priority.MEDIUM,
        important=bool(data.get("important", False)),
        urgent=bool(data.get("urgent", False)),
        createdAt=now,
        updatedAt=now,
    )


def status_transition(
    current: Mapping[str, Any], target: TaskStatus, now: int
) -> Tuple[Dict[str, Any], List[str]]:
    """Updates and removals for moving a task to ``target`` status."""
    if (current.get("status") or TaskStatus.ACTIVE.value) == target.value:
        return {}, []
    if target is TaskStatus.DELETED:
        return {"status": target.value, "deletedAt": now}, []
    if target is TaskStatus.ARCHIVED:
        return {"status": target.value, "archivedAt": now}, []
    return {"status": target.value}, ["deletedAt", "archivedAt"]


class TaskService:
    """Service for task business logic."""

    def __init__(self, store: TaskStore):
        self.store = store

    async def list_tasks(
        self,
        user_id: str,
        params: Mapping[str, Any],
        scheme: QuadrantScheme = QuadrantScheme.MATRIX,
    ) -> QueryResult:
        """List tasks with the filter/sort/pagination options in ``params``."""
        query = TaskQuery.from_params(params, scheme)
        records = await self.store.query_tasks(user_id, store_filters(query))
        return run_query(records, query)

    async def get_task(self, user_id: str, task_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get_task(user_id, task_id)

    async def create_task(self, user_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Create a new task."""
        document = build_task(data).to_document()
        task_id = await self.store.add_task(user_id, document)
        logger.info(f"Created task {task_id} for user {user_id}")
        return {**document, "id": task_id}

    async def update_task(
        self, user_id: str, task_id: str, data: Mapping[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Apply a partial update; unknown fields and invalid enum values are ignored."""
        current = await self.store.get_task(user_id, task_id)
        if current is None:
            return None

        now = now_millis()
        updates: Dict[str, Any] = {}
        remove: List[str] = []

        if "title" in data:
            title = data["title"]
            if title is None or not str(title).strip():
                raise ValueError("Title cannot be empty")
            updates["title"] = str(title).strip()
        if "description" in data:
            description = data["description"]
            updates["description"] = "" if description is None else str(description).strip()
        if "dueDate" in data:
            due = _clean_due_date(data["dueDate"])
            if due is None:
                remove.append("dueDate")
            else:
                updates["dueDate"] = due
        if "priority" in data:
            priority = Priority.parse(data["priority"])
            if priority is not None:
                updates["priority"] = priority.value
        for flag in ("important", "urgent", "done"):
            if flag in data:
                updates[flag] = bool(data[flag])
        if "status" in data:
            target = TaskStatus.parse(data["status"])
            if target is not None:
                changes, cleared = status_transition(current, target, now)
                updates.update(changes)
                remove.extend(cleared)

        updates["updatedAt"] = now
        return await self.store.update_task(user_id, task_id, updates, remove)

    async def delete_task(self, user_id: str, task_id: str, permanent: bool = False) -> bool:
        """Move a task to the trash, or remove it for good when ``permanent``."""
        if permanent:
            removed = await self.store.delete_task(user_id, task_id)
            if removed:
                logger.info(f"Permanently deleted task {task_id} for user {user_id}")
            return removed
        return await self._set_status(user_id, task_id, TaskStatus.DELETED) is not None

    async def archive_task(self, user_id: str, task_id: str) -> Optional[Dict[str, Any]]:
        return await self._set_status(user_id, task_id, TaskStatus.ARCHIVED)

    async def restore_task(self, user_id: str, task_id: str) -> Optional[Dict[str, Any]]:
        """Bring an archived or deleted task back to the matrix."""
        return await self._set_status(user_id, task_id, TaskStatus.ACTIVE)

    async def toggle_done(self, user_id: str, task_id: str) -> Optional[Dict[str, Any]]:
        current = await self.store.get_task(user_id, task_id)
        if current is None:
            return None
        return await self.store.update_task(
            user_id,
            task_id,
            {"done": not bool(current.get("done", False)), "updatedAt": now_millis()},
        )

    async def move_to_quadrant(
        self, user_id: str, task_id: str, quadrant: str
    ) -> Optional[Dict[str, Any]]:
        """Set important/urgent from a quadrant code of either naming scheme."""
        flags = quadrant_flags(quadrant)
        if flags is None:
            raise ValueError(f"Unknown quadrant: {quadrant}")
        important, urgent = flags
        return await self.store.update_task(
            user_id,
            task_id,
            {"important": important, "urgent": urgent, "updatedAt": now_millis()},
        )

    async def empty_trash(self, user_id: str) -> List[str]:
        """Permanently delete everything in the user's trash."""
        trashed = await self.store.query_tasks(user_id, {"status": TaskStatus.DELETED.value})
        return await self._delete_all(user_id, (task["id"] for task in trashed))

    async def purge_expired_trash(
        self, user_id: str, retention_days: int = 30, now: Optional[int] = None
    ) -> List[str]:
        """Permanently delete tasks that have been in the trash ``retention_days`` or longer."""
        now = now_millis() if now is None else now
        cutoff = retention_days * DAY_MILLIS
        trashed = await self.store.query_tasks(user_id, {"status": TaskStatus.DELETED.value})
        expired = []
        for task in trashed:
            deleted_at = timestamp_millis(task.get("deletedAt"))
            if deleted_at is not None and now - deleted_at >= cutoff:
                expired.append(task["id"])
        return await self._delete_all(user_id, expired)

    async def _delete_all(self, user_id: str, task_ids: Iterable[str]) -> List[str]:
        removed = [task_id for task_id in task_ids if await self.store.delete_task(user_id, task_id)]
        if removed:
            logger.info(f"Removed {len(removed)} trashed tasks for user {user_id}")
        return removed

    async def _set_status(
        self, user_id: str, task_id: str, target: TaskStatus
    ) -> Optional[Dict[str, Any]]:
        current = await self.store.get_task(user_id, task_id)
        if current is None:
            return None
        now = now_millis()
        changes, cleared = status_transition(current, target, now)
        if not changes and not cleared:
            return current
        changes["updatedAt"] = now
        return await self.store.update_task(user_id, task_id, changes, cleared)
