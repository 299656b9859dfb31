"""FastAPI dependencies: the long-lived store handle, services and the caller's user id."""

from typing import Optional

from fastapi import Depends, Header, Request

from TallyTasks.backend.services.api_keys import resolve_user
from TallyTasks.backend.services.task_service import TaskService
from TallyTasks.shared.store import TaskStore


def get_store(request: Request) -> TaskStore:
    return request.app.state.store


def get_task_service(store: TaskStore = Depends(get_store)) -> TaskService:
    return TaskService(store)


async def get_current_user(
    authorization: Optional[str] = Header(None),
    store: TaskStore = Depends(get_store),
) -> str:
    """Resolve the ``Authorization: Bearer <api-key>`` header to a user id."""
    return await resolve_user(store, authorization)
