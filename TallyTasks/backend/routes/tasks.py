from fastapi import APIRouter, Body, Depends, Query, Request, Response, status
from typing import Any, Dict, Optional

from TallyTasks.backend.dependencies import get_current_user, get_task_service
from TallyTasks.backend.errors import NotFound, ValidationError
from TallyTasks.backend.services.task_service import TaskService
from TallyTasks.shared.models import QuadrantScheme
from TallyTasks.shared.query import annotate


def build_router(scheme: QuadrantScheme) -> APIRouter:
    """Task endpoints whose quadrant codes follow ``scheme``."""
    router = APIRouter()

    @router.options("/tasks", include_in_schema=False)
    @router.options("/tasks/{task_id}", include_in_schema=False)
    async def preflight():
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.get("/tasks")
    async def list_tasks(
        request: Request,
        user_id: str = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        """List tasks with filtering, sorting and optional pagination"""
        result = await service.list_tasks(user_id, request.query_params, scheme)
        return result.to_dict()

    @router.get("/tasks/{task_id}")
    async def get_task(
        task_id: str,
        user_id: str = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        """Get a specific task by ID"""
        task = await service.get_task(user_id, task_id)
        if not task:
            raise NotFound()
        return annotate(task, scheme)

    @router.post("/tasks", status_code=status.HTTP_201_CREATED)
    async def create_task(
        task_data: Dict[str, Any] = Body(default={}),
        user_id: str = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        """Create a new task"""
        try:
            task = await service.create_task(user_id, task_data)
        except ValueError as e:
            raise ValidationError(str(e))
        return annotate(task, scheme)

    @router.put("/tasks/{task_id}")
    async def update_task(
        task_id: str,
        updates: Dict[str, Any] = Body(default={}),
        user_id: str = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        """Update an existing task"""
        try:
            task = await service.update_task(user_id, task_id, updates)
        except ValueError as e:
            raise ValidationError(str(e))
        if not task:
            raise NotFound()
        return annotate(task, scheme)

    @router.delete("/tasks/{task_id}")
    async def delete_task(
        task_id: str,
        permanent: Optional[str] = Query(None),
        user_id: str = Depends(get_current_user),
        service: TaskService = Depends(get_task_service),
    ):
        """Move a task to the trash, or delete it with ?permanent=true"""
        hard = (permanent or "").lower() == "true"
        if not await service.delete_task(user_id, task_id, permanent=hard):
            raise NotFound()
        if hard:
            return {"message": "Task permanently deleted", "id": task_id}
        return {"message": "Task moved to trash", "id": task_id}

    return router
