"""
In-memory task store.

Same interface as the Redis store, for local development and tests.
Contents are lost when the process exits.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import now_millis
from .query import matches_filters

logger = logging.getLogger(__name__)


class MemoryTaskStore:
    def __init__(self) -> None:
        self.tasks: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.api_settings: Dict[str, Dict[str, Any]] = {}
        self.api_keys: Dict[str, Dict[str, Any]] = {}

    async def connect(self) -> None:
        logger.warning("Running without Redis - using in-memory storage only")

    async def disconnect(self) -> None:
        return None

    async def ping(self) -> bool:
        return True

    async def get_task(self, user_id: str, task_id: str) -> Optional[Dict[str, Any]]:
        document = self.tasks.get(user_id, {}).get(task_id)
        if document is None:
            return None
        return {**copy.deepcopy(document), "id": task_id}

    async def query_tasks(
        self, user_id: str, filters: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        tasks = []
        for task_id, document in self.tasks.get(user_id, {}).items():
            task = {**copy.deepcopy(document), "id": task_id}
            if filters and not matches_filters(task, filters):
                continue
            tasks.append(task)
        return tasks

    async def add_task(self, user_id: str, data: Mapping[str, Any]) -> str:
        task_id = uuid.uuid4().hex
        self.tasks.setdefault(user_id, {})[task_id] = {
            k: copy.deepcopy(v) for k, v in data.items() if k != "id"
        }
        return task_id

    async def update_task(
        self,
        user_id: str,
        task_id: str,
        updates: Mapping[str, Any],
        remove: Iterable[str] = (),
    ) -> Optional[Dict[str, Any]]:
        document = self.tasks.get(user_id, {}).get(task_id)
        if document is None:
            return None
        document.update({k: copy.deepcopy(v) for k, v in updates.items() if k != "id"})
        for name in remove:
            document.pop(name, None)
        return {**copy.deepcopy(document), "id": task_id}

    async def delete_task(self, user_id: str, task_id: str) -> bool:
        return self.tasks.get(user_id, {}).pop(task_id, None) is not None

    async def get_user_for_api_key(self, api_key: str) -> Optional[str]:
        entry = self.api_keys.get(api_key)
        return entry["userId"] if entry else None

    async def get_api_key(self, user_id: str) -> Optional[str]:
        settings = self.api_settings.get(user_id)
        return settings["apiKey"] if settings else None

    async def save_api_key(self, user_id: str, api_key: str) -> None:
        created = now_millis()
        self.api_settings[user_id] = {"apiKey": api_key, "createdAt": created}
        self.api_keys[api_key] = {"userId": user_id, "createdAt": created}

    async def delete_api_key(self, api_key: str) -> None:
        self.api_keys.pop(api_key, None)
