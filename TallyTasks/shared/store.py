"""
Document store interface shared by the Redis and in-memory backends.

Tasks live in a per-user collection; documents are plain dicts in the
stored (camelCase) shape and always carry their ``id`` when returned.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Protocol

if TYPE_CHECKING:
    from .config import AppConfig


class StoreError(Exception):
    """The document store could not complete an operation."""


class TaskStore(Protocol):
    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def ping(self) -> bool: ...

    async def get_task(self, user_id: str, task_id: str) -> Optional[Dict[str, Any]]: ...

    async def query_tasks(
        self, user_id: str, filters: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]: ...

    async def add_task(self, user_id: str, data: Mapping[str, Any]) -> str: ...

    async def update_task(
        self,
        user_id: str,
        task_id: str,
        updates: Mapping[str, Any],
        remove: Iterable[str] = (),
    ) -> Optional[Dict[str, Any]]: ...

    async def delete_task(self, user_id: str, task_id: str) -> bool: ...

    async def get_user_for_api_key(self, api_key: str) -> Optional[str]: ...

    async def get_api_key(self, user_id: str) -> Optional[str]: ...

    async def save_api_key(self, user_id: str, api_key: str) -> None: ...

    async def delete_api_key(self, api_key: str) -> None: ...


def create_store(config: "AppConfig") -> TaskStore:
    """Build the store selected by configuration (not yet connected)."""
    if config.store_backend == "memory":
        from .memory_store import MemoryTaskStore

        return MemoryTaskStore()
    if config.store_backend == "redis":
        from .redis_utils import RedisConfig, RedisTaskStore

        return RedisTaskStore(RedisConfig(url=config.redis_url))
    raise ValueError(f"Unknown store backend: {config.store_backend}")
