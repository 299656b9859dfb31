"""
Redis document store for TallyTasks
Keeps each user's tasks and API key settings as JSON documents
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Iterable, Mapping

try:
    import redis.asyncio as async_redis
    from redis.asyncio import ConnectionPool as AsyncConnectionPool
    from redis.exceptions import RedisError
except ImportError:
    raise ImportError("Redis is required. Install with: pip install redis")

from .models import now_millis
from .query import matches_filters
from .store import StoreError

logger = logging.getLogger(__name__)


class RedisConfig:
    """Redis configuration"""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        url: str | None = None,
    ):
        self.host = host
        self.port = port
        self.db = db
        self.url = url or f"redis://{host}:{port}/{db}"


class RedisKeys:
    """Redis key patterns"""

    TASK = "tally:user:{user_id}:task:{task_id}"
    USER_TASKS = "tally:user:{user_id}:tasks"
    API_SETTINGS = "tally:user:{user_id}:settings:api"
    API_KEY = "tally:apikey:{api_key}"


class RedisTaskStore:
    """Asynchronous Redis-backed task store for the FastAPI backend"""

    def __init__(self, config: RedisConfig, client: async_redis.Redis | None = None):
        self.config = config
        self.pool: AsyncConnectionPool | None = None
        self.redis: async_redis.Redis | None = client

    async def connect(self):
        """Initialize async Redis connection"""
        if self.redis is not None:
            return
        try:
            self.pool = AsyncConnectionPool.from_url(
                self.config.url, decode_responses=True
            )
            self.redis = async_redis.Redis(connection_pool=self.pool)
            await self.redis.ping()
            logger.info("Async Redis connected successfully")
        except RedisError as e:
            logger.error(f"Failed to connect to async Redis: {e}")
            raise StoreError("Could not connect to Redis") from e

    async def disconnect(self):
        """Close async Redis connection"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
        if self.pool:
            await self.pool.disconnect()
            self.pool = None

    def get_redis(self) -> async_redis.Redis:
        """Get Redis client"""
        if self.redis is None:
            raise StoreError("Redis not connected")
        return self.redis

    async def ping(self) -> bool:
        try:
            return bool(await self.get_redis().ping())
        except (RedisError, StoreError) as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    # ---- tasks ----

    async def get_task(self, user_id: str, task_id: str) -> dict[str, Any] | None:
        """Get a single task document"""
        try:
            raw = await self.get_redis().get(
                RedisKeys.TASK.format(user_id=user_id, task_id=task_id)
            )
        except RedisError as e:
            logger.error(f"Failed to get task {task_id} from Redis: {e}")
            raise StoreError("Failed to read task") from e
        if not raw:
            return None
        return {**json.loads(raw), "id": task_id}

    async def query_tasks(
        self, user_id: str, filters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch a user's tasks, keeping those equal to every filter"""
        r = self.get_redis()
        try:
            task_ids = sorted(
                await r.smembers(RedisKeys.USER_TASKS.format(user_id=user_id))
            )
            if not task_ids:
                return []
            raws = await r.mget(
                [RedisKeys.TASK.format(user_id=user_id, task_id=t) for t in task_ids]
            )
        except RedisError as e:
            logger.error(f"Failed to query tasks for user {user_id}: {e}")
            raise StoreError("Failed to query tasks") from e

        tasks = []
        for task_id, raw in zip(task_ids, raws):
            if raw is None:
                continue
            task = {**json.loads(raw), "id": task_id}
            if filters and not matches_filters(task, filters):
                continue
            tasks.append(task)
        return tasks

    async def add_task(self, user_id: str, data: Mapping[str, Any]) -> str:
        """Store a new task document and return its id"""
        task_id = uuid.uuid4().hex
        document = {k: v for k, v in data.items() if k != "id"}
        try:
            r = self.get_redis()
            await r.set(
                RedisKeys.TASK.format(user_id=user_id, task_id=task_id),
                json.dumps(document),
            )
            await r.sadd(RedisKeys.USER_TASKS.format(user_id=user_id), task_id)
        except RedisError as e:
            logger.error(f"Failed to save task to Redis: {e}")
            raise StoreError("Failed to save task") from e
        logger.info(f"Task {task_id} saved to Redis")
        return task_id

    async def update_task(
        self,
        user_id: str,
        task_id: str,
        updates: Mapping[str, Any],
        remove: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        """Merge updates into a task; fields in ``remove`` are dropped"""
        current = await self.get_task(user_id, task_id)
        if current is None:
            return None
        current.update(updates)
        for name in remove:
            current.pop(name, None)
        current.pop("id", None)
        try:
            await self.get_redis().set(
                RedisKeys.TASK.format(user_id=user_id, task_id=task_id),
                json.dumps(current),
            )
        except RedisError as e:
            logger.error(f"Failed to update task {task_id} in Redis: {e}")
            raise StoreError("Failed to update task") from e
        return {**current, "id": task_id}

    async def delete_task(self, user_id: str, task_id: str) -> bool:
        """Remove a task document for good"""
        try:
            r = self.get_redis()
            removed = await r.delete(
                RedisKeys.TASK.format(user_id=user_id, task_id=task_id)
            )
            await r.srem(RedisKeys.USER_TASKS.format(user_id=user_id), task_id)
        except RedisError as e:
            logger.error(f"Failed to delete task {task_id} from Redis: {e}")
            raise StoreError("Failed to delete task") from e
        return bool(removed)

    # ---- api keys ----

    async def get_user_for_api_key(self, api_key: str) -> str | None:
        """Resolve an API key to its user id with a single indexed read"""
        try:
            raw = await self.get_redis().get(RedisKeys.API_KEY.format(api_key=api_key))
        except RedisError as e:
            logger.error(f"Failed to resolve API key: {e}")
            raise StoreError("Failed to resolve API key") from e
        if not raw:
            return None
        return json.loads(raw).get("userId")

    async def get_api_key(self, user_id: str) -> str | None:
        try:
            raw = await self.get_redis().get(
                RedisKeys.API_SETTINGS.format(user_id=user_id)
            )
        except RedisError as e:
            logger.error(f"Failed to read API settings for user {user_id}: {e}")
            raise StoreError("Failed to read API settings") from e
        if not raw:
            return None
        return json.loads(raw).get("apiKey")

    async def save_api_key(self, user_id: str, api_key: str) -> None:
        """Write the user's key settings and the key index entry"""
        created = now_millis()
        try:
            r = self.get_redis()
            await r.set(
                RedisKeys.API_SETTINGS.format(user_id=user_id),
                json.dumps({"apiKey": api_key, "createdAt": created}),
            )
            await r.set(
                RedisKeys.API_KEY.format(api_key=api_key),
                json.dumps({"userId": user_id, "createdAt": created}),
            )
        except RedisError as e:
            logger.error(f"Failed to save API key for user {user_id}: {e}")
            raise StoreError("Failed to save API key") from e

    async def delete_api_key(self, api_key: str) -> None:
        try:
            await self.get_redis().delete(RedisKeys.API_KEY.format(api_key=api_key))
        except RedisError as e:
            logger.error(f"Failed to revoke API key: {e}")
            raise StoreError("Failed to revoke API key") from e
