"""
API key issuance and bearer authentication.

Keys are indexed directly (key -> user id), so resolving a request's key is a
single read rather than a walk over every user's settings.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import Optional

from TallyTasks.backend.errors import AuthError
from TallyTasks.shared.store import TaskStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "tk_"
KEY_LENGTH = 32
MIN_KEY_LENGTH = 10
KEY_ALPHABET = string.ascii_letters + string.digits


def generate_api_key() -> str:
    return KEY_PREFIX + "".join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_LENGTH))


def mask_api_key(api_key: str) -> str:
    """Key with everything but its first 6 and last 4 characters hidden."""
    return f"{api_key[:6]}{'*' * 24}{api_key[-4:]}"


async def issue_api_key(store: TaskStore, user_id: str) -> str:
    """Return the user's key, creating one on first use."""
    existing = await store.get_api_key(user_id)
    if existing:
        return existing
    api_key = generate_api_key()
    await store.save_api_key(user_id, api_key)
    logger.info(f"Issued API key {mask_api_key(api_key)} for user {user_id}")
    return api_key


async def regenerate_api_key(store: TaskStore, user_id: str) -> str:
    """Invalidate the user's current key and issue a new one."""
    old_key = await store.get_api_key(user_id)
    if old_key:
        await store.delete_api_key(old_key)
    api_key = generate_api_key()
    await store.save_api_key(user_id, api_key)
    logger.info(f"Regenerated API key for user {user_id}")
    return api_key


def parse_bearer(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Missing or invalid Authorization header. Use: Bearer <your-api-key>")
    api_key = authorization[len("Bearer "):].strip()
    if len(api_key) < MIN_KEY_LENGTH:
        raise AuthError("Invalid API key format")
    return api_key


async def resolve_user(store: TaskStore, authorization: Optional[str]) -> str:
    """User id for a ``Bearer <api-key>`` header; AuthError otherwise."""
    api_key = parse_bearer(authorization)
    user_id = await store.get_user_for_api_key(api_key)
    if not user_id:
        logger.warning(f"Rejected unknown API key {mask_api_key(api_key)}")
        raise AuthError("Invalid API key")
    return user_id
