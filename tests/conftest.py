# Test configuration and fixtures
import asyncio
import os

import pytest
from fastapi.testclient import TestClient

from TallyTasks.backend.main import create_app
from TallyTasks.shared.config import AppConfig
from TallyTasks.shared.memory_store import MemoryTaskStore

# Set test environment variables
os.environ["TALLY_STORE"] = "memory"
os.environ["TESTING"] = "1"  # Signal that we're in test mode

TEST_USER_ID = "user-alice"
OTHER_USER_ID = "user-bob"
TEST_API_KEY = "tk_" + "A1b2C3d4" * 4
OTHER_API_KEY = "tk_" + "Z9y8X7w6" * 4


@pytest.fixture
def test_config():
    """Test configuration."""
    return AppConfig(store_backend="memory", log_level="DEBUG")


@pytest.fixture
def memory_store():
    """In-memory store with API keys for two users."""
    store = MemoryTaskStore()
    asyncio.run(store.save_api_key(TEST_USER_ID, TEST_API_KEY))
    asyncio.run(store.save_api_key(OTHER_USER_ID, OTHER_API_KEY))
    return store


@pytest.fixture
def app(test_config, memory_store):
    return create_app(test_config, store=memory_store)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def test_user_id():
    return TEST_USER_ID


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TEST_API_KEY}"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": f"Bearer {OTHER_API_KEY}"}


@pytest.fixture
def make_record():
    """Build a stored task document the way the store returns it."""

    def _make(task_id, title="Task", **fields):
        record = {
            "id": task_id,
            "title": title,
            "description": "",
            "priority": "medium",
            "important": False,
            "urgent": False,
            "done": False,
            "status": "active",
            "createdAt": 1704067200000,
            "updatedAt": 1704067200000,
        }
        record.update(fields)
        return record

    return _make
