from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator

import httpx
import mongomock
import pytest
from fastapi.testclient import TestClient
from pymongo import MongoClient

from src.sensorhub.config import BackendConfig
from src.sensorhub.db.mongo import MongoManager
from src.sensorhub.main import create_app
from src.sensorhub.state import AppState, get_state

TEST_DB_NAME = "telemetry_test"


def _make_client():
    """
    Mongo client for tests.

    Priority:
      1) TEST_MONGO_URI (a real mongod; exercises true unique-index races)
      2) mongomock in-process (default)
    """
    uri = os.getenv("TEST_MONGO_URI")
    if uri:
        return MongoClient(uri, connect=True, tz_aware=True)
    return mongomock.MongoClient(tz_aware=True)


@pytest.fixture
def mongo_client() -> Iterator[MongoClient]:
    client = _make_client()
    try:
        yield client
    finally:
        client.drop_database(TEST_DB_NAME)
        client.close()


@pytest.fixture
def mongo_manager(mongo_client) -> MongoManager:
    """MongoManager bound to the test client, with indexes in place."""
    manager = MongoManager("mongodb://test", TEST_DB_NAME, client=mongo_client)
    manager.init_indexes()
    return manager


@pytest.fixture
def mongo_db(mongo_client):
    """Test database handle for direct inspection."""
    return mongo_client[TEST_DB_NAME]


@pytest.fixture
def test_config() -> BackendConfig:
    return BackendConfig(
        mongo_uri="mongodb://test",
        mongo_db_name=TEST_DB_NAME,
        notifier_queue_size=16,
        history_default_hours=24,
        history_max_hours=72,
        mongo_uri_source="test",
    )


@pytest.fixture
def app(test_config: BackendConfig, mongo_manager: MongoManager):
    """FastAPI app wired to the test database. Startup hooks are not run."""
    return create_app(config=test_config, mongo=mongo_manager)


@pytest.fixture
def state(app) -> AppState:
    return get_state(app)


@pytest.fixture
async def async_client(app) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client bound to the FastAPI ASGI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sync_client(app) -> TestClient:
    """Starlette TestClient, used for WebSocket sessions."""
    return TestClient(app)


@pytest.fixture
def anyio_backend() -> str:
    """The app is asyncio-based; run anyio-marked tests on asyncio only."""
    return "asyncio"
