"""Pytest configuration and fixtures for the assignment tracker.

HTTP tests run against create_app() over ASGITransport, which does not run
the lifespan, so the client fixture opens an in-memory store and puts it on
app.state itself. Service-level tests build TaskService / UserService
directly on the same kind of store.
"""

import os

os.environ["DATABASE_BACKEND"] = "memory"

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.application.services.sync_engine import SyncEngine
from app.application.use_cases.tasks import TaskService
from app.application.use_cases.users import UserService
from app.core.config import get_settings
from app.infrastructure.persistence.collections import UNIQUE_FIELDS
from app.infrastructure.persistence.memory_store import InMemoryEntityStore
from app.infrastructure.persistence.repositories import TaskRepository, UserRepository
from app.main import create_app


@pytest.fixture
async def store() -> InMemoryEntityStore:
    """Fresh in-memory entity store with the email uniqueness constraint."""
    s = InMemoryEntityStore(unique_fields=UNIQUE_FIELDS)
    await s.open()
    yield s
    await s.close()


@pytest.fixture
def sync_engine(store: InMemoryEntityStore) -> SyncEngine:
    """Sync engine with no retry delay."""
    return SyncEngine(store, retry_backoff_seconds=0, timeout_seconds=1.0)


@pytest.fixture
def task_service(store: InMemoryEntityStore, sync_engine: SyncEngine) -> TaskService:
    return TaskService(TaskRepository(store), UserRepository(store), sync_engine)


@pytest.fixture
def user_service(store: InMemoryEntityStore, sync_engine: SyncEngine) -> UserService:
    return UserService(UserRepository(store), TaskRepository(store), sync_engine)


@pytest.fixture
def app() -> FastAPI:
    """Application built from default (memory backend) settings."""
    get_settings.cache_clear()
    yield create_app()
    get_settings.cache_clear()


@pytest.fixture
async def client(app: FastAPI, store: InMemoryEntityStore) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI)."""
    app.state.store = store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def user(client: AsyncClient) -> dict:
    """A created user (response data)."""
    resp = await client.post("/api/v1/users", json={"name": "Ada", "email": "ada@example.com"})
    assert resp.status_code == 201
    return resp.json()["data"]
