"""A stalled counterpart write must not turn a committed write into a 504."""

import asyncio

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.config import get_settings
from app.infrastructure.persistence.collections import UNIQUE_FIELDS
from app.infrastructure.persistence.memory_store import InMemoryEntityStore
from app.main import create_app

DEADLINE = "2030-01-01T00:00:00Z"


class StalledStore(InMemoryEntityStore):
    """Guarded writes never finish."""

    async def conditional_update_one(self, collection, doc_id, predicate, mutation):
        await asyncio.sleep(30)
        return await super().conditional_update_one(collection, doc_id, predicate, mutation)


@pytest.fixture
def slow_app(monkeypatch: pytest.MonkeyPatch) -> FastAPI:
    monkeypatch.setenv("REQUEST_TIMEOUT_SECONDS", "1")
    monkeypatch.setenv("SYNC_TIMEOUT_SECONDS", "0.2")
    monkeypatch.setenv("SYNC_BUDGET_SECONDS", "0.5")
    monkeypatch.setenv("SYNC_RETRY_BACKOFF_SECONDS", "0")
    get_settings.cache_clear()
    yield create_app()
    get_settings.cache_clear()


@pytest.fixture
async def slow_client(slow_app: FastAPI) -> AsyncClient:
    store = StalledStore(unique_fields=UNIQUE_FIELDS)
    await store.open()
    slow_app.state.store = store
    async with AsyncClient(transport=ASGITransport(app=slow_app), base_url="http://test") as ac:
        yield ac
    await store.close()


async def test_create_task_succeeds_when_reconciliation_stalls(slow_client: AsyncClient) -> None:
    """The task write is reported as created once the sync budget runs out."""
    user = (
        await slow_client.post("/api/v1/users", json={"name": "Ada", "email": "ada@x.io"})
    ).json()["data"]
    resp = await slow_client.post(
        "/api/v1/tasks",
        json={"name": "Write", "deadline": DEADLINE, "assigned_user_id": user["id"]},
    )
    assert resp.status_code == 201, resp.text
    task_id = resp.json()["data"]["id"]
    assert (await slow_client.get(f"/api/v1/tasks/{task_id}")).status_code == 200


async def test_delete_user_commits_before_stalled_unassign(slow_client: AsyncClient) -> None:
    """The user is gone even though its task could not be unassigned in time."""
    task = (
        await slow_client.post("/api/v1/tasks", json={"name": "Write", "deadline": DEADLINE})
    ).json()["data"]
    resp = await slow_client.post(
        "/api/v1/users", json={"name": "Ada", "email": "ada@x.io", "pending_task_ids": [task["id"]]}
    )
    assert resp.status_code == 201, resp.text
    user = resp.json()["data"]
    assert user["pending_task_ids"] == [task["id"]]

    resp = await slow_client.delete(f"/api/v1/users/{user['id']}")
    assert resp.status_code == 200, resp.text
    assert (await slow_client.get(f"/api/v1/users/{user['id']}")).status_code == 404
