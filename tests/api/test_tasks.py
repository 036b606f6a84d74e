"""API tests for /api/v1/tasks (envelope, validation, sync with users)."""

import json

from httpx import AsyncClient

DEADLINE = "2030-01-01T00:00:00Z"


async def _create_task(client: AsyncClient, **fields) -> dict:
    body = {"name": "Write report", "deadline": DEADLINE, **fields}
    resp = await client.post("/api/v1/tasks", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def _get_user(client: AsyncClient, user_id: str) -> dict:
    resp = await client.get(f"/api/v1/users/{user_id}")
    assert resp.status_code == 200
    return resp.json()["data"]


async def test_create_task_defaults(client: AsyncClient) -> None:
    """A new task is unassigned and incomplete unless the body says otherwise."""
    resp = await client.post("/api/v1/tasks", json={"name": "Write", "deadline": DEADLINE})
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Created"
    task = body["data"]
    assert task["completed"] is False
    assert task["assigned_user_id"] == ""
    assert task["assigned_user_name"] == "unassigned"
    assert task["description"] == ""


async def test_create_task_accepts_epoch_ms_deadline(client: AsyncClient) -> None:
    task = await _create_task(client, deadline=1893456000000)
    assert task["deadline"].startswith("2030-01-01T00:00:00")


async def test_create_task_missing_fields(client: AsyncClient) -> None:
    resp = await client.post("/api/v1/tasks", json={"name": "Write"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Must include name and deadline"


async def test_create_task_malformed_json(client: AsyncClient) -> None:
    resp = await client.post(
        "/api/v1/tasks", content="{not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400
    assert set(resp.json()) == {"message", "data"}


async def test_create_task_with_unknown_user(client: AsyncClient) -> None:
    resp = await client.post(
        "/api/v1/tasks",
        json={"name": "Write", "deadline": DEADLINE, "assigned_user_id": "ghost0000000000000000000"},
    )
    assert resp.status_code == 400
    assert resp.json()["data"]["error"] == "INVALID_REFERENCE"


async def test_create_assigned_task_syncs_user(client: AsyncClient, user: dict) -> None:
    """The assignee name is copied from the user; the caller's value is ignored."""
    task = await _create_task(
        client, assignedUser=user["id"], assigned_user_name="Someone Else"
    )
    assert task["assigned_user_id"] == user["id"]
    assert task["assigned_user_name"] == "Ada"
    assert (await _get_user(client, user["id"]))["pending_task_ids"] == [task["id"]]


async def test_completed_assigned_task_not_pending(client: AsyncClient, user: dict) -> None:
    task = await _create_task(client, assigned_user_id=user["id"], completed=True)
    assert task["assigned_user_id"] == user["id"]
    assert (await _get_user(client, user["id"]))["pending_task_ids"] == []


async def test_update_task_reassign_and_complete(client: AsyncClient, user: dict) -> None:
    other = (
        await client.post("/api/v1/users", json={"name": "Bob", "email": "bob@example.com"})
    ).json()["data"]
    task = await _create_task(client, assigned_user_id=user["id"])

    resp = await client.put(
        f"/api/v1/tasks/{task['id']}",
        json={"name": "Write report", "deadline": DEADLINE, "assigned_user_id": other["id"]},
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Updated"
    assert resp.json()["data"]["assigned_user_name"] == "Bob"
    assert (await _get_user(client, user["id"]))["pending_task_ids"] == []
    assert (await _get_user(client, other["id"]))["pending_task_ids"] == [task["id"]]

    resp = await client.put(
        f"/api/v1/tasks/{task['id']}",
        json={
            "name": "Write report",
            "deadline": DEADLINE,
            "assigned_user_id": other["id"],
            "completed": True,
        },
    )
    assert resp.status_code == 200
    assert (await _get_user(client, other["id"]))["pending_task_ids"] == []


async def test_update_task_unassign_by_omission(client: AsyncClient, user: dict) -> None:
    """PUT replaces the whole task, so leaving out the assignee unassigns it."""
    task = await _create_task(client, assigned_user_id=user["id"])
    resp = await client.put(
        f"/api/v1/tasks/{task['id']}", json={"name": "Write report", "deadline": DEADLINE}
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["assigned_user_name"] == "unassigned"
    assert (await _get_user(client, user["id"]))["pending_task_ids"] == []


async def test_get_task_not_found_and_malformed(client: AsyncClient) -> None:
    resp = await client.get("/api/v1/tasks/abcdefghijklmnopqrstuvwx")
    assert resp.status_code == 404
    assert resp.json()["data"]["error"] == "RESOURCE_NOT_FOUND"
    resp = await client.get("/api/v1/tasks/Not-An-Id!")
    assert resp.status_code == 400


async def test_get_task_with_select(client: AsyncClient) -> None:
    task = await _create_task(client)
    resp = await client.get(
        f"/api/v1/tasks/{task['id']}", params={"select": json.dumps({"name": 1})}
    )
    assert resp.status_code == 200
    assert resp.json()["data"] == {"id": task["id"], "name": "Write report"}


async def test_delete_task(client: AsyncClient, user: dict) -> None:
    task = await _create_task(client, assigned_user_id=user["id"])
    resp = await client.delete(f"/api/v1/tasks/{task['id']}")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Deleted", "data": {"id": task["id"]}}
    assert (await _get_user(client, user["id"]))["pending_task_ids"] == []
    assert (await client.delete(f"/api/v1/tasks/{task['id']}")).status_code == 404


async def test_list_tasks_query_parameters(client: AsyncClient) -> None:
    """where / sort / skip / limit / filter alias / count on the list endpoint."""
    for i, done in enumerate([False, True, False]):
        await _create_task(client, name=f"T{i}", completed=done)

    resp = await client.get(
        "/api/v1/tasks",
        params={
            "where": json.dumps({"completed": False}),
            "sort": json.dumps({"name": -1}),
            "filter": json.dumps({"name": 1}),
        },
    )
    assert resp.status_code == 200
    assert [t["name"] for t in resp.json()["data"]] == ["T2", "T0"]
    assert set(resp.json()["data"][0]) == {"id", "name"}

    resp = await client.get("/api/v1/tasks", params={"sort": '{"name": 1}', "skip": 1, "limit": 1})
    assert [t["name"] for t in resp.json()["data"]] == ["T1"]

    resp = await client.get("/api/v1/tasks", params={"count": "true", "where": '{"completed": true}'})
    assert resp.json() == {"message": "Count only", "data": 1}


async def test_list_tasks_bad_query(client: AsyncClient) -> None:
    resp = await client.get("/api/v1/tasks", params={"where": "{nope"})
    assert resp.status_code == 400
    resp = await client.get("/api/v1/tasks", params={"where": '{"name": {"$regex": "x"}}'})
    assert resp.status_code == 400
    assert resp.json()["data"]["error"] == "INVALID_QUERY"
    resp = await client.get("/api/v1/tasks", params={"skip": -1})
    assert resp.status_code == 400


async def test_list_tasks_date_filter(client: AsyncClient) -> None:
    await _create_task(client, name="early", deadline="2025-01-01T00:00:00Z")
    await _create_task(client, name="late", deadline="2035-01-01T00:00:00Z")
    resp = await client.get(
        "/api/v1/tasks", params={"where": json.dumps({"deadline": {"$gt": "2030-01-01T00:00:00Z"}})}
    )
    assert [t["name"] for t in resp.json()["data"]] == ["late"]
