"""Tests for the Firestore entity store against a fake REST backend (httpx.MockTransport)."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from app.application.interfaces.store import Mutation
from app.infrastructure.exceptions import (
    DuplicateKeyError,
    InvalidQueryError,
    StoreConflictError,
    StoreUnavailableError,
)
from app.infrastructure.firebase._rest_client import FirestoreRESTClient
from app.infrastructure.firebase._rest_encoding import decode_fields, encode_fields
from app.infrastructure.firebase.entity_store import (
    FirestoreEntityStore,
    _Untranslatable,
    build_filter,
)
from app.infrastructure.persistence.collections import ARRAY_FIELDS, DATETIME_FIELDS, UNIQUE_FIELDS


class FakeCredentials:
    valid = True
    token = "test-token"


class FakeFirestore:
    """In-memory stand-in for the handful of Firestore REST endpoints the store calls."""

    def __init__(self) -> None:
        self.docs: dict[str, tuple[dict, str]] = {}
        self.requests: list[tuple[str, str, dict | None]] = []
        self.fail_commits: list[str] = []
        self._clock = 0

    def _tick(self) -> str:
        self._clock += 1
        return f"2030-01-01T00:00:00.{self._clock:06d}Z"

    def seed(self, path: str, data: dict) -> None:
        self.docs[path] = (data, self._tick())

    def _doc_json(self, path: str) -> dict:
        data, update_time = self.docs[path]
        return {
            "name": f"projects/demo/databases/(default)/documents/{path}",
            "fields": encode_fields(data),
            "updateTime": update_time,
        }

    @staticmethod
    def _error(code: int, status: str) -> httpx.Response:
        return httpx.Response(code, json={"error": {"code": code, "status": status, "message": status}})

    def _commit(self, body: dict) -> httpx.Response:
        if self.fail_commits:
            status = self.fail_commits.pop(0)
            return self._error(409 if status == "ABORTED" else 400, status)
        writes = body["writes"]
        for w in writes:
            path = (w.get("update", {}).get("name") or w.get("delete")).split("/documents/")[1]
            pre = w.get("currentDocument", {})
            if pre.get("exists") is False and path in self.docs:
                return self._error(409, "ALREADY_EXISTS")
            if "updateTime" in pre and (path not in self.docs or self.docs[path][1] != pre["updateTime"]):
                return self._error(400, "FAILED_PRECONDITION")
        for w in writes:
            if "delete" in w:
                self.docs.pop(w["delete"].split("/documents/")[1], None)
                continue
            path = w["update"]["name"].split("/documents/")[1]
            fields = decode_fields(w["update"].get("fields"))
            if "updateMask" in w:
                data = dict(self.docs.get(path, ({}, ""))[0])
                data.update({k: fields[k] for k in w["updateMask"]["fieldPaths"]})
            else:
                data = fields
            for t in w.get("updateTransforms", []):
                values = decode_fields({"v": {"arrayValue": t.get("appendMissingElements") or t.get("removeAllFromArray")}})["v"]
                current = list(data.get(t["fieldPath"]) or [])
                if "appendMissingElements" in t:
                    current += [v for v in values if v not in current]
                else:
                    current = [v for v in current if v not in values]
                data[t["fieldPath"]] = current
            self.docs[path] = (data, self._tick())
        return httpx.Response(200, json={"writeResults": []})

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))
        assert request.headers["authorization"] == "Bearer test-token"
        if request.method == "GET":
            doc_path = path.split("/documents/")[1]
            if doc_path not in self.docs:
                return self._error(404, "NOT_FOUND")
            return httpx.Response(200, json=self._doc_json(doc_path))
        if path.endswith(":commit"):
            return self._commit(body)
        if path.endswith(":beginTransaction"):
            return httpx.Response(200, json={"transaction": "dHgx"})
        if path.endswith(":rollback"):
            return httpx.Response(200, json={})
        collection = (
            body.get("structuredAggregationQuery", {}).get("structuredQuery") or body["structuredQuery"]
        )["from"][0]["collectionId"]
        paths = [p for p in self.docs if p.startswith(f"{collection}/")]
        if path.endswith(":runAggregationQuery"):
            return httpx.Response(
                200,
                json=[{"result": {"aggregateFields": {"total": {"integerValue": str(len(paths))}}}}],
            )
        return httpx.Response(200, json=[{"document": self._doc_json(p)} for p in paths])

    def commits(self) -> list[dict]:
        return [body for _, path, body in self.requests if path.endswith(":commit")]


@pytest.fixture
def fake() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
async def fs_store(fake: FakeFirestore) -> FirestoreEntityStore:
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
    client = FirestoreRESTClient("demo", FakeCredentials(), http_client=http)
    store = FirestoreEntityStore(
        client,
        unique_fields=UNIQUE_FIELDS,
        array_fields=ARRAY_FIELDS,
        datetime_fields=DATETIME_FIELDS,
        max_write_retries=3,
    )
    yield store
    await http.aclose()


class TestBuildFilter:
    def test_empty(self) -> None:
        assert build_filter({}) is None

    def test_single_equality(self) -> None:
        assert build_filter({"completed": False}) == {
            "fieldFilter": {
                "field": {"fieldPath": "completed"},
                "op": "EQUAL",
                "value": {"booleanValue": False},
            }
        }

    def test_array_field_uses_array_contains(self) -> None:
        flt = build_filter({"pending_task_ids": "t1"}, array_fields=("pending_task_ids",))
        assert flt["fieldFilter"]["op"] == "ARRAY_CONTAINS"

    def test_and_of_operators(self) -> None:
        flt = build_filter({"assigned_user_id": {"$in": ["", "u1"]}, "completed": False})
        assert flt["compositeFilter"]["op"] == "AND"
        assert [f["fieldFilter"]["op"] for f in flt["compositeFilter"]["filters"]] == ["IN", "EQUAL"]

    def test_datetime_operand_converted(self) -> None:
        flt = build_filter({"deadline": {"$gte": 1893456000000}}, datetime_fields=("deadline",))
        assert flt["fieldFilter"]["value"] == {"timestampValue": "2030-01-01T00:00:00.000000Z"}

    def test_or(self) -> None:
        flt = build_filter({"$or": [{"name": "a"}, {"name": "b"}]})
        assert flt["compositeFilter"]["op"] == "OR"

    @pytest.mark.parametrize(
        "where",
        [
            {"name": {"$ne": "a"}},
            {"name": {"$exists": True}},
            {"name": None},
            {"assigned_user_id": {"$in": [str(i) for i in range(31)]}},
        ],
    )
    def test_untranslatable_filters(self, where: dict) -> None:
        with pytest.raises(_Untranslatable):
            build_filter(where)

    def test_unsupported_operator_is_invalid(self) -> None:
        with pytest.raises(InvalidQueryError):
            build_filter({"name": {"$regex": "a"}})


async def test_create_writes_document_and_unique_guard(
    fs_store: FirestoreEntityStore, fake: FakeFirestore
) -> None:
    """create commits the document (exists=false) and the email guard together."""
    await fs_store.create("users", {"id": "u1", "email": "a@x.io", "pending_task_ids": []})
    (commit,) = fake.commits()
    assert len(commit["writes"]) == 2
    assert all(w["currentDocument"] == {"exists": False} for w in commit["writes"])
    assert "users/u1" in fake.docs
    assert any(p.startswith("unique_keys/") for p in fake.docs)


async def test_create_duplicate_email(fs_store: FirestoreEntityStore) -> None:
    await fs_store.create("users", {"id": "u1", "email": "a@x.io"})
    with pytest.raises(DuplicateKeyError) as exc_info:
        await fs_store.create("users", {"id": "u2", "email": "a@x.io"})
    assert exc_info.value.field == "email"


async def test_create_duplicate_id(fs_store: FirestoreEntityStore) -> None:
    await fs_store.create("tasks", {"id": "t1", "name": "a"})
    with pytest.raises(DuplicateKeyError) as exc_info:
        await fs_store.create("tasks", {"id": "t1", "name": "b"})
    assert exc_info.value.field == "id"


async def test_find_by_id_decodes_fields(fs_store: FirestoreEntityStore, fake: FakeFirestore) -> None:
    deadline = datetime(2030, 1, 1, tzinfo=timezone.utc)
    fake.seed("tasks/t1", {"name": "a", "deadline": deadline, "completed": False})
    doc = await fs_store.find_by_id("tasks", "t1")
    assert doc == {"id": "t1", "name": "a", "deadline": deadline, "completed": False}
    assert await fs_store.find_by_id("tasks", "nope") is None


async def test_guarded_update_uses_transform_and_precondition(
    fs_store: FirestoreEntityStore, fake: FakeFirestore
) -> None:
    fake.seed("users/u1", {"email": "a@x.io", "pending_task_ids": ["t1"]})
    matched = await fs_store.conditional_update_one(
        "users", "u1", {"pending_task_ids": {"$ne": "t2"}}, Mutation(add_to_set={"pending_task_ids": "t2"})
    )
    assert matched is True
    (commit,) = fake.commits()
    write = commit["writes"][0]
    assert "updateTime" in write["currentDocument"]
    assert write["updateTransforms"][0]["appendMissingElements"] == {
        "values": [{"stringValue": "t2"}]
    }
    assert fake.docs["users/u1"][0]["pending_task_ids"] == ["t1", "t2"]


async def test_guarded_update_predicate_miss_writes_nothing(
    fs_store: FirestoreEntityStore, fake: FakeFirestore
) -> None:
    fake.seed("users/u1", {"email": "a@x.io", "pending_task_ids": ["t1"]})
    matched = await fs_store.conditional_update_one(
        "users", "u1", {"pending_task_ids": {"$ne": "t1"}}, Mutation(add_to_set={"pending_task_ids": "t1"})
    )
    assert matched is False
    assert fake.commits() == []


async def test_guarded_update_retries_lost_race(
    fs_store: FirestoreEntityStore, fake: FakeFirestore
) -> None:
    """A FAILED_PRECONDITION commit re-reads and tries again."""
    fake.seed("tasks/t1", {"completed": False, "assigned_user_id": ""})
    fake.fail_commits = ["FAILED_PRECONDITION"]
    matched = await fs_store.conditional_update_one(
        "tasks", "t1", {"assigned_user_id": ""}, Mutation(set_fields={"assigned_user_id": "u1"})
    )
    assert matched is True
    assert len(fake.commits()) == 2
    assert fake.docs["tasks/t1"][0]["assigned_user_id"] == "u1"


async def test_guarded_update_gives_up_after_retries(
    fs_store: FirestoreEntityStore, fake: FakeFirestore
) -> None:
    fake.seed("tasks/t1", {"assigned_user_id": ""})
    fake.fail_commits = ["FAILED_PRECONDITION"] * 3
    with pytest.raises(StoreConflictError):
        await fs_store.conditional_update_one(
            "tasks", "t1", {}, Mutation(set_fields={"assigned_user_id": "u1"})
        )


async def test_untranslatable_filter_evaluated_client_side(
    fs_store: FirestoreEntityStore, fake: FakeFirestore
) -> None:
    fake.seed("tasks/t1", {"name": "a"})
    fake.seed("tasks/t2", {"name": "b"})
    docs = await fs_store.find("tasks", {"name": {"$ne": "a"}})
    assert [d["id"] for d in docs] == ["t2"]
    _, _, body = fake.requests[-1]
    assert "where" not in body["structuredQuery"]


async def test_exact_filter_is_sent_to_server(
    fs_store: FirestoreEntityStore, fake: FakeFirestore
) -> None:
    await fs_store.find("tasks", {"completed": False}, limit=5, skip=2)
    _, _, body = fake.requests[-1]
    query = body["structuredQuery"]
    assert query["where"]["fieldFilter"]["op"] == "EQUAL"
    assert (query["offset"], query["limit"]) == (2, 5)


async def test_count_uses_aggregation(fs_store: FirestoreEntityStore, fake: FakeFirestore) -> None:
    fake.seed("tasks/t1", {"name": "a"})
    fake.seed("tasks/t2", {"name": "b"})
    assert await fs_store.count("tasks") == 2
    assert fake.requests[-1][1].endswith(":runAggregationQuery")


async def test_transaction_commits_once(fs_store: FirestoreEntityStore, fake: FakeFirestore) -> None:
    """Writes inside transaction() are buffered and committed in one request."""
    async with fs_store.transaction():
        await fs_store.create("tasks", {"id": "t1", "name": "a"})
        assert (await fs_store.find_by_id("tasks", "t1"))["name"] == "a"
        await fs_store.replace_one("tasks", "t1", {"name": "b"})
        assert fake.commits() == []
    (commit,) = fake.commits()
    assert commit["transaction"] == "dHgx"
    assert fake.docs["tasks/t1"][0]["name"] == "b"


async def test_transaction_rolls_back_on_error(
    fs_store: FirestoreEntityStore, fake: FakeFirestore
) -> None:
    with pytest.raises(RuntimeError):
        async with fs_store.transaction():
            await fs_store.create("tasks", {"id": "t1", "name": "a"})
            raise RuntimeError("boom")
    assert fake.commits() == []
    assert fake.requests[-1][1].endswith(":rollback")
    assert "tasks/t1" not in fake.docs


async def test_aborted_transaction_is_conflict(
    fs_store: FirestoreEntityStore, fake: FakeFirestore
) -> None:
    fake.fail_commits = ["ABORTED"]
    with pytest.raises(StoreConflictError):
        async with fs_store.transaction():
            await fs_store.create("tasks", {"id": "t1", "name": "a"})


async def test_backend_error_is_unavailable(fs_store: FirestoreEntityStore, fake: FakeFirestore) -> None:
    fake.fail_commits = ["PERMISSION_DENIED"]
    with pytest.raises(StoreUnavailableError):
        await fs_store.create("tasks", {"id": "t1", "name": "a"})
