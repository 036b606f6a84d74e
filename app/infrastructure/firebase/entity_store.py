"""Firestore implementation of IEntityStore (REST API).

Guarded writes are optimistic: read the document with its updateTime,
evaluate the predicate locally, then commit with an updateTime precondition.
A FAILED_PRECONDITION answer means another writer got there first, so the
read-check-commit loop runs again (up to FIRESTORE_MAX_WRITE_RETRIES times).

Array set semantics use the appendMissingElements / removeAllFromArray field
transforms. Unique fields are enforced by guard documents in the
unique_keys collection, written in the same commit with an exists=false
precondition.

Inside transaction() reads go through a Firestore read-write transaction and
writes are buffered (read-your-writes via an overlay) until a single commit
at the end of the block.
"""

from __future__ import annotations

import copy
import hashlib
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.application.interfaces.store import Filter, Mutation, SortSpec
from app.infrastructure.exceptions import (
    DuplicateKeyError,
    InvalidQueryError,
    StoreConflictError,
    StoreUnavailableError,
)
from app.infrastructure.firebase._rest_client import (
    DocumentExistsError,
    DocumentSnapshot,
    FirestoreError,
    FirestoreRESTClient,
    PreconditionFailedError,
    TransactionAbortedError,
)
from app.infrastructure.firebase._rest_encoding import encode_fields, encode_value
from app.infrastructure.persistence.collections import COLLECTION_UNIQUE_KEYS
from app.infrastructure.persistence.filters import (
    COMPARISON_OPERATORS,
    LOGICAL_OPERATORS,
    is_operator_dict,
    matches,
    paginate,
    project,
    sort_documents,
)
from app.shared.utils.datetime import parse_datetime

logger = logging.getLogger(__name__)

_FIELD_OPS: dict[str, str] = {
    "$eq": "EQUAL",
    "$gt": "GREATER_THAN",
    "$gte": "GREATER_THAN_OR_EQUAL",
    "$lt": "LESS_THAN",
    "$lte": "LESS_THAN_OR_EQUAL",
    "$in": "IN",
}
# Firestore caps IN / ARRAY_CONTAINS_ANY disjunctions.
_MAX_IN_VALUES = 30


class _Untranslatable(Exception):
    """The filter has no exact Firestore equivalent; evaluate it client-side."""


def _field_filter(field_path: str, op: str, value: Any) -> dict[str, Any]:
    return {
        "fieldFilter": {
            "field": {"fieldPath": field_path},
            "op": op,
            "value": encode_value(value),
        }
    }


def _composite(op: str, filters: list[dict[str, Any]]) -> dict[str, Any]:
    if len(filters) == 1:
        return filters[0]
    return {"compositeFilter": {"op": op, "filters": filters}}


def _operand(name: str, value: Any, datetime_fields: Sequence[str]) -> Any:
    # Firestore null != missing, while filters treat a missing field as None.
    if value is None or isinstance(value, (dict, list)):
        raise _Untranslatable
    if name in datetime_fields:
        try:
            return parse_datetime(value)
        except ValueError as e:
            raise _Untranslatable from e
    return value


def _condition(
    name: str,
    op: str,
    operand: Any,
    array_fields: Sequence[str],
    datetime_fields: Sequence[str],
) -> dict[str, Any]:
    if op not in COMPARISON_OPERATORS:
        raise InvalidQueryError(f"unsupported operator {op}")
    # $ne / $nin / $exists differ from Firestore on missing fields.
    if op not in _FIELD_OPS:
        raise _Untranslatable
    is_array = name in array_fields
    if op == "$in":
        if not isinstance(operand, list):
            raise InvalidQueryError("$in/$nin expects a list")
        if not operand or len(operand) > _MAX_IN_VALUES:
            raise _Untranslatable
        values = [_operand(name, v, datetime_fields) for v in operand]
        return _field_filter(name, "ARRAY_CONTAINS_ANY" if is_array else "IN", values)
    if is_array:
        if op != "$eq":
            raise _Untranslatable
        return _field_filter(name, "ARRAY_CONTAINS", _operand(name, operand, datetime_fields))
    return _field_filter(name, _FIELD_OPS[op], _operand(name, operand, datetime_fields))


def build_filter(
    where: Mapping[str, Any] | None,
    *,
    array_fields: Sequence[str] = (),
    datetime_fields: Sequence[str] = (),
) -> dict[str, Any] | None:
    """Translate a where filter into a Firestore structuredQuery filter.

    Returns None for an empty filter.

    Raises:
        InvalidQueryError: the filter is malformed.
        _Untranslatable: the filter is valid but Firestore cannot express it exactly.
    """
    if not where:
        return None
    if not isinstance(where, Mapping):
        raise InvalidQueryError("where must be a JSON object")
    parts: list[dict[str, Any]] = []
    for key, condition in where.items():
        if key in LOGICAL_OPERATORS:
            if not isinstance(condition, list) or not condition:
                raise InvalidQueryError(f"{key} expects a non-empty list")
            subs = [
                build_filter(sub, array_fields=array_fields, datetime_fields=datetime_fields)
                for sub in condition
            ]
            if any(sub is None for sub in subs):
                if key == "$or":
                    raise _Untranslatable
                subs = [sub for sub in subs if sub is not None]
            if subs:
                parts.append(_composite("AND" if key == "$and" else "OR", subs))
        elif key.startswith("$"):
            raise InvalidQueryError(f"unsupported operator {key}")
        else:
            ops = condition if is_operator_dict(condition) else {"$eq": condition}
            for op, operand in ops.items():
                parts.append(_condition(key, op, operand, array_fields, datetime_fields))
    if not parts:
        return None
    return _composite("AND", parts)


@dataclass
class _TxState:
    transaction: str
    # (collection, doc_id) -> final document, or None for a delete
    pending: dict[tuple[str, str], dict[str, Any] | None] = field(default_factory=dict)


_current_tx: ContextVar[_TxState | None] = ContextVar("firestore_transaction", default=None)


class FirestoreEntityStore:
    """IEntityStore over the Firestore REST API."""

    def __init__(
        self,
        client: FirestoreRESTClient,
        *,
        unique_fields: Mapping[str, Sequence[str]] | None = None,
        array_fields: Mapping[str, Sequence[str]] | None = None,
        datetime_fields: Mapping[str, Sequence[str]] | None = None,
        max_write_retries: int = 5,
    ) -> None:
        self._client = client
        self._unique_fields = dict(unique_fields or {})
        self._array_fields = dict(array_fields or {})
        self._datetime_fields = dict(datetime_fields or {})
        self._max_write_retries = max(1, max_write_retries)

    async def open(self) -> None:
        logger.info("Firestore entity store ready (project %s)", self._client.project_id)

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Firestore HTTP client closed")

    # ---- helpers ----

    @asynccontextmanager
    async def _errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except (FirestoreError, httpx.HTTPError) as e:
            logger.error("Firestore %s failed: %s", operation, e)
            raise StoreUnavailableError(operation, str(e)) from e

    @staticmethod
    def _with_id(snapshot: DocumentSnapshot) -> dict[str, Any]:
        return {**snapshot.to_dict(), "id": snapshot.id}

    def _structured_query(
        self, collection: str, where: Filter | None
    ) -> tuple[dict[str, Any], bool]:
        """Return (structuredQuery, exact). exact=False means filter client-side."""
        query: dict[str, Any] = {"from": [{"collectionId": collection}]}
        try:
            flt = build_filter(
                where,
                array_fields=self._array_fields.get(collection, ()),
                datetime_fields=self._datetime_fields.get(collection, ()),
            )
        except _Untranslatable:
            return query, False
        if flt is not None:
            query["where"] = flt
        return query, True

    async def _matching(
        self, collection: str, where: Filter | None, skip: int = 0, limit: int = 0
    ) -> tuple[list[dict[str, Any]], bool]:
        """Return (documents matching where, whether skip/limit were applied)."""
        tx = _current_tx.get()
        query, exact = self._structured_query(collection, where)
        paged = exact and tx is None
        if paged:
            if skip:
                query["offset"] = skip
            if limit:
                query["limit"] = limit
        try:
            snapshots = await self._client.run_query(
                query, transaction=tx.transaction if tx else None
            )
        except PreconditionFailedError as e:
            # Usually a composite filter that needs an index nobody created.
            logger.warning(
                "Firestore query on %s rejected (%s); scanning the collection instead",
                collection,
                e,
            )
            query, exact, paged = {"from": [{"collectionId": collection}]}, False, False
            snapshots = await self._client.run_query(
                query, transaction=tx.transaction if tx else None
            )
        docs = {s.id: self._with_id(s) for s in snapshots}
        if tx is not None:
            for (coll, doc_id), doc in tx.pending.items():
                if coll != collection:
                    continue
                if doc is None:
                    docs.pop(doc_id, None)
                else:
                    docs[doc_id] = copy.deepcopy(doc)
            exact = False
        out = list(docs.values())
        if not exact:
            out = [d for d in out if matches(d, where)]
        return out, paged

    def _guard_id(self, collection: str, name: str, value: Any) -> str:
        return hashlib.sha256(f"{collection}/{name}/{value}".encode()).hexdigest()

    def _update_write(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        precondition: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        write: dict[str, Any] = {
            "update": {
                "name": self._client.document_name(collection, doc_id),
                "fields": encode_fields(dict(data)),
            }
        }
        if precondition:
            write["currentDocument"] = precondition
        return write

    def _delete_write(
        self, collection: str, doc_id: str, precondition: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        write: dict[str, Any] = {"delete": self._client.document_name(collection, doc_id)}
        if precondition:
            write["currentDocument"] = precondition
        return write

    def _mutation_write(
        self, collection: str, doc_id: str, mutation: Mutation, update_time: str | None
    ) -> dict[str, Any]:
        write = self._update_write(collection, doc_id, mutation.set_fields)
        write["updateMask"] = {"fieldPaths": list(mutation.set_fields)}
        transforms = [
            {"fieldPath": name, "appendMissingElements": {"values": [encode_value(v)]}}
            for name, v in mutation.add_to_set.items()
        ]
        transforms += [
            {"fieldPath": name, "removeAllFromArray": {"values": [encode_value(v)]}}
            for name, v in mutation.pull.items()
        ]
        if transforms:
            write["updateTransforms"] = transforms
        if update_time:
            write["currentDocument"] = {"updateTime": update_time}
        return write

    def _unique_changes(
        self,
        collection: str,
        old: Mapping[str, Any] | None,
        new: Mapping[str, Any] | None,
    ) -> list[tuple[str, Any, Any]]:
        """(field, old value, new value) for each unique field whose value changes."""
        changes = []
        for name in self._unique_fields.get(collection, ()):
            old_value = old.get(name) if old else None
            new_value = new.get(name) if new else None
            if old_value != new_value:
                changes.append((name, old_value, new_value))
        return changes

    def _unique_writes(
        self,
        collection: str,
        doc_id: str,
        old: Mapping[str, Any] | None,
        new: Mapping[str, Any] | None,
    ) -> list[dict[str, Any]]:
        writes = []
        for name, old_value, new_value in self._unique_changes(collection, old, new):
            if old_value is not None:
                writes.append(
                    self._delete_write(
                        COLLECTION_UNIQUE_KEYS, self._guard_id(collection, name, old_value)
                    )
                )
            if new_value is not None:
                writes.append(
                    self._update_write(
                        COLLECTION_UNIQUE_KEYS,
                        self._guard_id(collection, name, new_value),
                        {"collection": collection, "field": name, "value": new_value, "doc_id": doc_id},
                        precondition={"exists": False},
                    )
                )
        return writes

    async def _duplicate(
        self, collection: str, doc_id: str, data: Mapping[str, Any], *, check_id: bool
    ) -> DuplicateKeyError:
        """Work out which key an ALREADY_EXISTS commit collided on."""
        if check_id and await self._client.get_document(collection, doc_id) is not None:
            return DuplicateKeyError(collection, "id", doc_id)
        names = self._unique_fields.get(collection, ())
        for name in names:
            value = data.get(name)
            if value is None:
                continue
            guard = await self._client.get_document(
                COLLECTION_UNIQUE_KEYS, self._guard_id(collection, name, value)
            )
            if guard is not None and guard.to_dict().get("doc_id") != doc_id:
                return DuplicateKeyError(collection, name, value)
        if names:
            return DuplicateKeyError(collection, names[0], data.get(names[0]))
        return DuplicateKeyError(collection, "id", doc_id)

    async def _try_commit(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        writes: list[dict[str, Any]],
        *,
        check_id: bool = False,
    ) -> bool:
        """Commit writes; False when an updateTime precondition lost a race."""
        try:
            await self._client.commit(writes)
        except PreconditionFailedError:
            logger.debug("Write conflict on %s/%s; retrying", collection, doc_id)
            return False
        except DocumentExistsError:
            raise await self._duplicate(collection, doc_id, data, check_id=check_id) from None
        return True

    async def _tx_get(self, tx: _TxState, collection: str, doc_id: str) -> dict[str, Any] | None:
        key = (collection, doc_id)
        if key in tx.pending:
            doc = tx.pending[key]
            return copy.deepcopy(doc) if doc is not None else None
        snapshot = await self._client.get_document(
            collection, doc_id, transaction=tx.transaction
        )
        return self._with_id(snapshot) if snapshot is not None else None

    async def _tx_claim_unique(
        self,
        tx: _TxState,
        collection: str,
        doc_id: str,
        old: Mapping[str, Any] | None,
        new: Mapping[str, Any] | None,
    ) -> None:
        for name, old_value, new_value in self._unique_changes(collection, old, new):
            if new_value is not None:
                guard_id = self._guard_id(collection, name, new_value)
                guard = await self._tx_get(tx, COLLECTION_UNIQUE_KEYS, guard_id)
                if guard is not None and guard.get("doc_id") != doc_id:
                    raise DuplicateKeyError(collection, name, new_value)
                tx.pending[(COLLECTION_UNIQUE_KEYS, guard_id)] = {
                    "collection": collection,
                    "field": name,
                    "value": new_value,
                    "doc_id": doc_id,
                }
            if old_value is not None:
                tx.pending[(COLLECTION_UNIQUE_KEYS, self._guard_id(collection, name, old_value))] = None

    # ---- IEntityStore ----

    async def find_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        async with self._errors("find_by_id"):
            tx = _current_tx.get()
            if tx is not None:
                return await self._tx_get(tx, collection, doc_id)
            snapshot = await self._client.get_document(collection, doc_id)
            return self._with_id(snapshot) if snapshot is not None else None

    async def find(
        self,
        collection: str,
        where: Filter | None = None,
        select: Mapping[str, int] | None = None,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        async with self._errors("find"):
            if sort:
                docs, _ = await self._matching(collection, where)
                docs = paginate(sort_documents(docs, sort), skip, limit)
            else:
                docs, paged = await self._matching(collection, where, skip, limit)
                if not paged:
                    docs = paginate(docs, skip, limit)
            return [project(d, select) for d in docs]

    async def count(self, collection: str, where: Filter | None = None) -> int:
        async with self._errors("count"):
            query, exact = self._structured_query(collection, where)
            if exact and _current_tx.get() is None:
                try:
                    return await self._client.run_count(query)
                except PreconditionFailedError:
                    logger.warning("Firestore count on %s rejected; counting client-side", collection)
            docs, _ = await self._matching(collection, where)
            return len(docs)

    async def create(self, collection: str, record: Mapping[str, Any]) -> dict[str, Any]:
        data = dict(record)
        doc_id = data["id"]
        async with self._errors("create"):
            tx = _current_tx.get()
            if tx is not None:
                if await self._tx_get(tx, collection, doc_id) is not None:
                    raise DuplicateKeyError(collection, "id", doc_id)
                await self._tx_claim_unique(tx, collection, doc_id, None, data)
                tx.pending[(collection, doc_id)] = copy.deepcopy(data)
                return copy.deepcopy(data)
            writes = [
                self._update_write(collection, doc_id, data, precondition={"exists": False}),
                *self._unique_writes(collection, doc_id, None, data),
            ]
            try:
                await self._client.commit(writes)
            except DocumentExistsError:
                raise await self._duplicate(collection, doc_id, data, check_id=True) from None
            return copy.deepcopy(data)

    async def replace_one(
        self, collection: str, doc_id: str, record: Mapping[str, Any]
    ) -> bool:
        data = {**record, "id": doc_id}
        async with self._errors("replace_one"):
            tx = _current_tx.get()
            if tx is not None:
                current = await self._tx_get(tx, collection, doc_id)
                if current is None:
                    return False
                await self._tx_claim_unique(tx, collection, doc_id, current, data)
                tx.pending[(collection, doc_id)] = copy.deepcopy(data)
                return True
            for _ in range(self._max_write_retries):
                snapshot = await self._client.get_document(collection, doc_id)
                if snapshot is None:
                    return False
                writes = [
                    self._update_write(
                        collection, doc_id, data, precondition={"updateTime": snapshot.update_time}
                    ),
                    *self._unique_writes(collection, doc_id, self._with_id(snapshot), data),
                ]
                if await self._try_commit(collection, doc_id, data, writes):
                    return True
            raise StoreConflictError(collection, doc_id, self._max_write_retries)

    async def conditional_update_one(
        self,
        collection: str,
        doc_id: str,
        predicate: Filter,
        mutation: Mutation,
    ) -> bool:
        async with self._errors("conditional_update_one"):
            tx = _current_tx.get()
            if tx is not None:
                current = await self._tx_get(tx, collection, doc_id)
                if current is None or not matches(current, predicate):
                    return False
                updated = mutation.apply_to(current)
                await self._tx_claim_unique(tx, collection, doc_id, current, updated)
                tx.pending[(collection, doc_id)] = updated
                return True
            for _ in range(self._max_write_retries):
                snapshot = await self._client.get_document(collection, doc_id)
                if snapshot is None:
                    return False
                current = self._with_id(snapshot)
                if not matches(current, predicate):
                    return False
                if mutation.is_empty():
                    return True
                updated = mutation.apply_to(current)
                writes = [
                    self._mutation_write(collection, doc_id, mutation, snapshot.update_time),
                    *self._unique_writes(collection, doc_id, current, updated),
                ]
                if await self._try_commit(collection, doc_id, updated, writes):
                    return True
            raise StoreConflictError(collection, doc_id, self._max_write_retries)

    async def update_many(
        self, collection: str, predicate: Filter, mutation: Mutation
    ) -> int:
        async with self._errors("update_many"):
            docs, _ = await self._matching(collection, predicate)
        matched = 0
        for doc in docs:
            if await self.conditional_update_one(collection, doc["id"], predicate, mutation):
                matched += 1
        return matched

    async def delete_one(self, collection: str, doc_id: str) -> bool:
        async with self._errors("delete_one"):
            tx = _current_tx.get()
            if tx is not None:
                current = await self._tx_get(tx, collection, doc_id)
                if current is None:
                    return False
                await self._tx_claim_unique(tx, collection, doc_id, current, None)
                tx.pending[(collection, doc_id)] = None
                return True
            for _ in range(self._max_write_retries):
                snapshot = await self._client.get_document(collection, doc_id)
                if snapshot is None:
                    return False
                writes = [
                    self._delete_write(
                        collection, doc_id, precondition={"updateTime": snapshot.update_time}
                    ),
                    *self._unique_writes(collection, doc_id, self._with_id(snapshot), None),
                ]
                if await self._try_commit(collection, doc_id, {}, writes):
                    return True
            raise StoreConflictError(collection, doc_id, self._max_write_retries)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if _current_tx.get() is not None:
            # Nested: join the outer transaction.
            yield
            return
        async with self._errors("begin_transaction"):
            tx = _TxState(await self._client.begin_transaction())
        token = _current_tx.set(tx)
        try:
            yield
        except BaseException:
            await self._rollback(tx)
            raise
        finally:
            _current_tx.reset(token)
        writes = [
            self._delete_write(coll, doc_id)
            if doc is None
            else self._update_write(coll, doc_id, doc)
            for (coll, doc_id), doc in tx.pending.items()
        ]
        if not writes:
            await self._rollback(tx)
            return
        async with self._errors("commit"):
            try:
                await self._client.commit(writes, transaction=tx.transaction)
            except (TransactionAbortedError, PreconditionFailedError) as e:
                raise StoreConflictError("transaction", "commit", 1) from e
        logger.debug("Firestore transaction committed (%d writes)", len(writes))

    async def _rollback(self, tx: _TxState) -> None:
        try:
            await self._client.rollback(tx.transaction)
        except (FirestoreError, httpx.HTTPError) as e:
            logger.warning("Firestore rollback failed: %s", e)
