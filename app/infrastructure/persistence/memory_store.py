"""In-process entity store (default backend for development and tests).

Every operation runs under one asyncio.Lock, so each call, including the
read-check-write of conditional_update_one, is atomic with respect to
other coroutines. transaction() holds the same lock for the whole block and
restores a snapshot if the block raises.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

from app.application.interfaces.store import Filter, Mutation, SortSpec
from app.infrastructure.exceptions import DuplicateKeyError
from app.infrastructure.persistence.filters import matches, paginate, project, sort_documents

logger = logging.getLogger(__name__)

# Set while the current task runs inside transaction(); operations then skip
# re-acquiring the (non-reentrant) store lock.
_in_transaction: ContextVar[bool] = ContextVar("memory_store_in_transaction", default=False)


class InMemoryEntityStore:
    """Dict-of-dicts document store implementing IEntityStore."""

    def __init__(
        self,
        unique_fields: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._unique_fields = dict(unique_fields or {})
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        logger.info("In-memory entity store ready")

    async def close(self) -> None:
        """Drop all data. Nothing else to release."""
        self._collections.clear()

    # ---- low-level helpers ----

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        if _in_transaction.get():
            yield
            return
        async with self._lock:
            yield

    def _coll(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _check_unique(
        self, collection: str, record: Mapping[str, Any], exclude_id: str | None
    ) -> None:
        for name in self._unique_fields.get(collection, ()):
            value = record.get(name)
            if value is None:
                continue
            for doc_id, doc in self._coll(collection).items():
                if doc_id != exclude_id and doc.get(name) == value:
                    raise DuplicateKeyError(collection, name, value)

    # ---- IEntityStore ----

    async def find_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        async with self._guard():
            doc = self._coll(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def find(
        self,
        collection: str,
        where: Filter | None = None,
        select: Mapping[str, int] | None = None,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        async with self._guard():
            docs = [d for d in self._coll(collection).values() if matches(d, where)]
            docs = paginate(sort_documents(docs, sort), skip, limit)
            return [copy.deepcopy(project(d, select)) for d in docs]

    async def count(self, collection: str, where: Filter | None = None) -> int:
        async with self._guard():
            return sum(1 for d in self._coll(collection).values() if matches(d, where))

    async def create(self, collection: str, record: Mapping[str, Any]) -> dict[str, Any]:
        doc_id = record["id"]
        async with self._guard():
            coll = self._coll(collection)
            if doc_id in coll:
                raise DuplicateKeyError(collection, "id", doc_id)
            self._check_unique(collection, record, exclude_id=None)
            coll[doc_id] = copy.deepcopy(dict(record))
            return copy.deepcopy(coll[doc_id])

    async def replace_one(
        self, collection: str, doc_id: str, record: Mapping[str, Any]
    ) -> bool:
        async with self._guard():
            coll = self._coll(collection)
            if doc_id not in coll:
                return False
            self._check_unique(collection, record, exclude_id=doc_id)
            coll[doc_id] = copy.deepcopy({**record, "id": doc_id})
            return True

    async def conditional_update_one(
        self,
        collection: str,
        doc_id: str,
        predicate: Filter,
        mutation: Mutation,
    ) -> bool:
        async with self._guard():
            coll = self._coll(collection)
            doc = coll.get(doc_id)
            if doc is None or not matches(doc, predicate):
                return False
            updated = mutation.apply_to(doc)
            if mutation.set_fields:
                self._check_unique(collection, updated, exclude_id=doc_id)
            coll[doc_id] = copy.deepcopy(updated)
            return True

    async def update_many(
        self, collection: str, predicate: Filter, mutation: Mutation
    ) -> int:
        async with self._guard():
            coll = self._coll(collection)
            matched = [doc_id for doc_id, doc in coll.items() if matches(doc, predicate)]
            for doc_id in matched:
                coll[doc_id] = copy.deepcopy(mutation.apply_to(coll[doc_id]))
            return len(matched)

    async def delete_one(self, collection: str, doc_id: str) -> bool:
        async with self._guard():
            return self._coll(collection).pop(doc_id, None) is not None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if _in_transaction.get():
            # Nested: the outer block already owns the lock and the snapshot.
            yield
            return
        async with self._lock:
            snapshot = copy.deepcopy(self._collections)
            token = _in_transaction.set(True)
            try:
                yield
            except BaseException:
                self._collections = snapshot
                logger.debug("In-memory transaction rolled back")
                raise
            finally:
                _in_transaction.reset(token)
