"""Entity store port: the document storage contract the sync engine relies on.

The only capability the engine strictly needs is an atomic, predicate-guarded
single-document update (predicate + set, or predicate + set-add/set-remove).
Everything else is ordinary document CRUD.

Filters ("where" / predicates) are a small Mongo-style subset:
    {"completed": False}                       equality
    {"pending_task_ids": "t1"}                 on an array field: contains
    {"assigned_user_id": {"$in": ["", "u1"]}}  operators: $eq $ne $gt $gte
                                               $lt $lte $in $nin $exists
    {"$or": [{...}, {...}]}, {"$and": [...]}   boolean composition
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Protocol

Filter = Mapping[str, Any]
SortSpec = Mapping[str, int]


@dataclass(frozen=True)
class Mutation:
    """Field changes applied by a guarded write.

    set_fields overwrites values; add_to_set appends a value to an array field
    only if absent; pull removes every occurrence of a value from an array
    field. The array operations have set semantics, so applying the same
    Mutation twice yields the same document as applying it once.
    """

    set_fields: Mapping[str, Any] = field(default_factory=dict)
    add_to_set: Mapping[str, Any] = field(default_factory=dict)
    pull: Mapping[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.set_fields or self.add_to_set or self.pull)

    def apply_to(self, doc: Mapping[str, Any]) -> dict[str, Any]:
        """Return a copy of doc with this mutation applied."""
        out = dict(doc)
        out.update(self.set_fields)
        for name, value in self.add_to_set.items():
            current = list(out.get(name) or [])
            if value not in current:
                current.append(value)
            out[name] = current
        for name, value in self.pull.items():
            out[name] = [v for v in (out.get(name) or []) if v != value]
        return out


class IEntityStore(Protocol):
    """Protocol for document store backends (in-memory, Firestore).

    Documents are plain dicts carrying their own "id". Methods that target a
    single document take the id explicitly; a missing document is reported
    as None / False / 0, never as an exception.
    """

    async def open(self) -> None:
        """Acquire connections/resources. Called once at application startup."""
        ...

    async def close(self) -> None:
        """Release connections/resources. Called once at application shutdown."""
        ...

    async def find_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return the document or None."""
        ...

    async def find(
        self,
        collection: str,
        where: Filter | None = None,
        select: Mapping[str, int] | None = None,
        sort: SortSpec | None = None,
        skip: int = 0,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        """Return matching documents (limit 0 = unlimited). select is a projection ({field: 1|0})."""
        ...

    async def count(self, collection: str, where: Filter | None = None) -> int:
        """Return the number of matching documents."""
        ...

    async def create(self, collection: str, record: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a new document; raise DuplicateKeyError on id or unique-field collision."""
        ...

    async def replace_one(
        self, collection: str, doc_id: str, record: Mapping[str, Any]
    ) -> bool:
        """Overwrite an existing document; False if it does not exist.

        Raises DuplicateKeyError on a unique-field collision with another document.
        """
        ...

    async def conditional_update_one(
        self,
        collection: str,
        doc_id: str,
        predicate: Filter,
        mutation: Mutation,
    ) -> bool:
        """Atomically apply mutation if the document exists and matches predicate.

        Returns True when the document matched (even if the mutation changed
        nothing), False when it is missing or did not match.
        """
        ...

    async def update_many(
        self, collection: str, predicate: Filter, mutation: Mutation
    ) -> int:
        """Apply mutation to every matching document (each write guarded); return matched count."""
        ...

    async def delete_one(self, collection: str, doc_id: str) -> bool:
        """Delete the document; False if it did not exist."""
        ...

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Group the calls made inside the block into one atomic unit.

        On normal exit the writes are committed together; if the block
        raises, none of them take effect.
        """
        ...

