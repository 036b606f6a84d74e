"""Infrastructure exceptions for entity store operations.

Store errors extend TrackerException so presentation can map them
to HTTP responses consistently.
"""

from typing import Any

from app.domain.exceptions import TrackerException


class StoreException(TrackerException):
    """Base exception for entity store operations."""


class DuplicateKeyError(StoreException):
    """Insert or replace collided with an existing id or unique field value."""

    def __init__(self, collection: str, field: str, value: Any) -> None:
        super().__init__(
            f"Duplicate value for {collection}.{field}",
            "DUPLICATE_KEY",
            {"collection": collection, "field": field, "value": value},
        )
        self.collection = collection
        self.field = field
        self.value = value


class InvalidQueryError(StoreException):
    """A where/select/sort expression uses an unsupported operator or shape."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid query: {reason}", "INVALID_QUERY", {"reason": reason})


class StoreConflictError(StoreException):
    """A guarded write lost every optimistic-concurrency retry, or a transaction aborted."""

    def __init__(self, collection: str, doc_id: str, attempts: int) -> None:
        super().__init__(
            f"Concurrent modification of {collection}/{doc_id}; retry.",
            "STORE_CONFLICT",
            {"collection": collection, "doc_id": doc_id, "attempts": attempts},
        )


class StoreUnavailableError(StoreException):
    """The backend rejected or failed a request (network, auth, quota)."""

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(
            f"Entity store request failed: {operation}",
            "STORE_UNAVAILABLE",
            {"operation": operation, "reason": reason},
        )
