"""Domain value objects and shared value types."""

from app.domain.value_objects.core import EmailAddress, RecordId

__all__ = [
    "EmailAddress",
    "RecordId",
]
