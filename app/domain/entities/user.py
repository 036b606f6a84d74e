"""User domain entity.

pending_task_ids is derived state: the sync engine keeps it in step with the
tasks that name this user as assignee.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.exceptions import ValidationException
from app.domain.value_objects.core import EmailAddress, RecordId
from app.shared.utils.datetime import ensure_utc, utc_now


@dataclass
class UserEntity:
    """Typed user record as stored in the entity store."""

    id: str
    name: str
    email: str
    pending_task_ids: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "pending_task_ids": list(self.pending_task_ids),
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> UserEntity:
        return cls(
            id=doc["id"],
            name=doc.get("name", ""),
            email=doc.get("email", ""),
            pending_task_ids=unique_task_ids(doc.get("pending_task_ids") or []),
            created_at=ensure_utc(doc.get("created_at")) or utc_now(),
        )


def unique_task_ids(ids: Iterable[str]) -> list[str]:
    """Deduplicate ids keeping first-seen order (the set is unordered; order is cosmetic)."""
    seen: set[str] = set()
    out: list[str] = []
    for task_id in ids:
        task_id = str(task_id)
        if task_id not in seen:
            seen.add(task_id)
            out.append(task_id)
    return out


def validate_user_fields(name: str | None, email: str | None) -> tuple[str, str]:
    """Check the required user fields; return (name, email) normalized.

    Raises:
        ValidationException: name or email is blank, or email is malformed.
    """
    if not name or not name.strip():
        raise ValidationException("Name and email are required", field="name")
    if not email or not email.strip():
        raise ValidationException("Name and email are required", field="email")
    try:
        normalized = EmailAddress.normalize(email)
    except ValueError as e:
        raise ValidationException(str(e), field="email") from e
    return name.strip(), normalized.value


def validate_task_ids(ids: Iterable[str]) -> list[str]:
    """Deduplicate ids and reject any that are not well-formed.

    Raises:
        ValidationException: an id is malformed.
    """
    out = unique_task_ids(ids)
    for task_id in out:
        if not RecordId.is_valid(task_id):
            raise ValidationException(
                f"Invalid id format: {task_id}", field="pending_task_ids"
            )
    return out
