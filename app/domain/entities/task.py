"""Task domain entity.

A task optionally names one assigned user. The assignee name is a snapshot
copied at assignment time; it is not refreshed when the user is renamed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.exceptions import ValidationException
from app.shared.utils.datetime import ensure_utc, utc_now

UNASSIGNED_USER_ID = ""
UNASSIGNED_USER_NAME = "unassigned"


@dataclass
class TaskEntity:
    """Typed task record as stored in the entity store."""

    id: str
    name: str
    deadline: datetime
    description: str = ""
    completed: bool = False
    assigned_user_id: str = UNASSIGNED_USER_ID
    assigned_user_name: str = UNASSIGNED_USER_NAME
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_assigned(self) -> bool:
        return bool(self.assigned_user_id)

    @property
    def is_pending(self) -> bool:
        """True when the task belongs in its assignee's pending set."""
        return self.is_assigned and not self.completed

    def assign(self, user_id: str, user_name: str) -> None:
        """Point the task at user_id, snapshotting the user's current name."""
        if not user_id:
            self.unassign()
            return
        self.assigned_user_id = user_id
        self.assigned_user_name = user_name

    def unassign(self) -> None:
        self.assigned_user_id = UNASSIGNED_USER_ID
        self.assigned_user_name = UNASSIGNED_USER_NAME

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "deadline": self.deadline,
            "completed": self.completed,
            "assigned_user_id": self.assigned_user_id,
            "assigned_user_name": self.assigned_user_name,
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> TaskEntity:
        return cls(
            id=doc["id"],
            name=doc.get("name", ""),
            description=doc.get("description") or "",
            deadline=ensure_utc(doc.get("deadline")),
            completed=bool(doc.get("completed", False)),
            assigned_user_id=doc.get("assigned_user_id") or UNASSIGNED_USER_ID,
            assigned_user_name=doc.get("assigned_user_name") or UNASSIGNED_USER_NAME,
            created_at=ensure_utc(doc.get("created_at")) or utc_now(),
        )


def validate_task_fields(name: str | None, deadline: datetime | None) -> tuple[str, datetime]:
    """Check the required task fields; return (name, deadline) normalized.

    Raises:
        ValidationException: name is blank or deadline is missing.
    """
    if not name or not name.strip():
        raise ValidationException("Must include name and deadline", field="name")
    if deadline is None:
        raise ValidationException("Must include name and deadline", field="deadline")
    if not isinstance(deadline, datetime):
        raise ValidationException("Deadline must be a timestamp", field="deadline")
    return name.strip(), ensure_utc(deadline)
