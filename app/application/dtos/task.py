"""DTOs for task use cases (no dependency on the store)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TaskInput:
    """Caller-supplied task fields for create and update (full replacement).

    assigned_user_name is deliberately absent: it is always copied from the
    referenced user, never taken from the caller.
    """

    name: str | None
    deadline: datetime | None
    description: str = ""
    completed: bool = False
    assigned_user_id: str = ""
