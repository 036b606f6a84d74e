"""DTOs for user use cases (no dependency on the store)."""

from dataclasses import dataclass


@dataclass(frozen=True)
class UserInput:
    """Caller-supplied user fields for create and update (full replacement)."""

    name: str | None
    email: str | None
    pending_task_ids: tuple[str, ...] = ()
