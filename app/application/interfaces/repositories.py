"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
All types reference domain entities only; no infrastructure imports.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from app.application.dtos.query import ListQuery
    from app.domain.entities import TaskEntity, UserEntity


class ITaskRepository(Protocol):
    """Protocol for task repository (DIP)."""

    async def get_by_id(self, task_id: str) -> TaskEntity | None:
        """Return task by ID."""

    async def get_by_ids(self, task_ids: list[str]) -> list[TaskEntity]:
        """Return the tasks that exist among task_ids (missing ids are skipped)."""

    async def get_document(
        self, task_id: str, select: Mapping[str, int] | None = None
    ) -> dict[str, Any] | None:
        """Return the raw (optionally projected) task document for read endpoints."""

    async def list(self, query: ListQuery) -> list[dict[str, Any]]:
        """Return task documents matching a list query."""

    async def count(self, query: ListQuery) -> int:
        """Return the number of tasks matching a list query's filter."""

    async def create(self, task: TaskEntity) -> TaskEntity:
        """Persist a new task."""

    async def save(self, task: TaskEntity) -> bool:
        """Overwrite an existing task; False if it no longer exists."""

    async def delete(self, task_id: str) -> bool:
        """Delete a task; False if it did not exist."""


class IUserRepository(Protocol):
    """Protocol for user repository (DIP)."""

    async def get_by_id(self, user_id: str) -> UserEntity | None:
        """Return user by ID."""

    async def get_by_email(self, email: str) -> UserEntity | None:
        """Return user by normalized email."""

    async def get_document(
        self, user_id: str, select: Mapping[str, int] | None = None
    ) -> dict[str, Any] | None:
        """Return the raw (optionally projected) user document for read endpoints."""

    async def list(self, query: ListQuery) -> list[dict[str, Any]]:
        """Return user documents matching a list query."""

    async def count(self, query: ListQuery) -> int:
        """Return the number of users matching a list query's filter."""

    async def create(self, user: UserEntity) -> UserEntity:
        """Persist a new user; raise DuplicateEmailException on email collision."""

    async def save(self, user: UserEntity) -> bool:
        """Overwrite an existing user; raise DuplicateEmailException on email collision."""

    async def delete(self, user_id: str) -> bool:
        """Delete a user; False if it did not exist."""
