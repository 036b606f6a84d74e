"""Task operations: create, get, list, count, update, delete.

Each write persists the task first, then hands the counterpart changes to the
sync engine (own-entity write, then reconciliation).
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import replace
from typing import Any

from app.application.dtos.query import ListQuery
from app.application.dtos.task import TaskInput
from app.application.interfaces.repositories import ITaskRepository, IUserRepository
from app.application.services.sync_engine import (
    AddPending,
    PurgePending,
    RemovePending,
    SyncEngine,
    SyncIntent,
)
from app.domain.entities import TaskEntity, validate_task_fields
from app.domain.exceptions import (
    InvalidReferenceException,
    ResourceNotFoundException,
    ValidationException,
)
from app.domain.value_objects.core import RecordId
from app.shared.utils.generators import generate_cuid


def plan_task_intents(prior: TaskEntity | None, new: TaskEntity | None) -> list[SyncIntent]:
    """Return the pending-set intents for a task transition (None = absent).

    Updates and deletes end with a PurgePending so copies of the id left in
    other users' pending sets are cleared whenever the task is written.
    """
    if new is None:
        if prior is None:
            return []
        intents: list[SyncIntent] = []
        if prior.is_assigned:
            intents.append(RemovePending(prior.assigned_user_id, prior.id))
        intents.append(PurgePending(prior.id))
        return intents
    if prior is None:
        return [AddPending(new.assigned_user_id, new.id)] if new.is_pending else []

    before, after = prior.assigned_user_id, new.assigned_user_id
    intents = []
    if before and (before != after or not new.is_pending):
        intents.append(RemovePending(before, new.id))
    # Re-asserted on every write; the guard makes it a no-op when present.
    if new.is_pending:
        intents.append(AddPending(after, new.id))
    intents.append(PurgePending(new.id, keep_user_id=after if new.is_pending else ""))
    return intents


class TaskService:
    """Task lifecycle. Resolves the assignee and keeps user pending sets in step."""

    def __init__(
        self,
        task_repo: ITaskRepository,
        user_repo: IUserRepository,
        sync_engine: SyncEngine,
        *,
        transaction: Callable[[], AbstractAsyncContextManager[None]] | None = None,
        repair_on_read: bool = False,
    ) -> None:
        self.task_repo = task_repo
        self.user_repo = user_repo
        self.sync = sync_engine
        self._transaction = transaction
        self.repair_on_read = repair_on_read

    def _unit(self) -> AbstractAsyncContextManager[Any]:
        return self._transaction() if self._transaction else nullcontext()

    async def _resolve_assignee(self, task: TaskEntity, user_id: str) -> None:
        """Point task at user_id (copying the name), or clear it for an empty id."""
        if not user_id:
            task.unassign()
            return
        if not RecordId.is_valid(user_id):
            raise ValidationException(f"Invalid id format: {user_id}", field="assigned_user_id")
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise InvalidReferenceException("user", user_id, "assigned_user_id")
        task.assign(user.id, user.name)

    async def create_task(self, data: TaskInput) -> TaskEntity:
        """Create a task; Add it to the assignee's pending set when incomplete."""
        name, deadline = validate_task_fields(data.name, data.deadline)
        async with self._unit():
            task = TaskEntity(
                id=generate_cuid(),
                name=name,
                deadline=deadline,
                description=data.description or "",
                completed=data.completed,
            )
            await self._resolve_assignee(task, data.assigned_user_id)
            created = await self.task_repo.create(task)
            await self.sync.apply_all(plan_task_intents(None, created))
        return created

    async def get_task(
        self, task_id: str, select: dict[str, int] | None = None
    ) -> dict[str, Any]:
        """Return the task document; raise ResourceNotFoundException if missing."""
        if self.repair_on_read:
            task = await self.task_repo.get_by_id(task_id)
            if task is None:
                raise ResourceNotFoundException("task", task_id)
            await self.sync.repair_task(task)
        doc = await self.task_repo.get_document(task_id, select)
        if doc is None:
            raise ResourceNotFoundException("task", task_id)
        return doc

    async def list_tasks(self, query: ListQuery) -> list[dict[str, Any]]:
        return await self.task_repo.list(query)

    async def count_tasks(self, query: ListQuery) -> int:
        return await self.task_repo.count(query)

    async def update_task(self, task_id: str, data: TaskInput) -> TaskEntity:
        """Replace a task's fields and reconcile the old and new assignee.

        The assignee name is re-copied only when the assignee changes.
        """
        name, deadline = validate_task_fields(data.name, data.deadline)
        async with self._unit():
            prior = await self.task_repo.get_by_id(task_id)
            if prior is None:
                raise ResourceNotFoundException("task", task_id)
            task = replace(
                prior,
                name=name,
                deadline=deadline,
                description=data.description or "",
                completed=data.completed,
            )
            if data.assigned_user_id != prior.assigned_user_id:
                await self._resolve_assignee(task, data.assigned_user_id)
            elif prior.is_assigned and await self.user_repo.get_by_id(prior.assigned_user_id) is None:
                raise InvalidReferenceException("user", prior.assigned_user_id, "assigned_user_id")
            if not await self.task_repo.save(task):
                raise ResourceNotFoundException("task", task_id)
            await self.sync.apply_all(plan_task_intents(prior, task))
        return task

    async def delete_task(self, task_id: str) -> TaskEntity:
        """Delete a task, then Remove it from its assignee's pending set."""
        async with self._unit():
            prior = await self.task_repo.get_by_id(task_id)
            if prior is None or not await self.task_repo.delete(task_id):
                raise ResourceNotFoundException("task", task_id)
            await self.sync.apply_all(plan_task_intents(prior, None))
        return prior
