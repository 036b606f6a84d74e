"""User operations: create, get, list, count, update, delete."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import replace
from typing import Any

from app.application.dtos.query import ListQuery
from app.application.dtos.user import UserInput
from app.application.interfaces.repositories import ITaskRepository, IUserRepository
from app.application.services.sync_engine import (
    AssignTask,
    ReleaseTasks,
    SyncEngine,
    SyncIntent,
    UnassignTask,
)
from app.domain.entities import (
    UNASSIGNED_USER_ID,
    UserEntity,
    validate_task_ids,
    validate_user_fields,
)
from app.domain.exceptions import ResourceNotFoundException
from app.shared.utils.generators import generate_cuid

logger = logging.getLogger(__name__)


class UserService:
    """User lifecycle. Claims and releases tasks to match the pending set."""

    def __init__(
        self,
        user_repo: IUserRepository,
        task_repo: ITaskRepository,
        sync_engine: SyncEngine,
        *,
        transaction: Callable[[], AbstractAsyncContextManager[None]] | None = None,
    ) -> None:
        self.user_repo = user_repo
        self.task_repo = task_repo
        self.sync = sync_engine
        self._transaction = transaction

    def _unit(self) -> AbstractAsyncContextManager[Any]:
        return self._transaction() if self._transaction else nullcontext()

    async def _claimable(self, task_ids: Iterable[str], user_id: str) -> set[str]:
        """Ids of existing, incomplete tasks that are unassigned or already this user's."""
        wanted = list(task_ids)
        tasks = await self.task_repo.get_by_ids(wanted)
        ok = {
            t.id
            for t in tasks
            if not t.completed and t.assigned_user_id in (UNASSIGNED_USER_ID, user_id)
        }
        dropped = [t for t in wanted if t not in ok]
        if dropped:
            logger.debug("Dropping unclaimable pending task ids for user %s: %s", user_id, dropped)
        return ok

    async def create_user(self, data: UserInput) -> UserEntity:
        """Create a user and Assign each initial pending task that can be claimed."""
        name, email = validate_user_fields(data.name, data.email)
        requested = validate_task_ids(data.pending_task_ids)
        async with self._unit():
            user = UserEntity(id=generate_cuid(), name=name, email=email)
            claimable = await self._claimable(requested, user.id)
            user.pending_task_ids = [t for t in requested if t in claimable]
            created = await self.user_repo.create(user)
            await self.sync.apply_all(
                AssignTask(t, created.id, created.name) for t in created.pending_task_ids
            )
        return created

    async def get_user(
        self, user_id: str, select: dict[str, int] | None = None
    ) -> dict[str, Any]:
        """Return the user document; raise ResourceNotFoundException if missing."""
        doc = await self.user_repo.get_document(user_id, select)
        if doc is None:
            raise ResourceNotFoundException("user", user_id)
        return doc

    async def list_users(self, query: ListQuery) -> list[dict[str, Any]]:
        return await self.user_repo.list(query)

    async def count_users(self, query: ListQuery) -> int:
        return await self.user_repo.count(query)

    async def update_user(self, user_id: str, data: UserInput) -> UserEntity:
        """Replace a user's fields; Assign added task ids and Unassign removed ones.

        Ids already in the stored set are kept as they are. New ids are kept
        only if the task can be claimed (exists, incomplete, not someone else's).
        """
        name, email = validate_user_fields(data.name, data.email)
        requested = validate_task_ids(data.pending_task_ids)
        async with self._unit():
            prior = await self.user_repo.get_by_id(user_id)
            if prior is None:
                raise ResourceNotFoundException("user", user_id)
            old = set(prior.pending_task_ids)
            claimable = await self._claimable([t for t in requested if t not in old], user_id)
            new_ids = [t for t in requested if t in old or t in claimable]
            user = replace(prior, name=name, email=email, pending_task_ids=new_ids)
            if not await self.user_repo.save(user):
                raise ResourceNotFoundException("user", user_id)

            kept = set(new_ids)
            intents: list[SyncIntent] = [
                AssignTask(t, user.id, user.name) for t in new_ids if t not in old
            ]
            intents += [UnassignTask(t, user.id) for t in prior.pending_task_ids if t not in kept]
            await self.sync.apply_all(intents)
        return user

    async def delete_user(self, user_id: str) -> UserEntity:
        """Delete the user, then unassign its pending tasks and release any leftovers."""
        async with self._unit():
            prior = await self.user_repo.get_by_id(user_id)
            if prior is None or not await self.user_repo.delete(user_id):
                raise ResourceNotFoundException("user", user_id)
            intents: list[SyncIntent] = [UnassignTask(t, user_id) for t in prior.pending_task_ids]
            # Completed tasks (and stale pointers) are not covered by Unassign.
            intents.append(ReleaseTasks(user_id))
            await self.sync.apply_all(intents)
        return prior
