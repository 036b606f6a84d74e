"""Referential-integrity synchronization between tasks and users.

Tasks and users are stored separately with no foreign keys. After a task or
user is written, the lifecycle services describe the counterpart changes as
intents and hand them to SyncEngine, which applies each one as a single
predicate-guarded write:

    AddPending(user, task)      add task id to user.pending_task_ids if absent
    RemovePending(user, task)   remove task id from user.pending_task_ids
    AssignTask(task, user, nm)  set assignee only if the task is incomplete and
                                unassigned or already this user's (no steal)
    UnassignTask(task, user)    reset assignee only if it is this user and the
                                task is incomplete
    PurgePending(task, keep)    remove task id from every user except keep
    ReleaseTasks(user)          reset every task still pointing at user

Every primitive is idempotent, so a failed or timed-out intent is simply
retried. When the retries run out the failure is logged and the caller's
operation still succeeds (eventual consistency), unless the engine was built
with raise_on_failure=True for transactional mode. An optional budget_seconds
bounds the total time one engine (one request) spends on reconciliation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from app.application.interfaces.store import IEntityStore, Mutation
from app.domain.entities import UNASSIGNED_USER_ID, UNASSIGNED_USER_NAME, TaskEntity
from app.domain.exceptions import ReconciliationFailure, TrackerException

logger = logging.getLogger(__name__)

_PENDING = "pending_task_ids"


@dataclass(frozen=True)
class AddPending:
    user_id: str
    task_id: str

    def __str__(self) -> str:
        return f"Add(user={self.user_id}, task={self.task_id})"


@dataclass(frozen=True)
class RemovePending:
    user_id: str
    task_id: str

    def __str__(self) -> str:
        return f"Remove(user={self.user_id}, task={self.task_id})"


@dataclass(frozen=True)
class AssignTask:
    task_id: str
    user_id: str
    user_name: str

    def __str__(self) -> str:
        return f"Assign(task={self.task_id}, user={self.user_id})"


@dataclass(frozen=True)
class UnassignTask:
    task_id: str
    user_id: str

    def __str__(self) -> str:
        return f"Unassign(task={self.task_id}, user={self.user_id})"


@dataclass(frozen=True)
class PurgePending:
    task_id: str
    keep_user_id: str = UNASSIGNED_USER_ID

    def __str__(self) -> str:
        return f"Purge(task={self.task_id}, keep={self.keep_user_id or '-'})"


@dataclass(frozen=True)
class ReleaseTasks:
    user_id: str

    def __str__(self) -> str:
        return f"Release(user={self.user_id})"


SyncIntent = AddPending | RemovePending | AssignTask | UnassignTask | PurgePending | ReleaseTasks


@dataclass
class SyncReport:
    """Outcome of apply_all: applied (matched), noop (guard did not match), failed."""

    applied: int = 0
    noop: int = 0
    failed: list[ReconciliationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: SyncReport) -> SyncReport:
        self.applied += other.applied
        self.noop += other.noop
        self.failed.extend(other.failed)
        return self


class SyncEngine:
    """Apply synchronization intents against the entity store."""

    def __init__(
        self,
        store: IEntityStore,
        *,
        tasks_collection: str = "tasks",
        users_collection: str = "users",
        max_attempts: int = 3,
        retry_backoff_seconds: float = 0.05,
        timeout_seconds: float = 5.0,
        budget_seconds: float | None = None,
        raise_on_failure: bool = False,
    ) -> None:
        self.store = store
        self.tasks_collection = tasks_collection
        self.users_collection = users_collection
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds
        self.timeout_seconds = timeout_seconds
        # Total time for all apply_all calls on this engine; starts on first use.
        self.budget_seconds = budget_seconds
        self.raise_on_failure = raise_on_failure
        self._deadline: float | None = None

    # ---- primitives (one guarded write each; True = matched) ----

    async def add(self, user_id: str, task_id: str) -> bool:
        """Add task_id to the user's pending set. No-op for an empty or missing user."""
        if not user_id:
            return False
        return await self.store.conditional_update_one(
            self.users_collection,
            user_id,
            {_PENDING: {"$ne": task_id}},
            Mutation(add_to_set={_PENDING: task_id}),
        )

    async def remove(self, user_id: str, task_id: str) -> bool:
        """Remove task_id from the user's pending set if present."""
        if not user_id:
            return False
        return await self.store.conditional_update_one(
            self.users_collection,
            user_id,
            {_PENDING: task_id},
            Mutation(pull={_PENDING: task_id}),
        )

    async def assign(self, task_id: str, user_id: str, user_name: str) -> bool:
        """Point an incomplete, unassigned (or already ours) task at user_id."""
        return await self.store.conditional_update_one(
            self.tasks_collection,
            task_id,
            {"completed": False, "assigned_user_id": {"$in": [UNASSIGNED_USER_ID, user_id]}},
            Mutation(set_fields={"assigned_user_id": user_id, "assigned_user_name": user_name}),
        )

    async def unassign(self, task_id: str, user_id: str) -> bool:
        """Reset the assignee of an incomplete task that still points at user_id."""
        return await self.store.conditional_update_one(
            self.tasks_collection,
            task_id,
            {"assigned_user_id": user_id, "completed": False},
            Mutation(
                set_fields={
                    "assigned_user_id": UNASSIGNED_USER_ID,
                    "assigned_user_name": UNASSIGNED_USER_NAME,
                }
            ),
        )

    async def purge(self, task_id: str, keep_user_id: str = UNASSIGNED_USER_ID) -> bool:
        """Remove task_id from every pending set except keep_user_id's."""
        holders = await self.store.find(
            self.users_collection, {_PENDING: task_id}, select={"id": 1}
        )
        matched = False
        for doc in holders:
            if doc["id"] != keep_user_id:
                matched = await self.remove(doc["id"], task_id) or matched
        return matched

    async def release(self, user_id: str) -> bool:
        """Reset every task (completed or not) still assigned to user_id."""
        if not user_id:
            return False
        matched = await self.store.update_many(
            self.tasks_collection,
            {"assigned_user_id": user_id},
            Mutation(
                set_fields={
                    "assigned_user_id": UNASSIGNED_USER_ID,
                    "assigned_user_name": UNASSIGNED_USER_NAME,
                }
            ),
        )
        return matched > 0

    async def apply(self, intent: SyncIntent) -> bool:
        """Apply one intent once (no retry)."""
        if isinstance(intent, AddPending):
            return await self.add(intent.user_id, intent.task_id)
        if isinstance(intent, RemovePending):
            return await self.remove(intent.user_id, intent.task_id)
        if isinstance(intent, AssignTask):
            return await self.assign(intent.task_id, intent.user_id, intent.user_name)
        if isinstance(intent, UnassignTask):
            return await self.unassign(intent.task_id, intent.user_id)
        if isinstance(intent, PurgePending):
            return await self.purge(intent.task_id, intent.keep_user_id)
        if isinstance(intent, ReleaseTasks):
            return await self.release(intent.user_id)
        raise TypeError(f"Unknown sync intent: {intent!r}")

    # ---- retrying driver ----

    def _remaining(self) -> float | None:
        """Seconds left in the engine budget, or None when it is unbounded."""
        if self.budget_seconds is None:
            return None
        now = asyncio.get_running_loop().time()
        if self._deadline is None:
            self._deadline = now + self.budget_seconds
        return self._deadline - now

    async def _apply_with_retry(self, intent: SyncIntent) -> bool:
        reason = ""
        attempts = 0
        while attempts < self.max_attempts:
            remaining = self._remaining()
            if remaining is not None and remaining <= 0:
                reason = reason or "sync budget exhausted"
                break
            attempts += 1
            timeout = self.timeout_seconds if remaining is None else min(self.timeout_seconds, remaining)
            try:
                return await asyncio.wait_for(self.apply(intent), timeout=timeout)
            except asyncio.TimeoutError:
                reason = f"timed out after {timeout:g}s"
            except TrackerException as e:
                reason = e.message
            logger.debug("%s failed (attempt %d/%d): %s", intent, attempts, self.max_attempts, reason)
            if attempts < self.max_attempts:
                delay = self.retry_backoff_seconds * attempts
                remaining = self._remaining()
                if remaining is not None:
                    delay = min(delay, max(remaining, 0.0))
                await asyncio.sleep(delay)
        raise ReconciliationFailure(str(intent), attempts, reason)

    async def apply_all(self, intents: Iterable[SyncIntent]) -> SyncReport:
        """Apply intents in order, each with timeout and retry.

        With budget_seconds set, intents left when the budget runs out are
        reported as failed without being attempted.

        Raises:
            ReconciliationFailure: an intent exhausted its retries and the
                engine runs with raise_on_failure (transactional mode).
        """
        report = SyncReport()
        for intent in intents:
            try:
                matched = await self._apply_with_retry(intent)
            except ReconciliationFailure as failure:
                if self.raise_on_failure:
                    raise
                logger.warning(
                    "ReconciliationFailure: %s (attempts=%d, reason=%s)",
                    failure.details["intent"],
                    failure.details["attempts"],
                    failure.details["reason"],
                )
                report.failed.append(failure)
                continue
            if matched:
                report.applied += 1
            else:
                report.noop += 1
        return report

    async def repair_task(self, task: TaskEntity) -> SyncReport:
        """Re-establish the pending-set invariants for one task as it is now stored."""
        if task.is_pending:
            intents: list[SyncIntent] = [
                AddPending(task.assigned_user_id, task.id),
                PurgePending(task.id, keep_user_id=task.assigned_user_id),
            ]
        else:
            intents = [PurgePending(task.id)]
        report = await self.apply_all(intents)
        if report.applied:
            logger.info("Repaired pending sets for task %s", task.id)
        return report
