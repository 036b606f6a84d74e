"""Task repository over the entity store (implements ITaskRepository)."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from app.application.dtos.query import ListQuery
from app.application.interfaces.store import IEntityStore
from app.domain.entities import TaskEntity
from app.infrastructure.persistence.collections import COLLECTION_TASKS


class TaskRepository:
    """Task repository. Implements ITaskRepository."""

    def __init__(self, store: IEntityStore) -> None:
        self.store = store

    async def get_by_id(self, task_id: str) -> TaskEntity | None:
        """Return task by ID."""
        doc = await self.store.find_by_id(COLLECTION_TASKS, task_id)
        return TaskEntity.from_document(doc) if doc else None

    async def get_by_ids(self, task_ids: list[str]) -> list[TaskEntity]:
        """Return the tasks that exist among task_ids, in the order given."""
        if not task_ids:
            return []
        docs = await self.store.find(COLLECTION_TASKS, {"id": {"$in": list(task_ids)}})
        by_id = {d["id"]: TaskEntity.from_document(d) for d in docs}
        return [by_id[t] for t in task_ids if t in by_id]

    async def get_document(
        self, task_id: str, select: Mapping[str, int] | None = None
    ) -> dict[str, Any] | None:
        if not select:
            return await self.store.find_by_id(COLLECTION_TASKS, task_id)
        docs = await self.store.find(COLLECTION_TASKS, {"id": task_id}, select=select, limit=1)
        return docs[0] if docs else None

    async def list(self, query: ListQuery) -> list[dict[str, Any]]:
        return await self.store.find(
            COLLECTION_TASKS,
            query.where,
            select=query.select,
            sort=query.sort,
            skip=query.skip,
            limit=query.limit,
        )

    async def count(self, query: ListQuery) -> int:
        return await self.store.count(COLLECTION_TASKS, query.where)

    async def create(self, task: TaskEntity) -> TaskEntity:
        """Persist a new task."""
        doc = await self.store.create(COLLECTION_TASKS, task.to_document())
        return TaskEntity.from_document(doc)

    async def save(self, task: TaskEntity) -> bool:
        """Overwrite an existing task; False if it no longer exists."""
        return await self.store.replace_one(COLLECTION_TASKS, task.id, task.to_document())

    async def delete(self, task_id: str) -> bool:
        return await self.store.delete_one(COLLECTION_TASKS, task_id)
