"""Presentation-layer dependency injection (composition root).

Provides FastAPI Depends() for the entity store and the task/user services.
The store is created by the lifespan and kept on app.state; everything else
is built per request from it. Routes depend only on these dependencies, not
on infrastructure directly.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Path, Request

from app.application.interfaces.store import IEntityStore
from app.application.services.sync_engine import SyncEngine
from app.application.use_cases.tasks import TaskService
from app.application.use_cases.users import UserService
from app.core.config import Settings, get_settings
from app.domain.exceptions import ValidationException
from app.domain.value_objects.core import RecordId
from app.infrastructure.persistence.collections import COLLECTION_TASKS, COLLECTION_USERS
from app.infrastructure.persistence.repositories import TaskRepository, UserRepository


def get_store(request: Request) -> IEntityStore:
    """Return the entity store opened at startup."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("Entity store is not initialized; was the app lifespan run?")
    return store


def get_sync_engine(
    store: Annotated[IEntityStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SyncEngine:
    return SyncEngine(
        store,
        tasks_collection=COLLECTION_TASKS,
        users_collection=COLLECTION_USERS,
        max_attempts=settings.sync_max_attempts,
        retry_backoff_seconds=settings.sync_retry_backoff_seconds,
        timeout_seconds=settings.sync_timeout_seconds,
        budget_seconds=settings.sync_budget_seconds,
        raise_on_failure=settings.sync_transactional,
    )


def get_task_service(
    store: Annotated[IEntityStore, Depends(get_store)],
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TaskService:
    """Build TaskService; in transactional mode writes run inside store.transaction()."""
    return TaskService(
        TaskRepository(store),
        UserRepository(store),
        engine,
        transaction=store.transaction if settings.sync_transactional else None,
        repair_on_read=settings.sync_repair_on_read,
    )


def get_user_service(
    store: Annotated[IEntityStore, Depends(get_store)],
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UserService:
    return UserService(
        UserRepository(store),
        TaskRepository(store),
        engine,
        transaction=store.transaction if settings.sync_transactional else None,
    )


def valid_record_id(
    id: Annotated[str, Path(description="Record id (CUID2)")],
) -> str:
    """Reject malformed ids with 400 before any lookup."""
    if not RecordId.is_valid(id):
        raise ValidationException(f"Invalid id format: {id}", field="id")
    return id
