"""Persistence: entity store construction.

When database_backend is 'memory', an in-process store is used (development
and tests). When it is 'firestore', a Firestore REST client is built from the
service account settings and wrapped in FirestoreEntityStore.

The store is created once by the application lifespan and kept on app.state;
nothing here holds a module-level instance.
"""

import logging

from app.application.interfaces.store import IEntityStore
from app.core.config import Settings
from app.infrastructure.persistence.collections import (
    ARRAY_FIELDS,
    DATETIME_FIELDS,
    UNIQUE_FIELDS,
)
from app.infrastructure.persistence.memory_store import InMemoryEntityStore

logger = logging.getLogger(__name__)


def create_entity_store(settings: Settings) -> IEntityStore:
    """Build the entity store selected by DATABASE_BACKEND (not yet opened)."""
    backend = settings.database_backend
    if backend == "memory":
        logger.info("Using in-memory entity store")
        return InMemoryEntityStore(unique_fields=UNIQUE_FIELDS)
    if backend == "firestore":
        from app.infrastructure.firebase.client import create_firestore_client
        from app.infrastructure.firebase.entity_store import FirestoreEntityStore

        logger.info("Using Firestore entity store")
        return FirestoreEntityStore(
            create_firestore_client(settings),
            unique_fields=UNIQUE_FIELDS,
            array_fields=ARRAY_FIELDS,
            datetime_fields=DATETIME_FIELDS,
            max_write_retries=settings.firestore_max_write_retries,
        )
    raise ValueError(f"Unsupported database_backend: {backend!r}")
