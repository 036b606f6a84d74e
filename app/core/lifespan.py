"""Application lifespan: startup and shutdown.

Single place for all startup/shutdown logic (SRP). Used by main.py;
no business logic here, only wiring of infrastructure (logging and the
entity store, which is opened here and kept on app.state).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.core.config import get_settings
from app.infrastructure.persistence.database import create_entity_store
from app.shared.telemetry.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup: logging, then the entity store selected by DATABASE_BACKEND.
    Shutdown: close the store (releases the Firestore HTTP pool).
    """
    settings = get_settings()
    setup_logging()

    # ---- Startup ----
    store = create_entity_store(settings)
    await store.open()
    app.state.store = store
    logger.info(
        "%s %s started (backend=%s, transactional=%s)",
        settings.app_name,
        settings.app_version,
        settings.database_backend,
        settings.sync_transactional,
    )

    yield

    # ---- Shutdown ----
    await store.close()
    app.state.store = None
    logger.info("Entity store closed")
