"""Application services: the task/user synchronization engine."""

from app.application.services.sync_engine import (
    AddPending,
    AssignTask,
    PurgePending,
    ReleaseTasks,
    RemovePending,
    SyncEngine,
    SyncIntent,
    SyncReport,
    UnassignTask,
)

__all__ = [
    "AddPending",
    "AssignTask",
    "PurgePending",
    "ReleaseTasks",
    "RemovePending",
    "SyncEngine",
    "SyncIntent",
    "SyncReport",
    "UnassignTask",
]
