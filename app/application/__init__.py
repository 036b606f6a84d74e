"""Application layer: interfaces, sync engine, use cases.

Depends only on domain and protocol definitions (DIP).
Infrastructure implements the interfaces (entity store, repositories).
"""

from app.application.interfaces import IEntityStore, ITaskRepository, IUserRepository
from app.application.services import SyncEngine, SyncReport
from app.application.use_cases import TaskService, UserService

__all__ = [
    "IEntityStore",
    "ITaskRepository",
    "IUserRepository",
    "SyncEngine",
    "SyncReport",
    "TaskService",
    "UserService",
]
