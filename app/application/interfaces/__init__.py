"""Application interfaces (ports): repository and store protocols.

Define contracts for infrastructure implementations (DIP).
No runtime imports from app.infrastructure or app.api.
"""

from app.application.interfaces.repositories import ITaskRepository, IUserRepository
from app.application.interfaces.store import Filter, IEntityStore, Mutation, SortSpec

__all__ = [
    "Filter",
    "IEntityStore",
    "ITaskRepository",
    "IUserRepository",
    "Mutation",
    "SortSpec",
]
