"""Application DTOs (no store dependency)."""

from app.application.dtos.query import ListQuery
from app.application.dtos.task import TaskInput
from app.application.dtos.user import UserInput

__all__ = [
    "ListQuery",
    "TaskInput",
    "UserInput",
]
