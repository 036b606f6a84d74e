"""Pydantic request/response schemas for the API."""

from app.schemas.common import ApiResponse, DeletedResponse
from app.schemas.health import HealthResponse
from app.schemas.task import TaskResponse, TaskWriteRequest
from app.schemas.user import UserResponse, UserWriteRequest

__all__ = [
    "ApiResponse",
    "DeletedResponse",
    "HealthResponse",
    "TaskResponse",
    "TaskWriteRequest",
    "UserResponse",
    "UserWriteRequest",
]
