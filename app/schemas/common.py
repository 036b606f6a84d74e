"""Response envelope shared by every endpoint."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

MESSAGE_OK = "OK"
MESSAGE_CREATED = "Created"
MESSAGE_UPDATED = "Updated"
MESSAGE_DELETED = "Deleted"
MESSAGE_COUNT = "Count only"


class ApiResponse(BaseModel, Generic[T]):
    """{"message": ..., "data": ...} body."""

    message: str = Field(default=MESSAGE_OK, description="Outcome summary")
    data: T | None = None


class DeletedResponse(BaseModel):
    """Data returned by DELETE endpoints."""

    id: str
