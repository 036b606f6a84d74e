"""User API schemas."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class UserWriteRequest(BaseModel):
    """Request body for creating or replacing a user.

    Email is trimmed and lower-cased by the service; uniqueness is
    case-insensitive.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str | None = None
    email: str | None = None
    pending_task_ids: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("pending_task_ids", "pendingTasks"),
    )

    @field_validator("pending_task_ids", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class UserResponse(BaseModel):
    """User as returned by create and update."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    pending_task_ids: list[str]
    created_at: datetime
