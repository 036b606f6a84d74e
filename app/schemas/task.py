"""Task API schemas."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.shared.utils.datetime import parse_datetime


class TaskWriteRequest(BaseModel):
    """Request body for creating or replacing a task.

    name and deadline are checked by the service so that a missing value
    yields "Must include name and deadline". Any assigned_user_name sent by
    the caller is ignored; the name is copied from the referenced user.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str | None = None
    description: str = ""
    deadline: datetime | None = Field(
        default=None, description="ISO-8601 datetime or epoch milliseconds"
    )
    completed: bool = False
    assigned_user_id: str = Field(
        default="",
        validation_alias=AliasChoices("assigned_user_id", "assignedUser"),
    )

    @field_validator("deadline", mode="before")
    @classmethod
    def parse_deadline(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        return parse_datetime(v)

    @field_validator("assigned_user_id", "description", mode="before")
    @classmethod
    def none_as_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("completed", mode="before")
    @classmethod
    def none_as_false(cls, v: Any) -> Any:
        return False if v is None else v


class TaskResponse(BaseModel):
    """Task as returned by create and update."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    deadline: datetime
    completed: bool
    assigned_user_id: str
    assigned_user_name: str
    created_at: datetime
