"""Domain entities.

Pure domain models; no persistence concerns.
"""

from app.domain.entities.task import (
    UNASSIGNED_USER_ID,
    UNASSIGNED_USER_NAME,
    TaskEntity,
    validate_task_fields,
)
from app.domain.entities.user import (
    UserEntity,
    unique_task_ids,
    validate_task_ids,
    validate_user_fields,
)

__all__ = [
    "TaskEntity",
    "UNASSIGNED_USER_ID",
    "UNASSIGNED_USER_NAME",
    "UserEntity",
    "unique_task_ids",
    "validate_task_fields",
    "validate_task_ids",
    "validate_user_fields",
]
