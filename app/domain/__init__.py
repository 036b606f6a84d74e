"""Domain layer: entities, value objects, and exceptions.

No dependencies on infrastructure or presentation. Used by application
and infrastructure layers.
"""

from app.domain.entities import TaskEntity, UserEntity
from app.domain.exceptions import (
    DuplicateEmailException,
    InvalidReferenceException,
    ReconciliationFailure,
    ResourceNotFoundException,
    TrackerException,
    ValidationException,
)
from app.domain.value_objects import EmailAddress, RecordId

__all__ = [
    "DuplicateEmailException",
    "EmailAddress",
    "InvalidReferenceException",
    "RecordId",
    "ReconciliationFailure",
    "ResourceNotFoundException",
    "TaskEntity",
    "TrackerException",
    "UserEntity",
    "ValidationException",
]
