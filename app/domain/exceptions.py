"""Domain exceptions for the assignment tracker.

Defines domain-level exceptions that represent business rule violations.
These exceptions are independent of infrastructure concerns. Presentation
layer maps them to HTTP responses in exception handlers.
"""

from typing import Any


class TrackerException(Exception):
    """Base exception for all tracker application errors.

    All custom exceptions should inherit from this class to allow
    consistent error handling and logging. Presentation layer maps
    these to HTTP responses using message, error_code, and details.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. field, resource_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the (message, data) response body; data carries code and details."""
        return {
            "message": self.message,
            "data": {"error": self.error_code, "details": self.details},
        }


class ValidationException(TrackerException):
    """Raised when input validation fails (missing field, bad format, malformed id)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or attribute that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class InvalidReferenceException(TrackerException):
    """Raised when a well-formed id refers to a user or task that does not exist."""

    def __init__(self, resource_type: str, resource_id: str, field: str) -> None:
        """Initialize with the referenced resource and the field that carried it.

        Args:
            resource_type: Type of the referenced resource (e.g. 'user').
            resource_id: The id that did not resolve.
            field: Request field holding the reference (e.g. 'assigned_user_id').
        """
        super().__init__(
            f"{field} does not exist: {resource_id}",
            "INVALID_REFERENCE",
            {"resource_type": resource_type, "resource_id": resource_id, "field": field},
        )


class DuplicateEmailException(TrackerException):
    """Raised when creating or updating a user to an email that is already registered."""

    def __init__(self, email: str) -> None:
        """Initialize with the colliding (normalized) email.

        Args:
            email: Lower-cased email that already exists.
        """
        super().__init__(
            "This email has been registered, please use another one",
            "DUPLICATE_EMAIL",
            {"email": email},
        )


class ResourceNotFoundException(TrackerException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize with resource type and id.

        Args:
            resource_type: Type of resource (e.g. 'task', 'user').
            resource_id: The ID that was not found.
        """
        super().__init__(
            f"{resource_type.capitalize()} not found: {resource_id}",
            "RESOURCE_NOT_FOUND",
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class ReconciliationFailure(TrackerException):
    """Counterpart write failed or timed out after the primary write committed.

    Logged by the sync engine and not surfaced to the caller, except in
    transactional mode where it aborts the whole operation.
    """

    def __init__(self, intent: str, attempts: int, reason: str) -> None:
        super().__init__(
            f"Reconciliation failed for {intent} after {attempts} attempt(s)",
            "RECONCILIATION_FAILED",
            {"intent": intent, "attempts": attempts, "reason": reason},
        )
