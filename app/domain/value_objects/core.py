"""Domain value objects for the assignment tracker.

Value objects are immutable types that represent domain concepts with
self-validation. They have no identity, only value.
"""

import re
from dataclasses import dataclass
from typing import ClassVar

# CUID2: leading lowercase letter, then lowercase alphanumerics (default length 24).
_RECORD_ID_RE = re.compile(r"^[a-z][a-z0-9]{1,31}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")


@dataclass(frozen=True)
class RecordId:
    """Value object for a task or user identifier.

    Ids are generated by the service (CUID2). A request that carries an id
    in any other shape is rejected before any lookup, so a malformed id is
    never reported as "not found".
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not _RECORD_ID_RE.match(self.value):
            raise ValueError(f"Invalid id format: {self.value!r}")

    @classmethod
    def is_valid(cls, value: object) -> bool:
        """Return True if value is a well-formed record id."""
        return isinstance(value, str) and bool(_RECORD_ID_RE.match(value))


@dataclass(frozen=True)
class EmailAddress:
    """Value object for a user email (trimmed, lower-cased).

    Emails are unique case-insensitively, so the normalized form is the
    one stored and compared.
    """

    MAX_LENGTH: ClassVar[int] = 320

    value: str

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("Email must be a non-empty string")
        if len(self.value) > self.MAX_LENGTH:
            raise ValueError(f"Email must be at most {self.MAX_LENGTH} characters")
        if not _EMAIL_RE.match(self.value):
            raise ValueError(f"Invalid email address: {self.value!r}")

    @classmethod
    def normalize(cls, raw: str) -> "EmailAddress":
        """Build an EmailAddress from raw input (strip + lower-case)."""
        return cls((raw or "").strip().lower())
