"""
UTC datetime utilities for consistent timezone handling.

All datetime values in the system are timezone-aware UTC. Deadlines and
date filters arrive either as ISO-8601 strings or as JavaScript-style epoch
milliseconds; parse_datetime accepts both.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    Ensure a datetime is UTC-aware.

    - If None, returns None
    - If naive, assumes UTC and attaches timezone
    - If aware, converts to UTC

    Use at repository/persistence boundaries to normalize datetimes.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)

    return dt.astimezone(UTC)


def from_timestamp_ms_utc(timestamp_ms: int | float) -> datetime:
    """
    Create a UTC-aware datetime from a millisecond Unix timestamp.

    Args:
        timestamp_ms: Unix timestamp in milliseconds

    Returns:
        UTC-aware datetime
    """
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


def parse_datetime(value: object) -> datetime:
    """
    Parse a datetime, an ISO-8601 string or epoch milliseconds into UTC.

    A trailing "Z" is accepted. Booleans are rejected even though they are ints.

    Raises:
        ValueError: value cannot be interpreted as a point in time.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise ValueError("boolean is not a datetime")
    if isinstance(value, (int, float)):
        try:
            return from_timestamp_ms_utc(value)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp out of range: {value}") from e
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty datetime string")
        if text.lstrip("-").isdigit():
            return parse_datetime(int(text))
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    raise ValueError(f"cannot interpret {type(value).__name__} as a datetime")
