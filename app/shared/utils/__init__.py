"""Shared utilities: datetime and id generators."""

from app.shared.utils.datetime import (
    ensure_utc,
    from_timestamp_ms_utc,
    parse_datetime,
    utc_now,
)
from app.shared.utils.generators import generate_cuid

__all__ = [
    "generate_cuid",
    "utc_now",
    "ensure_utc",
    "parse_datetime",
    "from_timestamp_ms_utc",
]
