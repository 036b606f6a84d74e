"""DTO for list queries (where / select / sort / skip / limit / count)."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ListQuery:
    """Parsed list-endpoint query. limit 0 means unlimited."""

    where: dict[str, Any] = field(default_factory=dict)
    select: dict[str, int] | None = None
    sort: dict[str, int] | None = None
    skip: int = 0
    limit: int = 0
    count: bool = False
