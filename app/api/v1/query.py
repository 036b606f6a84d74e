"""List query-string parsing shared by the task and user endpoints.

where, select (alias filter) and sort are JSON-encoded objects, e.g.
    ?where={"completed":false}&sort={"deadline":1}&select={"name":1}&skip=10&limit=5
count=true returns only the number of matching records.
"""

import json
from typing import Annotated, Any

from fastapi import Depends, Query

from app.application.dtos.query import ListQuery
from app.core.config import Settings, get_settings
from app.domain.exceptions import ValidationException


def parse_json_object(raw: str | None, name: str) -> dict[str, Any] | None:
    """Decode a JSON object query parameter; None when absent or empty."""
    if raw is None or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except ValueError as e:
        raise ValidationException(f"Invalid JSON in '{name}' parameter", field=name) from e
    if not isinstance(value, dict):
        raise ValidationException(f"'{name}' must be a JSON object", field=name)
    return value


def _build_query(
    where: str | None,
    select: str | None,
    filter_: str | None,
    sort: str | None,
    skip: int,
    limit: int | None,
    count: bool,
    default_limit: int,
) -> ListQuery:
    return ListQuery(
        where=parse_json_object(where, "where") or {},
        select=parse_json_object(select, "select") or parse_json_object(filter_, "filter"),
        sort=parse_json_object(sort, "sort"),
        skip=skip,
        limit=default_limit if limit is None else limit,
        count=count,
    )


def task_list_query(
    settings: Annotated[Settings, Depends(get_settings)],
    where: Annotated[str | None, Query(description="JSON filter")] = None,
    select: Annotated[str | None, Query(description="JSON projection")] = None,
    filter_: Annotated[str | None, Query(alias="filter", description="Alias of select")] = None,
    sort: Annotated[str | None, Query(description='JSON sort, e.g. {"deadline": 1}')] = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int | None, Query(ge=0, description="0 = unlimited")] = None,
    count: bool = False,
) -> ListQuery:
    """List query for GET /tasks (default limit TASK_LIST_DEFAULT_LIMIT)."""
    return _build_query(
        where, select, filter_, sort, skip, limit, count, settings.task_list_default_limit
    )


def user_list_query(
    settings: Annotated[Settings, Depends(get_settings)],
    where: Annotated[str | None, Query(description="JSON filter")] = None,
    select: Annotated[str | None, Query(description="JSON projection")] = None,
    filter_: Annotated[str | None, Query(alias="filter", description="Alias of select")] = None,
    sort: Annotated[str | None, Query(description='JSON sort, e.g. {"name": 1}')] = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int | None, Query(ge=0, description="0 = unlimited")] = None,
    count: bool = False,
) -> ListQuery:
    """List query for GET /users (default limit USER_LIST_DEFAULT_LIMIT)."""
    return _build_query(
        where, select, filter_, sort, skip, limit, count, settings.user_list_default_limit
    )


def select_param(
    select: Annotated[str | None, Query(description="JSON projection")] = None,
    filter_: Annotated[str | None, Query(alias="filter", description="Alias of select")] = None,
) -> dict[str, Any] | None:
    """Projection for single-record reads."""
    return parse_json_object(select, "select") or parse_json_object(filter_, "filter")
