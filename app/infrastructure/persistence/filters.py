"""Evaluate where / select / sort expressions against plain dict documents.

Used by the in-memory store for everything, and by the Firestore store to
re-check guard predicates client-side before an update-time-preconditioned
commit (and as a fallback when a filter cannot be expressed as a Firestore
structured query).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from app.infrastructure.exceptions import InvalidQueryError
from app.shared.utils.datetime import ensure_utc, parse_datetime

_MISSING = object()

COMPARISON_OPERATORS = frozenset(
    {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin", "$exists"}
)
LOGICAL_OPERATORS = frozenset({"$and", "$or"})


def _coerce(operand: Any, like: Any) -> Any:
    """Coerce a JSON operand to the stored value's type where that is unambiguous.

    Query strings carry dates as ISO strings or epoch milliseconds; stored
    documents carry datetimes.
    """
    if isinstance(like, datetime) and not isinstance(operand, datetime):
        try:
            return parse_datetime(operand)
        except ValueError:
            return operand
    return operand


def _equals(value: Any, operand: Any) -> bool:
    if value is _MISSING:
        return operand is None
    if isinstance(value, list) and not isinstance(operand, list):
        return any(_coerce(operand, v) == v for v in value)
    return _coerce(operand, value) == value


def _compare(value: Any, operand: Any, op: str) -> bool:
    if value is _MISSING or value is None:
        return False
    if isinstance(value, list):
        return any(_compare(v, operand, op) for v in value)
    operand = _coerce(operand, value)
    try:
        if op == "$gt":
            return value > operand
        if op == "$gte":
            return value >= operand
        if op == "$lt":
            return value < operand
        return value <= operand
    except TypeError:
        return False


def _in(value: Any, operand: Any) -> bool:
    if not isinstance(operand, list):
        raise InvalidQueryError("$in/$nin expects a list")
    return any(_equals(value, candidate) for candidate in operand)


def _match_operators(value: Any, ops: Mapping[str, Any]) -> bool:
    for op, operand in ops.items():
        if op not in COMPARISON_OPERATORS:
            raise InvalidQueryError(f"unsupported operator {op}")
        if op == "$eq":
            ok = _equals(value, operand)
        elif op == "$ne":
            ok = not _equals(value, operand)
        elif op == "$in":
            ok = _in(value, operand)
        elif op == "$nin":
            ok = not _in(value, operand)
        elif op == "$exists":
            ok = (value is not _MISSING) == bool(operand)
        else:
            ok = _compare(value, operand, op)
        if not ok:
            return False
    return True


def is_operator_dict(condition: Any) -> bool:
    """True for {"$op": ...} conditions, False for literal (equality) values."""
    return (
        isinstance(condition, Mapping)
        and bool(condition)
        and all(isinstance(k, str) and k.startswith("$") for k in condition)
    )


def matches(doc: Mapping[str, Any], where: Mapping[str, Any] | None) -> bool:
    """Return True if doc satisfies the where filter (None/{} matches everything).

    Raises:
        InvalidQueryError: the filter uses an unsupported operator or shape.
    """
    if not where:
        return True
    if not isinstance(where, Mapping):
        raise InvalidQueryError("where must be a JSON object")
    for key, condition in where.items():
        if key in LOGICAL_OPERATORS:
            if not isinstance(condition, list) or not condition:
                raise InvalidQueryError(f"{key} expects a non-empty list")
            results = (matches(doc, sub) for sub in condition)
            ok = all(results) if key == "$and" else any(results)
        elif key.startswith("$"):
            raise InvalidQueryError(f"unsupported operator {key}")
        else:
            value = doc.get(key, _MISSING)
            if is_operator_dict(condition):
                ok = _match_operators(value, condition)
            else:
                ok = _equals(value, condition)
        if not ok:
            return False
    return True


def project(doc: Mapping[str, Any], select: Mapping[str, Any] | None) -> dict[str, Any]:
    """Apply an inclusion ({f: 1}) or exclusion ({f: 0}) projection.

    "id" is always included unless explicitly excluded.
    """
    if not select:
        return dict(doc)
    if not isinstance(select, Mapping):
        raise InvalidQueryError("select must be a JSON object")
    flags = {k: bool(v) for k, v in select.items()}
    id_flag = flags.pop("id", None)
    modes = set(flags.values())
    if len(modes) > 1:
        raise InvalidQueryError("select cannot mix inclusion and exclusion")
    if modes == {True} or (not modes and id_flag):
        out = {k: doc[k] for k in flags if k in doc}
        if id_flag is not False and "id" in doc:
            out = {"id": doc["id"], **out}
        return out
    out = {k: v for k, v in doc.items() if k not in flags}
    if id_flag is False:
        out.pop("id", None)
    return out


def _direction(raw: Any) -> int:
    if isinstance(raw, str):
        lowered = raw.lower()
        if lowered in ("asc", "ascending", "1"):
            return 1
        if lowered in ("desc", "descending", "-1"):
            return -1
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool) and raw in (1, -1):
        return int(raw)
    raise InvalidQueryError(f"sort direction must be 1 or -1, got {raw!r}")


def _sort_key(value: Any) -> tuple[int, Any]:
    """Total order across mixed types: missing/None < bool < number < str < datetime < other."""
    if value is None or value is _MISSING:
        return (0, 0)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, datetime):
        return (4, ensure_utc(value))
    return (5, str(value))


def sort_documents(
    docs: Iterable[Mapping[str, Any]], sort: Mapping[str, Any] | None
) -> list[dict[str, Any]]:
    """Sort by each key in order of precedence ({"deadline": 1, "name": -1})."""
    out = [dict(d) for d in docs]
    if not sort:
        return out
    if not isinstance(sort, Mapping):
        raise InvalidQueryError("sort must be a JSON object")
    # Stable sorts applied from the least to the most significant key.
    for name, raw in reversed(list(sort.items())):
        direction = _direction(raw)
        out.sort(key=lambda d: _sort_key(d.get(name, _MISSING)), reverse=direction < 0)
    return out


def paginate(docs: list[dict[str, Any]], skip: int = 0, limit: int = 0) -> list[dict[str, Any]]:
    """Apply skip and limit (limit 0 = unlimited)."""
    skip = max(skip, 0)
    if limit and limit > 0:
        return docs[skip : skip + limit]
    return docs[skip:]
