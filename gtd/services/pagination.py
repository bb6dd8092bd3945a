"""Pagination par curseur opaque (keyset sur (colonne de tri, id)).

Un groupe booléen optionnel (ex. ``is_pinned``) peut précéder la colonne de tri :
les lignes du groupe vrai sortent d'abord, dans le même ordre keyset.
"""

import base64
import json
from datetime import datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Query

from gtd.core.errors import BadRequestError


def encode_cursor(value: Any, row_id: int, group: Optional[bool] = None) -> str:
    if isinstance(value, datetime):
        payload = {"v": value.isoformat(), "t": "dt", "id": row_id}
    else:
        payload = {"v": value, "t": "raw", "id": row_id}
    if group is not None:
        payload["g"] = bool(group)
    raw = json.dumps(payload, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _decode(cursor: str) -> Tuple[Any, int, Optional[bool]]:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
        value = payload["v"]
        if payload.get("t") == "dt":
            value = datetime.fromisoformat(value)
        group = payload.get("g")
        if group is not None and not isinstance(group, bool):
            raise ValueError("group flag must be a boolean")
        return value, int(payload["id"]), group
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise BadRequestError("Invalid cursor") from exc


def decode_cursor(cursor: str) -> Tuple[Any, int]:
    value, row_id, _ = _decode(cursor)
    return value, row_id


def _check_value_type(column, value) -> None:
    # un curseur forgé ne doit pas comparer une chaîne à un timestamp côté SQL
    try:
        expected = column.type.python_type
    except NotImplementedError:
        return
    if value is None or not isinstance(value, expected):
        raise BadRequestError("Invalid cursor")


def _after(column, model, value, last_id: int, descending: bool):
    if descending:
        return or_(column < value, and_(column == value, model.id < last_id))
    return or_(column > value, and_(column == value, model.id > last_id))


def paginate(
    query: Query,
    model,
    sort_attr: str,
    limit: int,
    cursor: Optional[str] = None,
    descending: bool = True,
    group_attr: Optional[str] = None,
) -> Tuple[List[Any], Optional[str]]:
    """Retourne (lignes, next_cursor)."""
    column = getattr(model, sort_attr)
    group_column = getattr(model, group_attr) if group_attr else None

    if cursor:
        value, last_id, group = _decode(cursor)
        _check_value_type(column, value)
        after = _after(column, model, value, last_id, descending)
        if group_column is not None:
            if group is None:
                raise BadRequestError("Invalid cursor")
            # groupe vrai d'abord: après (g, v, id) viennent le reste de g puis les lignes de groupe faux
            if group:
                after = or_(group_column == False, and_(group_column == True, after))
            else:
                after = and_(group_column == False, after)
        query = query.filter(after)

    ordering = []
    if group_column is not None:
        ordering.append(group_column.desc())
    if descending:
        ordering += [column.desc(), model.id.desc()]
    else:
        ordering += [column.asc(), model.id.asc()]
    query = query.order_by(*ordering)

    rows = query.limit(limit + 1).all()
    next_cursor = None
    if len(rows) > limit:
        rows = rows[:limit]
        last = rows[-1]
        group = getattr(last, group_attr) if group_attr else None
        next_cursor = encode_cursor(getattr(last, sort_attr), last.id, group)
    return rows, next_cursor
