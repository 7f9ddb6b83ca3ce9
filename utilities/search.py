# utilities/search.py
"""Query-string driven search shared by the keys, key systems and key bundles lists."""
from datetime import datetime
from typing import Dict, Iterable, Optional

import sqlalchemy as sa
from flask import request

from utilities.database import db
from utilities.errors import BadRequest

RESERVED_PARAMS = {"q", "fields", "page", "limit", "includeDisposed"}
COMPARATORS = (
    (">=", lambda col, v: col >= v),
    ("<=", lambda col, v: col <= v),
    (">", lambda col, v: col > v),
    ("<", lambda col, v: col < v),
)
MIN_QUERY_LENGTH = 3


def _coerce(column, raw: str):
    python_type = None
    try:
        python_type = getattr(column, "expression", column).type.python_type
    except NotImplementedError:
        pass
    if python_type is bool:
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if python_type is int:
        return int(raw)
    if python_type is datetime:
        return datetime.fromisoformat(raw)
    return raw


def _filter_clause(column, raw: str):
    for prefix, build in COMPARATORS:
        if raw.startswith(prefix):
            return build(column, _coerce(column, raw[len(prefix):]))
    return column == _coerce(column, raw)


def build_search(model, columns: Dict[str, sa.Column], default_fields: Iterable[str],
                 extra_reserved: Optional[Iterable[str]] = None):
    """Build a select for ``model`` from the current request's query string.

    ``q`` runs a case-insensitive LIKE across ``fields`` (comma separated,
    defaulting to ``default_fields``). Every other known parameter becomes an
    AND filter; values may start with ``>=``, ``<=``, ``>`` or ``<``.
    """
    reserved = RESERVED_PARAMS | set(extra_reserved or ())
    stmt = db.select(model)
    criteria = 0

    q = (request.args.get("q") or "").strip()
    if q:
        if len(q) < MIN_QUERY_LENGTH:
            raise BadRequest(f"Search query must be at least {MIN_QUERY_LENGTH} characters")
        field_names = [f.strip() for f in (request.args.get("fields") or "").split(",") if f.strip()]
        field_names = field_names or list(default_fields)
        unknown = [name for name in field_names if name not in columns]
        if unknown:
            raise BadRequest(f"Unknown search fields: {', '.join(unknown)}")
        pattern = f"%{q.lower()}%"
        stmt = stmt.where(sa.or_(*(sa.func.lower(columns[name]).like(pattern) for name in field_names)))
        criteria += 1

    for name, raw in request.args.items():
        if name in reserved or raw == "":
            continue
        column = columns.get(name)
        if column is None:
            continue
        try:
            stmt = stmt.where(_filter_clause(column, raw))
        except ValueError:
            raise BadRequest(f"Invalid value for {name}: {raw}")
        criteria += 1

    if not criteria:
        raise BadRequest("At least one search parameter is required")
    return stmt
