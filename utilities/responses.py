# utilities/responses.py
import math
import unicodedata
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

from flask import current_app, request
from werkzeug.http import quote_header_value

from utilities.database import db


def page_args() -> Tuple[int, int]:
    """Read ``page``/``limit`` from the query string, clamped to sane values."""
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 100)
    page = request.args.get("page", default=1, type=int) or 1
    limit = request.args.get("limit", default=default_limit, type=int) or default_limit
    return max(page, 1), min(max(limit, 1), max_limit)


def _href(page: int, limit: int) -> str:
    args = {k: v for k, v in request.args.items() if k not in {"page", "limit"}}
    args.update(page=page, limit=limit)
    return f"{request.path}?{urlencode(args)}"


def _links(page: int, limit: int, total: int) -> List[Dict[str, str]]:
    last = max(math.ceil(total / limit), 1)
    links = [
        {"href": _href(page, limit), "rel": "self"},
        {"href": _href(1, limit), "rel": "first"},
        {"href": _href(last, limit), "rel": "last"},
    ]
    if page > 1:
        links.append({"href": _href(page - 1, limit), "rel": "prev"})
    if page < last:
        links.append({"href": _href(page + 1, limit), "rel": "next"})
    return links


def paginated(content: List[Dict[str, Any]], total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "content": content,
        "_meta": {"totalRecords": total, "page": page, "limit": limit, "count": len(content)},
        "_links": _links(page, limit, total),
    }


def paginate_select(stmt, serialize: Optional[Callable[[Any], Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Paginate a SQLAlchemy select and wrap it in the list envelope."""
    page, limit = page_args()
    pagination = db.paginate(stmt, page=page, per_page=limit, error_out=False, count=True)
    serialize = serialize or (lambda row: row.to_dict())
    return paginated([serialize(row) for row in pagination.items], pagination.total or 0, page, limit)


def paginate_list(rows: Sequence[Any], serialize: Optional[Callable[[Any], Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Paginate rows that were already filtered in Python."""
    page, limit = page_args()
    start = (page - 1) * limit
    serialize = serialize or (lambda row: row.to_dict())
    return paginated([serialize(row) for row in rows[start:start + limit]], len(rows), page, limit)


def query_flag(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a true/false query parameter; anything unrecognised yields ``default``."""
    value = request.args.get(name)
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def content(data: Any, status: int = 200):
    return {"content": data}, status


def attachment_disposition(file_name: str) -> str:
    """``Content-Disposition`` value for downloading ``file_name``.

    Follows werkzeug's ``send_file``: the name is always a quoted string, and
    non-ASCII names get an ASCII fallback plus an RFC 5987 ``filename*``.
    """
    try:
        file_name.encode("ascii")
    except UnicodeEncodeError:
        simple = unicodedata.normalize("NFKD", file_name).encode("ascii", "ignore").decode("ascii")
        quoted = quote(file_name, safe="!#$&+^`|")
        return f"attachment; filename={quote_header_value(simple, allow_token=False)}; filename*=UTF-8''{quoted}"
    return f"attachment; filename={quote_header_value(file_name, allow_token=False)}"
