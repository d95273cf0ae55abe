from typing import Any, Mapping, Optional

from crudgate.interface.base import Pagination
from crudgate.query.params import get_first
from crudgate.settings import settings


def default_pagination(default_limit: Optional[int] = None) -> Pagination:
    limit = min(default_limit or settings.DEFAULT_PAGE_LIMIT, settings.MAX_PAGE_LIMIT)
    return Pagination(page=1, limit=limit, offset=0)


def _positive_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        return None
    return value if value > 0 else None


def parse_pagination(
    params: Mapping[str, Any],
    default_limit: Optional[int] = None,
    max_limit: Optional[int] = None,
) -> Pagination:
    """Read ``page`` and ``limit`` from query parameters.

    Bad values fall back to the defaults and ``limit`` is clamped to
    ``max_limit`` (100 unless configured); nothing here raises.
    """
    max_limit = max_limit or settings.MAX_PAGE_LIMIT
    p = default_pagination(default_limit)
    page = p.page
    limit = p.limit

    parsed_page = _positive_int(get_first(params, "page"))
    if parsed_page is not None:
        page = parsed_page

    parsed_limit = _positive_int(get_first(params, "limit"))
    if parsed_limit is not None:
        limit = min(parsed_limit, max_limit)

    return Pagination.create(page, limit)
