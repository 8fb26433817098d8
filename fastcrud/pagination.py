"""
Page or limit query results.

    GET /products                       first 40 rows with pagination metadata
    GET /products?perPage=20&page=2     rows 21-40
    GET /products?skipPagination=true   every row, no metadata

Paginated results run two queries, the total count and the page itself. Rows
written between the two can leave `pagesCount` out of step with the returned
rows, this is accepted rather than locked against.
"""
from __future__ import annotations
import logging
import math
from typing import Any, Callable, Dict, List, NamedTuple, Optional, TYPE_CHECKING

from fastcrud import constants

if TYPE_CHECKING:
    from fastcrud.query import Query

logger = logging.getLogger(__name__)


class Page(NamedTuple):
    rows: List[Any]
    # {current, perPage, pagesCount, count}, empty when pagination is skipped
    meta: Dict[str, int]


def paginate(
    query: "Query",
    per_page: int = constants.DEFAULT_PER_PAGE,
    serializer: Callable[[Any], Any] = None,
    skip_pagination: bool = False,
    page: int = 1,
) -> Page:
    serializer = serializer or _identity
    if skip_pagination:
        return Page([serializer(row) for row in query.get()], {})

    count = query.count()
    rows, current, per_page = query.page(per_page, page)
    logger.debug("Fetched page %s of %s rows (%s per page)", current, count, per_page)
    return Page(
        [serializer(row) for row in rows],
        {
            "current": current,
            "perPage": per_page,
            "pagesCount": math.ceil(count / per_page),
            "count": count,
        },
    )


def apply_limit(query: "Query", limit: Optional[int] = None) -> None:
    if not limit or limit <= 0:
        return

    query.limit(limit)


def _identity(row):
    return row
