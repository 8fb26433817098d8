from __future__ import annotations
from typing import List, Tuple, TYPE_CHECKING

from fastcrud import constants, util

if TYPE_CHECKING:
    from fastcrud.query import Query

DESCENDING_PREFIX = "-"


def parse_sort(sort: str) -> List[Tuple[str, constants.Order]]:
    """
    Parses a comma-separated list of columns, prefix a column with '-' for
    descending order.

    Examples:
        > parse_sort("category,-price,createdAt")
        [("category", Order.Asc), ("price", Order.Desc), ("created_at", Order.Asc)]
    """
    ordering = []
    for column in sort.split(constants.LIST_SEPARATOR):
        column = column.strip()
        if not column:
            continue
        if column.startswith(DESCENDING_PREFIX):
            ordering.append((util.snake(column[len(DESCENDING_PREFIX):]), constants.Order.Desc))
        else:
            ordering.append((util.snake(column), constants.Order.Asc))
    return ordering


def apply_sort(query: "Query", sort: str = "") -> None:
    """Applies ORDER BY clauses in the order the columns are listed"""
    if not sort:
        return

    for column, order in parse_sort(sort):
        query.order_by(column, order)
