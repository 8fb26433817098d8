"""
Translates the `filter` query parameter into query predicates.

    GET /products?filter[name][like]=Samsung&filter[price][gte]=100
    GET /products?filter[category.id]=0b0c6c1e-...&filter[createdAt][btw]=2024-01,2024-03
    GET /products?filter[tags][json][color]=red,blue

Keys are converted to storage casing, a dotted key filters through one or two
relations. Deeper relation paths are ignored.
"""
from __future__ import annotations
import calendar
import datetime
import logging
import warnings
from typing import Any, Callable, Dict, List, Tuple, TYPE_CHECKING

from fastcrud import constants, exceptions, util
from fastcrud.constants import SearchOperator

if TYPE_CHECKING:
    from fastcrud.query import Query

    # {column: value | {operator: value} | {"json": {key: value}}}
    FILTERS_T = Dict[str, Any]

logger = logging.getLogger(__name__)

MONTH_FORMAT = "%Y-%m"
DATE_FORMAT = "%Y-%m-%d"
MONTH_LENGTH = len("YYYY-MM")


def apply_filters(query: "Query", filters: "FILTERS_T" = None) -> None:
    """
    Applies each filter to the query.

    Raises:
        DecodeError: an operator is not a SearchOperator code. Predicates for the
            preceding filters are already applied to the query.
        DateParseError: a `btw` value is not a date or month range.
    """
    if not filters:
        return

    for column, param in filters.items():
        column = util.snake(column)
        has_relation = constants.RELATION_SEPARATOR in column

        if isinstance(param, dict):
            for code, value in param.items():
                if code == SearchOperator.NOT_NULL.value:
                    query.where_not_null(column)
                    continue

                if _is_empty(value):
                    continue

                if isinstance(value, str):
                    value = value.strip()
                operator = SearchOperator.resolve(code)
                _PREDICATES[operator](query, column, value, has_relation)
        elif isinstance(param, str):
            _simple_equality(query, column, param, has_relation)
        else:
            query.where(column, param)


def date_range(value: str) -> Tuple[datetime.datetime, datetime.datetime]:
    """
    Expands a `btw` value to an inclusive datetime range.

    Examples:
        > date_range("2024-02")
        (2024-02-01 00:00:00, 2024-02-29 23:59:59)

        > date_range("2024-01-01,2024-01-05")
        (2024-01-01 00:00:00, 2024-01-05 23:59:59)
    """
    tokens = [token.strip() for token in value.split(constants.LIST_SEPARATOR)]
    first = tokens[0]
    last = tokens[1] if len(tokens) > 1 and tokens[1] else first

    if len(first) == MONTH_LENGTH:
        start = _parse(first, MONTH_FORMAT)
        # The end of a month range is always the last day of its month
        end = _parse(last, MONTH_FORMAT if len(last) == MONTH_LENGTH else DATE_FORMAT)
        last_day = calendar.monthrange(end.year, end.month)[1]
        end = end.replace(day=last_day)
    else:
        start = _parse(first, DATE_FORMAT)
        end = _parse(last, DATE_FORMAT)

    return start, end.replace(hour=23, minute=59, second=59)


def split_relation(column: str) -> Tuple[List[str], str]:
    """Splits `rel1.rel2.field` into (["rel1", "rel2"], "field")"""
    *relations, field = column.split(constants.RELATION_SEPARATOR)
    return relations, field


def where_related(query: "Query", column: str, apply: Callable[["Query", str], Any]) -> None:
    """
    Calls `apply(query, field)` on the query that owns the final field of the
    column path, nesting a relation existence check per hop.
    """
    relations, field = split_relation(column)
    if len(relations) > constants.MAX_RELATION_DEPTH:
        warnings.warn(
            f"Filter on '{column}' ignored, relation filters support at most "
            f"{constants.MAX_RELATION_DEPTH} relations",
            exceptions.UnsupportedDepthWarning,
            stacklevel=3,
        )
        logger.debug("Dropped filter on %s", column)
        return

    def _nest(subquery: "Query", remaining: List[str]) -> None:
        if not remaining:
            apply(subquery, field)
            return
        subquery.where_has(util.camel(remaining[0]), lambda related: _nest(related, remaining[1:]))

    _nest(query, relations)


# ==================================================================================
# Predicates


def _equal(query: "Query", column: str, value, has_relation: bool) -> None:
    if has_relation:
        _simple_equality(query, column, value, has_relation)
    else:
        query.where(column, value)


def _not_equal(query: "Query", column: str, value, has_relation: bool) -> None:
    query.where_not(column, value)


def _comparison(operator: str):
    def _compare(query: "Query", column: str, value, has_relation: bool) -> None:
        query.where(column, value, operator=operator)

    return _compare


def _bound_or_null(operator: str):
    def _compare(query: "Query", column: str, value, has_relation: bool) -> None:
        query.where_group(lambda group: group.where_null(column).or_where(column, value, operator=operator))

    return _compare


def _in(query: "Query", column: str, value: str, has_relation: bool) -> None:
    values = value.split(constants.LIST_SEPARATOR)
    if has_relation:
        where_related(query, column, lambda q, field: q.where_in(field, values))
    else:
        query.where_in(column, values)


def _not_in(query: "Query", column: str, value: str, has_relation: bool) -> None:
    # Relation paths are not supported, the column is used as is
    query.where_not_in(column, value.split(constants.LIST_SEPARATOR))


def _like(query: "Query", column: str, value: str, has_relation: bool) -> None:
    pattern = f"%{value}%"
    if has_relation:
        where_related(query, column, lambda q, field: q.where_like(field, pattern))
    else:
        query.where_like(column, pattern)


def _between(query: "Query", column: str, value: str, has_relation: bool) -> None:
    start, end = date_range(value)
    if has_relation:
        where_related(query, column, lambda q, field: q.where_between(field, start, end))
    else:
        query.where_between(column, start, end)


def _json(query: "Query", column: str, value: Dict[str, str], has_relation: bool) -> None:
    key = next(iter(value))
    val = value[key]
    if constants.LIST_SEPARATOR in val:
        for alternate in val.split(constants.LIST_SEPARATOR):
            query.where_json_contains(column, {key: alternate}, boolean="or")
    else:
        query.where_json_contains(column, {key: val})


def _not_null(query: "Query", column: str, value, has_relation: bool) -> None:
    query.where_not_null(column)


def _simple_equality(query: "Query", column: str, value: str, has_relation: bool) -> None:
    if not has_relation:
        query.where(column, value)
        return

    relations, field = split_relation(column)
    if len(relations) == 1 and field == constants.RELATION_ID_FIELD:
        field = constants.RELATION_EXTERNAL_ID_FIELD
        column = constants.RELATION_SEPARATOR.join(relations + [field])
    where_related(query, column, lambda q, name: q.where(name, value))


_PREDICATES = {
    SearchOperator.EQUAL: _equal,
    SearchOperator.NOT_EQUAL: _not_equal,
    SearchOperator.IN: _in,
    SearchOperator.NOT_IN: _not_in,
    SearchOperator.LIKE: _like,
    SearchOperator.LESS_THAN: _comparison("<"),
    SearchOperator.LESS_THAN_EQUAL: _comparison("<="),
    SearchOperator.GREATER_THAN: _comparison(">"),
    SearchOperator.GREATER_THAN_EQUAL: _comparison(">="),
    SearchOperator.GREATER_THAN_OR_NULL: _bound_or_null(">"),
    SearchOperator.LESS_THAN_OR_NULL: _bound_or_null("<"),
    SearchOperator.BETWEEN: _between,
    SearchOperator.JSON: _json,
    SearchOperator.NOT_NULL: _not_null,
}
_unhandled = set(SearchOperator).difference(_PREDICATES)
if _unhandled:
    raise RuntimeError(f"Search operators without a predicate: {sorted(op.value for op in _unhandled)}")


# ==================================================================================
# Private


def _is_empty(value) -> bool:
    return value is None or (isinstance(value, (str, list, tuple, dict)) and len(value) == 0)


def _parse(token: str, fmt: str) -> datetime.datetime:
    try:
        return datetime.datetime.strptime(token, fmt)
    except ValueError as e:
        raise exceptions.DateParseError(f"'{token}' is not a valid date, expected {fmt}") from e
