from __future__ import annotations
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from sqlalchemy import and_, asc, cast, desc, func, inspect, not_, or_, select
from sqlalchemy.dialects.postgresql import JSONB

from fastcrud import constants, exceptions, models, util

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from sqlalchemy.sql.elements import ClauseElement
    from sqlalchemy.sql.selectable import Select

    WHERE_T = Tuple[str, "ClauseElement"]

logger = logging.getLogger(__name__)

AND = "and"
OR = "or"

COMPARISON_MAP = {
    "=": "__eq__",
    "!=": "__ne__",
    "<": "__lt__",
    "<=": "__le__",
    ">": "__gt__",
    ">=": "__ge__",
}


class Query:
    """
    Mutable query builder for a single mapped model.

    Predicates are appended in call order with an `and`/`or` connector and are
    combined with SQL precedence, ie, `a AND b OR c` is `(a AND b) OR c`. Use
    `where_group` to keep an OR local to a set of predicates.
    """

    # Page size used when pagination is requested without a positive size
    default_per_page = 15

    def __init__(self, session: "Session", model, dialect: str = None, with_trashed: bool = False) -> None:
        self.session = session
        self.model = model
        if dialect is None:
            dialect = session.get_bind().dialect.name if session is not None else "default"
        self.dialect = dialect
        self.with_trashed = with_trashed
        self._wheres: List["WHERE_T"] = []
        self._orders = []
        self._columns: Dict[str, str] = {}
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    @property
    def wheres(self) -> List["WHERE_T"]:
        return list(self._wheres)

    @property
    def orders(self) -> list:
        return list(self._orders)

    @property
    def limit_value(self) -> Optional[int]:
        return self._limit

    # ==================================================================================
    # Predicates

    def where(self, column: str, value: Any, operator: str = "=", boolean: str = AND) -> "Query":
        col = self.column(column)
        if value is None and operator in ("=", "!="):
            clause = col.is_(None) if operator == "=" else col.is_not(None)
        else:
            try:
                clause = getattr(col, COMPARISON_MAP[operator])(value)
            except KeyError:
                raise exceptions.InvalidSchema(f"'{operator}' is not a valid comparison operator")
        return self._add(clause, boolean)

    def or_where(self, column: str, value: Any, operator: str = "=") -> "Query":
        return self.where(column, value, operator=operator, boolean=OR)

    def where_not(self, column: str, value: Any, boolean: str = AND) -> "Query":
        return self._add(not_(self.column(column) == value), boolean)

    def where_null(self, column: str, boolean: str = AND) -> "Query":
        return self._add(self.column(column).is_(None), boolean)

    def where_not_null(self, column: str, boolean: str = AND) -> "Query":
        return self._add(self.column(column).is_not(None), boolean)

    def where_in(self, column: str, values: Sequence, boolean: str = AND) -> "Query":
        return self._add(self.column(column).in_(list(values)), boolean)

    def where_not_in(self, column: str, values: Sequence, boolean: str = AND) -> "Query":
        return self._add(self.column(column).not_in(list(values)), boolean)

    def where_like(self, column: str, pattern: str, boolean: str = AND) -> "Query":
        """Case-insensitive match, collations elsewhere are expected to ignore case already"""
        col = self.column(column)
        clause = col.ilike(pattern) if self.dialect == "postgresql" else col.like(pattern)
        return self._add(clause, boolean)

    def where_between(self, column: str, start: Any, end: Any, boolean: str = AND) -> "Query":
        return self._add(self.column(column).between(start, end), boolean)

    def where_json_contains(self, column: str, value: Dict[str, Any], boolean: str = AND) -> "Query":
        col = self.column(column)
        if self.dialect == "postgresql":
            clause = cast(col, JSONB).contains(value)
        elif self.dialect in ("mysql", "mariadb"):
            clause = func.json_contains(col, json.dumps(value))
        else:
            clause = and_(*(func.json_extract(col, f'$."{key}"') == val for key, val in value.items()))
        return self._add(clause, boolean)

    def where_group(self, callback: Callable[["Query"], Any], boolean: str = AND) -> "Query":
        """Applies the predicates added by `callback` as a single parenthesised clause"""
        group = self._nested(self.model, with_trashed=True)
        callback(group)
        criterion = group.criterion()
        if criterion is not None:
            self._add(criterion.self_group(), boolean)
        return self

    def where_has(self, relation: str, callback: Callable[["Query"], Any] = None, boolean: str = AND) -> "Query":
        """Requires a related record matching the predicates added by `callback`"""
        attribute, prop = self.relationship(relation)
        related = self._nested(prop.mapper.class_)
        if callback is not None:
            callback(related)
        criterion = related.where_clause()
        method = attribute.any if prop.uselist else attribute.has
        clause = method() if criterion is None else method(criterion)
        return self._add(clause, boolean)

    # ==================================================================================
    # Ordering, limits and projection

    def order_by(self, column: str, order: constants.Order = constants.Order.Asc) -> "Query":
        method = asc if order == constants.Order.Asc else desc
        self._orders.append(method(self.column(column)))
        return self

    def limit(self, limit: Optional[int]) -> "Query":
        self._limit = limit
        return self

    def offset(self, offset: Optional[int]) -> "Query":
        self._offset = offset
        return self

    def columns(self, **labels: str) -> "Query":
        """Selects `{label: column}` instead of whole records, rows are returned as dicts"""
        for name in labels.values():
            self.column(name)
        self._columns.update(labels)
        return self

    # ==================================================================================
    # Schema

    def column(self, name: str):
        """
        Column name format can be either '{column}' or '{table}.{column}', the
        latter only for the model's own table.
        """
        table = self.model.__table__
        colname = name
        if constants.RELATION_SEPARATOR in name:
            tablename, colname = name.split(constants.RELATION_SEPARATOR, 1)
            if tablename != table.name:
                raise exceptions.InvalidSchema(f"Column requires a join that wasn't provided: {name}")
        try:
            return table.c[colname]
        except KeyError:
            raise exceptions.InvalidSchema(f"Table {table.name} has no column {colname}")

    def relationship(self, name: str):
        """Resolves a relation accessor name to the mapped attribute and its property"""
        wanted = util.camel(name)
        for key, prop in inspect(self.model).relationships.items():
            if util.camel(key) == wanted:
                return getattr(self.model, key), prop
        raise exceptions.UnknownRelation(f"{self.model.__name__} has no relation {name}")

    # ==================================================================================
    # Execution

    def criterion(self) -> Optional["ClauseElement"]:
        """Combines the predicates, `and` binding tighter than `or`"""
        groups = []
        current = []
        for boolean, clause in self._wheres:
            if boolean == OR and current:
                groups.append(current)
                current = []
            current.append(clause)
        if current:
            groups.append(current)
        if not groups:
            return None
        return or_(*(and_(*group) for group in groups))

    def where_clause(self) -> Optional["ClauseElement"]:
        clauses = self._scopes()
        criterion = self.criterion()
        if criterion is not None:
            clauses.append(criterion.self_group() if clauses else criterion)
        if not clauses:
            return None
        return and_(*clauses)

    def statement(self) -> "Select":
        if self._columns:
            stmt = select(
                *(self.column(name).label(label) for label, name in self._columns.items())
            ).select_from(self.model)
        else:
            stmt = select(self.model)

        where_clause = self.where_clause()
        if where_clause is not None:
            stmt = stmt.where(where_clause)
        if self._orders:
            stmt = stmt.order_by(*self._orders)
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        if self._offset:
            stmt = stmt.offset(self._offset)
        return stmt

    def get(self) -> list:
        stmt = self.statement()
        logger.debug("Executing %s", stmt)
        result = self.session.execute(stmt)
        if self._columns:
            return [dict(row) for row in result.mappings()]
        return list(result.scalars())

    def first(self):
        result = self.session.execute(self.statement().limit(1))
        if self._columns:
            row = result.mappings().first()
            return None if row is None else dict(row)
        return result.scalars().first()

    def count(self) -> int:
        stmt = select(func.count()).select_from(self.model)
        where_clause = self.where_clause()
        if where_clause is not None:
            stmt = stmt.where(where_clause)
        return self.session.scalar(stmt)

    def page(self, per_page: Optional[int] = None, page: int = 1) -> Tuple[list, int, int]:
        """Fetches a single page, returns (rows, current page, page size)"""
        if not per_page or per_page <= 0:
            per_page = self.default_per_page
        page = max(int(page or 1), 1)
        self.limit(per_page).offset((page - 1) * per_page)
        return self.get(), page, per_page

    # ==================================================================================
    # Private

    def _add(self, clause: "ClauseElement", boolean: str) -> "Query":
        self._wheres.append((boolean, clause))
        return self

    def _nested(self, model, with_trashed: bool = False) -> "Query":
        return Query(self.session, model, dialect=self.dialect, with_trashed=with_trashed)

    def _scopes(self) -> list:
        if self.with_trashed or not models.uses_soft_deletes(self.model):
            return []
        return [self.column(self.model.__deleted_at__).is_(None)]
