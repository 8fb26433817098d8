from __future__ import annotations
from contextlib import contextmanager
import csv
import datetime
import enum
import io
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Type, Union, TYPE_CHECKING

from marshmallow import Schema, fields
from sqlalchemy import inspect

from fastcrud import constants, exceptions, models, util
from fastcrud.config import Config
from fastcrud.pagination import Page, apply_limit, paginate
from fastcrud.query import Query
from fastcrud.search import apply_filters
from fastcrud.sort import apply_sort

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

    # {column: value}
    DATA_T = Dict[str, Any]

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = fields.Field.default_error_messages["required"]


class CrudController:
    """
    CRUD actions for a single mapped model.

    Subclasses set `model` and override the hook methods to customise an action
    without replacing it, eg,

        class ProductController(CrudController):
            model = Product
            update_schema = ProductSchema

            def before_create(self, data):
                data["slug"] = slugify(data["name"])
    """

    model = None
    # Optional marshmallow schemas validating write payloads
    create_schema: Optional[Type[Schema]] = None
    update_schema: Optional[Type[Schema]] = None
    # Either a list of record paths or {path: header}
    csv_columns: Union[List[str], Dict[str, str]] = ()
    csv_file_name = "export.csv"

    def __init__(self, sessionmaker: "sessionmaker", config: Config = None) -> None:
        self._sessionmaker = sessionmaker
        self.config = config or Config()

    # ==================================================================================
    # Actions

    def search(
        self,
        filters: Dict[str, Any] = None,
        sort: str = "",
        per_page: int = None,
        skip_pagination: bool = False,
        page: int = 1,
        method: str = None,
    ) -> Page:
        """Filtered, sorted and paginated records"""
        method = method or self.config.get("search", "method")
        if per_page is None:
            per_page = self.config.get("search", "per_page")

        with self._transaction() as session:
            query = self.query(session)
            self.modify_search_query(query)
            apply_filters(query, filters)
            apply_sort(query, sort)
            return paginate(
                query,
                per_page,
                self.serializer(method),
                skip_pagination=skip_pagination,
                page=page,
            )

    def options(self, label: str = None, value: str = None, limit: int = None) -> List[Dict[str, Any]]:
        """`{label, value}` pairs for every record, ordered by label"""
        if label is None:
            raise exceptions.MissingParameter("label")
        if not self.has_model_attribute(label):
            raise exceptions.ColumnNotFound("label")
        value = value or self.config.get("options", "default_value")

        with self._transaction() as session:
            query = self.query(session).columns(value=value, label=label).order_by(label)
            self.modify_options_query(query)
            apply_limit(query, limit)
            rows = [{"label": row["label"], "value": row["value"]} for row in query.get()]

        self.after_options(rows)
        return rows

    def create(self, data: "DATA_T", method: str = None) -> Any:
        method = method or self.config.get("create", "method")
        if not data:
            raise exceptions.EmptyPayload("No data provided")

        self.before_create_fill(data)
        self._validate(data, self.create_schema)
        self.before_create(data)
        self._check_attributes(data)

        with self._transaction() as session:
            record = self.model(**data)
            session.add(record)
            session.flush()
            self.after_create(record)
            logger.info("Created %s", self.model.__name__)
            return self.serializer(method)(record)

    def read(self, id: str, method: str = None) -> Any:
        method = method or self.config.get("read", "method")
        self._check_identifier("read", id)

        with self._transaction() as session:
            query = self.query(session).where(self.config.get("read", "find_field"), id)
            self.modify_read_query(query)
            record = self._first(query)
            return self.serializer(method)(record)

    def update(self, id: str, data: "DATA_T", method: str = None) -> Any:
        method = method or self.config.get("update", "method")
        self._check_identifier("update", id)
        if not data:
            raise exceptions.EmptyPayload("No data provided")

        self.before_update_fill(data)
        self._validate(data, self.update_schema)

        with self._transaction() as session:
            query = self.query(session).where(self.config.get("update", "find_field"), id)
            self.modify_update_query(query)
            record = self._first(query)

            self.before_update(record, data)
            self._check_attributes(data)
            for key, value in data.items():
                setattr(record, key, value)
            session.flush()
            self.after_update(record)
            logger.info("Updated %s %s", self.model.__name__, id)
            return self.serializer(method)(record)

    def delete(self, id: str) -> None:
        """Soft deletes models using `SoftDeletes`, permanently deletes the rest"""
        if models.uses_soft_deletes(self.model):
            return self.soft_delete(id)

        self._check_identifier("delete", id)
        with self._transaction() as session:
            query = self.query(session).where(self.config.get("delete", "find_field"), id)
            self.modify_delete_query(query)
            record = self._first(query)

            self.before_delete(record)
            session.delete(record)
            session.flush()
            self.after_delete(record)
            logger.info("Deleted %s %s", self.model.__name__, id)

    def soft_delete(self, id: str) -> None:
        self._check_identifier("soft_delete", id)
        deleted_at_field = self.config.get("soft_delete", "deleted_at_field")
        deleted_by_field = self.config.get("soft_delete", "deleted_by_field")
        for field in (deleted_at_field, deleted_by_field):
            if not self.has_model_attribute(field):
                raise exceptions.ColumnNotFound(field)

        with self._transaction() as session:
            query = self.query(session).where(self.config.get("soft_delete", "find_field"), id)
            self.modify_soft_delete_query(query)
            record = self._first(query)

            self.before_soft_delete(record)
            setattr(record, deleted_at_field, datetime.datetime.now())
            setattr(record, deleted_by_field, self.soft_delete_user_id())
            session.flush()
            self.after_soft_delete(record)
            logger.info("Soft deleted %s %s", self.model.__name__, id)

    def restore(self, id: str, method: str = None) -> Any:
        method = method or self.config.get("restore", "method")
        self._check_identifier("restore", id)
        deleted_at_field = self.config.get("soft_delete", "deleted_at_field")
        if not self.has_model_attribute(deleted_at_field):
            raise exceptions.ColumnNotFound(deleted_at_field)

        with self._transaction() as session:
            query = (
                self.query(session, with_trashed=True)
                .where(self.config.get("restore", "find_field"), id)
                .where_not_null(deleted_at_field)
            )
            self.modify_restore_query(query)
            record = self._first(query)

            self.before_restore(record)
            setattr(record, deleted_at_field, None)
            session.flush()
            self.after_restore(record)
            logger.info("Restored %s %s", self.model.__name__, id)
            return self.serializer(method)(record)

    def export_csv(
        self,
        filters: Dict[str, Any] = None,
        sort: str = "",
        per_page: int = None,
        skip_pagination: bool = False,
        page: int = 1,
        limit: int = None,
        method: str = None,
    ) -> str:
        """
        Filtered and sorted records as CSV text.

        A header line is written when `csv_columns` maps paths to headers. Without
        `csv_columns` every serialized field is written in record order.
        """
        method = method or self.config.get("export_csv", "method")
        if per_page is None:
            per_page = self.config.get("export_csv", "per_page")

        with self._transaction() as session:
            query = self.query(session)
            self.modify_export_csv_query(query)
            apply_filters(query, filters)
            apply_sort(query, sort)
            apply_limit(query, limit)
            result = paginate(
                query,
                per_page,
                self.serializer(method),
                skip_pagination=skip_pagination or bool(limit),
                page=page,
            )

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        if isinstance(self.csv_columns, dict):
            writer.writerow(self.csv_columns.values())
        for row in result.rows:
            paths = list(self.csv_columns) or list(row)
            writer.writerow(_csv_value(nested_value(row, path)) for path in paths)
        return buffer.getvalue()

    def export_file_name(self) -> str:
        return datetime.datetime.now().strftime("%Y-%m-%d_%H-%M-%S_") + self.csv_file_name

    # ==================================================================================
    # Helpers

    def query(self, session: "Session", with_trashed: bool = False) -> Query:
        return Query(session, self.model, with_trashed=with_trashed)

    def serializer(self, method: str) -> Callable[[Any], Any]:
        def _serialize(record):
            return getattr(record, method)()

        return _serialize

    def has_model_attribute(self, name: str) -> bool:
        return name in inspect(self.model).attrs

    # ==================================================================================
    # Hooks

    def modify_search_query(self, query: Query) -> None:
        pass

    def modify_options_query(self, query: Query) -> None:
        pass

    def after_options(self, rows: List[Dict[str, Any]]) -> None:
        pass

    def before_create_fill(self, data: "DATA_T") -> None:
        pass

    def before_create(self, data: "DATA_T") -> None:
        pass

    def after_create(self, record) -> None:
        pass

    def modify_read_query(self, query: Query) -> None:
        pass

    def modify_update_query(self, query: Query) -> None:
        pass

    def before_update_fill(self, data: "DATA_T") -> None:
        pass

    def before_update(self, record, data: "DATA_T") -> None:
        pass

    def after_update(self, record) -> None:
        pass

    def modify_delete_query(self, query: Query) -> None:
        pass

    def before_delete(self, record) -> None:
        pass

    def after_delete(self, record) -> None:
        pass

    def modify_soft_delete_query(self, query: Query) -> None:
        pass

    def before_soft_delete(self, record) -> None:
        pass

    def after_soft_delete(self, record) -> None:
        pass

    def soft_delete_user_id(self) -> Optional[Union[int, str]]:
        """Stored in the `deleted_by` field, override to record the acting user"""
        return None

    def modify_restore_query(self, query: Query) -> None:
        pass

    def before_restore(self, record) -> None:
        pass

    def after_restore(self, record) -> None:
        pass

    def modify_export_csv_query(self, query: Query) -> None:
        pass

    # ==================================================================================
    # Private

    @contextmanager
    def _transaction(self) -> Iterator["Session"]:
        with self._sessionmaker.begin() as session:
            yield session

    def _check_identifier(self, action: str, id: str) -> None:
        if self.config.get(action, "find_field_is_uuid") and not util.is_uuid(id):
            raise exceptions.InvalidIdentifier(f"'{id}' is not a valid UUID")

    def _check_attributes(self, data: "DATA_T") -> None:
        for key in data:
            if not self.has_model_attribute(key):
                raise exceptions.ColumnNotFound(key)

    def _first(self, query: Query):
        record = query.first()
        if record is None:
            raise exceptions.RecordNotFound(f"{self.model.__name__} not found")
        return record

    def _validate(self, data: "DATA_T", schema: Optional[Type[Schema]]) -> None:
        if schema is None:
            return
        errors = schema().validate(data)
        if errors:
            raise exceptions.ValidationFailed(validation_errors(data, errors))


def validation_errors(data: "DATA_T", errors: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flattens marshmallow errors to [{field, error, value, message}]"""
    flattened = []
    for field, messages in errors.items():
        if isinstance(messages, dict):
            messages = [message for nested in messages.values() for message in nested]
        for message in messages:
            flattened.append(
                {
                    "field": field,
                    "error": "required" if message == REQUIRED_MESSAGE else "invalid",
                    "value": data.get(field),
                    "message": message,
                }
            )
    return flattened


def nested_value(data: Any, path: str) -> Any:
    """Walks a dotted path through nested dicts, missing keys give ''"""
    value = data
    for key in path.split(constants.RELATION_SEPARATOR):
        if not isinstance(value, dict) or key not in value:
            return ""
        value = value[key]
    return "" if value is None else value


def _csv_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value
