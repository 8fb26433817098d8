import datetime
import decimal
import enum

from sqlalchemy import Column, DateTime, String, inspect


class CrudMixin:
    """Default serialization for records returned by crud actions"""

    def to_dict(self) -> dict:
        return {
            attr.key: _serialize_value(getattr(self, attr.key))
            for attr in inspect(type(self)).column_attrs
        }


class SoftDeletes:
    """
    Marks a model as soft deleting.

    Soft deleted rows are excluded from queries unless explicitly requested and
    `delete` actions stamp the row instead of removing it.
    """

    __deleted_at__ = "deleted_at"

    deleted_at = Column(DateTime, default=None)
    deleted_by = Column(String, default=None)


def uses_soft_deletes(model) -> bool:
    return isinstance(model, type) and issubclass(model, SoftDeletes)


def _serialize_value(value):
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    return value
