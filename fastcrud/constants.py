import enum

from fastcrud import exceptions


class Order(enum.Enum):
    Asc = "ASC"
    Desc = "DESC"


class SearchOperator(str, enum.Enum):
    """
    Operators accepted in the filter query parameter, eg,

        GET /products?filter[name][like]=Samsung&filter[price][gte]=100&filter[status][in]=active,pending
    """

    EQUAL = "eq"
    NOT_EQUAL = "neq"
    # Comma-separated values
    IN = "in"
    NOT_IN = "nin"
    # Case-insensitive partial match
    LIKE = "like"
    LESS_THAN = "lt"
    LESS_THAN_EQUAL = "lte"
    GREATER_THAN = "gt"
    GREATER_THAN_EQUAL = "gte"
    # Bound OR null
    GREATER_THAN_OR_NULL = "gtn"
    LESS_THAN_OR_NULL = "ltn"
    # Comma-separated dates or months, inclusive
    BETWEEN = "btw"
    # JSON column contains {key: value}
    JSON = "json"
    NOT_NULL = "nn"

    @classmethod
    def resolve(cls, code) -> "SearchOperator":
        try:
            return cls(code)
        except ValueError:
            raise exceptions.DecodeError(f"'{code}' is not a valid search operator") from None


DEFAULT_PER_PAGE = 40
EXPORT_PER_PAGE = 9_999_999
LIST_SEPARATOR = ","
RELATION_SEPARATOR = "."
# Relation filters deeper than this are dropped
MAX_RELATION_DEPTH = 2
# `relation.id` filters match the related record's public identifier
RELATION_ID_FIELD = "id"
RELATION_EXTERNAL_ID_FIELD = "external_id"

# (verb, path, method, permission)
CRUD_ACTIONS = [
    ("GET", "", "search", "search"),
    ("GET", "/options", "options", "search"),
    ("POST", "", "create", "create"),
    ("GET", "/export-csv", "export_csv", "exportCsv"),
    ("GET", "/<id>", "read", "view"),
    ("PUT", "/<id>", "update", "update"),
    ("PATCH", "/<id>", "update", "update"),
    ("POST", "/<id>", "update", "update"),
    ("DELETE", "/<id>", "delete", "delete"),
    ("DELETE", "/<id>/soft", "soft_delete", "delete"),
    ("PATCH", "/<id>/restore", "restore", "restore"),
    ("PUT", "/<id>/restore", "restore", "restore"),
]
