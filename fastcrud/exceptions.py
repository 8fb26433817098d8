class CrudError(Exception):
    """Generic base exception for all crud errors"""


class DecodeError(CrudError, ValueError):
    """Raised when a filter operator code is not a recognised search operator"""


class DateParseError(CrudError, ValueError):
    """Raised when a date or month token in a range filter cannot be parsed"""


class InvalidSchema(CrudError):
    """Raised when a request does not match the database schema"""


class UnknownRelation(InvalidSchema):
    """Raised when a relation path names a relationship the model does not have"""


class InvalidIdentifier(CrudError):
    """Raised when a record identifier is not in the expected format"""


class RecordNotFound(CrudError):
    """Raised when no record matches the requested identifier"""


class EmptyPayload(CrudError):
    """Raised when a write request carries no data"""


class MissingParameter(CrudError):
    """Raised when a required request parameter is missing"""

    def __init__(self, name: str) -> None:
        super().__init__(f"Parameter '{name}' is required")
        self.name = name


class ColumnNotFound(CrudError):
    """Raised when the model has no attribute for a requested column"""

    def __init__(self, name: str) -> None:
        super().__init__(f"Column '{name}' not found")
        self.name = name


class ValidationFailed(CrudError):
    """Raised when a payload fails schema validation"""

    def __init__(self, errors: list) -> None:
        super().__init__("Validation failed")
        self.errors = errors


class Forbidden(CrudError):
    """Raised when the caller lacks the ability required by a route"""


class UnsupportedDepthWarning(UserWarning):
    """Issued when a relation filter goes deeper than two hops and is dropped"""
