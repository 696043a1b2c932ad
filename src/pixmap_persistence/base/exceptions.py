from enum import Enum
from typing import Any, Optional, Sequence


class ErrorCode(str, Enum):
    """Classification attached to every failure leaving the persistence core."""

    DUPLICATE_KEY = "DUPLICATE_KEY"
    NOT_FOUND = "NOT_FOUND"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    INFRASTRUCTURE_ERROR = "INFRASTRUCTURE_ERROR"
    TIMEOUT = "TIMEOUT"
    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"


class InvalidStateError(Exception):
    """Exception raised when a transaction operation is called in the wrong state."""

    def __init__(self, message: str = "The database context is in an invalid state."):
        super().__init__(message)


class DatabaseError(Exception):
    """
    Exception raised by the database context when the SQL engine fails.

    The engine error is classified exactly once, when it is wrapped, so callers
    can branch on `kind` instead of inspecting driver messages.

    Attributes:
        sql: The statement that failed, if any.
        params: The bound positional parameters.
        kind: The ErrorCode the engine failure was classified as.
    """

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        params: Sequence[Any] = (),
        kind: ErrorCode = ErrorCode.DATABASE_ERROR,
    ):
        super().__init__(message)
        self.sql = sql
        self.params = tuple(params)
        self.kind = kind


class RepositoryException(Exception):
    """
    Base exception raised at the repository boundary.

    Attributes:
        code: The ErrorCode describing the failure.
        operation: The repository operation that failed (e.g. "GetByKey").
        entity: The entity name the repository manages.
    """

    default_code = ErrorCode.INFRASTRUCTURE_ERROR
    default_message = "The repository operation failed."

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        operation: str = "",
        entity: str = "",
    ):
        super().__init__(message or self.default_message)
        self.code = code or self.default_code
        self.operation = operation
        self.entity = entity


class ObjectNotFoundException(RepositoryException):
    """Exception raised when an object with the specified identifier does not exist."""

    default_code = ErrorCode.NOT_FOUND
    default_message = "The requested object was not found."


class KeyAlreadyExistsException(RepositoryException):
    """Exception raised when trying to insert an entity that would violate a unique constraint."""

    default_code = ErrorCode.DUPLICATE_KEY
    default_message = "An object with the same key already exists."


class ObjectValidationException(RepositoryException):
    default_code = ErrorCode.VALIDATION_ERROR
    default_message = "Object validation failed"


class InfrastructureException(RepositoryException):
    default_code = ErrorCode.INFRASTRUCTURE_ERROR
