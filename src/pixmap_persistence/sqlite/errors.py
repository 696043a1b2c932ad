import logging

import aiosqlite
from pydantic import ValidationError

from pixmap_persistence.base.exceptions import (DatabaseError, ErrorCode,
                                                InfrastructureException,
                                                InvalidStateError,
                                                KeyAlreadyExistsException,
                                                ObjectNotFoundException,
                                                ObjectValidationException,
                                                RepositoryException)

base_logger = logging.getLogger(__name__)

# Exceptions the SQL boundary wraps into DatabaseError. aiosqlite raises
# ValueError when a statement is issued on a closed connection.
ENGINE_ERRORS = (aiosqlite.Error, ValueError)

_EXCEPTION_BY_CODE = {
    ErrorCode.NOT_FOUND: ObjectNotFoundException,
    ErrorCode.DUPLICATE_KEY: KeyAlreadyExistsException,
    ErrorCode.VALIDATION_ERROR: ObjectValidationException,
    ErrorCode.INFRASTRUCTURE_ERROR: InfrastructureException,
}


def classify_engine_error(error: BaseException) -> ErrorCode:
    """
    Classify a driver exception into an ErrorCode.

    Uses the SQLite extended result code name when the interpreter exposes
    it and falls back to the message text otherwise.
    """
    if isinstance(error, ValueError) and not isinstance(error, aiosqlite.Error):
        return ErrorCode.INFRASTRUCTURE_ERROR

    name = getattr(error, "sqlite_errorname", "") or ""
    message = str(error).lower()

    if isinstance(error, aiosqlite.IntegrityError):
        if name in ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"):
            return ErrorCode.DUPLICATE_KEY
        if "unique constraint failed" in message:
            return ErrorCode.DUPLICATE_KEY
        return ErrorCode.CONSTRAINT_VIOLATION

    if name.startswith(("SQLITE_BUSY", "SQLITE_LOCKED")):
        return ErrorCode.TIMEOUT
    if name.startswith(("SQLITE_READONLY", "SQLITE_AUTH", "SQLITE_PERM")):
        return ErrorCode.AUTHORIZATION_ERROR

    if isinstance(error, aiosqlite.OperationalError):
        if "locked" in message or "busy" in message:
            return ErrorCode.TIMEOUT
        if "readonly" in message or "not authorized" in message:
            return ErrorCode.AUTHORIZATION_ERROR

    return ErrorCode.DATABASE_ERROR


def map_repository_error(
    error: Exception, operation: str, entity: str
) -> RepositoryException:
    """
    Translate any failure reaching a repository boundary into a RepositoryException.

    Database errors keep the kind assigned when the context wrapped them.
    InvalidStateError is a programming error and is never translated.
    """
    if isinstance(error, InvalidStateError):
        raise error
    if isinstance(error, RepositoryException):
        if not error.operation:
            error.operation = operation
        if not error.entity:
            error.entity = entity
        return error

    if isinstance(error, DatabaseError):
        code = error.kind
    elif isinstance(error, TimeoutError):
        code = ErrorCode.TIMEOUT
    elif isinstance(error, PermissionError):
        code = ErrorCode.AUTHORIZATION_ERROR
    elif isinstance(error, (ValidationError, ValueError)):
        code = ErrorCode.VALIDATION_ERROR
    else:
        code = ErrorCode.INFRASTRUCTURE_ERROR

    base_logger.debug(f"Mapped {type(error).__name__} from {entity}.{operation} to {code.value}")
    exception_type = _EXCEPTION_BY_CODE.get(code, RepositoryException)
    message = f"{entity} {operation} failed ({code.value}): {error}"
    return exception_type(message, code=code, operation=operation, entity=entity)
