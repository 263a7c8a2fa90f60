"""
Structured error kinds shared by the data client, the auth client and the API.
"""
from enum import Enum
from typing import Optional

from sqlalchemy import exc as sa_exc


class ErrorKind(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    AUTH = "auth"
    VALIDATION = "validation"
    DATABASE = "database"
    UNKNOWN = "unknown"


class RemoteError(Exception):
    """Failure reported by the data or auth client."""

    def __init__(self, kind: ErrorKind, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code

    def __repr__(self):
        return f"<RemoteError(kind={self.kind.value}, message='{self.message}')>"


def validation_error(message: str) -> RemoteError:
    return RemoteError(ErrorKind.VALIDATION, message)


def not_found(message: str) -> RemoteError:
    return RemoteError(ErrorKind.NOT_FOUND, message)


# status code and generic user-facing message per kind
ERROR_RESPONSES = {
    ErrorKind.NETWORK: (503, "Network error. Please check your internet connection."),
    ErrorKind.TIMEOUT: (504, "Request timed out. Please try again."),
    ErrorKind.PERMISSION: (403, "You do not have permission to perform this action."),
    ErrorKind.NOT_FOUND: (404, "The requested resource was not found."),
    ErrorKind.CONFLICT: (409, "This resource already exists."),
    ErrorKind.AUTH: (401, "Invalid login credentials. Please try again."),
    ErrorKind.VALIDATION: (400, "Invalid request."),
    ErrorKind.DATABASE: (500, "Database error. Please try again later."),
    ErrorKind.UNKNOWN: (500, "An unexpected error occurred"),
}

# Kinds whose own message is safe and more useful to show than the generic one
SPECIFIC_MESSAGE_KINDS = {
    ErrorKind.VALIDATION,
    ErrorKind.NOT_FOUND,
    ErrorKind.AUTH,
    ErrorKind.PERMISSION,
    ErrorKind.CONFLICT,
}


def response_for(error: RemoteError):
    """Return (status_code, message) for an error."""
    status_code, generic = ERROR_RESPONSES[error.kind]
    if error.kind in SPECIFIC_MESSAGE_KINDS and error.message:
        return status_code, error.message
    return status_code, generic


def classify_db_error(error: Exception) -> RemoteError:
    """Translate a SQLAlchemy exception into a RemoteError by type."""
    if isinstance(error, RemoteError):
        return error
    if isinstance(error, sa_exc.NoResultFound):
        return RemoteError(ErrorKind.NOT_FOUND, "Row not found")
    if isinstance(error, sa_exc.IntegrityError):
        return RemoteError(ErrorKind.CONFLICT, "Conflicting row", code=_code(error))
    if isinstance(error, sa_exc.TimeoutError):
        return RemoteError(ErrorKind.TIMEOUT, "Timed out waiting for a database connection")
    if isinstance(error, (sa_exc.OperationalError, sa_exc.DisconnectionError)):
        return RemoteError(ErrorKind.NETWORK, "Database unreachable", code=_code(error))
    if isinstance(error, sa_exc.SQLAlchemyError):
        return RemoteError(ErrorKind.DATABASE, "Database error", code=_code(error))
    return RemoteError(ErrorKind.UNKNOWN, str(error) or error.__class__.__name__)


def _code(error: sa_exc.SQLAlchemyError) -> Optional[str]:
    orig = getattr(error, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    return pgcode or getattr(error, "code", None)
