"""Exceptions raised by the transfer engine and error classification."""

import asyncio
from typing import Iterable, Optional

from .models.transfer import ErrorKind, TransferError

# MySQL client error numbers that mean the server connection is gone
CONNECTION_LOST_ERRNOS = frozenset({2003, 2006, 2013, 2055})


class MigrationError(Exception):
    """Base error for the transfer engine."""


class ConfigurationError(MigrationError):
    """Invalid or incomplete configuration."""

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


class SourceUnavailable(MigrationError):
    """The source database could not be opened."""


class InvalidSelection(MigrationError):
    """The operator's selection cannot be turned into a session."""

    def __init__(
        self,
        message: str,
        unknown: Optional[Iterable[str]] = None,
        duplicates: Optional[Iterable[str]] = None
    ):
        self.unknown = sorted(unknown or [])
        self.duplicates = sorted(duplicates or [])
        super().__init__(message)


class InvalidState(MigrationError):
    """An operation was requested for an item in the wrong state."""


class SessionNotFound(MigrationError):
    """No session with the given id."""


class InvalidSnapshot(MigrationError):
    """A snapshot file to resume from cannot be read."""


class MissingDependencyError(MigrationError):
    """Raised when an optional database driver is not installed."""

    INSTALL_COMMANDS = {
        "pyodbc": "pip install pyodbc",
        "mysql-connector-python": "pip install mysql-connector-python",
    }

    def __init__(self, package: str, feature: Optional[str] = None):
        self.package = package
        self.feature = feature
        install_cmd = self.INSTALL_COMMANDS.get(package, f"pip install {package}")
        message = f"Missing dependency: {package} (install with: {install_cmd})"
        if feature:
            message = f"{message}, required for {feature}"
        super().__init__(message)


class TransferFailure(MigrationError):
    """
    A per-item failure with a known classification.

    Raised by copiers and caught by the worker, which stores it on the
    failing item. It never crosses item boundaries.
    """

    kind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, row_id: Optional[str] = None):
        self.row_id = row_id
        super().__init__(message)

    def to_error(self) -> TransferError:
        return TransferError(kind=self.kind, message=str(self), row_id=self.row_id)


class SchemaCreationError(TransferFailure):
    """Target rejected the translated schema."""
    kind = ErrorKind.SCHEMA_CREATION


class ConnectionLost(TransferFailure):
    """Network or socket failure mid-transfer."""
    kind = ErrorKind.CONNECTION_LOST


class BatchTimeout(TransferFailure):
    """A batch exceeded its allotted time."""
    kind = ErrorKind.TIMEOUT


class ConstraintViolation(TransferFailure):
    """Row data violates a target constraint."""
    kind = ErrorKind.CONSTRAINT_VIOLATION


def classify_error(exc: BaseException, schema_phase: bool = False) -> TransferError:
    """
    Map an arbitrary exception to a TransferError.

    Driver exceptions are recognised through the DB-API 2.0 class names so
    that pyodbc, mysql-connector and sqlite3 errors classify the same way.

    Args:
        exc: The exception raised while transferring an object
        schema_phase: True when the error came from creating the target schema

    Returns:
        TransferError with kind and message
    """
    if isinstance(exc, TransferFailure):
        return exc.to_error()

    message = str(exc) or type(exc).__name__

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return TransferError(kind=ErrorKind.TIMEOUT, message=message)

    names = {cls.__name__ for cls in type(exc).__mro__}
    errno = getattr(exc, "errno", None)

    if errno in CONNECTION_LOST_ERRNOS or isinstance(exc, ConnectionError) or "InterfaceError" in names:
        return TransferError(kind=ErrorKind.CONNECTION_LOST, message=message)

    if "IntegrityError" in names:
        return TransferError(kind=ErrorKind.CONSTRAINT_VIOLATION, message=message)

    if schema_phase and names & {"ProgrammingError", "OperationalError", "DatabaseError", "NotSupportedError"}:
        return TransferError(kind=ErrorKind.SCHEMA_CREATION, message=message)

    if "OperationalError" in names:
        return TransferError(kind=ErrorKind.CONNECTION_LOST, message=message)

    return TransferError(kind=ErrorKind.UNEXPECTED, message=f"{type(exc).__name__}: {message}")


_FAILURE_TYPES = {
    ErrorKind.SCHEMA_CREATION: SchemaCreationError,
    ErrorKind.CONNECTION_LOST: ConnectionLost,
    ErrorKind.TIMEOUT: BatchTimeout,
    ErrorKind.CONSTRAINT_VIOLATION: ConstraintViolation,
}


def failure_for(error: TransferError) -> TransferFailure:
    """Build the TransferFailure matching a classified error."""
    failure_type = _FAILURE_TYPES.get(error.kind, TransferFailure)
    return failure_type(error.message, row_id=error.row_id)
