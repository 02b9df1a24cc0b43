"""Centralized exception classes for the Excel archive connector.

This module provides a hierarchy of custom exceptions with error codes,
HTTP status code mapping, and structured error details for consistent
error handling throughout the connector.

Exception Hierarchy:
    ConnectorError (base)
    ├── TransportError
    │   └── ArchiveTooLargeError
    ├── FileOpenError
    ├── NotFoundError
    │   ├── SchemaNotFoundError
    │   └── TableNotFoundError
    ├── CellError
    │   ├── ReadError
    │   └── TypeMismatchError
    ├── InvalidStateError
    ├── ConfigurationError
    └── InternalError

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used by the connector.

    Error codes are grouped by category:
    - E1xxx: Archive transport and file errors
    - E2xxx: Catalog resolution errors
    - E3xxx: Row and cell read errors
    - E9xxx: Internal/unexpected errors
    """

    # Archive / file errors (E1xxx)
    DOWNLOAD_FAILED = "E1001"
    ARCHIVE_TOO_LARGE = "E1002"
    ARCHIVE_CORRUPT = "E1003"
    FILE_OPEN_FAILED = "E1004"
    UNSUPPORTED_FORMAT = "E1005"

    # Catalog errors (E2xxx)
    SCHEMA_NOT_FOUND = "E2001"
    TABLE_NOT_FOUND = "E2002"

    # Read errors (E3xxx)
    READ_FAILED = "E3001"
    TYPE_MISMATCH = "E3002"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    CONFIGURATION_ERROR = "E9002"
    INVALID_STATE = "E9003"


class HTTPStatusMixin:
    """Mixin that provides HTTP status code for exceptions.

    This mixin allows exceptions to declare their appropriate HTTP status code
    for API responses. Subclasses should set the `http_status` class attribute.
    """

    http_status: int = 500

    def get_http_status(self) -> int:
        """Get the HTTP status code for this exception.

        Returns:
            HTTP status code appropriate for this error.
        """
        return self.http_status


@dataclass
class ErrorContext:
    """Where in the archive an error happened.

    Every field is optional; only the known ones end up in error details.
    """

    url: str | None = None
    schema: str | None = None
    table: str | None = None
    sheet: str | None = None
    column: str | None = None
    ordinal: int | None = None
    row: int | None = None
    cell_address: str | None = None
    requested_type: str | None = None

    def merged(self, **overrides: Any) -> ErrorContext:
        """Return a copy with the given fields replaced."""
        values = asdict(self)
        values.update(overrides)
        return ErrorContext(**values)

    def to_details(self) -> dict[str, Any]:
        """Known fields as a details dictionary."""
        return {
            key: value for key, value in asdict(self).items() if value is not None
        }


class ConnectorError(Exception, HTTPStatusMixin):
    """Base exception for all connector errors.

    All custom exceptions in the connector inherit from this class.
    It provides:
    - Unique error codes for programmatic handling
    - HTTP status code mapping for API responses
    - Structured error details (url, schema, table, sheet, column, row, ...)

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Dictionary with additional error details.
        http_status: HTTP status code for API responses (default 500).
    """

    http_status: int = 500
    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            context: Location of the failure inside the archive.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = context or ErrorContext()
        self.details = {**self.context.to_details(), **(details or {})}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for API responses.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# Archive / File Errors (E1xxx)
# =============================================================================


class TransportError(ConnectorError):
    """Raised when the archive cannot be downloaded.

    Covers DNS failures, refused connections, timeouts and non-success
    HTTP status codes.
    """

    http_status: int = 502
    default_code = ErrorCode.DOWNLOAD_FAILED

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the upstream HTTP status, if any.

        Args:
            message: Error message.
            status_code: HTTP status returned by the archive host.
            error_code: Error code.
            context: Error location.
            details: Additional details.
        """
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, error_code, context, details)
        self.status_code = status_code


class ArchiveTooLargeError(TransportError):
    """Raised when the archive exceeds the configured download cap."""

    http_status: int = 413

    def __init__(
        self,
        size: int,
        max_size: int,
        context: ErrorContext | None = None,
    ) -> None:
        """Initialize with size information.

        Args:
            size: Bytes received so far.
            max_size: Maximum allowed size in bytes.
            context: Error location.
        """
        super().__init__(
            f"Archive size ({size} bytes) exceeds maximum "
            f"allowed size ({max_size} bytes)",
            error_code=ErrorCode.ARCHIVE_TOO_LARGE,
            context=context,
            details={"size_bytes": size, "max_size_bytes": max_size},
        )
        self.size = size
        self.max_size = max_size


class FileOpenError(ConnectorError):
    """Raised when an archive entry is missing or cannot be parsed."""

    http_status: int = 502
    default_code = ErrorCode.FILE_OPEN_FAILED

    def __init__(
        self,
        message: str,
        file_name: str | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the file involved.

        Args:
            message: Error message.
            file_name: Archive entry (with extension) that failed.
            error_code: Error code.
            context: Error location.
            details: Additional details.
        """
        details = details or {}
        if file_name:
            details["file_name"] = file_name
        super().__init__(message, error_code, context, details)
        self.file_name = file_name


# =============================================================================
# Catalog Errors (E2xxx)
# =============================================================================


class NotFoundError(ConnectorError):
    """Base class for schema/table resolution failures."""

    http_status: int = 404
    default_code = ErrorCode.TABLE_NOT_FOUND


class SchemaNotFoundError(NotFoundError):
    """Raised when no spreadsheet in the archive matches a schema name."""

    default_code = ErrorCode.SCHEMA_NOT_FOUND

    def __init__(self, schema: str, context: ErrorContext | None = None) -> None:
        context = (context or ErrorContext()).merged(schema=schema)
        super().__init__(f"Schema '{schema}' not found in archive", context=context)


class TableNotFoundError(NotFoundError):
    """Raised when a sheet is missing from a spreadsheet."""

    def __init__(
        self, schema: str, table: str, context: ErrorContext | None = None
    ) -> None:
        context = (context or ErrorContext()).merged(schema=schema, table=table)
        super().__init__(
            f"Table '{schema}.{table}' not found in archive", context=context
        )


# =============================================================================
# Read Errors (E3xxx)
# =============================================================================


class CellError(ConnectorError):
    """Base class for failures tied to one cell of the current row."""

    http_status: int = 502
    default_code = ErrorCode.READ_FAILED

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        cell_value: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with a rendering of the offending cell.

        Args:
            message: Error message.
            context: Error location.
            cell_value: Best-effort textual rendering of the cell.
            details: Additional details.
        """
        details = details or {}
        if cell_value is not None:
            details["cell_value"] = cell_value
        super().__init__(message, context=context, details=details)
        self.cell_value = cell_value


class ReadError(CellError):
    """Raised when a row or cell cannot be extracted."""


class TypeMismatchError(CellError):
    """Raised when well-formed cell content cannot become the requested type."""

    http_status: int = 422
    default_code = ErrorCode.TYPE_MISMATCH


# =============================================================================
# Internal Errors (E9xxx)
# =============================================================================


class InvalidStateError(ConnectorError):
    """Raised when an object is used outside its lifecycle.

    Examples are listing an archive before it was materialized or reading a
    value from a cursor that is not positioned on a row.
    """

    http_status: int = 409
    default_code = ErrorCode.INVALID_STATE


class ConfigurationError(ConnectorError):
    """Raised when connector configuration is unusable."""

    default_code = ErrorCode.CONFIGURATION_ERROR

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details=details)


class InternalError(ConnectorError):
    """Wraps any unanticipated fault.

    The original exception is always kept as ``__cause__`` and its type is
    recorded in the details.
    """

    default_code = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        cause: BaseException,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            details={"cause_type": type(cause).__name__},
        )
        self.__cause__ = cause


def wrap_unexpected(
    exc: BaseException, message: str, context: ErrorContext | None = None
) -> ConnectorError:
    """Return connector errors unchanged and wrap everything else.

    Args:
        exc: The exception that was caught.
        message: Description of the failed operation.
        context: Error location.

    Returns:
        ``exc`` itself if it is a ConnectorError, otherwise an InternalError.
    """
    if isinstance(exc, ConnectorError):
        return exc
    return InternalError(f"{message}: {exc}", cause=exc, context=context)
