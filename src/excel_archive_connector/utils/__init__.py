"""Utilities package for the Excel archive connector.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from excel_archive_connector.utils.exceptions import (
    ConnectorError,
    ErrorCode,
    ErrorContext,
    FileOpenError,
    HTTPStatusMixin,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ReadError,
    TransportError,
    TypeMismatchError,
)
from excel_archive_connector.utils.logging import (
    DiagnosticSink,
    LogContext,
    StructuredLogger,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Exceptions
    "ConnectorError",
    "ErrorCode",
    "ErrorContext",
    "FileOpenError",
    "HTTPStatusMixin",
    "InternalError",
    "InvalidStateError",
    "NotFoundError",
    "ReadError",
    "TransportError",
    "TypeMismatchError",
    # Logging
    "DiagnosticSink",
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
