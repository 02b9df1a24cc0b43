"""Logging for the connector.

Components never grab a process-wide logger on their own; they are handed a
``DiagnosticSink`` and call ``sink.record("archive.extracted", files=3)``.
``StructuredLogger`` is the production sink. It renders events as
``event | key=value, ...`` and lets ``StructuredLogFormatter`` prefix the
request id and whatever ``LogContext`` has bound (schema, table, ...).
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_bound_fields_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "bound_fields", default=None
)


def get_request_id() -> str | None:
    """Return the id of the HTTP request being served, if any."""
    return _request_id_var.get()


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_extra_context() -> dict[str, Any]:
    """Return the fields bound by enclosing ``LogContext`` blocks."""
    return _bound_fields_var.get() or {}


def set_extra_context(context: dict[str, Any]) -> None:
    _bound_fields_var.set(context)


def clear_context() -> None:
    """Forget the request id and all bound fields."""
    _request_id_var.set(None)
    _bound_fields_var.set(None)


@runtime_checkable
class DiagnosticSink(Protocol):
    """Receiver for named connector events."""

    def record(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        ...


@dataclass
class PerformanceMetrics:
    """Counters gathered while one connector operation runs.

    Attributes:
        operation: Operation name, e.g. ``archive.materialize`` or ``scan``.
        start_time: UTC time the operation began.
        end_time: UTC time ``finish`` was called.
        duration_seconds: Wall time between the two.
        bytes_downloaded: Size of the fetched archive body.
        files_extracted: Spreadsheets written to the workspace.
        rows_read: Data rows handed back to the caller.
        custom_metrics: Anything else worth reporting.
    """

    operation: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    bytes_downloaded: int = 0
    files_extracted: int = 0
    rows_read: int = 0
    custom_metrics: dict[str, Any] = field(default_factory=dict)

    def finish(self) -> None:
        self.end_time = datetime.now(UTC)
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Event fields for this measurement; zero counters are left out."""
        fields: dict[str, Any] = {
            "operation": self.operation,
            "duration_seconds": self.duration_seconds,
        }
        counters = {
            "bytes_downloaded": self.bytes_downloaded,
            "files_extracted": self.files_extracted,
            "rows_read": self.rows_read,
        }
        fields.update({name: value for name, value in counters.items() if value > 0})
        if self.custom_metrics:
            fields["custom_metrics"] = self.custom_metrics
        return fields


class StructuredLogFormatter(logging.Formatter):
    """Formatter that prepends ``[request_id=... schema=...]`` to each message.

    The prefix is built from the context variables at format time, so records
    emitted inside a ``LogContext`` carry the schema and table being read.
    """

    def format(self, record: logging.LogRecord) -> str:
        tags = [f"{key}={value}" for key, value in get_extra_context().items()]
        request_id = get_request_id()
        if request_id:
            tags.insert(0, f"request_id={request_id}")
        if not tags:
            return super().format(record)

        message = record.msg
        record.msg = f"[{' '.join(tags)}] {message}"
        try:
            return super().format(record)
        finally:
            record.msg = message


class StructuredLogger:
    """A ``logging.Logger`` wrapper that takes keyword fields.

    Also satisfies ``DiagnosticSink``, which is how services, the
    connector facade and the API share a single logging path.
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _build_message(self, message: str, **fields: Any) -> str:
        if not fields:
            return message
        rendered = ", ".join(f"{key}={value}" for key, value in fields.items())
        return f"{message} | {rendered}"

    def debug(self, message: str, **fields: Any) -> None:
        self._logger.debug(self._build_message(message, **fields))

    def info(self, message: str, **fields: Any) -> None:
        self._logger.info(self._build_message(message, **fields))

    def warning(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._logger.warning(self._build_message(message, **fields), exc_info=exc_info)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._logger.error(self._build_message(message, **fields), exc_info=exc_info)

    def exception(self, message: str, **fields: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._logger.exception(self._build_message(message, **fields))

    def record(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        """Emit a connector event such as ``workbook.opened`` at ``level``."""
        self._logger.log(level, self._build_message(event, **fields))


class LogContext:
    """Bind fields to every record logged inside the block.

    A ``request_id`` keyword replaces the request id instead of becoming a
    field. Blocks nest; leaving one restores what the outer block had bound.

        with LogContext(schema="users", table="Sheet1"):
            cursor.advance()
    """

    def __init__(self, **fields: Any) -> None:
        self._request_id = fields.pop("request_id", None)
        self._fields = fields
        self._saved_fields: dict[str, Any] = {}
        self._saved_request_id: str | None = None

    def __enter__(self) -> "LogContext":
        self._saved_fields = dict(get_extra_context())
        self._saved_request_id = get_request_id()
        if self._request_id is not None:
            set_request_id(self._request_id)
        set_extra_context({**self._saved_fields, **self._fields})
        return self

    def __exit__(self, *args: Any) -> None:
        set_extra_context(self._saved_fields)
        set_request_id(self._saved_request_id)


@contextmanager
def timed_operation(
    sink: DiagnosticSink,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Measure the enclosed block and record ``Performance: <operation>``.

    The event is recorded even when the block raises. Callers fill in the
    counters on the yielded metrics:

        with timed_operation(sink, "archive.materialize") as metrics:
            metrics.bytes_downloaded = len(body)
    """
    metrics = PerformanceMetrics(operation=operation)
    try:
        yield metrics
    finally:
        metrics.finish()
        sink.record(f"Performance: {operation}", **metrics.to_dict())


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    use_structured_formatter: bool = True,
) -> None:
    """Replace the root logger's handlers with a single stderr handler.

    Args:
        level: Level as an int or a name such as ``"DEBUG"``.
        format_string: Record layout; ``DEFAULT_FORMAT`` when omitted.
        use_structured_formatter: Prefix records with request and table
            context via ``StructuredLogFormatter``.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    formatter_class = (
        StructuredLogFormatter if use_structured_formatter else logging.Formatter
    )
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter_class(format_string or DEFAULT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(level)
    root.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Logger for module ``name``; also the default sink for services."""
    return StructuredLogger(name)
