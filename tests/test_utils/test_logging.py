"""Tests for the structured logging utilities."""

import logging
import time
from unittest.mock import MagicMock, patch

import pytest

from excel_archive_connector.utils.logging import (
    DiagnosticSink,
    LogContext,
    PerformanceMetrics,
    StructuredLogFormatter,
    StructuredLogger,
    clear_context,
    configure_logging,
    get_extra_context,
    get_logger,
    get_request_id,
    set_extra_context,
    set_request_id,
    timed_operation,
)
from tests.fixtures import RecordingSink


class TestContextVariables:
    """Tests for context variable management."""

    def setup_method(self) -> None:
        """Clear context before each test."""
        clear_context()

    def teardown_method(self) -> None:
        """Clear context after each test."""
        clear_context()

    def test_request_id_default_none(self) -> None:
        """Request ID should default to None."""
        assert get_request_id() is None

    def test_set_and_get_request_id(self) -> None:
        set_request_id("req-123")
        assert get_request_id() == "req-123"

    def test_extra_context_default_empty(self) -> None:
        assert get_extra_context() == {}

    def test_clear_context(self) -> None:
        """Clearing resets request ID and extra context."""
        set_request_id("req-123")
        set_extra_context({"schema": "users"})

        clear_context()

        assert get_request_id() is None
        assert get_extra_context() == {}


class TestPerformanceMetrics:
    """Tests for PerformanceMetrics dataclass."""

    def test_initialization(self) -> None:
        metrics = PerformanceMetrics(operation="test_op")
        assert metrics.operation == "test_op"
        assert metrics.duration_seconds == 0.0
        assert metrics.bytes_downloaded == 0
        assert metrics.files_extracted == 0
        assert metrics.rows_read == 0
        assert metrics.custom_metrics == {}

    def test_finish_calculates_duration(self) -> None:
        metrics = PerformanceMetrics(operation="test_op")
        time.sleep(0.01)
        metrics.finish()
        assert metrics.duration_seconds > 0
        assert metrics.end_time is not None

    def test_to_dict_with_all_fields(self) -> None:
        metrics = PerformanceMetrics(
            operation="archive.materialize",
            duration_seconds=1.5,
            bytes_downloaded=2048,
            files_extracted=3,
            rows_read=10,
            custom_metrics={"sheets": 2},
        )
        result = metrics.to_dict()

        assert result["operation"] == "archive.materialize"
        assert result["bytes_downloaded"] == 2048
        assert result["files_extracted"] == 3
        assert result["rows_read"] == 10
        assert result["custom_metrics"] == {"sheets": 2}

    def test_to_dict_excludes_zero_values(self) -> None:
        result = PerformanceMetrics(operation="test_op").to_dict()
        assert "bytes_downloaded" not in result
        assert "files_extracted" not in result
        assert "rows_read" not in result


class TestStructuredLogger:
    """Tests for StructuredLogger class."""

    def setup_method(self) -> None:
        self.logger = get_logger("test.structured")

    def test_get_logger_returns_structured_logger(self) -> None:
        assert isinstance(get_logger("test"), StructuredLogger)

    def test_logger_is_a_diagnostic_sink(self) -> None:
        assert isinstance(self.logger, DiagnosticSink)

    def test_logger_property(self) -> None:
        assert isinstance(self.logger.logger, logging.Logger)

    def test_build_message_with_kwargs(self) -> None:
        msg = self.logger._build_message("Test message", key="value", count=42)
        assert msg == "Test message | key=value, count=42"

    def test_build_message_without_kwargs(self) -> None:
        assert self.logger._build_message("Test message") == "Test message"

    @patch.object(logging.Logger, "info")
    def test_info_logging(self, mock_info: MagicMock) -> None:
        self.logger.info("Test info", status="ok")
        mock_info.assert_called_once()
        call_args = mock_info.call_args[0][0]
        assert "Test info" in call_args
        assert "status=ok" in call_args

    @patch.object(logging.Logger, "warning")
    def test_warning_logging(self, mock_warning: MagicMock) -> None:
        self.logger.warning("Test warning")
        mock_warning.assert_called_once()

    @patch.object(logging.Logger, "exception")
    def test_exception_logging(self, mock_exception: MagicMock) -> None:
        self.logger.exception("Test exception")
        mock_exception.assert_called_once()

    @patch.object(logging.Logger, "log")
    def test_record_uses_level_and_fields(self, mock_log: MagicMock) -> None:
        self.logger.record("archive.released", level=logging.WARNING, failures=2)

        mock_log.assert_called_once()
        level, message = mock_log.call_args[0]
        assert level == logging.WARNING
        assert message == "archive.released | failures=2"

    @patch.object(logging.Logger, "log")
    def test_record_defaults_to_info(self, mock_log: MagicMock) -> None:
        self.logger.record("archive.materialized")
        assert mock_log.call_args[0][0] == logging.INFO


class TestLogContext:
    """Tests for LogContext context manager."""

    def setup_method(self) -> None:
        clear_context()

    def teardown_method(self) -> None:
        clear_context()

    def test_context_sets_values(self) -> None:
        with LogContext(schema="users", table="Sheet1"):
            assert get_extra_context() == {"schema": "users", "table": "Sheet1"}

    def test_context_restores_values(self) -> None:
        set_extra_context({"original": "value"})

        with LogContext(schema="users"):
            assert get_extra_context()["schema"] == "users"

        assert get_extra_context() == {"original": "value"}

    def test_context_with_request_id(self) -> None:
        with LogContext(request_id="req-456", schema="users"):
            assert get_request_id() == "req-456"
            assert "request_id" not in get_extra_context()

        assert get_request_id() is None

    def test_nested_contexts(self) -> None:
        with LogContext(schema="outer"):
            with LogContext(schema="inner", table="t"):
                assert get_extra_context() == {"schema": "inner", "table": "t"}
            assert get_extra_context() == {"schema": "outer"}


class TestStructuredLogFormatter:
    def teardown_method(self) -> None:
        clear_context()

    def test_prefix_includes_context(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "hello", None, None)
        set_request_id("req-1")

        with LogContext(schema="users"):
            formatted = formatter.format(record)

        assert formatted == "[request_id=req-1 schema=users] hello"
        assert record.msg == "hello"

    def test_no_prefix_without_context(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "hello", None, None)
        assert formatter.format(record) == "hello"


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    def test_timed_operation_records_metrics(self) -> None:
        sink = RecordingSink()

        with timed_operation(sink, "archive.materialize") as metrics:
            metrics.files_extracted = 2

        assert len(sink.events) == 1
        event = sink.events[0]
        assert event.event == "Performance: archive.materialize"
        assert event.fields["operation"] == "archive.materialize"
        assert event.fields["files_extracted"] == 2
        assert "duration_seconds" in event.fields

    def test_timed_operation_records_on_error(self) -> None:
        sink = RecordingSink()

        with pytest.raises(ValueError), timed_operation(sink, "failing"):
            raise ValueError("boom")

        assert [event.event for event in sink.events] == ["Performance: failing"]

    def test_timed_operation_yields_metrics(self) -> None:
        with timed_operation(RecordingSink(), "op") as metrics:
            assert isinstance(metrics, PerformanceMetrics)


class TestConfigureLogging:
    def teardown_method(self) -> None:
        logging.getLogger().setLevel(logging.WARNING)

    def test_configure_logging_installs_structured_formatter(self) -> None:
        configure_logging(level="DEBUG")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[-1].formatter, StructuredLogFormatter)

    def test_configure_logging_plain_formatter(self) -> None:
        configure_logging(level=logging.INFO, use_structured_formatter=False)

        formatter = logging.getLogger().handlers[-1].formatter
        assert not isinstance(formatter, StructuredLogFormatter)
