"""Tests for the centralized exception classes."""

from excel_archive_connector.utils.exceptions import (
    ArchiveTooLargeError,
    CellError,
    ConfigurationError,
    ConnectorError,
    ErrorCode,
    ErrorContext,
    FileOpenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ReadError,
    SchemaNotFoundError,
    TableNotFoundError,
    TransportError,
    TypeMismatchError,
    wrap_unexpected,
)


class TestErrorCode:
    """Tests for ErrorCode enumeration."""

    def test_error_codes_are_unique(self) -> None:
        """All error codes should have unique values."""
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))

    def test_error_code_format(self) -> None:
        """Error codes should follow Exxxx format."""
        for code in ErrorCode:
            assert code.value.startswith("E")
            assert len(code.value) == 5
            assert code.value[1:].isdigit()

    def test_archive_errors_start_with_e1(self) -> None:
        for code in (
            ErrorCode.DOWNLOAD_FAILED,
            ErrorCode.ARCHIVE_TOO_LARGE,
            ErrorCode.ARCHIVE_CORRUPT,
            ErrorCode.FILE_OPEN_FAILED,
            ErrorCode.UNSUPPORTED_FORMAT,
        ):
            assert code.value.startswith("E1")

    def test_read_errors_start_with_e3(self) -> None:
        assert ErrorCode.READ_FAILED.value.startswith("E3")
        assert ErrorCode.TYPE_MISMATCH.value.startswith("E3")


class TestErrorContext:
    def test_to_details_omits_unknown_fields(self) -> None:
        context = ErrorContext(url="https://host/a.zip", schema="users")
        assert context.to_details() == {"url": "https://host/a.zip", "schema": "users"}

    def test_merged_returns_copy(self) -> None:
        context = ErrorContext(schema="users")
        merged = context.merged(table="Sheet1", row=3)

        assert merged.table == "Sheet1"
        assert merged.row == 3
        assert merged.schema == "users"
        assert context.table is None


class TestConnectorError:
    """Tests for the base ConnectorError class."""

    def test_basic_error(self) -> None:
        error = ConnectorError("Something went wrong")
        assert error.message == "Something went wrong"
        assert error.error_code == ErrorCode.INTERNAL_ERROR
        assert error.details == {}
        assert error.http_status == 500

    def test_str_includes_code(self) -> None:
        error = ConnectorError("Test error", ErrorCode.READ_FAILED)
        assert str(error) == "[E3001] Test error"

    def test_context_folds_into_details(self) -> None:
        error = ConnectorError(
            "Oops",
            context=ErrorContext(schema="users", table="Sheet1"),
            details={"extra": 1},
        )
        assert error.details == {"schema": "users", "table": "Sheet1", "extra": 1}

    def test_to_dict(self) -> None:
        error = ConnectorError("Oops", ErrorCode.INVALID_STATE, details={"k": "v"})
        assert error.to_dict() == {
            "error_code": "E9003",
            "message": "Oops",
            "details": {"k": "v"},
        }

    def test_to_dict_without_details(self) -> None:
        assert "details" not in ConnectorError("Oops").to_dict()

    def test_get_http_status(self) -> None:
        assert TypeMismatchError("bad").get_http_status() == 422


class TestTransportErrors:
    def test_transport_error_records_status(self) -> None:
        error = TransportError("HTTP 404", status_code=404)
        assert error.status_code == 404
        assert error.details["status_code"] == 404
        assert error.error_code == ErrorCode.DOWNLOAD_FAILED
        assert error.http_status == 502

    def test_transport_error_without_status(self) -> None:
        error = TransportError("Connection refused")
        assert error.status_code is None
        assert "status_code" not in error.details

    def test_archive_too_large(self) -> None:
        error = ArchiveTooLargeError(2048, 1024, ErrorContext(url="https://h/a.zip"))

        assert isinstance(error, TransportError)
        assert error.error_code == ErrorCode.ARCHIVE_TOO_LARGE
        assert error.http_status == 413
        assert error.details["size_bytes"] == 2048
        assert error.details["max_size_bytes"] == 1024
        assert error.details["url"] == "https://h/a.zip"
        assert "2048" in error.message


class TestFileOpenError:
    def test_file_name_in_details(self) -> None:
        error = FileOpenError("Cannot parse", file_name="users.xlsx")
        assert error.file_name == "users.xlsx"
        assert error.details["file_name"] == "users.xlsx"
        assert error.error_code == ErrorCode.FILE_OPEN_FAILED

    def test_custom_code(self) -> None:
        error = FileOpenError("Corrupt", error_code=ErrorCode.ARCHIVE_CORRUPT)
        assert error.error_code == ErrorCode.ARCHIVE_CORRUPT


class TestNotFoundErrors:
    def test_schema_not_found(self) -> None:
        error = SchemaNotFoundError("sales", ErrorContext(url="https://h/a.zip"))

        assert isinstance(error, NotFoundError)
        assert error.http_status == 404
        assert error.error_code == ErrorCode.SCHEMA_NOT_FOUND
        assert error.details == {"url": "https://h/a.zip", "schema": "sales"}

    def test_table_not_found(self) -> None:
        error = TableNotFoundError("sales", "Q1")

        assert isinstance(error, NotFoundError)
        assert error.error_code == ErrorCode.TABLE_NOT_FOUND
        assert error.details == {"schema": "sales", "table": "Q1"}
        assert "sales.Q1" in error.message


class TestCellErrors:
    def test_cell_value_in_details(self) -> None:
        error = ReadError(
            "Cannot read",
            context=ErrorContext(column="Amount", row=4, cell_address="B4"),
            cell_value="abc",
        )

        assert isinstance(error, CellError)
        assert error.error_code == ErrorCode.READ_FAILED
        assert error.details["cell_value"] == "abc"
        assert error.details["cell_address"] == "B4"
        assert error.details["row"] == 4

    def test_type_mismatch(self) -> None:
        error = TypeMismatchError("not a whole number")
        assert isinstance(error, CellError)
        assert error.error_code == ErrorCode.TYPE_MISMATCH
        assert error.http_status == 422


class TestInternalErrors:
    def test_invalid_state(self) -> None:
        error = InvalidStateError("Cursor is closed")
        assert error.http_status == 409
        assert error.error_code == ErrorCode.INVALID_STATE

    def test_configuration_error(self) -> None:
        error = ConfigurationError("Bad value", setting="zip_url")
        assert error.details["setting"] == "zip_url"
        assert error.error_code == ErrorCode.CONFIGURATION_ERROR

    def test_internal_error_keeps_cause(self) -> None:
        cause = KeyError("x")
        error = InternalError("Unexpected", cause=cause)
        assert error.__cause__ is cause
        assert error.details["cause_type"] == "KeyError"

    def test_wrap_unexpected_passes_connector_errors(self) -> None:
        original = TableNotFoundError("a", "b")
        assert wrap_unexpected(original, "ignored") is original

    def test_wrap_unexpected_wraps_other_errors(self) -> None:
        cause = ValueError("boom")
        wrapped = wrap_unexpected(cause, "Listing failed", ErrorContext(schema="a"))

        assert isinstance(wrapped, InternalError)
        assert wrapped.message == "Listing failed: boom"
        assert wrapped.__cause__ is cause
        assert wrapped.details["schema"] == "a"
