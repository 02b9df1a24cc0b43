"""Pydantic models for API requests and responses."""

from typing import Any

from pydantic import BaseModel, Field

from excel_archive_connector.handles import (
    ColumnHandle,
    ColumnType,
    SchemaTableName,
    WorkUnit,
)
from excel_archive_connector.utils.exceptions import ErrorCode


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: str
    version: str


class SchemaListResponse(BaseModel):
    """Response model for schema listing."""

    schemas: list[str] = Field(
        ..., description="Spreadsheet file names without extension"
    )


class TableRef(BaseModel):
    """A (schema, table) pair."""

    schema_name: str = Field(..., description="Spreadsheet file name without extension")
    table_name: str = Field(..., description="Sheet name")

    @classmethod
    def from_schema_table_name(cls, name: SchemaTableName) -> "TableRef":
        return cls(schema_name=name.schema_name, table_name=name.table_name)


class TableListResponse(BaseModel):
    """Response model for table listing."""

    tables: list[TableRef]


class ColumnModel(BaseModel):
    """A column of a table."""

    name: str = Field(..., description="Column name from the header row")
    type: ColumnType = Field(..., description="Output type of the column")
    ordinal: int = Field(..., ge=0, description="Zero-based header position")

    @classmethod
    def from_handle(cls, column: ColumnHandle) -> "ColumnModel":
        return cls(name=column.name, type=column.column_type, ordinal=column.ordinal)


class ColumnListResponse(BaseModel):
    """Response model for column listing."""

    schema_name: str
    table_name: str
    columns: list[ColumnModel]


class SplitRequest(BaseModel):
    """Request model for work unit planning."""

    schema_name: str = Field(..., min_length=1)
    table_name: str = Field(..., min_length=1)


class WorkUnitModel(BaseModel):
    """One independently executable scan."""

    schema_name: str
    table_name: str
    addresses: list[str] = Field(default_factory=list)

    @classmethod
    def from_work_unit(cls, work_unit: WorkUnit) -> "WorkUnitModel":
        return cls(
            schema_name=work_unit.table.schema_name,
            table_name=work_unit.table.table_name,
            addresses=list(work_unit.addresses),
        )


class SplitResponse(BaseModel):
    """Response model for work unit planning."""

    work_units: list[WorkUnitModel]


class ColumnRequest(BaseModel):
    """A column requested for a scan.

    When ``ordinal`` is omitted the column is looked up by name in the
    table's header.
    """

    name: str = Field(..., min_length=1)
    type: ColumnType = Field(default=ColumnType.VARCHAR)
    ordinal: int | None = Field(default=None, ge=0)


class ScanRequest(BaseModel):
    """Request model for reading a table."""

    schema_name: str = Field(..., min_length=1)
    table_name: str = Field(..., min_length=1)
    columns: list[ColumnRequest] | None = Field(
        default=None, description="Columns to read; all columns when omitted"
    )
    limit: int | None = Field(
        default=None, ge=0, description="Maximum number of rows to return"
    )


class ScanResponse(BaseModel):
    """Response model for a table read."""

    schema_name: str
    table_name: str
    columns: list[ColumnModel]
    rows: list[list[Any]]
    row_count: int


class ErrorDetail(BaseModel):
    """Error detail model for API error responses.

    This model provides structured error responses with:
    - Human-readable error message
    - Machine-readable error code
    - Optional additional details for debugging
    - Optional request ID for correlation
    """

    detail: str = Field(..., description="Human-readable error message")
    error_code: str | None = Field(
        default=None,
        description="Machine-readable error code (e.g., 'E2001')",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details for debugging",
    )
    request_id: str | None = Field(
        default=None,
        description="Request ID for error correlation",
    )

    @classmethod
    def from_error_code(
        cls,
        error_code: ErrorCode,
        detail: str,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> "ErrorDetail":
        """Create an ErrorDetail from an ErrorCode enum value.

        Args:
            error_code: The error code enum.
            detail: Human-readable error message.
            details: Optional additional details.
            request_id: Optional request ID.

        Returns:
            ErrorDetail instance.
        """
        return cls(
            detail=detail,
            error_code=error_code.value,
            details=details,
            request_id=request_id,
        )
