"""FastAPI application exposing the Excel archive connector."""

import uuid
from datetime import UTC, datetime
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from excel_archive_connector import __version__
from excel_archive_connector.config import Settings, validate_settings_on_startup
from excel_archive_connector.connector import ExcelConnector
from excel_archive_connector.handles import ColumnHandle, TableHandle
from excel_archive_connector.models import (
    ColumnListResponse,
    ColumnModel,
    ColumnRequest,
    ErrorDetail,
    HealthResponse,
    ScanRequest,
    ScanResponse,
    SchemaListResponse,
    SplitRequest,
    SplitResponse,
    TableListResponse,
    TableRef,
    WorkUnitModel,
)
from excel_archive_connector.utils.exceptions import ConnectorError, ErrorCode
from excel_archive_connector.utils.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Connector settings; loaded from the environment if None.
        transport: httpx transport override for the archive download.

    Returns:
        The configured application.
    """
    settings = settings or Settings()  # type: ignore[call-arg]
    configure_logging(level=settings.log_level_int, use_structured_formatter=True)
    validate_settings_on_startup(settings)

    app = FastAPI(
        title="Excel Archive Connector API",
        description=(
            "Read-only access to the spreadsheets in a remote zip archive: "
            "each file is a schema, each sheet a table."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    connector = ExcelConnector(settings, transport=transport)
    app.state.connector = connector

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Any:
        """Middleware to assign and track request IDs.

        This middleware:
        1. Generates a unique request ID for each request
        2. Sets it in context for logging correlation
        3. Adds it to the response headers
        4. Clears context after request completes
        """
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        set_request_id(request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()

    @app.exception_handler(ConnectorError)
    async def connector_exception_handler(
        request: Request, exc: ConnectorError
    ) -> JSONResponse:
        """Return connector errors as structured error responses."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.error(
            f"Connector Error: {exc.message}",
            error_code=exc.error_code.value,
            http_status=exc.http_status,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=ErrorDetail(
                detail=exc.message,
                error_code=exc.error_code.value,
                details=exc.details if exc.details else None,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        """Custom exception handler for HTTP exceptions."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.warning(
            f"HTTP Error: {exc.detail}",
            status_code=exc.status_code,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                detail=str(exc.detail),
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all exception handler for unexpected errors.

        Logs the full exception and returns a generic error response
        to avoid leaking internal details.
        """
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.exception(
            f"Unexpected error: {type(exc).__name__}",
            error_type=type(exc).__name__,
        )
        if settings.debug:
            detail = f"Internal server error: {type(exc).__name__}: {exc}"
        else:
            detail = "Internal server error. Please try again later."

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail(
                detail=detail,
                error_code=ErrorCode.INTERNAL_ERROR.value,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> dict[str, Any]:
        """Check the health status of the service.

        The archive is not contacted.
        """
        request_id = getattr(request.state, "request_id", None)
        logger.debug("Health check requested", request_id=request_id)
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": __version__,
        }

    @app.get(
        "/schemas",
        response_model=SchemaListResponse,
        tags=["Catalog"],
        responses={502: {"model": ErrorDetail, "description": "Archive unavailable"}},
    )
    def list_schemas() -> SchemaListResponse:
        """List schemas (spreadsheet file names without extension)."""
        return SchemaListResponse(schemas=connector.list_schema_names())

    @app.get(
        "/tables",
        response_model=TableListResponse,
        tags=["Catalog"],
        responses={502: {"model": ErrorDetail, "description": "Archive unavailable"}},
    )
    def list_tables(
        schema: str | None = Query(default=None, description="Limit to one schema"),
    ) -> TableListResponse:
        """List tables of one schema, or of all schemas."""
        tables = connector.list_tables(schema)
        return TableListResponse(
            tables=[TableRef.from_schema_table_name(name) for name in tables]
        )

    @app.get(
        "/schemas/{schema}/tables/{table}/columns",
        response_model=ColumnListResponse,
        tags=["Catalog"],
        responses={404: {"model": ErrorDetail, "description": "Table not found"}},
    )
    def list_columns(schema: str, table: str) -> ColumnListResponse:
        """List the columns of a table in header order."""
        handle = connector.get_table_handle(schema, table)
        columns = connector.get_columns(handle)
        return ColumnListResponse(
            schema_name=schema,
            table_name=table,
            columns=[ColumnModel.from_handle(column) for column in columns],
        )

    @app.post(
        "/splits",
        response_model=SplitResponse,
        tags=["Scan"],
        responses={404: {"model": ErrorDetail, "description": "Table not found"}},
    )
    def plan_splits(body: SplitRequest) -> SplitResponse:
        """Plan the work units of a table scan."""
        handle = connector.get_table_handle(body.schema_name, body.table_name)
        work_units = connector.plan_splits(handle)
        return SplitResponse(
            work_units=[WorkUnitModel.from_work_unit(unit) for unit in work_units]
        )

    @app.post(
        "/scan",
        response_model=ScanResponse,
        tags=["Scan"],
        responses={
            400: {"model": ErrorDetail, "description": "Unknown column"},
            404: {"model": ErrorDetail, "description": "Table not found"},
            422: {"model": ErrorDetail, "description": "Type mismatch"},
        },
    )
    def scan_table(body: ScanRequest) -> ScanResponse:
        """Read a table, optionally with typed columns and a row limit."""
        handle = connector.get_table_handle(body.schema_name, body.table_name)
        columns = (
            _resolve_columns(connector, handle, body.columns)
            if body.columns is not None
            else None
        )
        resolved, rows = connector.scan(handle, columns, limit=body.limit)
        return ScanResponse(
            schema_name=body.schema_name,
            table_name=body.table_name,
            columns=[ColumnModel.from_handle(column) for column in resolved],
            rows=[list(row) for row in rows],
            row_count=len(rows),
        )

    logger.info(
        "Application created",
        **{
            k: v
            for k, v in settings.to_safe_dict().items()
            if k in ("zip_url", "log_level")
        },
    )
    return app


def _resolve_columns(
    connector: ExcelConnector,
    table: TableHandle,
    requested: list[ColumnRequest],
) -> list[ColumnHandle]:
    """Turn requested columns into handles, looking up missing ordinals."""
    known: dict[str, ColumnHandle] = {}
    if any(column.ordinal is None for column in requested):
        known = connector.get_column_handles(table)

    columns = []
    for column in requested:
        ordinal = column.ordinal
        if ordinal is None:
            if column.name not in known:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Unknown column '{column.name}' in {table}",
                )
            ordinal = known[column.name].ordinal
        columns.append(
            ColumnHandle(name=column.name, column_type=column.type, ordinal=ordinal)
        )
    return columns


__all__ = ["create_app"]
