"""Schema, table and column discovery.

Every public call materializes its own archive and releases it before
returning; nothing is cached between calls. The ``*_in`` helpers run
against an archive the caller has already materialized.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from excel_archive_connector.cells import BlankCell, TextCell
from excel_archive_connector.handles import (
    DEFAULT_COLUMN_TYPE,
    ColumnHandle,
    ConstraintApplication,
    SchemaTableName,
    TableHandle,
    TableMetadata,
)
from excel_archive_connector.services.archive_source import ArchiveSource
from excel_archive_connector.services.workbook_access import SheetRow
from excel_archive_connector.utils.exceptions import (
    ConnectorError,
    ErrorContext,
    SchemaNotFoundError,
    TableNotFoundError,
    wrap_unexpected,
)
from excel_archive_connector.utils.logging import DiagnosticSink, get_logger

logger = get_logger(__name__)

__all__ = ["ArchiveFactory", "CatalogResolver", "columns_from_header"]

ArchiveFactory = Callable[[], ArchiveSource]


def columns_from_header(header: SheetRow | None) -> list[ColumnHandle]:
    """Derive columns from a header row.

    One column per position up to the last populated header cell. A header
    cell that is not text, or is empty after trimming, is named
    ``COLUMN_<position>``. Every column is exposed as varchar.
    """
    if header is None:
        return []

    width = 0
    for ordinal, cell in enumerate(header.cells):
        if not isinstance(cell, BlankCell):
            width = ordinal + 1

    columns = []
    for ordinal in range(width):
        cell = header.cell(ordinal)
        name = cell.value.strip() if isinstance(cell, TextCell) else ""
        columns.append(
            ColumnHandle(
                name=name or f"COLUMN_{ordinal}",
                column_type=DEFAULT_COLUMN_TYPE,
                ordinal=ordinal,
            )
        )
    return columns


class CatalogResolver:
    """Answers the host's metadata questions about the archive."""

    def __init__(
        self,
        archive_factory: ArchiveFactory,
        sink: DiagnosticSink | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            archive_factory: Returns a new, unmaterialized ArchiveSource.
            sink: Diagnostic sink.
        """
        self._archive_factory = archive_factory
        self._sink = sink or logger

    # ------------------------------------------------------------------ #
    # Public operations
    # ------------------------------------------------------------------ #

    def list_schema_names(self) -> list[str]:
        """Schema names, one per spreadsheet in the archive."""
        with self._materialized("list_schema_names") as archive:
            return archive.list_schemas()

    def list_tables(self, schema: str | None = None) -> list[SchemaTableName]:
        """Tables of one schema, or of every schema when ``schema`` is None.

        A schema that does not exist yields an empty list.
        """
        with self._materialized("list_tables", schema=schema) as archive:
            if schema is not None:
                return self.tables_in(archive, schema)
            tables: list[SchemaTableName] = []
            for name in archive.list_schemas():
                tables.extend(self.tables_in(archive, name))
            return tables

    def get_table_handle(self, schema: str, table: str) -> TableHandle:
        """Handle for a (schema, table) pair.

        The archive is not touched; existence is checked when the columns
        are resolved or a scan is planned.
        """
        return TableHandle(schema, table)

    def get_columns(self, table: TableHandle) -> list[ColumnHandle]:
        """Ordered columns of a table.

        Raises:
            NotFoundError: If the schema or the sheet does not exist.
        """
        with self._materialized(
            "get_columns", schema=table.schema_name, table=table.table_name
        ) as archive:
            return self.columns_in(archive, table)

    def get_table_metadata(self, table: TableHandle) -> TableMetadata:
        """Table name and ordered columns."""
        return TableMetadata(
            table=table.to_schema_table_name(),
            columns=tuple(self.get_columns(table)),
        )

    def get_column_handles(self, table: TableHandle) -> dict[str, ColumnHandle]:
        """Columns keyed by name; the first column wins on duplicate headers."""
        return self.get_table_metadata(table).column_handles()

    def apply_filter(
        self, table: TableHandle, constraint: dict[str, Any] | None = None
    ) -> ConstraintApplication:
        """Accept a filter without applying it.

        The whole constraint is handed back as remaining for the host to
        evaluate.
        """
        self._sink.record(
            "catalog.filter_not_applied",
            level=logging.DEBUG,
            table=str(table),
        )
        return ConstraintApplication(
            table=table, remaining=dict(constraint or {}), applied=False
        )

    # ------------------------------------------------------------------ #
    # Helpers on a materialized archive
    # ------------------------------------------------------------------ #

    def tables_in(self, archive: ArchiveSource, schema: str) -> list[SchemaTableName]:
        """Sheets of one spreadsheet in workbook order, [] if it is absent."""
        spreadsheet = archive.find_file(schema)
        if spreadsheet is None:
            self._sink.record(
                "catalog.schema_missing", level=logging.WARNING, schema=schema
            )
            return []
        with archive.open_document(spreadsheet.full_name) as document:
            return [SchemaTableName(schema, name) for name in document.sheet_names()]

    def columns_in(
        self, archive: ArchiveSource, table: TableHandle
    ) -> list[ColumnHandle]:
        """Columns of a sheet, read from its header row."""
        context = ErrorContext(
            url=archive.safe_url, schema=table.schema_name, table=table.table_name
        )
        spreadsheet = archive.find_file(table.schema_name)
        if spreadsheet is None:
            raise SchemaNotFoundError(table.schema_name, context=context)

        with archive.open_document(spreadsheet.full_name) as document:
            sheet = document.sheet(table.table_name)
            if sheet is None:
                raise TableNotFoundError(
                    table.schema_name, table.table_name, context=context
                )
            header = sheet.header_row()

        if header is None:
            self._sink.record(
                "catalog.no_header_row",
                level=logging.WARNING,
                file=spreadsheet.full_name,
                sheet=table.table_name,
            )
        return columns_from_header(header)

    def ensure_table_in(self, archive: ArchiveSource, table: TableHandle) -> None:
        """Raise NotFoundError unless the sheet exists."""
        context = ErrorContext(
            url=archive.safe_url, schema=table.schema_name, table=table.table_name
        )
        spreadsheet = archive.find_file(table.schema_name)
        if spreadsheet is None:
            raise SchemaNotFoundError(table.schema_name, context=context)
        with archive.open_document(spreadsheet.full_name) as document:
            if table.table_name not in document.sheet_names():
                raise TableNotFoundError(
                    table.schema_name, table.table_name, context=context
                )

    @contextmanager
    def _materialized(self, operation: str, **fields: Any) -> Iterator[ArchiveSource]:
        with self._archive_factory() as archive:
            try:
                archive.materialize()
                yield archive
            except ConnectorError as e:
                self._sink.record(
                    f"catalog.{operation}_failed",
                    level=logging.WARNING,
                    error=str(e),
                    **fields,
                )
                raise
            except Exception as e:
                self._sink.record(
                    f"catalog.{operation}_failed",
                    level=logging.ERROR,
                    error=f"{type(e).__name__}: {e}",
                    **fields,
                )
                raise wrap_unexpected(
                    e,
                    f"Unexpected error in {operation}",
                    ErrorContext(url=archive.safe_url, **_context_fields(fields)),
                ) from e


def _context_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k in ("schema", "table")}
