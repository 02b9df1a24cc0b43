"""Record sets: the bridge from a work unit to a row cursor.

``RecordSetFactory.create()`` materializes a fresh archive, opens the
spreadsheet and locates the sheet. If any step fails, everything acquired so
far is released before the error propagates. On success the archive and the
document belong to the returned ``RecordSet``, and from there to its cursor.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Sequence
from contextlib import ExitStack
from itertools import islice
from types import TracebackType

import pandas as pd

from excel_archive_connector.handles import (
    ColumnHandle,
    ColumnType,
    TableHandle,
    WorkUnit,
)
from excel_archive_connector.services.archive_source import ArchiveSource
from excel_archive_connector.services.catalog_resolver import ArchiveFactory
from excel_archive_connector.services.row_cursor import RowCursor
from excel_archive_connector.services.workbook_access import Sheet, WorkbookAccess
from excel_archive_connector.utils.exceptions import (
    ConnectorError,
    ErrorContext,
    InvalidStateError,
    SchemaNotFoundError,
    TableNotFoundError,
    wrap_unexpected,
)
from excel_archive_connector.utils.logging import DiagnosticSink, get_logger

logger = get_logger(__name__)

__all__ = ["RecordSet", "RecordSetFactory"]


class RecordSet:
    """An opened table scan that hands out a single cursor."""

    def __init__(
        self,
        table: TableHandle,
        columns: Sequence[ColumnHandle],
        sheet: Sheet,
        document: WorkbookAccess,
        archive: ArchiveSource,
        *,
        timestamp_zone: dt.tzinfo | None = None,
        progress_log_interval: int = 100,
        sink: DiagnosticSink | None = None,
    ) -> None:
        self._table = table
        self._columns = tuple(columns)
        self._sheet = sheet
        self._document = document
        self._archive = archive
        self._timestamp_zone = timestamp_zone
        self._progress_log_interval = progress_log_interval
        self._sink = sink or logger
        self._cursor: RowCursor | None = None
        self._closed = False

    @property
    def table(self) -> TableHandle:
        return self._table

    @property
    def columns(self) -> tuple[ColumnHandle, ...]:
        return self._columns

    @property
    def column_types(self) -> list[ColumnType]:
        return [column.column_type for column in self._columns]

    def cursor(self) -> RowCursor:
        """Create the cursor; it takes over closing the document and archive.

        Raises:
            InvalidStateError: If a cursor was already created or the record
                set is closed.
        """
        if self._closed:
            raise InvalidStateError(f"Record set for {self._table} is closed")
        if self._cursor is not None:
            raise InvalidStateError(
                f"A cursor was already created for {self._table}"
            )
        self._cursor = RowCursor(
            self._sheet,
            self._columns,
            document=self._document,
            archive=self._archive,
            schema=self._table.schema_name,
            url=self._archive.safe_url,
            timestamp_zone=self._timestamp_zone,
            progress_log_interval=self._progress_log_interval,
            sink=self._sink,
        )
        return self._cursor

    def read_dataframe(self, limit: int | None = None) -> pd.DataFrame:
        """Read the scan into a DataFrame, one column per requested column.

        Args:
            limit: Maximum number of rows to read (all rows if None).

        Returns:
            DataFrame of typed values; nulls are None.
        """
        with self.cursor() as cursor:
            rows = list(islice(cursor.rows(), limit))
        return pd.DataFrame(rows, columns=[column.name for column in self._columns])

    def close(self) -> None:
        """Close the cursor, or the document and archive if no cursor exists."""
        if self._closed:
            return
        self._closed = True
        if self._cursor is not None:
            self._cursor.close()
            return
        try:
            self._document.close()
        finally:
            self._archive.release()

    def __enter__(self) -> RecordSet:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class RecordSetFactory:
    """Opens record sets over work units."""

    def __init__(
        self,
        archive_factory: ArchiveFactory,
        *,
        timestamp_zone: dt.tzinfo | None = None,
        progress_log_interval: int = 100,
        sink: DiagnosticSink | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            archive_factory: Returns a new, unmaterialized ArchiveSource.
            timestamp_zone: Zone for timestamp reads; None means local time.
            progress_log_interval: Cursor progress logging interval.
            sink: Diagnostic sink.
        """
        self._archive_factory = archive_factory
        self._timestamp_zone = timestamp_zone
        self._progress_log_interval = progress_log_interval
        self._sink = sink or logger

    def create(
        self, work_unit: WorkUnit, columns: Sequence[ColumnHandle]
    ) -> RecordSet:
        """Open the sheet a work unit covers.

        Args:
            work_unit: Work unit from the split planner.
            columns: Requested columns, in output order.

        Returns:
            A RecordSet owning the archive and the open document.

        Raises:
            NotFoundError: If the schema or the sheet does not exist.
            TransportError: If the archive cannot be downloaded.
            FileOpenError: If the spreadsheet cannot be opened.
        """
        table = work_unit.table
        with ExitStack() as stack:
            archive = stack.enter_context(self._archive_factory())
            context = ErrorContext(
                url=archive.safe_url,
                schema=table.schema_name,
                table=table.table_name,
            )
            try:
                archive.materialize()
                spreadsheet = archive.find_file(table.schema_name)
                if spreadsheet is None:
                    raise SchemaNotFoundError(table.schema_name, context=context)
                document = stack.enter_context(
                    archive.open_document(spreadsheet.full_name)
                )
                sheet = document.sheet(table.table_name)
                if sheet is None:
                    raise TableNotFoundError(
                        table.schema_name, table.table_name, context=context
                    )
            except ConnectorError as e:
                self._sink.record(
                    "record_set.open_failed",
                    level=logging.WARNING,
                    table=str(table),
                    error=str(e),
                )
                raise
            except Exception as e:
                raise wrap_unexpected(
                    e, f"Error creating record set for {table}", context
                ) from e

            record_set = RecordSet(
                table,
                columns,
                sheet,
                document,
                archive,
                timestamp_zone=self._timestamp_zone,
                progress_log_interval=self._progress_log_interval,
                sink=self._sink,
            )
            # ownership moves to the record set
            stack.pop_all()

        self._sink.record(
            "record_set.opened",
            level=logging.DEBUG,
            table=str(table),
            file=spreadsheet.full_name,
            columns=len(record_set.columns),
        )
        return record_set
