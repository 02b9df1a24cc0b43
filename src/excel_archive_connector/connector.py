"""Connector facade.

Wires the archive source, catalog resolver, split planner and record set
factory together for one configured archive URL. Each operation builds its
own archive handle; nothing is shared between calls.
"""

from __future__ import annotations

from collections.abc import Sequence
from itertools import islice
from typing import Any

import httpx

from excel_archive_connector.config import Settings
from excel_archive_connector.handles import (
    ColumnHandle,
    ConstraintApplication,
    SchemaTableName,
    TableHandle,
    TableMetadata,
    WorkUnit,
)
from excel_archive_connector.services.archive_source import ArchiveSource
from excel_archive_connector.services.catalog_resolver import CatalogResolver
from excel_archive_connector.services.record_set import RecordSet, RecordSetFactory
from excel_archive_connector.services.split_planner import SplitPlanner
from excel_archive_connector.utils.logging import (
    DiagnosticSink,
    LogContext,
    get_logger,
    timed_operation,
)

logger = get_logger(__name__)


class ExcelConnector:
    """Host-facing operations over a zip archive of spreadsheets."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
        sink: DiagnosticSink | None = None,
    ) -> None:
        """Initialize the connector.

        Args:
            settings: Connector settings.
            transport: httpx transport override for the archive download.
            sink: Diagnostic sink shared by all components.
        """
        self._settings = settings
        self._transport = transport
        self._sink = sink or logger

        self.catalog = CatalogResolver(self.new_archive, sink=self._sink)
        self.split_planner = SplitPlanner(
            self.new_archive, catalog=self.catalog, sink=self._sink
        )
        self.record_sets = RecordSetFactory(
            self.new_archive,
            timestamp_zone=settings.timestamp_tzinfo,
            progress_log_interval=settings.progress_log_interval,
            sink=self._sink,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    def new_archive(self) -> ArchiveSource:
        """A fresh, unmaterialized handle on the configured archive."""
        return ArchiveSource.from_settings(
            self._settings, transport=self._transport, sink=self._sink
        )

    # ------------------------------------------------------------------ #
    # Metadata
    # ------------------------------------------------------------------ #

    def list_schema_names(self) -> list[str]:
        return self.catalog.list_schema_names()

    def list_tables(self, schema: str | None = None) -> list[SchemaTableName]:
        return self.catalog.list_tables(schema)

    def get_table_handle(self, schema: str, table: str) -> TableHandle:
        return self.catalog.get_table_handle(schema, table)

    def get_columns(self, table: TableHandle) -> list[ColumnHandle]:
        return self.catalog.get_columns(table)

    def get_table_metadata(self, table: TableHandle) -> TableMetadata:
        return self.catalog.get_table_metadata(table)

    def get_column_handles(self, table: TableHandle) -> dict[str, ColumnHandle]:
        return self.catalog.get_column_handles(table)

    def apply_filter(
        self, table: TableHandle, constraint: dict[str, Any] | None = None
    ) -> ConstraintApplication:
        return self.catalog.apply_filter(table, constraint)

    # ------------------------------------------------------------------ #
    # Scans
    # ------------------------------------------------------------------ #

    def plan_splits(self, table: TableHandle) -> list[WorkUnit]:
        return self.split_planner.plan(table)

    def open_record_set(
        self, work_unit: WorkUnit, columns: Sequence[ColumnHandle]
    ) -> RecordSet:
        return self.record_sets.create(work_unit, columns)

    def scan(
        self,
        table: TableHandle,
        columns: Sequence[ColumnHandle] | None = None,
        limit: int | None = None,
    ) -> tuple[list[ColumnHandle], list[tuple[Any, ...]]]:
        """Read a table end to end.

        Args:
            table: Table to read.
            columns: Columns to read; every column of the table when None.
            limit: Maximum number of rows to return (all rows if None).

        Returns:
            The columns read and the typed rows.
        """
        with (
            LogContext(schema=table.schema_name, table=table.table_name),
            timed_operation(self._sink, "scan") as metrics,
        ):
            resolved = list(columns) if columns is not None else self.get_columns(table)
            rows: list[tuple[Any, ...]] = []
            for work_unit in self.plan_splits(table):
                with self.open_record_set(work_unit, resolved) as record_set:
                    remaining = None if limit is None else limit - len(rows)
                    rows.extend(islice(record_set.cursor().rows(), remaining))
            metrics.rows_read = len(rows)
            self._sink.record("scan.completed", table=str(table), rows=len(rows))
        return resolved, rows
