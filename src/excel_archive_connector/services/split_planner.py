"""Work unit planning.

A sheet is always read start to finish by one cursor, so a scan is a single
work unit covering the whole table.
"""

from __future__ import annotations

import logging

from excel_archive_connector.handles import TableHandle, WorkUnit
from excel_archive_connector.services.catalog_resolver import (
    ArchiveFactory,
    CatalogResolver,
)
from excel_archive_connector.utils.exceptions import (
    ConnectorError,
    ErrorContext,
    wrap_unexpected,
)
from excel_archive_connector.utils.logging import DiagnosticSink, get_logger

logger = get_logger(__name__)


class SplitPlanner:
    """Plans the work units of a table scan."""

    def __init__(
        self,
        archive_factory: ArchiveFactory,
        catalog: CatalogResolver | None = None,
        sink: DiagnosticSink | None = None,
    ) -> None:
        self._archive_factory = archive_factory
        self._sink = sink or logger
        self._catalog = catalog or CatalogResolver(archive_factory, sink=self._sink)

    def plan(self, table: TableHandle) -> list[WorkUnit]:
        """Return exactly one work unit for an existing table.

        Raises:
            NotFoundError: If the schema or the sheet does not exist.
            TransportError: If the archive cannot be downloaded.
        """
        with self._archive_factory() as archive:
            try:
                archive.materialize()
                self._catalog.ensure_table_in(archive, table)
            except ConnectorError as e:
                self._sink.record(
                    "splits.planning_failed",
                    level=logging.WARNING,
                    table=str(table),
                    error=str(e),
                )
                raise
            except Exception as e:
                raise wrap_unexpected(
                    e,
                    f"Unexpected error planning splits for {table}",
                    ErrorContext(
                        url=archive.safe_url,
                        schema=table.schema_name,
                        table=table.table_name,
                    ),
                ) from e

        self._sink.record("splits.planned", table=str(table), count=1)
        return [WorkUnit(table)]
