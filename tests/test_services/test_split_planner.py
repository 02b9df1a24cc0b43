"""Tests for work unit planning."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from excel_archive_connector.handles import TableHandle, WorkUnit
from excel_archive_connector.services.catalog_resolver import ArchiveFactory
from excel_archive_connector.services.split_planner import SplitPlanner
from excel_archive_connector.utils.exceptions import (
    ErrorCode,
    FileOpenError,
    NotFoundError,
    SchemaNotFoundError,
    TableNotFoundError,
)
from tests.fixtures import RecordingSink


@pytest.fixture
def planner(
    archive_factory: Callable[[bytes], ArchiveFactory],
    sample_archive: bytes,
    sink: RecordingSink,
) -> SplitPlanner:
    return SplitPlanner(archive_factory(sample_archive), sink=sink)


class TestSplitPlanner:
    def test_single_work_unit_for_whole_table(
        self, planner: SplitPlanner, sink: RecordingSink
    ) -> None:
        table = TableHandle("inventory", "Items")

        assert planner.plan(table) == [WorkUnit(table)]
        (planned,) = sink.named("splits.planned")
        assert planned.fields == {"table": "inventory.Items", "count": 1}

    def test_work_unit_has_no_addresses(self, planner: SplitPlanner) -> None:
        (unit,) = planner.plan(TableHandle("users", "Sheet1"))
        assert unit.addresses == ()

    def test_sheet_without_rows_still_planned(self, planner: SplitPlanner) -> None:
        assert len(planner.plan(TableHandle("inventory", "Empty"))) == 1

    def test_missing_table(
        self, planner: SplitPlanner, sink: RecordingSink, workspace_root: Path
    ) -> None:
        with pytest.raises(TableNotFoundError) as exc_info:
            planner.plan(TableHandle("users", "Nope"))

        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.details["table"] == "Nope"
        assert sink.named("splits.planning_failed")
        assert list(workspace_root.iterdir()) == []

    def test_missing_schema(self, planner: SplitPlanner) -> None:
        with pytest.raises(SchemaNotFoundError):
            planner.plan(TableHandle("missing", "Sheet1"))

    def test_archive_released_after_planning(
        self, planner: SplitPlanner, sink: RecordingSink, workspace_root: Path
    ) -> None:
        planner.plan(TableHandle("users", "Sheet1"))

        assert sink.named("archive.released")
        assert list(workspace_root.iterdir()) == []

    def test_corrupt_archive(
        self,
        archive_factory: Callable[[bytes], ArchiveFactory],
        sink: RecordingSink,
    ) -> None:
        planner = SplitPlanner(archive_factory(b"not a zip"), sink=sink)

        with pytest.raises(FileOpenError) as exc_info:
            planner.plan(TableHandle("users", "Sheet1"))

        assert exc_info.value.error_code == ErrorCode.ARCHIVE_CORRUPT
        assert sink.named("splits.planning_failed")
