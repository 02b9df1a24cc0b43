from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from excel_archive_connector.config import Settings
from excel_archive_connector.services.archive_source import ArchiveSource
from excel_archive_connector.services.catalog_resolver import ArchiveFactory
from tests.fixtures import (
    ARCHIVE_URL,
    USERS_ROWS,
    RecordingSink,
    archive_transport,
    build_zip,
    workbook_bytes,
)


@pytest.fixture
def sink() -> RecordingSink:
    """Diagnostic sink that records events for assertions."""
    return RecordingSink()


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """Parent directory for archive workspaces, empty when every one is released."""
    root = tmp_path / "workspaces"
    root.mkdir()
    return root


@pytest.fixture
def sample_archive() -> bytes:
    """Archive with a users workbook and a two-sheet inventory workbook."""
    return build_zip(
        {
            "users.xlsx": workbook_bytes({"Sheet1": USERS_ROWS}),
            "reports/inventory.xlsx": workbook_bytes(
                {
                    "Items": [
                        ["Sku", "Quantity", "Price", "InStock"],
                        ["A-1", 10, 2.5, True],
                        ["B-2", 0, 11.75, False],
                    ],
                    "Empty": [],
                }
            ),
            "README.txt": b"not a spreadsheet",
        }
    )


@pytest.fixture
def archive_factory(
    workspace_root: Path, sink: RecordingSink
) -> Callable[[bytes], ArchiveFactory]:
    """Build an ArchiveFactory serving the given archive bytes."""

    def _factory(body: bytes, **kwargs: Any) -> ArchiveFactory:
        transport, _ = archive_transport(body)
        return lambda: ArchiveSource(
            ARCHIVE_URL,
            temp_root=workspace_root,
            transport=transport,
            sink=sink,
            **kwargs,
        )

    return _factory


@pytest.fixture
def settings(workspace_root: Path) -> Settings:
    """Settings pointing at the test archive URL, ignoring any .env file."""
    return Settings(
        zip_url=ARCHIVE_URL,
        temp_root=str(workspace_root),
        timestamp_zone="UTC",
        _env_file=None,  # type: ignore[call-arg]
    )
