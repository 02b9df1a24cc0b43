"""Test helpers for building workbooks, archives and in-memory sheets.

Example usage:
    from tests.fixtures import build_zip, workbook_bytes

    payload = build_zip({"users.xlsx": workbook_bytes({"Sheet1": USERS_ROWS})})
"""

from __future__ import annotations

import io
import logging
import zipfile
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
from openpyxl import Workbook

from excel_archive_connector.cells import Cell
from excel_archive_connector.services.workbook_access import Sheet, SheetRow

ARCHIVE_URL = "https://data.example.com/workbooks.zip"

USERS_ROWS: list[list[Any]] = [
    ["UserID", "Username", "Email"],
    [1, "alice", "alice@example.com"],
    [2, "bob", "bob@example.com"],
    [3, "carol", "carol@example.com"],
]


def workbook_bytes(sheets: dict[str, list[list[Any]]]) -> bytes:
    """Write an .xlsx workbook with one sheet per entry, rows appended in order.

    An empty row list leaves a gap: the row is absent from the sheet XML.
    """
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def build_zip(entries: dict[str, bytes]) -> bytes:
    """Zip the given entries, in order, into an in-memory archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def archive_transport(
    body: bytes, status_code: int = 200
) -> tuple[httpx.MockTransport, list[httpx.Request]]:
    """Transport serving ``body`` for every request, plus the request log."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, content=body)

    return httpx.MockTransport(handler), requests


def failing_transport(
    error: Callable[[httpx.Request], Exception],
) -> httpx.MockTransport:
    """Transport raising the exception built by ``error`` for every request."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise error(request)

    return httpx.MockTransport(handler)


@dataclass
class RecordedEvent:
    event: str
    level: int
    fields: dict[str, Any]


@dataclass
class RecordingSink:
    """DiagnosticSink that keeps every event in memory."""

    events: list[RecordedEvent] = field(default_factory=list)

    def record(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        self.events.append(RecordedEvent(event, level, fields))

    def named(self, event: str) -> list[RecordedEvent]:
        return [recorded for recorded in self.events if recorded.event == event]


class FakeSheet(Sheet):
    """In-memory sheet built from cell rows; row 0 is the header.

    ``None`` in place of a row makes that row blank. An exception instance in
    place of a row is raised when iteration reaches it.
    """

    def __init__(
        self, name: str, rows: Sequence[Sequence[Cell] | BaseException | None]
    ) -> None:
        super().__init__(name)
        self._rows = list(rows)

    def header_row(self) -> SheetRow | None:
        if not self._rows or not isinstance(self._rows[0], Sequence):
            return None
        return self._header_or_none(self._rows[0])

    def iter_rows(self) -> Iterator[SheetRow]:
        for index, row in enumerate(self._rows[1:], start=1):
            if isinstance(row, BaseException):
                raise row
            yield SheetRow(index, tuple(row or ()))
