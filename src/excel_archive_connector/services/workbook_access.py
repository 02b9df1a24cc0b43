"""Read access to one extracted spreadsheet.

``WorkbookAccess.open()`` sniffs the container format and picks a backend:
openpyxl for zip-based OOXML workbooks and xlrd for legacy binary ones. Both
backends expose sheets as sequences of ``Cell`` rows so the catalog and the
cursor never deal with library specifics.

OOXML workbooks are loaded twice in read-only mode, once for formulas and
once for the values the workbook cached for them, and the two row streams
are zipped together.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any

import xlrd
from openpyxl import load_workbook
from openpyxl.chartsheet import Chartsheet
from openpyxl.utils.datetime import (
    CALENDAR_MAC_1904,
    CALENDAR_WINDOWS_1900,
    to_excel,
)
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.formula import ArrayFormula, DataTableFormula

from excel_archive_connector.cells import (
    BLANK,
    BlankCell,
    BooleanCell,
    Cell,
    ErrorCell,
    FormulaCell,
    NumericCell,
    TextCell,
)
from excel_archive_connector.handles import SpreadsheetEncoding
from excel_archive_connector.services.format_detector import FormatDetector
from excel_archive_connector.utils.exceptions import (
    ConnectorError,
    FileOpenError,
    InvalidStateError,
)
from excel_archive_connector.utils.logging import DiagnosticSink, get_logger

logger = get_logger(__name__)

__all__ = ["Sheet", "SheetRow", "WorkbookAccess"]


@dataclass(frozen=True)
class SheetRow:
    """One physical row of a sheet.

    Attributes:
        index: Zero-based row index; the header is row 0.
        cells: Cells of the row. Trailing blank positions may be missing.
    """

    index: int
    cells: Sequence[Cell]

    @property
    def number(self) -> int:
        """One-based row number as shown by spreadsheet applications."""
        return self.index + 1

    def cell(self, ordinal: int) -> Cell:
        """Cell at a zero-based column position; short rows read as blank."""
        if 0 <= ordinal < len(self.cells):
            return self.cells[ordinal]
        return BLANK


class Sheet:
    """A sheet of an open workbook.

    Subclasses provide the header row and the data rows that follow it.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    def header_row(self) -> SheetRow | None:
        """Row 0, or None when the sheet has no populated first row."""
        raise NotImplementedError

    def iter_rows(self) -> Iterator[SheetRow]:
        """Every physical row after the header, blank rows included."""
        raise NotImplementedError

    @staticmethod
    def _header_or_none(cells: Sequence[Cell]) -> SheetRow | None:
        if all(isinstance(cell, BlankCell) for cell in cells):
            return None
        return SheetRow(0, tuple(cells))


# --------------------------------------------------------------------------- #
# OOXML (openpyxl)
# --------------------------------------------------------------------------- #


class _OpenpyxlSheet(Sheet):
    def __init__(self, name: str, formula_ws: Any, value_ws: Any, epoch: Any) -> None:
        super().__init__(name)
        self._formula_ws = formula_ws
        self._value_ws = value_ws
        self._epoch = epoch
        # stored dimensions can be stale; read every row the XML holds
        self._formula_ws.reset_dimensions()
        self._value_ws.reset_dimensions()

    def header_row(self) -> SheetRow | None:
        rows = self._paired_rows(min_row=1, max_row=1)
        first = next(rows, None)
        if first is None:
            return None
        return self._header_or_none(first)

    def iter_rows(self) -> Iterator[SheetRow]:
        for index, cells in enumerate(self._paired_rows(min_row=2), start=1):
            yield SheetRow(index, tuple(cells))

    def _paired_rows(
        self, min_row: int, max_row: int | None = None
    ) -> Iterator[list[Cell]]:
        formula_rows = self._formula_ws.iter_rows(min_row=min_row, max_row=max_row)
        value_rows = self._value_ws.iter_rows(min_row=min_row, max_row=max_row)
        for formula_cells, value_cells in zip(formula_rows, value_rows, strict=True):
            yield [
                _convert_openpyxl_cell(formula_cell, value_cell, self._epoch)
                for formula_cell, value_cell in zip(
                    formula_cells, value_cells, strict=True
                )
            ]


def _convert_openpyxl_cell(formula_cell: Any, value_cell: Any, epoch: Any) -> Cell:
    """Build a Cell from the formula and cached-value views of one cell."""
    raw = formula_cell.value
    if isinstance(raw, ArrayFormula):
        return FormulaCell(
            formula=str(raw.text or "").lstrip("="),
            result=_convert_openpyxl_value(value_cell, epoch),
        )
    if isinstance(raw, DataTableFormula) or formula_cell.data_type == "f":
        return FormulaCell(
            formula=str(raw).lstrip("="),
            result=_convert_openpyxl_value(value_cell, epoch),
        )
    return _convert_openpyxl_value(value_cell, epoch)


def _convert_openpyxl_value(cell: Any, epoch: Any) -> Cell:
    value = cell.value
    number_format = getattr(cell, "number_format", None) or "General"
    if value is None:
        return BLANK
    if isinstance(value, bool):
        return BooleanCell(value)
    if cell.data_type == "e":
        return ErrorCell(str(value))
    if isinstance(value, (dt.datetime, dt.date, dt.time, dt.timedelta)):
        return NumericCell(
            float(to_excel(value, epoch)),
            number_format=number_format,
            is_date=True,
            epoch=epoch,
        )
    if isinstance(value, (int, float)):
        return NumericCell(
            float(value),
            number_format=number_format,
            is_date=bool(getattr(cell, "is_date", False)),
            epoch=epoch,
        )
    return TextCell(str(value))


class _OpenpyxlBackend:
    def __init__(self, path: Path) -> None:
        self._formula_wb: Workbook = load_workbook(
            filename=path, read_only=True, data_only=False
        )
        try:
            self._value_wb: Workbook = load_workbook(
                filename=path, read_only=True, data_only=True
            )
        except Exception:
            self._formula_wb.close()
            raise

    def sheet_names(self) -> list[str]:
        return list(self._formula_wb.sheetnames)

    def sheet(self, name: str) -> Sheet | None:
        if name not in self._formula_wb.sheetnames:
            return None
        formula_ws = self._formula_wb[name]
        if isinstance(formula_ws, Chartsheet):
            return _EmptySheet(name)
        return _OpenpyxlSheet(
            name, formula_ws, self._value_wb[name], self._value_wb.epoch
        )

    def close(self) -> None:
        try:
            self._value_wb.close()
        finally:
            self._formula_wb.close()


class _EmptySheet(Sheet):
    """A sheet without cells, such as a chart sheet."""

    def header_row(self) -> SheetRow | None:
        return None

    def iter_rows(self) -> Iterator[SheetRow]:
        return iter(())


# --------------------------------------------------------------------------- #
# Legacy binary (xlrd)
# --------------------------------------------------------------------------- #


class _XlrdSheet(Sheet):
    def __init__(self, book: Any, sheet: Any) -> None:
        super().__init__(sheet.name)
        self._book = book
        self._sheet = sheet
        self._epoch = CALENDAR_MAC_1904 if book.datemode == 1 else CALENDAR_WINDOWS_1900

    def header_row(self) -> SheetRow | None:
        if self._sheet.nrows == 0:
            return None
        return self._header_or_none(self._convert_row(0))

    def iter_rows(self) -> Iterator[SheetRow]:
        for index in range(1, self._sheet.nrows):
            yield SheetRow(index, tuple(self._convert_row(index)))

    def _convert_row(self, index: int) -> list[Cell]:
        return [self._convert_cell(cell) for cell in self._sheet.row(index)]

    def _convert_cell(self, cell: Any) -> Cell:
        ctype = cell.ctype
        if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
            return BLANK
        if ctype == xlrd.XL_CELL_TEXT:
            return TextCell(cell.value)
        if ctype == xlrd.XL_CELL_BOOLEAN:
            return BooleanCell(bool(cell.value))
        if ctype == xlrd.XL_CELL_ERROR:
            return ErrorCell(xlrd.error_text_from_code.get(cell.value, "#ERR"))
        return NumericCell(
            float(cell.value),
            number_format=self._number_format(cell),
            is_date=ctype == xlrd.XL_CELL_DATE,
            epoch=self._epoch,
        )

    def _number_format(self, cell: Any) -> str:
        if cell.xf_index is None:
            return "General"
        xf = self._book.xf_list[cell.xf_index]
        fmt = self._book.format_map.get(xf.format_key)
        return fmt.format_str if fmt is not None else "General"


class _XlrdBackend:
    def __init__(self, path: Path) -> None:
        self._book = xlrd.open_workbook(
            str(path), on_demand=True, ragged_rows=True, formatting_info=True
        )

    def sheet_names(self) -> list[str]:
        return list(self._book.sheet_names())

    def sheet(self, name: str) -> Sheet | None:
        if name not in self._book.sheet_names():
            return None
        return _XlrdSheet(self._book, self._book.sheet_by_name(name))

    def close(self) -> None:
        self._book.release_resources()


# --------------------------------------------------------------------------- #
# Public handle
# --------------------------------------------------------------------------- #


class WorkbookAccess:
    """An open spreadsheet document.

    Not safe to share across threads. Use as a context manager, or hand it to
    a component that takes over closing it.
    """

    def __init__(
        self,
        path: Path,
        encoding: SpreadsheetEncoding,
        backend: _OpenpyxlBackend | _XlrdBackend,
        sink: DiagnosticSink | None = None,
    ) -> None:
        self._path = path
        self._encoding = encoding
        self._backend = backend
        self._sink = sink or logger
        self._closed = False

    @classmethod
    def open(
        cls,
        file_path: str | Path,
        *,
        detector: FormatDetector | None = None,
        sink: DiagnosticSink | None = None,
    ) -> WorkbookAccess:
        """Open a spreadsheet file.

        Args:
            file_path: Path to the extracted spreadsheet.
            detector: Format detector (a default one is created if omitted).
            sink: Diagnostic sink.

        Returns:
            An open WorkbookAccess.

        Raises:
            FileOpenError: If the file is missing or cannot be parsed.
        """
        path = Path(file_path)
        sink = sink or logger
        encoding = (detector or FormatDetector(sink=sink)).detect(path)

        backend: _OpenpyxlBackend | _XlrdBackend
        try:
            if encoding is SpreadsheetEncoding.LEGACY_BINARY:
                backend = _XlrdBackend(path)
            else:
                backend = _OpenpyxlBackend(path)
        except ConnectorError:
            raise
        except Exception as e:
            raise FileOpenError(
                f"Cannot parse spreadsheet '{path.name}': {e}",
                file_name=path.name,
                details={"encoding": encoding.value},
            ) from e

        sink.record(
            "workbook.opened",
            level=logging.DEBUG,
            file=path.name,
            encoding=encoding.value,
        )
        return cls(path, encoding, backend, sink=sink)

    @property
    def file_name(self) -> str:
        return self._path.name

    @property
    def encoding(self) -> SpreadsheetEncoding:
        return self._encoding

    @property
    def closed(self) -> bool:
        return self._closed

    def sheet_names(self) -> list[str]:
        """Sheet names in workbook order."""
        self._ensure_open()
        return self._backend.sheet_names()

    def sheet(self, name: str) -> Sheet | None:
        """Look up a sheet by exact name."""
        self._ensure_open()
        return self._backend.sheet(name)

    def close(self) -> None:
        """Close the document. Calling it again does nothing."""
        if self._closed:
            return
        self._closed = True
        self._backend.close()
        self._sink.record("workbook.closed", level=logging.DEBUG, file=self.file_name)

    def _ensure_open(self) -> None:
        if self._closed:
            raise InvalidStateError(f"Workbook '{self.file_name}' is closed")

    def __enter__(self) -> WorkbookAccess:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
