"""Sequential, typed access to the data rows of one sheet.

The cursor owns the open document and the archive it was extracted from;
``close()`` closes the document and then releases the archive. Values are
coerced from the effective cell kind (formulas are evaluated first):

    blank    -> None for text, date and timestamp; ReadError otherwise
    boolean  -> Boolean cells, "true"/"false" text, 1.0/0.0 numbers
    bigint   -> whole finite numbers, integer literals in text
    double   -> numbers, decimal literals in text
    varchar  -> display text of the cell
    date     -> date-formatted numbers, as days since 1970-01-01
    timestamp -> date-formatted numbers, as epoch milliseconds
"""

from __future__ import annotations

import datetime as dt
import logging
import math
import re
from collections.abc import Callable, Iterator, Sequence
from enum import Enum
from types import TracebackType
from typing import Any

from openpyxl.utils import get_column_letter

from excel_archive_connector.cells import (
    BlankCell,
    BooleanCell,
    Cell,
    ErrorCell,
    FormulaCell,
    NumericCell,
    TextCell,
)
from excel_archive_connector.handles import ColumnHandle, ColumnType
from excel_archive_connector.services.archive_source import ArchiveSource
from excel_archive_connector.services.cell_formatter import format_cell
from excel_archive_connector.services.workbook_access import (
    Sheet,
    SheetRow,
    WorkbookAccess,
)
from excel_archive_connector.utils.exceptions import (
    ConnectorError,
    ErrorContext,
    InvalidStateError,
    ReadError,
    TypeMismatchError,
)
from excel_archive_connector.utils.logging import DiagnosticSink, get_logger

logger = get_logger(__name__)

__all__ = ["CursorState", "RowCursor"]

_INTEGER_LITERAL = re.compile(r"[+-]?\d+")
_FLOAT_LITERAL = re.compile(
    r"[+-]?(?:NaN|Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?[fFdD]?)"
)
_HEX_FLOAT_LITERAL = re.compile(
    r"([+-]?)0[xX]"
    r"((?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)[pP][+-]?\d+)[fFdD]?"
)
_BIGINT_MIN = -(2**63)
_BIGINT_MAX = 2**63 - 1
_UNIX_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.UTC)
_UNIX_EPOCH_DATE = dt.date(1970, 1, 1)

# Nullable output types read a blank cell as None
_NULLABLE_ON_BLANK = frozenset(
    {ColumnType.VARCHAR, ColumnType.DATE, ColumnType.TIMESTAMP}
)


def _parse_double(text: str) -> float | None:
    """Parse a decimal or hexadecimal floating point literal; None if malformed.

    Accepts an optional trailing type suffix (``1.5d``, ``2f``) and hex
    literals with a binary exponent (``0x1.8p1``).
    """
    if _FLOAT_LITERAL.fullmatch(text):
        return float(text.rstrip("fFdD"))
    hex_match = _HEX_FLOAT_LITERAL.fullmatch(text)
    if hex_match:
        sign, body = hex_match.groups()
        return float.fromhex(f"{sign}0x{body}")
    return None


class CursorState(str, Enum):
    CREATED = "created"
    POSITIONED = "positioned"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


class RowCursor:
    """Forward-only cursor over the rows that follow a sheet's header.

    Not safe for concurrent use. Usage:
        with RowCursor(sheet, columns, document=doc, archive=archive) as cursor:
            while cursor.advance():
                name = cursor.get_text(0)
    """

    def __init__(
        self,
        sheet: Sheet,
        columns: Sequence[ColumnHandle],
        *,
        document: WorkbookAccess | None = None,
        archive: ArchiveSource | None = None,
        schema: str | None = None,
        url: str | None = None,
        timestamp_zone: dt.tzinfo | None = None,
        progress_log_interval: int = 100,
        sink: DiagnosticSink | None = None,
    ) -> None:
        """Create a cursor positioned before the first data row.

        Args:
            sheet: Sheet to read.
            columns: Requested columns; field indexes refer to this sequence.
            document: Open document the sheet belongs to. Closed by ``close()``.
            archive: Materialized archive. Released by ``close()``.
            schema: Schema name, for error context.
            url: Archive URL, for error context.
            timestamp_zone: Zone for timestamp reads; None means local time.
            progress_log_interval: Log progress every N rows.
            sink: Diagnostic sink.
        """
        self._sheet = sheet
        self._columns = tuple(columns)
        self._document = document
        self._archive = archive
        self._schema = schema
        self._url = url
        self._timestamp_zone = timestamp_zone
        self._progress_log_interval = max(1, progress_log_interval)
        self._sink = sink or logger

        self._rows: Iterator[SheetRow] | None = None
        self._current: SheetRow | None = None
        self._records_read = 0
        self._state = CursorState.CREATED

        self._sink.record(
            "cursor.opened",
            level=logging.DEBUG,
            sheet=sheet.name,
            columns=[column.name for column in self._columns],
        )

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> CursorState:
        return self._state

    @property
    def records_read(self) -> int:
        return self._records_read

    @property
    def current_row_number(self) -> int | None:
        """One-based sheet row number of the current row."""
        return self._current.number if self._current is not None else None

    @property
    def columns(self) -> tuple[ColumnHandle, ...]:
        return self._columns

    def get_type(self, field: int) -> ColumnType:
        return self._column(field).column_type

    # ------------------------------------------------------------------ #
    # Navigation
    # ------------------------------------------------------------------ #

    def advance(self) -> bool:
        """Move to the next row.

        Returns:
            False once the rows are exhausted or the cursor is closed.
        """
        if self._state in (CursorState.CLOSED, CursorState.EXHAUSTED):
            return False

        if self._rows is None:
            self._rows = self._sheet.iter_rows()
        try:
            row = next(self._rows, None)
        except ConnectorError:
            raise
        except Exception as e:
            raise ReadError(
                f"Failed to read the next row of sheet '{self._sheet.name}': {e}",
                context=self._base_context(),
            ) from e

        if row is None:
            self._current = None
            self._state = CursorState.EXHAUSTED
            self._sink.record(
                "cursor.exhausted",
                level=logging.DEBUG,
                sheet=self._sheet.name,
                records_read=self._records_read,
            )
            return False

        self._current = row
        self._records_read += 1
        self._state = CursorState.POSITIONED
        if self._records_read % self._progress_log_interval == 0:
            self._sink.record(
                "cursor.progress",
                sheet=self._sheet.name,
                records_read=self._records_read,
            )
        return True

    def rows(self) -> Iterator[tuple[Any, ...]]:
        """Advance through the remaining rows, yielding typed tuples."""
        fields = range(len(self._columns))
        while self.advance():
            yield tuple(self.get_object(field) for field in fields)

    # ------------------------------------------------------------------ #
    # Value access
    # ------------------------------------------------------------------ #

    def is_null(self, field: int) -> bool:
        """True for a blank cell, a formula that evaluates to an error, or no row.

        Never raises; a field index outside the requested columns reads as null.
        """
        if self._state is not CursorState.POSITIONED or self._current is None:
            return True
        if not 0 <= field < len(self._columns):
            return True
        raw = self._current.cell(self._columns[field].ordinal)
        effective = raw.evaluate()
        if isinstance(effective, BlankCell):
            return True
        return isinstance(raw, FormulaCell) and isinstance(effective, ErrorCell)

    def get_boolean(self, field: int) -> bool:
        return self._read(field, ColumnType.BOOLEAN, self._to_boolean)

    def get_long(self, field: int) -> int:
        return self._read(field, ColumnType.BIGINT, self._to_long)

    def get_double(self, field: int) -> float:
        return self._read(field, ColumnType.DOUBLE, self._to_double)

    def get_text(self, field: int) -> str | None:
        return self._read(field, ColumnType.VARCHAR, self._to_text)

    def get_date(self, field: int) -> int | None:
        """Days since 1970-01-01."""
        return self._read(field, ColumnType.DATE, self._to_date)

    def get_timestamp(self, field: int) -> int | None:
        """Milliseconds since the Unix epoch."""
        return self._read(field, ColumnType.TIMESTAMP, self._to_timestamp)

    def get_object(self, field: int) -> Any:
        """Value of a field converted to its column type; None when null."""
        column_type = self._column(field).column_type
        self._require_row()
        if self.is_null(field):
            return None
        accessor: dict[ColumnType, Callable[[int], Any]] = {
            ColumnType.BOOLEAN: self.get_boolean,
            ColumnType.BIGINT: self.get_long,
            ColumnType.DOUBLE: self.get_double,
            ColumnType.VARCHAR: self.get_text,
            ColumnType.DATE: self.get_date,
            ColumnType.TIMESTAMP: self.get_timestamp,
        }
        return accessor[column_type](field)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """Close the document, then release the archive. Idempotent."""
        if self._state is CursorState.CLOSED:
            return
        self._state = CursorState.CLOSED
        self._current = None
        self._rows = None
        self._sink.record(
            "cursor.closed",
            sheet=self._sheet.name,
            records_read=self._records_read,
        )
        try:
            if self._document is not None:
                self._document.close()
        finally:
            if self._archive is not None:
                self._archive.release()

    def __enter__(self) -> RowCursor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _column(self, field: int) -> ColumnHandle:
        if not 0 <= field < len(self._columns):
            raise IndexError(
                f"Invalid field index {field}; cursor has {len(self._columns)} columns"
            )
        return self._columns[field]

    def _require_row(self) -> SheetRow:
        if self._state is CursorState.CLOSED:
            raise InvalidStateError("Cursor is closed", context=self._base_context())
        if self._state is not CursorState.POSITIONED or self._current is None:
            raise InvalidStateError(
                f"Cursor is {self._state.value}; no current row",
                context=self._base_context(),
            )
        return self._current

    def _base_context(self) -> ErrorContext:
        return ErrorContext(
            url=self._url,
            schema=self._schema,
            table=self._sheet.name,
            sheet=self._sheet.name,
        )

    def _cell_context(
        self, column: ColumnHandle, row: SheetRow, requested: ColumnType
    ) -> ErrorContext:
        return self._base_context().merged(
            column=column.name,
            ordinal=column.ordinal,
            row=row.number,
            cell_address=f"{get_column_letter(column.ordinal + 1)}{row.number}",
            requested_type=requested.value,
        )

    def _read(
        self,
        field: int,
        requested: ColumnType,
        convert: Callable[[Cell, Cell, ColumnHandle, SheetRow], Any],
    ) -> Any:
        column = self._column(field)
        row = self._require_row()
        raw = row.cell(column.ordinal)
        try:
            effective = raw.evaluate()
            if isinstance(effective, BlankCell):
                if requested in _NULLABLE_ON_BLANK:
                    return None
                raise ReadError(
                    f"Cannot get {requested.value} from blank cell for column: "
                    f"{column.name} at row {row.number}",
                    context=self._cell_context(column, row, requested),
                )
            return convert(raw, effective, column, row)
        except ConnectorError:
            raise
        except Exception as e:
            context = self._cell_context(column, row, requested)
            rendered = self._render(raw)
            raise ReadError(
                f"Error reading value for column '{column.name}' "
                f"(index {column.ordinal}) at sheet '{self._sheet.name}' "
                f"cell {context.cell_address} (row {row.number}), expected type "
                f"{requested.value}, cell type {raw.kind.value}. "
                f"Cell raw value: '{rendered}'. Error: {e}",
                context=context,
                cell_value=rendered,
            ) from e

    def _mismatch(
        self,
        message: str,
        raw: Cell,
        column: ColumnHandle,
        row: SheetRow,
        requested: ColumnType,
    ) -> TypeMismatchError:
        context = self._cell_context(column, row, requested)
        return TypeMismatchError(
            f"{message} for column {column.name} at {context.cell_address}",
            context=context,
            cell_value=self._render(raw),
        )

    def _render(self, cell: Cell) -> str:
        try:
            return format_cell(cell)
        except Exception as e:
            self._sink.record(
                "cursor.render_failed", level=logging.WARNING, error=str(e)
            )
            return "<unreadable>"

    # Converters receive the raw cell and its evaluated form.

    def _to_boolean(
        self, raw: Cell, cell: Cell, column: ColumnHandle, row: SheetRow
    ) -> bool:
        if isinstance(cell, BooleanCell):
            return cell.value
        if isinstance(cell, TextCell):
            text = cell.value.strip().lower()
            if text in ("true", "false"):
                return text == "true"
            message = f"Invalid boolean string value: {cell.value.strip()}"
        elif isinstance(cell, NumericCell):
            if cell.value in (0.0, 1.0):
                return cell.value == 1.0
            message = f"Invalid numeric value for boolean: {cell.value}"
        else:
            message = f"Cannot get boolean from {cell.kind.value} cell"
        raise self._mismatch(message, raw, column, row, ColumnType.BOOLEAN)

    def _to_long(
        self, raw: Cell, cell: Cell, column: ColumnHandle, row: SheetRow
    ) -> int:
        if isinstance(cell, NumericCell):
            if not (math.isfinite(cell.value) and cell.value == math.floor(cell.value)):
                raise self._mismatch(
                    f"Numeric cell value '{cell.value}' is not a whole number",
                    raw,
                    column,
                    row,
                    ColumnType.BIGINT,
                )
            value = int(cell.value)
        elif isinstance(cell, TextCell):
            text = cell.value.strip()
            if not _INTEGER_LITERAL.fullmatch(text):
                raise self._mismatch(
                    f"Cannot parse bigint from cell value '{text}'",
                    raw,
                    column,
                    row,
                    ColumnType.BIGINT,
                )
            value = int(text)
        else:
            raise self._mismatch(
                f"Cannot get bigint from {cell.kind.value} cell",
                raw,
                column,
                row,
                ColumnType.BIGINT,
            )
        if not _BIGINT_MIN <= value <= _BIGINT_MAX:
            raise self._mismatch(
                f"Value {value} is out of bigint range",
                raw,
                column,
                row,
                ColumnType.BIGINT,
            )
        return value

    def _to_double(
        self, raw: Cell, cell: Cell, column: ColumnHandle, row: SheetRow
    ) -> float:
        if isinstance(cell, NumericCell):
            return cell.value
        if isinstance(cell, TextCell):
            text = cell.value.strip()
            parsed = _parse_double(text)
            if parsed is not None:
                return parsed
            message = f"Cannot parse double from cell value '{text}'"
        else:
            message = f"Cannot get double from {cell.kind.value} cell"
        raise self._mismatch(message, raw, column, row, ColumnType.DOUBLE)

    def _to_text(
        self, raw: Cell, cell: Cell, column: ColumnHandle, row: SheetRow
    ) -> str | None:
        if isinstance(raw, FormulaCell) and isinstance(cell, ErrorCell):
            return None
        return format_cell(cell)

    def _to_date(
        self, raw: Cell, cell: Cell, column: ColumnHandle, row: SheetRow
    ) -> int:
        value = self._date_value(raw, cell, column, row, ColumnType.DATE)
        return (value.date() - _UNIX_EPOCH_DATE).days

    def _to_timestamp(
        self, raw: Cell, cell: Cell, column: ColumnHandle, row: SheetRow
    ) -> int:
        value = self._date_value(raw, cell, column, row, ColumnType.TIMESTAMP)
        if self._timestamp_zone is not None:
            aware = value.replace(tzinfo=self._timestamp_zone)
        else:
            aware = value.astimezone()
        return (aware - _UNIX_EPOCH) // dt.timedelta(milliseconds=1)

    def _date_value(
        self,
        raw: Cell,
        cell: Cell,
        column: ColumnHandle,
        row: SheetRow,
        requested: ColumnType,
    ) -> dt.datetime:
        if isinstance(cell, NumericCell) and cell.is_date:
            return cell.as_datetime()
        raise self._mismatch(
            f"Cannot get {requested.value} from {cell.kind.value} cell, "
            f"value: {self._render(raw)}",
            raw,
            column,
            row,
            requested,
        )
