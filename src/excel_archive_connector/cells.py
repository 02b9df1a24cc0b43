"""Dataclasses representing spreadsheet cells.

A cell is one of six kinds. Formula cells wrap the result the workbook
stores for them; ``evaluate()`` resolves every cell to a non-formula kind so
coercion only ever looks at the effective kind.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from openpyxl.utils.datetime import CALENDAR_WINDOWS_1900, from_excel

_WINDOWS_DAY_ZERO = dt.date(1899, 12, 31)


class CellKind(str, Enum):
    BLANK = "blank"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    TEXT = "text"
    FORMULA = "formula"
    ERROR = "error"


@dataclass(frozen=True)
class BlankCell:
    kind: ClassVar[CellKind] = CellKind.BLANK

    def evaluate(self) -> Cell:
        return self


@dataclass(frozen=True)
class NumericCell:
    """A number, possibly displayed as a date/time by its number format."""

    kind: ClassVar[CellKind] = CellKind.NUMERIC

    value: float
    number_format: str | None = "General"
    is_date: bool = False
    epoch: dt.datetime = CALENDAR_WINDOWS_1900

    def evaluate(self) -> Cell:
        return self

    def as_datetime(self) -> dt.datetime:
        """Decode the date serial against the workbook epoch."""
        decoded = from_excel(self.value, self.epoch)
        if isinstance(decoded, dt.datetime):
            return decoded
        # serials below 1 decode to a bare time of day; the 1900 calendar
        # counts day 0 as 1900-01-00, i.e. 1899-12-31
        if self.epoch == CALENDAR_WINDOWS_1900:
            return dt.datetime.combine(_WINDOWS_DAY_ZERO, decoded)
        return dt.datetime.combine(self.epoch.date(), decoded)


@dataclass(frozen=True)
class BooleanCell:
    kind: ClassVar[CellKind] = CellKind.BOOLEAN

    value: bool

    def evaluate(self) -> Cell:
        return self


@dataclass(frozen=True)
class TextCell:
    kind: ClassVar[CellKind] = CellKind.TEXT

    value: str

    def evaluate(self) -> Cell:
        return self


@dataclass(frozen=True)
class ErrorCell:
    """An error value such as ``#DIV/0!`` or ``#N/A``."""

    kind: ClassVar[CellKind] = CellKind.ERROR

    code: str

    def evaluate(self) -> Cell:
        return self


@dataclass(frozen=True)
class FormulaCell:
    """A formula and the result the workbook cached for it.

    Workbooks saved without calculation carry no result; such a formula
    evaluates to a blank cell.
    """

    kind: ClassVar[CellKind] = CellKind.FORMULA

    formula: str
    result: Cell | None = None

    def evaluate(self) -> Cell:
        if self.result is None:
            return BLANK
        return self.result.evaluate()


Cell = BlankCell | NumericCell | BooleanCell | TextCell | ErrorCell | FormulaCell

BLANK = BlankCell()
