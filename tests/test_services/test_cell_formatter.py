"""Tests for display formatting of cells."""

from __future__ import annotations

import datetime as dt

import pytest
from openpyxl.utils.datetime import to_excel

from excel_archive_connector.cells import (
    BLANK,
    BooleanCell,
    ErrorCell,
    FormulaCell,
    NumericCell,
    TextCell,
)
from excel_archive_connector.services.cell_formatter import (
    format_cell,
    format_general,
    format_number,
)


def _date_cell(value: dt.datetime, number_format: str) -> NumericCell:
    return NumericCell(
        float(to_excel(value)), number_format=number_format, is_date=True
    )


class TestFormatCell:
    def test_blank_is_empty_string(self) -> None:
        assert format_cell(BLANK) == ""

    def test_text_is_unchanged(self) -> None:
        assert format_cell(TextCell("  padded ")) == "  padded "

    def test_booleans_render_upper_case(self) -> None:
        assert format_cell(BooleanCell(True)) == "TRUE"
        assert format_cell(BooleanCell(False)) == "FALSE"

    def test_error_renders_code(self) -> None:
        assert format_cell(ErrorCell("#DIV/0!")) == "#DIV/0!"

    def test_formula_renders_cached_result(self) -> None:
        cell = FormulaCell("SUM(A1:A3)", result=NumericCell(6.0))
        assert format_cell(cell) == "6"

    def test_formula_without_result_is_empty(self) -> None:
        assert format_cell(FormulaCell("NOW()")) == ""

    def test_number_uses_its_format(self) -> None:
        assert format_cell(NumericCell(1234.5, number_format="#,##0.00")) == "1,234.50"


class TestFormatGeneral:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (3.0, "3"),
            (-2.5, "-2.5"),
            (0.1, "0.1"),
            (1 / 3, "0.3333333333"),
            (1e20, "1E+20"),
            (1.5e-7, "1.5E-07"),
            (123456789012.0, "123456789012"),
        ],
    )
    def test_general_rendering(self, value: float, expected: str) -> None:
        assert format_general(value) == expected

    def test_non_finite_values(self) -> None:
        assert format_general(float("nan")) == "NaN"
        assert format_general(float("inf")) == "Infinity"
        assert format_general(float("-inf")) == "-Infinity"


class TestFormatNumber:
    @pytest.mark.parametrize(
        ("value", "number_format", "expected"),
        [
            (2.0, "General", "2"),
            (2.0, None, "2"),
            (3.14159, "0.00", "3.14"),
            (42.0, "0", "42"),
            (1234567.891, "#,##0", "1,234,568"),
            (0.256, "0.0%", "25.6%"),
            (0.5, "0%", "50%"),
            (12345.678, "0.00E+00", "1.23E+04"),
            (5.0, "0.00;[Red]-0.00", "5.00"),
            (12.0, "@", "12"),
        ],
    )
    def test_number_formats(
        self, value: float, number_format: str | None, expected: str
    ) -> None:
        assert format_number(value, number_format) == expected

    def test_format_without_placeholders_falls_back_to_general(self) -> None:
        assert format_number(2.5, '"units"') == "2.5"


class TestFormatDate:
    def test_iso_date(self) -> None:
        cell = _date_cell(dt.datetime(2024, 1, 15), "yyyy-mm-dd")
        assert format_cell(cell) == "2024-01-15"

    def test_minutes_after_hours(self) -> None:
        cell = _date_cell(dt.datetime(2024, 3, 5, 14, 7, 9), "dd/mm/yyyy hh:mm")
        assert format_cell(cell) == "05/03/2024 14:07"

    def test_minutes_before_seconds(self) -> None:
        cell = _date_cell(dt.datetime(2024, 3, 5, 14, 7, 9), "mm:ss")
        assert format_cell(cell) == "07:09"

    def test_month_and_day_names(self) -> None:
        cell = _date_cell(dt.datetime(2024, 3, 5), "dddd, mmmm d, yyyy")
        assert format_cell(cell) == "Tuesday, March 5, 2024"

    def test_short_month_name(self) -> None:
        cell = _date_cell(dt.datetime(2024, 3, 5), "mmm d, yy")
        assert format_cell(cell) == "Mar 5, 24"

    def test_twelve_hour_clock(self) -> None:
        cell = _date_cell(dt.datetime(2024, 3, 5, 14, 7), "h:mm AM/PM")
        assert format_cell(cell) == "2:07 PM"

    def test_midnight_in_twelve_hour_clock(self) -> None:
        cell = _date_cell(dt.datetime(2024, 3, 5, 0, 30), "h:mm AM/PM")
        assert format_cell(cell) == "12:30 AM"

    def test_seconds_are_rounded(self) -> None:
        value = dt.datetime(2024, 3, 5, 10, 0, 59, 600_000)
        assert format_cell(_date_cell(value, "hh:mm:ss")) == "10:01:00"

    def test_fractional_seconds(self) -> None:
        value = dt.datetime(2024, 3, 5, 10, 0, 1, 250_000)
        assert format_cell(_date_cell(value, "hh:mm:ss.00")) == "10:00:01.25"

    def test_quoted_literals_kept(self) -> None:
        cell = _date_cell(dt.datetime(2024, 3, 5), 'd "of" mmmm')
        assert format_cell(cell) == "5 of March"

    def test_format_without_date_tokens_uses_iso(self) -> None:
        cell = _date_cell(dt.datetime(2024, 3, 5, 8, 15), "General")
        assert format_cell(cell) == "2024-03-05 08:15:00"
