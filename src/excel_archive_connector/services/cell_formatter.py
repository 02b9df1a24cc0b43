"""Locale-independent display formatting of spreadsheet cells.

Renders a cell the way a spreadsheet application would show it, using the
cell's number format. Only the common subset of the format language is
understood: General, fixed decimals, thousands separators, percentages,
scientific notation and date/time patterns. Anything else falls back to the
General rendering. Month and day names are always English.
"""

from __future__ import annotations

import datetime as dt
import math
import re

from excel_archive_connector.cells import (
    BlankCell,
    BooleanCell,
    Cell,
    ErrorCell,
    NumericCell,
    TextCell,
)

__all__ = ["format_cell", "format_general", "format_number"]

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
DAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

_DATE_TOKEN = re.compile(
    r"yyyy|yy|mmmmm|mmmm|mmm|mm|m|dddd|ddd|dd|d|hh|h|ss|s|am/pm|a/p|\.0+",
    re.IGNORECASE,
)
_NUMERIC_PLACEHOLDERS = re.compile(r"[0#?]")


def format_cell(cell: Cell) -> str:
    """Render a cell as display text.

    Formulas are rendered by their evaluated result; blank cells render as an
    empty string and error cells as their error code.
    """
    effective = cell.evaluate()
    if isinstance(effective, BlankCell):
        return ""
    if isinstance(effective, BooleanCell):
        return "TRUE" if effective.value else "FALSE"
    if isinstance(effective, TextCell):
        return effective.value
    if isinstance(effective, ErrorCell):
        return effective.code
    if isinstance(effective, NumericCell):
        if effective.is_date:
            return _format_date(effective.as_datetime(), effective.number_format)
        return format_number(effective.value, effective.number_format)
    raise TypeError(f"Unsupported cell type: {type(effective).__name__}")


def format_general(value: float) -> str:
    """Render a number the way the General format does."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    text = f"{value:.10g}"
    if "e" in text:
        mantissa, exponent = text.split("e")
        return f"{mantissa}E{exponent[0]}{int(exponent[1:]):02d}"
    return text


def format_number(value: float, number_format: str | None) -> str:
    """Render a number with a (non-date) number format."""
    section = _strip_decorations(_first_section(number_format))
    if not math.isfinite(value) or _is_general(section):
        return format_general(value)
    if not _NUMERIC_PLACEHOLDERS.search(section):
        return format_general(value)

    decimals = _decimal_places(section)
    upper = section.upper()
    if "E+" in upper or "E-" in upper:
        mantissa = section[: upper.index("E")]
        return f"{value:.{_decimal_places(mantissa)}E}"
    if "%" in section:
        return f"{value * 100:.{decimals}f}%"
    if "," in section.split(".")[0]:
        return f"{value:,.{decimals}f}"
    return f"{value:.{decimals}f}"


def _first_section(number_format: str | None) -> str:
    """The positive-number section of a format (up to the first ``;``)."""
    if not number_format:
        return "General"
    in_quote = False
    escaped = False
    for index, char in enumerate(number_format):
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            in_quote = not in_quote
        elif char == ";" and not in_quote:
            return number_format[:index]
    return number_format


def _strip_decorations(section: str) -> str:
    """Drop colour/locale brackets, quoted literals and escapes."""
    section = re.sub(r"\[[^\]]*\]", "", section)
    section = re.sub(r'"[^"]*"', "", section)
    section = re.sub(r"\\.|[_*].", "", section)
    return section.strip()


def _is_general(section: str) -> bool:
    return not section or section.lower() == "general" or section == "@"


def _decimal_places(section: str) -> int:
    if "." not in section:
        return 0
    fraction = section.split(".", 1)[1]
    return len(re.match(r"[0#?]*", fraction).group(0))


# --------------------------------------------------------------------------- #
# Dates
# --------------------------------------------------------------------------- #


def _format_date(value: dt.datetime, number_format: str | None) -> str:
    section = _first_section(number_format)
    tokens = _tokenize_date(section)
    if not any(kind == "date" for kind, _ in tokens):
        if value.time() == dt.time():
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")

    has_fraction = any(kind == "date" and text.startswith(".") for kind, text in tokens)
    if not has_fraction:
        # displayed seconds are rounded, not truncated
        value = (value + dt.timedelta(microseconds=500_000)).replace(microsecond=0)

    twelve_hour = any(
        kind == "date" and text in ("am/pm", "a/p") for kind, text in tokens
    )
    minute_positions = _minute_positions(tokens)

    parts: list[str] = []
    for index, (kind, text) in enumerate(tokens):
        if kind == "lit":
            parts.append(text)
        elif index in minute_positions:
            parts.append(f"{value.minute:02d}" if text == "mm" else str(value.minute))
        else:
            parts.append(_render_date_token(text, value, twelve_hour))
    return "".join(parts)


def _tokenize_date(section: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    index = 0
    while index < len(section):
        char = section[index]
        if char == '"':
            end = section.find('"', index + 1)
            end = len(section) if end == -1 else end
            tokens.append(("lit", section[index + 1 : end]))
            index = end + 1
        elif char == "\\" and index + 1 < len(section):
            tokens.append(("lit", section[index + 1]))
            index += 2
        elif char == "[":
            end = section.find("]", index)
            end = len(section) if end == -1 else end
            inner = section[index + 1 : end].lower()
            # elapsed-time brackets such as [h] keep their token
            if inner and set(inner) <= {"h", "m", "s"}:
                tokens.append(("date", inner[:2]))
            index = end + 1
        elif char in "_*":
            if char == "_":
                tokens.append(("lit", " "))
            index += 2
        else:
            match = _DATE_TOKEN.match(section, index)
            if match:
                tokens.append(("date", match.group(0).lower()))
                index = match.end()
            else:
                tokens.append(("lit", char))
                index += 1
    return tokens


def _minute_positions(tokens: list[tuple[str, str]]) -> set[int]:
    """Indexes of ``m``/``mm`` tokens that mean minutes rather than months."""
    date_tokens = [(i, text) for i, (kind, text) in enumerate(tokens) if kind == "date"]
    positions: set[int] = set()
    for pos, (index, text) in enumerate(date_tokens):
        if text not in ("m", "mm"):
            continue
        previous = date_tokens[pos - 1][1] if pos > 0 else ""
        following = date_tokens[pos + 1][1] if pos + 1 < len(date_tokens) else ""
        if previous in ("h", "hh") or following in ("s", "ss"):
            positions.add(index)
    return positions


def _render_date_token(token: str, value: dt.datetime, twelve_hour: bool) -> str:
    if token == "yyyy":
        return f"{value.year:04d}"
    if token == "yy":
        return f"{value.year % 100:02d}"
    if token == "mmmmm":
        return MONTH_NAMES[value.month - 1][0]
    if token == "mmmm":
        return MONTH_NAMES[value.month - 1]
    if token == "mmm":
        return MONTH_NAMES[value.month - 1][:3]
    if token == "mm":
        return f"{value.month:02d}"
    if token == "m":
        return str(value.month)
    if token == "dddd":
        return DAY_NAMES[value.weekday()]
    if token == "ddd":
        return DAY_NAMES[value.weekday()][:3]
    if token == "dd":
        return f"{value.day:02d}"
    if token == "d":
        return str(value.day)
    if token in ("hh", "h"):
        hour = value.hour
        if twelve_hour:
            hour = hour % 12 or 12
        return f"{hour:02d}" if token == "hh" else str(hour)
    if token == "ss":
        return f"{value.second:02d}"
    if token == "s":
        return str(value.second)
    if token == "am/pm":
        return "AM" if value.hour < 12 else "PM"
    if token == "a/p":
        return "A" if value.hour < 12 else "P"
    if token.startswith("."):
        digits = len(token) - 1
        fraction = f"{value.microsecond / 1_000_000:.{digits}f}"
        return fraction[1:]
    return token
