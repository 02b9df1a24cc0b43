"""Identity and handle types shared by the connector components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any


class ColumnType(str, Enum):
    """Output types a cursor can be asked to produce."""

    BOOLEAN = "boolean"
    BIGINT = "bigint"
    DOUBLE = "double"
    VARCHAR = "varchar"
    DATE = "date"
    TIMESTAMP = "timestamp(3)"


# Every discovered column is exposed as text; there is no per-cell inference.
DEFAULT_COLUMN_TYPE = ColumnType.VARCHAR


class SpreadsheetEncoding(str, Enum):
    """Physical container format of a spreadsheet file."""

    LEGACY_BINARY = "legacy_binary"
    OOXML = "ooxml"

    @classmethod
    def from_extension(cls, file_name: str) -> SpreadsheetEncoding:
        """Guess the encoding from a file name; ``.xls`` is the binary format."""
        if PurePath(file_name).suffix.lower() == ".xls":
            return cls.LEGACY_BINARY
        return cls.OOXML


def strip_extension(file_name: str) -> str:
    """File name without its last extension (``report.xlsx`` -> ``report``)."""
    dot = file_name.rfind(".")
    return file_name if dot == -1 else file_name[:dot]


@dataclass(frozen=True)
class SpreadsheetFile:
    """A spreadsheet extracted from the archive."""

    full_name: str
    encoding: SpreadsheetEncoding

    @property
    def schema_name(self) -> str:
        return strip_extension(self.full_name)

    @classmethod
    def from_name(cls, full_name: str) -> SpreadsheetFile:
        return cls(full_name, SpreadsheetEncoding.from_extension(full_name))


@dataclass(frozen=True)
class SchemaTableName:
    """Schema (spreadsheet) and table (sheet) pair."""

    schema_name: str
    table_name: str

    def __str__(self) -> str:
        return f"{self.schema_name}.{self.table_name}"


@dataclass(frozen=True)
class TableHandle:
    """Reference to one sheet of one spreadsheet.

    Creating a handle never touches the archive; existence is checked when
    columns are resolved or a scan is planned.
    """

    schema_name: str
    table_name: str

    def to_schema_table_name(self) -> SchemaTableName:
        return SchemaTableName(self.schema_name, self.table_name)

    def to_dict(self) -> dict[str, str]:
        return {"schema": self.schema_name, "table": self.table_name}

    def __str__(self) -> str:
        return f"{self.schema_name}.{self.table_name}"


@dataclass(frozen=True)
class ColumnHandle:
    """A column requested by the host: name, output type and header position."""

    name: str
    column_type: ColumnType
    ordinal: int

    def __post_init__(self) -> None:
        if self.ordinal < 0:
            raise ValueError(f"ordinal must be non-negative, got {self.ordinal}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.column_type.value,
            "ordinal": self.ordinal,
        }


@dataclass(frozen=True)
class TableMetadata:
    """Ordered columns of a table."""

    table: SchemaTableName
    columns: tuple[ColumnHandle, ...] = ()

    def column_handles(self) -> dict[str, ColumnHandle]:
        """Columns keyed by name; the first column wins on duplicate headers."""
        handles: dict[str, ColumnHandle] = {}
        for column in self.columns:
            handles.setdefault(column.name, column)
        return handles


@dataclass(frozen=True)
class WorkUnit:
    """One independently executable scan, always covering a whole table."""

    table: TableHandle
    addresses: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table.to_dict(), "addresses": list(self.addresses)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkUnit:
        table = data["table"]
        return cls(
            table=TableHandle(table["schema"], table["table"]),
            addresses=tuple(data.get("addresses", ())),
        )


@dataclass(frozen=True)
class ConstraintApplication:
    """Outcome of offering a filter to the connector.

    Filters are never applied here; the host keeps ``remaining`` and
    evaluates it after reading every row.
    """

    table: TableHandle
    remaining: dict[str, Any] = field(default_factory=dict)
    applied: bool = False
