"""Spreadsheet encoding detection.

Detects whether an extracted file is a legacy binary workbook (OLE2/BIFF)
or a zip-based OOXML workbook from its content signature, falling back to the
file extension when the content is not recognised.
"""

import logging
from pathlib import Path
from zipfile import BadZipFile

import xlrd

from excel_archive_connector.handles import SpreadsheetEncoding
from excel_archive_connector.utils.exceptions import ErrorCode, FileOpenError
from excel_archive_connector.utils.logging import DiagnosticSink, get_logger

logger = get_logger(__name__)

__all__ = [
    "FORMAT_TO_ENCODING",
    "FormatDetector",
    "UNSUPPORTED_FORMATS",
]

# xlrd.inspect_format() results we can read
FORMAT_TO_ENCODING: dict[str, SpreadsheetEncoding] = {
    "xls": SpreadsheetEncoding.LEGACY_BINARY,
    "xlsx": SpreadsheetEncoding.OOXML,
}

# Recognised containers that are not readable spreadsheets
UNSUPPORTED_FORMATS: dict[str, str] = {
    "xlsb": "binary OOXML workbook",
    "ods": "OpenDocument spreadsheet",
    "zip": "zip archive without a workbook part",
}


class FormatDetector:
    """Detects the encoding of a spreadsheet file.

    Uses the content signature first. Falls back to the extension when the
    signature is not recognised; the parser then decides whether the file is
    readable.
    """

    def __init__(self, sink: DiagnosticSink | None = None) -> None:
        self._sink = sink or logger

    def detect(self, file_path: str | Path) -> SpreadsheetEncoding:
        """Detect the encoding of a file on disk.

        Args:
            file_path: Path to the spreadsheet.

        Returns:
            The detected SpreadsheetEncoding.

        Raises:
            FileOpenError: If the file is missing, or is a known container
                that is not a supported workbook.
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileOpenError(
                f"Spreadsheet file not found: {path.name}", file_name=path.name
            )

        detected = self._inspect(path)
        declared = SpreadsheetEncoding.from_extension(path.name)

        if detected in FORMAT_TO_ENCODING:
            encoding = FORMAT_TO_ENCODING[detected]
            if encoding is not declared:
                self._sink.record(
                    "format.extension_mismatch",
                    level=logging.WARNING,
                    file=path.name,
                    detected=encoding.value,
                )
            return encoding

        if detected in UNSUPPORTED_FORMATS:
            raise FileOpenError(
                f"Unsupported spreadsheet format in '{path.name}': "
                f"{UNSUPPORTED_FORMATS[detected]}",
                file_name=path.name,
                error_code=ErrorCode.UNSUPPORTED_FORMAT,
                details={"detected_format": detected},
            )

        self._sink.record(
            "format.signature_unrecognised",
            level=logging.DEBUG,
            file=path.name,
            fallback=declared.value,
        )
        return declared

    @staticmethod
    def _inspect(path: Path) -> str | None:
        try:
            return xlrd.inspect_format(path=str(path))
        except (BadZipFile, OSError) as e:
            raise FileOpenError(
                f"Cannot inspect spreadsheet '{path.name}': {e}",
                file_name=path.name,
            ) from e

    @staticmethod
    def get_supported_formats() -> list[str]:
        """Get the inspect_format names this detector accepts."""
        return sorted(FORMAT_TO_ENCODING)
