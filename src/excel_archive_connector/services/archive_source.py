"""Remote zip archive materialized into a private workspace.

An ``ArchiveSource`` is a single-use, request-scoped handle. ``materialize()``
downloads the archive, extracts the spreadsheets it contains into a fresh
temporary directory and deletes the download. ``release()`` removes the
directory again. Every failure during materialization releases the
workspace before the error propagates.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
import zipfile
import zlib
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path, PurePosixPath
from types import TracebackType

import httpx

from excel_archive_connector.config import Settings, mask_url_credentials
from excel_archive_connector.handles import SpreadsheetFile
from excel_archive_connector.services.format_detector import FormatDetector
from excel_archive_connector.services.workbook_access import WorkbookAccess
from excel_archive_connector.utils.exceptions import (
    ArchiveTooLargeError,
    ErrorCode,
    ErrorContext,
    FileOpenError,
    InvalidStateError,
    TransportError,
)
from excel_archive_connector.utils.logging import (
    DiagnosticSink,
    get_logger,
    timed_operation,
)

logger = get_logger(__name__)

__all__ = ["ArchiveSource", "ArchiveState", "DEFAULT_EXTENSIONS"]

DEFAULT_EXTENSIONS: tuple[str, ...] = (".xlsx", ".xls")

# Name of the downloaded archive inside the workspace; never a spreadsheet name
_DOWNLOAD_NAME = "archive.zip.part"

# Resource-fork folders added by macOS archivers
_IGNORED_DIRECTORIES = frozenset({"__MACOSX"})


class ArchiveState(str, Enum):
    CREATED = "created"
    MATERIALIZED = "materialized"
    RELEASED = "released"


class ArchiveSource:
    """Handle to a remote zip archive of spreadsheets.

    Usage:
        with ArchiveSource(url) as archive:
            archive.materialize()
            for schema in archive.list_schemas():
                ...
    """

    def __init__(
        self,
        url: str,
        *,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        temp_root: str | Path | None = None,
        temp_prefix: str = "excel_archive_",
        max_archive_bytes: int | None = None,
        transport: httpx.BaseTransport | None = None,
        detector: FormatDetector | None = None,
        sink: DiagnosticSink | None = None,
    ) -> None:
        """Create an unmaterialized handle.

        Args:
            url: Absolute http(s) URL of the zip archive.
            connect_timeout: Seconds allowed to establish the connection.
            read_timeout: Seconds allowed between received chunks.
            extensions: Entry suffixes treated as spreadsheets.
            temp_root: Parent of the workspace (system temp dir if None).
            temp_prefix: Prefix of the workspace directory name.
            max_archive_bytes: Download cap; None disables the cap.
            transport: httpx transport override, used by tests.
            detector: Format detector handed to opened documents.
            sink: Diagnostic sink.
        """
        self._url = url
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._extensions = tuple(ext.lower() for ext in extensions)
        self._temp_root = str(temp_root) if temp_root is not None else None
        self._temp_prefix = temp_prefix
        self._max_archive_bytes = max_archive_bytes
        self._transport = transport
        self._sink = sink or logger
        self._detector = detector or FormatDetector(sink=self._sink)

        self._state = ArchiveState.CREATED
        self._workspace: Path | None = None
        self._files: dict[str, SpreadsheetFile] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
        sink: DiagnosticSink | None = None,
    ) -> ArchiveSource:
        """Create a handle for the archive configured in ``settings``."""
        return cls(
            settings.zip_url,
            connect_timeout=settings.connect_timeout_seconds,
            read_timeout=settings.read_timeout_seconds,
            extensions=settings.spreadsheet_extensions_list,
            temp_root=settings.temp_root,
            temp_prefix=settings.temp_dir_prefix,
            max_archive_bytes=settings.max_archive_size_bytes,
            transport=transport,
            sink=sink,
        )

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def url(self) -> str:
        return self._url

    @property
    def safe_url(self) -> str:
        """The archive URL with any credentials masked."""
        return mask_url_credentials(self._url)

    @property
    def state(self) -> ArchiveState:
        return self._state

    @property
    def workspace(self) -> Path | None:
        """The extraction directory while materialized."""
        return self._workspace

    def _context(self) -> ErrorContext:
        return ErrorContext(url=self.safe_url)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def materialize(self) -> list[SpreadsheetFile]:
        """Download the archive and extract its spreadsheets.

        Returns:
            The extracted spreadsheets in archive order.

        Raises:
            InvalidStateError: If the handle was already materialized or released.
            TransportError: If the download fails.
            FileOpenError: If the download is not a readable zip archive.
        """
        if self._state is not ArchiveState.CREATED:
            raise InvalidStateError(
                f"Archive handle is {self._state.value}; create a new one per request",
                context=self._context(),
            )

        workspace = Path(
            tempfile.mkdtemp(prefix=self._temp_prefix, dir=self._temp_root)
        )
        self._workspace = workspace
        self._state = ArchiveState.MATERIALIZED

        try:
            with timed_operation(self._sink, "archive.materialize") as metrics:
                download_path = workspace / _DOWNLOAD_NAME
                metrics.bytes_downloaded = self._download(download_path)
                self._files = self._extract(download_path)
                download_path.unlink()
                metrics.files_extracted = len(self._files)
        except BaseException:
            self.release()
            raise

        self._sink.record(
            "archive.materialized",
            url=self.safe_url,
            workspace=str(workspace),
            files=len(self._files),
        )
        return list(self._files.values())

    def release(self) -> None:
        """Delete the workspace, best effort, and invalidate the handle.

        Deletion failures are logged per entry and never raised. Calling
        ``release()`` more than once does nothing.
        """
        if self._state is ArchiveState.RELEASED:
            return
        workspace = self._workspace
        self._state = ArchiveState.RELEASED
        self._files = {}
        self._workspace = None
        if workspace is None:
            return

        failures = _remove_tree(workspace, self._sink)
        self._sink.record(
            "archive.released",
            level=logging.DEBUG if failures == 0 else logging.WARNING,
            workspace=str(workspace),
            failures=failures,
        )

    def __enter__(self) -> ArchiveSource:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    # ------------------------------------------------------------------ #
    # Listing
    # ------------------------------------------------------------------ #

    def list_files(self) -> list[SpreadsheetFile]:
        """Extracted spreadsheets in archive order."""
        self._ensure_materialized()
        return list(self._files.values())

    def list_file_names(self) -> list[str]:
        """Full names (with extension) of the extracted spreadsheets."""
        self._ensure_materialized()
        return list(self._files)

    def list_schemas(self) -> list[str]:
        """Schema names, one per distinct file name without extension."""
        self._ensure_materialized()
        schemas: dict[str, None] = {}
        for spreadsheet in self._files.values():
            schemas.setdefault(spreadsheet.schema_name, None)
        return list(schemas)

    def find_file(self, schema: str) -> SpreadsheetFile | None:
        """Resolve a schema name to its spreadsheet.

        An exact match wins; otherwise the first case-insensitive match in
        archive order is returned.
        """
        self._ensure_materialized()
        folded: SpreadsheetFile | None = None
        for spreadsheet in self._files.values():
            if spreadsheet.schema_name == schema:
                return spreadsheet
            if folded is None and spreadsheet.schema_name.lower() == schema.lower():
                folded = spreadsheet
        return folded

    def open_document(self, full_name: str) -> WorkbookAccess:
        """Open an extracted spreadsheet by its full name.

        Raises:
            FileOpenError: If the name is not an extracted entry, the file is
                gone from the workspace, or it cannot be parsed.
        """
        self._ensure_materialized()
        assert self._workspace is not None
        if full_name not in self._files:
            raise FileOpenError(
                f"'{full_name}' is not a spreadsheet in the archive",
                file_name=full_name,
                context=self._context(),
            )
        path = self._workspace / full_name
        if not path.is_file():
            raise FileOpenError(
                f"Extracted spreadsheet '{full_name}' is missing from the workspace",
                file_name=full_name,
                context=self._context(),
            )
        return WorkbookAccess.open(path, detector=self._detector, sink=self._sink)

    def _ensure_materialized(self) -> None:
        if self._state is ArchiveState.CREATED:
            raise InvalidStateError(
                "Archive must be materialized before it is read",
                context=self._context(),
            )
        if self._state is ArchiveState.RELEASED:
            raise InvalidStateError(
                "Archive has been released", context=self._context()
            )

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _download(self, target: Path) -> int:
        """Stream the archive to ``target`` and return the byte count."""
        context = self._context()
        timeout = httpx.Timeout(self._read_timeout, connect=self._connect_timeout)
        start = time.perf_counter()
        received = 0
        status_code: int | None = None
        error_message: str | None = None
        completed = False

        try:
            with httpx.Client(
                timeout=timeout, transport=self._transport, follow_redirects=True
            ) as client:
                with client.stream("GET", self._url) as response:
                    status_code = response.status_code
                    response.raise_for_status()
                    self._check_declared_size(response, context)
                    with target.open("wb") as out:
                        for chunk in response.iter_bytes():
                            received += len(chunk)
                            if (
                                self._max_archive_bytes is not None
                                and received > self._max_archive_bytes
                            ):
                                raise ArchiveTooLargeError(
                                    received, self._max_archive_bytes, context=context
                                )
                            out.write(chunk)
            completed = True
        except httpx.HTTPStatusError as e:
            error_message = f"HTTP {e.response.status_code}"
            raise TransportError(
                f"Archive download failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                context=context,
            ) from e
        except httpx.HTTPError as e:
            error_message = f"{type(e).__name__}: {e}"
            raise TransportError(
                f"Archive download failed: {error_message}", context=context
            ) from e
        except ArchiveTooLargeError as e:
            error_message = e.message
            raise
        finally:
            duration = time.perf_counter() - start
            self._sink.record(
                "archive.download",
                level=logging.INFO if completed else logging.ERROR,
                url=context.url,
                duration_seconds=f"{duration:.3f}",
                size_bytes=received,
                status_code=status_code,
                success=completed,
                error=error_message,
            )
        return received

    def _check_declared_size(
        self, response: httpx.Response, context: ErrorContext
    ) -> None:
        declared = response.headers.get("content-length", "")
        if (
            self._max_archive_bytes is not None
            and declared.isdigit()
            and int(declared) > self._max_archive_bytes
        ):
            raise ArchiveTooLargeError(
                int(declared), self._max_archive_bytes, context=context
            )

    def _extract(self, archive_path: Path) -> dict[str, SpreadsheetFile]:
        """Copy spreadsheet entries into the workspace by base name."""
        assert self._workspace is not None
        files: dict[str, SpreadsheetFile] = {}
        try:
            with zipfile.ZipFile(archive_path) as archive:
                for info in archive.infolist():
                    if info.is_dir():
                        continue
                    name = _entry_base_name(info.filename)
                    if name is None or not name.lower().endswith(self._extensions):
                        continue
                    if name in files:
                        self._sink.record(
                            "archive.duplicate_entry",
                            level=logging.WARNING,
                            entry=info.filename,
                            kept=name,
                        )
                        continue
                    with (
                        archive.open(info) as source,
                        (self._workspace / name).open("wb") as target,
                    ):
                        shutil.copyfileobj(source, target)
                    files[name] = SpreadsheetFile.from_name(name)
                    self._sink.record(
                        "archive.entry_extracted",
                        level=logging.DEBUG,
                        entry=info.filename,
                        file=name,
                        size_bytes=info.file_size,
                    )
        except (zipfile.BadZipFile, zlib.error, EOFError) as e:
            raise FileOpenError(
                f"Downloaded archive is not a readable zip file: {e}",
                error_code=ErrorCode.ARCHIVE_CORRUPT,
                context=self._context(),
            ) from e
        except (RuntimeError, NotImplementedError) as e:
            # encrypted entries or unsupported compression methods
            raise FileOpenError(
                f"Cannot extract archive entry: {e}",
                error_code=ErrorCode.ARCHIVE_CORRUPT,
                context=self._context(),
            ) from e
        return files


def _entry_base_name(entry_name: str) -> str | None:
    """Base name of a zip entry, or None for entries to skip.

    Directory components are discarded so nothing can be written outside the
    workspace.
    """
    path = PurePosixPath(entry_name.replace("\\", "/"))
    if any(part in _IGNORED_DIRECTORIES for part in path.parts[:-1]):
        return None
    name = path.name
    if name in ("", ".", ".."):
        return None
    return name


def _remove_tree(root: Path, sink: DiagnosticSink) -> int:
    """Delete a directory tree bottom-up, returning the number of failures."""
    failures = 0
    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        for filename in filenames:
            failures += _remove_entry(Path(dirpath) / filename, os.unlink, sink)
        for dirname in dirnames:
            failures += _remove_entry(Path(dirpath) / dirname, os.rmdir, sink)
    failures += _remove_entry(root, os.rmdir, sink)
    return failures


def _remove_entry(
    path: Path, remove: Callable[[Path], None], sink: DiagnosticSink
) -> int:
    try:
        remove(path)
    except FileNotFoundError:
        return 0
    except OSError as e:
        sink.record(
            "archive.cleanup_failed",
            level=logging.WARNING,
            path=str(path),
            error=str(e),
        )
        return 1
    return 0
