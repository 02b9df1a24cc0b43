"""Configuration management for the Excel archive connector.

This module provides configuration using pydantic-settings. All options can
be set via environment variables with the EXCEL_ARCHIVE_ prefix, or via a
.env file in the project root. There is no module-level settings instance:
callers build a ``Settings`` and hand it to the components that need it.

Environment Variables:
    EXCEL_ARCHIVE_ZIP_URL: URL of the zip archive holding the spreadsheets (required)
    EXCEL_ARCHIVE_CONNECT_TIMEOUT_SECONDS: Download connect timeout (default: 10)
    EXCEL_ARCHIVE_READ_TIMEOUT_SECONDS: Download read timeout (default: 60)
    EXCEL_ARCHIVE_MAX_ARCHIVE_SIZE_MB: Maximum archive size in MB (default: 512)
    EXCEL_ARCHIVE_TEMP_DIR_PREFIX: Prefix of extraction directories
    EXCEL_ARCHIVE_TEMP_ROOT: Parent directory for extraction directories
    EXCEL_ARCHIVE_SPREADSHEET_EXTENSIONS: Spreadsheet extensions (default: .xlsx,.xls)
    EXCEL_ARCHIVE_TIMESTAMP_ZONE: IANA zone for timestamp reads (default: local)
    EXCEL_ARCHIVE_PROGRESS_LOG_INTERVAL: Log cursor progress every N rows (default: 100)
    EXCEL_ARCHIVE_LOG_LEVEL: Logging level (default: INFO)
    EXCEL_ARCHIVE_DEBUG: Enable debug mode (default: false)
    EXCEL_ARCHIVE_SERVER_HOST: Server bind host (default: 0.0.0.0)
    EXCEL_ARCHIVE_SERVER_PORT: Server bind port (default: 8000)
"""

import logging
from datetime import tzinfo
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from excel_archive_connector.utils.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Connector settings loaded from environment variables.

    Example .env file:
        EXCEL_ARCHIVE_ZIP_URL=https://data.example.com/workbooks.zip
        EXCEL_ARCHIVE_LOG_LEVEL=DEBUG
        EXCEL_ARCHIVE_READ_TIMEOUT_SECONDS=120
    """

    model_config = SettingsConfigDict(
        env_prefix="EXCEL_ARCHIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Archive Source Settings
    # =========================================================================

    zip_url: str
    """Absolute http(s) URL of the zip archive. Required."""

    connect_timeout_seconds: float = 10.0
    """Connect timeout for the archive download."""

    read_timeout_seconds: float = 60.0
    """Read timeout for the archive download."""

    max_archive_size_mb: int = 512
    """Downloads larger than this are aborted."""

    # =========================================================================
    # Workspace Settings
    # =========================================================================

    temp_dir_prefix: str = "excel_archive_"
    """Prefix for the per-request extraction directory."""

    temp_root: str | None = None
    """Parent directory for extraction directories (system temp if unset)."""

    spreadsheet_extensions: str = ".xlsx,.xls"
    """Comma-separated list of extensions treated as spreadsheets."""

    # =========================================================================
    # Read Settings
    # =========================================================================

    timestamp_zone: str | None = None
    """IANA zone used for timestamp reads. None means the local zone."""

    progress_log_interval: int = 100
    """Cursor logs progress every N rows."""

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode with additional logging and error details."""

    # =========================================================================
    # Server Settings
    # =========================================================================

    server_host: str = "0.0.0.0"
    """Host address for the server to bind to."""

    server_port: int = 8000
    """Port for the server to listen on."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("zip_url")
    @classmethod
    def validate_zip_url(cls, v: str) -> str:
        """Validate the archive URL is an absolute http(s) URI."""
        value = v.strip()
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as e:
            raise ValueError(f"Invalid URL format for zip_url: {v}") from e
        if not url.is_absolute_url or not url.host:
            raise ValueError(f"zip_url must be an absolute URL, got {v!r}")
        if url.scheme not in {"http", "https"}:
            raise ValueError(
                f"zip_url must use http or https, got scheme {url.scheme!r}"
            )
        return value

    @field_validator("connect_timeout_seconds", "read_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeouts are positive."""
        if v <= 0:
            raise ValueError(f"Timeouts must be positive, got {v}")
        return v

    @field_validator("max_archive_size_mb")
    @classmethod
    def validate_archive_size(cls, v: int) -> int:
        """Validate archive size cap is positive and reasonable."""
        if not 1 <= v <= 10240:
            raise ValueError(
                f"max_archive_size_mb must be between 1 and 10240, got {v}"
            )
        return v

    @field_validator("temp_dir_prefix")
    @classmethod
    def validate_temp_dir_prefix(cls, v: str) -> str:
        """Validate the prefix is a plain, non-empty name."""
        if not v.strip() or "/" in v or "\\" in v:
            raise ValueError("temp_dir_prefix must be a non-empty file name")
        return v.strip()

    @field_validator("spreadsheet_extensions")
    @classmethod
    def validate_extensions(cls, v: str) -> str:
        """Normalize extensions to lower-case, dot-prefixed entries."""
        extensions = []
        for raw in v.split(","):
            ext = raw.strip().lower()
            if not ext:
                continue
            extensions.append(ext if ext.startswith(".") else f".{ext}")
        if not extensions:
            raise ValueError("spreadsheet_extensions must list at least one extension")
        return ",".join(extensions)

    @field_validator("timestamp_zone")
    @classmethod
    def validate_timestamp_zone(cls, v: str | None) -> str | None:
        """Validate the zone name resolves."""
        if v is None or not v.strip():
            return None
        try:
            ZoneInfo(v.strip())
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timestamp_zone: {v}") from e
        return v.strip()

    @field_validator("progress_log_interval")
    @classmethod
    def validate_progress_interval(cls, v: int) -> int:
        """Validate the progress interval is positive."""
        if v < 1:
            raise ValueError(f"progress_log_interval must be at least 1, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return upper_v

    @field_validator("server_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"server_port must be between 1 and 65535, got {v}")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_archive_size_bytes(self) -> int:
        """Get the archive size cap in bytes."""
        return self.max_archive_size_mb * 1024 * 1024

    @property
    def spreadsheet_extensions_list(self) -> list[str]:
        """Get spreadsheet extensions as a list."""
        return self.spreadsheet_extensions.split(",")

    @property
    def timestamp_tzinfo(self) -> tzinfo | None:
        """Get the configured timestamp zone, or None for local time."""
        if self.timestamp_zone is None:
            return None
        return ZoneInfo(self.timestamp_zone)

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        level: int = getattr(logging, self.log_level)
        return level

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to a dictionary with credentials masked.

        Returns:
            Dictionary representation; user info in the archive URL is masked.
        """
        return {
            "zip_url": mask_url_credentials(self.zip_url),
            "connect_timeout_seconds": self.connect_timeout_seconds,
            "read_timeout_seconds": self.read_timeout_seconds,
            "max_archive_size_mb": self.max_archive_size_mb,
            "temp_dir_prefix": self.temp_dir_prefix,
            "temp_root": self.temp_root,
            "spreadsheet_extensions": self.spreadsheet_extensions,
            "timestamp_zone": self.timestamp_zone,
            "progress_log_interval": self.progress_log_interval,
            "log_level": self.log_level,
            "debug": self.debug,
            "server_host": self.server_host,
            "server_port": self.server_port,
        }


def mask_url_credentials(url: str) -> str:
    """Replace any user info in a URL with asterisks.

    Args:
        url: URL that may embed credentials.

    Returns:
        The URL with its user info masked.
    """
    userinfo = httpx.URL(url).userinfo.decode("ascii")
    if not userinfo:
        return url
    return url.replace(f"{userinfo}@", "***@", 1)


def validate_settings_on_startup(s: Settings) -> None:
    """Validate settings on application startup.

    Checks that depend on the host rather than on the values alone. A missing
    extraction root is fatal; the rest only warrant a warning.

    Args:
        s: Settings instance to validate.

    Raises:
        ConfigurationError: If ``temp_root`` is set but is not a directory.
    """
    logger = logging.getLogger(__name__)

    if s.temp_root is not None and not Path(s.temp_root).is_dir():
        raise ConfigurationError(
            f"Extraction root {s.temp_root} is not an existing directory",
            setting="temp_root",
        )

    if httpx.URL(s.zip_url).scheme == "http":
        logger.warning(
            "Archive URL uses plain http. Spreadsheet data will be fetched "
            "unencrypted on every request."
        )

    if s.read_timeout_seconds < s.connect_timeout_seconds:
        logger.warning(
            "read_timeout_seconds is shorter than connect_timeout_seconds; "
            "large archives may time out mid-download."
        )

    logger.info(
        f"Configuration loaded: log_level={s.log_level}, debug={s.debug}, "
        f"extensions={s.spreadsheet_extensions}, "
        f"max_archive_size_mb={s.max_archive_size_mb}"
    )
