"""Excel Archive Connector - spreadsheets in a remote zip archive as tables."""

__version__ = "0.1.0"

from excel_archive_connector.api import create_app  # noqa: E402
from excel_archive_connector.connector import ExcelConnector  # noqa: E402

__all__ = ["ExcelConnector", "create_app"]


def main() -> None:
    """Run the FastAPI server using uvicorn."""
    import uvicorn

    from excel_archive_connector.config import Settings

    settings = Settings()  # type: ignore[call-arg]
    uvicorn.run(
        create_app(settings),
        host=settings.server_host,
        port=settings.server_port,
    )
