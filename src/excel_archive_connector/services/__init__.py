"""Services for the Excel archive connector."""

from excel_archive_connector.services.archive_source import ArchiveSource
from excel_archive_connector.services.catalog_resolver import CatalogResolver
from excel_archive_connector.services.format_detector import FormatDetector
from excel_archive_connector.services.record_set import RecordSet, RecordSetFactory
from excel_archive_connector.services.row_cursor import RowCursor
from excel_archive_connector.services.split_planner import SplitPlanner
from excel_archive_connector.services.workbook_access import WorkbookAccess

__all__ = [
    "ArchiveSource",
    "CatalogResolver",
    "FormatDetector",
    "RecordSet",
    "RecordSetFactory",
    "RowCursor",
    "SplitPlanner",
    "WorkbookAccess",
]
