"""
Service layer for export operations.

Contains the export collaborators, decoupled from transport layers
(HTTP/MCP). The orchestrator itself lives in
sheetstream.services.export_service, since it depends on the adapters that
depend on these collaborators.
"""

from sheetstream.services.grouping import GroupTracker
from sheetstream.services.naming_service import FileNamingService
from sheetstream.services.row_limits import RowLimiter
from sheetstream.services.style_catalog import StyleCatalog

__all__ = [
    "FileNamingService",
    "GroupTracker",
    "RowLimiter",
    "StyleCatalog",
]
