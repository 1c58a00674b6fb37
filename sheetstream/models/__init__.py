"""
Data models for the export service.

Contains Pydantic models describing exports, their options and results.
"""

from sheetstream.models.export_models import (
    ArtifactDescriptor,
    ColumnDataType,
    ColumnDefinition,
    ExportErrorResponse,
    ExportOptions,
    ExportRequest,
    ExportResult,
    ExportStatus,
    PredefinedStyle,
    RowGroupMarker,
    SheetData,
    SheetInfo,
    WorkbookInfo,
)

__all__ = [
    "ColumnDataType",
    "PredefinedStyle",
    "ExportStatus",
    "ColumnDefinition",
    "ExportOptions",
    "RowGroupMarker",
    "ArtifactDescriptor",
    "ExportResult",
    "ExportRequest",
    "ExportErrorResponse",
    "SheetInfo",
    "WorkbookInfo",
    "SheetData",
]
