"""
Custom exceptions for the export pipeline.

Provides type-safe, descriptive exceptions that the export boundary turns
into structured results.
"""

from sheetstream.exceptions.export_exceptions import (
    ColumnDefinitionError,
    EndOfSequenceError,
    ExcelExportError,
    ExportCancelledError,
    NamingError,
    ReadError,
    RowLimitExceededError,
    SheetNotFoundError,
    SourceConsumedError,
    StorageError,
    StyleBuildError,
    UpstreamSourceError,
    WriterError,
)
from sheetstream.exceptions.export_exceptions import (
    FileNotFoundError as ExcelFileNotFoundError,
)

__all__ = [
    "ExcelExportError",
    "StyleBuildError",
    "RowLimitExceededError",
    "WriterError",
    "ExportCancelledError",
    "NamingError",
    "UpstreamSourceError",
    "SourceConsumedError",
    "EndOfSequenceError",
    "StorageError",
    "ColumnDefinitionError",
    "ExcelFileNotFoundError",
    "SheetNotFoundError",
    "ReadError",
]
