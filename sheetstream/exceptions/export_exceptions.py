"""
Custom exceptions for the export pipeline.

This module defines a hierarchy of exceptions for the failure modes of a
streaming export: style construction, row limits, serialization, naming,
persistence, faults raised by the record source and cooperative
cancellation. All exceptions inherit from ExcelExportError so the export
boundary can turn any of them into a structured result.

Example:
    try:
        row_limiter.check_overflow(cursor.has_next())
        writer.write_record(cursor.take_next())
    except RowLimitExceededError as e:
        logger.warning(f"Too many rows: {e.max_data_rows}")
    except ExcelExportError as e:
        logger.error(f"Export error: {e}")
"""

from typing import Any


class ExcelExportError(Exception):
    """
    Base exception for all export errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code for API responses.
        details: Optional additional context about the error.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "EXPORT_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the ExcelExportError.

        Args:
            message: Human-readable error description.
            error_code: Machine-readable error code for API responses.
            details: Optional additional context about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a dictionary for API responses.

        Returns:
            Dictionary containing error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class StyleBuildError(ExcelExportError):
    """Raised when the style part of a workbook cannot be built."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(
            message=f"Failed to build workbook styles - {reason}",
            error_code="STYLE_BUILD_FAILED",
            details={"reason": reason},
        )


class RowLimitExceededError(ExcelExportError):
    """
    Raised when a single-sheet, single-file export has more records than
    one worksheet can hold.

    Attributes:
        max_data_rows: Number of data rows a worksheet accepts.
        sheet_name: Worksheet that overflowed.
    """

    def __init__(self, max_data_rows: int, sheet_name: str | None = None) -> None:
        self.max_data_rows = max_data_rows
        self.sheet_name = sheet_name

        super().__init__(
            message=(
                f"Row limit exceeded: a worksheet holds at most {max_data_rows} data rows. "
                "Enable split_into_multiple_sheets or split_into_multiple_files."
            ),
            error_code="ROW_LIMIT_EXCEEDED",
            details={
                "max_data_rows": max_data_rows,
                "sheet_name": sheet_name,
            },
        )


class WriterError(ExcelExportError):
    """
    Raised when serializing a workbook fails.

    This covers temp-file I/O failures, XlsxWriter errors and values that
    cannot be converted to their column's declared type.

    Attributes:
        file_name: Artifact being written, if known.
        operation: The specific write operation that failed.
        reason: Specific reason for the failure.
    """

    def __init__(
        self,
        file_name: str | None = None,
        operation: str = "write",
        reason: str | None = None,
    ) -> None:
        self.file_name = file_name
        self.operation = operation
        self.reason = reason

        message = f"Failed to {operation} workbook"
        if file_name:
            message += f": {file_name}"
        if reason:
            message += f" - {reason}"

        super().__init__(
            message=message,
            error_code="WRITE_ERROR",
            details={
                "file_name": file_name,
                "operation": operation,
                "reason": reason,
            },
        )


class ExportCancelledError(ExcelExportError):
    """Raised when an export is stopped through its cancel signal."""

    def __init__(self, rows_written: int = 0) -> None:
        self.rows_written = rows_written
        super().__init__(
            message="Export was cancelled",
            error_code="CANCELLED",
            details={"rows_written": rows_written},
        )


class NamingError(ExcelExportError):
    """Raised when an artifact file name cannot be composed."""

    def __init__(self, base_name: str | None, reason: str) -> None:
        self.base_name = base_name
        self.reason = reason
        super().__init__(
            message=f"Failed to compose file name for {base_name!r} - {reason}",
            error_code="NAMING_FAILED",
            details={"base_name": base_name, "reason": reason},
        )


class UpstreamSourceError(ExcelExportError):
    """
    Raised when the record source itself fails while being read.

    Attributes:
        reason: Specific reason reported by the source.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(
            message=f"Record source failed - {reason}",
            error_code="UPSTREAM_SOURCE_FAULT",
            details={"reason": reason},
        )


class SourceConsumedError(UpstreamSourceError):
    """Raised when a one-shot record source is iterated a second time."""

    def __init__(self) -> None:
        super().__init__(reason="the record source can only be iterated once")


class EndOfSequenceError(ExcelExportError):
    """Raised when taking from a cursor that has no records left."""

    def __init__(self) -> None:
        super().__init__(
            message="No more records in the sequence",
            error_code="END_OF_SEQUENCE",
        )


class StorageError(ExcelExportError):
    """
    Raised when a finished artifact cannot be persisted.

    Attributes:
        artifact_name: Name the artifact was stored under.
        reason: Specific reason for the failure.
    """

    def __init__(self, artifact_name: str, reason: str | None = None) -> None:
        self.artifact_name = artifact_name
        self.reason = reason

        message = f"Failed to store artifact: {artifact_name}"
        if reason:
            message += f" - {reason}"

        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            details={"artifact_name": artifact_name, "reason": reason},
        )


class ColumnDefinitionError(ExcelExportError):
    """Raised when the column definitions of an export are inconsistent."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(
            message=f"Invalid column definitions - {reason}",
            error_code="INVALID_COLUMNS",
            details={"reason": reason},
        )


class FileNotFoundError(ExcelExportError):
    """
    Raised when an artifact to be read back does not exist.

    Attributes:
        file_path: Path to the file that was not found.
    """

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        super().__init__(
            message=f"Excel file not found: {file_path}",
            error_code="FILE_NOT_FOUND",
            details={"file_path": file_path},
        )


class SheetNotFoundError(ExcelExportError):
    """
    Raised when the requested sheet does not exist in an artifact.

    Attributes:
        sheet_name: Name of the sheet that was not found.
        available_sheets: List of sheets available in the workbook.
    """

    def __init__(
        self,
        sheet_name: str,
        available_sheets: list[str] | None = None,
    ) -> None:
        self.sheet_name = sheet_name
        self.available_sheets = available_sheets or []

        message = f"Sheet not found: {sheet_name}"
        if available_sheets:
            message += f". Available sheets: {', '.join(available_sheets)}"

        super().__init__(
            message=message,
            error_code="SHEET_NOT_FOUND",
            details={
                "sheet_name": sheet_name,
                "available_sheets": self.available_sheets,
            },
        )


class ReadError(ExcelExportError):
    """
    Raised when reading an artifact back fails.

    Attributes:
        file_path: Path to the file being read.
        operation: The specific read operation that failed.
    """

    def __init__(
        self,
        file_path: str,
        operation: str = "read",
        reason: str | None = None,
    ) -> None:
        self.file_path = file_path
        self.operation = operation
        self.reason = reason

        message = f"Failed to {operation} Excel file: {file_path}"
        if reason:
            message += f" - {reason}"

        super().__init__(
            message=message,
            error_code="READ_ERROR",
            details={
                "file_path": file_path,
                "operation": operation,
                "reason": reason,
            },
        )
