"""
Pydantic models for export operations.

This module contains the column and option models that describe an export,
the descriptors returned for persisted artifacts, the structured result of
an export call and the models used when reading artifacts back.

All models use Pydantic v2 for validation, serialization, and
JSON Schema generation for OpenAPI documentation.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ColumnDataType(str, Enum):
    """
    Declared type of a column.

    The type decides how a record value is converted into a cell and which
    style the cell carries by default.
    """

    STRING = "String"
    NUMBER = "Number"
    DATETIME = "DateTime"
    BOOLEAN = "Boolean"
    CURRENCY = "Currency"
    PERCENTAGE = "Percentage"


class PredefinedStyle(str, Enum):
    """Semantic style identifiers resolved by the style catalog."""

    DEFAULT = "Default"
    HEADER = "Header"
    NUMBER = "Number"
    DATE = "Date"
    DATETIME = "DateTime"
    CURRENCY = "Currency"
    PERCENTAGE = "Percentage"
    BOOLEAN = "Boolean"
    TEXT = "Text"


class ExportStatus(str, Enum):
    """Outcome of an export call."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ColumnDefinition(BaseModel):
    """
    Describes one output column.

    Attributes:
        field_name: Record key the value is read from (case-insensitive).
        title: Header text.
        data_type: Declared type of the column values.
        width: Optional column width in characters.
        style: Optional style overriding the type-implied style.
        number_format: Optional number format overriding the style's format.
        hidden: Whether the column is hidden.
        group: Whether rows are grouped by adjacent values of this column.
    """

    field_name: str = Field(
        min_length=1,
        description="Record key the value is read from (case-insensitive)",
    )
    title: str = Field(
        description="Header text",
    )
    data_type: ColumnDataType = Field(
        default=ColumnDataType.STRING,
        description="Declared type of the column values",
    )
    width: float | None = Field(
        default=None,
        gt=0,
        description="Column width in characters",
    )
    style: PredefinedStyle | None = Field(
        default=None,
        description="Style overriding the type-implied style",
    )
    number_format: str | None = Field(
        default=None,
        description="Number format code overriding the style's format (e.g., '0.000')",
    )
    hidden: bool = Field(
        default=False,
        description="Whether the column is hidden",
    )
    group: bool = Field(
        default=False,
        description="Group adjacent rows sharing this column's value into outline blocks",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"field_name": "category", "title": "Category", "group": True},
                {"field_name": "amount", "title": "Amount", "data_type": "Currency", "width": 14},
            ]
        }
    }


class ExportOptions(BaseModel):
    """
    Options controlling a single export.

    Attributes:
        sheet_name: Base worksheet name.
        locale: Locale of the exported data, recorded on the workbook.
        freeze_header: Whether to freeze the header row.
        auto_filter: Whether to add an auto-filter over the header row.
        data_date: Date the data refers to. Defaults to the UTC creation date.
        split_into_multiple_sheets: Continue on new worksheets when a sheet is full.
        split_into_multiple_files: Continue in new files when a sheet is full.
        header_background_color: Optional header fill as 6 or 8 hex digits.
        header_text_color: Optional header font color as 6 or 8 hex digits.
    """

    sheet_name: str = Field(
        default="Sheet1",
        description="Base worksheet name. Defaults to 'Sheet1'.",
    )
    locale: str = Field(
        default="en_US",
        description="Locale of the exported data (e.g., 'en_US', 'de_DE')",
    )
    freeze_header: bool = Field(
        default=True,
        description="Whether to freeze the header row",
    )
    auto_filter: bool = Field(
        default=True,
        description="Whether to add an auto-filter over the header row",
    )
    data_date: date | None = Field(
        default=None,
        description="Date the data refers to. Defaults to the current UTC date.",
    )
    split_into_multiple_sheets: bool = Field(
        default=False,
        description="Continue on additional worksheets when the row limit is reached",
    )
    split_into_multiple_files: bool = Field(
        default=False,
        description="Continue in additional files when the row limit is reached",
    )
    header_background_color: str | None = Field(
        default=None,
        description="Header fill color as 6 or 8 hex digits; invalid values are ignored",
    )
    header_text_color: str | None = Field(
        default=None,
        description="Header font color as 6 or 8 hex digits; invalid values are ignored",
    )


@dataclass(frozen=True)
class RowGroupMarker:
    """Grouping decision for one data row."""

    is_group_start: bool
    outline_level: int


class ArtifactDescriptor(BaseModel):
    """
    Describes one persisted workbook.

    Attributes:
        name: Name the artifact was stored under (including any prefix).
        location: Directory or container holding the artifact.
        access_uri: URI the artifact can be fetched from.
        size_bytes: Size of the stored artifact.
        content_type: MIME type of the artifact.
        sheet_names: Worksheets in the artifact, in order.
        rows_written: Data rows in the artifact, excluding headers.
    """

    name: str = Field(
        description="Name the artifact was stored under",
    )
    location: str = Field(
        description="Directory or container holding the artifact",
    )
    access_uri: str = Field(
        description="URI the artifact can be fetched from",
    )
    size_bytes: int = Field(
        ge=0,
        description="Size of the stored artifact in bytes",
    )
    content_type: str = Field(
        default="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        description="MIME type of the artifact",
    )
    sheet_names: list[str] = Field(
        default_factory=list,
        description="Worksheets in the artifact, in order",
    )
    rows_written: int = Field(
        default=0,
        ge=0,
        description="Data rows in the artifact, excluding headers",
    )


class ExportResult(BaseModel):
    """
    Structured result of an export call.

    Failures are reported here rather than raised. Artifacts persisted
    before a failure in a multi-file export are still listed.

    Attributes:
        success: Whether every artifact was written and stored.
        status: succeeded, failed or cancelled.
        file_name: Resolved base file name of the export.
        artifacts: Artifacts persisted by this call.
        rows_written: Data rows across all persisted artifacts.
        sheets_written: Worksheets across all persisted artifacts.
        error_code: Machine-readable error code when not successful.
        message: Human-readable error description when not successful.
        details: Additional error context.
        processing_time_ms: Time taken by the export in milliseconds.
    """

    success: bool = Field(
        default=True,
        description="Whether every artifact was written and stored",
    )
    status: ExportStatus = Field(
        default=ExportStatus.SUCCEEDED,
        description="Outcome of the export",
    )
    file_name: str | None = Field(
        default=None,
        description="Resolved base file name of the export",
    )
    artifacts: list[ArtifactDescriptor] = Field(
        default_factory=list,
        description="Artifacts persisted by this call",
    )
    rows_written: int = Field(
        default=0,
        ge=0,
        description="Data rows across all persisted artifacts",
    )
    sheets_written: int = Field(
        default=0,
        ge=0,
        description="Worksheets across all persisted artifacts",
    )
    error_code: str | None = Field(
        default=None,
        description="Machine-readable error code",
    )
    message: str | None = Field(
        default=None,
        description="Human-readable error description",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error context",
    )
    processing_time_ms: float | None = Field(
        default=None,
        ge=0,
        description="Time taken by the export in milliseconds",
    )


class ExportRequest(BaseModel):
    """
    Request model for exporting records over REST or MCP.

    Attributes:
        base_name: Logical name of the export, used for the file name.
        columns: Output columns, in order.
        records: Records to export, in order.
        options: Export options.
    """

    base_name: str = Field(
        min_length=1,
        description="Logical name of the export, used for the file name",
    )
    columns: list[ColumnDefinition] = Field(
        description="Output columns, in order",
    )
    records: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Records to export, in order",
    )
    options: ExportOptions = Field(
        default_factory=ExportOptions,
        description="Export options",
    )

    @field_validator("columns")
    @classmethod
    def validate_columns(cls, v: list[ColumnDefinition]) -> list[ColumnDefinition]:
        """Ensure at least one column and at most one group column."""
        if len(v) == 0:
            raise ValueError("At least one column is required")
        if sum(1 for column in v if column.group) > 1:
            raise ValueError("At most one column can be a group column")
        return v


class SheetInfo(BaseModel):
    """
    Metadata about a single worksheet of an artifact.

    Attributes:
        name: The name of the sheet.
        index: The 0-based index of the sheet in the workbook.
        row_count: Number of rows with data, including the header.
        column_count: Number of columns with data.
    """

    name: str = Field(
        description="The name of the sheet",
    )
    index: int = Field(
        ge=0,
        description="The 0-based index of the sheet in the workbook",
    )
    row_count: int | None = Field(
        default=None,
        ge=0,
        description="Number of rows with data, including the header",
    )
    column_count: int | None = Field(
        default=None,
        ge=0,
        description="Number of columns with data",
    )


class WorkbookInfo(BaseModel):
    """
    Metadata about an artifact workbook.

    Attributes:
        file_path: Path to the workbook.
        file_size_bytes: Size of the file in bytes.
        sheet_count: Number of sheets in the workbook.
        sheets: List of sheet metadata.
        modified_at: File modification timestamp.
    """

    file_path: str = Field(
        description="Path to the workbook",
    )
    file_size_bytes: int | None = Field(
        default=None,
        ge=0,
        description="Size of the file in bytes",
    )
    sheet_count: int = Field(
        ge=0,
        description="Number of sheets in the workbook",
    )
    sheets: list[SheetInfo] = Field(
        default_factory=list,
        description="List of sheet metadata",
    )
    modified_at: datetime | None = Field(
        default=None,
        description="File modification timestamp",
    )


class SheetData(BaseModel):
    """
    Data read back from a single worksheet.

    Attributes:
        sheet_name: Name of the sheet.
        headers: Header row of the sheet.
        rows: Data rows, where each row is a list of cell values.
        row_count: Number of data rows.
        column_count: Number of columns.
    """

    sheet_name: str = Field(
        description="Name of the sheet",
    )
    headers: list[str] = Field(
        default_factory=list,
        description="Header row of the sheet",
    )
    rows: list[list[Any]] = Field(
        default_factory=list,
        description="Data rows, where each row is a list of cell values",
    )
    row_count: int = Field(
        ge=0,
        description="Number of data rows",
    )
    column_count: int = Field(
        ge=0,
        description="Number of columns",
    )


class ExportErrorResponse(BaseModel):
    """
    Standard error response model for the API.

    Attributes:
        success: Always False for error responses.
        error_code: Machine-readable error code.
        message: Human-readable error description.
        details: Additional error context.
    """

    success: bool = Field(
        default=False,
        description="Always False for error responses",
    )
    error_code: str = Field(
        description="Machine-readable error code",
    )
    message: str = Field(
        description="Human-readable error description",
    )
    details: dict | None = Field(
        default=None,
        description="Additional error context",
    )
