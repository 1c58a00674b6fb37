"""
XlsxWriter adapter for streaming workbook assembly.

This module provides the WorkbookAssembler and WorksheetWriter classes that
wrap XlsxWriter for writing exported workbooks. Workbooks are opened in
constant_memory mode, so each row is flushed to disk as soon as the next
one begins and memory use stays flat regardless of record count.

Features:
    - Streaming, row-at-a-time writes
    - Typed cells driven by column definitions
    - Frozen header, auto-filter, column widths and hidden columns
    - Adjacency grouping rendered as collapsible outline rows
    - Unique, length-bounded worksheet names for split exports

Example:
    assembler = WorkbookAssembler(columns, options, catalog)
    assembler.open("/tmp/report.xlsx")
    writer = assembler.add_worksheet()
    for record in records:
        writer.write_record(record)
    writer.finish()
    assembler.close()
"""

import logging
import math
import re
from collections.abc import Mapping, Sequence
from decimal import Decimal
from pathlib import Path
from typing import Any

import xlsxwriter
from xlsxwriter.format import Format
from xlsxwriter.workbook import Workbook
from xlsxwriter.worksheet import Worksheet

from sheetstream.exceptions.export_exceptions import (
    ColumnDefinitionError,
    ExcelExportError,
    WriterError,
)
from sheetstream.models.export_models import (
    ColumnDataType,
    ColumnDefinition,
    ExportOptions,
    PredefinedStyle,
    RowGroupMarker,
)
from sheetstream.services.grouping import GroupTracker
from sheetstream.services.style_catalog import StyleCatalog, WorkbookFormats, style_for_type
from sheetstream.utils.cells import header_range, resolve_field, to_excel_serial

logger = logging.getLogger(__name__)

MAX_SHEET_NAME_LENGTH = 31
DEFAULT_SHEET_NAME = "Sheet1"

_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")

_TRUE_STRINGS = frozenset({"true", "1", "yes", "y"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n"})

_NUMERIC_TYPES = (ColumnDataType.NUMBER, ColumnDataType.CURRENCY, ColumnDataType.PERCENTAGE)


def sanitize_sheet_name(name: str | None) -> str:
    """
    Make a configured sheet name acceptable to Excel.

    Characters Excel forbids in sheet names are replaced with underscores,
    leading and trailing apostrophes are removed and a blank name falls back
    to "Sheet1".
    """
    if name is None:
        return DEFAULT_SHEET_NAME
    cleaned = _INVALID_SHEET_CHARS.sub("_", name).strip().strip("'")
    return cleaned or DEFAULT_SHEET_NAME


def sheet_name_for(base_name: str, index: int) -> str:
    """
    Name the index-th worksheet (1-based) of a split export.

    The first worksheet keeps the base name truncated to 31 characters,
    without trailing apostrophes, which Excel rejects at either end of a name.
    Later worksheets get a " (k)" suffix with the base name truncated so the
    whole name stays within 31 characters.

    Args:
        base_name: Configured sheet name.
        index: 1-based worksheet number.

    Returns:
        The worksheet name.
    """
    if index <= 1:
        return base_name[:MAX_SHEET_NAME_LENGTH].rstrip("'") or DEFAULT_SHEET_NAME
    suffix = f" ({index})"
    return base_name[: MAX_SHEET_NAME_LENGTH - len(suffix)] + suffix


def validate_columns(columns: Sequence[ColumnDefinition]) -> ColumnDefinition | None:
    """
    Check the column definitions of an export.

    Args:
        columns: Output columns.

    Returns:
        The group column, if any.

    Raises:
        ColumnDefinitionError: If there are no columns or more than one group column.
    """
    if not columns:
        raise ColumnDefinitionError("at least one column is required")

    group_columns = [column for column in columns if column.group]
    if len(group_columns) > 1:
        names = ", ".join(column.field_name for column in group_columns)
        raise ColumnDefinitionError(f"at most one group column is allowed, got: {names}")

    return group_columns[0] if group_columns else None


class WorksheetWriter:
    """
    Streams one worksheet: view settings, column metadata, header, data rows
    and the auto-filter.

    Rows are written strictly in order. The writer keeps no row data of its
    own; XlsxWriter's constant_memory mode flushes each row to disk once the
    next row starts.

    Attributes:
        name: Worksheet name.
        rows_written: Data rows written so far (header excluded).
    """

    def __init__(
        self,
        worksheet: Worksheet,
        columns: Sequence[ColumnDefinition],
        options: ExportOptions,
        formats: WorkbookFormats,
        group_column: ColumnDefinition | None = None,
    ) -> None:
        self._worksheet = worksheet
        self._columns = list(columns)
        self._options = options
        self._formats = formats
        self._group_column = group_column
        self._group_index = self._columns.index(group_column) if group_column else None
        self._tracker = GroupTracker(group_column.field_name if group_column else None)
        self._cell_formats = [self._column_format(column) for column in self._columns]
        self.name: str = worksheet.get_name()
        self.rows_written = 0
        self._started = False
        self._finished = False

    def _column_format(self, column: ColumnDefinition) -> Format:
        style = column.style or style_for_type(column.data_type)
        return self._formats.get(style, column.number_format)

    def begin(self) -> None:
        """Write the frozen pane, column metadata, outline settings and header row."""
        if self._started:
            return
        self._started = True
        worksheet = self._worksheet

        if self._options.freeze_header:
            worksheet.freeze_panes(1, 0)

        if any(column.width is not None or column.hidden for column in self._columns):
            for col_idx, column in enumerate(self._columns):
                if column.width is None and not column.hidden:
                    continue
                worksheet.set_column(
                    col_idx,
                    col_idx,
                    column.width,
                    None,
                    {"hidden": True} if column.hidden else None,
                )

        if self._group_column is not None:
            # Group-start rows sit above their continuation rows.
            worksheet.outline_settings(True, False, True, False)

        header_format = self._formats.get(PredefinedStyle.HEADER)
        for col_idx, column in enumerate(self._columns):
            worksheet.write_string(0, col_idx, column.title, header_format)

    def write_record(self, record: Mapping[str, Any]) -> RowGroupMarker:
        """
        Write one record as the next data row.

        Args:
            record: Field-keyed record.

        Returns:
            The grouping decision taken for the row.

        Raises:
            WriterError: If a value cannot be converted to its column's type.
        """
        if not self._started:
            self.begin()
        if not isinstance(record, Mapping):
            raise WriterError(
                operation="write row",
                reason=f"records must be mappings, got {type(record).__name__}",
            )

        row = self.rows_written + 1
        worksheet = self._worksheet

        group_value = None
        if self._group_column is not None:
            group_value = resolve_field(record, self._group_column.field_name)
        marker = self._tracker.track(group_value)

        if marker.outline_level:
            worksheet.set_row(row, None, None, {"level": marker.outline_level})

        for col_idx, column in enumerate(self._columns):
            cell_format = self._cell_formats[col_idx]

            if col_idx == self._group_index and not marker.is_group_start:
                worksheet.write_string(row, col_idx, "", cell_format)
                continue

            value = group_value if col_idx == self._group_index else resolve_field(record, column.field_name)
            if value is None:
                continue
            self._write_value(row, col_idx, column, value, cell_format)

        self.rows_written += 1
        return marker

    def _write_value(
        self,
        row: int,
        col: int,
        column: ColumnDefinition,
        value: Any,
        cell_format: Format,
    ) -> None:
        """
        Write a value to a cell according to the column's declared type.

        Args:
            row: Row index (0-based).
            col: Column index (0-based).
            column: Column definition.
            value: Non-null value to write.
            cell_format: Format to apply.
        """
        worksheet = self._worksheet
        data_type = column.data_type

        try:
            if data_type in _NUMERIC_TYPES:
                worksheet.write_number(row, col, _to_number(value), cell_format)
            elif data_type == ColumnDataType.DATETIME:
                worksheet.write_number(row, col, to_excel_serial(value), cell_format)
            elif data_type == ColumnDataType.BOOLEAN:
                worksheet.write_boolean(row, col, _to_bool(value), cell_format)
            else:
                worksheet.write_string(row, col, str(value), cell_format)
        except (TypeError, ValueError) as e:
            raise WriterError(
                operation="write cell",
                reason=f"column {column.field_name!r} row {row + 1}: {e}",
            ) from e

    def finish(self) -> None:
        """Add the auto-filter over the header row."""
        if self._finished:
            return
        if not self._started:
            self.begin()
        self._finished = True

        if self._options.auto_filter:
            self._worksheet.autofilter(header_range(len(self._columns)))


def _to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"expected a number, got {type(value).__name__}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)) and not (isinstance(value, float) and math.isnan(value)):
        if value in (0, 1):
            return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"expected a boolean, got {value!r}")


class WorkbookAssembler:
    """
    Composes one workbook artifact from one or more worksheets.

    The assembler owns the XlsxWriter workbook for the lifetime of one
    artifact: it registers the style part, adds uniquely named worksheets
    and either closes the workbook into its file or discards it.

    Attributes:
        path: File the workbook is written to.
        sheet_names: Names of the worksheets added so far.

    Example:
        assembler = WorkbookAssembler(columns, options, StyleCatalog())
        assembler.open(path)
        writer = assembler.add_worksheet()
        writer.write_record({"name": "Alice"})
        writer.finish()
        size = assembler.close()
    """

    def __init__(
        self,
        columns: Sequence[ColumnDefinition],
        options: ExportOptions,
        style_catalog: StyleCatalog | None = None,
        tmpdir: str | None = None,
    ) -> None:
        """
        Initialize the WorkbookAssembler.

        Args:
            columns: Output columns, in order.
            options: Export options.
            style_catalog: Optional StyleCatalog. If None, creates a new instance.
            tmpdir: Directory XlsxWriter uses for its row spill files.

        Raises:
            ColumnDefinitionError: If the columns are inconsistent.
        """
        self.columns = list(columns)
        self.options = options
        self.style_catalog = style_catalog or StyleCatalog()
        self.tmpdir = tmpdir
        self.group_column = validate_columns(self.columns)
        self.base_sheet_name = sanitize_sheet_name(options.sheet_name)

        self.path: Path | None = None
        self.sheet_names: list[str] = []
        self._workbook: Workbook | None = None
        self._formats: WorkbookFormats | None = None
        self._current: WorksheetWriter | None = None
        self._rows_finished = 0

    @property
    def rows_written(self) -> int:
        """Data rows written across all finished and current worksheets."""
        return self._rows_finished + (self._current.rows_written if self._current else 0)

    def open(self, path: str | Path) -> None:
        """
        Create the workbook file and register its styles.

        Args:
            path: File the workbook is written to.

        Raises:
            StyleBuildError: If the style part cannot be built.
            WriterError: If XlsxWriter cannot create the workbook.
        """
        self.path = Path(path)
        workbook_options: dict[str, Any] = {
            "constant_memory": True,
            "nan_inf_to_errors": True,
        }
        if self.tmpdir:
            workbook_options["tmpdir"] = self.tmpdir

        try:
            self._workbook = xlsxwriter.Workbook(str(self.path), workbook_options)
            self._workbook.set_custom_property("Locale", self.options.locale)
        except Exception as e:
            raise WriterError(
                file_name=self.path.name,
                operation="create",
                reason=str(e),
            ) from e

        self._formats = self.style_catalog.register(
            self._workbook,
            header_background_color=self.options.header_background_color,
            header_text_color=self.options.header_text_color,
        )

    def _unique_sheet_name(self, index: int) -> str:
        taken = {name.casefold() for name in self.sheet_names}
        candidate = sheet_name_for(self.base_sheet_name, index)
        bump = index
        while candidate.casefold() in taken:
            bump += 1
            candidate = sheet_name_for(self.base_sheet_name, bump)
        return candidate

    def add_worksheet(self) -> WorksheetWriter:
        """
        Finish the current worksheet (if any) and start the next one.

        Returns:
            WorksheetWriter for the new worksheet, header already written.

        Raises:
            WriterError: If the workbook is not open or the sheet cannot be added.
        """
        if self._workbook is None or self._formats is None:
            raise WriterError(operation="add worksheet", reason="workbook is not open")

        if self._current is not None:
            self._current.finish()
            self._rows_finished += self._current.rows_written

        name = self._unique_sheet_name(len(self.sheet_names) + 1)
        try:
            worksheet = self._workbook.add_worksheet(name)
        except Exception as e:
            raise WriterError(
                file_name=self.path.name if self.path else None,
                operation="add worksheet",
                reason=str(e),
            ) from e

        self.sheet_names.append(name)
        self._current = WorksheetWriter(
            worksheet,
            self.columns,
            self.options,
            self._formats,
            group_column=self.group_column,
        )
        self._current.begin()
        logger.debug("Started worksheet %r in %s", name, self.path)
        return self._current

    def close(self) -> int:
        """
        Finish the last worksheet and write the workbook file.

        Returns:
            Size of the written file in bytes.

        Raises:
            WriterError: If the workbook cannot be written.
        """
        if self._workbook is None:
            raise WriterError(operation="close", reason="workbook is not open")

        if self._current is not None:
            self._current.finish()
            self._rows_finished += self._current.rows_written
            self._current = None

        try:
            self._workbook.close()
        except ExcelExportError:
            raise
        except Exception as e:
            raise WriterError(
                file_name=self.path.name if self.path else None,
                operation="save",
                reason=str(e),
            ) from e
        finally:
            self._workbook = None

        return self.path.stat().st_size if self.path and self.path.exists() else 0

    def discard(self) -> None:
        """
        Abandon the workbook and remove anything already written for it.

        Safe to call after close() or after a failure.
        """
        workbook, self._workbook = self._workbook, None
        self._current = None
        if workbook is not None:
            # Release XlsxWriter's row spill files before removing the output.
            try:
                workbook.close()
            except Exception as e:
                logger.debug("Ignoring close failure of discarded workbook %s: %s", self.path, e)
        if self.path is not None and self.path.exists():
            try:
                self.path.unlink()
            except OSError as e:
                logger.warning("Could not remove temporary workbook %s: %s", self.path, e)
