"""
Calamine adapter for reading exported artifacts back.

This module provides the CalamineAdapter class that wraps python-calamine
for reading workbooks produced by the export service. It is used to
describe stored artifacts (sheet names, row counts) and to return their
contents over the REST and MCP interfaces.

Example:
    adapter = CalamineAdapter()
    info = adapter.get_workbook_info("/srv/exports/Report_20240102_20240103_120506.xlsx")
    data = adapter.read_sheet(info.file_path, sheet_name="Report")
"""

from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any

from python_calamine import CalamineWorkbook

from sheetstream.exceptions.export_exceptions import (
    FileNotFoundError,
    ReadError,
    SheetNotFoundError,
)
from sheetstream.models.export_models import SheetData, SheetInfo, WorkbookInfo


class CalamineAdapter:
    """
    Adapter for python-calamine reads of exported workbooks.

    Attributes:
        SUPPORTED_EXTENSIONS: Tuple of supported file extensions.
    """

    SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm")

    def _validate_file_path(self, file_path: str) -> Path:
        """
        Validate that the file exists and has a supported extension.

        Raises:
            FileNotFoundError: If the file does not exist.
            ReadError: If the file extension is not supported.
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(file_path)

        if path.suffix.lower() not in self.SUPPORTED_EXTENSIONS:
            raise ReadError(
                file_path=file_path,
                operation="open",
                reason=f"Unsupported file extension: {path.suffix}",
            )

        return path

    def _open_workbook(self, file_path: str) -> CalamineWorkbook:
        path = self._validate_file_path(file_path)

        try:
            return CalamineWorkbook.from_path(str(path))
        except Exception as e:
            raise ReadError(
                file_path=file_path,
                operation="open",
                reason=str(e),
            ) from e

    def _normalize_cell_value(self, value: Any) -> Any:
        """
        Normalize a cell value from calamine to JSON-friendly Python types.

        Integral floats become ints; dates and times are kept; anything
        unexpected is converted to its string form.
        """
        if value is None:
            return None

        if isinstance(value, float):
            if value.is_integer():
                return int(value)
            return value

        if isinstance(value, (str, int, bool, datetime, date, time)):
            return value

        if isinstance(value, timedelta):
            return value.total_seconds()

        return str(value)

    def _read_raw(self, workbook: CalamineWorkbook, file_path: str, sheet_name: str) -> list[list[Any]]:
        try:
            return workbook.get_sheet_by_name(sheet_name).to_python()
        except Exception as e:
            raise ReadError(
                file_path=file_path,
                operation="read sheet",
                reason=str(e),
            ) from e

    def get_sheet_names(self, file_path: str) -> list[str]:
        """
        Get the list of sheet names in the workbook.

        Raises:
            FileNotFoundError: If the file does not exist.
            ReadError: If the file cannot be opened.
        """
        return list(self._open_workbook(file_path).sheet_names)

    def get_workbook_info(self, file_path: str) -> WorkbookInfo:
        """
        Get metadata about an exported workbook.

        Args:
            file_path: Path to the workbook.

        Returns:
            WorkbookInfo containing workbook metadata.

        Raises:
            FileNotFoundError: If the file does not exist.
            ReadError: If the file cannot be read.
        """
        path = self._validate_file_path(file_path)
        workbook = self._open_workbook(file_path)

        sheets: list[SheetInfo] = []
        for index, name in enumerate(workbook.sheet_names):
            data = self._read_raw(workbook, file_path, name)
            sheets.append(
                SheetInfo(
                    name=name,
                    index=index,
                    row_count=len(data),
                    column_count=max((len(row) for row in data), default=0),
                )
            )

        stat = path.stat()

        return WorkbookInfo(
            file_path=str(path.absolute()),
            file_size_bytes=stat.st_size,
            sheet_count=len(sheets),
            sheets=sheets,
            modified_at=datetime.fromtimestamp(stat.st_mtime),
        )

    def read_sheet(
        self,
        file_path: str,
        sheet_name: str | None = None,
        sheet_index: int | None = None,
    ) -> SheetData:
        """
        Read an exported worksheet, splitting off its header row.

        Args:
            file_path: Path to the workbook.
            sheet_name: Name of the sheet to read. If None and sheet_index is None,
                       reads the first sheet.
            sheet_index: Index of the sheet (0-based). Used if sheet_name is None.

        Returns:
            SheetData with headers and data rows.

        Raises:
            FileNotFoundError: If the file does not exist.
            SheetNotFoundError: If the specified sheet does not exist.
            ReadError: If the sheet cannot be read.
        """
        workbook = self._open_workbook(file_path)
        available_sheets = list(workbook.sheet_names)

        if sheet_name is not None:
            if sheet_name not in available_sheets:
                raise SheetNotFoundError(
                    sheet_name=sheet_name,
                    available_sheets=available_sheets,
                )
            target_sheet_name = sheet_name
        elif sheet_index is not None:
            if sheet_index < 0 or sheet_index >= len(available_sheets):
                raise SheetNotFoundError(
                    sheet_name=f"index {sheet_index}",
                    available_sheets=available_sheets,
                )
            target_sheet_name = available_sheets[sheet_index]
        else:
            if not available_sheets:
                raise SheetNotFoundError(
                    sheet_name="(first sheet)",
                    available_sheets=[],
                )
            target_sheet_name = available_sheets[0]

        raw_data = self._read_raw(workbook, file_path, target_sheet_name)
        rows = [[self._normalize_cell_value(cell) for cell in row] for row in raw_data]

        headers: list[str] = []
        if rows:
            headers = ["" if cell is None else str(cell) for cell in rows[0]]
            rows = rows[1:]

        return SheetData(
            sheet_name=target_sheet_name,
            headers=headers,
            rows=rows,
            row_count=len(rows),
            column_count=max((len(row) for row in [headers, *rows]), default=0),
        )
