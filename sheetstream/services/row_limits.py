"""
Per-worksheet row limits.

An XLSX worksheet holds at most 1,048,576 rows. One of them is the header,
so a worksheet accepts FORMAT_MAX_ROWS - HEADER_ROW_COUNT data rows. The
limiter can be configured with a smaller cap for deployments that want
smaller sheets.
"""

from sheetstream.config import FORMAT_MAX_ROWS
from sheetstream.exceptions.export_exceptions import RowLimitExceededError

HEADER_ROW_COUNT = 1
MAX_DATA_ROWS_PER_SHEET = FORMAT_MAX_ROWS - HEADER_ROW_COUNT


class RowLimiter:
    """
    Caps data rows per worksheet and decides when output has to continue
    elsewhere.

    Attributes:
        max_rows_per_sheet: Total rows per worksheet, header included.
        max_data_rows: Data rows per worksheet.
    """

    def __init__(self, max_rows_per_sheet: int = FORMAT_MAX_ROWS) -> None:
        """
        Initialize the RowLimiter.

        Args:
            max_rows_per_sheet: Total rows per worksheet, header included.
                Must be between 2 and the format's row cap.

        Raises:
            ValueError: If max_rows_per_sheet is out of range.
        """
        if not HEADER_ROW_COUNT < max_rows_per_sheet <= FORMAT_MAX_ROWS:
            raise ValueError(
                f"max_rows_per_sheet must be between {HEADER_ROW_COUNT + 1} "
                f"and {FORMAT_MAX_ROWS}, got {max_rows_per_sheet}"
            )
        self.max_rows_per_sheet = max_rows_per_sheet
        self.max_data_rows = max_rows_per_sheet - HEADER_ROW_COUNT

    def is_full(self, rows_in_sheet: int) -> bool:
        """Return True once a worksheet holds max_data_rows data rows."""
        return rows_in_sheet >= self.max_data_rows

    def check_overflow(self, has_more: bool, sheet_name: str | None = None) -> None:
        """
        Fail a single-sheet export that still has records after a full sheet.

        Args:
            has_more: Whether the record source has another record.
            sheet_name: Worksheet that is full.

        Raises:
            RowLimitExceededError: If has_more is True.
        """
        if has_more:
            raise RowLimitExceededError(self.max_data_rows, sheet_name=sheet_name)

    def chunk_count(self, record_count: int) -> int:
        """Number of full-or-partial chunks needed for record_count records."""
        if record_count <= 0:
            return 1
        return -(-record_count // self.max_data_rows)
