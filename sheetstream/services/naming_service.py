"""
Artifact file naming.

Composes sanitized, date-stamped file names for exported workbooks and
numbers the parts of a multi-file export.

Example:
    naming = FileNamingService()
    naming.compose_name("Test/Report", date(2024, 1, 2), datetime(2024, 1, 3, 12, 5, 6))
    # 'Test_Report_20240102_20240103_120506.xlsx'
    naming.with_part_suffix("Report_20240102_20240103_120506.xlsx", 1)
    # 'Report_20240102_20240103_120506_part01.xlsx'
"""

import re
from datetime import date, datetime

from sheetstream.exceptions.export_exceptions import NamingError

XLSX_EXTENSION = ".xlsx"

_INVALID_FILE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


class FileNamingService:
    """Builds artifact file names."""

    def sanitize(self, base_name: str) -> str:
        """Replace characters that are invalid in file names with underscores."""
        return _INVALID_FILE_CHARS.sub("_", base_name.strip())

    def compose_name(self, base_name: str, data_date: date, created_at: datetime) -> str:
        """
        Compose the file name of an export.

        The result has the form <sanitized>_<yyyyMMdd>_<yyyyMMdd_HHmmss>.xlsx
        where the first stamp is the data date and the second the creation
        timestamp.

        Args:
            base_name: Logical name of the export.
            data_date: Date the data refers to.
            created_at: Creation timestamp (UTC).

        Returns:
            The composed file name.

        Raises:
            NamingError: If the base name is blank or the dates are invalid.
        """
        if base_name is None or not base_name.strip():
            raise NamingError(base_name, reason="base name must not be blank")

        try:
            sanitized = self.sanitize(base_name)
            return f"{sanitized}_{data_date:%Y%m%d}_{created_at:%Y%m%d_%H%M%S}{XLSX_EXTENSION}"
        except (TypeError, ValueError) as e:
            raise NamingError(base_name, reason=str(e)) from e

    def with_part_suffix(self, file_name: str, part: int) -> str:
        """
        Insert a _partNN suffix before the extension.

        Args:
            file_name: Composed file name.
            part: 1-based part number.

        Returns:
            The suffixed file name.
        """
        if part < 1:
            raise ValueError(f"Part numbers start at 1, got {part}")

        stem, dot, extension = file_name.rpartition(".")
        if not dot:
            return f"{file_name}_part{part:02d}"
        return f"{stem}_part{part:02d}.{extension}"
