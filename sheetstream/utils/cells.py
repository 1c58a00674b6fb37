"""
Cell-level helpers shared by the worksheet writer and the artifact reader.

Covers column letter encoding, Excel date serials and case-insensitive
field lookup on records.
"""

from collections.abc import Mapping
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

# Excel's date system epoch. Excel incorrectly treats 1900 as a leap year
# for compatibility with Lotus 1-2-3, so the epoch is December 30, 1899.
EXCEL_EPOCH = datetime(1899, 12, 30)

SECONDS_PER_DAY = 86_400


def column_letter(index: int) -> str:
    """
    Convert a 1-based column number to Excel column letters.

    Uses bijective base-26: 1 -> A, 26 -> Z, 27 -> AA, 702 -> ZZ, 703 -> AAA.

    Args:
        index: 1-based column number.

    Returns:
        Column letters.

    Raises:
        ValueError: If index is less than 1.
    """
    if index < 1:
        raise ValueError(f"Column index must be >= 1, got {index}")

    letters = ""
    dividend = index
    while dividend > 0:
        modulo = (dividend - 1) % 26
        letters = chr(ord("A") + modulo) + letters
        dividend = (dividend - modulo - 1) // 26
    return letters


def column_index(letters: str) -> int:
    """
    Convert Excel column letters to a 1-based column number.

    Args:
        letters: Column letters like "A", "Z", "AA".

    Returns:
        1-based column number.
    """
    result = 0
    for char in letters.strip().upper():
        result = result * 26 + (ord(char) - ord("A") + 1)
    return result


def header_range(column_count: int) -> str:
    """Return the A1 range covering the header row, e.g. "A1:C1"."""
    return f"A1:{column_letter(column_count)}1"


def to_excel_serial(value: datetime | date | str) -> float:
    """
    Convert a date or datetime to an Excel serial number.

    The integer part counts days since the Excel epoch and the fractional
    part is the time of day. Timezone-aware datetimes are converted to UTC
    first. Strings are parsed as ISO-8601.

    Args:
        value: Value to convert.

    Returns:
        Excel serial number.

    Raises:
        ValueError: If a string is not valid ISO-8601.
        TypeError: If the value is not a date, datetime or string.
    """
    if isinstance(value, str):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
    elif isinstance(value, date):
        value = datetime.combine(value, time.min)
    else:
        raise TypeError(f"Cannot convert {type(value).__name__} to an Excel date")

    delta = value - EXCEL_EPOCH
    return delta.days + (delta.seconds + delta.microseconds / 1_000_000) / SECONDS_PER_DAY


def from_excel_serial(serial: float) -> datetime:
    """Convert an Excel serial number back to a naive datetime."""
    return EXCEL_EPOCH + timedelta(days=serial)


def resolve_field(record: Mapping[str, Any], field_name: str) -> Any:
    """
    Look up a field on a record by name.

    Tries an exact key match first and falls back to a case-insensitive
    scan. Missing fields resolve to None.

    Args:
        record: Record to read from.
        field_name: Field to look up.

    Returns:
        The field value, or None when the record has no such field.
    """
    if field_name in record:
        return record[field_name]

    wanted = field_name.casefold()
    for key, value in record.items():
        if isinstance(key, str) and key.casefold() == wanted:
            return value
    return None
