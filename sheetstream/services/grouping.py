"""
Adjacency grouping of consecutive rows.

A row starts a new group when its group-column value differs from the
previous row's value. Continuation rows are placed one outline level down so
spreadsheet applications can collapse them under the group-start row.
Records are not sorted or aggregated; callers pre-order them by group key.
"""

from typing import Any

from sheetstream.models.export_models import RowGroupMarker

_NO_GROUP_YET = object()

_UNGROUPED = RowGroupMarker(is_group_start=False, outline_level=0)
_GROUP_START = RowGroupMarker(is_group_start=True, outline_level=0)
_CONTINUATION = RowGroupMarker(is_group_start=False, outline_level=1)


class GroupTracker:
    """
    Tracks the current group value of one worksheet.

    Attributes:
        field_name: Group column's field name, or None when not grouping.
    """

    def __init__(self, field_name: str | None) -> None:
        self.field_name = field_name
        self._current: Any = _NO_GROUP_YET

    @property
    def enabled(self) -> bool:
        return self.field_name is not None

    def track(self, value: Any) -> RowGroupMarker:
        """
        Classify the next row by its group-column value.

        Args:
            value: The row's group-column value (None allowed).

        Returns:
            RowGroupMarker for the row.
        """
        if not self.enabled:
            return _UNGROUPED

        if self._current is _NO_GROUP_YET or not _same_value(self._current, value):
            self._current = value
            return _GROUP_START
        return _CONTINUATION

    def reset(self) -> None:
        """Forget the current group, e.g. when a new worksheet begins."""
        self._current = _NO_GROUP_YET


def _same_value(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    return bool(left == right)
