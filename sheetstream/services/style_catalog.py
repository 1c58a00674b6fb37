"""
Style catalog for exported workbooks.

Maps semantic style identifiers (PredefinedStyle) to XlsxWriter format
properties and registers them on a workbook. The catalog holds no state
between calls and can be shared freely across exports.

Example:
    catalog = StyleCatalog()
    formats = catalog.register(workbook, header_background_color="1F4E78")
    worksheet.write_string(0, 0, "Name", formats.get(PredefinedStyle.HEADER))
"""

import logging
import re
from typing import Any

from xlsxwriter.format import Format
from xlsxwriter.workbook import Workbook

from sheetstream.exceptions.export_exceptions import StyleBuildError
from sheetstream.models.export_models import ColumnDataType, PredefinedStyle

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r"^#?(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")

_BASE_STYLES: dict[PredefinedStyle, dict[str, Any]] = {
    PredefinedStyle.DEFAULT: {},
    PredefinedStyle.HEADER: {"bold": True},
    PredefinedStyle.NUMBER: {"num_format": "#,##0.00"},
    PredefinedStyle.DATE: {"num_format": "yyyy-mm-dd"},
    PredefinedStyle.DATETIME: {"num_format": "yyyy-mm-dd hh:mm:ss"},
    PredefinedStyle.CURRENCY: {"num_format": "#,##0.00"},
    PredefinedStyle.PERCENTAGE: {"num_format": "0.00%"},
    PredefinedStyle.BOOLEAN: {},
    PredefinedStyle.TEXT: {},
}

_TYPE_STYLES: dict[ColumnDataType, PredefinedStyle] = {
    ColumnDataType.NUMBER: PredefinedStyle.NUMBER,
    ColumnDataType.DATETIME: PredefinedStyle.DATETIME,
    ColumnDataType.BOOLEAN: PredefinedStyle.BOOLEAN,
    ColumnDataType.CURRENCY: PredefinedStyle.CURRENCY,
    ColumnDataType.PERCENTAGE: PredefinedStyle.PERCENTAGE,
}


def normalize_hex_color(value: str | None) -> str | None:
    """
    Normalize a user supplied hex color to XlsxWriter's "#RRGGBB" form.

    Accepts 6 (RRGGBB) or 8 (AARRGGBB) hex digits with an optional leading
    "#". The alpha channel of 8-digit values is dropped.

    Args:
        value: Raw color string.

    Returns:
        The normalized color, or None for blank or malformed input.
    """
    if value is None:
        return None
    value = value.strip()
    if not value or not _HEX_COLOR.match(value):
        return None
    digits = value.lstrip("#")
    if len(digits) == 8:
        digits = digits[2:]
    return f"#{digits.upper()}"


def style_for_type(data_type: ColumnDataType) -> PredefinedStyle:
    """Return the style implied by a column's declared type."""
    return _TYPE_STYLES.get(data_type, PredefinedStyle.TEXT)


class WorkbookFormats:
    """
    Formats registered on one workbook.

    Formats with a per-column number format override are created on first
    use and cached for the lifetime of the workbook.
    """

    def __init__(
        self,
        workbook: Workbook,
        properties: dict[PredefinedStyle, dict[str, Any]],
    ) -> None:
        self._workbook = workbook
        self._properties = properties
        self._formats: dict[tuple[PredefinedStyle, str | None], Format] = {}

        for style, props in properties.items():
            self._formats[(style, None)] = workbook.add_format(props)

    def get(self, style: PredefinedStyle, number_format: str | None = None) -> Format:
        """
        Return the format for a style, optionally with a number format override.

        Args:
            style: Semantic style identifier.
            number_format: Optional number format code replacing the style's own.

        Returns:
            XlsxWriter Format registered on the workbook.
        """
        key = (style, number_format)
        cell_format = self._formats.get(key)
        if cell_format is None:
            props = {**self._properties[style], "num_format": number_format}
            cell_format = self._workbook.add_format(props)
            self._formats[key] = cell_format
        return cell_format


class StyleCatalog:
    """
    Builds the style part of exported workbooks.

    The header style is bold by default; a valid background color adds a
    solid fill and a valid text color sets the font color. Invalid colors
    are ignored and the default header style is used instead.
    """

    def build_properties(
        self,
        header_background_color: str | None = None,
        header_text_color: str | None = None,
    ) -> dict[PredefinedStyle, dict[str, Any]]:
        """
        Build XlsxWriter format properties for every predefined style.

        Args:
            header_background_color: Optional header fill color.
            header_text_color: Optional header font color.

        Returns:
            Mapping of style identifier to format properties.
        """
        properties = {style: dict(props) for style, props in _BASE_STYLES.items()}
        header = properties[PredefinedStyle.HEADER]

        background = normalize_hex_color(header_background_color)
        if background:
            header["bg_color"] = background
            header["pattern"] = 1
        elif header_background_color:
            logger.warning("Ignoring invalid header background color %r", header_background_color)

        text = normalize_hex_color(header_text_color)
        if text:
            header["font_color"] = text
        elif header_text_color:
            logger.warning("Ignoring invalid header text color %r", header_text_color)

        return properties

    def register(
        self,
        workbook: Workbook,
        header_background_color: str | None = None,
        header_text_color: str | None = None,
    ) -> WorkbookFormats:
        """
        Register the catalog's formats on a workbook.

        Args:
            workbook: Workbook receiving the formats.
            header_background_color: Optional header fill color.
            header_text_color: Optional header font color.

        Returns:
            WorkbookFormats resolving style identifiers to formats.

        Raises:
            StyleBuildError: If the formats cannot be created.
        """
        try:
            properties = self.build_properties(header_background_color, header_text_color)
            return WorkbookFormats(workbook, properties)
        except Exception as e:
            raise StyleBuildError(reason=str(e)) from e
