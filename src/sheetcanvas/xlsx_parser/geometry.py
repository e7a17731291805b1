"""Geometry - Unit conversion and cumulative column/row offset tables."""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from sheetcanvas.ir import CellGeometry, OffsetTables, Rect, SheetDimensions

logger = logging.getLogger(__name__)

EMU_PER_PIXEL = 9525
PX_PER_POINT = 96.0 / 72.0

DEFAULT_COLUMN_WIDTH = 8.43  # characters
DEFAULT_ROW_HEIGHT = 15.0  # points
CHAR_PIXEL_WIDTH = 7.0
COLUMN_WIDTH_PADDING = 0.12
MIN_COLUMNS = 50
MIN_ROWS = 100

# SpreadsheetML grid limits (XFD, 1048576)
MAX_GRID_COLUMNS = 16384
MAX_GRID_ROWS = 1048576


def points_to_px(points: float) -> float:
    return points * PX_PER_POINT


def px_to_points(px: float) -> float:
    return px / PX_PER_POINT


def column_width_to_px(
    width: float,
    char_pixel_width: float = CHAR_PIXEL_WIDTH,
    padding: float = COLUMN_WIDTH_PADDING,
) -> float:
    """Convert a column width in characters to pixels."""
    return (width + padding) * char_pixel_width


def emu_to_px(emu) -> float:
    """Convert EMUs to pixels (9525 EMU per pixel).

    Accepts strings straight from XML attributes; unparseable values give 0.0.
    """
    try:
        return int(emu) / EMU_PER_PIXEL
    except (ValueError, TypeError):
        return 0.0


def px_to_emu(px: float) -> int:
    return int(round(px * EMU_PER_PIXEL))


def dimensions_from_worksheet(ws) -> SheetDimensions:
    """Collect column widths and row heights from an openpyxl worksheet.

    Args:
        ws: openpyxl Worksheet.

    Returns:
        SheetDimensions with 1-based column/row keys.
    """
    from openpyxl.utils import column_index_from_string

    dims = SheetDimensions()

    sheet_format = getattr(ws, "sheet_format", None)
    if sheet_format is not None:
        dims.default_column_width = _positive(getattr(sheet_format, "defaultColWidth", None))
        if dims.default_column_width is None:
            base = _positive(getattr(sheet_format, "baseColWidth", None))
            # baseColWidth excludes the default cell padding of 5 px
            if base is not None and base != 8:
                dims.default_column_width = base + 5.0 / CHAR_PIXEL_WIDTH
        dims.default_row_height = _positive(getattr(sheet_format, "defaultRowHeight", None))

    # Iterate items() only: indexing the BoundDictionary would create entries.
    for key, cd in list(ws.column_dimensions.items()):
        try:
            start = cd.min or column_index_from_string(key)
            end = cd.max or start
        except ValueError:
            logger.warning(f"Ignoring column dimension with bad key: {key!r}")
            continue
        width = cd.width
        for col in range(start, end + 1):
            if cd.hidden:
                dims.hidden_columns.append(col)
            if width:
                dims.column_widths[col] = float(width)

    for row, rd in list(ws.row_dimensions.items()):
        if rd.hidden:
            dims.hidden_rows.append(int(row))
        if rd.height is not None and rd.height > 0:
            dims.row_heights[int(row)] = float(rd.height)

    dims.max_column = ws.max_column or 0
    dims.max_row = ws.max_row or 0
    return dims


def offsets_for(
    dims: SheetDimensions,
    min_columns: int = MIN_COLUMNS,
    min_rows: int = MIN_ROWS,
    char_pixel_width: float = CHAR_PIXEL_WIDTH,
    column_width_padding: float = COLUMN_WIDTH_PADDING,
    default_column_width: float = DEFAULT_COLUMN_WIDTH,
    default_row_height: float = DEFAULT_ROW_HEIGHT,
) -> OffsetTables:
    """Build cumulative offset tables for a sheet.

    The tables cover at least ``min_columns`` columns and ``min_rows`` rows,
    or further when explicit dimensions or the used range reach beyond that.
    Missing widths/heights fall back to the sheet defaults. Never raises.
    """
    col_default = dims.default_column_width or default_column_width
    row_default = dims.default_row_height or default_row_height

    col_count = max(
        min_columns,
        dims.max_column,
        max(dims.column_widths, default=0),
        max(dims.hidden_columns, default=0),
    )
    row_count = max(
        min_rows,
        dims.max_row,
        max(dims.row_heights, default=0),
        max(dims.hidden_rows, default=0),
    )

    hidden_cols = set(dims.hidden_columns)
    hidden_rows = set(dims.hidden_rows)

    col_offsets: List[float] = [0.0]
    for col in range(1, col_count + 1):
        if col in hidden_cols:
            width_px = 0.0
        else:
            width_px = column_width_to_px(
                _finite_or(dims.column_widths.get(col), col_default),
                char_pixel_width,
                column_width_padding,
            )
        col_offsets.append(col_offsets[-1] + max(0.0, width_px))

    row_offsets: List[float] = [0.0]
    for row in range(1, row_count + 1):
        if row in hidden_rows:
            height_px = 0.0
        else:
            height_px = points_to_px(_finite_or(dims.row_heights.get(row), row_default))
        row_offsets.append(row_offsets[-1] + max(0.0, height_px))

    return OffsetTables(tuple(col_offsets), tuple(row_offsets))


def clamp_index(index: int, offsets) -> int:
    """Clamp a 0-based offset index into ``[0, len(offsets) - 1]``."""
    return max(0, min(int(index), len(offsets) - 1))


def cell_geometry(row: int, col: int, offsets: OffsetTables) -> CellGeometry:
    """Pixel box of a 1-based cell; indices beyond the tables are clamped."""
    c0 = clamp_index(col - 1, offsets.col_offsets_px)
    c1 = clamp_index(col, offsets.col_offsets_px)
    r0 = clamp_index(row - 1, offsets.row_offsets_px)
    r1 = clamp_index(row, offsets.row_offsets_px)
    x = offsets.col_offsets_px[c0]
    y = offsets.row_offsets_px[r0]
    return CellGeometry(
        row=row,
        col=col,
        x_px=x,
        y_px=y,
        width_px=offsets.col_offsets_px[c1] - x,
        height_px=offsets.row_offsets_px[r1] - y,
    )


def range_rect(top: int, left: int, bottom: int, right: int, offsets: OffsetTables) -> Rect:
    """Pixel rectangle of a 1-based inclusive cell range."""
    x0 = offsets.col_offsets_px[clamp_index(left - 1, offsets.col_offsets_px)]
    y0 = offsets.row_offsets_px[clamp_index(top - 1, offsets.row_offsets_px)]
    x1 = offsets.col_offsets_px[clamp_index(right, offsets.col_offsets_px)]
    y1 = offsets.row_offsets_px[clamp_index(bottom, offsets.row_offsets_px)]
    return Rect(x0, y0, x1 - x0, y1 - y0)


def _positive(value) -> Optional[float]:
    try:
        value = float(value)
    except (ValueError, TypeError):
        return None
    if math.isnan(value) or value <= 0:
        return None
    return value


def _finite_or(value: Optional[float], default: float) -> float:
    if value is None:
        return default
    try:
        value = float(value)
    except (ValueError, TypeError):
        return default
    if math.isnan(value) or math.isinf(value) or value < 0:
        return default
    return value
