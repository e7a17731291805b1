"""XLSX Parser Package - SpreadsheetML and DrawingML extraction modules."""

from .package import SpreadsheetPackage
from .geometry import (
    EMU_PER_PIXEL,
    cell_geometry,
    column_width_to_px,
    dimensions_from_worksheet,
    emu_to_px,
    offsets_for,
    points_to_px,
    px_to_points,
    range_rect,
)
from .merges import ConsumedCells, is_in_region, resolve_merges
from .relationships import parse_relationships, resolve_target
from .drawing import FilterPolicy, parse_anchors, parse_drawing
from .theme import parse_theme_colors

__all__ = [
    "SpreadsheetPackage",
    "EMU_PER_PIXEL",
    "cell_geometry",
    "column_width_to_px",
    "dimensions_from_worksheet",
    "emu_to_px",
    "offsets_for",
    "points_to_px",
    "px_to_points",
    "range_rect",
    "ConsumedCells",
    "is_in_region",
    "resolve_merges",
    "parse_relationships",
    "resolve_target",
    "FilterPolicy",
    "parse_anchors",
    "parse_drawing",
    "parse_theme_colors",
]
