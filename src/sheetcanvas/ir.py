"""Intermediate Representation (IR) for reconstructed spreadsheet layouts.

This module defines the canonical data structures used throughout the pipeline:
XLSX Package -> Geometry / Anchors / Styles -> Drawable Elements -> Canvas

All pixel values are CSS pixels at 96 DPI.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union


class Stage(str, Enum):
    """Lifecycle of a single sheet reconstruction run."""

    IDLE = "idle"
    PARSING_GEOMETRY = "parsing_geometry"
    EXTRACTING_ELEMENTS = "extracting_elements"
    RESOLVING_STYLES = "resolving_styles"
    ORDERING = "ordering"
    PLACING = "placing"
    DONE = "done"
    FAILED = "failed"


# Geometry

@dataclass(frozen=True)
class Rect:
    """Axis-aligned pixel rectangle.

    ``w``/``h`` are ``None`` only for a point anchor without a declared extent
    whose picture has not been decoded yet.
    """

    x: float
    y: float
    w: Optional[float] = None
    h: Optional[float] = None

    @property
    def has_size(self) -> bool:
        return self.w is not None and self.h is not None

    @property
    def right(self) -> float:
        return self.x + (self.w or 0)

    @property
    def bottom(self) -> float:
        return self.y + (self.h or 0)

    def contains(self, other: "Rect", tolerance: float = 0.0) -> bool:
        return (
            other.x >= self.x - tolerance
            and other.y >= self.y - tolerance
            and other.right <= self.right + tolerance
            and other.bottom <= self.bottom + tolerance
        )


@dataclass(frozen=True)
class OffsetTables:
    """Cumulative pixel offsets of every column and row start.

    Index ``i`` is the left/top edge of 0-based column/row ``i``; the final
    entry is the trailing edge of the last column/row.
    """

    col_offsets_px: Tuple[float, ...]
    row_offsets_px: Tuple[float, ...]

    @property
    def max_col(self) -> int:
        """Number of columns covered by the table."""
        return len(self.col_offsets_px) - 1

    @property
    def max_row(self) -> int:
        return len(self.row_offsets_px) - 1

    @property
    def width_px(self) -> float:
        return self.col_offsets_px[-1]

    @property
    def height_px(self) -> float:
        return self.row_offsets_px[-1]


@dataclass(frozen=True)
class CellGeometry:
    """Pixel box of one cell (1-based row/col)."""

    row: int
    col: int
    x_px: float
    y_px: float
    width_px: float
    height_px: float

    @property
    def rect(self) -> Rect:
        return Rect(self.x_px, self.y_px, self.width_px, self.height_px)


@dataclass
class SheetDimensions:
    """Raw column widths (characters) and row heights (points) of a sheet."""

    column_widths: Dict[int, float] = field(default_factory=dict)  # 1-based col -> chars
    row_heights: Dict[int, float] = field(default_factory=dict)  # 1-based row -> points
    hidden_columns: List[int] = field(default_factory=list)
    hidden_rows: List[int] = field(default_factory=list)
    default_column_width: Optional[float] = None
    default_row_height: Optional[float] = None
    max_column: int = 0
    max_row: int = 0


@dataclass(frozen=True)
class MergedRegion:
    """A merged cell range (1-based, inclusive) and its pixel rectangle."""

    top_row: int
    left_col: int
    bottom_row: int
    right_col: int
    pixel_rect: Rect

    @property
    def key(self) -> str:
        return f"{self.top_row}:{self.left_col}:{self.bottom_row}:{self.right_col}"

    def covers(self, row: int, col: int) -> bool:
        return self.top_row <= row <= self.bottom_row and self.left_col <= col <= self.right_col

    def overlaps(self, other: "MergedRegion") -> bool:
        return not (
            other.left_col > self.right_col
            or other.right_col < self.left_col
            or other.top_row > self.bottom_row
            or other.bottom_row < self.top_row
        )


# Drawing anchors

AnchorKind = Literal["range", "point"]
ObjectKind = Literal["picture", "textbox", "shape", "group", "connector", "graphic_frame", "unknown"]


@dataclass(frozen=True)
class GridMarker:
    """A cell position plus EMU offset inside that cell (0-based, as stored)."""

    col: int
    row: int
    col_off_emu: int = 0
    row_off_emu: int = 0


@dataclass(frozen=True)
class Extent:
    cx_emu: int
    cy_emu: int


@dataclass(frozen=True)
class TextRun:
    """A run of text with inline formatting (from rich text or DrawingML)."""

    text: str
    bold: bool = False
    italic: bool = False
    underline: bool = False
    font_name: Optional[str] = None
    font_size: Optional[float] = None  # in points
    color: Optional[str] = None  # "#RRGGBB"


@dataclass(frozen=True)
class AnchorEntry:
    """One resolved drawing anchor."""

    sheet_name: str
    anchor_kind: AnchorKind
    from_marker: Optional[GridMarker]
    rect_px: Rect
    object_kind: ObjectKind = "unknown"
    z_index: int = 0
    to_marker: Optional[GridMarker] = None
    explicit_extent: Optional[Extent] = None
    relationship_id: Optional[str] = None
    resolved_target_path: Optional[str] = None
    name: str = ""
    description: str = ""
    hidden: bool = False
    text: str = ""
    runs: Tuple[TextRun, ...] = ()
    horizontal_align: str = "left"
    vertical_align: str = "top"
    # Raw DrawingML subtrees, kept for style resolution.
    shape_properties: Any = field(default=None, compare=False, repr=False)
    run_properties: Any = field(default=None, compare=False, repr=False)


# Styles

@dataclass(frozen=True)
class ColorSpec:
    rgb: str  # "#RRGGBB"
    opacity: float = 1.0


@dataclass(frozen=True)
class FillStyle:
    fill: Literal["solid", "none"] = "none"
    color: Optional[ColorSpec] = None
    palette_color: Optional[str] = None
    source: str = "none"  # which strategy produced this fill


@dataclass(frozen=True)
class StrokeStyle:
    stroke: Literal["solid", "none"] = "none"
    color: Optional[ColorSpec] = None
    width_px: float = 0.0
    dash: str = "solid"
    palette_color: Optional[str] = None


@dataclass(frozen=True)
class FontSpec:
    size_pt: float = 11.0
    size_tier: str = "m"
    color: ColorSpec = ColorSpec("#000000")
    palette_color: str = "black"
    bold: bool = False
    italic: bool = False
    underline: bool = False
    family: Optional[str] = None


@dataclass(frozen=True)
class TextPlacement:
    """Result of aligning a text block inside a rectangle."""

    x: float
    y: float
    w: float
    h: float
    font_px: int
    line_px: int
    lines: Tuple[str, ...] = ()


# Drawable elements (closed tagged union)

LAYER_BACKGROUND = 0
LAYER_BORDER = 1
LAYER_DRAWING = 2
LAYER_CELL_TEXT = 3


@dataclass(frozen=True)
class ImageRef:
    target_path: str
    content_type: str = ""
    natural_w: Optional[int] = None
    natural_h: Optional[int] = None


@dataclass(frozen=True)
class BackgroundElement:
    rect: Rect
    fill: FillStyle
    row: int = 0
    col: int = 0
    merged: bool = False
    z_key: Tuple[int, int, int] = (LAYER_BACKGROUND, 0, 0)
    kind: Literal["background"] = "background"


@dataclass(frozen=True)
class BorderElement:
    rect: Rect
    stroke: StrokeStyle
    sides: Tuple[str, ...] = ("top", "right", "bottom", "left")
    row: int = 0
    col: int = 0
    merged: bool = False
    z_key: Tuple[int, int, int] = (LAYER_BORDER, 0, 0)
    kind: Literal["border"] = "border"


@dataclass(frozen=True)
class PictureElement:
    rect: Rect
    image: ImageRef
    anchor_rect: Optional[Rect] = None
    name: str = ""
    description: str = ""
    z_key: Tuple[int, int, int] = (LAYER_DRAWING, 0, 0)
    kind: Literal["picture"] = "picture"


@dataclass(frozen=True)
class TextboxElement:
    rect: Rect
    text: str
    font: FontSpec = FontSpec()
    fill: FillStyle = FillStyle()
    stroke: StrokeStyle = StrokeStyle()
    runs: Tuple[TextRun, ...] = ()
    horizontal_align: str = "left"
    vertical_align: str = "top"
    placement: Optional[TextPlacement] = None
    name: str = ""
    z_key: Tuple[int, int, int] = (LAYER_DRAWING, 0, 0)
    kind: Literal["textbox"] = "textbox"


@dataclass(frozen=True)
class CellTextElement:
    rect: Rect
    text: str
    font: FontSpec = FontSpec()
    runs: Tuple[TextRun, ...] = ()
    row: int = 0
    col: int = 0
    merged: bool = False
    horizontal_align: str = "left"
    vertical_align: str = "bottom"
    wrap: bool = False
    placement: Optional[TextPlacement] = None
    z_key: Tuple[int, int, int] = (LAYER_CELL_TEXT, 0, 0)
    kind: Literal["cellText"] = "cellText"


DrawableElement = Union[
    BackgroundElement,
    BorderElement,
    PictureElement,
    TextboxElement,
    CellTextElement,
]


# Run results

@dataclass(frozen=True)
class SkipRecord:
    """An element dropped by the filter policy or a placement failure."""

    reason: str
    source: str  # "anchor", "cell", "picture", ...
    sheet_name: str = ""
    detail: str = ""
    rect: Optional[Rect] = None


@dataclass
class ConversionResult:
    """Output of one sheet reconstruction run."""

    sheet_name: str
    stage: Stage = Stage.IDLE
    elements: List[DrawableElement] = field(default_factory=list)
    skipped: List[SkipRecord] = field(default_factory=list)
    absent: List[SkipRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.stage == Stage.DONE

    def elements_of(self, kind: str) -> List[DrawableElement]:
        return [e for e in self.elements if e.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sheet": self.sheet_name,
            "stage": self.stage.value,
            "elements": [element_to_dict(e) for e in self.elements],
            "skipped": [asdict(s) for s in self.skipped],
            "absent": [asdict(s) for s in self.absent],
            "errors": list(self.errors),
        }


def element_to_dict(element: DrawableElement) -> Dict[str, Any]:
    """Serialise a drawable element for the rendering collaborator."""
    data = asdict(element)
    data["z_key"] = list(element.z_key)
    return data
