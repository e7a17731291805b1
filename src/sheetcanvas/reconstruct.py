"""Layout reconstruction - Turn one sheet into ordered, placed canvas elements.

Stages of a run:
    IDLE -> PARSING_GEOMETRY -> EXTRACTING_ELEMENTS -> RESOLVING_STYLES
         -> ORDERING -> PLACING -> DONE | FAILED

Content problems never raise: dropped elements are reported as SkipRecords,
unavailable pictures as absent entries and structural errors in
ConversionResult.errors.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sheetcanvas.config import Settings
from sheetcanvas.contain_fit import compute_contain_fit
from sheetcanvas.exceptions import SheetNotFoundError
from sheetcanvas.images import probe_image_size
from sheetcanvas.ir import (
    LAYER_BACKGROUND,
    LAYER_BORDER,
    LAYER_CELL_TEXT,
    LAYER_DRAWING,
    AnchorEntry,
    BackgroundElement,
    BorderElement,
    CellTextElement,
    ConversionResult,
    DrawableElement,
    FontSpec,
    ImageRef,
    MergedRegion,
    OffsetTables,
    PictureElement,
    Rect,
    SkipRecord,
    Stage,
    TextboxElement,
    TextRun,
)
from sheetcanvas.styles import (
    PaletteOptions,
    cell_border_stroke,
    cell_fill_style,
    cell_font_spec,
    map_font_size_tier,
    merged_region_border,
    resolve_cell_color,
    resolve_fill,
    resolve_font,
    resolve_stroke,
)
from sheetcanvas.text_fit import TextLayout, TextMeasurer, pt_to_px
from sheetcanvas.xlsx_parser.drawing import FilterPolicy, drawing_extent, parse_drawing
from sheetcanvas.xlsx_parser.geometry import cell_geometry, dimensions_from_worksheet, offsets_for
from sheetcanvas.xlsx_parser.merges import ConsumedCells, is_in_region, resolve_merges
from sheetcanvas.xlsx_parser.package import SpreadsheetPackage

logger = logging.getLogger(__name__)

REASON_PLACEMENT_ERROR = "placement_error"
REASON_IMAGE_UNAVAILABLE = "image_unavailable"
REASON_IMAGE_UNDECODABLE = "image_undecodable"
REASON_HIDDEN_CELL = "hidden"

_H_ALIGN = {
    "left": "left",
    "center": "center",
    "centerContinuous": "center",
    "distributed": "center",
    "right": "right",
    "justify": "left",
    "fill": "left",
}
_V_ALIGN = {
    "top": "top",
    "center": "middle",
    "justify": "middle",
    "distributed": "middle",
    "bottom": "bottom",
}


@dataclass(frozen=True)
class SupplementalText:
    """Rich text supplied by the caller for a cell or an absolute rect."""

    text: str
    row: Optional[int] = None
    col: Optional[int] = None
    rect: Optional[Rect] = None
    font_pt: Optional[float] = None
    runs: Tuple[TextRun, ...] = ()


@dataclass
class _CellItem:
    row: int
    col: int
    rect: Rect
    merged: bool
    cell: object
    region: Optional[MergedRegion] = None


def cell_display_text(value) -> str:
    """Render a cached cell value the way it reads on the sheet."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.10g}"
    if isinstance(value, datetime.datetime):
        if value.time() == datetime.time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return str(value)


def rich_text_runs(value, theme: Optional[Dict[str, str]] = None) -> Tuple[TextRun, ...]:
    """Runs of an openpyxl CellRichText value (empty for plain values)."""
    from openpyxl.cell.rich_text import CellRichText, TextBlock

    if not isinstance(value, CellRichText):
        return ()
    runs: List[TextRun] = []
    for item in value:
        if isinstance(item, TextBlock):
            font = item.font
            runs.append(
                TextRun(
                    text=item.text,
                    bold=bool(getattr(font, "b", False)),
                    italic=bool(getattr(font, "i", False)),
                    underline=bool(getattr(font, "u", None)),
                    font_name=getattr(font, "rFont", None),
                    font_size=float(font.sz) if getattr(font, "sz", None) else None,
                    color=resolve_cell_color(getattr(font, "color", None), theme),
                )
            )
        elif item:
            runs.append(TextRun(text=str(item)))
    return tuple(runs)


class SheetReconstructor:
    """Runs the reconstruction stages for one sheet of a package."""

    def __init__(
        self,
        package: SpreadsheetPackage,
        sheet_name: Optional[str] = None,
        settings: Optional[Settings] = None,
        measurer: Optional[TextMeasurer] = None,
        supplemental_texts: Sequence[SupplementalText] = (),
    ):
        self.package = package
        self.settings = settings or Settings()
        self.sheet_name = sheet_name
        self.supplemental_texts = list(supplemental_texts)
        self.layout = TextLayout(
            measurer=measurer,
            line_height=self.settings.line_height,
            tolerance_px=self.settings.fit_tolerance_px,
        )
        self.palette = PaletteOptions(
            min_saturation=self.settings.min_saturation,
            lightness_as_white=self.settings.lightness_as_white,
            lightness_as_black=self.settings.lightness_as_black,
            force_very_light_to_grey=self.settings.force_very_light_to_grey,
        )
        self.policy = FilterPolicy(
            include_hidden=self.settings.include_hidden,
            min_pixel_size=self.settings.min_pixel_size,
            clip_to_sheet_bounds=self.settings.clip_to_sheet_bounds,
            off_canvas_margin_px=self.settings.off_canvas_margin_px,
        )

        self.stage = Stage.IDLE
        self.result = ConversionResult(sheet_name=sheet_name or "")
        self.theme: Dict[str, str] = {}
        self.offsets: Optional[OffsetTables] = None
        self.regions: List[MergedRegion] = []

        self._worksheet = None
        self._sheet_part: Optional[str] = None
        self._region_borders: Dict[str, object] = {}
        self._drawing_xml: Optional[bytes] = None
        self._drawing_part: Optional[str] = None
        self._cells: List[_CellItem] = []
        self._anchors: List[AnchorEntry] = []
        self._elements: List[DrawableElement] = []

    # Stage driver

    def _advance(self, stage: Stage) -> None:
        logger.debug(f"[{self.result.sheet_name}] {self.stage.value} -> {stage.value}")
        self.stage = stage
        self.result.stage = stage

    def run(self) -> ConversionResult:
        """Execute every stage and return the result (never raises)."""
        try:
            self._advance(Stage.PARSING_GEOMETRY)
            self._parse_geometry()

            self._advance(Stage.EXTRACTING_ELEMENTS)
            self._extract_cells()
            self._extract_drawing()

            self._advance(Stage.RESOLVING_STYLES)
            self._resolve_styles()
            self._add_supplemental_texts()

            self._advance(Stage.ORDERING)
            self._order()

            self._advance(Stage.PLACING)
            self.result.elements = self._place()

            self._advance(Stage.DONE)
        except SheetNotFoundError:
            self._advance(Stage.FAILED)
            raise
        except Exception as e:
            logger.error(f"Reconstruction of sheet {self.result.sheet_name!r} failed during {self.stage.value}: {e}")
            self.result.errors.append(f"{self.stage.value}: {e}")
            self._advance(Stage.FAILED)
        return self.result

    # PARSING_GEOMETRY

    def _parse_geometry(self) -> None:
        if self.sheet_name is None:
            names = self.package.sheet_names()
            if not names:
                raise ValueError("workbook has no sheets")
            self.sheet_name = names[0]
            self.result.sheet_name = self.sheet_name
        sheet_part = self.package.sheet_part(self.sheet_name)
        ws = self.package.workbook()[self.sheet_name]
        self._worksheet = ws
        self._sheet_part = sheet_part
        self.theme = self.package.theme_colors()

        self._drawing_part = self.package.drawing_part_for(sheet_part)
        if self._drawing_part:
            self._drawing_xml = self.package.read(self._drawing_part)

        dims = dimensions_from_worksheet(ws)
        min_cols = self.settings.min_columns
        min_rows = self.settings.min_rows
        if self._drawing_xml:
            # Cover every marker so no anchor needs clamping
            max_col, max_row = drawing_extent(self._drawing_xml)
            min_cols = max(min_cols, max_col + 1)
            min_rows = max(min_rows, max_row + 1)

        self.offsets = offsets_for(
            dims,
            min_columns=min_cols,
            min_rows=min_rows,
            char_pixel_width=self.settings.char_pixel_width,
            column_width_padding=self.settings.column_width_padding,
            default_column_width=self.settings.default_column_width,
            default_row_height=self.settings.default_row_height_pt,
        )
        self.regions = resolve_merges(ws.merged_cells.ranges, self.offsets)
        logger.info(
            f"Sheet {self.sheet_name}: {self.offsets.max_col} cols x {self.offsets.max_row} rows, "
            f"{len(self.regions)} merged regions"
        )

    # EXTRACTING_ELEMENTS

    def _extract_cells(self) -> None:
        """Merge-aware scan: each merged region is visited exactly once.

        Only stored cells are visited, in (row, col) order; iter_rows would
        create a placeholder for every empty slot of the used range.
        """
        ws = self._worksheet
        stored = ws._cells
        consumed = ConsumedCells(self.regions)
        for (row, col), cell in sorted(stored.items(), key=lambda item: item[0]):
            claim = consumed.claim(row, col)
            if claim is ConsumedCells.ALREADY_CLAIMED:
                continue
            if claim is None:
                rect = cell_geometry(row, col, self.offsets).rect
                self._cells.append(_CellItem(row, col, rect, False, cell))
            else:
                owner = stored.get((claim.top_row, claim.left_col))
                if owner is None:
                    owner = ws.cell(row=claim.top_row, column=claim.left_col)
                self._cells.append(
                    _CellItem(claim.top_row, claim.left_col, claim.pixel_rect, True, owner, claim)
                )
        self._collect_region_borders()

    def _collect_region_borders(self) -> None:
        """Borders of merged regions, combined from every cell on each edge."""
        if not self.regions:
            return
        edges: Dict[str, Dict[str, list]] = {}
        for (row, col), border in self.package.cell_borders(self._sheet_part).items():
            region = is_in_region(row, col, self.regions)
            if region is None:
                continue
            sides = edges.setdefault(region.key, {"top": [], "right": [], "bottom": [], "left": []})
            if row == region.top_row:
                sides["top"].append(border)
            if row == region.bottom_row:
                sides["bottom"].append(border)
            if col == region.left_col:
                sides["left"].append(border)
            if col == region.right_col:
                sides["right"].append(border)
        for key, sides in edges.items():
            border = merged_region_border(sides)
            if border is not None:
                self._region_borders[key] = border

    def _extract_drawing(self) -> None:
        if not self._drawing_xml:
            return
        parsed = parse_drawing(
            self._drawing_xml,
            self.offsets,
            rels=self.package.relationships(self._drawing_part),
            sheet_name=self.sheet_name,
            policy=self.policy,
        )
        self._anchors = parsed.anchors
        self.result.skipped.extend(parsed.skipped)
        for error in parsed.errors:
            self.result.errors.append(f"{self._drawing_part}: {error}")

    # RESOLVING_STYLES

    def _resolve_styles(self) -> None:
        for item in self._cells:
            self._resolve_cell(item)
        for anchor in self._anchors:
            self._resolve_anchor(anchor)

    def _resolve_cell(self, item: _CellItem) -> None:
        cell = item.cell
        has_style = getattr(cell, "has_style", False)
        text = cell_display_text(cell.value).strip()
        region_border = self._region_borders.get(item.region.key) if item.region is not None else None
        if not has_style and not text and region_border is None:
            return

        if item.rect.w <= 0 or item.rect.h <= 0:
            self.result.skipped.append(
                SkipRecord(
                    reason=REASON_HIDDEN_CELL,
                    source="cell",
                    sheet_name=self.sheet_name,
                    detail=cell.coordinate,
                    rect=item.rect,
                )
            )
            return

        if has_style:
            fill = cell_fill_style(cell.fill, self.theme, self.palette, self.settings.skip_white_backgrounds)
            if fill is not None:
                self._elements.append(
                    BackgroundElement(rect=item.rect, fill=fill, row=item.row, col=item.col, merged=item.merged)
                )

        source = region_border if region_border is not None else (cell.border if has_style else None)
        border = cell_border_stroke(source, self.theme, self.palette)
        if border is not None:
            stroke, sides = border
            self._elements.append(
                BorderElement(
                    rect=item.rect,
                    stroke=stroke,
                    sides=sides,
                    row=item.row,
                    col=item.col,
                    merged=item.merged,
                )
            )

        if text:
            alignment = cell.alignment
            horizontal = _H_ALIGN.get(alignment.horizontal or "", None)
            if horizontal is None:
                # "general": numbers right, everything else left
                numeric = isinstance(cell.value, (int, float)) and not isinstance(cell.value, bool)
                horizontal = "right" if numeric else "left"
            self._elements.append(
                CellTextElement(
                    rect=item.rect,
                    text=text,
                    font=cell_font_spec(cell.font, self.theme, self.settings.base_font_pt, self.palette),
                    runs=rich_text_runs(cell.value, self.theme),
                    row=item.row,
                    col=item.col,
                    merged=item.merged,
                    horizontal_align=horizontal,
                    vertical_align=_V_ALIGN.get(alignment.vertical or "", "bottom"),
                    wrap=bool(alignment.wrap_text),
                )
            )

    def _resolve_anchor(self, anchor: AnchorEntry) -> None:
        z = (LAYER_DRAWING, anchor.z_index, 0)
        if anchor.object_kind == "picture":
            self._elements.append(
                PictureElement(
                    rect=anchor.rect_px,
                    image=ImageRef(target_path=anchor.resolved_target_path or ""),
                    anchor_rect=anchor.rect_px,
                    name=anchor.name,
                    description=anchor.description,
                    z_key=z,
                )
            )
            return

        self._elements.append(
            TextboxElement(
                rect=anchor.rect_px,
                text=anchor.text,
                font=resolve_font(anchor.run_properties, self.theme, self.settings.base_font_pt, self.palette),
                fill=resolve_fill(anchor.shape_properties, self.theme, self.palette),
                stroke=resolve_stroke(anchor.shape_properties, self.theme, self.palette),
                runs=anchor.runs,
                horizontal_align=anchor.horizontal_align,
                vertical_align=anchor.vertical_align,
                name=anchor.name,
                z_key=z,
            )
        )

    def _add_supplemental_texts(self) -> None:
        for extra in self.supplemental_texts:
            if not extra.text or not extra.text.strip():
                continue
            merged = False
            row = extra.row or 0
            col = extra.col or 0
            if extra.rect is not None:
                rect = extra.rect
            elif extra.row and extra.col:
                region = next((r for r in self.regions if r.covers(extra.row, extra.col)), None)
                if region is not None:
                    rect, merged = region.pixel_rect, True
                    row, col = region.top_row, region.left_col
                else:
                    rect = cell_geometry(extra.row, extra.col, self.offsets).rect
            else:
                logger.warning(f"Supplemental text without a position ignored: {extra.text[:20]!r}")
                continue
            size_pt = extra.font_pt or self.settings.base_font_pt
            self._elements.append(
                CellTextElement(
                    rect=rect,
                    text=extra.text.strip(),
                    font=FontSpec(size_pt=size_pt, size_tier=map_font_size_tier(size_pt)),
                    runs=extra.runs,
                    row=row,
                    col=col,
                    merged=merged,
                    vertical_align="top",
                    wrap=True,
                )
            )

    # ORDERING

    def _order(self) -> None:
        layers = {
            "background": LAYER_BACKGROUND,
            "border": LAYER_BORDER,
            "picture": LAYER_DRAWING,
            "textbox": LAYER_DRAWING,
            "cellText": LAYER_CELL_TEXT,
        }
        keyed = []
        for seq, element in enumerate(self._elements):
            z_index = element.z_key[1] if element.kind in ("picture", "textbox") else 0
            keyed.append(replace(element, z_key=(layers[element.kind], z_index, seq)))
        self._elements = sorted(keyed, key=lambda e: e.z_key)

    # PLACING

    def _place(self) -> List[DrawableElement]:
        frames = [e.rect for e in self._elements if e.kind == "border"]
        placed: List[DrawableElement] = []
        for element in self._elements:
            try:
                result = self._place_element(element, frames)
            except Exception as e:
                logger.error(f"Placement failed for {element.kind} at {element.rect}: {e}")
                self.result.skipped.append(
                    SkipRecord(
                        reason=REASON_PLACEMENT_ERROR,
                        source=element.kind,
                        sheet_name=self.sheet_name,
                        detail=str(e),
                        rect=element.rect,
                    )
                )
                continue
            if result is not None:
                placed.append(result)
        return placed

    def _place_element(self, element: DrawableElement, frames: List[Rect]) -> Optional[DrawableElement]:
        if element.kind == "picture":
            return self._place_picture(element)
        if element.kind == "textbox":
            if self.settings.snap_textboxes_to_frames:
                element = replace(element, rect=self._snap_to_frame(element.rect, frames))
            return self._fit_text(element)
        if element.kind == "cellText":
            return self._fit_text(element)
        return element

    def _absent(self, element: PictureElement, reason: str, detail: str) -> None:
        record = SkipRecord(
            reason=reason,
            source="picture",
            sheet_name=self.sheet_name,
            detail=detail,
            rect=element.anchor_rect,
        )
        logger.info(f"Picture rendered as absent reason={reason} sheet={self.sheet_name} detail={detail!r}")
        self.result.absent.append(record)
        self.result.skipped.append(record)

    def _place_picture(self, element: PictureElement) -> Optional[PictureElement]:
        path = element.image.target_path
        data = self.package.read(path) if path else None
        if data is None:
            self._absent(element, REASON_IMAGE_UNAVAILABLE, path or element.name or "unresolved relationship")
            return None

        size = probe_image_size(data, path)
        if size is None:
            self._absent(element, REASON_IMAGE_UNDECODABLE, path)
            return None

        natural_w, natural_h = size
        image = replace(
            element.image,
            content_type=self.package.content_type(path),
            natural_w=natural_w,
            natural_h=natural_h,
        )
        anchor = element.rect
        if anchor.has_size:
            rect = compute_contain_fit(anchor, natural_w, natural_h, self.settings.picture_min_padding_px)
        else:
            # Point anchor without extent: natural size at the anchor position
            rect = Rect(anchor.x, anchor.y, float(natural_w), float(natural_h))
        return replace(element, rect=rect, image=image)

    def _snap_to_frame(self, rect: Rect, frames: Iterable[Rect]) -> Rect:
        """Fit a textbox into the first bordered frame that contains it."""
        pad = self.settings.frame_padding_px
        min_size = self.settings.frame_min_size_px
        for frame in frames:
            if frame.contains(rect, tolerance=0.5):
                w = min(frame.w, max(min_size, frame.w - 2 * pad))
                h = min(frame.h, max(min_size, frame.h - 2 * pad))
                return Rect(frame.x + (frame.w - w) / 2, frame.y + (frame.h - h) / 2, w, h)
        return rect

    def _fit_text(self, element):
        if not element.text:
            return element
        pad = self.settings.text_padding_px
        rect = element.rect
        inner_w = max(0.0, rect.w - 2 * pad)
        inner_h = max(0.0, rect.h - 2 * pad)
        size_pt = self.layout.fit_font_size(
            element.text,
            inner_w,
            inner_h,
            base_pt=element.font.size_pt,
            min_pt=min(self.settings.min_font_pt, max(1, int(element.font.size_pt))),
        )
        placement = self.layout.align_text(
            element.text,
            rect,
            h_align=element.horizontal_align,
            v_align=element.vertical_align,
            padding=pad,
            font_px=pt_to_px(size_pt),
        )
        font = replace(element.font, size_pt=float(size_pt), size_tier=map_font_size_tier(size_pt))
        return replace(element, font=font, placement=placement)


def reconstruct_sheet(
    package: SpreadsheetPackage,
    sheet_name: Optional[str] = None,
    settings: Optional[Settings] = None,
    measurer: Optional[TextMeasurer] = None,
    supplemental_texts: Sequence[SupplementalText] = (),
) -> ConversionResult:
    """Reconstruct one sheet (the first sheet when ``sheet_name`` is None).

    Args:
        package: Open spreadsheet package.
        sheet_name: Sheet to convert.
        settings: Engine settings; defaults to Settings().
        measurer: Text measurer used for wrapping and font fitting.
        supplemental_texts: Extra per-cell or absolute rich text.

    Returns:
        ConversionResult with elements in paint order.

    Raises:
        SheetNotFoundError: If ``sheet_name`` is not in the workbook.
    """
    return SheetReconstructor(package, sheet_name, settings, measurer, supplemental_texts).run()


def convert_workbook(
    source: Union[str, Path, bytes, SpreadsheetPackage],
    sheet_names: Optional[Sequence[str]] = None,
    settings: Optional[Settings] = None,
    measurer: Optional[TextMeasurer] = None,
) -> List[ConversionResult]:
    """Reconstruct several sheets of a workbook.

    Raises:
        PackageError: If ``source`` is not a readable spreadsheet package.
    """
    package = source if isinstance(source, SpreadsheetPackage) else SpreadsheetPackage.open(source)
    names = list(sheet_names) if sheet_names else package.sheet_names()
    return [reconstruct_sheet(package, name, settings, measurer) for name in names]
