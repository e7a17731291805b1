"""Drawing parser - Extract anchored pictures, shapes and text boxes.

Reads a SpreadsheetDrawingML part (xl/drawings/drawingN.xml) and converts every
anchor into an AnchorEntry with a pixel rectangle derived from the sheet's
offset tables. Anchors that should not be rendered are returned as SkipRecords
with a reason code instead of raising.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from lxml import etree

from sheetcanvas.ir import AnchorEntry, Extent, GridMarker, OffsetTables, Rect, SkipRecord, TextRun
from sheetcanvas.xlsx_parser.geometry import (
    EMU_PER_PIXEL,
    MAX_GRID_COLUMNS,
    MAX_GRID_ROWS,
    clamp_index,
    emu_to_px,
)
from sheetcanvas.xlsx_parser.relationships import Relationship

logger = logging.getLogger(__name__)

NAMESPACES = {
    "xdr": "http://schemas.openxmlformats.org/drawingml/2006/spreadsheetDrawing",
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "mc": "http://schemas.openxmlformats.org/markup-compatibility/2006",
}

ANCHOR_TAGS = ("twoCellAnchor", "oneCellAnchor", "absoluteAnchor")

OBJECT_KINDS = {
    "pic": "picture",
    "sp": "shape",
    "grpSp": "group",
    "cxnSp": "connector",
    "graphicFrame": "graphic_frame",
}
SUPPORTED_KINDS = ("picture", "shape", "textbox")

FILL_TAGS = ("solidFill", "gradFill", "pattFill", "blipFill")

_H_ALIGN = {"l": "left", "ctr": "center", "r": "right", "just": "left", "dist": "center"}
_V_ALIGN = {"t": "top", "ctr": "middle", "b": "bottom", "just": "middle", "dist": "middle"}

# Reason codes
REASON_HIDDEN = "hidden"
REASON_TOO_SMALL = "too_small"
REASON_OFF_CANVAS = "off_canvas"
REASON_TRANSPARENT = "transparent"
REASON_INVALID_ANCHOR = "invalid_anchor"
REASON_UNSUPPORTED = "unsupported"


@dataclass
class FilterPolicy:
    """Which anchors to drop before reconstruction."""

    include_hidden: bool = False
    min_pixel_size: float = 1.0
    clip_to_sheet_bounds: bool = True
    off_canvas_margin_px: float = 1000.0


@dataclass
class DrawingParseResult:
    anchors: List[AnchorEntry] = field(default_factory=list)
    skipped: List[SkipRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def skip_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for record in self.skipped:
            counts[record.reason] = counts.get(record.reason, 0) + 1
        return counts


def _xdr(tag: str) -> str:
    return f"{{{NAMESPACES['xdr']}}}{tag}"


def _localname(elem: etree._Element) -> str:
    return etree.QName(elem).localname


def _int_text(elem: Optional[etree._Element], default: Optional[int] = 0) -> Optional[int]:
    if elem is None or elem.text is None:
        return default
    try:
        return int(elem.text.strip())
    except ValueError:
        return None


def _int_attr(elem: Optional[etree._Element], name: str) -> Optional[int]:
    if elem is None:
        return None
    try:
        return int(elem.get(name))
    except (ValueError, TypeError):
        return None


def _read_marker(node: Optional[etree._Element]) -> Optional[GridMarker]:
    """Read an xdr:from / xdr:to marker; None when col/row are not integers."""
    if node is None:
        return None
    col = _int_text(node.find("xdr:col", NAMESPACES), default=None)
    row = _int_text(node.find("xdr:row", NAMESPACES), default=None)
    if col is None or row is None:
        return None
    col_off = _int_text(node.find("xdr:colOff", NAMESPACES))
    row_off = _int_text(node.find("xdr:rowOff", NAMESPACES))
    return GridMarker(col=col, row=row, col_off_emu=col_off or 0, row_off_emu=row_off or 0)


def _read_extent(node: Optional[etree._Element]) -> Optional[Extent]:
    cx = _int_attr(node, "cx")
    cy = _int_attr(node, "cy")
    if cx is None or cy is None:
        return None
    return Extent(cx_emu=cx, cy_emu=cy)


def _marker_position(marker: GridMarker, offsets: OffsetTables) -> Tuple[float, float]:
    col = clamp_index(marker.col, offsets.col_offsets_px)
    row = clamp_index(marker.row, offsets.row_offsets_px)
    if col != marker.col or row != marker.row:
        logger.warning(
            f"Anchor marker ({marker.col},{marker.row}) outside offset table "
            f"({offsets.max_col}x{offsets.max_row}); clamped to ({col},{row})"
        )
    x = offsets.col_offsets_px[col] + marker.col_off_emu / EMU_PER_PIXEL
    y = offsets.row_offsets_px[row] + marker.row_off_emu / EMU_PER_PIXEL
    return x, y


def beyond_grid(marker: Optional[GridMarker]) -> bool:
    """True when a marker points past the last column or row a sheet can have."""
    if marker is None:
        return False
    return marker.col >= MAX_GRID_COLUMNS or marker.row >= MAX_GRID_ROWS


def range_anchor_rect(from_marker: GridMarker, to_marker: GridMarker, offsets: OffsetTables) -> Rect:
    """Bounding box between the from and to positions of a two-cell anchor."""
    x0, y0 = _marker_position(from_marker, offsets)
    x1, y1 = _marker_position(to_marker, offsets)
    return Rect(min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0))


def point_anchor_rect(
    from_marker: GridMarker, extent: Optional[Extent], offsets: OffsetTables
) -> Rect:
    """From-position plus declared extent; size stays None without an extent."""
    x, y = _marker_position(from_marker, offsets)
    if extent is None:
        return Rect(x, y)
    return Rect(x, y, emu_to_px(extent.cx_emu), emu_to_px(extent.cy_emu))


def _is_finite_rect(rect: Rect) -> bool:
    values = [rect.x, rect.y] + [v for v in (rect.w, rect.h) if v is not None]
    return all(math.isfinite(v) for v in values)


def _object_node(anchor: etree._Element) -> Optional[etree._Element]:
    """First drawable child of an anchor, looking inside mc:AlternateContent."""
    for child in anchor:
        if not isinstance(child.tag, str):
            continue
        name = _localname(child)
        if name in OBJECT_KINDS:
            return child
        if name == "AlternateContent":
            for branch in child:
                for grandchild in branch:
                    if isinstance(grandchild.tag, str) and _localname(grandchild) in OBJECT_KINDS:
                        return grandchild
    return None


def extract_text(obj: etree._Element) -> Tuple[str, Tuple[TextRun, ...]]:
    """Plain text and formatted runs of a shape's xdr:txBody.

    Paragraphs are joined with newlines; the result is stripped.
    """
    tx_body = obj.find("xdr:txBody", NAMESPACES)
    if tx_body is None:
        return "", ()

    runs: List[TextRun] = []
    parts: List[str] = []
    for p in tx_body.findall("a:p", NAMESPACES):
        for child in p:
            if not isinstance(child.tag, str):
                continue
            name = _localname(child)
            if name in ("r", "fld"):
                t = child.find("a:t", NAMESPACES)
                text = t.text if t is not None and t.text else ""
                if not text:
                    continue
                parts.append(text)
                runs.append(_run_from(text, child.find("a:rPr", NAMESPACES)))
            elif name == "br":
                parts.append("\n")
                runs.append(TextRun(text="\n"))
        parts.append("\n")
        runs.append(TextRun(text="\n"))

    text = "".join(parts).strip()
    # Drop trailing paragraph breaks
    while runs and runs[-1].text == "\n":
        runs.pop()
    return text, tuple(runs)


def _run_from(text: str, r_pr: Optional[etree._Element]) -> TextRun:
    if r_pr is None:
        return TextRun(text=text)
    size = _int_attr(r_pr, "sz")
    latin = r_pr.find("a:latin", NAMESPACES)
    srgb = r_pr.find("a:solidFill/a:srgbClr", NAMESPACES)
    return TextRun(
        text=text,
        bold=r_pr.get("b") in ("1", "true"),
        italic=r_pr.get("i") in ("1", "true"),
        underline=r_pr.get("u") not in (None, "none"),
        font_name=latin.get("typeface") if latin is not None else None,
        font_size=size / 100.0 if size else None,
        color=f"#{srgb.get('val').upper()}" if srgb is not None and srgb.get("val") else None,
    )


def _first_run_properties(obj: etree._Element) -> Optional[etree._Element]:
    for path in (".//a:r/a:rPr", ".//a:pPr/a:defRPr", ".//a:endParaRPr"):
        node = obj.find(path, NAMESPACES)
        if node is not None:
            return node
    return None


def _alignment(obj: etree._Element) -> Tuple[str, str]:
    h_align = "left"
    v_align = "top"
    p_pr = obj.find("xdr:txBody/a:p/a:pPr", NAMESPACES)
    if p_pr is not None and p_pr.get("algn"):
        h_align = _H_ALIGN.get(p_pr.get("algn"), "left")
    body_pr = obj.find("xdr:txBody/a:bodyPr", NAMESPACES)
    if body_pr is not None and body_pr.get("anchor"):
        v_align = _V_ALIGN.get(body_pr.get("anchor"), "top")
    return h_align, v_align


def _non_visual_props(obj: etree._Element) -> Optional[etree._Element]:
    # nvSpPr / nvPicPr / nvGrpSpPr / nvCxnSpPr / nvGraphicFramePr
    for child in obj:
        if isinstance(child.tag, str) and _localname(child).startswith("nv"):
            return child.find("xdr:cNvPr", NAMESPACES)
    return None


def _is_transparent(obj: etree._Element, has_text: bool) -> bool:
    """True for a shape with no fill, no outline and no text."""
    if has_text:
        return False
    sp_pr = obj.find("xdr:spPr", NAMESPACES)
    if sp_pr is None:
        return False
    has_fill = any(sp_pr.find(f"a:{tag}", NAMESPACES) is not None for tag in FILL_TAGS)
    line = sp_pr.find("a:ln", NAMESPACES)
    has_line = line is not None and line.find("a:noFill", NAMESPACES) is None
    # A style reference supplies fill/line from the theme
    has_style = obj.find("xdr:style", NAMESPACES) is not None
    return not (has_fill or has_line or has_style)


def _is_off_canvas(rect: Rect, offsets: OffsetTables, margin: float) -> bool:
    return (
        rect.x < -margin
        or rect.y < -margin
        or rect.x > offsets.width_px + margin
        or rect.y > offsets.height_px + margin
    )


def should_skip(
    rect: Rect,
    object_kind: str,
    hidden: bool,
    transparent: bool,
    offsets: OffsetTables,
    policy: FilterPolicy,
    outside_grid: bool = False,
) -> Optional[str]:
    """Apply the filter policy; returns a reason code or None to keep.

    ``outside_grid`` marks an anchor whose markers lie past the sheet grid.
    Its clamped rect is meaningless, so it is dropped as off canvas before
    the size check.
    """
    if hidden and not policy.include_hidden:
        return REASON_HIDDEN
    if outside_grid and policy.clip_to_sheet_bounds:
        return REASON_OFF_CANVAS
    if rect.has_size and (rect.w < policy.min_pixel_size or rect.h < policy.min_pixel_size):
        return REASON_TOO_SMALL
    if policy.clip_to_sheet_bounds and _is_off_canvas(rect, offsets, policy.off_canvas_margin_px):
        return REASON_OFF_CANVAS
    if transparent:
        return REASON_TRANSPARENT
    if object_kind not in SUPPORTED_KINDS:
        return REASON_UNSUPPORTED
    return None


def anchor_rect(anchor: etree._Element, offsets: OffsetTables) -> Tuple[Optional[Rect], Optional[GridMarker], Optional[GridMarker], Optional[Extent]]:
    """Resolve the pixel rect of any anchor element.

    Returns:
        (rect, from_marker, to_marker, extent); rect is None for an invalid anchor.
    """
    kind = _localname(anchor)
    extent = _read_extent(anchor.find("xdr:ext", NAMESPACES))

    if kind == "absoluteAnchor":
        pos = anchor.find("xdr:pos", NAMESPACES)
        x = _int_attr(pos, "x")
        y = _int_attr(pos, "y")
        if x is None or y is None:
            return None, None, None, extent
        rect = Rect(emu_to_px(x), emu_to_px(y))
        if extent is not None:
            rect = Rect(rect.x, rect.y, emu_to_px(extent.cx_emu), emu_to_px(extent.cy_emu))
        return rect, None, None, extent

    from_marker = _read_marker(anchor.find("xdr:from", NAMESPACES))
    if from_marker is None:
        return None, None, None, extent

    if kind == "twoCellAnchor":
        to_marker = _read_marker(anchor.find("xdr:to", NAMESPACES))
        if to_marker is None:
            return None, from_marker, None, extent
        return range_anchor_rect(from_marker, to_marker, offsets), from_marker, to_marker, extent

    return point_anchor_rect(from_marker, extent, offsets), from_marker, None, extent


def _log_skip(record: SkipRecord) -> None:
    logger.info(
        f"Skipped drawing object reason={record.reason} sheet={record.sheet_name} "
        f"source={record.source} detail={record.detail!r}"
    )


def parse_drawing(
    drawing_xml: bytes,
    offsets: OffsetTables,
    rels: Optional[Dict[str, Relationship]] = None,
    sheet_name: str = "Sheet1",
    policy: Optional[FilterPolicy] = None,
) -> DrawingParseResult:
    """Parse a drawing part into anchors and skip records.

    Args:
        drawing_xml: Raw bytes of the drawing part.
        offsets: Offset tables of the owning sheet.
        rels: Relationships of the drawing part (rId -> Relationship).
        sheet_name: Owning sheet, recorded on every entry.
        policy: Filter policy; defaults to FilterPolicy().

    Returns:
        DrawingParseResult. Malformed XML yields an empty result.
    """
    policy = policy or FilterPolicy()
    rels = rels or {}
    result = DrawingParseResult()

    try:
        tree = etree.fromstring(drawing_xml)
    except etree.XMLSyntaxError as e:
        logger.error(f"Malformed drawing part for sheet {sheet_name}: {e}")
        result.errors.append(f"malformed drawing part: {e}")
        return result

    z_index = 0
    for anchor in tree:
        if not isinstance(anchor.tag, str) or _localname(anchor) not in ANCHOR_TAGS:
            continue
        z_index += 1
        anchor_kind = "range" if _localname(anchor) == "twoCellAnchor" else "point"

        rect, from_marker, to_marker, extent = anchor_rect(anchor, offsets)
        obj = _object_node(anchor)
        object_kind = OBJECT_KINDS.get(_localname(obj), "unknown") if obj is not None else "unknown"

        if rect is None or not _is_finite_rect(rect):
            record = SkipRecord(
                reason=REASON_INVALID_ANCHOR,
                source=object_kind,
                sheet_name=sheet_name,
                detail=f"{_localname(anchor)} #{z_index}",
            )
            _log_skip(record)
            result.skipped.append(record)
            continue

        c_nv_pr = _non_visual_props(obj) if obj is not None else None
        name = c_nv_pr.get("name", "") if c_nv_pr is not None else ""
        description = c_nv_pr.get("descr", "") if c_nv_pr is not None else ""
        hidden = c_nv_pr is not None and c_nv_pr.get("hidden") in ("1", "true")

        text, runs = ("", ())
        transparent = False
        if object_kind == "shape":
            text, runs = extract_text(obj)
            if text:
                object_kind = "textbox"
            transparent = _is_transparent(obj, bool(text))

        outside_grid = beyond_grid(from_marker) or beyond_grid(to_marker)
        reason = should_skip(rect, object_kind, hidden, transparent, offsets, policy, outside_grid)
        if reason is not None:
            record = SkipRecord(
                reason=reason,
                source=object_kind,
                sheet_name=sheet_name,
                detail=name or f"{_localname(anchor)} #{z_index}",
                rect=rect,
            )
            _log_skip(record)
            result.skipped.append(record)
            continue

        rel_id = None
        target = None
        if object_kind == "picture":
            blip = obj.find(".//a:blip", NAMESPACES)
            if blip is not None:
                rel_id = blip.get(f"{{{NAMESPACES['r']}}}embed") or blip.get(f"{{{NAMESPACES['r']}}}link")
            rel = rels.get(rel_id) if rel_id else None
            target = rel.resolved_path if rel is not None else None
            if rel_id and target is None:
                logger.warning(f"Unresolved picture relationship {rel_id} on sheet {sheet_name}")

        h_align, v_align = _alignment(obj) if object_kind == "textbox" else ("left", "top")

        result.anchors.append(
            AnchorEntry(
                sheet_name=sheet_name,
                anchor_kind=anchor_kind,
                from_marker=from_marker,
                to_marker=to_marker,
                explicit_extent=extent,
                relationship_id=rel_id,
                resolved_target_path=target,
                rect_px=rect,
                object_kind=object_kind,
                z_index=z_index,
                name=name,
                description=description,
                hidden=hidden,
                text=text,
                runs=runs,
                horizontal_align=h_align,
                vertical_align=v_align,
                shape_properties=obj.find("xdr:spPr", NAMESPACES),
                run_properties=_first_run_properties(obj) if text else None,
            )
        )

    if result.skipped:
        logger.debug(f"Sheet {sheet_name} drawing skips: {result.skip_counts()}")
    return result


def parse_anchors(
    drawing_xml: bytes,
    offsets: OffsetTables,
    rels: Optional[Dict[str, Relationship]] = None,
    sheet_name: str = "Sheet1",
    policy: Optional[FilterPolicy] = None,
) -> List[AnchorEntry]:
    """Kept anchors of a drawing part (see parse_drawing)."""
    return parse_drawing(drawing_xml, offsets, rels, sheet_name, policy).anchors


def drawing_extent(drawing_xml: bytes) -> Tuple[int, int]:
    """Largest 0-based (col, row) referenced by any marker in a drawing part.

    Used to size offset tables so anchors far down the sheet are not clamped.
    Markers past the sheet grid are ignored; parse_drawing skips those anchors.
    """
    max_col = 0
    max_row = 0
    try:
        tree = etree.fromstring(drawing_xml)
    except etree.XMLSyntaxError:
        return max_col, max_row
    for marker in tree.iter(_xdr("from"), _xdr("to")):
        col = _int_text(marker.find("xdr:col", NAMESPACES), default=None)
        row = _int_text(marker.find("xdr:row", NAMESPACES), default=None)
        if col is None or row is None or col >= MAX_GRID_COLUMNS or row >= MAX_GRID_ROWS:
            continue
        max_col = max(max_col, col)
        max_row = max(max_row, row)
    return max_col, max_row
