"""Style resolution - Colours, fills, strokes and fonts.

Every resolver here is a pure function of its inputs: the same DrawingML node
or openpyxl style object with the same theme always yields the same result.
"""

from __future__ import annotations

import colorsys
import json
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from lxml import etree

from sheetcanvas.ir import ColorSpec, FillStyle, FontSpec, StrokeStyle
from sheetcanvas.xlsx_parser.geometry import emu_to_px
from sheetcanvas.xlsx_parser.theme import DEFAULT_THEME_COLORS, theme_color, theme_color_by_index

logger = logging.getLogger(__name__)

A_NS = {"a": "http://schemas.openxmlformats.org/drawingml/2006/main"}

DEFAULT_FILL_COLOR = "#FFFFFF"
DEFAULT_STROKE_COLOR = "#000000"
DEFAULT_TEXT_COLOR = "#000000"
PICTURE_FILL_PLACEHOLDER = "#F0F0F0"

PALETTE_COLORS = ("black", "grey", "white", "red", "orange", "yellow", "green", "blue", "violet")

_HUE_BUCKETS = (
    ("red", 0),
    ("orange", 30),
    ("yellow", 55),
    ("green", 120),
    ("blue", 210),
    ("violet", 275),
    ("red", 360),
)

_PRESET_COLORS = {
    "black": "#000000",
    "white": "#FFFFFF",
    "red": "#FF0000",
    "green": "#008000",
    "lime": "#00FF00",
    "blue": "#0000FF",
    "yellow": "#FFFF00",
    "orange": "#FFA500",
    "purple": "#800080",
    "gray": "#808080",
    "grey": "#808080",
    "ltGray": "#D3D3D3",
    "dkGray": "#A9A9A9",
}

_SYSTEM_COLORS = {"windowText": "#000000", "window": "#FFFFFF", "btnFace": "#F0F0F0"}

_HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")
_RGB_FUNC_RE = re.compile(r"rgb\s*\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)", re.IGNORECASE)

# Border line style -> (width px, dash)
BORDER_STYLES: Dict[str, Tuple[float, str]] = {
    "hair": (1.0, "dotted"),
    "thin": (1.0, "solid"),
    "dotted": (1.0, "dotted"),
    "dashed": (1.0, "dashed"),
    "dashDot": (1.0, "dashed"),
    "dashDotDot": (1.0, "dashed"),
    "medium": (2.0, "solid"),
    "mediumDashed": (2.0, "dashed"),
    "mediumDashDot": (2.0, "dashed"),
    "mediumDashDotDot": (2.0, "dashed"),
    "slantDashDot": (2.0, "dashed"),
    "thick": (3.0, "solid"),
    "double": (3.0, "solid"),
}

_DASH_PRESETS = {
    "solid": "solid",
    "dot": "dotted",
    "sysDot": "dotted",
    "dash": "dashed",
    "sysDash": "dashed",
    "lgDash": "dashed",
    "dashDot": "dashed",
    "lgDashDot": "dashed",
    "lgDashDotDot": "dashed",
    "sysDashDot": "dashed",
    "sysDashDotDot": "dashed",
}


# Colour primitives

def _clamp255(value: float) -> int:
    return max(0, min(255, int(value)))


def hex_to_rgb(value: str) -> Optional[Tuple[int, int, int]]:
    """Parse '#RGB', '#RRGGBB' or 'AARRGGBB' (with or without '#')."""
    s = value.strip().lstrip("#")
    if not s or not _HEX_RE.match(s):
        return None
    if len(s) == 3:
        return tuple(int(ch * 2, 16) for ch in s)  # type: ignore[return-value]
    if len(s) == 8:
        s = s[2:]
    if len(s) != 6:
        return None
    return int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16)


def rgb_to_hex(rgb: Tuple[int, int, int]) -> str:
    return "#{:02X}{:02X}{:02X}".format(*(_clamp255(round(c)) for c in rgb))


def normalize_hex(value: str) -> Optional[str]:
    rgb = hex_to_rgb(value)
    return rgb_to_hex(rgb) if rgb else None


def parse_color(value) -> Optional[Tuple[int, int, int]]:
    """Parse any supported colour notation into an (r, g, b) tuple.

    Supports '#RGB', '#RRGGBB', 'AARRGGBB', 'rgb(r,g,b)', JSON '{"rgb": "#RRGGBB"}'
    and OLE packed integers (red in the low byte). Returns None when the input
    is not a colour.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value & 0xFF, (value >> 8) & 0xFF, (value >> 16) & 0xFF

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if text.startswith("{"):
        try:
            data = json.loads(text)
        except ValueError:
            return None
        if isinstance(data, dict) and isinstance(data.get("rgb"), str):
            return hex_to_rgb(data["rgb"])
        return None

    if text.startswith("#"):
        return hex_to_rgb(text)

    match = _RGB_FUNC_RE.search(text)
    if match and text.lower().startswith("rgb"):
        return tuple(_clamp255(int(g)) for g in match.groups())  # type: ignore[return-value]

    if text.isdigit():
        return parse_color(int(text))

    if len(text) == 8 and _HEX_RE.match(text):
        return hex_to_rgb(text)

    return None


def rgb_to_hsl(rgb: Tuple[int, int, int]) -> Tuple[float, float, float]:
    """(hue degrees 0..360, saturation 0..1, lightness 0..1)."""
    r, g, b = (c / 255.0 for c in rgb)
    h, l, s = colorsys.rgb_to_hls(r, g, b)
    return h * 360.0, s, l


def blend(color: str, target: str, ratio: float) -> str:
    """Linear blend of ``color`` toward ``target`` by ``ratio`` (0..1)."""
    c1 = hex_to_rgb(color) or (255, 255, 255)
    c2 = hex_to_rgb(target) or (255, 255, 255)
    ratio = max(0.0, min(1.0, ratio))
    return rgb_to_hex(tuple(round(a + (b - a) * ratio) for a, b in zip(c1, c2)))  # type: ignore[arg-type]


def _with_luminance(color: str, fn: Callable[[float], float]) -> str:
    rgb = hex_to_rgb(color) or (255, 255, 255)
    h, l, s = colorsys.rgb_to_hls(*(c / 255.0 for c in rgb))
    l = max(0.0, min(1.0, fn(l)))
    r, g, b = colorsys.hls_to_rgb(h, l, s)
    return rgb_to_hex((round(r * 255), round(g * 255), round(b * 255)))


def _percent(node: etree._Element, default: float = 0.0) -> float:
    try:
        return int(node.get("val")) / 100000.0
    except (ValueError, TypeError):
        return default


def apply_color_transforms(base: str, node: Optional[etree._Element]) -> Tuple[str, float]:
    """Apply the transform children of a colour node in document order.

    Args:
        base: Base colour "#RRGGBB".
        node: srgbClr / schemeClr / sysClr element carrying tint, shade,
            lumMod, lumOff and alpha children.

    Returns:
        (colour, opacity)
    """
    color = base
    opacity = 1.0
    if node is None:
        return color, opacity

    for child in node:
        if not isinstance(child.tag, str):
            continue
        name = etree.QName(child).localname
        if name == "tint":
            color = blend(color, "#FFFFFF", _percent(child))
        elif name == "shade":
            color = blend(color, "#000000", _percent(child))
        elif name == "lumMod":
            factor = _percent(child, 1.0)
            color = _with_luminance(color, lambda l: l * factor)
        elif name == "lumOff":
            offset = _percent(child)
            color = _with_luminance(color, lambda l: l + offset)
        elif name == "alpha":
            opacity = max(0.0, min(1.0, _percent(child, 1.0)))
    return color, opacity


# DrawingML colours

def _base_srgb(node, theme) -> Optional[str]:
    return normalize_hex(node.get("val", ""))


def _base_scheme(node, theme) -> Optional[str]:
    name = node.get("val")
    return theme_color(name, theme) if name else None


def _base_sys(node, theme) -> Optional[str]:
    last = node.get("lastClr")
    if last:
        return normalize_hex(last)
    return _SYSTEM_COLORS.get(node.get("val", ""))


def _base_preset(node, theme) -> Optional[str]:
    return _PRESET_COLORS.get(node.get("val", ""))


# Resolution order for colour nodes.
COLOR_NODE_STRATEGIES: List[Tuple[str, Callable]] = [
    ("srgbClr", _base_srgb),
    ("schemeClr", _base_scheme),
    ("sysClr", _base_sys),
    ("prstClr", _base_preset),
]


def resolve_color_node(parent: Optional[etree._Element], theme: Optional[Dict[str, str]] = None) -> Optional[ColorSpec]:
    """Resolve the colour child of a fill/line/gradient-stop element."""
    if parent is None:
        return None
    for tag, strategy in COLOR_NODE_STRATEGIES:
        node = parent.find(f"a:{tag}", A_NS)
        if node is None:
            continue
        base = strategy(node, theme)
        if base is None:
            logger.debug(f"Unresolvable {tag} value {node.get('val')!r}")
            return None
        rgb, opacity = apply_color_transforms(base, node)
        return ColorSpec(rgb=rgb, opacity=opacity)
    return None


# Fills

def _fill(color: ColorSpec, source: str, options: Optional["PaletteOptions"]) -> FillStyle:
    return FillStyle(
        fill="solid",
        color=color,
        palette_color=map_to_palette_color(color.rgb, options),
        source=source,
    )


def _fill_none(sp_pr, theme, options) -> Optional[FillStyle]:
    if sp_pr.find("a:noFill", A_NS) is not None:
        return FillStyle(fill="none", color=ColorSpec(DEFAULT_FILL_COLOR, 0.0), source="noFill")
    return None


def _fill_solid(sp_pr, theme, options) -> Optional[FillStyle]:
    node = sp_pr.find("a:solidFill", A_NS)
    if node is None:
        return None
    color = resolve_color_node(node, theme) or ColorSpec(DEFAULT_FILL_COLOR)
    return _fill(color, "solidFill", options)


def _fill_gradient(sp_pr, theme, options) -> Optional[FillStyle]:
    stop = sp_pr.find("a:gradFill/a:gsLst/a:gs", A_NS)
    color = resolve_color_node(stop, theme)
    if color is None:
        return None
    return _fill(color, "gradFill", options)


def _fill_picture(sp_pr, theme, options) -> Optional[FillStyle]:
    if sp_pr.find("a:blipFill", A_NS) is None:
        return None
    return _fill(ColorSpec(PICTURE_FILL_PLACEHOLDER), "blipFill", options)


def _fill_pattern(sp_pr, theme, options) -> Optional[FillStyle]:
    color = resolve_color_node(sp_pr.find("a:pattFill/a:fgClr", A_NS), theme)
    if color is None:
        return None
    return _fill(color, "pattFill", options)


# Ordered fallback chain; the first strategy returning a style wins.
FILL_STRATEGIES: List[Callable] = [
    _fill_none,
    _fill_solid,
    _fill_gradient,
    _fill_picture,
    _fill_pattern,
]


def resolve_fill(
    sp_pr: Optional[etree._Element],
    theme: Optional[Dict[str, str]] = None,
    options: Optional["PaletteOptions"] = None,
) -> FillStyle:
    """Resolve the fill of a shape's spPr element.

    Returns:
        FillStyle; fill="none" when the shape declares no fill.
    """
    if sp_pr is not None:
        for strategy in FILL_STRATEGIES:
            style = strategy(sp_pr, theme, options)
            if style is not None:
                return style
    return FillStyle(fill="none", color=ColorSpec(DEFAULT_FILL_COLOR), source="none")


def resolve_stroke(
    sp_pr: Optional[etree._Element],
    theme: Optional[Dict[str, str]] = None,
    options: Optional["PaletteOptions"] = None,
) -> StrokeStyle:
    """Resolve the outline (a:ln) of a shape's spPr element."""
    line = sp_pr.find("a:ln", A_NS) if sp_pr is not None else None
    if line is None or line.find("a:noFill", A_NS) is not None:
        return StrokeStyle(stroke="none", color=ColorSpec(DEFAULT_STROKE_COLOR), width_px=0.0)

    width = emu_to_px(line.get("w")) if line.get("w") else 1.0
    color = resolve_color_node(line.find("a:solidFill", A_NS), theme) or ColorSpec(DEFAULT_STROKE_COLOR)
    dash_node = line.find("a:prstDash", A_NS)
    dash = _DASH_PRESETS.get(dash_node.get("val", ""), "solid") if dash_node is not None else "solid"
    return StrokeStyle(
        stroke="solid",
        color=color,
        width_px=max(1.0, width),
        dash=dash,
        palette_color=map_to_palette_color(color.rgb, options),
    )


def resolve_run_color(r_pr: Optional[etree._Element], theme: Optional[Dict[str, str]] = None) -> ColorSpec:
    """Text colour of a DrawingML run, black when unset."""
    if r_pr is None:
        return ColorSpec(DEFAULT_TEXT_COLOR)
    return resolve_color_node(r_pr.find("a:solidFill", A_NS), theme) or ColorSpec(DEFAULT_TEXT_COLOR)


def resolve_font(
    r_pr: Optional[etree._Element],
    theme: Optional[Dict[str, str]] = None,
    default_pt: float = 11.0,
    options: Optional["PaletteOptions"] = None,
) -> FontSpec:
    """Font of a DrawingML run (a:rPr / a:defRPr)."""
    if r_pr is None:
        return FontSpec(size_pt=default_pt, size_tier=map_font_size_tier(default_pt))
    try:
        size_pt = int(r_pr.get("sz")) / 100.0
    except (ValueError, TypeError):
        size_pt = default_pt
    color = resolve_run_color(r_pr, theme)
    latin = r_pr.find("a:latin", A_NS)
    return FontSpec(
        size_pt=size_pt,
        size_tier=map_font_size_tier(size_pt),
        color=color,
        palette_color=map_to_palette_color(color.rgb, options),
        bold=r_pr.get("b") in ("1", "true"),
        italic=r_pr.get("i") in ("1", "true"),
        underline=r_pr.get("u") not in (None, "none"),
        family=latin.get("typeface") if latin is not None else None,
    )


# Spreadsheet (cell) colours

def resolve_cell_color(color, theme: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Resolve an openpyxl Color to "#RRGGBB".

    Handles rgb (ARGB), theme (index plus tint) and indexed colours. Returns
    None for automatic or unresolvable colours.
    """
    if color is None:
        return None

    kind = getattr(color, "type", None)
    base: Optional[str] = None

    if kind == "rgb":
        value = color.rgb
        if isinstance(value, str):
            base = normalize_hex(value)
    elif kind == "theme":
        base = theme_color_by_index(int(color.theme), theme)
    elif kind == "indexed":
        base = _indexed_color(int(color.indexed))

    if base is None:
        return None

    tint = float(getattr(color, "tint", 0.0) or 0.0)
    if tint > 0:
        base = blend(base, "#FFFFFF", tint)
    elif tint < 0:
        base = blend(base, "#000000", -tint)
    return base


def _indexed_color(index: int) -> Optional[str]:
    from openpyxl.styles.colors import COLOR_INDEX

    if index == 64:  # system foreground
        return DEFAULT_TEXT_COLOR
    if index == 65:  # system background
        return DEFAULT_FILL_COLOR
    if 0 <= index < len(COLOR_INDEX):
        return normalize_hex(COLOR_INDEX[index])
    return None


def cell_fill_style(
    fill,
    theme: Optional[Dict[str, str]] = None,
    options: Optional["PaletteOptions"] = None,
    skip_white: bool = True,
) -> Optional[FillStyle]:
    """Background of a cell from its openpyxl PatternFill.

    Only solid pattern fills produce a background; pure white is treated as
    no background when ``skip_white`` is set.
    """
    if fill is None or getattr(fill, "fill_type", None) != "solid":
        return None
    rgb = resolve_cell_color(fill.fgColor, theme)
    if rgb is None:
        return None
    if skip_white and rgb == DEFAULT_FILL_COLOR:
        return None
    return _fill(ColorSpec(rgb), "cellFill", options)


def cell_border_stroke(
    border,
    theme: Optional[Dict[str, str]] = None,
    options: Optional["PaletteOptions"] = None,
) -> Optional[Tuple[StrokeStyle, Tuple[str, ...]]]:
    """Stroke and drawn sides of a cell's openpyxl Border, or None."""
    if border is None:
        return None

    sides: List[str] = []
    drawn = []
    for side_name in ("top", "right", "bottom", "left"):
        side = getattr(border, side_name, None)
        style = getattr(side, "style", None) if side is not None else None
        if style:
            sides.append(side_name)
            drawn.append((BORDER_STYLES.get(style, (1.0, "solid")), side))

    if not drawn:
        return None

    # The heaviest side decides the frame stroke
    (width, dash), side = max(drawn, key=lambda item: item[0][0])
    rgb = resolve_cell_color(getattr(side, "color", None), theme) or DEFAULT_STROKE_COLOR
    stroke = StrokeStyle(
        stroke="solid",
        color=ColorSpec(rgb),
        width_px=width,
        dash=dash,
        palette_color=map_to_palette_color(rgb, options),
    )
    return stroke, tuple(sides)


def merged_region_border(edges: Dict[str, List[object]]):
    """One openpyxl Border for a merged region.

    ``edges`` maps a side name to the Borders of the cells on that edge of the
    region. A side is drawn when any of those cells draws it; the heaviest
    style wins. None when no edge cell draws anything.
    """
    from openpyxl.styles import Border

    chosen = {}
    for side_name, borders in edges.items():
        sides = [getattr(b, side_name, None) for b in borders if b is not None]
        sides = [s for s in sides if s is not None and s.style]
        if sides:
            chosen[side_name] = max(sides, key=lambda s: BORDER_STYLES.get(s.style, (1.0, "solid"))[0])
    return Border(**chosen) if chosen else None


def cell_font_spec(
    font,
    theme: Optional[Dict[str, str]] = None,
    default_pt: float = 11.0,
    options: Optional["PaletteOptions"] = None,
) -> FontSpec:
    """FontSpec of an openpyxl Font."""
    if font is None:
        return FontSpec(size_pt=default_pt, size_tier=map_font_size_tier(default_pt))
    try:
        size_pt = float(font.sz) if font.sz else default_pt
    except (ValueError, TypeError):
        size_pt = default_pt
    rgb = resolve_cell_color(getattr(font, "color", None), theme) or DEFAULT_TEXT_COLOR
    return FontSpec(
        size_pt=size_pt,
        size_tier=map_font_size_tier(size_pt),
        color=ColorSpec(rgb),
        palette_color=map_to_palette_color(rgb, options),
        bold=bool(font.b),
        italic=bool(font.i),
        underline=bool(font.u) and font.u != "none",
        family=font.name,
    )


# Palette mapping

@dataclass(frozen=True)
class PaletteOptions:
    min_saturation: float = 0.18
    lightness_as_white: float = 0.92
    lightness_as_black: float = 0.12
    force_very_light_to_grey: bool = True


def _is_tan_like(hue: float, s: float, l: float) -> bool:
    """Muted warm yellows and browns (tan, khaki, wheat) that read as orange."""
    hue = (hue + 360) % 360
    if abs(hue - 60) < 5:
        return False
    warm_tan_hue = 15 <= hue <= 55 or 65 <= hue <= 75
    mid_light = 0.20 <= l <= 0.90
    saturated_yellow = s > 0.5 and 40 <= hue <= 70 and abs(hue - 60) > 5
    return (warm_tan_hue and mid_light) or saturated_yellow


def map_to_palette_color(value, options: Optional[PaletteOptions] = None) -> str:
    """Map any colour onto the fixed canvas palette.

    Args:
        value: Anything parse_color accepts.
        options: Lightness and saturation thresholds.

    Returns:
        One of PALETTE_COLORS; 'grey' for unparseable input.
    """
    options = options or PaletteOptions()
    rgb = parse_color(value)
    if rgb is None:
        return "grey"

    if rgb == (255, 255, 255):
        return "white"

    hue, s, l = rgb_to_hsl(rgb)
    if l >= options.lightness_as_white:
        return "grey" if options.force_very_light_to_grey else "white"
    if l <= options.lightness_as_black:
        return "black"
    if _is_tan_like(hue, s, l):
        return "orange"
    if s < options.min_saturation:
        return "grey"

    hue = (hue + 360) % 360
    best = "grey"
    best_dist = float("inf")
    for name, deg in _HUE_BUCKETS:
        dist = min(abs(hue - deg), 360 - abs(hue - deg))
        if dist < best_dist:
            best, best_dist = name, dist
    return best


def map_font_size_tier(pt: Optional[float]) -> str:
    """Bucket a point size into the canvas size tiers s/m/l/xl."""
    if not pt or pt <= 0:
        return "s"
    if pt <= 10:
        return "s"
    if pt <= 14:
        return "m"
    if pt <= 18:
        return "l"
    return "xl"


__all__ = [
    "DEFAULT_THEME_COLORS",
    "PALETTE_COLORS",
    "PaletteOptions",
    "apply_color_transforms",
    "blend",
    "cell_border_stroke",
    "cell_fill_style",
    "cell_font_spec",
    "map_font_size_tier",
    "map_to_palette_color",
    "parse_color",
    "resolve_cell_color",
    "resolve_color_node",
    "resolve_fill",
    "resolve_font",
    "resolve_stroke",
]
