"""Theme parser - Read the colour scheme of xl/theme/theme1.xml."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from lxml import etree

logger = logging.getLogger(__name__)

A_NS = {"a": "http://schemas.openxmlformats.org/drawingml/2006/main"}

# Office 2013+ default theme.
DEFAULT_THEME_COLORS: Dict[str, str] = {
    "dk1": "#000000",
    "lt1": "#FFFFFF",
    "dk2": "#44546A",
    "lt2": "#E7E6E6",
    "accent1": "#5B9BD5",
    "accent2": "#ED7D31",
    "accent3": "#A5A5A5",
    "accent4": "#FFC000",
    "accent5": "#4472C4",
    "accent6": "#70AD47",
    "hlink": "#0563C1",
    "folHlink": "#954F72",
}

# schemeClr values that name another slot.
SCHEME_ALIASES: Dict[str, str] = {
    "tx1": "dk1",
    "bg1": "lt1",
    "tx2": "dk2",
    "bg2": "lt2",
    "dark1": "dk1",
    "light1": "lt1",
    "dark2": "dk2",
    "light2": "lt2",
    "phClr": "accent1",
}

# SpreadsheetML <color theme="n"> index order.
THEME_INDEX_ORDER = (
    "lt1", "dk1", "lt2", "dk2",
    "accent1", "accent2", "accent3", "accent4", "accent5", "accent6",
    "hlink", "folHlink",
)

_SCHEME_SLOTS = tuple(DEFAULT_THEME_COLORS)


def parse_theme_colors(theme_xml: Optional[bytes]) -> Dict[str, str]:
    """Parse the clrScheme of a theme part.

    Args:
        theme_xml: Raw bytes of the theme part, or None.

    Returns:
        Dict mapping slot names (dk1, lt1, accent1, ...) to "#RRGGBB". Slots
        missing from the part keep their default value.
    """
    colors = dict(DEFAULT_THEME_COLORS)
    if not theme_xml:
        return colors

    try:
        tree = etree.fromstring(theme_xml)
    except etree.XMLSyntaxError as e:
        logger.error(f"Malformed theme part, using default colours: {e}")
        return colors

    scheme = tree.find(".//a:themeElements/a:clrScheme", A_NS)
    if scheme is None:
        scheme = tree.find(".//a:clrScheme", A_NS)
    if scheme is None:
        return colors

    for slot in _SCHEME_SLOTS:
        node = scheme.find(f"a:{slot}", A_NS)
        if node is None:
            continue
        srgb = node.find("a:srgbClr", A_NS)
        sys_clr = node.find("a:sysClr", A_NS)
        value = None
        if srgb is not None:
            value = srgb.get("val")
        elif sys_clr is not None:
            value = sys_clr.get("lastClr")
        if value and len(value) == 6:
            colors[slot] = f"#{value.upper()}"

    return colors


def theme_color(name: str, theme: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Look up a scheme colour by slot name or alias."""
    palette = theme or DEFAULT_THEME_COLORS
    slot = SCHEME_ALIASES.get(name, name)
    return palette.get(slot) or DEFAULT_THEME_COLORS.get(slot)


def theme_color_by_index(index: int, theme: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Look up a SpreadsheetML theme colour index (0 = lt1, 1 = dk1, ...)."""
    if not 0 <= index < len(THEME_INDEX_ORDER):
        return None
    return theme_color(THEME_INDEX_ORDER[index], theme)
