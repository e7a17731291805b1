"""Text measurement, wrapping and font-size fitting."""

from __future__ import annotations

import logging
import math
import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

from sheetcanvas.ir import Rect, TextPlacement

logger = logging.getLogger(__name__)

ZWSP = "\u200b"
DEFAULT_LINE_HEIGHT = 1.35
DEFAULT_TOLERANCE_PX = 2.0
FALLBACK_FONT_FILES = ("DejaVuSans.ttf", "Arial.ttf", "arial.ttf", "LiberationSans-Regular.ttf")

_CAMEL_RE = re.compile(r"([a-z])([A-Z])")
_LETTER_DIGIT_RE = re.compile(r"([A-Za-z])([0-9])")
_DIGIT_LETTER_RE = re.compile(r"([0-9])([A-Za-z])")
_LONG_RUN_RE = re.compile(r"[A-Za-z0-9]{20,}")
_CHUNK_RE = re.compile(r"(.{10})")


def pt_to_px(pt: float) -> int:
    return int(round(pt * 96 / 72))


def px_to_pt(px: float) -> int:
    return int(round(px * 72 / 96))


class TextMeasurer(Protocol):
    def text_width(self, text: str, font_px: float) -> float:
        ...


class MonospaceTextMeasurer:
    """Deterministic measurer: every glyph is ``char_ratio`` em wide.

    East Asian wide characters count as a full em.
    """

    def __init__(self, char_ratio: float = 0.6):
        self.char_ratio = char_ratio

    def text_width(self, text: str, font_px: float) -> float:
        width = 0.0
        for ch in text:
            if ch == ZWSP:
                continue
            if unicodedata.east_asian_width(ch) in ("W", "F"):
                width += font_px
            else:
                width += font_px * self.char_ratio
        return width


class PillowTextMeasurer:
    """Measures glyph advances with a Pillow font, cached per pixel size."""

    def __init__(self, font_path: Optional[str] = None):
        self.font_path = font_path
        self._font_cache: Dict[int, object] = {}

    def _font(self, font_px: float):
        from PIL import ImageFont

        size = max(1, int(round(font_px)))
        if size in self._font_cache:
            return self._font_cache[size]

        font = None
        candidates = [self.font_path] if self.font_path else []
        candidates.extend(FALLBACK_FONT_FILES)
        for candidate in candidates:
            try:
                font = ImageFont.truetype(candidate, size)
                break
            except OSError:
                continue
        if font is None:
            logger.debug(f"No TrueType font found, using Pillow default at {size}px")
            font = ImageFont.load_default(size=size)

        self._font_cache[size] = font
        return font

    def text_width(self, text: str, font_px: float) -> float:
        if not text:
            return 0.0
        return float(self._font(font_px).getlength(text.replace(ZWSP, "")))


def soften_long_tokens(text: str) -> str:
    """Insert zero-width break opportunities into long unbroken tokens.

    Breaks go at camelCase boundaries, letter/digit boundaries and every 10
    characters inside runs of 20 or more letters/digits.
    """
    if not text:
        return text
    text = _CAMEL_RE.sub(rf"\1{ZWSP}\2", text)
    text = _LETTER_DIGIT_RE.sub(rf"\1{ZWSP}\2", text)
    text = _DIGIT_LETTER_RE.sub(rf"\1{ZWSP}\2", text)
    return _LONG_RUN_RE.sub(lambda m: _CHUNK_RE.sub(rf"\1{ZWSP}", m.group(0)), text)


def _segments(word: str) -> List[str]:
    return [piece for piece in word.split(ZWSP) if piece]


def _wrap_paragraph(paragraph: str, width_px: float, font_px: float, measurer: TextMeasurer) -> List[str]:
    lines: List[str] = []
    current = ""
    for word in paragraph.split():
        for i, piece in enumerate(_segments(word)):
            # Pieces of one word join without a space
            sep = " " if current and i == 0 else ""
            candidate = f"{current}{sep}{piece}"
            if measurer.text_width(candidate, font_px) <= width_px:
                current = candidate
            elif current:
                lines.append(current)
                current = piece
            else:
                # A single piece wider than the box gets its own line
                lines.append(piece)
                current = ""
    if current:
        lines.append(current)
    return lines


def layout_lines(text: str, width_px: float, font_px: float, measurer: TextMeasurer) -> List[str]:
    """Greedy word wrap; whitespace and U+200B are break opportunities.

    Explicit newlines start a new line.
    """
    if not text:
        return []
    if not width_px or width_px <= 0:
        return [line.replace(ZWSP, "") for line in text.split("\n")]

    lines: List[str] = []
    for paragraph in text.split("\n"):
        wrapped = _wrap_paragraph(paragraph, width_px, font_px, measurer)
        lines.extend(wrapped or [""])
    # Trailing blank lines add no height
    while lines and not lines[-1]:
        lines.pop()
    return lines


@dataclass(frozen=True)
class MeasuredText:
    lines: Tuple[str, ...]
    height_px: int
    line_px: int

    @property
    def line_count(self) -> int:
        return len(self.lines)


class TextLayout:
    """Wraps, measures and fits text against an injected measurer."""

    def __init__(
        self,
        measurer: Optional[TextMeasurer] = None,
        line_height: float = DEFAULT_LINE_HEIGHT,
        tolerance_px: float = DEFAULT_TOLERANCE_PX,
    ):
        self.measurer = measurer or MonospaceTextMeasurer()
        self.line_height = line_height
        self.tolerance_px = tolerance_px

    def line_px(self, font_px: float) -> int:
        return int(math.ceil(font_px * self.line_height))

    def measure(self, text: str, width_px: float, font_px: float) -> MeasuredText:
        """Wrap ``text`` at ``width_px`` and report lines and total height."""
        if not text or not width_px or width_px <= 0 or font_px <= 0:
            return MeasuredText(lines=(), height_px=0, line_px=0)
        lines = layout_lines(soften_long_tokens(text), width_px, font_px, self.measurer)
        line_px = self.line_px(font_px)
        return MeasuredText(lines=tuple(lines), height_px=len(lines) * line_px, line_px=line_px)

    def fit_font_size(
        self,
        text: str,
        box_w: float,
        box_h: float,
        base_pt: float,
        min_pt: int = 8,
    ) -> int:
        """Largest integer point size in [min_pt, base_pt] whose wrap fits the box.

        Returns max(min_pt, 12) for empty text or an empty box, and min_pt
        when nothing fits.
        """
        if not text or not box_w or not box_h or base_pt <= 0:
            return max(min_pt, 12)

        lo = int(min_pt)
        hi = int(math.floor(base_pt))
        best = int(min_pt)
        limit = box_h - self.tolerance_px
        while lo <= hi:
            mid = (lo + hi) // 2
            measured = self.measure(text, box_w, pt_to_px(mid))
            if measured.height_px <= limit:
                best = mid
                lo = mid + 1
            else:
                hi = mid - 1
        return best

    def align_text(
        self,
        text: str,
        rect: Rect,
        h_align: str = "left",
        v_align: str = "top",
        padding: float = 4.0,
        font_px: int = 15,
    ) -> TextPlacement:
        """Position a text block inside ``rect``.

        The first pass measures at the intrinsic (single-line) width so short
        strings get their true glyph width; the second pass wraps at the padded
        inner width. The origin and size are clamped so the block never leaves
        the rect, even when the padding is larger than the rect itself.
        """
        rect_w = max(0.0, rect.w or 0.0)
        rect_h = max(0.0, rect.h or 0.0)
        pad = max(0.0, min(padding, rect_w / 2, rect_h / 2))
        inner_w = rect_w - 2 * pad
        inner_h = rect_h - 2 * pad

        softened = soften_long_tokens(text or "")
        intrinsic = max(
            (self.measurer.text_width(line, font_px) for line in softened.split("\n")),
            default=0.0,
        )
        wrap_w = inner_w if intrinsic <= 0 or intrinsic > inner_w else intrinsic
        measured = self.measure(text, wrap_w, font_px)
        block_w = min(
            inner_w,
            max((self.measurer.text_width(line, font_px) for line in measured.lines), default=0.0),
        )
        block_h = min(inner_h, float(measured.height_px))

        if h_align == "center":
            x = rect.x + pad + (inner_w - block_w) / 2
        elif h_align == "right":
            x = rect.x + rect_w - pad - block_w
        else:
            x = rect.x + pad

        if v_align in ("middle", "center"):
            y = rect.y + pad + (inner_h - block_h) / 2
        elif v_align == "bottom":
            y = rect.y + rect_h - pad - block_h
        else:
            y = rect.y + pad

        x = min(max(x, rect.x), rect.x + rect_w - block_w)
        y = min(max(y, rect.y), rect.y + rect_h - block_h)

        return TextPlacement(
            x=x,
            y=y,
            w=block_w,
            h=block_h,
            font_px=int(font_px),
            line_px=measured.line_px,
            lines=measured.lines,
        )
