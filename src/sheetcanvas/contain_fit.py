"""Contain-fit placement of pictures inside their anchor rectangles."""

from __future__ import annotations

import logging
import math

from sheetcanvas.ir import Rect

logger = logging.getLogger(__name__)

EXTREME_ASPECT_RATIO = 3.0
ASPECT_PADDING_FACTOR = 1.4
EDGE_TRIM_RATIO = 0.002


def dynamic_padding(target_w: float, target_h: float, natural_w: float, natural_h: float, min_padding: float = 2.0) -> int:
    """Padding that grows with the target area and for extreme aspect ratios."""
    base = max(2.0, min(8.0, math.sqrt(max(0.0, target_w * target_h)) / 50.0))
    ratio = natural_w / natural_h
    extreme = ratio > EXTREME_ASPECT_RATIO or ratio < 1.0 / EXTREME_ASPECT_RATIO
    factor = ASPECT_PADDING_FACTOR if extreme else 1.0
    return int(round(max(min_padding, base * factor)))


def compute_contain_fit(target: Rect, natural_w: float, natural_h: float, min_padding: float = 2.0) -> Rect:
    """Scale a picture to fit inside ``target`` without cropping or upscaling.

    Args:
        target: Anchor rectangle (must have a size).
        natural_w: Decoded picture width in pixels.
        natural_h: Decoded picture height in pixels.
        min_padding: Lower bound for the padding around the picture.

    Returns:
        Rect fully contained in ``target``, never larger than the natural size.

    Raises:
        ValueError: If the target has no size or the natural size is not positive.
    """
    if not target.has_size:
        raise ValueError("contain-fit target has no size")
    if not natural_w or not natural_h or natural_w <= 0 or natural_h <= 0:
        raise ValueError(f"invalid natural size {natural_w}x{natural_h}")

    w_cell = max(0.0, float(target.w))
    h_cell = max(0.0, float(target.h))
    ratio = natural_w / natural_h
    too_wide = ratio > EXTREME_ASPECT_RATIO
    too_tall = ratio < 1.0 / EXTREME_ASPECT_RATIO

    pad = dynamic_padding(w_cell, h_cell, natural_w, natural_h, min_padding)
    inner_w = max(0.0, w_cell - 2 * pad)
    inner_h = max(0.0, h_cell - 2 * pad)

    scale = min(inner_w / natural_w, inner_h / natural_h, 1.0)

    # Floor, never round up: a 1px overflow gets clipped by the renderer
    w_img = max(1, int(math.floor(natural_w * scale)))
    h_img = max(1, int(math.floor(natural_h * scale)))

    if too_wide:
        w_img = max(1, w_img - max(1, int(round(w_cell * EDGE_TRIM_RATIO))))
    if too_tall:
        h_img = max(1, h_img - max(1, int(round(h_cell * EDGE_TRIM_RATIO))))

    w = min(float(w_img), w_cell)
    h = min(float(h_img), h_cell)

    x = max(target.x, round(target.x + (w_cell - w) / 2))
    y = max(target.y, round(target.y + (h_cell - h) / 2))
    x = min(x, target.x + w_cell - w)
    y = min(y, target.y + h_cell - h)

    logger.debug(
        f"contain-fit: target {w_cell:.0f}x{h_cell:.0f}, natural {natural_w}x{natural_h}, "
        f"ratio={ratio:.3f}, pad={pad}, placed {w:.0f}x{h:.0f} at ({x:.0f},{y:.0f})"
    )
    return Rect(x, y, w, h)
