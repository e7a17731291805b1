"""Merged cell resolution."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Set, Tuple

from sheetcanvas.ir import MergedRegion, OffsetTables
from sheetcanvas.xlsx_parser.geometry import range_rect

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"^\$?([A-Za-z]+)\$?(\d+):\$?([A-Za-z]+)\$?(\d+)$")


def column_letter_to_number(letters: str) -> int:
    """Convert a column reference ('A', 'AB') to its 1-based number."""
    result = 0
    for ch in letters.upper():
        if not "A" <= ch <= "Z":
            raise ValueError(f"Invalid column letters: {letters!r}")
        result = result * 26 + (ord(ch) - ord("A") + 1)
    return result


def _bounds_of(spec) -> Optional[Tuple[int, int, int, int]]:
    """Extract (top, left, bottom, right) from any supported merge spec."""
    if isinstance(spec, str):
        match = _RANGE_RE.match(spec.strip())
        if not match:
            return None
        left_col, top_row, right_col, bottom_row = match.groups()
        return (
            int(top_row),
            column_letter_to_number(left_col),
            int(bottom_row),
            column_letter_to_number(right_col),
        )

    if isinstance(spec, dict):
        get = spec.get
    else:
        def get(name):
            return getattr(spec, name, None)

    # openpyxl CellRange exposes min_row/min_col/max_row/max_col
    if get("min_row") is not None:
        keys = ("min_row", "min_col", "max_row", "max_col")
    else:
        keys = ("top", "left", "bottom", "right")
    values = [get(k) for k in keys]
    if any(v is None for v in values):
        return None
    try:
        top, left, bottom, right = (int(v) for v in values)
    except (ValueError, TypeError):
        return None
    return top, left, bottom, right


def resolve_merges(merge_specs: Iterable, offsets: OffsetTables) -> List[MergedRegion]:
    """Turn merge specifications into pixel-positioned regions.

    Args:
        merge_specs: openpyxl CellRange objects, mappings/objects with
            top/left/bottom/right, or "A1:C3" strings (1-based, inclusive).
        offsets: Offset tables of the sheet.

    Returns:
        Non-overlapping regions in input order. Invalid specs and regions
        overlapping an earlier one are dropped with a warning.
    """
    regions: List[MergedRegion] = []
    seen: Set[str] = set()

    for spec in merge_specs or []:
        try:
            bounds = _bounds_of(spec)
        except ValueError as e:
            logger.warning(f"Skipping unparseable merge {spec!r}: {e}")
            continue
        if bounds is None:
            logger.warning(f"Skipping unrecognized merge spec: {spec!r}")
            continue

        top, left, bottom, right = bounds
        if not (0 < top <= bottom and 0 < left <= right):
            logger.warning(f"Skipping invalid merge bounds: {spec!r}")
            continue

        region = MergedRegion(
            top_row=top,
            left_col=left,
            bottom_row=bottom,
            right_col=right,
            pixel_rect=range_rect(top, left, bottom, right, offsets),
        )
        if region.key in seen:
            continue
        clash = next((r for r in regions if r.overlaps(region)), None)
        if clash is not None:
            logger.warning(f"Dropping merge {spec!r}: overlaps region {clash.key}")
            continue

        seen.add(region.key)
        regions.append(region)

    return regions


def is_in_region(row: int, col: int, regions: Iterable[MergedRegion]) -> Optional[MergedRegion]:
    """Return the region covering a 1-based cell, if any."""
    for region in regions:
        if region.covers(row, col):
            return region
    return None


class ConsumedCells:
    """Tracks cells already emitted during a full-sheet scan.

    A merged region is claimed by whichever of its cells is visited first;
    every other cell of that region is then reported as consumed.
    """

    ALREADY_CLAIMED = object()

    def __init__(self, regions: List[MergedRegion]):
        self.regions = regions
        self._consumed: Set[Tuple[int, int]] = set()
        self._claimed_regions: Set[str] = set()

    def is_consumed(self, row: int, col: int) -> bool:
        if (row, col) in self._consumed:
            return True
        region = is_in_region(row, col, self.regions)
        return region is not None and region.key in self._claimed_regions

    def claim(self, row: int, col: int):
        """Claim a cell.

        Returns:
            ALREADY_CLAIMED if the cell was covered by an earlier claim, the
            owning MergedRegion on first sight of a merged cell, else None.
        """
        if (row, col) in self._consumed:
            return self.ALREADY_CLAIMED
        region = is_in_region(row, col, self.regions)
        if region is None:
            self._consumed.add((row, col))
            return None
        # Tracked per region, not per covered cell
        if region.key in self._claimed_regions:
            return self.ALREADY_CLAIMED
        self._claimed_regions.add(region.key)
        return region
