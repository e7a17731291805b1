"""Picture decoding helpers."""

from __future__ import annotations

import io
import logging
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


def probe_image_size(data: Optional[bytes], name: str = "") -> Optional[Tuple[int, int]]:
    """Natural pixel size of an encoded picture.

    Args:
        data: Encoded picture bytes.
        name: Part name, used for logging only.

    Returns:
        (width, height), or None when the data cannot be decoded.
    """
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning(f"Cannot decode picture {name or '<bytes>'}: {e}")
        return None
    if width <= 0 or height <= 0:
        return None
    return int(width), int(height)
