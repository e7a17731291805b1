"""Runtime settings for the layout reconstruction engine."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    log_level: str = "INFO"

    # Geometry
    char_pixel_width: float = 7.0
    column_width_padding: float = 0.12
    default_column_width: float = 8.43  # characters
    default_row_height_pt: float = 15.0
    min_columns: int = 50
    min_rows: int = 100

    # Anchor filtering
    include_hidden: bool = False
    min_pixel_size: float = 1.0
    clip_to_sheet_bounds: bool = True
    off_canvas_margin_px: float = 1000.0

    # Text fitting
    base_font_pt: float = 11.0
    min_font_pt: int = 8
    line_height: float = 1.35
    fit_tolerance_px: float = 2.0
    text_padding_px: float = 4.0
    font_path: Optional[str] = None

    # Palette mapping
    min_saturation: float = 0.18
    lightness_as_white: float = 0.92
    lightness_as_black: float = 0.12
    force_very_light_to_grey: bool = True

    # Placement
    skip_white_backgrounds: bool = True
    picture_min_padding_px: float = 2.0
    snap_textboxes_to_frames: bool = False
    frame_padding_px: float = 4.0
    frame_min_size_px: float = 20.0

    model_config = SettingsConfigDict(env_prefix="SHEETCANVAS_", env_file=".env", extra="ignore")


def load_settings(yaml_path: Optional[Union[str, Path]] = None, **overrides: Any) -> Settings:
    """Build settings from the environment, an optional YAML file and overrides.

    Args:
        yaml_path: YAML mapping of setting names to values.
        **overrides: Explicit values that win over everything else.

    Returns:
        Settings instance.
    """
    values: dict = {}
    if yaml_path:
        path = Path(yaml_path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file must contain a mapping: {path}")
        values.update(data)
    values.update(overrides)
    return Settings(**values)
