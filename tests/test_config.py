"""Tests for settings loading."""

import pytest

from sheetcanvas.config import Settings, load_settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.default_column_width == 8.43
        assert settings.default_row_height_pt == 15.0
        assert settings.min_columns == 50
        assert settings.min_rows == 100
        assert settings.off_canvas_margin_px == 1000.0
        assert not settings.include_hidden

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("SHEETCANVAS_MIN_ROWS", "10")
        monkeypatch.setenv("SHEETCANVAS_INCLUDE_HIDDEN", "true")
        settings = load_settings()
        assert settings.min_rows == 10
        assert settings.include_hidden


class TestLoadSettings:
    """YAML file plus explicit overrides."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("min_rows: 5\nline_height: 1.2\nlog_level: DEBUG\n", encoding="utf-8")
        settings = load_settings(path)
        assert settings.min_rows == 5
        assert settings.line_height == 1.2
        assert settings.log_level == "DEBUG"

    def test_yaml_beats_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SHEETCANVAS_MIN_ROWS", "10")
        path = tmp_path / "settings.yaml"
        path.write_text("min_rows: 5\n", encoding="utf-8")
        assert load_settings(path).min_rows == 5

    def test_overrides_win(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("min_rows: 5\n", encoding="utf-8")
        assert load_settings(path, min_rows=7).min_rows == 7

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path).min_rows == 100

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_settings(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_settings(tmp_path / "nope.yaml")
