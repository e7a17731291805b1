"""Tests for package access, relationships and theme colours."""

import pytest

from sheetcanvas.exceptions import PackageError, SheetNotFoundError
from sheetcanvas.xlsx_parser import SpreadsheetPackage
from sheetcanvas.xlsx_parser.relationships import (
    parse_relationships,
    rels_path_for,
    resolve_target,
)
from sheetcanvas.xlsx_parser.theme import (
    DEFAULT_THEME_COLORS,
    parse_theme_colors,
    theme_color,
    theme_color_by_index,
)


class TestRelationships:
    """Parsing .rels parts."""

    def test_parse_and_resolve(self):
        rels_xml = b"""<?xml version="1.0"?>
        <Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">
            <Relationship Id="rId1"
                Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"
                Target="../media/image1.png"/>
            <Relationship Id="rId2"
                Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/hyperlink"
                Target="https://example.com" TargetMode="External"/>
        </Relationships>"""
        rels = parse_relationships(rels_xml, "xl/drawings/drawing1.xml")
        assert rels["rId1"].resolved_path == "xl/media/image1.png"
        assert rels["rId1"].type_name == "image"
        assert rels["rId2"].is_external
        assert rels["rId2"].resolved_path is None

    def test_malformed_rels(self):
        assert parse_relationships(b"<not-xml", "xl/workbook.xml") == {}

    def test_rels_path(self):
        assert rels_path_for("xl/worksheets/sheet1.xml") == "xl/worksheets/_rels/sheet1.xml.rels"
        assert rels_path_for("") == "_rels/.rels"

    def test_absolute_target(self):
        assert resolve_target("xl/drawings/drawing1.xml", "/xl/media/a.png") == "xl/media/a.png"
        assert resolve_target("xl/workbook.xml", "worksheets/sheet2.xml") == "xl/worksheets/sheet2.xml"


class TestTheme:
    """Theme colour scheme parsing."""

    def test_parse_scheme(self):
        theme_xml = b"""<a:theme xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main">
            <a:themeElements><a:clrScheme name="Test">
                <a:dk1><a:sysClr val="windowText" lastClr="111111"/></a:dk1>
                <a:accent1><a:srgbClr val="ff0000"/></a:accent1>
            </a:clrScheme></a:themeElements></a:theme>"""
        colors = parse_theme_colors(theme_xml)
        assert colors["dk1"] == "#111111"
        assert colors["accent1"] == "#FF0000"
        assert colors["accent2"] == DEFAULT_THEME_COLORS["accent2"]

    def test_malformed_theme_uses_defaults(self):
        assert parse_theme_colors(b"<broken") == DEFAULT_THEME_COLORS
        assert parse_theme_colors(None) == DEFAULT_THEME_COLORS

    def test_aliases_and_indexes(self):
        assert theme_color("tx1") == "#000000"
        assert theme_color("bg1") == "#FFFFFF"
        # SpreadsheetML index 0 is lt1, 1 is dk1
        assert theme_color_by_index(0) == "#FFFFFF"
        assert theme_color_by_index(1) == "#000000"
        assert theme_color_by_index(4) == DEFAULT_THEME_COLORS["accent1"]


class TestSpreadsheetPackage:
    """Opening packages and navigating their parts."""

    def test_not_a_zip(self):
        with pytest.raises(PackageError) as exc_info:
            SpreadsheetPackage.open(b"plain text, not a zip")
        assert exc_info.value.code == "package_error"

    def test_missing_file(self, tmp_path):
        with pytest.raises(PackageError):
            SpreadsheetPackage.open(tmp_path / "missing.xlsx")

    def test_zip_without_workbook(self, tmp_path):
        import zipfile

        path = tmp_path / "empty.xlsx"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("hello.txt", "hi")
        with pytest.raises(PackageError):
            SpreadsheetPackage.open(path)

    def test_sheets_in_workbook_order(self, sample_package):
        assert sample_package.sheet_names() == ["Summary", "Other"]

    def test_unknown_sheet(self, sample_package):
        with pytest.raises(SheetNotFoundError) as exc_info:
            sample_package.sheet_part("Nope")
        assert exc_info.value.sheet_name == "Nope"

    def test_drawing_part(self, sample_package):
        summary = sample_package.sheet_part("Summary")
        other = sample_package.sheet_part("Other")
        drawing = sample_package.drawing_part_for(summary)
        assert drawing is not None and drawing.startswith("xl/drawings/")
        assert sample_package.drawing_part_for(other) is None

        rels = sample_package.relationships(drawing)
        assert rels["rId1"].resolved_path == "xl/media/logo.png"

    def test_read_and_content_type(self, sample_package):
        assert sample_package.read("xl/media/logo.png").startswith(b"\x89PNG")
        assert sample_package.read("xl/media/nothing.png") is None
        assert sample_package.content_type("xl/media/logo.png") == "image/png"

    def test_extract_media(self, sample_package, tmp_path):
        media = sample_package.extract_media(tmp_path)
        assert "xl/media/logo.png" in media
        assert (tmp_path / "media" / "logo.png").exists()

    def test_theme_colors(self, sample_package):
        colors = sample_package.theme_colors()
        assert set(DEFAULT_THEME_COLORS) <= set(colors)
