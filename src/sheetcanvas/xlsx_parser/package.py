"""Spreadsheet package access - zip parts, relationships and the workbook model."""

from __future__ import annotations

import io
import logging
import posixpath
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from lxml import etree

from sheetcanvas.exceptions import PackageError, SheetNotFoundError
from sheetcanvas.xlsx_parser.relationships import (
    REL_TYPE_DRAWING,
    REL_TYPE_STYLES,
    REL_TYPE_THEME,
    Relationship,
    parse_relationships,
    rels_path_for,
)
from sheetcanvas.xlsx_parser.theme import parse_theme_colors

logger = logging.getLogger(__name__)

NAMESPACES = {
    "main": "http://schemas.openxmlformats.org/spreadsheetml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "ct": "http://schemas.openxmlformats.org/package/2006/content-types",
}

OFFICE_DOCUMENT_SUFFIX = "/officeDocument"
DEFAULT_WORKBOOK_PART = "xl/workbook.xml"
DEFAULT_THEME_PART = "xl/theme/theme1.xml"
DEFAULT_STYLES_PART = "xl/styles.xml"

BORDER_SIDES = ("top", "right", "bottom", "left")

# Stand-in for drawing parts when openpyxl loads the cell model
EMPTY_DRAWING = (
    b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    b'<xdr:wsDr xmlns:xdr="http://schemas.openxmlformats.org/drawingml/2006/spreadsheetDrawing" '
    b'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main"/>'
)

_EXTENSION_CONTENT_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "emf": "image/x-emf",
    "wmf": "image/x-wmf",
    "svg": "image/svg+xml",
}


class SpreadsheetPackage:
    """Read-only view of an .xlsx package."""

    def __init__(self, data: bytes, source: str = "<memory>"):
        self.source = source
        self._data = data
        try:
            self._zf = zipfile.ZipFile(io.BytesIO(data), "r")
        except zipfile.BadZipFile as e:
            raise PackageError(f"Not a spreadsheet package: {source} ({e})") from e
        self._names = set(self._zf.namelist())
        self._rels_cache: Dict[str, Dict[str, Relationship]] = {}
        self._workbook = None

        self.workbook_part = self._find_workbook_part()
        if self.workbook_part not in self._names:
            raise PackageError(f"Missing workbook part in {source}")

    @classmethod
    def open(cls, source: Union[str, Path, bytes]) -> "SpreadsheetPackage":
        """Open a package from a path or raw bytes.

        Raises:
            PackageError: If the file cannot be read or is not an xlsx package.
        """
        if isinstance(source, (bytes, bytearray)):
            return cls(bytes(source))
        path = Path(source)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise PackageError(f"Cannot read {path}: {e}") from e
        return cls(data, source=str(path))

    def close(self) -> None:
        self._zf.close()

    def __enter__(self) -> "SpreadsheetPackage":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # Parts

    def has(self, part: str) -> bool:
        return part.lstrip("/") in self._names

    def read(self, part: str) -> Optional[bytes]:
        """Raw bytes of a part, or None when it does not exist."""
        part = part.lstrip("/")
        if part not in self._names:
            return None
        return self._zf.read(part)

    def part_names(self) -> List[str]:
        return sorted(self._names)

    def relationships(self, part: str) -> Dict[str, Relationship]:
        """Relationships of a part (empty when it has no .rels)."""
        part = part.lstrip("/")
        if part not in self._rels_cache:
            rels_xml = self.read(rels_path_for(part))
            self._rels_cache[part] = parse_relationships(rels_xml, part) if rels_xml else {}
        return self._rels_cache[part]

    def content_type(self, part: str) -> str:
        part = part.lstrip("/")
        types_xml = self.read("[Content_Types].xml")
        ext = posixpath.splitext(part)[1].lstrip(".").lower()
        if types_xml:
            try:
                tree = etree.fromstring(types_xml)
            except etree.XMLSyntaxError:
                tree = None
            if tree is not None:
                for override in tree.findall("ct:Override", NAMESPACES):
                    if override.get("PartName", "").lstrip("/") == part:
                        return override.get("ContentType", "")
                for default in tree.findall("ct:Default", NAMESPACES):
                    if default.get("Extension", "").lower() == ext:
                        return default.get("ContentType", "")
        return _EXTENSION_CONTENT_TYPES.get(ext, "application/octet-stream")

    # Workbook structure

    def _find_workbook_part(self) -> str:
        for rel in self.relationships("").values():
            if rel.type.endswith(OFFICE_DOCUMENT_SUFFIX) and rel.resolved_path:
                return rel.resolved_path
        return DEFAULT_WORKBOOK_PART

    def sheets(self) -> Dict[str, str]:
        """Map sheet names (in workbook order) to worksheet part paths."""
        result: Dict[str, str] = {}
        workbook_xml = self.read(self.workbook_part)
        try:
            tree = etree.fromstring(workbook_xml)
        except etree.XMLSyntaxError as e:
            raise PackageError(f"Malformed workbook part in {self.source}: {e}") from e

        rels = self.relationships(self.workbook_part)
        for sheet in tree.findall(".//main:sheets/main:sheet", NAMESPACES):
            name = sheet.get("name")
            rel_id = sheet.get(f"{{{NAMESPACES['r']}}}id")
            rel = rels.get(rel_id) if rel_id else None
            if not name or rel is None or not rel.resolved_path:
                logger.warning(f"Sheet entry without a resolvable part: {name!r}")
                continue
            result[name] = rel.resolved_path
        return result

    def sheet_names(self) -> List[str]:
        return list(self.sheets())

    def sheet_part(self, sheet_name: str) -> str:
        sheets = self.sheets()
        if sheet_name not in sheets:
            raise SheetNotFoundError(sheet_name)
        return sheets[sheet_name]

    def drawing_part_for(self, sheet_part: str) -> Optional[str]:
        """Drawing part referenced by a worksheet, if any."""
        for rel in self.relationships(sheet_part).values():
            if rel.type == REL_TYPE_DRAWING or rel.type_name == "drawing":
                if rel.resolved_path and self.has(rel.resolved_path):
                    return rel.resolved_path
                logger.warning(f"Drawing target missing for {sheet_part}: {rel.target}")
        return None

    def theme_colors(self) -> Dict[str, str]:
        theme_part = DEFAULT_THEME_PART
        for rel in self.relationships(self.workbook_part).values():
            if rel.type == REL_TYPE_THEME and rel.resolved_path:
                theme_part = rel.resolved_path
                break
        return parse_theme_colors(self.read(theme_part))

    def workbook(self):
        """The openpyxl workbook model (cached values, rich text kept).

        Drawing parts are blanked before loading: anchors are read by
        parse_drawing, and a broken drawing must not take the cells down.
        """
        if self._workbook is None:
            from openpyxl import load_workbook

            try:
                self._workbook = load_workbook(
                    io.BytesIO(self._cell_model_bytes()), data_only=True, rich_text=True
                )
            except Exception as e:
                raise PackageError(f"Cannot load workbook {self.source}: {e}") from e
        return self._workbook

    def _drawing_parts(self) -> List[str]:
        return sorted(
            name for name in self._names
            if name.startswith("xl/drawings/") and "/_rels/" not in name and name.endswith(".xml")
        )

    def _cell_model_bytes(self) -> bytes:
        drawings = set(self._drawing_parts())
        if not drawings:
            return self._data
        out = io.BytesIO()
        with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as dst:
            for info in self._zf.infolist():
                if info.filename in drawings:
                    dst.writestr(info.filename, EMPTY_DRAWING)
                else:
                    dst.writestr(info, self._zf.read(info.filename))
        return out.getvalue()

    def _styles_part(self) -> str:
        for rel in self.relationships(self.workbook_part).values():
            if rel.type == REL_TYPE_STYLES and rel.resolved_path:
                return rel.resolved_path
        return DEFAULT_STYLES_PART

    def _border_table(self) -> Tuple[list, List[int]]:
        """(borders, border id per cellXfs entry) from the styles part."""
        from openpyxl.styles.borders import Border

        styles_xml = self.read(self._styles_part())
        if not styles_xml:
            return [], []
        try:
            tree = etree.fromstring(styles_xml)
        except etree.XMLSyntaxError as e:
            logger.warning(f"Malformed styles part in {self.source}: {e}")
            return [], []
        borders = [Border.from_tree(node) for node in tree.findall("main:borders/main:border", NAMESPACES)]
        border_ids = []
        for xf in tree.findall("main:cellXfs/main:xf", NAMESPACES):
            try:
                border_ids.append(int(xf.get("borderId", "0")))
            except ValueError:
                border_ids.append(0)
        return borders, border_ids

    def cell_borders(self, sheet_part: str) -> Dict[Tuple[int, int], object]:
        """Borders of every bordered cell as stored in the sheet XML.

        openpyxl rebuilds the non-anchor cells of a merged range on load and
        drops their borders; this reads them straight from the part.

        Returns:
            Dict mapping 1-based (row, col) to an openpyxl Border.
        """
        from openpyxl.utils.cell import coordinate_to_tuple
        from openpyxl.utils.exceptions import CellCoordinatesException

        sheet_xml = self.read(sheet_part)
        borders, border_ids = self._border_table()
        result: Dict[Tuple[int, int], object] = {}
        if not sheet_xml or not borders:
            return result

        cell_tag = f"{{{NAMESPACES['main']}}}c"
        try:
            for _, cell in etree.iterparse(io.BytesIO(sheet_xml), events=("end",), tag=cell_tag):
                ref = cell.get("r")
                style = cell.get("s")
                cell.clear()
                if not ref or not style:
                    continue
                try:
                    border = borders[border_ids[int(style)]]
                    position = coordinate_to_tuple(ref)
                except (ValueError, IndexError, CellCoordinatesException):
                    continue
                if any(getattr(getattr(border, side, None), "style", None) for side in BORDER_SIDES):
                    result[position] = border
        except etree.XMLSyntaxError as e:
            logger.warning(f"Cannot read cell borders from {sheet_part}: {e}")
        return result

    # Media

    def extract_media(self, output_dir: Path) -> Dict[str, Path]:
        """Extract all media parts (xl/media/*) to ``output_dir/media``.

        Args:
            output_dir: Directory to extract media to.

        Returns:
            Dict mapping part paths to written files.
        """
        media_map: Dict[str, Path] = {}
        media_dir = Path(output_dir) / "media"

        for name in sorted(self._names):
            if name.startswith("xl/media/") and not name.endswith("/"):
                media_dir.mkdir(parents=True, exist_ok=True)
                output_path = media_dir / Path(name).name
                with self._zf.open(name) as src:
                    output_path.write_bytes(src.read())
                media_map[name] = output_path

        return media_map
