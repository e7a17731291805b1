"""Relationship (.rels) parsing and target resolution."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Dict, Optional

from lxml import etree

logger = logging.getLogger(__name__)

RELS_NS = {"r": "http://schemas.openxmlformats.org/package/2006/relationships"}

REL_TYPE_DRAWING = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/drawing"
REL_TYPE_IMAGE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"
REL_TYPE_WORKSHEET = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/worksheet"
REL_TYPE_THEME = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/theme"
REL_TYPE_STYLES = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/styles"


@dataclass(frozen=True)
class Relationship:
    id: str
    type: str
    target: str
    target_mode: str = "Internal"
    resolved_path: Optional[str] = None

    @property
    def type_name(self) -> str:
        """Last segment of the relationship type URI ('drawing', 'image', ...)."""
        return self.type.rsplit("/", 1)[-1]

    @property
    def is_external(self) -> bool:
        return self.target_mode == "External"


def rels_path_for(part_path: str) -> str:
    """Path of the .rels part describing ``part_path``."""
    folder, name = posixpath.split(part_path.lstrip("/"))
    return posixpath.join(folder, "_rels", f"{name}.rels")


def resolve_target(source_part: str, target: str) -> str:
    """Resolve a relationship target to a package part path.

    Relative targets resolve against the source part's folder; targets with a
    leading '/' are relative to the package root.
    """
    if target.startswith("/"):
        return posixpath.normpath(target.lstrip("/"))
    folder = posixpath.dirname(source_part.lstrip("/"))
    resolved = posixpath.normpath(posixpath.join(folder, target))
    return resolved.lstrip("/")


def parse_relationships(rels_xml: bytes, source_part: str = "") -> Dict[str, Relationship]:
    """Parse a .rels part.

    Args:
        rels_xml: Raw bytes of the .rels part.
        source_part: Path of the part the relationships belong to.

    Returns:
        Dict mapping relationship Id to Relationship. Malformed XML yields an
        empty mapping.
    """
    rels_map: Dict[str, Relationship] = {}
    try:
        tree = etree.fromstring(rels_xml)
    except etree.XMLSyntaxError as e:
        logger.error(f"Malformed relationships for {source_part or '<unknown>'}: {e}")
        return rels_map

    for rel in tree.findall(".//r:Relationship", RELS_NS):
        rel_id = rel.get("Id")
        target = rel.get("Target")
        if not rel_id or not target:
            continue
        mode = rel.get("TargetMode", "Internal")
        resolved = None if mode == "External" else resolve_target(source_part, target)
        rels_map[rel_id] = Relationship(
            id=rel_id,
            type=rel.get("Type", ""),
            target=target,
            target_mode=mode,
            resolved_path=resolved,
        )

    return rels_map
