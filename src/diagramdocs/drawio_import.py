"""
Import draw.io / diagrams.net (mxGraph) XML into diagramdocs shapes.

Accepts a bare ``<mxGraphModel>`` (optionally percent-encoded, as draw.io
puts it on the clipboard) or an uncompressed ``<mxfile>`` wrapper. Cell
geometry is parent-relative in mxGraph; positions are resolved to absolute
page coordinates by walking the parent chain.
"""

from __future__ import annotations

import html as _html
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import unquote

from diagramdocs.models import (
    Connector,
    ConnectorKind,
    Shape,
    new_connector_id,
    new_shape_id,
)
from diagramdocs.styles import is_non_diagram_style, shape_kind_from_style

logger = logging.getLogger("diagramdocs.drawio_import")

MODEL_TAG = "mxGraphModel"
CELL_TAG = "mxCell"
# Parent ids of the structural root / default layer cells
TOP_LEVEL_PARENTS = frozenset({"0", "1", ""})
MIN_SHAPE_SIZE = 2
_WRAPPER_TAGS = ("object", "UserObject")


# ---------------------------------------------------------------------------
# Raw cell records
# ---------------------------------------------------------------------------

@dataclass
class CellGeometry:
    x: float = 0
    y: float = 0
    width: float = 100
    height: float = 60
    relative: bool = False


@dataclass
class DrawioCell:
    """One mxCell as read from the XML, before any filtering."""
    id: str
    parent: str = "0"
    vertex: bool = False
    edge: bool = False
    style: str = ""
    value: str = ""
    geometry: Optional[CellGeometry] = None
    source: Optional[str] = None
    target: Optional[str] = None
    source_point: Optional[tuple[float, float]] = None
    target_point: Optional[tuple[float, float]] = None


@dataclass
class ImportResult:
    shapes: list[Shape] = field(default_factory=list)
    connectors: list[Connector] = field(default_factory=list)
    # draw.io cell id -> freshly generated shape id
    id_map: dict[str, str] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.shapes)


# ---------------------------------------------------------------------------
# Detection / decoding
# ---------------------------------------------------------------------------

def is_drawio_content(text: str) -> bool:
    """Check if a string looks like draw.io / mxGraph content."""
    t = (text or "").strip()
    if t.startswith("<" + MODEL_TAG) or t.startswith("%3C" + MODEL_TAG):
        return True
    return MODEL_TAG in t and CELL_TAG in t


def _decode_input(text: str) -> str:
    xml = (text or "").strip()
    if "%3C" in xml or "%3E" in xml:
        xml = unquote(xml)
    return xml


def html_to_text(value: str) -> str:
    """Reduce a draw.io rich-text label to plain text."""
    if not value:
        return ""
    text = re.sub(r"<br\s*/?>", "\n", value, flags=re.IGNORECASE)
    text = re.sub(r"</(?:div|p|li)\s*>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</?[A-Za-z][^>]*>", "", text)
    text = _html.unescape(text).replace("\xa0", " ")
    return text.strip()


def _num(raw: Optional[str], default: float) -> float:
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# XML -> DrawioCell
# ---------------------------------------------------------------------------

def _parse_point(geom_el: ET.Element, role: str) -> Optional[tuple[float, float]]:
    pt = geom_el.find(f"mxPoint[@as='{role}']")
    if pt is None:
        return None
    return _num(pt.get("x"), 0), _num(pt.get("y"), 0)


def _parse_cell(cell_el: ET.Element, wrapper: Optional[ET.Element] = None) -> DrawioCell:
    """Parse an mxCell, taking id / label from an <object> wrapper if any."""
    if wrapper is not None:
        cid = wrapper.get("id", "") or cell_el.get("id", "")
        value = wrapper.get("label", "") or cell_el.get("value", "")
    else:
        cid = cell_el.get("id", "")
        value = cell_el.get("value", "")
    cell = DrawioCell(
        id=cid,
        parent=cell_el.get("parent", "0"),
        vertex=cell_el.get("vertex") == "1",
        edge=cell_el.get("edge") == "1",
        style=cell_el.get("style", ""),
        value=value,
        source=cell_el.get("source") or None,
        target=cell_el.get("target") or None,
    )
    geom_el = cell_el.find("mxGeometry")
    if geom_el is not None:
        cell.geometry = CellGeometry(
            x=_num(geom_el.get("x"), 0),
            y=_num(geom_el.get("y"), 0),
            width=_num(geom_el.get("width"), 100),
            height=_num(geom_el.get("height"), 60),
            relative=geom_el.get("relative") == "1",
        )
        cell.source_point = _parse_point(geom_el, "sourcePoint")
        cell.target_point = _parse_point(geom_el, "targetPoint")
    return cell


def _model_element(xml: str) -> Optional[ET.Element]:
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as exc:
        logger.warning("Could not parse draw.io XML: %s", exc)
        return None
    if root.tag == "mxfile":
        model = root.find("diagram/" + MODEL_TAG)
        if model is None:
            logger.warning("mxfile without an uncompressed %s", MODEL_TAG)
        return model
    if root.tag != MODEL_TAG:
        logger.debug("Unexpected root element <%s>", root.tag)
        return None
    return root


def parse_cells(model: ET.Element) -> list[DrawioCell]:
    """Read every mxCell under *model*, unwrapping <object>/<UserObject>."""
    cells: list[DrawioCell] = []
    parent_by_node = {child: parent for parent in model.iter() for child in parent}
    for el in model.iter(CELL_TAG):
        wrapper = parent_by_node.get(el)
        if wrapper is not None and wrapper.tag not in _WRAPPER_TAGS:
            wrapper = None
        cells.append(_parse_cell(el, wrapper))
    return cells


# ---------------------------------------------------------------------------
# Coordinate resolution
# ---------------------------------------------------------------------------

class _CellIndex:
    """id -> cell lookup with cycle-safe absolute position resolution."""

    def __init__(self, cells: list[DrawioCell]) -> None:
        self.by_id: dict[str, DrawioCell] = {}
        for c in cells:
            self.by_id.setdefault(c.id, c)

    def origin_of(self, parent_id: str) -> Optional[tuple[float, float]]:
        """Absolute origin of the coordinate space defined by *parent_id*.

        Returns None when the parent chain loops back on itself.
        """
        ox, oy = 0.0, 0.0
        current_id = parent_id
        visited: set[str] = set()
        while current_id not in TOP_LEVEL_PARENTS:
            if current_id in visited:
                logger.warning("Cyclic parent chain through cell '%s'", current_id)
                return None
            visited.add(current_id)
            cell = self.by_id.get(current_id)
            if cell is None:
                break
            if cell.geometry is not None and not cell.geometry.relative:
                ox += cell.geometry.x
                oy += cell.geometry.y
            current_id = cell.parent
        return ox, oy

    def absolute_position(self, cell: DrawioCell) -> Optional[tuple[float, float]]:
        if cell.geometry is None:
            return None
        if cell.parent in TOP_LEVEL_PARENTS:
            return cell.geometry.x, cell.geometry.y
        if cell.parent == cell.id:
            logger.warning("Cell '%s' is its own parent", cell.id)
            return None
        origin = self.origin_of(cell.parent)
        if origin is None:
            return None
        return origin[0] + cell.geometry.x, origin[1] + cell.geometry.y

    def absolute_point(
        self, cell: DrawioCell, point: tuple[float, float]
    ) -> Optional[tuple[float, float]]:
        origin = self.origin_of(cell.parent)
        if origin is None:
            return None
        return origin[0] + point[0], origin[1] + point[1]


# ---------------------------------------------------------------------------
# Shape / connector materialization
# ---------------------------------------------------------------------------

def _accept_vertex(cell: DrawioCell, index: _CellIndex) -> bool:
    if not cell.vertex or cell.geometry is None:
        return False
    if is_non_diagram_style(cell.style):
        return False
    # Edge labels: relative geometry, parented to the edge they annotate
    if cell.geometry.relative:
        return False
    parent = index.by_id.get(cell.parent)
    if parent is not None and parent.edge:
        return False
    return cell.geometry.width >= MIN_SHAPE_SIZE and cell.geometry.height >= MIN_SHAPE_SIZE


def shape_at(shapes: list[Shape], x: float, y: float) -> Optional[str]:
    """Id of the first shape containing (x, y), else the nearest by center."""
    for s in shapes:
        if s.bounds.contains_point(x, y):
            return s.id
    best: Optional[tuple[float, str]] = None
    for s in shapes:
        dist = s.bounds.distance_sq_to_center(x, y)
        if best is None or dist < best[0]:
            best = (dist, s.id)
    return best[1] if best else None


def _resolve_endpoint(
    cell_ref: Optional[str],
    point: Optional[tuple[float, float]],
    edge: DrawioCell,
    index: _CellIndex,
    result: ImportResult,
) -> Optional[str]:
    if cell_ref:
        return result.id_map.get(cell_ref)
    if point is None:
        return None
    absolute = index.absolute_point(edge, point)
    if absolute is None:
        return None
    return shape_at(result.shapes, *absolute)


def parse_drawio_xml(text: str) -> ImportResult:
    """Parse draw.io / mxGraph XML into fresh shapes and connectors.

    Malformed input or an unexpected root element yields an empty result.
    """
    result = ImportResult()
    model = _model_element(_decode_input(text))
    if model is None:
        return result

    cells = parse_cells(model)
    index = _CellIndex(cells)

    for cell in cells:
        if not _accept_vertex(cell, index):
            continue
        pos = index.absolute_position(cell)
        if pos is None:
            continue
        new_id = new_shape_id()
        result.id_map[cell.id] = new_id
        result.shapes.append(Shape(
            id=new_id,
            kind=shape_kind_from_style(cell.style),
            x=pos[0],
            y=pos[1],
            width=cell.geometry.width,
            height=cell.geometry.height,
            text=html_to_text(cell.value),
        ))

    for cell in cells:
        if not cell.edge:
            continue
        src = _resolve_endpoint(cell.source, cell.source_point, cell, index, result)
        dst = _resolve_endpoint(cell.target, cell.target_point, cell, index, result)
        if not src or not dst or src == dst:
            logger.debug("Dropping edge '%s' (unresolved or self-loop)", cell.id)
            continue
        result.connectors.append(Connector(
            id=new_connector_id(), source=src, target=dst,
            kind=ConnectorKind.STRAIGHT,
        ))

    logger.debug(
        "Imported %d shape(s), %d connector(s) from %d cell(s)",
        len(result.shapes), len(result.connectors), len(cells),
    )
    return result
