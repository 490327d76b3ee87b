"""
SVG codec for diagramdocs diagrams.

``serialize_svg`` writes shapes and connectors to a self-contained SVG
document. ``parse_svg`` reads shapes back, either from documents written
here (one ``<g id=…>`` per shape) or, as a fallback, from third-party
exports that tag groups with ``data-cell-id`` (draw.io / diagrams.net).

Connectors are written as plain curved paths and are not recovered on
parse; the links sidecar carries them instead.
"""

from __future__ import annotations

import logging
import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional
from xml.sax.saxutils import escape as _sax_escape

from diagramdocs import geometry
from diagramdocs.models import Bounds, Connector, Shape, ShapeKind
from diagramdocs.styles import (
    CONNECTOR_STROKE,
    CONNECTOR_STROKE_WIDTH,
    PALETTES,
    RECT_CORNER_RADIUS,
    TEXT_FILL,
    TEXT_FONT_SIZE,
)

logger = logging.getLogger("diagramdocs.svg_codec")

SVG_NS = "http://www.w3.org/2000/svg"

VIEW_MARGIN = 20
MIN_VIEW_WIDTH = 800
MIN_VIEW_HEIGHT = 600
LINE_HEIGHT_EM = 1.2
EMPTY_TEXT_PLACEHOLDER = "..."
CONNECTOR_ID_PREFIX = "conn-"
# Structural root cells of draw.io exports, never real shapes
FALLBACK_SKIP_IDS = frozenset({"0", "1"})


@dataclass
class ParsedSvg:
    """Result of parsing an SVG document."""
    shapes: list[Shape] = field(default_factory=list)
    connectors: list[Connector] = field(default_factory=list)
    element_ids: set[str] = field(default_factory=set)
    used_fallback: bool = False


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def _fmt(value: float) -> str:
    if math.isclose(value, round(value), abs_tol=1e-9):
        return str(int(round(value)))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def escape_xml(text: str) -> str:
    """Escape the five reserved XML characters."""
    return _sax_escape(text, {'"': "&quot;", "'": "&apos;"})


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------

def view_window(shapes: Iterable[Shape]) -> Bounds:
    """Viewport covering the default canvas and every shape, plus margin."""
    xs: list[float] = []
    ys: list[float] = []
    for s in shapes:
        xs.extend((s.x, s.x + s.width))
        ys.extend((s.y, s.y + s.height))
    min_x = min([0.0, *xs]) - VIEW_MARGIN
    min_y = min([0.0, *ys]) - VIEW_MARGIN
    max_x = max([float(MIN_VIEW_WIDTH), *xs]) + VIEW_MARGIN
    max_y = max([float(MIN_VIEW_HEIGHT), *ys]) + VIEW_MARGIN
    return Bounds(min_x, min_y, max_x - min_x, max_y - min_y)


def _text_block(text: str, cx: float, cy: float) -> str:
    lines = re.split(r"\r?\n", text or "")
    if not any(line.strip() for line in lines):
        lines = [EMPTY_TEXT_PLACEHOLDER]
    first_dy = -(len(lines) - 1) * 0.5 * LINE_HEIGHT_EM
    spans = "".join(
        f'<tspan x="{_fmt(cx)}" dy="{_fmt(first_dy if i == 0 else LINE_HEIGHT_EM)}em">'
        f"{escape_xml(line)}</tspan>"
        for i, line in enumerate(lines)
    )
    return (
        f'<text x="{_fmt(cx)}" y="{_fmt(cy)}" text-anchor="middle" '
        f'font-size="{TEXT_FONT_SIZE}" fill="{TEXT_FILL}">{spans}</text>'
    )


def _rect_primitive(x: float, y: float, w: float, h: float) -> str:
    pal = PALETTES[ShapeKind.RECT]
    return (
        f'<rect x="{_fmt(x)}" y="{_fmt(y)}" width="{_fmt(w)}" height="{_fmt(h)}" '
        f'fill="{pal.fill}" stroke="{pal.stroke}" stroke-width="{_fmt(pal.stroke_width)}" '
        f'rx="{RECT_CORNER_RADIUS}"/>'
    )


def _ellipse_primitive(x: float, y: float, w: float, h: float) -> str:
    pal = PALETTES[ShapeKind.ELLIPSE]
    return (
        f'<ellipse cx="{_fmt(x + w / 2)}" cy="{_fmt(y + h / 2)}" '
        f'rx="{_fmt(w / 2)}" ry="{_fmt(h / 2)}" '
        f'fill="{pal.fill}" stroke="{pal.stroke}" stroke-width="{_fmt(pal.stroke_width)}"/>'
    )


def _diamond_primitive(x: float, y: float, w: float, h: float) -> str:
    pal = PALETTES[ShapeKind.DIAMOND]
    cx, cy = x + w / 2, y + h / 2
    pts = (
        f"{_fmt(cx)},{_fmt(y)} {_fmt(x + w)},{_fmt(cy)} "
        f"{_fmt(cx)},{_fmt(y + h)} {_fmt(x)},{_fmt(cy)}"
    )
    return (
        f'<polygon points="{pts}" fill="{pal.fill}" stroke="{pal.stroke}" '
        f'stroke-width="{_fmt(pal.stroke_width)}"/>'
    )


_PRIMITIVE_WRITERS: dict[ShapeKind, Callable[[float, float, float, float], str]] = {
    ShapeKind.RECT: _rect_primitive,
    ShapeKind.ELLIPSE: _ellipse_primitive,
    ShapeKind.DIAMOND: _diamond_primitive,
}


def _shape_element(shape: Shape, window: Bounds) -> str:
    x = shape.x - window.x
    y = shape.y - window.y
    primitive = _PRIMITIVE_WRITERS[shape.kind](x, y, shape.width, shape.height)
    text = _text_block(shape.text, x + shape.width / 2, y + shape.height / 2)
    return f'<g id="{escape_xml(shape.id)}">{primitive}{text}</g>'


def _connector_element(
    conn: Connector, by_id: dict[str, Shape], window: Bounds
) -> Optional[str]:
    src = by_id.get(conn.source)
    dst = by_id.get(conn.target)
    if src is None or dst is None:
        return None
    # source bottom-center -> target top-center, vertical S-curve
    sfx = src.x + src.width / 2 - window.x
    sfy = src.y + src.height - window.y
    stx = dst.x + dst.width / 2 - window.x
    sty = dst.y - window.y
    my = (sfy + sty) / 2
    d = (
        f"M {_fmt(sfx)} {_fmt(sfy)} C {_fmt(sfx)} {_fmt(my)}, "
        f"{_fmt(stx)} {_fmt(my)}, {_fmt(stx)} {_fmt(sty)}"
    )
    return (
        f'<path d="{d}" fill="none" stroke="{CONNECTOR_STROKE}" '
        f'stroke-width="{CONNECTOR_STROKE_WIDTH}" marker-end="url(#arrow)"/>'
    )


def serialize_svg(shapes: list[Shape], connectors: list[Connector]) -> str:
    """Render *shapes* and *connectors* to an SVG document string."""
    window = view_window(shapes)
    by_id = {s.id: s for s in shapes}
    conn_els = [
        el for el in (_connector_element(c, by_id, window) for c in connectors)
        if el is not None
    ]
    shape_els = [_shape_element(s, window) for s in shapes]
    w, h = _fmt(window.width), _fmt(window.height)
    body = "\n    ".join(conn_els + shape_els)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<svg xmlns="{SVG_NS}" viewBox="{_fmt(window.x)} {_fmt(window.y)} {w} {h}" '
        f'width="{w}" height="{h}">\n'
        '  <defs><marker id="arrow" markerWidth="10" markerHeight="10" refX="9" '
        f'refY="3" orient="auto"><polygon points="0 0, 10 3, 0 6" fill="{CONNECTOR_STROKE}"/>'
        "</marker></defs>\n"
        f'  <g transform="translate({_fmt(window.x)}, {_fmt(window.y)})">\n'
        f"    {body}\n"
        "  </g>\n"
        "</svg>\n"
    )


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------

def _local_name(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _children(el: ET.Element, name: str) -> list[ET.Element]:
    return [c for c in el if _local_name(c.tag) == name]


def _find_first(el: ET.Element, *names: str) -> Optional[ET.Element]:
    """First descendant (document order) whose local name is in *names*."""
    for node in el.iter():
        if node is not el and _local_name(node.tag) in names:
            return node
    return None


def _shape_text(group: ET.Element) -> str:
    text_el = _find_first(group, "text")
    if text_el is None:
        return ""
    spans = [t for t in text_el.iter() if _local_name(t.tag) == "tspan"]
    if spans:
        return "\n".join("".join(t.itertext()) for t in spans)
    return "".join(text_el.itertext())


def _primitive_shape(
    group: ET.Element,
    parent_by_node: dict[ET.Element, ET.Element],
) -> Optional[tuple[ShapeKind, Bounds]]:
    rect = _find_first(group, "rect")
    ellipse = _find_first(group, "ellipse")
    polygon = _find_first(group, "polygon")
    if rect is not None:
        kind = ShapeKind.RECT
        el = rect
        box = Bounds(
            geometry.number_attr(rect, "x"),
            geometry.number_attr(rect, "y"),
            geometry.number_attr(rect, "width", 100),
            geometry.number_attr(rect, "height", 60),
        )
    elif ellipse is not None:
        kind = ShapeKind.ELLIPSE
        el = ellipse
        cx = geometry.number_attr(ellipse, "cx")
        cy = geometry.number_attr(ellipse, "cy")
        rx = geometry.number_attr(ellipse, "rx", 50)
        ry = geometry.number_attr(ellipse, "ry", 30)
        box = Bounds(cx - rx, cy - ry, rx * 2, ry * 2)
    elif polygon is not None:
        pts = geometry.polygon_points(polygon)
        if len(pts) < 4:
            return None
        kind = ShapeKind.DIAMOND
        el = polygon
        box = Bounds.from_points(pts[:4])
    else:
        return None
    m = geometry.cumulative_transform(el, parent_by_node)
    if m != geometry.IDENTITY:
        box = geometry.transform_bounds(m, box)
    return kind, box


def _drawing_root(svg: ET.Element) -> ET.Element:
    groups = _children(svg, "g")
    return groups[0] if groups else svg


def _collect_ids(svg: ET.Element) -> set[str]:
    ids: set[str] = set()
    for node in svg.iter():
        for attr in ("id", "data-cell-id"):
            val = node.get(attr)
            if val:
                ids.add(val)
    return ids


def _primitive_box(
    node: ET.Element, group: ET.Element, parent_by_node: dict[ET.Element, ET.Element]
) -> Optional[Bounds]:
    name = _local_name(node.tag)
    if name == "rect":
        box = geometry.rect_bounds(node)
    elif name in ("ellipse", "circle"):
        box = geometry.ellipse_bounds(node)
    elif name in ("polygon", "polyline"):
        box = geometry.polygon_bounds(node)
    else:
        return None
    if box is None:
        return None
    m = geometry.relative_transform(node, group, parent_by_node)
    return geometry.transform_bounds(m, box)


def _union(boxes: list[Bounds]) -> Bounds:
    pts: list[tuple[float, float]] = []
    for b in boxes:
        pts.extend(((b.x, b.y), (b.right, b.bottom)))
    return Bounds.from_points(pts)


def _parse_fallback(
    svg: ET.Element, parent_by_node: dict[ET.Element, ET.Element]
) -> list[Shape]:
    """Recover shapes from third-party exports tagged with ``data-cell-id``."""
    out: list[Shape] = []
    for group in svg.iter():
        if _local_name(group.tag) != "g":
            continue
        cell_id = group.get("data-cell-id")
        if not cell_id or cell_id in FALLBACK_SKIP_IDS:
            continue
        names = {_local_name(n.tag) for n in group.iter() if n is not group}
        if not names & {"rect", "ellipse", "polygon"}:
            continue
        if "ellipse" in names:
            kind = ShapeKind.ELLIPSE
        elif "polygon" in names:
            kind = ShapeKind.DIAMOND
        else:
            kind = ShapeKind.RECT
        boxes = [
            b for b in (
                _primitive_box(n, group, parent_by_node)
                for n in group.iter() if n is not group
            )
            if b is not None
        ]
        if not boxes:
            continue
        local = _union(boxes)
        box = geometry.transform_bounds(
            geometry.cumulative_transform(group, parent_by_node), local
        )
        if box.width <= 0 or box.height <= 0:
            continue
        out.append(Shape(
            id=cell_id, kind=kind,
            x=box.x, y=box.y, width=box.width, height=box.height,
            text="",
        ))
    return out


def parse_svg(content: str) -> ParsedSvg:
    """Parse an SVG document into shapes.

    Never raises for malformed input; an unreadable document yields an
    empty result.
    """
    result = ParsedSvg()
    try:
        svg = ET.fromstring(content)
    except ET.ParseError as exc:
        logger.warning("Could not parse SVG: %s", exc)
        return result
    if _local_name(svg.tag) != "svg":
        logger.warning("Not an SVG document (root <%s>)", _local_name(svg.tag))
        return result

    parent_by_node = {child: parent for parent in svg.iter() for child in parent}
    result.element_ids = _collect_ids(svg)

    root = _drawing_root(svg)
    for group in _children(root, "g"):
        sid = group.get("id")
        if not sid or sid.startswith(CONNECTOR_ID_PREFIX):
            continue
        found = _primitive_shape(group, parent_by_node)
        if found is None:
            continue
        kind, box = found
        if box.width <= 0 or box.height <= 0:
            continue
        result.shapes.append(Shape(
            id=sid, kind=kind,
            x=box.x, y=box.y, width=box.width, height=box.height,
            text=_shape_text(group),
        ))

    arrow_count = sum(
        1 for n in root.iter()
        if _local_name(n.tag) == "path" and n.get("marker-end")
    )
    if arrow_count:
        logger.debug("Skipping %d arrow path(s); connectors come from the sidecar", arrow_count)

    if not result.shapes:
        result.shapes = _parse_fallback(svg, parent_by_node)
        result.used_fallback = bool(result.shapes)
    return result
