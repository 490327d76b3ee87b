"""
Minimal SVG affine-transform accumulator.

Used by the SVG fallback parser to place shapes from third-party exports
without a layout engine: ``transform`` attributes along the ancestor chain
are composed into one matrix and primitive bounding boxes are mapped
through it.

Matrices are ``(a, b, c, d, e, f)`` tuples as in the SVG ``matrix()``
notation.
"""

from __future__ import annotations

import math
import re
import xml.etree.ElementTree as ET
from typing import Optional

from diagramdocs.models import Bounds

Affine = tuple[float, float, float, float, float, float]

IDENTITY: Affine = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)

_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def multiply(m1: Affine, m2: Affine) -> Affine:
    """Compose ``m1 · m2`` (m2 is applied first)."""
    a1, b1, c1, d1, e1, f1 = m1
    a2, b2, c2, d2, e2, f2 = m2
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def apply(m: Affine, x: float, y: float) -> tuple[float, float]:
    a, b, c, d, e, f = m
    return (a * x + c * y + e, b * x + d * y + f)


def parse_numbers(text: str) -> list[float]:
    return [float(n) for n in _NUMBER_RE.findall(text or "")]


def parse_transform(transform: Optional[str]) -> Affine:
    """Parse an SVG ``transform`` attribute into a single matrix.

    Unknown or malformed functions are skipped.
    """
    m = IDENTITY
    if not transform:
        return m
    for fn, arg_text in re.findall(r"([a-zA-Z]+)\s*\(([^)]*)\)", transform):
        values = parse_numbers(arg_text)
        name = fn.lower()
        if name == "matrix" and len(values) == 6:
            t: Affine = (values[0], values[1], values[2], values[3], values[4], values[5])
        elif name == "translate" and values:
            tx = values[0]
            ty = values[1] if len(values) > 1 else 0.0
            t = (1.0, 0.0, 0.0, 1.0, tx, ty)
        elif name == "scale" and values:
            sx = values[0]
            sy = values[1] if len(values) > 1 else sx
            t = (sx, 0.0, 0.0, sy, 0.0, 0.0)
        elif name == "rotate" and values:
            angle = math.radians(values[0])
            cos_v = math.cos(angle)
            sin_v = math.sin(angle)
            rot: Affine = (cos_v, sin_v, -sin_v, cos_v, 0.0, 0.0)
            if len(values) >= 3:
                cx, cy = values[1], values[2]
                t = multiply(
                    multiply((1.0, 0.0, 0.0, 1.0, cx, cy), rot),
                    (1.0, 0.0, 0.0, 1.0, -cx, -cy),
                )
            else:
                t = rot
        elif name == "skewx" and len(values) == 1:
            t = (1.0, 0.0, math.tan(math.radians(values[0])), 1.0, 0.0, 0.0)
        elif name == "skewy" and len(values) == 1:
            t = (1.0, math.tan(math.radians(values[0])), 0.0, 1.0, 0.0, 0.0)
        else:
            continue
        m = multiply(m, t)
    return m


def cumulative_transform(
    node: ET.Element, parent_by_node: dict[ET.Element, ET.Element]
) -> Affine:
    """Compose the transforms of *node* and all of its ancestors."""
    lineage: list[ET.Element] = []
    cursor: Optional[ET.Element] = node
    while cursor is not None:
        lineage.append(cursor)
        cursor = parent_by_node.get(cursor)
    lineage.reverse()

    m = IDENTITY
    for elem in lineage:
        transform = elem.get("transform")
        if transform:
            m = multiply(m, parse_transform(transform))
    return m


def relative_transform(
    node: ET.Element,
    ancestor: ET.Element,
    parent_by_node: dict[ET.Element, ET.Element],
) -> Affine:
    """Compose transforms from just below *ancestor* down to *node*."""
    lineage: list[ET.Element] = []
    cursor: Optional[ET.Element] = node
    while cursor is not None and cursor is not ancestor:
        lineage.append(cursor)
        cursor = parent_by_node.get(cursor)
    lineage.reverse()

    m = IDENTITY
    for elem in lineage:
        transform = elem.get("transform")
        if transform:
            m = multiply(m, parse_transform(transform))
    return m


def transform_bounds(m: Affine, box: Bounds) -> Bounds:
    """Map the four corners of *box* through *m* and re-box them."""
    corners = [
        apply(m, box.x, box.y),
        apply(m, box.right, box.y),
        apply(m, box.x, box.bottom),
        apply(m, box.right, box.bottom),
    ]
    return Bounds.from_points(corners)


# ---------------------------------------------------------------------------
# Primitive bounding boxes
# ---------------------------------------------------------------------------

def number_attr(el: ET.Element, name: str, default: float = 0.0) -> float:
    nums = parse_numbers(el.get(name, ""))
    return nums[0] if nums else default


def rect_bounds(el: ET.Element) -> Bounds:
    return Bounds(number_attr(el, "x"), number_attr(el, "y"), number_attr(el, "width"), number_attr(el, "height"))


def ellipse_bounds(el: ET.Element) -> Bounds:
    cx, cy = number_attr(el, "cx"), number_attr(el, "cy")
    if "r" in el.attrib:
        rx = ry = number_attr(el, "r")
    else:
        rx, ry = number_attr(el, "rx"), number_attr(el, "ry")
    return Bounds(cx - rx, cy - ry, rx * 2, ry * 2)


def polygon_points(el: ET.Element) -> list[tuple[float, float]]:
    nums = parse_numbers(el.get("points", ""))
    return [(nums[i], nums[i + 1]) for i in range(0, len(nums) - 1, 2)]


def polygon_bounds(el: ET.Element) -> Optional[Bounds]:
    pts = polygon_points(el)
    if not pts:
        return None
    return Bounds.from_points(pts)
