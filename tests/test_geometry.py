"""Tests for the SVG transform accumulator."""

import xml.etree.ElementTree as ET

import pytest

from diagramdocs import geometry
from diagramdocs.models import Bounds


def _approx(m):
    return pytest.approx(m, abs=1e-9)


def test_parse_translate_and_scale() -> None:
    assert geometry.parse_transform("translate(10)") == (1, 0, 0, 1, 10, 0)
    assert geometry.parse_transform("translate(10, -5)") == (1, 0, 0, 1, 10, -5)
    assert geometry.parse_transform("scale(2)") == (2, 0, 0, 2, 0, 0)
    assert geometry.parse_transform("scale(2 3)") == (2, 0, 0, 3, 0, 0)


def test_parse_matrix_and_unknown() -> None:
    assert geometry.parse_transform("matrix(1,2,3,4,5,6)") == (1, 2, 3, 4, 5, 6)
    assert geometry.parse_transform("frobnicate(1)") == geometry.IDENTITY
    assert geometry.parse_transform(None) == geometry.IDENTITY


def test_rotate_about_center() -> None:
    m = geometry.parse_transform("rotate(90 10 10)")
    assert geometry.apply(m, 20, 10) == _approx((10, 20))
    assert geometry.apply(m, 10, 10) == _approx((10, 10))


def test_skew() -> None:
    m = geometry.parse_transform("skewX(45)")
    assert geometry.apply(m, 0, 10) == _approx((10, 10))


def test_composition_order() -> None:
    # translate is applied after scale
    m = geometry.parse_transform("translate(100,0) scale(2)")
    assert geometry.apply(m, 5, 5) == _approx((110, 10))


def test_cumulative_and_relative_transform() -> None:
    root = ET.fromstring(
        '<svg><g transform="translate(10,0)"><g id="mid" transform="scale(2)">'
        '<rect id="r" transform="translate(1,1)"/></g></g></svg>'
    )
    parents = {c: p for p in root.iter() for c in p}
    mid = root.find(".//g[@id='mid']")
    rect = root.find(".//rect")
    assert geometry.apply(geometry.cumulative_transform(rect, parents), 0, 0) == _approx((12, 2))
    assert geometry.apply(geometry.relative_transform(rect, mid, parents), 0, 0) == _approx((1, 1))


def test_transform_bounds() -> None:
    box = geometry.transform_bounds((2, 0, 0, 2, 5, 5), Bounds(1, 1, 10, 20))
    assert (box.x, box.y, box.width, box.height) == (7, 7, 20, 40)


def test_primitive_bounds() -> None:
    circle = ET.fromstring('<circle cx="10" cy="10" r="5"/>')
    assert geometry.ellipse_bounds(circle) == Bounds(5, 5, 10, 10)
    rect = ET.fromstring('<rect x="1px" y="2" width="3" height="4"/>')
    assert geometry.rect_bounds(rect) == Bounds(1, 2, 3, 4)
    poly = ET.fromstring('<polygon points="0,0 10,5 -2,8"/>')
    assert geometry.polygon_bounds(poly) == Bounds(-2, 0, 12, 8)
    assert geometry.polygon_bounds(ET.fromstring("<polygon/>")) is None
