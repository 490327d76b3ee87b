"""Tests for the SVG codec (serialize / parse / third-party fallback)."""

import xml.etree.ElementTree as ET

import pytest

from diagramdocs.models import Connector, Shape, ShapeKind
from diagramdocs.svg_codec import (
    escape_xml,
    parse_svg,
    serialize_svg,
    view_window,
)

NS = {"svg": "http://www.w3.org/2000/svg"}


def _shape(kind: ShapeKind, x=100, y=50, w=120, h=50, text="Hello", sid="node-a") -> Shape:
    return Shape(id=sid, kind=kind, x=x, y=y, width=w, height=h, text=text)


# ---- serialize ----

def test_empty_diagram_view_window() -> None:
    svg = serialize_svg([], [])
    root = ET.fromstring(svg)
    assert root.get("viewBox") == "-20 -20 840 640"
    assert root.get("width") == "840"
    assert root.get("height") == "640"
    assert root.find("svg:defs/svg:marker[@id='arrow']", NS) is not None


def test_view_window_grows_with_content() -> None:
    w = view_window([_shape(ShapeKind.RECT, x=-100, y=0, w=50, h=50),
                     _shape(ShapeKind.RECT, x=900, y=700, w=100, h=100)])
    assert (w.x, w.y) == (-120, -20)
    assert w.right == 1020
    assert w.bottom == 820


def test_one_group_per_shape_with_primitive() -> None:
    shapes = [
        _shape(ShapeKind.RECT, sid="r"),
        _shape(ShapeKind.ELLIPSE, sid="e", y=200),
        _shape(ShapeKind.DIAMOND, sid="d", y=400, w=80, h=80),
    ]
    root = ET.fromstring(serialize_svg(shapes, []))
    outer = root.find("svg:g", NS)
    assert outer.get("transform") == "translate(-20, -20)"
    groups = {g.get("id"): g for g in outer.findall("svg:g", NS)}
    assert groups["r"].find("svg:rect", NS).get("rx") == "4"
    assert groups["e"].find("svg:ellipse", NS) is not None
    # diamond points: top, right, bottom, left midpoints in local frame
    poly = groups["d"].find("svg:polygon", NS)
    assert poly.get("points") == "160,420 200,460 160,500 120,460"


def test_coordinates_in_local_frame() -> None:
    root = ET.fromstring(serialize_svg([_shape(ShapeKind.RECT)], []))
    rect = root.find(".//svg:rect", NS)
    assert rect.get("x") == "120"
    assert rect.get("y") == "70"


def test_text_multiline_tspans() -> None:
    root = ET.fromstring(serialize_svg([_shape(ShapeKind.RECT, text="A\nB\nC")], []))
    spans = root.findall(".//svg:tspan", NS)
    assert [s.text for s in spans] == ["A", "B", "C"]
    assert spans[0].get("dy") == "-1.2em"
    assert spans[1].get("dy") == "1.2em"
    assert spans[0].get("x") == "180"


def test_blank_text_uses_placeholder() -> None:
    root = ET.fromstring(serialize_svg([_shape(ShapeKind.RECT, text=" \n ")], []))
    spans = root.findall(".//svg:tspan", NS)
    assert [s.text for s in spans] == ["..."]
    assert spans[0].get("dy") == "0em"


def test_text_is_escaped() -> None:
    svg = serialize_svg([_shape(ShapeKind.RECT, text="a<b & \"c\" 'd'>")], [])
    assert "a&lt;b &amp; &quot;c&quot; &apos;d&apos;&gt;" in svg
    assert escape_xml("<&>") == "&lt;&amp;&gt;"


def test_connector_path_is_vertical_s_curve() -> None:
    a = _shape(ShapeKind.RECT, x=0, y=0, w=100, h=50, sid="a")
    b = _shape(ShapeKind.RECT, x=0, y=200, w=100, h=50, sid="b")
    svg = serialize_svg([a, b], [Connector(id="conn-1", source="a", target="b")])
    root = ET.fromstring(svg)
    path = root.find(".//svg:path", NS)
    assert path.get("d") == "M 70 70 C 70 145, 70 145, 70 220"
    assert path.get("marker-end") == "url(#arrow)"


def test_connector_to_missing_shape_skipped() -> None:
    a = _shape(ShapeKind.RECT, sid="a")
    svg = serialize_svg([a], [Connector(id="conn-1", source="a", target="gone")])
    assert "<path" not in svg


# ---- round trip ----

@pytest.mark.parametrize("kind", list(ShapeKind))
def test_round_trip_per_kind(kind: ShapeKind) -> None:
    original = _shape(kind, x=37, y=-12.5, w=90, h=44, text="Step 1")
    parsed = parse_svg(serialize_svg([original], []))
    assert len(parsed.shapes) == 1
    s = parsed.shapes[0]
    assert s.id == original.id
    assert s.kind == kind
    assert s.x == pytest.approx(original.x)
    assert s.y == pytest.approx(original.y)
    assert s.width == pytest.approx(original.width)
    assert s.height == pytest.approx(original.height)
    assert s.text == "Step 1"
    assert not parsed.used_fallback


def test_round_trip_multiline_and_escaped_text() -> None:
    original = _shape(ShapeKind.ELLIPSE, text="x < y\n& 'z'")
    s = parse_svg(serialize_svg([original], [])).shapes[0]
    assert s.text == "x < y\n& 'z'"


def test_connectors_are_not_recovered() -> None:
    a = _shape(ShapeKind.RECT, x=0, y=0, sid="a")
    b = _shape(ShapeKind.RECT, x=0, y=200, sid="b")
    parsed = parse_svg(serialize_svg([a, b], [Connector(id="conn-1", source="a", target="b")]))
    assert len(parsed.shapes) == 2
    assert parsed.connectors == []


# ---- parse edge cases ----

def test_parse_malformed_returns_empty() -> None:
    assert parse_svg("not xml at all").shapes == []
    assert parse_svg("<html><body/></html>").shapes == []


def test_parse_skips_connector_groups_and_bare_groups() -> None:
    svg = (
        '<svg xmlns="http://www.w3.org/2000/svg"><g>'
        '<g id="conn-1"><rect x="0" y="0" width="10" height="10"/></g>'
        '<g id="label"><text>orphan</text></g>'
        '<g id="ok"><rect x="1" y="2" width="30" height="40"/></g>'
        "</g></svg>"
    )
    parsed = parse_svg(svg)
    assert [s.id for s in parsed.shapes] == ["ok"]
    assert parsed.shapes[0].text == ""


def test_parse_text_without_tspans() -> None:
    svg = (
        '<svg xmlns="http://www.w3.org/2000/svg"><g>'
        '<g id="n"><rect x="0" y="0" width="30" height="40"/><text>plain</text></g>'
        "</g></svg>"
    )
    assert parse_svg(svg).shapes[0].text == "plain"


# ---- fallback for third-party exports ----

_DRAWIO_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 400 300">'
    "<g>"
    '<g data-cell-id="0"><g data-cell-id="1">'
    '<g data-cell-id="box" transform="translate(10,20)">'
    '<g><rect x="5" y="5" width="100" height="40" fill="#fff"/></g>'
    "<g><text>Box</text></g>"
    "</g>"
    '<g data-cell-id="round"><g transform="translate(100,0) scale(2)">'
    '<ellipse cx="10" cy="10" rx="10" ry="5"/></g></g>'
    '<g data-cell-id="choice"><polygon points="200,0 220,20 200,40 180,20"/></g>'
    '<g data-cell-id="edge"><path d="M 0 0 L 10 10"/></g>'
    "</g></g>"
    "</g></svg>"
)


def test_fallback_parses_data_cell_ids() -> None:
    parsed = parse_svg(_DRAWIO_SVG)
    assert parsed.used_fallback
    by_id = {s.id: s for s in parsed.shapes}
    assert set(by_id) == {"box", "round", "choice"}

    box = by_id["box"]
    assert box.kind == ShapeKind.RECT
    assert (box.x, box.y, box.width, box.height) == (15, 25, 100, 40)
    assert box.text == ""

    round_ = by_id["round"]
    assert round_.kind == ShapeKind.ELLIPSE
    assert round_.x == pytest.approx(100)
    assert round_.y == pytest.approx(10)
    assert round_.width == pytest.approx(40)
    assert round_.height == pytest.approx(20)

    assert by_id["choice"].kind == ShapeKind.DIAMOND
    assert by_id["choice"].width == pytest.approx(40)


def test_fallback_collects_external_ids() -> None:
    parsed = parse_svg(_DRAWIO_SVG)
    assert {"0", "1", "box", "edge"} <= parsed.element_ids


def test_fallback_rotation_takes_axis_aligned_box() -> None:
    svg = (
        '<svg xmlns="http://www.w3.org/2000/svg"><g>'
        '<g data-cell-id="r" transform="rotate(90)">'
        '<rect x="0" y="0" width="20" height="10"/></g>'
        "</g></svg>"
    )
    s = parse_svg(svg).shapes[0]
    assert s.x == pytest.approx(-10)
    assert s.y == pytest.approx(0)
    assert s.width == pytest.approx(10)
    assert s.height == pytest.approx(20)
