"""Tests for the MCP server tools (4-tool architecture)."""

import asyncio
import json
from pathlib import Path

from diagramdocs import server
from diagramdocs.server import docs, draw, inspect, workspace

PASTE = (
    "<mxGraphModel><root>"
    '<mxCell id="0"/><mxCell id="1" parent="0"/>'
    '<mxCell id="2" value="Start" style="ellipse;" vertex="1" parent="1">'
    '<mxGeometry x="0" y="0" width="120" height="60" as="geometry"/></mxCell>'
    '<mxCell id="3" value="End" vertex="1" parent="1">'
    '<mxGeometry x="0" y="200" width="120" height="60" as="geometry"/></mxCell>'
    '<mxCell id="4" edge="1" parent="1" source="2" target="3">'
    '<mxGeometry relative="1" as="geometry"/></mxCell>'
    "</root></mxGraphModel>"
)


def setup_function() -> None:
    """Forget the open workspace between tests."""
    server._reset()


def _ws(**kwargs) -> str:
    return asyncio.run(workspace(**kwargs))


def _docs(**kwargs) -> str:
    return asyncio.run(docs(**kwargs))


def test_tools_require_open_workspace() -> None:
    assert "No workspace is open" in draw(action="add_shape")
    assert "No workspace is open" in inspect(action="shapes")
    assert "No workspace is open" in _ws(action="save")


def test_open_missing_folder(tmp_path: Path) -> None:
    result = _ws(action="open", path=str(tmp_path / "nope"))
    assert result.startswith("Error:")


def test_unknown_action(tmp_path: Path) -> None:
    _ws(action="open", path=str(tmp_path))
    assert "Valid actions" in draw(action="explode")


def test_draw_save_and_reload(tmp_path: Path) -> None:
    assert "opened with 0 shape(s)" in _ws(action="open", path=str(tmp_path))

    a = json.loads(draw(action="add_shape", kind="ellipse", x=100, y=100))
    b = json.loads(draw(action="add_shape", kind="diamond", x=100, y=300))
    assert a["type"] == "ellipse" and b["width"] == 80

    conn = json.loads(draw(action="add_connector", shape_id=a["id"], target_id=b["id"]))
    assert conn["from"] == a["id"]
    assert "No connector added" in draw(action="add_connector", shape_id=a["id"], target_id=a["id"])

    updated = json.loads(draw(action="update_shape", shape_id=a["id"], updates={"text": "Go"}))
    assert updated["text"] == "Go"
    moved = json.loads(draw(action="move_shape", shape_id=b["id"], x=104, y=297))
    assert (moved["x"], moved["y"]) == (100, 300)

    assert "pdf" in draw(action="link", shape_id=b["id"], doc_path="docs/spec.pdf")
    assert "Saved" in _ws(action="save")
    assert (tmp_path / "diagram.svg").is_file()
    sidecar = json.loads((tmp_path / "diagram.links.json").read_text())
    assert sidecar["links"][b["id"]]["docPath"] == "docs/spec.pdf"

    server._reset()
    assert "opened with 2 shape(s)" in _ws(action="open", path=str(tmp_path))
    status = json.loads(_ws(action="status"))
    assert status["connectors"] == 1
    assert status["links"] == 1
    assert status["dirty"] is False
    shapes = json.loads(inspect(action="shapes"))
    assert shapes[0]["text"] == "Go"


def test_update_errors(tmp_path: Path) -> None:
    _ws(action="open", path=str(tmp_path))
    s = json.loads(draw(action="add_shape"))
    assert "non-empty dict" in draw(action="update_shape", shape_id=s["id"])
    assert "must be > 0" in draw(action="update_shape", shape_id=s["id"], updates={"width": 0})
    assert "not found" in draw(action="update_shape", shape_id="ghost", updates={"text": "x"})
    assert "cannot link" in draw(action="link", shape_id=s["id"], doc_path="a.exe")


def test_delete_shape_and_connector(tmp_path: Path) -> None:
    _ws(action="open", path=str(tmp_path))
    a = json.loads(draw(action="add_shape"))
    b = json.loads(draw(action="add_shape", y=200))
    conn = json.loads(draw(action="add_connector", shape_id=a["id"], target_id=b["id"]))
    assert "Deleted connector" in draw(action="delete_connector", connector_id=conn["id"])
    assert "not found" in draw(action="delete_connector", connector_id=conn["id"])
    assert "Deleted shape" in draw(action="delete_shape", shape_id=a["id"])
    assert json.loads(inspect(action="connectors")) == []


def test_paste_drawio(tmp_path: Path) -> None:
    _ws(action="open", path=str(tmp_path))
    assert draw(action="paste_drawio", xml_content=PASTE) == "Pasted 2 shape(s)."
    assert "Nothing pasted" in draw(action="paste_drawio", xml_content="hello")
    shapes = json.loads(inspect(action="shapes"))
    assert [(s["x"], s["y"]) for s in shapes] == [(20, 20), (20, 220)]
    assert len(json.loads(inspect(action="connectors"))) == 1


def test_import_doc_and_tabs(tmp_path: Path) -> None:
    root = tmp_path / "project"
    root.mkdir()
    src = tmp_path / "notes.md"
    src.write_text("# Notes")
    _ws(action="open", path=str(root))
    s = json.loads(draw(action="add_shape"))

    result = _ws(action="import_doc", source_path=str(src), shape_id=s["id"])
    assert "docs/notes.md" in result and "linked" in result
    assert json.loads(_ws(action="list_docs")) == ["docs/notes.md"]
    links = json.loads(inspect(action="links"))
    assert links[s["id"]]["docType"] == "markdown"

    opened = json.loads(_docs(action="open", path="docs/notes.md"))
    assert opened == {"path": "docs/notes.md", "kind": "markdown", "title": "notes.md", "bytes": 7}
    assert _docs(action="pin", path="docs/notes.md", pinned=True) == "Pinned."
    assert _docs(action="activate", path="docs/notes.md") == "Activated."
    assert "Cannot open" in _docs(action="open", path="docs/missing.pdf")
    assert "unsupported" in _docs(action="open", path="docs/tool.exe")
    assert _docs(action="close", path="docs/notes.md") == "Closed."
    assert "is not open" in _docs(action="close", path="docs/notes.md")


def test_import_unsupported(tmp_path: Path) -> None:
    src = tmp_path / "tool.exe"
    src.write_bytes(b"MZ")
    _ws(action="open", path=str(tmp_path))
    assert "Unsupported file type" in _ws(action="import_doc", source_path=str(src))


def test_inspect_svg_and_sidecar(tmp_path: Path) -> None:
    _ws(action="open", path=str(tmp_path))
    draw(action="add_shape", kind="rect", x=10, y=10)
    assert inspect(action="svg").lstrip().startswith("<?xml")
    sidecar = json.loads(inspect(action="sidecar"))
    assert sidecar["schemaVersion"] == 1
