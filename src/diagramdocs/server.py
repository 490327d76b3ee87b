"""
diagramdocs MCP server: edit flow diagrams and link documents to shapes.

Exposes 4 tools that operate on a folder-as-project workspace holding
``diagram.svg`` and ``diagram.links.json``:

  1. workspace — lifecycle: open, load, save, status, list_docs, import_doc
  2. draw      — content: add/update/move/delete shapes and connectors,
                 link/unlink documents, paste draw.io XML
  3. docs      — document tabs: open, close, activate, pin
  4. inspect   — read-only: shapes, connectors, links, svg, sidecar
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from diagramdocs.store import DiagramStore, StoreConfig
from diagramdocs.validation import (
    DiagramDocsError,
    ValidationError,
    validate_action,
    validate_bool,
    validate_non_empty_string,
    validate_number,
    _DOCS_ACTIONS,
    _DRAW_ACTIONS,
    _INSPECT_ACTIONS,
    _WORKSPACE_ACTIONS,
)
from diagramdocs.workspace import WorkspaceError, WorkspaceSession

# ---------------------------------------------------------------------------
# Logging: keep routine FastMCP INFO messages off stderr
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("diagramdocs")

mcp = FastMCP(
    "diagramdocs",
    instructions=(
        "MCP server for flow diagrams with linked documents.\n\n"
        "=== 4 TOOLS — use the 'action' parameter to pick the operation ===\n\n"
        "1. workspace(action, ...) — open, load, save, status, list_docs, import_doc.\n"
        "2. draw(action, ...) — add_shape, add_connector, update_shape,\n"
        "   move_shape, delete_shape, delete_connector, link, unlink, paste_drawio.\n"
        "3. docs(action, ...) — open, close, activate, pin.\n"
        "4. inspect(action) — shapes, connectors, links, svg, sidecar.\n\n"
        "Open a workspace folder first. Shape kinds: rect, ellipse, diamond.\n"
        "Linkable documents: pdf, png, jpg, jpeg, svg, webp, md, json.\n"
        "Changes are saved automatically a couple of seconds after the last edit.\n"
    ),
)

# Last opened workspace; replaced by workspace(action='open')
_session = WorkspaceSession()
_store: Optional[DiagramStore] = None
_config = StoreConfig()


def _require_store() -> DiagramStore:
    if _store is None:
        raise WorkspaceError("No workspace is open. Use workspace(action='open', path=...).")
    return _store


def _reset() -> None:
    """Forget the open workspace (used by tests)."""
    global _store, _session
    _session = WorkspaceSession()
    _store = None


def _status(store: DiagramStore) -> dict[str, Any]:
    ws = _session.current
    return {
        "workspace": str(ws.root) if ws else None,
        "shapes": len(store.shapes),
        "connectors": len(store.connectors),
        "links": len(store.links),
        "dirty": store.dirty,
        "open_tabs": [
            {"path": d.path, "kind": d.kind.value, "title": d.title, "pinned": d.pinned}
            for d in store.open_tabs
        ],
        "active_tab": store.active_tab,
        "external_svg": store.external_svg is not None,
    }


# ===================================================================
# TOOL 1: workspace — lifecycle
# ===================================================================

@mcp.tool()
async def workspace(
    action: str,
    path: str = "",
    source_path: str = "",
    shape_id: str = "",
) -> str:
    """Workspace lifecycle management.

    Actions:
      open       — Open a folder and load its diagram. Params: path.
      load       — Reload diagram.svg + diagram.links.json from disk.
      save       — Save now (edits are also autosaved).
      status     — Summary of the open workspace as JSON.
      list_docs  — Files under docs/ (or the workspace root) as JSON.
      import_doc — Copy an external file into docs/. Params: source_path,
                   optional shape_id to link the copied document.

    Args:
        action: One of: open, load, save, status, list_docs, import_doc.
        path: Folder path for open.
        source_path: File to copy for import_doc.
        shape_id: Shape to link after import_doc.

    Returns:
        Result string or JSON depending on action.
    """
    global _store
    try:
        action = validate_action(action, "workspace", _WORKSPACE_ACTIONS)

        if action == "open":
            path = validate_non_empty_string(path, "path")
            ws = _session.open(path)
            if _store is not None:
                await _store.flush()
            store = DiagramStore(ws, _config)
            await store.load()
            _store = store
            return f"Workspace '{ws.name}' opened with {len(store.shapes)} shape(s)."

        store = _require_store()
        ws = _session.require()

        if action == "load":
            await store.load()
            return f"Reloaded {len(store.shapes)} shape(s), {len(store.connectors)} connector(s)."

        elif action == "save":
            await store.save()
            return f"Saved to {ws.root}"

        elif action == "status":
            return json.dumps(_status(store), indent=2)

        elif action == "list_docs":
            return json.dumps(ws.list_doc_files(), indent=2)

        else:  # import_doc
            source_path = validate_non_empty_string(source_path, "source_path")
            rel = ws.copy_into_docs(source_path)
            if shape_id:
                if store.link_shape(shape_id, rel) is None:
                    return f"Imported '{rel}' but could not link it to '{shape_id}'."
                return f"Imported '{rel}' and linked it to '{shape_id}'."
            return f"Imported '{rel}'."
    except DiagramDocsError as exc:
        return f"Error: {exc.message}"
    except OSError as exc:
        logger.error("Storage error during workspace %s: %s", action, exc)
        return f"Error: storage failure: {exc}"


# ===================================================================
# TOOL 2: draw — content editing
# ===================================================================

@mcp.tool()
def draw(
    action: str,
    kind: str = "rect",
    x: float = 0,
    y: float = 0,
    shape_id: str = "",
    target_id: str = "",
    connector_id: str = "",
    updates: Optional[dict[str, Any]] = None,
    snap: bool = True,
    doc_path: str = "",
    title: str = "",
    xml_content: str = "",
) -> str:
    """Diagram content editing.

    Actions:
      add_shape        — Params: kind (rect|ellipse|diamond), x, y. Returns the shape JSON.
      add_connector    — Params: shape_id (source), target_id.
      update_shape     — Params: shape_id, updates {x, y, width, height, text, kind}.
      move_shape       — Params: shape_id, x, y, snap (grid snapping, default true).
      delete_shape     — Params: shape_id. Also removes its connectors and link.
      delete_connector — Params: connector_id.
      link             — Params: shape_id, doc_path, optional title.
      unlink           — Params: shape_id.
      paste_drawio     — Params: xml_content (draw.io XML, optionally URL-encoded).

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "draw", _DRAW_ACTIONS)
        store = _require_store()

        if action == "add_shape":
            shape = store.add_shape(kind, validate_number(x, "x"), validate_number(y, "y"))
            return json.dumps(shape.to_dict())

        elif action == "add_connector":
            source = validate_non_empty_string(shape_id, "shape_id")
            target = validate_non_empty_string(target_id, "target_id")
            conn = store.add_connector(source, target)
            if conn is None:
                return "No connector added (self-loop or unknown shape)."
            return json.dumps(conn.to_dict())

        elif action == "update_shape":
            sid = validate_non_empty_string(shape_id, "shape_id")
            if not updates:
                raise ValidationError("'updates' must be a non-empty dict.")
            shape = store.update_shape(sid, **updates)
            if shape is None:
                return f"Error: shape '{sid}' not found."
            return json.dumps(shape.to_dict())

        elif action == "move_shape":
            sid = validate_non_empty_string(shape_id, "shape_id")
            shape = store.move_shape(sid, x, y, snap=validate_bool(snap, "snap"))
            if shape is None:
                return f"Error: shape '{sid}' not found."
            return json.dumps(shape.to_dict())

        elif action == "delete_shape":
            sid = validate_non_empty_string(shape_id, "shape_id")
            if not store.delete_shape(sid):
                return f"Error: shape '{sid}' not found."
            return f"Deleted shape '{sid}'."

        elif action == "delete_connector":
            cid = validate_non_empty_string(connector_id, "connector_id")
            if not store.delete_connector(cid):
                return f"Error: connector '{cid}' not found."
            return f"Deleted connector '{cid}'."

        elif action == "link":
            sid = validate_non_empty_string(shape_id, "shape_id")
            path = validate_non_empty_string(doc_path, "doc_path")
            link = store.link_shape(sid, path, title or None)
            if link is None:
                return f"Error: cannot link '{path}' to '{sid}' (unsupported type or unknown element)."
            return f"Linked '{sid}' to '{path}' ({link.doc_kind.value})."

        elif action == "unlink":
            sid = validate_non_empty_string(shape_id, "shape_id")
            if not store.unlink_shape(sid):
                return f"'{sid}' had no link."
            return f"Unlinked '{sid}'."

        else:  # paste_drawio
            xml = validate_non_empty_string(xml_content, "xml_content")
            before = len(store.shapes)
            if not store.paste_drawio(xml):
                return "Nothing pasted: content is not draw.io XML or has no shapes."
            return f"Pasted {len(store.shapes) - before} shape(s)."
    except DiagramDocsError as exc:
        return f"Error: {exc.message}"


# ===================================================================
# TOOL 3: docs — document tabs
# ===================================================================

@mcp.tool()
async def docs(
    action: str,
    path: str = "",
    title: str = "",
    pinned: bool = True,
) -> str:
    """Linked document tabs.

    Actions:
      open     — Open a workspace document as the active tab. Params: path, title.
      close    — Close a tab. Params: path.
      activate — Make an open tab active. Params: path.
      pin      — Pin or unpin a tab. Params: path, pinned.
    """
    try:
        action = validate_action(action, "docs", _DOCS_ACTIONS)
        store = _require_store()
        path = validate_non_empty_string(path, "path")

        if action == "open":
            doc = await store.open_document(path, title or None)
            if doc is None:
                return f"Error: unsupported document type '{path}'."
            size = len(doc.file) if doc.file is not None else 0
            return json.dumps({"path": doc.path, "kind": doc.kind.value,
                               "title": doc.title, "bytes": size})
        elif action == "close":
            return "Closed." if store.close_tab(path) else f"'{path}' is not open."
        elif action == "activate":
            return "Activated." if store.set_active_tab(path) else f"'{path}' is not open."
        else:  # pin
            ok = store.pin_tab(path, validate_bool(pinned, "pinned"))
            return ("Pinned." if pinned else "Unpinned.") if ok else f"'{path}' is not open."
    except DiagramDocsError as exc:
        return f"Error: {exc.message}"


# ===================================================================
# TOOL 4: inspect — read-only
# ===================================================================

@mcp.tool()
def inspect(action: str) -> str:
    """Read-only views of the open diagram.

    Actions:
      shapes, connectors, links — JSON lists / maps.
      svg                       — the SVG that the next save would write.
      sidecar                   — the links sidecar JSON the next save would write.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)
        store = _require_store()
        if action == "shapes":
            return json.dumps([s.to_dict() for s in store.shapes], indent=2)
        elif action == "connectors":
            return json.dumps([c.to_dict() for c in store.connectors], indent=2)
        elif action == "links":
            return json.dumps({
                sid: {"docPath": l.doc_path, "docType": l.doc_kind.value, "title": l.title}
                for sid, l in store.links.items()
            }, indent=2)
        elif action == "svg":
            return store.to_svg()
        else:
            return store.to_sidecar()
    except DiagramDocsError as exc:
        return f"Error: {exc.message}"


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
