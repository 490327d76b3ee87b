"""
Codec for ``diagram.links.json``, the sidecar next to ``diagram.svg``.

The sidecar holds what the SVG cannot: shape-to-document links, the
connector list, open tab state and an audit timestamp. It is always
written in the current schema and read permissively, accepting the legacy
``shapeLinks`` table (``docKind``) when the ``links`` table (``docType``)
is absent.
"""

from __future__ import annotations

import datetime
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from diagramdocs.models import Connector, DocKind, OpenDocument, OpenTab, ShapeLink

logger = logging.getLogger("diagramdocs.sidecar")

SCHEMA_VERSION = 1
DEFAULT_SPLIT = "main"


@dataclass
class SidecarContents:
    """Everything read back from a sidecar file."""
    schema_version: int = SCHEMA_VERSION
    links: dict[str, ShapeLink] = field(default_factory=dict)
    # None when the file carries no connector list
    connectors: Optional[list[Connector]] = None
    open_tabs: list[OpenTab] = field(default_factory=list)
    active_split: str = DEFAULT_SPLIT
    last_modified: Optional[str] = None


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------

def _timestamp(now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _link_entry(link: ShapeLink) -> dict[str, str]:
    entry = {"docPath": link.doc_path, "docType": link.doc_kind.value}
    if link.title:
        entry["title"] = link.title
    return entry


def build_sidecar(
    links: dict[str, ShapeLink],
    open_tabs: Iterable[OpenDocument] = (),
    active_path: Optional[str] = None,
    connectors: Iterable[Connector] = (),
    now: Optional[datetime.datetime] = None,
) -> dict[str, Any]:
    """Build the JSON-ready sidecar structure."""
    data: dict[str, Any] = {
        "schemaVersion": SCHEMA_VERSION,
        "links": {sid: _link_entry(link) for sid, link in links.items()},
    }
    conns = [c.to_dict() for c in connectors]
    if conns:
        data["connectors"] = conns
    data["uiState"] = {
        "openTabs": [
            {
                "docPath": doc.path,
                "active": doc.path == active_path,
                "pinned": doc.pinned,
                "group": "main",
            }
            for doc in open_tabs
        ],
        "activeSplit": DEFAULT_SPLIT,
    }
    data["audit"] = {"lastModified": _timestamp(now)}
    return data


def serialize_sidecar(
    links: dict[str, ShapeLink],
    open_tabs: Iterable[OpenDocument] = (),
    active_path: Optional[str] = None,
    connectors: Iterable[Connector] = (),
    now: Optional[datetime.datetime] = None,
) -> str:
    data = build_sidecar(links, open_tabs, active_path, connectors, now)
    return json.dumps(data, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------

def _parse_links(table: Any, kind_field: str) -> dict[str, ShapeLink]:
    links: dict[str, ShapeLink] = {}
    if not isinstance(table, dict):
        return links
    for sid, entry in table.items():
        if not isinstance(entry, dict):
            continue
        path = entry.get("docPath")
        if not isinstance(path, str) or not path:
            continue
        try:
            kind = DocKind(entry.get(kind_field))
        except ValueError:
            logger.warning("Dropping link for '%s': unknown %s %r", sid, kind_field, entry.get(kind_field))
            continue
        title = entry.get("title")
        links[sid] = ShapeLink(
            doc_path=path,
            doc_kind=kind,
            title=title if isinstance(title, str) else None,
        )
    return links


def _parse_tabs(ui_state: dict[str, Any]) -> list[OpenTab]:
    tabs: list[OpenTab] = []
    for entry in ui_state.get("openTabs") or []:
        if not isinstance(entry, dict) or not isinstance(entry.get("docPath"), str):
            continue
        group = entry.get("group")
        tabs.append(OpenTab(
            doc_path=entry["docPath"],
            active=bool(entry.get("active", False)),
            pinned=bool(entry.get("pinned", False)),
            group=group if group in ("main", "side") else "main",
        ))
    return tabs


def parse_sidecar(text: str) -> SidecarContents:
    """Parse sidecar JSON; malformed content yields empty contents."""
    contents = SidecarContents()
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        logger.warning("Malformed links sidecar: %s", exc)
        return contents
    if not isinstance(data, dict):
        logger.warning("Links sidecar root is not an object")
        return contents

    version = data.get("schemaVersion")
    if isinstance(version, int) and not isinstance(version, bool):
        contents.schema_version = version
        if version > SCHEMA_VERSION:
            logger.warning("Sidecar schema %d is newer than supported %d", version, SCHEMA_VERSION)

    if isinstance(data.get("links"), dict):
        contents.links = _parse_links(data["links"], "docType")
    else:
        contents.links = _parse_links(data.get("shapeLinks"), "docKind")

    raw_conns = data.get("connectors")
    if isinstance(raw_conns, list) and raw_conns:
        conns = [Connector.from_dict(c) for c in raw_conns if isinstance(c, dict)]
        contents.connectors = [c for c in conns if c is not None]

    ui_state = data.get("uiState")
    if isinstance(ui_state, dict):
        contents.open_tabs = _parse_tabs(ui_state)
        if isinstance(ui_state.get("activeSplit"), str):
            contents.active_split = ui_state["activeSplit"]

    audit = data.get("audit")
    if isinstance(audit, dict):
        stamp = audit.get("lastModified") or audit.get("lastUpdatedAt")
        if isinstance(stamp, str):
            contents.last_modified = stamp
    return contents
