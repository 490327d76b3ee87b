"""
Diagram store: owns the live diagram and coordinates persistence.

Mutations are synchronous and mark the store dirty. When an event loop is
running and a storage backend is attached, each mutation (re)arms a
debounce timer; when it fires the diagram is written through the SVG codec
and the links sidecar codec. Saves snapshot the model at invocation and
never interleave their writes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from diagramdocs.drawio_import import is_drawio_content, parse_drawio_xml
from diagramdocs.models import (
    DEFAULT_SIZES,
    Connector,
    ConnectorKind,
    OpenDocument,
    Shape,
    ShapeKind,
    ShapeLink,
    doc_kind_from_path,
    new_connector_id,
    new_shape_id,
    snap_to_grid,
)
from diagramdocs.sidecar import parse_sidecar, serialize_sidecar
from diagramdocs.svg_codec import parse_svg, serialize_svg
from diagramdocs.validation import (
    DiagramDocsError,
    validate_number,
    validate_shape_kind,
    validate_shape_update,
)
from diagramdocs.workspace import WorkspaceError

logger = logging.getLogger("diagramdocs.store")


class DocumentNotFoundError(DiagramDocsError):
    """A linked document no longer exists in the workspace."""


class Storage(Protocol):
    """What the store needs from a storage backend (see ``Workspace``)."""

    async def read_text(self, relative_path: str) -> Optional[str]: ...

    async def read_bytes(self, relative_path: str) -> Optional[bytes]: ...

    async def write_text(self, relative_path: str, content: str) -> None: ...

    def find_first(self, filename: str) -> Optional[str]: ...


@dataclass
class StoreConfig:
    """Tunables for the diagram store."""
    autosave_delay: Optional[float] = 2.0  # seconds; None disables autosave
    paste_offset: float = 20
    grid_size: int = 10
    diagram_file: str = "diagram.svg"
    links_file: str = "diagram.links.json"


def _basename(path: str) -> str:
    return path.replace("\\", "/").rsplit("/", 1)[-1] or path


class DiagramStore:
    """The live diagram plus session tab state."""

    def __init__(
        self,
        storage: Optional[Storage] = None,
        config: Optional[StoreConfig] = None,
    ) -> None:
        self.storage = storage
        self.config = config or StoreConfig()
        self.shapes: list[Shape] = []
        self.connectors: list[Connector] = []
        self.links: dict[str, ShapeLink] = {}
        self.open_tabs: list[OpenDocument] = []
        self.active_tab: Optional[str] = None
        # Raw SVG kept when a loaded file yielded no editable shapes
        self.external_svg: Optional[str] = None
        self.external_ids: set[str] = set()
        self.dirty = False
        self.revision = 0

        self._timer: Optional[asyncio.TimerHandle] = None
        self._save_task: Optional[asyncio.Task] = None
        self._resave_requested = False
        self._save_lock = asyncio.Lock()

    # ----- lookups -----

    def get_shape(self, shape_id: str) -> Optional[Shape]:
        for s in self.shapes:
            if s.id == shape_id:
                return s
        return None

    def known_ids(self) -> set[str]:
        """Ids that may carry a link."""
        return {s.id for s in self.shapes} | self.external_ids

    def to_svg(self) -> str:
        return serialize_svg(self.shapes, self.connectors)

    def to_sidecar(self) -> str:
        return serialize_sidecar(
            self.links, self.open_tabs, self.active_tab, self.connectors,
        )

    # ----- dirty tracking / debounce -----

    def _mark_dirty(self) -> None:
        self.dirty = True
        self.revision += 1
        self._arm_autosave()

    def _arm_autosave(self) -> None:
        if self.storage is None or self.config.autosave_delay is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._cancel_timer()
        self._timer = loop.call_later(self.config.autosave_delay, self._autosave_due)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _autosave_due(self) -> None:
        self._timer = None
        if self._save_task is not None and not self._save_task.done():
            # Coalesce into a single follow-up save
            self._resave_requested = True
            return
        self._save_task = asyncio.get_running_loop().create_task(self._autosave())

    async def _autosave(self) -> None:
        while True:
            self._resave_requested = False
            try:
                await self.save()
            except (OSError, DiagramDocsError):
                logger.exception("Autosave failed; diagram stays dirty")
                return
            if not self._resave_requested:
                return

    @property
    def save_pending(self) -> bool:
        return self._timer is not None or (
            self._save_task is not None and not self._save_task.done()
        )

    async def flush(self) -> None:
        """Run any pending debounced save now and wait for it."""
        had_timer = self._timer is not None
        self._cancel_timer()
        if self._save_task is not None and not self._save_task.done():
            await self._save_task
        if had_timer or self._resave_requested or self.dirty:
            if self.storage is not None:
                await self.save()

    # ----- persistence -----

    def _require_storage(self) -> Storage:
        if self.storage is None:
            raise WorkspaceError("No workspace is open.")
        return self.storage

    async def save(self) -> None:
        """Write the diagram and its sidecar as of this call."""
        storage = self._require_storage()
        revision = self.revision
        write_svg = not (self.external_svg is not None and not self.shapes)
        svg_text = self.to_svg() if write_svg else None
        sidecar_text = self.to_sidecar()
        async with self._save_lock:
            if svg_text is not None:
                await storage.write_text(self.config.diagram_file, svg_text)
            await storage.write_text(self.config.links_file, sidecar_text)
        if self.revision == revision:
            self.dirty = False
        logger.info(
            "Saved %d shape(s), %d connector(s), %d link(s)",
            len(self.shapes), len(self.connectors), len(self.links),
        )

    async def load(self) -> None:
        """Replace the in-memory model with what storage holds."""
        storage = self._require_storage()
        self._cancel_timer()
        svg_path = storage.find_first(self.config.diagram_file)
        links_path = storage.find_first(self.config.links_file)

        async def _read(path: Optional[str]) -> Optional[str]:
            return await storage.read_text(path) if path else None

        svg_text, links_text = await asyncio.gather(_read(svg_path), _read(links_path))

        shapes: list[Shape] = []
        connectors: list[Connector] = []
        external_svg: Optional[str] = None
        external_ids: set[str] = set()
        if svg_text is not None:
            parsed = parse_svg(svg_text)
            shapes = parsed.shapes
            connectors = parsed.connectors
            if parsed.used_fallback or not shapes:
                external_ids = parsed.element_ids
            if not shapes:
                external_svg = svg_text

        links: dict[str, ShapeLink] = {}
        tabs: list[OpenDocument] = []
        active: Optional[str] = None
        if links_text is not None:
            contents = parse_sidecar(links_text)
            links = contents.links
            if contents.connectors:
                connectors = contents.connectors
            for tab in contents.open_tabs:
                kind = doc_kind_from_path(tab.doc_path)
                if kind is None:
                    continue
                tabs.append(OpenDocument(
                    path=tab.doc_path, kind=kind,
                    title=_basename(tab.doc_path), pinned=tab.pinned,
                ))
                if tab.active:
                    active = tab.doc_path

        self.shapes = shapes
        self.connectors = connectors
        self.links = links
        self.open_tabs = tabs
        self.active_tab = active
        self.external_svg = external_svg
        self.external_ids = external_ids
        self.dirty = False
        logger.info(
            "Loaded %d shape(s), %d connector(s), %d link(s) from %s",
            len(shapes), len(connectors), len(links), svg_path or "(no diagram)",
        )

    # ----- shape / connector mutations -----

    def add_shape(self, kind: Any, x: float, y: float) -> Shape:
        shape_kind = validate_shape_kind(kind)
        width, height = DEFAULT_SIZES[shape_kind]
        shape = Shape(
            id=new_shape_id(),
            kind=shape_kind,
            x=validate_number(x, "x"),
            y=validate_number(y, "y"),
            width=width,
            height=height,
            text="",
        )
        self.shapes.append(shape)
        self._mark_dirty()
        return shape

    def add_connector(self, source: str, target: str) -> Optional[Connector]:
        """Connect two shapes; self-loops and unknown endpoints are no-ops."""
        if source == target:
            return None
        ids = {s.id for s in self.shapes}
        if source not in ids or target not in ids:
            logger.warning("Connector endpoints %s -> %s not in diagram", source, target)
            return None
        conn = Connector(
            id=new_connector_id(), source=source, target=target,
            kind=ConnectorKind.STRAIGHT,
        )
        self.connectors.append(conn)
        self._mark_dirty()
        return conn

    def update_shape(self, shape_id: str, **fields: Any) -> Optional[Shape]:
        shape = self.get_shape(shape_id)
        if shape is None:
            return None
        changes = validate_shape_update(fields)
        for key, val in changes.items():
            setattr(shape, key, val)
        self._mark_dirty()
        return shape

    def move_shape(
        self, shape_id: str, x: float, y: float, snap: bool = True
    ) -> Optional[Shape]:
        if snap:
            x = snap_to_grid(validate_number(x, "x"), self.config.grid_size)
            y = snap_to_grid(validate_number(y, "y"), self.config.grid_size)
        return self.update_shape(shape_id, x=x, y=y)

    def delete_shape(self, shape_id: str) -> bool:
        """Remove a shape with every connector touching it and its link."""
        shape = self.get_shape(shape_id)
        if shape is None:
            return False
        self.shapes = [s for s in self.shapes if s.id != shape_id]
        self.connectors = [c for c in self.connectors if not c.touches(shape_id)]
        self.links.pop(shape_id, None)
        self._mark_dirty()
        return True

    def delete_connector(self, connector_id: str) -> bool:
        before = len(self.connectors)
        self.connectors = [c for c in self.connectors if c.id != connector_id]
        if len(self.connectors) == before:
            return False
        self._mark_dirty()
        return True

    def paste_drawio(self, text: str) -> bool:
        """Merge pasted draw.io XML into the diagram.

        Returns False (diagram untouched) for non-draw.io text or content
        without any usable shape.
        """
        if not is_drawio_content(text):
            return False
        result = parse_drawio_xml(text)
        if not result.shapes:
            return False
        offset = self.config.paste_offset
        for s in result.shapes:
            s.x += offset
            s.y += offset
        self.shapes = self.shapes + result.shapes
        self.connectors = self.connectors + result.connectors
        self._mark_dirty()
        logger.info(
            "Pasted %d shape(s), %d connector(s)",
            len(result.shapes), len(result.connectors),
        )
        return True

    # ----- links -----

    def link_shape(
        self, shape_id: str, doc_path: str, title: Optional[str] = None
    ) -> Optional[ShapeLink]:
        kind = doc_kind_from_path(doc_path)
        if kind is None:
            logger.warning("Cannot link '%s': unsupported document type", doc_path)
            return None
        if shape_id not in self.known_ids():
            logger.warning("Cannot link unknown element '%s'", shape_id)
            return None
        link = ShapeLink(doc_path=doc_path, doc_kind=kind, title=title or _basename(doc_path))
        self.links[shape_id] = link
        self._mark_dirty()
        return link

    def unlink_shape(self, shape_id: str) -> bool:
        if self.links.pop(shape_id, None) is None:
            return False
        self._mark_dirty()
        return True

    # ----- document tabs -----

    def _find_tab(self, path: str) -> Optional[OpenDocument]:
        for doc in self.open_tabs:
            if doc.path == path:
                return doc
        return None

    async def open_document(
        self, path: str, title: Optional[str] = None
    ) -> Optional[OpenDocument]:
        """Open *path* as the active tab, fetching it at most once.

        Returns None for unsupported extensions. Raises
        DocumentNotFoundError when the file is gone; no tab is created.
        """
        kind = doc_kind_from_path(path)
        if kind is None:
            return None
        existing = self._find_tab(path)
        if existing is not None and existing.file is not None:
            self.active_tab = path
            return existing

        storage = self._require_storage()
        data = await storage.read_bytes(path)
        if data is None:
            if existing is not None:
                self.open_tabs = [t for t in self.open_tabs if t.path != path]
                if self.active_tab == path:
                    self.active_tab = self.open_tabs[-1].path if self.open_tabs else None
            logger.warning("Cannot open: %s", path)
            raise DocumentNotFoundError(f"Cannot open: {path}")

        # Another open_document call may have finished while we awaited
        existing = self._find_tab(path)
        if existing is not None:
            if existing.file is None:
                existing.file = data
            self.active_tab = path
            return existing

        doc = OpenDocument(
            path=path, kind=kind, title=title or _basename(path), file=data,
        )
        self.open_tabs.append(doc)
        self.active_tab = path
        return doc

    def close_tab(self, path: str) -> bool:
        tabs = [t for t in self.open_tabs if t.path != path]
        if len(tabs) == len(self.open_tabs):
            return False
        self.open_tabs = tabs
        if self.active_tab == path:
            self.active_tab = tabs[-1].path if tabs else None
        return True

    def set_active_tab(self, path: str) -> bool:
        if self._find_tab(path) is None:
            return False
        self.active_tab = path
        return True

    def pin_tab(self, path: str, pinned: bool) -> bool:
        doc = self._find_tab(path)
        if doc is None:
            return False
        doc.pinned = pinned
        return True
