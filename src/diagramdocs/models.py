"""
Core data model for diagramdocs diagrams.

Shapes, connectors and shape-to-document links are plain dataclasses.
The codecs consume and produce lists of these objects; only the store
keeps a live, mutable diagram.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ShapeKind(Enum):
    RECT = "rect"
    ELLIPSE = "ellipse"
    DIAMOND = "diamond"


class ConnectorKind(Enum):
    STRAIGHT = "straight"
    ORTHOGONAL = "orthogonal"  # reserved, nothing routes orthogonally yet


class DocKind(Enum):
    PDF = "pdf"
    IMAGE = "image"
    MARKDOWN = "markdown"
    JSON = "json"


DOC_EXTENSIONS: dict[DocKind, tuple[str, ...]] = {
    DocKind.PDF: ("pdf",),
    DocKind.IMAGE: ("png", "jpg", "jpeg", "svg", "webp"),
    DocKind.MARKDOWN: ("md",),
    DocKind.JSON: ("json",),
}

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
    ext for exts in DOC_EXTENSIONS.values() for ext in exts
)

# Default sizes for freshly added shapes (width, height)
DEFAULT_SIZES: dict[ShapeKind, tuple[float, float]] = {
    ShapeKind.RECT: (120, 50),
    ShapeKind.ELLIPSE: (120, 50),
    ShapeKind.DIAMOND: (80, 80),
}


def doc_kind_from_path(path: str) -> Optional[DocKind]:
    """Return the document kind implied by *path*'s extension, or None."""
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return None
    ext = name.rsplit(".", 1)[-1].lower()
    for kind, exts in DOC_EXTENSIONS.items():
        if ext in exts:
            return kind
    return None


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

@dataclass
class Bounds:
    """Axis-aligned bounding box."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2

    def contains_point(self, px: float, py: float) -> bool:
        """Check if a point is inside this bounding box (edges included)."""
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def distance_sq_to_center(self, px: float, py: float) -> float:
        return (px - self.cx) ** 2 + (py - self.cy) ** 2

    @classmethod
    def from_points(cls, points: list[tuple[float, float]]) -> 'Bounds':
        """Smallest box containing every point."""
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        return cls(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


def snap_to_grid(value: float, grid_size: int = 10) -> float:
    """Snap a coordinate to the nearest grid point."""
    return round(value / grid_size) * grid_size


def _uid() -> str:
    return uuid.uuid4().hex[:8]


def new_shape_id() -> str:
    return f"node-{_uid()}"


def new_connector_id() -> str:
    return f"conn-{_uid()}"


# ---------------------------------------------------------------------------
# Diagram entities
# ---------------------------------------------------------------------------

@dataclass
class Shape:
    """A positioned, sized diagram node with a plain-text label."""
    id: str
    kind: ShapeKind
    x: float
    y: float
    width: float
    height: float
    text: str = ""

    @property
    def bounds(self) -> Bounds:
        return Bounds(self.x, self.y, self.width, self.height)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "text": self.text,
        }


@dataclass
class Connector:
    """A directed edge between two shapes."""
    id: str
    source: str
    target: str
    kind: ConnectorKind = ConnectorKind.STRAIGHT

    def touches(self, shape_id: str) -> bool:
        return self.source == shape_id or self.target == shape_id

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "from": self.source,
            "to": self.target,
            "type": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Optional['Connector']:
        """Build a connector from its JSON form; None if it is unusable."""
        cid = data.get("id")
        source = data.get("from")
        target = data.get("to")
        if not all(isinstance(v, str) and v for v in (cid, source, target)):
            return None
        if source == target:
            return None
        try:
            kind = ConnectorKind(data.get("type", "straight"))
        except ValueError:
            kind = ConnectorKind.STRAIGHT
        return cls(id=cid, source=source, target=target, kind=kind)


@dataclass
class ShapeLink:
    """Association from a diagram element to a workspace document."""
    doc_path: str
    doc_kind: DocKind
    title: Optional[str] = None


@dataclass
class OpenTab:
    """Persisted record of a document tab."""
    doc_path: str
    active: bool = False
    pinned: bool = False
    group: str = "main"


@dataclass
class OpenDocument:
    """A document opened during a session (never persisted as geometry)."""
    path: str
    kind: DocKind
    title: str
    file: Optional[bytes] = field(default=None, repr=False)
    pinned: bool = False
