"""
Style parsing and presentation presets.

Reads draw.io style strings (``ellipse;whiteSpace=wrap;fillColor=#fff;``)
and holds the colour palette used when rendering shapes to SVG.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from diagramdocs.models import ShapeKind


# ---------------------------------------------------------------------------
# draw.io style strings
# ---------------------------------------------------------------------------

class DrawioStyle:
    """Parsed view of a semicolon-delimited draw.io style string."""

    def __init__(self, raw: str = "") -> None:
        self.raw = raw or ""
        self._parts: dict[str, str] = {}
        self._flags: list[str] = []
        self._parse(self.raw)

    def _parse(self, raw: str) -> None:
        tokens = [t.strip() for t in raw.split(";") if t.strip()]
        for tok in tokens:
            if "=" in tok:
                k, v = tok.split("=", 1)
                self._parts[k] = v
            else:
                # Bare shape names like "ellipse", "rhombus", "text", "group"
                self._flags.append(tok)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._parts.get(key, default)

    def has_flag(self, name: str) -> bool:
        return name.lower() in (f.lower() for f in self._flags)

    @property
    def shape_names(self) -> set[str]:
        """Lower-cased shape names from bare tokens and the ``shape=`` key."""
        names = {f.lower() for f in self._flags}
        shape = self._parts.get("shape")
        if shape:
            names.add(shape.lower())
        return names


_ELLIPSE_KEYWORDS = {"ellipse", "doubleellipse"}
_DIAMOND_KEYWORDS = {"rhombus", "diamond", "hexagon"}


def shape_kind_from_style(style: str) -> ShapeKind:
    """Classify a draw.io vertex style into one of the supported kinds."""
    names = DrawioStyle(style).shape_names
    if names & _ELLIPSE_KEYWORDS:
        return ShapeKind.ELLIPSE
    if names & _DIAMOND_KEYWORDS:
        return ShapeKind.DIAMOND
    return ShapeKind.RECT


def is_non_diagram_style(style: str) -> bool:
    """True for group containers, connector-styled cells and text or edge labels."""
    lowered = (style or "").lower()
    parsed = DrawioStyle(lowered)
    if "group" in lowered:
        return True
    if parsed.get("shape") == "connector":
        return True
    return parsed.has_flag("text") or parsed.has_flag("edgelabel")


# ---------------------------------------------------------------------------
# SVG presentation presets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ShapePalette:
    """Fill / stroke colours used for one shape kind."""
    fill: str
    stroke: str = "#45475a"
    stroke_width: float = 2


PALETTES: dict[ShapeKind, ShapePalette] = {
    ShapeKind.RECT: ShapePalette(fill="#89b4fa"),
    ShapeKind.ELLIPSE: ShapePalette(fill="#a6e3a1"),
    ShapeKind.DIAMOND: ShapePalette(fill="#f9e2af"),
}

CONNECTOR_STROKE = "#6c7086"
CONNECTOR_STROKE_WIDTH = 2
TEXT_FILL = "#1e1e2e"
TEXT_FONT_SIZE = 12
RECT_CORNER_RADIUS = 4
