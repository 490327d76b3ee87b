"""
Input validation for diagramdocs store operations and MCP tool parameters.

Provides reusable validators that produce clear error messages for
parameters received from tool callers.
"""

from __future__ import annotations

from typing import Any

from diagramdocs.models import ShapeKind


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class DiagramDocsError(Exception):
    """Base class for every error raised by diagramdocs."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(DiagramDocsError):
    """Raised when input validation fails."""


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Ensure *value* is a non-empty string after stripping whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def validate_string(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    return value


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
) -> float:
    """Validate a numeric value and optional lower bound."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a number, got {type(value).__name__}."
        )
    val = float(value)
    if min_val is not None and val < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {val}."
        )
    return val


def validate_positive_number(value: Any, field_name: str) -> float:
    """Validate that a number is strictly positive."""
    val = validate_number(value, field_name)
    if val <= 0:
        raise ValidationError(f"'{field_name}' must be > 0, got {val}.")
    return val


def validate_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a boolean, got {type(value).__name__}."
        )
    return value


# ---------------------------------------------------------------------------
# Domain validators
# ---------------------------------------------------------------------------

_WORKSPACE_ACTIONS = {"OPEN", "LOAD", "SAVE", "STATUS", "LIST_DOCS", "IMPORT_DOC"}
_DRAW_ACTIONS = {
    "ADD_SHAPE", "ADD_CONNECTOR", "UPDATE_SHAPE", "MOVE_SHAPE",
    "DELETE_SHAPE", "DELETE_CONNECTOR", "LINK", "UNLINK", "PASTE_DRAWIO",
}
_DOCS_ACTIONS = {"OPEN", "CLOSE", "ACTIVATE", "PIN"}
_INSPECT_ACTIONS = {"SHAPES", "CONNECTORS", "LINKS", "SVG", "SIDECAR"}

_UPDATABLE_FIELDS = {"x", "y", "width", "height", "text", "kind"}


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    if not isinstance(value, str) or not value.strip():
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    normalized = value.strip().upper()
    if normalized not in allowed:
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"Unknown {tool_name} action '{value}'. Valid actions: {choices}."
        )
    return value.strip().lower()


def validate_shape_kind(value: Any) -> ShapeKind:
    """Accept a ShapeKind or its string value ('rect', 'ellipse', 'diamond')."""
    if isinstance(value, ShapeKind):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized == "rectangle":
            normalized = "rect"
        for kind in ShapeKind:
            if kind.value == normalized:
                return kind
    choices = ", ".join(k.value for k in ShapeKind)
    raise ValidationError(f"'kind' must be one of [{choices}], got '{value}'.")


def validate_shape_update(fields: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial shape update and return it normalized."""
    if not isinstance(fields, dict):
        raise ValidationError(
            f"Shape update must be a dict/object, got {type(fields).__name__}."
        )
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Unknown shape field(s): {', '.join(sorted(unknown))}."
        )
    out: dict[str, Any] = {}
    for key, val in fields.items():
        if key in ("x", "y"):
            out[key] = validate_number(val, key)
        elif key in ("width", "height"):
            out[key] = validate_positive_number(val, key)
        elif key == "text":
            out[key] = validate_string(val, key)
        elif key == "kind":
            out[key] = validate_shape_kind(val)
    return out
