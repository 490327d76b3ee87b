"""Tests for input validation helpers."""

import pytest

from diagramdocs.models import ShapeKind
from diagramdocs.validation import (
    DiagramDocsError,
    ValidationError,
    validate_action,
    validate_bool,
    validate_non_empty_string,
    validate_number,
    validate_positive_number,
    validate_shape_kind,
    validate_shape_update,
    validate_string,
    _DRAW_ACTIONS,
    _WORKSPACE_ACTIONS,
)


# ===================================================================
# Primitive validators
# ===================================================================


class TestValidateNonEmptyString:
    def test_valid(self) -> None:
        assert validate_non_empty_string("hello", "f") == "hello"

    def test_strips_whitespace(self) -> None:
        assert validate_non_empty_string("  hi  ", "f") == "hi"

    def test_whitespace_only(self) -> None:
        with pytest.raises(ValidationError, match="non-empty"):
            validate_non_empty_string("   ", "field")

    def test_not_a_string(self) -> None:
        with pytest.raises(ValidationError, match="non-empty"):
            validate_non_empty_string(None, "field")


class TestValidateNumber:
    def test_valid_int(self) -> None:
        assert validate_number(42, "n") == 42.0

    def test_min_val(self) -> None:
        with pytest.raises(ValidationError, match=">="):
            validate_number(-1, "n", min_val=0)

    def test_rejects_bool(self) -> None:
        with pytest.raises(ValidationError, match="number"):
            validate_number(True, "n")

    def test_rejects_string(self) -> None:
        with pytest.raises(ValidationError, match="number"):
            validate_number("5", "n")

    def test_positive(self) -> None:
        assert validate_positive_number(0.5, "w") == 0.5
        with pytest.raises(ValidationError, match="> 0"):
            validate_positive_number(0, "w")


def test_validate_string_and_bool() -> None:
    assert validate_string("", "text") == ""
    with pytest.raises(ValidationError):
        validate_string(3, "text")
    assert validate_bool(False, "snap") is False
    with pytest.raises(ValidationError, match="boolean"):
        validate_bool(1, "snap")


def test_errors_carry_message() -> None:
    try:
        validate_non_empty_string("", "path")
    except DiagramDocsError as exc:
        assert exc.message == "'path' must be a non-empty string."
    else:
        pytest.fail("expected a validation error")


# ===================================================================
# Domain validators
# ===================================================================


class TestValidateAction:
    def test_normalizes_case(self) -> None:
        assert validate_action("  Add_Shape ", "draw", _DRAW_ACTIONS) == "add_shape"

    def test_unknown_lists_choices(self) -> None:
        with pytest.raises(ValidationError, match="Valid actions: import_doc, list_docs"):
            validate_action("explode", "workspace", _WORKSPACE_ACTIONS)

    def test_missing(self) -> None:
        with pytest.raises(ValidationError, match="requires an 'action'"):
            validate_action("", "draw", _DRAW_ACTIONS)


class TestValidateShapeKind:
    def test_values(self) -> None:
        assert validate_shape_kind("Ellipse") == ShapeKind.ELLIPSE
        assert validate_shape_kind("rectangle") == ShapeKind.RECT
        assert validate_shape_kind(ShapeKind.DIAMOND) == ShapeKind.DIAMOND

    def test_unknown(self) -> None:
        with pytest.raises(ValidationError, match="rect, ellipse, diamond"):
            validate_shape_kind("cloud")


class TestValidateShapeUpdate:
    def test_normalizes(self) -> None:
        out = validate_shape_update({"x": 1, "width": 30, "text": "t", "kind": "diamond"})
        assert out == {"x": 1.0, "width": 30.0, "text": "t", "kind": ShapeKind.DIAMOND}

    def test_unknown_field(self) -> None:
        with pytest.raises(ValidationError, match="Unknown shape field"):
            validate_shape_update({"id": "node-1"})

    def test_non_positive_size(self) -> None:
        with pytest.raises(ValidationError, match="'height' must be > 0"):
            validate_shape_update({"height": 0})

    def test_not_a_dict(self) -> None:
        with pytest.raises(ValidationError, match="dict"):
            validate_shape_update(["x"])
