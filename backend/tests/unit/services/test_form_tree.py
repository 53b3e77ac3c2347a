"""
Unit Tests for the dynamic form hierarchy
Tests for: field definition checks, tree building, rendering, response checks
"""
import pytest

from app.core.exceptions import ValidationError
from app.services.form_tree import (
    build_field_tree,
    first_missing_required,
    is_empty_response,
    iter_tree,
    render_form,
    validate_field_definition,
    validate_responses,
)


def field(id, name, field_type="text", parent=None, order=0, required=False, options=None, label=None):
    return {
        "id": id,
        "field_name": name,
        "field_label": label or name.replace("_", " ").title(),
        "field_type": field_type,
        "field_options": options or [],
        "required": required,
        "order_index": order,
        "parent_field_id": parent,
    }


class TestValidateFieldDefinition:
    """Test field definition rules"""

    def test_valid_text_field(self):
        cleaned = validate_field_definition(
            {"field_name": " vitals ", "field_label": "Vitals", "field_type": "text"}
        )
        assert cleaned["field_name"] == "vitals"
        assert cleaned["field_options"] == []

    def test_name_required(self):
        with pytest.raises(ValidationError) as exc:
            validate_field_definition({"field_name": "", "field_label": "X", "field_type": "text"})
        assert exc.value.message == "Field name is required"

    def test_name_characters(self):
        with pytest.raises(ValidationError) as exc:
            validate_field_definition({"field_name": "blood pressure", "field_label": "BP", "field_type": "text"})
        assert exc.value.message == "Field name can only contain letters, numbers, and underscores"
        assert exc.value.field == "field_name"

    def test_label_required(self):
        with pytest.raises(ValidationError) as exc:
            validate_field_definition({"field_name": "bp", "field_label": "  ", "field_type": "text"})
        assert exc.value.message == "Field label is required"

    def test_select_needs_options(self):
        with pytest.raises(ValidationError) as exc:
            validate_field_definition(
                {"field_name": "side", "field_label": "Side", "field_type": "select", "field_options": ["  "]}
            )
        assert exc.value.message == "At least one option is required for select fields"

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            validate_field_definition({"field_name": "x", "field_label": "X", "field_type": "slider"})

    def test_instructions_never_required(self):
        cleaned = validate_field_definition(
            {"field_name": "intro", "field_label": "Read first", "field_type": "instructions", "required": True}
        )
        assert cleaned["required"] is False


class TestBuildFieldTree:
    """Test nesting by parent_field_id"""

    def test_nests_and_orders_children(self):
        fields = [
            field("c2", "second", parent="p", order=1),
            field("p", "parent"),
            field("c1", "first", parent="p", order=0),
        ]
        tree = build_field_tree(fields)

        assert [n["id"] for n in tree] == ["p"]
        assert [c["id"] for c in tree[0]["subfields"]] == ["c1", "c2"]

    def test_orphan_becomes_root(self):
        tree = build_field_tree([field("a", "a", parent="missing")])
        assert tree[0]["id"] == "a"

    def test_depth_first_walk(self):
        fields = [
            field("a", "a", order=0),
            field("a1", "a1", parent="a"),
            field("b", "b", order=1),
        ]
        assert [n["id"] for n in iter_tree(build_field_tree(fields))] == ["a", "a1", "b"]

    def test_self_parent_is_root(self):
        tree = build_field_tree([field("a", "a", parent="a")])
        assert tree[0]["subfields"] == []


class TestRenderForm:
    """Test widget descriptors"""

    def test_widgets_per_type(self):
        fields = [
            field("1", "notes", "longtext", order=0),
            field("2", "side", "select", order=1, options=["Left", "Right"]),
            field("3", "intro", "instructions", order=2, required=True, label="Wash hands first"),
        ]
        rendered = render_form({"id": "form-1", "name": "IV Form"}, fields)
        notes, side, intro = rendered["fields"]

        assert rendered["form"]["name"] == "IV Form"
        assert notes["widget"] == "textarea"
        assert side["widget"] == "select"
        assert side["options"] == ["Left", "Right"]
        assert intro["widget"] == "static"
        assert intro["content"] == "Wash hands first"
        assert intro["required"] is False


class TestResponses:
    """Test submitted response checks"""

    @pytest.fixture
    def fields(self):
        return [
            field("1", "site", required=True, order=0, label="Insertion Site"),
            field("2", "attempts", "number", order=1),
            field("3", "gauge", "select", order=2, options=["18", "20", "22"]),
            field("4", "done_on", "date", order=3),
            field("5", "intro", "instructions", order=4, required=True),
        ]

    def test_empty_values(self):
        assert is_empty_response(None)
        assert is_empty_response("   ")
        assert is_empty_response([])
        assert not is_empty_response(0)
        assert not is_empty_response(False)

    def test_first_missing_required(self, fields):
        missing = first_missing_required(fields, {"attempts": "2"})
        assert missing["field_label"] == "Insertion Site"

    def test_nothing_missing(self, fields):
        assert first_missing_required(fields, {"site": "Left forearm"}) is None

    def test_type_errors_collected_in_form_order(self, fields):
        errors = validate_responses(fields, {
            "site": "Left forearm",
            "attempts": "two",
            "gauge": "16",
            "done_on": "03/04/2024",
        })
        assert [e.field for e in errors] == ["attempts", "gauge", "done_on"]
        assert errors[0].message == "Attempts must be a number"

    def test_valid_responses(self, fields):
        assert validate_responses(fields, {
            "site": "Left forearm", "attempts": 2, "gauge": "20", "done_on": "2024-03-04"
        }) == []

    def test_required_message(self, fields):
        errors = validate_responses(fields, {})
        assert errors[0].message == "Please fill in required field: Insertion Site"
