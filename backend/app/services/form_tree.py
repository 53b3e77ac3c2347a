"""
Dynamic Form Hierarchy
Validates clinical form field definitions, nests them into a tree by
parent_field_id, renders widget descriptors and checks submitted responses.

Fields are plain dicts shaped like ClinicalFormField rows.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from app.core.exceptions import FieldError, ValidationError
from app.models.clinical import FormFieldType

FIELD_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
SELECT_TYPES = {FormFieldType.SELECT.value, FormFieldType.MULTISELECT.value}
FIELD_TYPES = {t.value for t in FormFieldType}

# field_type -> widget descriptor
WIDGETS: Dict[str, Dict[str, Any]] = {
    "text": {"widget": "input", "input_type": "text"},
    "longtext": {"widget": "textarea", "rich_text": True},
    "number": {"widget": "input", "input_type": "number"},
    "date": {"widget": "input", "input_type": "date"},
    "time": {"widget": "input", "input_type": "time"},
    "select": {"widget": "select"},
    "multiselect": {"widget": "checkbox-group"},
    "checkbox": {"widget": "checkbox"},
    "instructions": {"widget": "static"},
}


def _type_of(field: Mapping[str, Any]) -> str:
    value = field.get("field_type")
    return getattr(value, "value", value)


def option_values(options: Optional[List[Any]]) -> List[str]:
    values = []
    for option in options or []:
        if isinstance(option, Mapping):
            option = option.get("value")
        if option is not None and str(option).strip():
            values.append(str(option))
    return values


def validate_field_definition(field: Dict[str, Any]) -> Dict[str, Any]:
    """Check a field definition before it is stored; returns the cleaned copy"""
    cleaned = dict(field)
    field_type = _type_of(cleaned)

    if field_type not in FIELD_TYPES:
        raise ValidationError(f"Unsupported field type: {field_type}", field="field_type")

    name = (cleaned.get("field_name") or "").strip()
    if not name:
        raise ValidationError("Field name is required", field="field_name")
    if not FIELD_NAME_PATTERN.match(name):
        raise ValidationError(
            "Field name can only contain letters, numbers, and underscores",
            field="field_name"
        )
    cleaned["field_name"] = name

    label = (cleaned.get("field_label") or "").strip()
    if not label:
        raise ValidationError("Field label is required", field="field_label")
    cleaned["field_label"] = label

    if field_type in SELECT_TYPES:
        options = option_values(cleaned.get("field_options"))
        if not options:
            raise ValidationError(
                "At least one option is required for select fields",
                field="field_options"
            )
        cleaned["field_options"] = options
    else:
        cleaned["field_options"] = cleaned.get("field_options") or []

    if field_type == FormFieldType.INSTRUCTIONS.value:
        cleaned["required"] = False

    return cleaned


def build_field_tree(fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Nest fields under their parents.

    Roots are fields without a parent or whose parent is not in the list.
    Siblings are ordered by order_index. A field is placed at most once, so
    parent cycles end the descent instead of looping.
    """
    by_id = {f["id"]: f for f in fields}
    children: Dict[str, List[Dict[str, Any]]] = {}
    roots = []

    for field in fields:
        parent_id = field.get("parent_field_id")
        if parent_id and parent_id in by_id and parent_id != field["id"]:
            children.setdefault(parent_id, []).append(field)
        else:
            roots.append(field)

    placed = set()

    def attach(field: Dict[str, Any]) -> Dict[str, Any]:
        placed.add(field["id"])
        kids = sorted(children.get(field["id"], []), key=lambda f: f.get("order_index") or 0)
        node = dict(field)
        node["subfields"] = [attach(k) for k in kids if k["id"] not in placed]
        return node

    return [attach(f) for f in sorted(roots, key=lambda f: f.get("order_index") or 0)]


def iter_tree(nodes: List[Dict[str, Any]]):
    """Depth-first walk in display order"""
    for node in nodes:
        yield node
        yield from iter_tree(node.get("subfields", []))


def render_field(node: Dict[str, Any]) -> Dict[str, Any]:
    field_type = _type_of(node)
    rendered = {
        "id": node.get("id"),
        "name": node.get("field_name"),
        "label": node.get("field_label"),
        "field_type": field_type,
        "required": bool(node.get("required")) and field_type != FormFieldType.INSTRUCTIONS.value,
        **WIDGETS.get(field_type, WIDGETS["text"]),
    }
    if field_type in SELECT_TYPES:
        rendered["options"] = option_values(node.get("field_options"))
    if field_type == FormFieldType.INSTRUCTIONS.value:
        rendered["content"] = node.get("field_label")
    rendered["subfields"] = [render_field(child) for child in node.get("subfields", [])]
    return rendered


def render_form(form: Dict[str, Any], fields: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "form": form,
        "fields": [render_field(node) for node in build_field_tree(fields)],
    }


def is_empty_response(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def _parses(value: str, *formats: str) -> bool:
    for fmt in formats:
        try:
            datetime.strptime(value, fmt)
            return True
        except ValueError:
            continue
    return False


def _type_error(field: Dict[str, Any], value: Any) -> Optional[str]:
    field_type = _type_of(field)
    label = field.get("field_label") or field.get("field_name")

    if field_type == FormFieldType.NUMBER.value:
        if isinstance(value, bool):
            return f"{label} must be a number"
        try:
            float(value)
        except (TypeError, ValueError):
            return f"{label} must be a number"
    elif field_type == FormFieldType.SELECT.value:
        if str(value) not in option_values(field.get("field_options")):
            return f"{label} has an invalid option"
    elif field_type == FormFieldType.MULTISELECT.value:
        allowed = set(option_values(field.get("field_options")))
        if not isinstance(value, list) or not {str(v) for v in value} <= allowed:
            return f"{label} has an invalid option"
    elif field_type == FormFieldType.CHECKBOX.value:
        if not isinstance(value, bool):
            return f"{label} must be checked or unchecked"
    elif field_type == FormFieldType.DATE.value:
        if not isinstance(value, str) or not _parses(value, "%Y-%m-%d"):
            return f"{label} must be a date (YYYY-MM-DD)"
    elif field_type == FormFieldType.TIME.value:
        if not isinstance(value, str) or not _parses(value, "%H:%M", "%H:%M:%S"):
            return f"{label} must be a time (HH:MM)"
    return None


def validate_responses(fields: List[Dict[str, Any]], responses: Mapping[str, Any]) -> List[FieldError]:
    """All problems with a submission, in form order"""
    errors = []
    for field in iter_tree(build_field_tree(fields)):
        if _type_of(field) == FormFieldType.INSTRUCTIONS.value:
            continue

        name = field["field_name"]
        value = responses.get(name)

        if is_empty_response(value):
            if field.get("required"):
                errors.append(FieldError(name, f"Please fill in required field: {field['field_label']}"))
            continue

        message = _type_error(field, value)
        if message:
            errors.append(FieldError(name, message))
    return errors


def first_missing_required(fields: List[Dict[str, Any]], responses: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    for field in iter_tree(build_field_tree(fields)):
        if _type_of(field) == FormFieldType.INSTRUCTIONS.value:
            continue
        if field.get("required") and is_empty_response(responses.get(field["field_name"])):
            return field
    return None
