"""
Query builder conditions

Conditions are evaluated in Python against rows that were already fetched in
full (skill log rows carry `responses`, clinical entry rows `form_data`).
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel


class QueryCondition(BaseModel):
    field: str
    operator: str = "equals"
    value: str = ""


@dataclass(frozen=True)
class OperatorOption:
    value: str
    label: str

    def to_dict(self) -> Dict[str, str]:
        return {"value": self.value, "label": self.label}


EQUALS = OperatorOption("equals", "Equals")
NOT_EQUALS = OperatorOption("not_equals", "Does Not Equal")
GREATER_THAN = OperatorOption("greater_than", "Greater Than")
LESS_THAN = OperatorOption("less_than", "Less Than")
GREATER_EQUAL = OperatorOption("greater_equal", "Greater Than or Equal")
LESS_EQUAL = OperatorOption("less_equal", "Less Than or Equal")
CONTAINS = OperatorOption("contains", "Contains")
NOT_CONTAINS = OperatorOption("not_contains", "Does Not Contain")
CONTAINS_ALL = OperatorOption("contains_all", "Contains All")
STARTS_WITH = OperatorOption("starts_with", "Starts With")
ENDS_WITH = OperatorOption("ends_with", "Ends With")

NUMERIC_OPERATORS = [EQUALS, GREATER_THAN, LESS_THAN, GREATER_EQUAL, LESS_EQUAL]
CHOICE_OPERATORS = [EQUALS, NOT_EQUALS]
MULTI_CHOICE_OPERATORS = [CONTAINS, NOT_CONTAINS, CONTAINS_ALL]
TEXT_OPERATORS = [EQUALS, CONTAINS, STARTS_WITH, ENDS_WITH]

OPERATORS_BY_TYPE = {
    "submission_count": NUMERIC_OPERATORS,
    "number": NUMERIC_OPERATORS,
    "select": CHOICE_OPERATORS,
    "multiple_choice": CHOICE_OPERATORS,
    "multiselect": MULTI_CHOICE_OPERATORS,
    "select_multiple": MULTI_CHOICE_OPERATORS,
    "text": TEXT_OPERATORS,
    "longtext": TEXT_OPERATORS,
    "date": TEXT_OPERATORS,
    "time": TEXT_OPERATORS,
    "checkbox": TEXT_OPERATORS,
}

_MISSING = object()


def operator_options(field_type: Optional[str], field_id: Optional[str] = None) -> List[Dict[str, str]]:
    """Operators the query builder offers for a field of this type"""
    if field_id == "submission_count":
        field_type = "submission_count"
    options = OPERATORS_BY_TYPE.get(field_type or "", [EQUALS])
    return [option.to_dict() for option in options]


def resolve_value(row: Mapping[str, Any], field: str) -> Any:
    """form_data first, then responses, then the row's own column"""
    for container in ("form_data", "responses"):
        nested = row.get(container)
        if isinstance(nested, Mapping):
            value = nested.get(field, _MISSING)
            if value is not _MISSING:
                return value
    return row.get(field)


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if number != number else number  # NaN never compares


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value).lower()
    return str(value).lower()


def _compare_numbers(actual: Any, expected: Any, operator: str) -> bool:
    left, right = _to_float(actual), _to_float(expected)
    if left is None or right is None:
        return False
    if operator == "greater_than":
        return left > right
    if operator == "less_than":
        return left < right
    if operator == "greater_equal":
        return left >= right
    return left <= right


def _contains_all(actual: Any, expected: Any) -> bool:
    required = [v.strip().lower() for v in str(expected).split(",")]
    if isinstance(actual, (list, tuple)):
        present = [str(v).lower() for v in actual]
    else:
        present = [v.strip() for v in _text(actual).split(",")]
    return all(v in present for v in required)


def evaluate(actual: Any, operator: str, expected: Any) -> bool:
    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator in ("greater_than", "less_than", "greater_equal", "less_equal"):
        return _compare_numbers(actual, expected, operator)
    if operator == "contains":
        return _text(expected) in _text(actual)
    if operator == "not_contains":
        return _text(expected) not in _text(actual)
    if operator == "contains_all":
        return _contains_all(actual, expected)
    if operator == "starts_with":
        return _text(actual).startswith(_text(expected))
    if operator == "ends_with":
        return _text(actual).endswith(_text(expected))
    # Unrecognised operators do not filter anything out
    return True


def matches(row: Mapping[str, Any], condition: QueryCondition) -> bool:
    return evaluate(resolve_value(row, condition.field), condition.operator, condition.value)


def matches_all(row: Mapping[str, Any], conditions: Iterable[QueryCondition]) -> bool:
    return all(matches(row, c) for c in conditions)


def filter_rows(rows: List[Mapping[str, Any]], conditions: List[QueryCondition]) -> List[Mapping[str, Any]]:
    if not conditions:
        return list(rows)
    return [row for row in rows if matches_all(row, conditions)]


def count_if(rows: List[Mapping[str, Any]], conditions: List[QueryCondition]) -> Dict[str, int]:
    """
    Per-condition match counts keyed by field.

    Every condition is counted over all rows on its own; when two conditions
    share a field the later count wins.
    """
    counts: Dict[str, int] = {}
    for condition in conditions:
        counts[condition.field] = sum(1 for row in rows if matches(row, condition))
    return counts
