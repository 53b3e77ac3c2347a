"""
Input validation helpers shared by the service layer.

Each validator returns a FieldError on failure and None on success, so they
compose into validate_form() without raising.
"""

import re
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type

from app.core.exceptions import FieldError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6

Rule = Callable[[Any], Optional[FieldError]]


def validate_email(email: Optional[str]) -> Optional[FieldError]:
    if not email or not EMAIL_PATTERN.match(email):
        return FieldError("email", "Please enter a valid email address")
    return None


def validate_password(password: Optional[str]) -> Optional[FieldError]:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return FieldError(
            "password",
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    return None


def validate_required(value: Any, field_name: str) -> Optional[FieldError]:
    """Falsy values and whitespace-only strings count as missing"""
    if isinstance(value, str):
        value = value.strip()
    if not value:
        return FieldError(field_name.lower(), f"{field_name} is required")
    return None


def validate_form(values: Mapping[str, Any], rules: Dict[str, Rule]) -> List[FieldError]:
    """Apply each rule to its field and collect the failures in rule order"""
    errors = []
    for field, rule in rules.items():
        error = rule(values.get(field))
        if error:
            errors.append(error)
    return errors


def is_enum_value(value: Any, enum_cls: Type[Enum]) -> bool:
    return value in {member.value for member in enum_cls}


def has_required_props(obj: Any, props: Iterable[str]) -> bool:
    if not isinstance(obj, Mapping):
        return False
    return all(prop in obj for prop in props)
