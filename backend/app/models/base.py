"""Helpers shared by the model modules"""
import enum
from typing import Type

from sqlalchemy import Enum as SQLEnum


def enum_column_type(enum_cls: Type[enum.Enum]) -> SQLEnum:
    """Store the enum's value (not its name) as plain VARCHAR"""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
        validate_strings=True,
    )
