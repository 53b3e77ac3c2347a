# Authentication module

from app.modules.auth.dependencies import (
    get_current_user,
    get_current_instructor,
    get_current_admin,
    get_current_student,
)

__all__ = [
    "get_current_user",
    "get_current_instructor",
    "get_current_admin",
    "get_current_student",
]
