"""
Custom Exceptions for SkillTrack
================================

Use these instead of generic Exception so the API layer can map each failure
to a status code and a message a student or instructor can act on.

Usage:
    from app.core.exceptions import ClinicalFormNotFoundError, ValidationError

    if not form:
        raise ClinicalFormNotFoundError(form_id)

    if shift_end <= shift_start:
        raise ValidationError("Shift end time must be after start time", field="shift_end")
"""

from dataclasses import dataclass, asdict
from typing import Optional, Any, Dict, List


class SkillTrackError(Exception):
    """Base exception for all SkillTrack errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


@dataclass
class FieldError:
    """A single validation failure bound to a form field"""
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(SkillTrackError):
    """User authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class SessionExpiredError(AuthenticationError):
    """JWT token has expired"""

    def __init__(self):
        super().__init__("Your session has expired. Please sign in again.")
        self.code = "SESSION_EXPIRED"


class AuthorizationError(SkillTrackError):
    """User not authorized for this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


class FormNotAssignedError(AuthorizationError):
    """Student tried to submit a clinical form nobody assigned to them"""

    def __init__(self, form_id: str = ""):
        super().__init__("This form has not been assigned to you")
        self.code = "FORM_NOT_ASSIGNED"
        if form_id:
            self.details["form_id"] = form_id


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(SkillTrackError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class UserNotFoundError(ResourceNotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User", user_id)


class ClinicalTypeNotFoundError(ResourceNotFoundError):
    def __init__(self, type_id: str):
        super().__init__("Clinical type", type_id)


class ClinicalFormNotFoundError(ResourceNotFoundError):
    def __init__(self, form_id: str):
        super().__init__("Clinical form", form_id)


class FormFieldNotFoundError(ResourceNotFoundError):
    def __init__(self, field_id: str):
        super().__init__("Form field", field_id)


class ClinicalEntryNotFoundError(ResourceNotFoundError):
    def __init__(self, entry_id: str):
        super().__init__("Clinical entry", entry_id)


class ShiftNotFoundError(ResourceNotFoundError):
    def __init__(self, shift_id: str):
        super().__init__("Shift", shift_id)


class SkillNotFoundError(ResourceNotFoundError):
    def __init__(self, skill_id: str):
        super().__init__("Skill", skill_id)


class SkillLogNotFoundError(ResourceNotFoundError):
    def __init__(self, log_id: str):
        super().__init__("Skill log", log_id)


class ClassNotFoundError(ResourceNotFoundError):
    def __init__(self, class_id: str):
        super().__init__("Class", class_id)


class PortfolioTemplateNotFoundError(ResourceNotFoundError):
    def __init__(self, template_id: str):
        super().__init__("Portfolio template", template_id)


class PortfolioNotFoundError(ResourceNotFoundError):
    def __init__(self, instance_id: str):
        super().__init__("Portfolio", instance_id)


class SavedQueryNotFoundError(ResourceNotFoundError):
    def __init__(self, query_id: str):
        super().__init__("Saved query", query_id)


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(SkillTrackError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)
        self.field = field


class ValidationErrors(SkillTrackError):
    """Several field validation failures reported together"""

    status_code = 422

    def __init__(self, errors: List[FieldError]):
        self.errors = list(errors)
        super().__init__(
            ", ".join(e.message for e in self.errors),
            code="VALIDATION_FAILED",
            details={"errors": [e.to_dict() for e in self.errors]}
        )


class ShiftNotActiveError(ValidationError):
    """No clinical shift is running for the student"""

    def __init__(self, message: str = "Please start a clinical shift before submitting documentation"):
        super().__init__(message)
        self.code = "SHIFT_NOT_ACTIVE"


# ============================================
# Conflict Errors (409-type)
# ============================================

class ConflictError(SkillTrackError):
    """Request conflicts with current state"""

    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, code="CONFLICT")


class DataIntegrityError(ConflictError):
    """Database constraint violated"""

    def __init__(self, message: str = "This record already exists."):
        super().__init__(message)
        self.code = "DATA_INTEGRITY"


# ============================================
# User-facing message helpers
# ============================================

NETWORK_ERROR_PATTERNS = (
    "Failed to fetch",
    "NetworkError",
    "Network request failed",
    "Network Error",
    "socket hang up",
    "ECONNREFUSED",
    "connection refused",
    "network timeout",
)


def describe_error(error: Any) -> str:
    """Best user-facing message for any raised value"""
    if isinstance(error, SkillTrackError):
        return error.message
    if isinstance(error, BaseException) and str(error):
        return str(error)
    return "An unexpected error occurred"


def is_network_error(error: Any) -> bool:
    """True when the error text looks like a dropped or refused connection"""
    if error is None:
        return False
    text = str(error).lower()
    return any(pattern.lower() in text for pattern in NETWORK_ERROR_PATTERNS)


def describe_database_error(error: Any) -> str:
    """Translate a database driver error into something a user can act on"""
    if is_network_error(error):
        return "Connection error. Please check your internet connection and try again."

    text = str(getattr(error, "orig", None) or error)
    lowered = text.lower()

    if "jwt" in lowered:
        return "Your session has expired. Please sign in again."
    if "permission denied" in lowered:
        return "You do not have permission to perform this action."
    if "duplicate key" in lowered or "unique constraint" in lowered:
        return "This record already exists."
    if "foreign key" in lowered:
        return "This operation would break data relationships."

    return text or "An unexpected error occurred"


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: SkillTrackError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
