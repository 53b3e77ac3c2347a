# Re-export all models for convenient imports
from app.models.user import User, UserRole
from app.models.classroom import Class, ClassEnrollment
from app.models.skill import (
    SkillCategory,
    SkillSubcategory,
    Skill,
    SkillAssignment,
    SkillLog,
    VerificationType,
    AssignmentStatus,
    SkillLogStatus,
    QuestionResponseType,
)
from app.models.clinical import (
    ClinicalType,
    ClinicalForm,
    ClinicalFormField,
    ClinicalFormAssignment,
    ClinicalShift,
    ClinicalEntry,
    ClinicalEntryDraft,
    FormFieldType,
    FormAssignmentStatus,
)
from app.models.portfolio import (
    PortfolioTemplate,
    PortfolioSection,
    PortfolioField,
    PortfolioInstance,
    PortfolioData,
    PortfolioFieldType,
    PortfolioStatus,
)
from app.models.report import SavedQuery

__all__ = [
    # Users
    "User",
    "UserRole",
    "Class",
    "ClassEnrollment",
    # Skills
    "SkillCategory",
    "SkillSubcategory",
    "Skill",
    "SkillAssignment",
    "SkillLog",
    "VerificationType",
    "AssignmentStatus",
    "SkillLogStatus",
    "QuestionResponseType",
    # Clinical
    "ClinicalType",
    "ClinicalForm",
    "ClinicalFormField",
    "ClinicalFormAssignment",
    "ClinicalShift",
    "ClinicalEntry",
    "ClinicalEntryDraft",
    "FormFieldType",
    "FormAssignmentStatus",
    # Portfolios
    "PortfolioTemplate",
    "PortfolioSection",
    "PortfolioField",
    "PortfolioInstance",
    "PortfolioData",
    "PortfolioFieldType",
    "PortfolioStatus",
    # Reports
    "SavedQuery",
]
