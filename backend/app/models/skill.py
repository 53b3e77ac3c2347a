"""
Lab Skill Models
Skill catalogue, per-student assignments and the submitted evaluation logs
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, ForeignKey, JSON
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow
from app.models.base import enum_column_type


# ==================== Enums ====================

class VerificationType(str, enum.Enum):
    PEER = "peer"
    INSTRUCTOR = "instructor"


class AssignmentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


class SkillLogStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    REJECTED = "rejected"


class QuestionResponseType(str, enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    MULTIPLE_CHOICE = "multiple_choice"
    SELECT_MULTIPLE = "select_multiple"
    CHECKBOX = "checkbox"
    DATE = "date"


# ==================== Catalogue ====================

class SkillCategory(Base):
    __tablename__ = "skill_categories"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class SkillSubcategory(Base):
    __tablename__ = "skill_subcategories"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    category_id = Column(GUID, ForeignKey("skill_categories.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Skill(Base):
    """
    A lab skill with its evaluation questionnaire.

    form_schema = {"questions": [{id, question_text, response_type,
                                  is_required, order_index, options?}]}
    """
    __tablename__ = "skills"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(GUID, ForeignKey("skill_categories.id"), nullable=True, index=True)
    subcategory_id = Column(GUID, ForeignKey("skill_subcategories.id"), nullable=True)

    verification_type = Column(
        enum_column_type(VerificationType), default=VerificationType.PEER, nullable=False
    )
    form_schema = Column(JSON, default=lambda: {"questions": []}, nullable=False)

    is_template = Column(Boolean, default=False, nullable=False)
    template_id = Column(GUID, ForeignKey("skills.id"), nullable=True)

    created_by = Column(GUID, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def questions(self):
        return (self.form_schema or {}).get("questions", [])


# ==================== Assignment & Logs ====================

class SkillAssignment(Base):
    __tablename__ = "skill_assignments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    skill_id = Column(GUID, ForeignKey("skills.id"), nullable=False, index=True)
    student_id = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    class_id = Column(GUID, ForeignKey("classes.id"), nullable=True)
    assigned_by = Column(GUID, ForeignKey("profiles.id"), nullable=True)

    required_submissions = Column(Integer, default=1, nullable=False)
    completed_submissions = Column(Integer, default=0, nullable=False)
    due_date = Column(DateTime, nullable=True)
    status = Column(enum_column_type(AssignmentStatus), default=AssignmentStatus.PENDING, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class SkillLog(Base):
    """One evaluated attempt at a skill"""
    __tablename__ = "skill_logs"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    skill_id = Column(GUID, ForeignKey("skills.id"), nullable=False, index=True)
    class_id = Column(GUID, ForeignKey("classes.id"), nullable=True)
    attempt_number = Column(Integer, default=1, nullable=False)

    notes = Column(Text, nullable=True)
    media_urls = Column(JSON, default=list)
    responses = Column(JSON, default=dict)

    evaluator_name = Column(String(255), nullable=False)
    evaluator_type = Column(enum_column_type(VerificationType), nullable=False)
    instructor_signature = Column(Text, nullable=True)
    # Set when a classmate logged this attempt on the student's behalf
    evaluated_student_id = Column(GUID, ForeignKey("profiles.id"), nullable=True)

    verified_by = Column(GUID, ForeignKey("profiles.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    status = Column(enum_column_type(SkillLogStatus), default=SkillLogStatus.SUBMITTED, nullable=False)

    submitted_at = Column(DateTime, default=utcnow, nullable=False, index=True)
