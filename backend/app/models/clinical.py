"""
Clinical Documentation Models
Clinical types, their dynamic forms, form assignments, shifts and entries
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, ForeignKey, JSON, UniqueConstraint
)
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow
from app.models.base import enum_column_type


# ==================== Enums ====================

class FormFieldType(str, enum.Enum):
    TEXT = "text"
    LONGTEXT = "longtext"
    NUMBER = "number"
    DATE = "date"
    TIME = "time"
    SELECT = "select"
    MULTISELECT = "multiselect"
    CHECKBOX = "checkbox"
    INSTRUCTIONS = "instructions"


class FormAssignmentStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


# ==================== Forms ====================

class ClinicalType(Base):
    __tablename__ = "clinical_types"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ClinicalForm(Base):
    __tablename__ = "clinical_forms"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    clinical_type_id = Column(GUID, ForeignKey("clinical_types.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ClinicalFormField(Base):
    """A field on a clinical form; parent_field_id nests it under another field"""
    __tablename__ = "clinical_form_fields"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    form_id = Column(GUID, ForeignKey("clinical_forms.id"), nullable=False, index=True)
    field_name = Column(String(255), nullable=False)
    field_type = Column(enum_column_type(FormFieldType), nullable=False)
    field_label = Column(String(500), nullable=False)
    field_options = Column(JSON, default=list)
    required = Column(Boolean, default=False, nullable=False)
    order_index = Column(Integer, default=0, nullable=False)
    parent_field_id = Column(GUID, ForeignKey("clinical_form_fields.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ClinicalFormAssignment(Base):
    """Admin assigns a form to an instructor; instructor to a student or whole cohort"""
    __tablename__ = "clinical_form_assignments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    form_id = Column(GUID, ForeignKey("clinical_forms.id"), nullable=False, index=True)
    instructor_id = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    # NULL means every student affiliated with the instructor
    student_id = Column(GUID, ForeignKey("profiles.id"), nullable=True, index=True)
    status = Column(
        enum_column_type(FormAssignmentStatus), default=FormAssignmentStatus.ACTIVE, nullable=False
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)


# ==================== Shifts & Entries ====================

class ClinicalShift(Base):
    __tablename__ = "clinical_shifts"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    location = Column(String(255), nullable=False)
    department = Column(String(255), nullable=True)
    shift_start = Column(DateTime, nullable=False)
    shift_end = Column(DateTime, nullable=False)
    preceptor_name = Column(String(255), nullable=True)
    preceptor_credentials = Column(String(255), nullable=True)
    preceptor_email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ClinicalEntry(Base):
    """A submitted clinical form; shift and preceptor data are copied in"""
    __tablename__ = "clinical_entries"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    clinical_type_id = Column(GUID, ForeignKey("clinical_types.id"), nullable=False)
    form_id = Column(GUID, ForeignKey("clinical_forms.id"), nullable=False, index=True)
    shift_id = Column(GUID, ForeignKey("clinical_shifts.id"), nullable=True)

    shift_start = Column(DateTime, nullable=True)
    shift_end = Column(DateTime, nullable=True)
    location = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    preceptor_name = Column(String(255), nullable=True)
    preceptor_credentials = Column(String(255), nullable=True)
    preceptor_email = Column(String(255), nullable=True)

    form_data = Column(JSON, default=dict)
    submitted_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    reviewed_by = Column(GUID, ForeignKey("profiles.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)


class ClinicalEntryDraft(Base):
    __tablename__ = "clinical_entry_drafts"
    __table_args__ = (
        UniqueConstraint("student_id", "form_id", name="uq_draft_student_form"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    clinical_type_id = Column(GUID, ForeignKey("clinical_types.id"), nullable=False)
    form_id = Column(GUID, ForeignKey("clinical_forms.id"), nullable=False)
    form_data = Column(JSON, default=dict)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
