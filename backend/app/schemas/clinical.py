from pydantic import BaseModel, EmailStr, Field
from typing import Optional, Dict, List, Any
from datetime import datetime


# ============================================
# Types & Forms
# ============================================

class ClinicalTypeCreate(BaseModel):
    name: str
    description: Optional[str] = None


class ClinicalTypeUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class FormFieldCreate(BaseModel):
    field_name: str
    field_type: str
    field_label: str
    field_options: List[str] = Field(default_factory=list)
    required: bool = False
    order_index: Optional[int] = None
    parent_field_id: Optional[str] = None


class FormFieldUpdate(BaseModel):
    field_name: Optional[str] = None
    field_type: Optional[str] = None
    field_label: Optional[str] = None
    field_options: Optional[List[str]] = None
    required: Optional[bool] = None
    order_index: Optional[int] = None
    parent_field_id: Optional[str] = None


# ============================================
# Assignments
# ============================================

class FormInstructorAssign(BaseModel):
    instructor_ids: List[str]


class FormStudentAssign(BaseModel):
    # None assigns the form to the instructor's whole cohort
    student_ids: Optional[List[str]] = None


class AssignmentStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(active|inactive)$")


# ============================================
# Shifts, drafts, entries
# ============================================

class ShiftStart(BaseModel):
    location: str
    department: Optional[str] = None
    shift_start: datetime
    shift_end: datetime
    preceptor_name: Optional[str] = None
    preceptor_credentials: Optional[str] = None
    preceptor_email: Optional[EmailStr] = None


class DraftSave(BaseModel):
    clinical_type_id: str
    form_id: str
    form_data: Dict[str, Any] = Field(default_factory=dict)


class EntrySubmit(BaseModel):
    form_id: str
    clinical_type_id: Optional[str] = None
    form_data: Dict[str, Any] = Field(default_factory=dict)
