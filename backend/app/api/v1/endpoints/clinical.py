"""
Clinical Documentation API Endpoints

Provides endpoints for:
- Clinical types and their documentation forms
- Form fields (nested field tree) and rendered forms
- Form assignments (admin → instructor → students)
- Clinical shifts, drafts and submitted entries
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.auth.dependencies import (
    get_current_user, get_current_instructor, get_current_admin, get_current_student
)
from app.models.user import User, UserRole
from app.schemas.clinical import (
    ClinicalTypeCreate, ClinicalTypeUpdate, FormFieldCreate, FormFieldUpdate,
    FormInstructorAssign, FormStudentAssign, AssignmentStatusUpdate,
    ShiftStart, DraftSave, EntrySubmit,
)
from app.services.clinical_service import ClinicalService

router = APIRouter(prefix="/clinical", tags=["Clinical Documentation"])


# ==================== Clinical Types ====================

@router.get("/types")
async def list_clinical_types(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List clinical types ordered by name"""
    return await ClinicalService(db).list_clinical_types()


@router.post("/types", status_code=status.HTTP_201_CREATED)
async def create_clinical_type(
    data: ClinicalTypeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Create a clinical type and its documentation form"""
    return await ClinicalService(db).add_clinical_type(data.name, data.description)


@router.put("/types/{type_id}")
async def update_clinical_type(
    type_id: str,
    data: ClinicalTypeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    return await ClinicalService(db).update_clinical_type(type_id, data.name, data.description)


@router.delete("/types/{type_id}")
async def delete_clinical_type(
    type_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    await ClinicalService(db).delete_clinical_type(type_id)
    return {"message": "Clinical type deleted successfully"}


# ==================== Forms & Fields ====================

@router.get("/forms")
async def list_forms(
    clinical_type_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List forms; students only see the forms assigned to them"""
    service = ClinicalService(db)
    if current_user.role == UserRole.STUDENT:
        forms = await service.list_assigned_forms(current_user)
        if clinical_type_id:
            forms = [f for f in forms if f["clinical_type_id"] == clinical_type_id]
        return forms
    return await service.list_forms(clinical_type_id)


@router.get("/forms/{form_id}")
async def get_form(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Form with its nested field tree"""
    return await ClinicalService(db).get_form_with_fields(form_id)


@router.get("/forms/{form_id}/render")
async def render_form(
    form_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Widget description for every field of the form"""
    return await ClinicalService(db).render_form(form_id)


@router.post("/forms/{form_id}/fields", status_code=status.HTTP_201_CREATED)
async def add_form_field(
    form_id: str,
    data: FormFieldCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    return await ClinicalService(db).add_form_field(form_id, data.model_dump())


@router.put("/fields/{field_id}")
async def update_form_field(
    field_id: str,
    data: FormFieldUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    return await ClinicalService(db).update_form_field(field_id, data.model_dump(exclude_unset=True))


@router.delete("/fields/{field_id}")
async def delete_form_field(
    field_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Delete a field and its nested children"""
    deleted = await ClinicalService(db).delete_form_field(field_id)
    return {"message": "Field deleted successfully", "deleted_ids": deleted}


# ==================== Assignments ====================

@router.post("/forms/{form_id}/assign-instructors", status_code=status.HTTP_201_CREATED)
async def assign_form_to_instructors(
    form_id: str,
    data: FormInstructorAssign,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    return await ClinicalService(db).assign_form(form_id, data.instructor_ids)


@router.post("/forms/{form_id}/assign-students", status_code=status.HTTP_201_CREATED)
async def assign_form_to_students(
    form_id: str,
    data: FormStudentAssign,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    """Assign to selected students, or the whole cohort when no ids are sent"""
    return await ClinicalService(db).assign_form_to_students(form_id, current_user, data.student_ids)


@router.get("/assignments")
async def list_assignments(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await ClinicalService(db).list_assignments(current_user)


@router.patch("/assignments/{assignment_id}")
async def update_assignment_status(
    assignment_id: str,
    data: AssignmentStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await ClinicalService(db).set_assignment_status(assignment_id, data.status, current_user)


@router.get("/cohort")
async def get_cohort(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    """Students the instructor can assign forms to"""
    return await ClinicalService(db).cohort(current_user)


# ==================== Shifts ====================

@router.post("/shifts", status_code=status.HTTP_201_CREATED)
async def start_shift(
    data: ShiftStart,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_student)
):
    """Start a shift; any shift still active is ended first"""
    return await ClinicalService(db).start_shift(current_user, data.model_dump())


@router.get("/shifts/active")
async def get_active_shift(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_student)
):
    active = await ClinicalService(db).get_active_shift(current_user)
    return active or {"shift": None, "entries": []}


@router.post("/shifts/end")
async def end_shift(
    shift_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_student)
):
    return await ClinicalService(db).end_shift(current_user, shift_id)


# ==================== Drafts ====================

@router.put("/drafts")
async def save_draft(
    data: DraftSave,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_student)
):
    return await ClinicalService(db).save_draft(current_user, data.model_dump())


@router.get("/drafts")
async def list_drafts(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_student)
):
    return await ClinicalService(db).list_drafts(current_user)


@router.delete("/drafts/{draft_id}")
async def delete_draft(
    draft_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_student)
):
    await ClinicalService(db).delete_draft(current_user, draft_id)
    return {"message": "Draft deleted successfully"}


# ==================== Entries ====================

@router.post("/entries", status_code=status.HTTP_201_CREATED)
async def submit_entry(
    data: EntrySubmit,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_student)
):
    """Submit documentation during the active shift"""
    return await ClinicalService(db).submit_entry(current_user, data.model_dump())


@router.get("/entries")
async def list_entries(
    student_id: Optional[str] = Query(None),
    form_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await ClinicalService(db).list_entries(current_user, student_id, form_id)


@router.post("/entries/{entry_id}/review")
async def review_entry(
    entry_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await ClinicalService(db).review_entry(current_user, entry_id)


@router.delete("/entries/{entry_id}")
async def delete_entry(
    entry_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await ClinicalService(db).delete_entry(current_user, entry_id)
    return {"message": "Entry deleted successfully"}
