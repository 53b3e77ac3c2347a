"""
Clinical Documentation Service
Clinical types and their dynamic forms, form assignments, shifts, drafts and
submitted entries
"""

from typing import List, Optional, Dict, Any
from datetime import datetime, timedelta

from sqlalchemy import select, and_, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    ClinicalEntryNotFoundError,
    ClinicalFormNotFoundError,
    ClinicalTypeNotFoundError,
    ConflictError,
    FormFieldNotFoundError,
    FormNotAssignedError,
    ResourceNotFoundError,
    ShiftNotActiveError,
    ShiftNotFoundError,
    ValidationError,
    ValidationErrors,
)
from app.core.logging_config import logger
from app.core.types import utcnow
from app.models.clinical import (
    ClinicalType, ClinicalForm, ClinicalFormField, ClinicalFormAssignment,
    ClinicalShift, ClinicalEntry, ClinicalEntryDraft, FormAssignmentStatus
)
from app.models.user import User, UserRole
from app.services import data_access, form_tree
from app.services.access import (
    ensure_can_view_student, load_students, visible_student_ids
)
from app.services.data_access import row_to_dict


class ClinicalService:
    """Service for clinical documentation"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =====================================================
    # CLINICAL TYPES
    # =====================================================

    async def list_clinical_types(self) -> List[Dict[str, Any]]:
        return await data_access.query(self.db, ClinicalType, order_by=ClinicalType.name)

    async def _get_type(self, type_id: str) -> ClinicalType:
        clinical_type = await self.db.get(ClinicalType, type_id)
        if not clinical_type:
            raise ClinicalTypeNotFoundError(type_id)
        return clinical_type

    async def add_clinical_type(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        """Create a clinical type together with its documentation form"""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Clinical type name is required", field="name")

        clinical_type = ClinicalType(name=name, description=description)
        self.db.add(clinical_type)
        await self.db.flush()

        form = ClinicalForm(
            clinical_type_id=clinical_type.id,
            name=f"{name} Form",
            description=f"Documentation form for {name}",
        )
        self.db.add(form)
        await self.db.commit()

        logger.info(f"[Clinical] Created clinical type '{name}' with form {form.id}")
        return {"clinical_type": row_to_dict(clinical_type), "form": row_to_dict(form)}

    async def update_clinical_type(
        self, type_id: str, name: Optional[str] = None, description: Optional[str] = None
    ) -> Dict[str, Any]:
        clinical_type = await self._get_type(type_id)
        if name is not None:
            if not name.strip():
                raise ValidationError("Clinical type name is required", field="name")
            clinical_type.name = name.strip()
        if description is not None:
            clinical_type.description = description
        await self.db.commit()
        return row_to_dict(clinical_type)

    async def delete_clinical_type(self, type_id: str) -> None:
        clinical_type = await self._get_type(type_id)

        entries = await self.db.execute(
            select(ClinicalEntry.id).where(ClinicalEntry.clinical_type_id == type_id).limit(1)
        )
        if entries.first():
            raise ConflictError("Clinical type has submitted entries and cannot be deleted")

        form_ids = (await self.db.execute(
            select(ClinicalForm.id).where(ClinicalForm.clinical_type_id == type_id)
        )).scalars().all()

        if form_ids:
            await self.db.execute(delete(ClinicalEntryDraft).where(ClinicalEntryDraft.form_id.in_(form_ids)))
            await self.db.execute(delete(ClinicalFormAssignment).where(ClinicalFormAssignment.form_id.in_(form_ids)))
            await self.db.execute(delete(ClinicalFormField).where(ClinicalFormField.form_id.in_(form_ids)))
            await self.db.execute(delete(ClinicalForm).where(ClinicalForm.id.in_(form_ids)))

        await self.db.delete(clinical_type)
        await self.db.commit()
        data_access.query_cache.clear(prefix=f"{ClinicalFormField.__tablename__}:")
        logger.info(f"[Clinical] Deleted clinical type {type_id}")

    # =====================================================
    # FORMS & FIELDS
    # =====================================================

    async def list_forms(self, clinical_type_id: Optional[str] = None) -> List[Dict[str, Any]]:
        match = {"clinical_type_id": clinical_type_id} if clinical_type_id else None
        return await data_access.query(self.db, ClinicalForm, match, order_by=ClinicalForm.name)

    async def get_form(self, form_id: str) -> Dict[str, Any]:
        form = await self.db.get(ClinicalForm, form_id)
        if not form:
            raise ClinicalFormNotFoundError(form_id)
        return row_to_dict(form)

    async def get_form_fields(self, form_id: str) -> List[Dict[str, Any]]:
        return await data_access.query(
            self.db, ClinicalFormField, {"form_id": form_id},
            use_cache=True, order_by=ClinicalFormField.order_index
        )

    async def get_form_with_fields(self, form_id: str) -> Dict[str, Any]:
        form = await self.get_form(form_id)
        fields = await self.get_form_fields(form_id)
        return {"form": form, "fields": form_tree.build_field_tree(fields)}

    async def render_form(self, form_id: str) -> Dict[str, Any]:
        form = await self.get_form(form_id)
        return form_tree.render_form(form, await self.get_form_fields(form_id))

    async def add_form_field(self, form_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        await self.get_form(form_id)
        field = form_tree.validate_field_definition(payload)
        siblings = await self.get_form_fields(form_id)

        parent_id = field.get("parent_field_id")
        if parent_id and not any(f["id"] == parent_id for f in siblings):
            raise ValidationError("Parent field must belong to the same form", field="parent_field_id")

        if field.get("order_index") is None:
            field["order_index"] = sum(1 for f in siblings if f.get("parent_field_id") == parent_id)

        created = await data_access.insert(self.db, ClinicalFormField, {
            "form_id": form_id,
            "field_name": field["field_name"],
            "field_type": field["field_type"],
            "field_label": field["field_label"],
            "field_options": field["field_options"],
            "required": bool(field.get("required")),
            "order_index": field["order_index"],
            "parent_field_id": parent_id,
        })
        await self.db.commit()
        return created[0]

    async def _get_field(self, field_id: str) -> Dict[str, Any]:
        try:
            return await data_access.query(self.db, ClinicalFormField, {"id": field_id}, single=True)
        except ResourceNotFoundError:
            raise FormFieldNotFoundError(field_id)

    async def update_form_field(self, field_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the changed keys; a null parent_field_id moves the field to the top level"""
        current = await self._get_field(field_id)
        merged = {**current, **changes}
        field = form_tree.validate_field_definition(merged)

        parent_id = field.get("parent_field_id")
        if parent_id:
            if parent_id == field_id:
                raise ValidationError("A field cannot be its own parent", field="parent_field_id")
            siblings = await self.get_form_fields(current["form_id"])
            parents = {f["id"]: f.get("parent_field_id") for f in siblings}
            if parent_id not in parents:
                raise ValidationError("Parent field must belong to the same form", field="parent_field_id")

            ancestor, seen = parent_id, set()
            while ancestor and ancestor not in seen:
                if ancestor == field_id:
                    raise ValidationError(
                        "A field cannot be nested under its own subfield", field="parent_field_id"
                    )
                seen.add(ancestor)
                ancestor = parents.get(ancestor)

        updated = await data_access.update(self.db, ClinicalFormField, {"id": field_id}, {
            "field_name": field["field_name"],
            "field_type": field["field_type"],
            "field_label": field["field_label"],
            "field_options": field["field_options"],
            "required": bool(field.get("required")),
            "order_index": field.get("order_index") or 0,
            "parent_field_id": parent_id,
        })
        await self.db.commit()
        return updated[0]

    async def delete_form_field(self, field_id: str) -> List[str]:
        """Delete a field and everything nested under it; returns the deleted ids"""
        field = await self._get_field(field_id)
        fields = await self.get_form_fields(field["form_id"])

        doomed = [field_id]
        frontier = [field_id]
        while frontier:
            parent = frontier.pop()
            for f in fields:
                if f.get("parent_field_id") == parent and f["id"] not in doomed:
                    doomed.append(f["id"])
                    frontier.append(f["id"])

        for doomed_id in reversed(doomed):
            await data_access.remove(self.db, ClinicalFormField, {"id": doomed_id})
        await self.db.commit()
        return doomed

    # =====================================================
    # FORM ASSIGNMENTS
    # =====================================================

    async def assign_form(self, form_id: str, instructor_ids: List[str]) -> List[Dict[str, Any]]:
        """Admin hands a form to instructors; existing active assignments are kept"""
        await self.get_form(form_id)
        created = []
        for instructor_id in instructor_ids:
            instructor = await self.db.get(User, instructor_id)
            if not instructor or instructor.role != UserRole.INSTRUCTOR:
                raise ValidationError(f"User {instructor_id} is not an instructor", field="instructor_ids")
            created.append(await self._ensure_assignment(form_id, instructor_id, None))
        await self.db.commit()
        return [row_to_dict(a) for a in created]

    async def assign_form_to_students(
        self, form_id: str, instructor: User, student_ids: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """Instructor assigns a form to chosen students, or to the whole cohort when None"""
        await self.get_form(form_id)
        if student_ids is None:
            created = [await self._ensure_assignment(form_id, instructor.id, None)]
        else:
            created = []
            for student_id in student_ids:
                await ensure_can_view_student(self.db, instructor, student_id)
                created.append(await self._ensure_assignment(form_id, instructor.id, student_id))
        await self.db.commit()
        return [row_to_dict(a) for a in created]

    async def _ensure_assignment(
        self, form_id: str, instructor_id: str, student_id: Optional[str]
    ) -> ClinicalFormAssignment:
        student_clause = (
            ClinicalFormAssignment.student_id.is_(None) if student_id is None
            else ClinicalFormAssignment.student_id == student_id
        )
        result = await self.db.execute(
            select(ClinicalFormAssignment).where(
                ClinicalFormAssignment.form_id == form_id,
                ClinicalFormAssignment.instructor_id == instructor_id,
                student_clause,
            )
        )
        assignment = result.scalars().first()
        if assignment:
            assignment.status = FormAssignmentStatus.ACTIVE
            return assignment

        assignment = ClinicalFormAssignment(
            form_id=form_id, instructor_id=instructor_id, student_id=student_id,
            status=FormAssignmentStatus.ACTIVE,
        )
        self.db.add(assignment)
        await self.db.flush()
        return assignment

    async def list_assignments(self, user: User) -> List[Dict[str, Any]]:
        stmt = select(ClinicalFormAssignment)
        if user.role == UserRole.INSTRUCTOR:
            stmt = stmt.where(ClinicalFormAssignment.instructor_id == user.id)
        elif user.role == UserRole.STUDENT:
            stmt = stmt.where(self._assigned_to_clause(user))
        result = await self.db.execute(stmt.order_by(ClinicalFormAssignment.created_at))
        return [row_to_dict(a) for a in result.scalars().all()]

    async def set_assignment_status(self, assignment_id: str, status: str, user: User) -> Dict[str, Any]:
        assignment = await self.db.get(ClinicalFormAssignment, assignment_id)
        if not assignment:
            raise ResourceNotFoundError("Form assignment", assignment_id)
        if user.role != UserRole.ADMIN and assignment.instructor_id != user.id:
            raise AuthorizationError("You can only change your own assignments")
        assignment.status = FormAssignmentStatus(status)
        await self.db.commit()
        return row_to_dict(assignment)

    def _assigned_to_clause(self, student: User):
        """Active assignments naming the student, or covering their instructor's cohort"""
        return and_(
            ClinicalFormAssignment.status == FormAssignmentStatus.ACTIVE,
            or_(
                ClinicalFormAssignment.student_id == student.id,
                and_(
                    ClinicalFormAssignment.student_id.is_(None),
                    ClinicalFormAssignment.instructor_id == student.affiliated_instructor_id,
                ),
            ),
        )

    async def is_form_assigned(self, form_id: str, student: User) -> bool:
        result = await self.db.execute(
            select(ClinicalFormAssignment.id).where(
                ClinicalFormAssignment.form_id == form_id,
                self._assigned_to_clause(student),
            ).limit(1)
        )
        return result.first() is not None

    async def list_assigned_forms(self, student: User) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(ClinicalForm)
            .join(ClinicalFormAssignment, ClinicalFormAssignment.form_id == ClinicalForm.id)
            .where(self._assigned_to_clause(student))
            .distinct()
            .order_by(ClinicalForm.name)
        )
        return [row_to_dict(f) for f in result.scalars().all()]

    # =====================================================
    # SHIFTS
    # =====================================================

    async def _active_shift(self, student_id: str) -> Optional[ClinicalShift]:
        result = await self.db.execute(
            select(ClinicalShift)
            .where(ClinicalShift.student_id == student_id, ClinicalShift.is_active == True)
            .order_by(ClinicalShift.created_at.desc())
        )
        return result.scalars().first()

    async def start_shift(self, student: User, payload: Dict[str, Any]) -> Dict[str, Any]:
        shift_start: datetime = payload["shift_start"]
        shift_end: datetime = payload["shift_end"]
        if shift_end <= shift_start:
            raise ValidationError("Shift end time must be after start time", field="shift_end")
        if not (payload.get("location") or "").strip():
            raise ValidationError("Location is required", field="location")

        previous = await self._active_shift(student.id)
        while previous:
            previous.is_active = False
            previous.ended_at = utcnow()
            await self.db.flush()
            previous = await self._active_shift(student.id)

        shift = ClinicalShift(
            student_id=student.id,
            location=payload["location"].strip(),
            department=payload.get("department"),
            shift_start=shift_start,
            shift_end=shift_end,
            preceptor_name=payload.get("preceptor_name"),
            preceptor_credentials=payload.get("preceptor_credentials"),
            preceptor_email=payload.get("preceptor_email"),
            is_active=True,
        )
        self.db.add(shift)
        await self.db.commit()
        logger.info(f"[Clinical] Student {student.id} started shift at {shift.location}")
        return row_to_dict(shift)

    async def get_active_shift(self, student: User) -> Optional[Dict[str, Any]]:
        """Active shift plus the entries submitted inside its window"""
        shift = await self._active_shift(student.id)
        if not shift:
            return None

        result = await self.db.execute(
            select(ClinicalEntry).where(
                ClinicalEntry.student_id == student.id,
                ClinicalEntry.submitted_at >= shift.shift_start,
                ClinicalEntry.submitted_at <= shift.shift_end,
            ).order_by(ClinicalEntry.submitted_at.desc())
        )
        return {
            "shift": row_to_dict(shift),
            "entries": [row_to_dict(e) for e in result.scalars().all()],
        }

    async def end_shift(self, student: User, shift_id: Optional[str] = None) -> Dict[str, Any]:
        if shift_id:
            shift = await self.db.get(ClinicalShift, shift_id)
            if not shift or shift.student_id != student.id:
                raise ShiftNotFoundError(shift_id)
        else:
            shift = await self._active_shift(student.id)
            if not shift:
                raise ShiftNotActiveError("No active shift to end")

        shift.is_active = False
        shift.ended_at = utcnow()
        await self.db.commit()
        return row_to_dict(shift)

    # =====================================================
    # DRAFTS
    # =====================================================

    async def save_draft(self, student: User, payload: Dict[str, Any]) -> Dict[str, Any]:
        form = await self.get_form(payload["form_id"])
        expires_at = utcnow() + timedelta(hours=settings.DRAFT_EXPIRY_HOURS)

        result = await self.db.execute(
            select(ClinicalEntryDraft).where(
                ClinicalEntryDraft.student_id == student.id,
                ClinicalEntryDraft.form_id == form["id"],
            )
        )
        draft = result.scalar_one_or_none()
        if draft:
            draft.form_data = payload.get("form_data") or {}
            draft.clinical_type_id = payload.get("clinical_type_id") or form["clinical_type_id"]
            draft.expires_at = expires_at
        else:
            draft = ClinicalEntryDraft(
                student_id=student.id,
                clinical_type_id=payload.get("clinical_type_id") or form["clinical_type_id"],
                form_id=form["id"],
                form_data=payload.get("form_data") or {},
                expires_at=expires_at,
            )
            self.db.add(draft)

        await self.db.commit()
        return row_to_dict(draft)

    async def list_drafts(self, student: User) -> List[Dict[str, Any]]:
        """Unexpired drafts; expired ones are purged on the way"""
        now = utcnow()
        purged = await self.db.execute(
            delete(ClinicalEntryDraft).where(
                ClinicalEntryDraft.student_id == student.id,
                ClinicalEntryDraft.expires_at <= now,
            )
        )
        if purged.rowcount:
            logger.info(f"[Clinical] Purged {purged.rowcount} expired drafts for {student.id}")
            await self.db.commit()

        result = await self.db.execute(
            select(ClinicalEntryDraft)
            .where(ClinicalEntryDraft.student_id == student.id)
            .order_by(ClinicalEntryDraft.updated_at.desc())
        )
        return [row_to_dict(d) for d in result.scalars().all()]

    async def delete_draft(self, student: User, draft_id: str) -> None:
        draft = await self.db.get(ClinicalEntryDraft, draft_id)
        if not draft or draft.student_id != student.id:
            raise ResourceNotFoundError("Draft", draft_id)
        await self.db.delete(draft)
        await self.db.commit()

    # =====================================================
    # ENTRIES
    # =====================================================

    async def submit_entry(self, student: User, payload: Dict[str, Any]) -> Dict[str, Any]:
        form = await self.get_form(payload["form_id"])

        if not await self.is_form_assigned(form["id"], student):
            raise FormNotAssignedError(form["id"])

        shift = await self._active_shift(student.id)
        if not shift:
            raise ShiftNotActiveError()

        form_data = payload.get("form_data") or {}
        fields = await self.get_form_fields(form["id"])

        missing = form_tree.first_missing_required(fields, form_data)
        if missing:
            raise ValidationError(
                f"Please fill in required field: {missing['field_label']}",
                field=missing["field_name"],
            )

        errors = form_tree.validate_responses(fields, form_data)
        if errors:
            raise ValidationErrors(errors)

        entry = ClinicalEntry(
            student_id=student.id,
            clinical_type_id=form["clinical_type_id"],
            form_id=form["id"],
            shift_id=shift.id,
            shift_start=shift.shift_start,
            shift_end=shift.shift_end,
            location=shift.location,
            department=shift.department,
            preceptor_name=shift.preceptor_name,
            preceptor_credentials=shift.preceptor_credentials,
            preceptor_email=shift.preceptor_email,
            form_data=form_data,
            submitted_at=utcnow(),
        )
        self.db.add(entry)

        await self.db.execute(
            delete(ClinicalEntryDraft).where(
                ClinicalEntryDraft.student_id == student.id,
                ClinicalEntryDraft.form_id == form["id"],
            )
        )
        await self.db.commit()

        logger.log_submission("ClinicalEntry", entry.id, student.id, form_id=form["id"])
        return row_to_dict(entry)

    async def list_entries(
        self,
        user: User,
        student_id: Optional[str] = None,
        form_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(ClinicalEntry)

        allowed = await visible_student_ids(self.db, user)
        if allowed is not None:
            stmt = stmt.where(ClinicalEntry.student_id.in_(allowed))
        if student_id:
            stmt = stmt.where(ClinicalEntry.student_id == student_id)
        if form_id:
            stmt = stmt.where(ClinicalEntry.form_id == form_id)

        result = await self.db.execute(stmt.order_by(ClinicalEntry.submitted_at.desc()))
        return [row_to_dict(e) for e in result.scalars().all()]

    async def _get_entry(self, entry_id: str) -> ClinicalEntry:
        entry = await self.db.get(ClinicalEntry, entry_id)
        if not entry:
            raise ClinicalEntryNotFoundError(entry_id)
        return entry

    async def review_entry(self, reviewer: User, entry_id: str) -> Dict[str, Any]:
        entry = await self._get_entry(entry_id)
        await ensure_can_view_student(self.db, reviewer, entry.student_id)
        entry.reviewed_by = reviewer.id
        entry.reviewed_at = utcnow()
        await self.db.commit()
        return row_to_dict(entry)

    async def delete_entry(self, user: User, entry_id: str) -> None:
        entry = await self._get_entry(entry_id)
        await ensure_can_view_student(self.db, user, entry.student_id)
        await self.db.delete(entry)
        await self.db.commit()

    async def cohort(self, instructor: User) -> List[Dict[str, Any]]:
        """Students an instructor can assign forms to"""
        return [
            {"id": s.id, "full_name": s.full_name, "email": s.email}
            for s in await load_students(self.db, instructor)
        ]
