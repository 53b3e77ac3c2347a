"""
Skill Service Layer
Skill catalogue, assignments, evaluated skill logs, progress and classes
"""

from typing import List, Optional, Dict, Any
from datetime import datetime
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AuthorizationError,
    ClassNotFoundError,
    ConflictError,
    SkillLogNotFoundError,
    SkillNotFoundError,
    ValidationError,
)
from app.core.logging_config import logger
from app.core.types import utcnow
from app.models.classroom import Class, ClassEnrollment
from app.models.skill import (
    Skill, SkillCategory, SkillSubcategory, SkillAssignment, SkillLog,
    AssignmentStatus, SkillLogStatus, VerificationType
)
from app.models.user import User, UserRole
from app.services import data_access
from app.services.access import ensure_can_view_student, get_student, visible_student_ids
from app.services.data_access import row_to_dict
from app.services.form_tree import is_empty_response
from app.services.query_cache import query_cache

UNCATEGORIZED = "Uncategorized"


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def progress_percent(count: int, required: int) -> int:
    if not required:
        return 0
    return min(100, round(count / required * 100))


def effective_status(assignment: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """Pending assignments past their due date read as expired"""
    status = assignment.get("status")
    due = _parse_dt(assignment.get("due_date"))
    if status == AssignmentStatus.PENDING.value and due and due < (now or utcnow()):
        return AssignmentStatus.EXPIRED.value
    return status


class SkillService:
    """Service for lab skills"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _invalidate(self, *models) -> None:
        for model in models:
            query_cache.clear(prefix=f"{model.__tablename__}:")

    # =====================================================
    # CATEGORIES
    # =====================================================

    async def list_categories(self) -> List[Dict[str, Any]]:
        return await data_access.query(
            self.db, SkillCategory, use_cache=True, order_by=SkillCategory.name
        )

    async def create_category(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required", field="name")
        created = await data_access.insert(self.db, SkillCategory, {"name": name, "description": description})
        await self.db.commit()
        return created[0]

    async def list_subcategories(self, category_id: str) -> List[Dict[str, Any]]:
        return await data_access.query(
            self.db, SkillSubcategory, {"category_id": category_id}, order_by=SkillSubcategory.name
        )

    async def create_subcategory(self, category_id: str, name: str,
                                 description: Optional[str] = None) -> Dict[str, Any]:
        await data_access.query(self.db, SkillCategory, {"id": category_id}, single=True)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Subcategory name is required", field="name")
        created = await data_access.insert(self.db, SkillSubcategory, {
            "category_id": category_id, "name": name, "description": description
        })
        await self.db.commit()
        return created[0]

    # =====================================================
    # SKILLS
    # =====================================================

    async def _category_names(self) -> Dict[str, str]:
        return {c["id"]: c["name"] for c in await self.list_categories()}

    async def list_skills(self, include_templates: bool = True) -> List[Dict[str, Any]]:
        skills = await data_access.query(self.db, Skill, use_cache=True, order_by=Skill.name)
        categories = await self._category_names()
        return [
            {**s, "category_name": categories.get(s.get("category_id"), UNCATEGORIZED)}
            for s in skills
            if include_templates or not s.get("is_template")
        ]

    async def get_skill(self, skill_id: str) -> Dict[str, Any]:
        skill = await self.db.get(Skill, skill_id)
        if not skill:
            raise SkillNotFoundError(skill_id)
        categories = await self._category_names()
        return {**row_to_dict(skill), "category_name": categories.get(skill.category_id, UNCATEGORIZED)}

    async def create_skill(self, creator: User, payload: Dict[str, Any]) -> Dict[str, Any]:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Skill name is required", field="name")

        questions = []
        for position, question in enumerate(payload.get("questions") or []):
            text = (question.get("question_text") or "").strip()
            if not text:
                raise ValidationError("Question text is required", field="questions")
            questions.append({
                "id": question.get("id") or str(uuid.uuid4()),
                "question_text": text,
                "response_type": question.get("response_type") or "text",
                "is_required": bool(question.get("is_required")),
                "order_index": position if question.get("order_index") is None else question["order_index"],
                "options": question.get("options") or [],
            })

        created = await data_access.insert(self.db, Skill, {
            "name": name,
            "description": payload.get("description"),
            "category_id": payload.get("category_id"),
            "subcategory_id": payload.get("subcategory_id"),
            "verification_type": payload.get("verification_type") or VerificationType.PEER.value,
            "form_schema": {"questions": sorted(questions, key=lambda q: q["order_index"])},
            "is_template": bool(payload.get("is_template")),
            "template_id": payload.get("template_id"),
            "created_by": creator.id,
        })
        await self.db.commit()
        logger.info(f"[Skills] Skill '{name}' created by {creator.id}")
        return created[0]

    # =====================================================
    # ASSIGNMENTS
    # =====================================================

    async def assign_skill(self, instructor: User, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        skill = await self.get_skill(payload["skill_id"])
        assigned = []
        for student_id in payload.get("student_ids") or []:
            await ensure_can_view_student(self.db, instructor, student_id)

            result = await self.db.execute(
                select(SkillAssignment).where(
                    SkillAssignment.skill_id == skill["id"],
                    SkillAssignment.student_id == student_id,
                )
            )
            assignment = result.scalars().first()
            if assignment is None:
                assignment = SkillAssignment(skill_id=skill["id"], student_id=student_id)
                self.db.add(assignment)

            assignment.required_submissions = payload.get("required_submissions", 1)
            assignment.due_date = payload.get("due_date")
            assignment.class_id = payload.get("class_id")
            assignment.assigned_by = instructor.id
            await self.db.flush()
            await self._recompute_assignment(assignment)
            assigned.append(assignment)

        await self.db.commit()
        self._invalidate(SkillAssignment)
        return [row_to_dict(a) for a in assigned]

    async def refresh_assignment_status(self, assignment: SkillAssignment) -> bool:
        """Mark an overdue, unfinished assignment expired; True when it changed"""
        if (
            assignment.status == AssignmentStatus.PENDING
            and assignment.due_date is not None
            and assignment.due_date < utcnow()
            and assignment.completed_submissions < assignment.required_submissions
        ):
            assignment.status = AssignmentStatus.EXPIRED
            return True
        return False

    async def list_student_assignments(self, viewer: User, student_id: str) -> List[Dict[str, Any]]:
        await ensure_can_view_student(self.db, viewer, student_id)
        result = await self.db.execute(
            select(SkillAssignment)
            .where(SkillAssignment.student_id == student_id)
            .order_by(SkillAssignment.created_at)
        )
        assignments = list(result.scalars().all())

        changed = False
        for assignment in assignments:
            changed = await self.refresh_assignment_status(assignment) or changed
        if changed:
            await self.db.commit()
            self._invalidate(SkillAssignment)

        return [row_to_dict(a) for a in assignments]

    async def _submitted_count(self, skill_id: str, student_id: str) -> int:
        result = await self.db.execute(
            select(func.count(SkillLog.id)).where(
                SkillLog.skill_id == skill_id,
                SkillLog.student_id == student_id,
                SkillLog.status == SkillLogStatus.SUBMITTED,
            )
        )
        return result.scalar() or 0

    async def _recompute_assignment(self, assignment: SkillAssignment) -> None:
        count = await self._submitted_count(assignment.skill_id, assignment.student_id)
        assignment.completed_submissions = count
        if count >= assignment.required_submissions:
            assignment.status = AssignmentStatus.COMPLETED
        elif assignment.status == AssignmentStatus.COMPLETED:
            assignment.status = AssignmentStatus.PENDING

    async def _recompute_for(self, skill_id: str, student_id: str,
                             only_pending: bool = False) -> None:
        stmt = select(SkillAssignment).where(
            SkillAssignment.skill_id == skill_id,
            SkillAssignment.student_id == student_id,
        )
        if only_pending:
            stmt = stmt.where(SkillAssignment.status == AssignmentStatus.PENDING)
        result = await self.db.execute(stmt)
        for assignment in result.scalars().all():
            await self._recompute_assignment(assignment)

    # =====================================================
    # SKILL LOGS
    # =====================================================

    async def submit_skill_log(self, user: User, payload: Dict[str, Any]) -> Dict[str, Any]:
        skill = await self.db.get(Skill, payload["skill_id"])
        if not skill:
            raise SkillNotFoundError(payload["skill_id"])

        evaluator_name = (payload.get("evaluator_name") or "").strip()
        if not evaluator_name:
            raise ValidationError("Evaluator name is required", field="evaluator_name")

        signature = (payload.get("instructor_signature") or "").strip()
        if skill.verification_type == VerificationType.INSTRUCTOR and not signature:
            raise ValidationError("Instructor signature is required", field="instructor_signature")

        responses = payload.get("responses") or {}
        for question in skill.questions:
            if question.get("is_required") and is_empty_response(responses.get(question.get("id"))):
                raise ValidationError("Please answer all required questions", field="responses")

        student_id = user.id
        evaluated_student_id = None
        classmate_id = payload.get("classmate_id")
        if classmate_id:
            classmates = {c["student_id"] for c in await self.get_classmates(user.id)}
            if classmate_id not in classmates:
                raise AuthorizationError("You can only log skills for your classmates")
            student_id = classmate_id
            evaluated_student_id = user.id

        previous = await self.db.execute(
            select(func.count(SkillLog.id)).where(
                SkillLog.skill_id == skill.id, SkillLog.student_id == student_id
            )
        )
        enrollment = await self.db.execute(
            select(ClassEnrollment.class_id)
            .where(ClassEnrollment.student_id == student_id)
            .order_by(ClassEnrollment.enrolled_at)
        )

        log = SkillLog(
            student_id=student_id,
            skill_id=skill.id,
            class_id=enrollment.scalars().first(),
            attempt_number=(previous.scalar() or 0) + 1,
            notes=payload.get("notes"),
            media_urls=payload.get("media_urls") or [],
            responses=responses,
            evaluator_name=evaluator_name,
            evaluator_type=payload.get("evaluator_type") or skill.verification_type,
            instructor_signature=signature or None,
            evaluated_student_id=evaluated_student_id,
            status=SkillLogStatus.SUBMITTED,
            submitted_at=utcnow(),
        )
        self.db.add(log)
        await self.db.flush()

        await self._recompute_for(skill.id, student_id, only_pending=True)
        await self.db.commit()
        self._invalidate(SkillLog, SkillAssignment)

        logger.log_submission(
            "SkillLog", log.id, student_id, skill_id=skill.id, attempt_number=log.attempt_number
        )
        return row_to_dict(log)

    async def list_logs(
        self, viewer: User, student_id: Optional[str] = None, skill_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        stmt = select(SkillLog, Skill.name).join(Skill, Skill.id == SkillLog.skill_id)

        allowed = await visible_student_ids(self.db, viewer)
        if allowed is not None:
            stmt = stmt.where(SkillLog.student_id.in_(allowed))
        if student_id:
            stmt = stmt.where(SkillLog.student_id == student_id)
        if skill_id:
            stmt = stmt.where(SkillLog.skill_id == skill_id)

        result = await self.db.execute(stmt.order_by(SkillLog.submitted_at.desc()))
        return [{**row_to_dict(log), "skill_name": name} for log, name in result.all()]

    async def _get_log(self, log_id: str) -> SkillLog:
        log = await self.db.get(SkillLog, log_id)
        if not log:
            raise SkillLogNotFoundError(log_id)
        return log

    async def reject_log(self, reviewer: User, log_id: str) -> Dict[str, Any]:
        log = await self._get_log(log_id)
        await ensure_can_view_student(self.db, reviewer, log.student_id)

        log.status = SkillLogStatus.REJECTED
        log.verified_by = reviewer.id
        log.verified_at = utcnow()
        await self.db.flush()
        await self._recompute_for(log.skill_id, log.student_id)
        await self.db.commit()
        self._invalidate(SkillLog, SkillAssignment)
        return row_to_dict(log)

    async def delete_log(self, user: User, log_id: str) -> None:
        log = await self._get_log(log_id)
        await ensure_can_view_student(self.db, user, log.student_id)
        skill_id, student_id = log.skill_id, log.student_id

        await self.db.delete(log)
        await self.db.flush()
        await self._recompute_for(skill_id, student_id)
        await self.db.commit()
        self._invalidate(SkillLog, SkillAssignment)

    # =====================================================
    # PROGRESS
    # =====================================================

    async def skill_progress(self, viewer: User, student_id: str) -> List[Dict[str, Any]]:
        """Per-assignment submission progress for one student"""
        await ensure_can_view_student(self.db, viewer, student_id)

        assignments = await data_access.query(
            self.db, SkillAssignment, {"student_id": student_id}, use_cache=True
        )
        if not assignments:
            return []

        skills = {
            s["id"]: s for s in await data_access.batch_load(
                self.db, Skill, list({a["skill_id"] for a in assignments})
            )
        }
        categories = await self._category_names()
        logs = await data_access.query(
            self.db, SkillLog,
            {"student_id": student_id, "status": SkillLogStatus.SUBMITTED.value},
            use_cache=True,
        )

        counts: Dict[str, int] = {}
        for log in logs:
            counts[log["skill_id"]] = counts.get(log["skill_id"], 0) + 1

        now = utcnow()
        progress = []
        for assignment in assignments:
            skill = skills.get(assignment["skill_id"], {})
            count = counts.get(assignment["skill_id"], 0)
            required = assignment.get("required_submissions") or 0
            progress.append({
                "assignment_id": assignment["id"],
                "skill_id": assignment["skill_id"],
                "skill_name": skill.get("name"),
                "category_name": categories.get(skill.get("category_id"), UNCATEGORIZED),
                "required_submissions": required,
                "submission_count": count,
                "due_date": assignment.get("due_date"),
                "status": effective_status(assignment, now),
                "percent": progress_percent(count, required),
            })
        return progress

    # =====================================================
    # CLASSES & CLASSMATES
    # =====================================================

    async def create_class(self, instructor: User, payload: Dict[str, Any]) -> Dict[str, Any]:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Class name is required", field="name")
        if payload.get("start_date") and payload.get("end_date") and payload["end_date"] < payload["start_date"]:
            raise ValidationError("Class end date must be after start date", field="end_date")

        klass = Class(
            name=name,
            description=payload.get("description"),
            instructor_id=instructor.id,
            start_date=payload.get("start_date"),
            end_date=payload.get("end_date"),
        )
        self.db.add(klass)
        await self.db.commit()
        return row_to_dict(klass)

    async def _get_class(self, class_id: str) -> Class:
        klass = await self.db.get(Class, class_id)
        if not klass:
            raise ClassNotFoundError(class_id)
        return klass

    async def enroll_students(self, instructor: User, class_id: str,
                              student_ids: List[str]) -> List[Dict[str, Any]]:
        klass = await self._get_class(class_id)
        if instructor.role != UserRole.ADMIN and klass.instructor_id != instructor.id:
            raise AuthorizationError("You can only enroll students in your own classes")

        enrolled = []
        for student_id in student_ids:
            await get_student(self.db, student_id)
            existing = await self.db.execute(
                select(ClassEnrollment).where(
                    ClassEnrollment.class_id == class_id,
                    ClassEnrollment.student_id == student_id,
                )
            )
            if existing.scalar_one_or_none():
                raise ConflictError("Student is already enrolled in this class")
            enrollment = ClassEnrollment(class_id=class_id, student_id=student_id)
            self.db.add(enrollment)
            enrolled.append(enrollment)

        await self.db.commit()
        return [row_to_dict(e) for e in enrolled]

    async def list_classes(self, user: User) -> List[Dict[str, Any]]:
        stmt = select(Class).where(Class.archived == False)
        if user.role == UserRole.INSTRUCTOR:
            stmt = stmt.where(Class.instructor_id == user.id)
        elif user.role == UserRole.STUDENT:
            stmt = stmt.join(ClassEnrollment, ClassEnrollment.class_id == Class.id).where(
                ClassEnrollment.student_id == user.id
            )
        result = await self.db.execute(stmt.order_by(Class.name))
        return [row_to_dict(c) for c in result.scalars().all()]

    async def get_classmates(self, student_id: str) -> List[Dict[str, Any]]:
        """Other students sharing at least one class, first class wins"""
        my_classes = select(ClassEnrollment.class_id).where(ClassEnrollment.student_id == student_id)
        result = await self.db.execute(
            select(User, Class)
            .join(ClassEnrollment, ClassEnrollment.student_id == User.id)
            .join(Class, Class.id == ClassEnrollment.class_id)
            .where(
                ClassEnrollment.class_id.in_(my_classes),
                User.id != student_id,
                User.role == UserRole.STUDENT,
            )
            .order_by(User.full_name, ClassEnrollment.enrolled_at)
        )

        classmates: Dict[str, Dict[str, Any]] = {}
        for user, klass in result.all():
            classmates.setdefault(user.id, {
                "student_id": user.id,
                "full_name": user.full_name,
                "email": user.email,
                "class_id": klass.id,
                "class_name": klass.name,
            })
        return list(classmates.values())
