"""
Lab Skills API Endpoints

Provides endpoints for:
- Skill categories and the skill catalogue
- Skill assignments and per-student progress
- Evaluated skill logs (self, peer or instructor verified)
- Classes, enrollments and classmates
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.auth.dependencies import (
    get_current_user, get_current_instructor, get_current_student
)
from app.models.user import User
from app.schemas.skill import (
    CategoryCreate, SubcategoryCreate, SkillCreate, SkillAssign, SkillLogSubmit,
    ClassCreate, EnrollStudents,
)
from app.services.skill_service import SkillService

router = APIRouter(prefix="/skills", tags=["Lab Skills"])


# ==================== Categories ====================

@router.get("/categories")
async def list_categories(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await SkillService(db).list_categories()


@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    data: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await SkillService(db).create_category(data.name, data.description)


@router.get("/categories/{category_id}/subcategories")
async def list_subcategories(
    category_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await SkillService(db).list_subcategories(category_id)


@router.post("/subcategories", status_code=status.HTTP_201_CREATED)
async def create_subcategory(
    data: SubcategoryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await SkillService(db).create_subcategory(data.category_id, data.name, data.description)


# ==================== Classes ====================
# Declared before /{skill_id} so the literal paths win

@router.get("/classes")
async def list_classes(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await SkillService(db).list_classes(current_user)


@router.post("/classes", status_code=status.HTTP_201_CREATED)
async def create_class(
    data: ClassCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await SkillService(db).create_class(current_user, data.model_dump())


@router.post("/classes/{class_id}/enroll", status_code=status.HTTP_201_CREATED)
async def enroll_students(
    class_id: str,
    data: EnrollStudents,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await SkillService(db).enroll_students(current_user, class_id, data.student_ids)


@router.get("/classmates")
async def list_classmates(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_student)
):
    """Students sharing a class with the caller, for peer evaluation"""
    return await SkillService(db).get_classmates(current_user.id)


# ==================== Assignments & Progress ====================

@router.post("/assignments", status_code=status.HTTP_201_CREATED)
async def assign_skill(
    data: SkillAssign,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await SkillService(db).assign_skill(current_user, data.model_dump())


@router.get("/assignments")
async def list_assignments(
    student_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """A student's assignments; defaults to the caller"""
    return await SkillService(db).list_student_assignments(current_user, student_id or current_user.id)


@router.get("/progress")
async def get_progress(
    student_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await SkillService(db).skill_progress(current_user, student_id or current_user.id)


# ==================== Skill Logs ====================

@router.post("/logs", status_code=status.HTTP_201_CREATED)
async def submit_skill_log(
    data: SkillLogSubmit,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_student)
):
    return await SkillService(db).submit_skill_log(current_user, data.model_dump())


@router.get("/logs")
async def list_logs(
    student_id: Optional[str] = Query(None),
    skill_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await SkillService(db).list_logs(current_user, student_id, skill_id)


@router.post("/logs/{log_id}/reject")
async def reject_log(
    log_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await SkillService(db).reject_log(current_user, log_id)


@router.delete("/logs/{log_id}")
async def delete_log(
    log_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await SkillService(db).delete_log(current_user, log_id)
    return {"message": "Skill log deleted successfully"}


# ==================== Skills ====================

@router.get("")
async def list_skills(
    include_templates: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await SkillService(db).list_skills(include_templates)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_skill(
    data: SkillCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await SkillService(db).create_skill(current_user, data.model_dump())


@router.get("/{skill_id}")
async def get_skill(
    skill_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await SkillService(db).get_skill(skill_id)
