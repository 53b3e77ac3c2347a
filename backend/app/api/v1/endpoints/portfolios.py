"""
Portfolio API Endpoints

Provides endpoints for:
- Portfolio templates, their sections and fields
- Student portfolio instances, field data and publishing
- Preview of auto-populated field values
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.auth.dependencies import get_current_user, get_current_instructor
from app.models.user import User
from app.schemas.portfolio import (
    TemplateCreate, SectionPayload, SectionReorder, InstanceCreate,
    PortfolioDataSave, AutoPopulateRequest,
)
from app.services.portfolio_service import PortfolioService

router = APIRouter(prefix="/portfolios", tags=["Portfolios"])


# ==================== Templates ====================

@router.get("/templates")
async def list_templates(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PortfolioService(db).list_templates(include_inactive)


@router.post("/templates", status_code=status.HTTP_201_CREATED)
async def create_template(
    data: TemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await PortfolioService(db).create_template(current_user, data.name, data.description)


@router.get("/templates/{template_id}")
async def get_template(
    template_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Template with its ordered sections and fields"""
    return await PortfolioService(db).get_template(template_id)


@router.post("/templates/{template_id}/toggle")
async def toggle_template(
    template_id: str,
    is_active: bool = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await PortfolioService(db).set_template_active(template_id, is_active)


# ==================== Sections ====================

@router.put("/templates/{template_id}/sections")
async def save_section(
    template_id: str,
    data: SectionPayload,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    """Create a section, or update one when an id is sent"""
    return await PortfolioService(db).save_section(template_id, data.model_dump())


@router.delete("/templates/{template_id}/sections/{section_id}")
async def delete_section(
    template_id: str,
    section_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    await PortfolioService(db).delete_section(template_id, section_id)
    return {"message": "Section deleted successfully"}


@router.post("/templates/{template_id}/sections/reorder")
async def reorder_sections(
    template_id: str,
    data: SectionReorder,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await PortfolioService(db).reorder_sections(template_id, data.section_ids)


# ==================== Auto-population ====================

@router.post("/auto-populate/preview")
async def preview_auto_populated_value(
    data: AutoPopulateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    value = await PortfolioService(db).preview_field_value(
        current_user, data.config.model_dump(), data.student_id
    )
    return {"value": value}


# ==================== Instances ====================

@router.get("")
async def list_instances(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PortfolioService(db).list_instances(current_user)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_instance(
    data: InstanceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PortfolioService(db).create_instance(current_user, data.template_id, data.student_id)


@router.get("/{instance_id}")
async def get_instance(
    instance_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PortfolioService(db).get_instance(current_user, instance_id)


@router.put("/{instance_id}/data")
async def save_portfolio_data(
    instance_id: str,
    data: PortfolioDataSave,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PortfolioService(db).save_data(current_user, instance_id, data.values)


@router.post("/{instance_id}/publish")
async def publish_portfolio(
    instance_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PortfolioService(db).publish(current_user, instance_id)


@router.post("/{instance_id}/archive")
async def archive_portfolio(
    instance_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PortfolioService(db).archive(current_user, instance_id)


@router.delete("/{instance_id}")
async def delete_portfolio(
    instance_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await PortfolioService(db).delete_instance(current_user, instance_id)
    return {"message": "Portfolio deleted successfully"}
