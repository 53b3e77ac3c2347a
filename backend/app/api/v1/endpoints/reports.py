"""
Reports API Endpoints

Provides endpoints for:
- Basic submission report for an instructor's students
- Academic report builder (run and CSV export)
- Query builder field catalogue and operators
- Saved report queries
"""

from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.auth.dependencies import get_current_instructor
from app.models.user import User
from app.schemas.report import AcademicReportRequest, SavedQueryCreate, SavedQueryUpdate
from app.services import conditions
from app.services.report_service import ReportService, results_to_csv

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("")
async def get_basic_report(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    """All skill logs and clinical entries of the caller's students"""
    return await ReportService(db).build_basic_report(current_user)


# ==================== Academic Report ====================

@router.post("/academic")
async def run_academic_report(
    data: AcademicReportRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await ReportService(db).build_academic_report(current_user, data.config)


@router.post("/academic/export")
async def export_academic_report(
    data: AcademicReportRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    """Academic report results as a CSV download"""
    report = await ReportService(db).build_academic_report(current_user, data.config)
    filename = f"academic-report-{datetime.utcnow().strftime('%Y-%m-%d')}.csv"
    return Response(
        content=results_to_csv(report["results"]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ==================== Query Builder ====================

@router.get("/fields")
async def get_field_catalog(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await ReportService(db).field_catalog()


@router.get("/operators")
async def get_operators(
    field_type: Optional[str] = Query(None),
    field_id: Optional[str] = Query(None),
    current_user: User = Depends(get_current_instructor)
):
    return conditions.operator_options(field_type, field_id)


# ==================== Saved Queries ====================

@router.get("/queries")
async def list_saved_queries(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await ReportService(db).list_saved_queries(current_user)


@router.post("/queries", status_code=status.HTTP_201_CREATED)
async def create_saved_query(
    data: SavedQueryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await ReportService(db).create_saved_query(
        current_user, data.name, data.config.model_dump(), data.description
    )


@router.put("/queries/{query_id}")
async def update_saved_query(
    query_id: str,
    data: SavedQueryUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    changes = data.model_dump(exclude_unset=True)
    if data.config is not None:
        changes["config"] = data.config.model_dump()
    return await ReportService(db).update_saved_query(current_user, query_id, changes)


@router.delete("/queries/{query_id}")
async def delete_saved_query(
    query_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    await ReportService(db).delete_saved_query(current_user, query_id)
    return {"message": "Saved query deleted successfully"}


@router.post("/queries/{query_id}/run")
async def run_saved_query(
    query_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_instructor)
):
    return await ReportService(db).run_saved_query(current_user, query_id)
