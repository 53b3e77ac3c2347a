from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, List

from app.services.conditions import QueryCondition


class ReportConfig(BaseModel):
    """Report builder configuration; unknown keys are kept for saved queries"""
    dataPoints: List[str] = Field(default_factory=list)
    dateRange: Optional[str] = None
    cohort: Optional[str] = None
    submissionTypes: Optional[List[str]] = None
    evaluationCriteria: Optional[List[str]] = None
    questions: Optional[List[str]] = None
    weights: Optional[Dict[str, float]] = None
    countIfConditions: List[QueryCondition] = Field(default_factory=list)
    selectedFields: List[str] = Field(default_factory=list)
    formSpecificCount: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class AcademicReportRequest(BaseModel):
    config: ReportConfig = Field(default_factory=ReportConfig)


class SavedQueryCreate(BaseModel):
    name: str
    description: Optional[str] = None
    config: ReportConfig = Field(default_factory=ReportConfig)


class SavedQueryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    config: Optional[ReportConfig] = None
