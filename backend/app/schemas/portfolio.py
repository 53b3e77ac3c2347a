from pydantic import BaseModel, Field
from typing import Optional, Dict, List, Any

from app.services.conditions import QueryCondition


class TemplateCreate(BaseModel):
    name: str
    description: Optional[str] = None


class FieldPayload(BaseModel):
    id: Optional[str] = None
    name: str
    label: str
    field_type: str = "text"
    is_required: bool = False
    options: Dict[str, Any] = Field(default_factory=dict)
    validation_rules: Dict[str, Any] = Field(default_factory=dict)


class SectionPayload(BaseModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    fields: List[FieldPayload] = Field(default_factory=list)


class SectionReorder(BaseModel):
    section_ids: List[str]


class InstanceCreate(BaseModel):
    template_id: str
    student_id: Optional[str] = None


class PortfolioDataSave(BaseModel):
    # field_id -> value
    values: Dict[str, Any]


class DataConfig(BaseModel):
    dataSource: str
    dataField: str = ""
    aggregation: str = "count"
    filterConditions: List[QueryCondition] = Field(default_factory=list)


class AutoPopulateRequest(BaseModel):
    config: DataConfig
    student_id: Optional[str] = None
