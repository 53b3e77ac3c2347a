from pydantic import BaseModel, Field
from typing import Optional, Dict, List, Any
from datetime import datetime


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None


class SubcategoryCreate(BaseModel):
    category_id: str
    name: str
    description: Optional[str] = None


class Question(BaseModel):
    id: Optional[str] = None
    question_text: str
    response_type: str = "text"
    is_required: bool = False
    order_index: Optional[int] = None
    options: Optional[List[str]] = None


class SkillCreate(BaseModel):
    name: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    verification_type: str = Field("peer", pattern="^(peer|instructor)$")
    questions: List[Question] = Field(default_factory=list)
    is_template: bool = False
    template_id: Optional[str] = None


class SkillAssign(BaseModel):
    skill_id: str
    student_ids: List[str]
    required_submissions: int = Field(1, ge=0)
    due_date: Optional[datetime] = None
    class_id: Optional[str] = None


class SkillLogSubmit(BaseModel):
    skill_id: str
    evaluator_name: Optional[str] = None
    evaluator_type: Optional[str] = Field(None, pattern="^(peer|instructor)$")
    instructor_signature: Optional[str] = None
    responses: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    media_urls: List[str] = Field(default_factory=list)
    # Peer evaluation: the classmate whose attempt this log records
    classmate_id: Optional[str] = None


class ClassCreate(BaseModel):
    name: str
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class EnrollStudents(BaseModel):
    student_ids: List[str]
