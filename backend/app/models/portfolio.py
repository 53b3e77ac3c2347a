"""
Portfolio Models
Instructor-designed templates (sections of fields) and the students' filled-in copies
"""
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, ForeignKey, JSON, UniqueConstraint
)
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow
from app.models.base import enum_column_type


class PortfolioFieldType(str, enum.Enum):
    TEXT = "text"
    LONGTEXT = "longtext"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    MULTISELECT = "multiselect"
    IMAGE = "image"
    LINK = "link"


class PortfolioStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class PortfolioTemplate(Base):
    __tablename__ = "portfolio_templates"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(GUID, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class PortfolioSection(Base):
    __tablename__ = "portfolio_sections"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    template_id = Column(GUID, ForeignKey("portfolio_templates.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    order_index = Column(Integer, default=0, nullable=False)
    is_required = Column(Boolean, default=False, nullable=False)


class PortfolioField(Base):
    """
    options = {"selectOptions": [...], "dataConfig": {...}}; dataConfig makes the
    field auto-populated from the student's skills, clinical entries or profile.
    """
    __tablename__ = "portfolio_fields"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    section_id = Column(GUID, ForeignKey("portfolio_sections.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    label = Column(String(500), nullable=False)
    field_type = Column(enum_column_type(PortfolioFieldType), nullable=False)
    is_required = Column(Boolean, default=False, nullable=False)
    options = Column(JSON, default=dict)
    validation_rules = Column(JSON, default=dict)
    order_index = Column(Integer, default=0, nullable=False)


class PortfolioInstance(Base):
    __tablename__ = "portfolio_instances"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    template_id = Column(GUID, ForeignKey("portfolio_templates.id"), nullable=False, index=True)
    student_id = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(enum_column_type(PortfolioStatus), default=PortfolioStatus.DRAFT, nullable=False)
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class PortfolioData(Base):
    __tablename__ = "portfolio_data"
    __table_args__ = (
        UniqueConstraint("instance_id", "field_id", name="uq_portfolio_data_field"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    instance_id = Column(GUID, ForeignKey("portfolio_instances.id"), nullable=False, index=True)
    field_id = Column(GUID, ForeignKey("portfolio_fields.id"), nullable=False)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
