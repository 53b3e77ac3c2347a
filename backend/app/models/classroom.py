from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey, UniqueConstraint

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow


class Class(Base):
    """A cohort run by one instructor"""
    __tablename__ = "classes"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    instructor_id = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ClassEnrollment(Base):
    __tablename__ = "class_enrollments"
    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_class_enrollment"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    class_id = Column(GUID, ForeignKey("classes.id"), nullable=False, index=True)
    student_id = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    enrolled_at = Column(DateTime, default=utcnow, nullable=False)
