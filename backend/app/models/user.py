from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow
from app.models.base import enum_column_type


class UserRole(str, enum.Enum):
    """User roles"""
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


class User(Base):
    """Student, instructor or admin profile"""
    __tablename__ = "profiles"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    hashed_password = Column(String(255), nullable=False)

    role = Column(enum_column_type(UserRole), default=UserRole.STUDENT, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Students belong to one instructor's cohort; instructors hand out the code
    affiliated_instructor_id = Column(GUID, ForeignKey("profiles.id"), nullable=True, index=True)
    instructor_code = Column(String(16), unique=True, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_login = Column(DateTime, nullable=True)

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_instructor(self) -> bool:
        return self.role == UserRole.INSTRUCTOR

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self):
        return f"<User {self.email}>"
