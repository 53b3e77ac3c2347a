from sqlalchemy import Column, String, DateTime, Text, ForeignKey, JSON

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow


class SavedQuery(Base):
    """A named report-builder configuration an instructor can re-run"""
    __tablename__ = "saved_queries"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    config = Column(JSON, default=dict, nullable=False)
    created_by = Column(GUID, ForeignKey("profiles.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
