"""Column types and defaults shared by every model"""
from datetime import datetime
import uuid

from sqlalchemy import TypeDecorator, String


def generate_uuid() -> str:
    """Primary key default: a UUID rendered as text"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.utcnow()


class GUID(TypeDecorator):
    """UUID stored as VARCHAR(36) on both SQLite and PostgreSQL"""
    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else str(value)
