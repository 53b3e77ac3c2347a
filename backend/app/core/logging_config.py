"""
SkillTrack - Centralized Logging Configuration
Plain text for development and tests, JSON lines in production.

Every record carries the request id and user id of the request being served,
taken from context variables set by the middleware and the auth dependency.
"""

import logging
import sys
import json
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from app.core.config import settings

LOGGER_NAME = "skilltrack"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "aiosqlite")

request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')


def get_request_id() -> str:
    return request_id_var.get() or ''


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_user_id() -> str:
    return user_id_var.get() or ''


def set_user_id(user_id: str) -> None:
    user_id_var.set(user_id)


def generate_request_id() -> str:
    """Short id echoed back in X-Request-ID"""
    return uuid.uuid4().hex[:8]


# Attributes every LogRecord has; anything else came in through `extra`
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    'message', 'asctime', 'request_id', 'user_id',
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, `extra` fields merged in at the top level"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key, value in (("request_id", get_request_id()), ("user_id", get_user_id())):
            if value:
                payload[key] = value

        if record.exc_info and record.exc_info[0]:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith('_')
        )
        return json.dumps(payload, default=str)


class ContextualFormatter(logging.Formatter):
    """Text formatter that can reference %(request_id)s and %(user_id)s"""

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = get_request_id() or '-'
        record.user_id = get_user_id() or '-'
        return super().format(record)


class SkillTrackLogger(logging.Logger):
    """Logger with helpers that tag records with an event_type"""

    def log_auth_event(self, event: str, success: bool, user_email: Optional[str] = None,
                       reason: Optional[str] = None, **kwargs) -> None:
        """Registration and login outcomes; failures are warnings"""
        message = f"Auth {event}: {'success' if success else 'failed'}"
        if user_email:
            message += f" - {user_email}"
        if reason:
            message += f" - {reason}"
        self.log(
            logging.INFO if success else logging.WARNING,
            message,
            extra={
                "event_type": "auth",
                "auth_event": event,
                "auth_success": success,
                "user_email": user_email,
                "failure_reason": reason,
                **kwargs
            }
        )

    def log_submission(self, kind: str, record_id: str, student_id: str, **kwargs) -> None:
        """A student's clinical entry, skill log or published portfolio"""
        self.info(
            f"[{kind}] {record_id} submitted for student {student_id}",
            extra={
                "event_type": "submission",
                "submission_kind": kind,
                "record_id": record_id,
                "student_id": student_id,
                **kwargs
            }
        )

    def log_db_query(self, operation: str, table: str, duration_ms: float,
                     rows_affected: int = 0, **kwargs) -> None:
        self.debug(
            f"DB {operation} on {table} - {rows_affected} rows ({duration_ms:.2f}ms)",
            extra={
                "event_type": "db_query",
                "db_operation": operation,
                "db_table": table,
                "duration_ms": duration_ms,
                "rows_affected": rows_affected,
                **kwargs
            }
        )

    def log_cache_event(self, event: str, key: str, **kwargs) -> None:
        self.debug(
            f"Cache {event}: {key}",
            extra={"event_type": "cache", "cache_event": event, "cache_key": key, **kwargs}
        )

    def log_performance(self, operation: str, duration_ms: float,
                        threshold_ms: float = 1000, **kwargs) -> None:
        """Warning when the operation ran past the threshold, debug otherwise"""
        slow = duration_ms > threshold_ms
        message = f"Performance: {operation} took {duration_ms:.2f}ms"
        if slow:
            message += f" (threshold: {threshold_ms}ms)"
        self.log(
            logging.WARNING if slow else logging.DEBUG,
            message,
            extra={
                "event_type": "performance",
                "operation": operation,
                "duration_ms": duration_ms,
                "threshold_ms": threshold_ms,
                "exceeded_threshold": slow,
                **kwargs
            }
        )


def _console_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    handler.setFormatter(formatter)
    return handler


def _file_handler(path: str, formatter: logging.Formatter, backup_count: int) -> logging.Handler:
    log_file = Path(path)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=backup_count)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> SkillTrackLogger:
    """Configure the application logger from settings"""
    logging.setLoggerClass(SkillTrackLogger)

    logger = logging.getLogger(LOGGER_NAME)
    logger.__class__ = SkillTrackLogger  # getLogger may predate setLoggerClass
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    logger.handlers.clear()

    json_logging = settings.ENVIRONMENT == "production"
    if json_logging:
        console_formatter = file_formatter = JSONFormatter()
        backup_count = 10
    else:
        console_formatter = ContextualFormatter("%(levelname)-8s | %(message)s")
        file_formatter = ContextualFormatter(
            "%(asctime)s | %(levelname)-8s | [%(request_id)s] [%(user_id)s] | "
            "%(funcName)s:%(lineno)d | %(message)s"
        )
        backup_count = 5

    logger.addHandler(_console_handler(console_formatter))
    if settings.LOG_FILE:
        logger.addHandler(_file_handler(settings.LOG_FILE, file_formatter, backup_count))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(
        "Logging initialized",
        extra={
            "environment": settings.ENVIRONMENT,
            "log_level": settings.LOG_LEVEL,
            "json_logging": json_logging
        }
    )
    return logger


logger: SkillTrackLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'get_request_id',
    'set_request_id',
    'get_user_id',
    'set_user_id',
    'generate_request_id',
    'SkillTrackLogger',
    'JSONFormatter',
    'ContextualFormatter',
]
