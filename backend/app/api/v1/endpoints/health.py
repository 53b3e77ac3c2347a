"""
Health Check Endpoints

Endpoints:
- /health/live  - Basic liveness (app is running)
- /health/ready - Readiness check (database, and Redis when rate limits live there)
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from datetime import datetime
from typing import Dict, Any
import time

from sqlalchemy import text

from app.core.config import settings
from app.core.database import get_session_local
from app.core.logging_config import logger


router = APIRouter(prefix="/health", tags=["Health Checks"])


async def check_database() -> Dict[str, Any]:
    """Check database connectivity"""
    start = time.time()
    try:
        session_factory = get_session_local()
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))

        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "connection": "ok",
        }
    except Exception as e:
        logger.error(f"[HealthCheck] Database check failed: {e}")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "connection": "failed",
            "error": str(e),
        }


async def check_redis() -> Dict[str, Any]:
    """Check the Redis rate limit store; skipped for in-memory storage"""
    if not settings.RATE_LIMIT_STORAGE_URL.startswith("redis"):
        return {"status": "skipped", "message": "Rate limits use in-memory storage"}

    start = time.time()
    try:
        import redis.asyncio as redis

        client = redis.from_url(settings.RATE_LIMIT_STORAGE_URL, decode_responses=True)
        await client.ping()
        await client.aclose()
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "connection": "ok",
        }
    except Exception as e:
        logger.warning(f"[HealthCheck] Redis check failed: {e}")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "connection": "failed",
            "error": str(e),
        }


@router.get("/live")
async def liveness_check():
    """Liveness probe - the process is up"""
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """Readiness probe - dependencies answer"""
    checks = {
        "database": await check_database(),
        "redis": await check_redis(),
    }
    ready = all(c["status"] in ("healthy", "skipped") for c in checks.values())

    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "not_ready",
            "environment": settings.ENVIRONMENT,
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
