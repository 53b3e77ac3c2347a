"""
Rate Limiting for SkillTrack API
================================
Implements rate limiting using slowapi. Counters live in memory by default;
pointing RATE_LIMIT_STORAGE_URL at redis:// shares them between workers.

Default limit is RATE_LIMIT_PER_MINUTE per user (or per IP when anonymous).

Special endpoints have their own limits:
- /auth/login: 5 req/min (brute force protection)
- /auth/register: 3 req/min
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging_config import logger


def get_user_identifier(request: Request) -> str:
    """
    Get rate limit key based on user authentication.

    Priority:
    1. Authenticated user ID (set on request.state by the auth dependency)
    2. IP address (for anonymous users)
    """
    user_id = getattr(request.state, 'user_id', None)
    if user_id:
        return f"user:{user_id}"

    return f"ip:{get_remote_address(request)}"


LOGIN_LIMIT = "5/minute"
REGISTER_LIMIT = "3/minute"


limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute"],
    storage_uri=settings.RATE_LIMIT_STORAGE_URL,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """
    Custom handler for rate limit exceeded errors.

    Returns a JSON error in the same envelope as every other API error,
    plus a Retry-After header.
    """
    retry_after = "60"
    limit = getattr(exc, "limit", None)
    if limit is not None and getattr(limit, "limit", None) is not None:
        retry_after = str(limit.limit.get_expiry())

    logger.warning(
        f"[RateLimit] Exceeded for {get_user_identifier(request)}: {exc.detail}",
        extra={"event_type": "rate_limit", "http_path": request.url.path}
    )

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": {
                "code": "RATE_LIMITED",
                "message": "Too many requests. Please slow down.",
                "details": {
                    "limit": str(exc.detail),
                    "retry_after_seconds": int(retry_after),
                },
            },
        },
        headers={
            "Retry-After": retry_after,
            "X-RateLimit-Limit": str(settings.RATE_LIMIT_PER_MINUTE),
        }
    )


def auth_rate_limit():
    """Rate limit for login (5/min)"""
    return limiter.limit(LOGIN_LIMIT, key_func=get_user_identifier)


def strict_rate_limit():
    """Very strict rate limit for account creation (3/min)"""
    return limiter.limit(REGISTER_LIMIT, key_func=get_user_identifier)
