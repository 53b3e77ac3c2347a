from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Any, Dict
import uuid

from app.core.database import get_db
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.logging_config import set_user_id
from app.core.security import get_current_user_token
from app.models.user import User, UserRole


async def get_current_user(
    request: Request,
    payload: Dict[str, Any] = Depends(get_current_user_token),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get current authenticated user"""
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    try:
        uuid.UUID(user_id)
    except ValueError:
        raise AuthenticationError("Invalid user ID format")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthorizationError("User account is inactive")

    # Rate limiter keys on this; logging context picks it up too
    request.state.user_id = user.id
    set_user_id(user.id)
    return user


async def get_current_instructor(
    current_user: User = Depends(get_current_user)
) -> User:
    """Instructor or admin"""
    if current_user.role not in (UserRole.INSTRUCTOR, UserRole.ADMIN):
        raise AuthorizationError("Instructor access required")
    return current_user


async def get_current_admin(
    current_user: User = Depends(get_current_user)
) -> User:
    """Get current admin user"""
    if current_user.role != UserRole.ADMIN:
        raise AuthorizationError("Admin access required")
    return current_user


async def get_current_student(
    current_user: User = Depends(get_current_user)
) -> User:
    if current_user.role != UserRole.STUDENT:
        raise AuthorizationError("Student access required")
    return current_user
