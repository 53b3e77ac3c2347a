"""
Ownership checks shared by the services.

Admins see everyone, instructors see the students affiliated with them and
students see themselves.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError, UserNotFoundError
from app.models.user import User, UserRole


async def load_students(db: AsyncSession, viewer: User) -> List[User]:
    """Students visible to an instructor or admin, ordered by name"""
    stmt = select(User).where(User.role == UserRole.STUDENT)
    if viewer.role != UserRole.ADMIN:
        stmt = stmt.where(User.affiliated_instructor_id == viewer.id)
    result = await db.execute(stmt.order_by(User.full_name))
    return list(result.scalars().all())


async def visible_student_ids(db: AsyncSession, viewer: User) -> Optional[List[str]]:
    """Student ids the viewer may read; None means no restriction (admin)"""
    if viewer.role == UserRole.ADMIN:
        return None
    if viewer.role == UserRole.STUDENT:
        return [viewer.id]
    return [s.id for s in await load_students(db, viewer)]


async def get_student(db: AsyncSession, student_id: str) -> User:
    result = await db.execute(
        select(User).where(User.id == student_id, User.role == UserRole.STUDENT)
    )
    student = result.scalar_one_or_none()
    if not student:
        raise UserNotFoundError(student_id)
    return student


async def ensure_can_view_student(db: AsyncSession, viewer: User, student_id: str) -> None:
    if viewer.role == UserRole.ADMIN:
        return
    if viewer.role == UserRole.STUDENT:
        if viewer.id != student_id:
            raise AuthorizationError("You can only access your own records")
        return

    student = await get_student(db, student_id)
    if student.affiliated_instructor_id != viewer.id:
        raise AuthorizationError("This student is not affiliated with you")
