from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from datetime import datetime

from app.core.database import get_db
from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ValidationError,
    ValidationErrors,
)
from app.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    generate_instructor_code,
)
from app.core.logging_config import logger, set_user_id
from app.core.rate_limiter import limiter, LOGIN_LIMIT, REGISTER_LIMIT
from app.models.user import User, UserRole
from app.schemas.auth import UserRegister, UserLogin, LoginResponse, UserResponse
from app.modules.auth.dependencies import get_current_user
from app.utils.validation import validate_email, validate_password, validate_form


router = APIRouter()


async def _unique_instructor_code(db: AsyncSession) -> str:
    while True:
        code = generate_instructor_code()
        taken = await db.execute(select(User.id).where(User.instructor_code == code))
        if taken.first() is None:
            return code


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_LIMIT)
async def register(
    request: Request,
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """Register new user (rate limited: 3/min)"""
    client_ip = request.client.host if request.client else "unknown"

    errors = validate_form(
        {"email": user_data.email, "password": user_data.password},
        {"email": validate_email, "password": validate_password},
    )
    if errors:
        raise ValidationErrors(errors)

    email = user_data.email.strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        logger.log_auth_event(
            event="register",
            success=False,
            user_email=email,
            reason="Email already registered",
            client_ip=client_ip
        )
        raise ConflictError("Email already registered")

    user_role = UserRole(user_data.role)
    user = User(
        email=email,
        hashed_password=get_password_hash(user_data.password),
        full_name=user_data.full_name,
        role=user_role,
    )

    if user_role == UserRole.INSTRUCTOR:
        user.instructor_code = await _unique_instructor_code(db)
    elif user_data.instructor_code:
        code = user_data.instructor_code.strip().upper()
        result = await db.execute(
            select(User).where(User.instructor_code == code, User.role == UserRole.INSTRUCTOR)
        )
        instructor = result.scalar_one_or_none()
        if not instructor:
            raise ValidationError("Invalid instructor code", field="instructor_code")
        user.affiliated_instructor_id = instructor.id

    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.log_auth_event(
        event="register",
        success=True,
        user_email=email,
        client_ip=client_ip,
        user_role=user_role.value
    )
    return user


@router.post("/login", response_model=LoginResponse)
@limiter.limit(LOGIN_LIMIT)
async def login(
    request: Request,
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """Login user (rate limited: 5/min)"""
    client_ip = request.client.host if request.client else "unknown"
    email = credentials.email.strip().lower()

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.log_auth_event(
            event="login",
            success=False,
            user_email=email,
            reason="Invalid credentials",
            client_ip=client_ip
        )
        raise AuthenticationError("Incorrect email or password")

    if not user.is_active:
        logger.log_auth_event(
            event="login",
            success=False,
            user_email=email,
            reason="Account inactive",
            client_ip=client_ip
        )
        raise AuthorizationError("Account is inactive")

    user.last_login = datetime.utcnow()
    await db.commit()

    set_user_id(str(user.id))

    access_token = create_access_token({
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value
    })

    logger.log_auth_event(
        event="login",
        success=True,
        user_email=user.email,
        client_ip=client_ip,
        user_role=user.role.value
    )

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": UserResponse.model_validate(user),
    }


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user info"""
    return current_user
