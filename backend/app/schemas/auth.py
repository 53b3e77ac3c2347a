from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime


class UserRegister(BaseModel):
    # Email and password are checked by utils.validation so the messages match the UI
    email: str
    password: str
    full_name: Optional[str] = None
    role: str = Field("student", pattern="^(student|instructor)$")
    instructor_code: Optional[str] = None


class UserLogin(BaseModel):
    email: str
    password: str


class TokenData(BaseModel):
    user_id: str
    email: str
    role: str


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    role: str
    is_active: bool
    affiliated_instructor_id: Optional[str] = None
    instructor_code: Optional[str] = None
    created_at: datetime

    @field_validator("role", mode="before")
    @classmethod
    def role_value(cls, value):
        return getattr(value, "value", value)

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
