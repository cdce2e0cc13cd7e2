"""
Pydantic schemas for User endpoints
"""
import re
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime

from helporbit.models.user import UserStatus


PASSWORD_RULES = (
    (r"[a-z]", "Password must contain at least one lowercase letter"),
    (r"[A-Z]", "Password must contain at least one uppercase letter"),
    (r"\d", "Password must contain at least one number"),
    (r"[@$!%*?&.,]", "Password must contain at least one special character (@$!%*?&.,)"),
)


def check_password_strength(password: str) -> str:
    for pattern, message in PASSWORD_RULES:
        if not re.search(pattern, password):
            raise ValueError(message)
    return password


class UserSummary(BaseModel):
    """Public display fields of a user"""
    id: str
    name: str
    email: EmailStr
    image: Optional[str] = None
    email_verified: bool

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    """Schema for creating a user via registration"""
    name: str = Field(min_length=3, max_length=255, description="Name should be at least 3 characters long")
    email: EmailStr
    password: str = Field(min_length=8, description="Password must be at least 8 characters long")

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_strength(value)


class UserResponse(UserSummary):
    """Response schema for users"""
    status: UserStatus
    active_organization_id: Optional[str] = None
    login_count: int
    last_active_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class UserLogin(BaseModel):
    """Schema for user login"""
    email: EmailStr
    password: str


class Token(BaseModel):
    """JWT Token response schema"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class PasswordReset(BaseModel):
    """Schema for password reset request"""
    email: EmailStr
    organization_slug: Optional[str] = None


class PasswordResetConfirm(BaseModel):
    """Schema for password reset confirmation"""
    token: str
    new_password: str = Field(min_length=8, description="Password must be at least 8 characters long")

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_strength(value)


class EmailVerification(BaseModel):
    """Schema for email verification"""
    token: str
