"""Auth and user schemas. JSON uses camelCase field names."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from app.models.user import UserRole


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserCreate(CamelModel):
    """Schema for user registration. Password strength is checked by the service."""
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(max_length=128)


class UserLogin(CamelModel):
    email: EmailStr
    password: str


class UserPublic(CamelModel):
    """Public user fields returned alongside an access token."""
    id: str
    name: str
    email: str
    role: UserRole


class UserResponse(UserPublic):
    """Schema for ``/me``; never includes password or reset fields."""
    created_at: datetime
    last_login: Optional[datetime] = None


class LoginResponse(CamelModel):
    access_token: str
    user: UserPublic


class RefreshResponse(CamelModel):
    access_token: str
    user_id: str


class CsrfTokenResponse(CamelModel):
    csrf_token: str


class MessageResponse(CamelModel):
    message: str


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    password: str = Field(max_length=128)
