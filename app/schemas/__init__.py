"""Pydantic schemas for API request/response validation."""

from app.schemas.user import (
    UserCreate,
    UserLogin,
    UserPublic,
    UserResponse,
    LoginResponse,
    RefreshResponse,
    CsrfTokenResponse,
    MessageResponse,
)
from app.schemas.event import EventCreate, EventUpdate, EventResponse

__all__ = [
    "UserCreate",
    "UserLogin",
    "UserPublic",
    "UserResponse",
    "LoginResponse",
    "RefreshResponse",
    "CsrfTokenResponse",
    "MessageResponse",
    "EventCreate",
    "EventUpdate",
    "EventResponse",
]
