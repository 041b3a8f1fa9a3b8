"""Database models."""

from app.models.user import User, UserRole
from app.models.refresh_token import RefreshToken
from app.models.event import Event

__all__ = [
    "User",
    "UserRole",
    "RefreshToken",
    "Event",
]
