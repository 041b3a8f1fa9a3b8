"""Event schemas for API validation."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from app.schemas.user import CamelModel


class EventCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    starts_at: Optional[datetime] = None
    is_public: bool = True


class EventUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    starts_at: Optional[datetime] = None
    is_public: Optional[bool] = None


class EventResponse(CamelModel):
    id: str
    organizer_id: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    starts_at: Optional[datetime] = None
    is_public: bool
    created_at: datetime
