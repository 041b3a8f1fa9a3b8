"""
Event endpoints.

Thin endpoints that put the auth gate in front of a real
resource. Reads of public events are anonymous; every mutation needs a
verified identity and a valid CSRF pair, and only the organizer or an admin
may change an event.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy import select

from app.core.dependencies import CsrfProtected, DbSession, Identity, VerifiedIdentity, require_admin
from app.core.exceptions import AuthorizationError, NotFound
from app.models.event import Event
from app.models.user import UserRole
from app.schemas.event import EventCreate, EventResponse, EventUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


async def _get_event(db, event_id: str) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if event is None:
        raise NotFound("Event not found")
    return event


def _ensure_can_modify(event: Event, identity: VerifiedIdentity) -> None:
    if event.organizer_id != identity.user_id and identity.role != UserRole.ADMIN:
        logger.warning(f"User {identity.user_id[:8]}... tried to modify event {event.id[:8]}...")
        raise AuthorizationError("Only the organizer can modify this event")


@router.get("/public", response_model=List[EventResponse])
async def list_public_events(db: DbSession):
    result = await db.execute(
        select(Event).where(Event.is_public.is_(True)).order_by(Event.created_at.desc())
    )
    return result.scalars().all()


@router.get("/mine", response_model=List[EventResponse])
async def list_my_events(identity: Identity, db: DbSession):
    result = await db.execute(
        select(Event).where(Event.organizer_id == identity.user_id).order_by(Event.created_at.desc())
    )
    return result.scalars().all()


@router.get("", response_model=List[EventResponse])
async def list_all_events(db: DbSession, identity: VerifiedIdentity = Depends(require_admin)):
    """Every event, public or not. Admins only."""
    result = await db.execute(select(Event).order_by(Event.created_at.desc()))
    return result.scalars().all()


@router.get("/{event_id}", response_model=EventResponse)
async def get_public_event(event_id: str, db: DbSession):
    event = await _get_event(db, event_id)
    if not event.is_public:
        raise NotFound("Event not found")
    return event


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED, dependencies=[CsrfProtected])
async def create_event(body: EventCreate, identity: Identity, db: DbSession):
    event = Event(organizer_id=identity.user_id, **body.model_dump())
    db.add(event)
    await db.flush()
    await db.refresh(event)
    logger.info(f"Event {event.id[:8]}... created by user {identity.user_id[:8]}...")
    return event


@router.put("/{event_id}", response_model=EventResponse, dependencies=[CsrfProtected])
async def update_event(event_id: str, body: EventUpdate, identity: Identity, db: DbSession):
    event = await _get_event(db, event_id)
    _ensure_can_modify(event, identity)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(event, field, value)
    await db.flush()
    await db.refresh(event)
    return event


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[CsrfProtected])
async def delete_event(event_id: str, identity: Identity, db: DbSession):
    event = await _get_event(db, event_id)
    _ensure_can_modify(event, identity)
    await db.delete(event)
    await db.flush()
