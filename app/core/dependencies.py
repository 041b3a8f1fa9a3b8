"""
FastAPI dependencies: database session, verified-request identity, role gates and per-IP rate limits.

Other route groups consume authentication only through these.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.csrf import csrf_protect
from app.core.exceptions import AuthorizationError
from app.core.rate_limiter import get_client_ip, rate_limiter
from app.db.session import get_db
from app.models.user import User, UserRole
from app.services.auth_service import AuthService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]
CsrfProtected = Depends(csrf_protect)


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity attached to a request whose access token verified."""
    user_id: str
    role: UserRole
    name: str


async def get_current_user(
    request: Request,
    db: DbSession,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> User:
    token = credentials.credentials if credentials else None
    user = await AuthService.get_current_user(db, token)
    request.state.identity = VerifiedIdentity(user_id=user.id, role=user.role, name=user.name)
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_identity(request: Request, current_user: CurrentUser) -> VerifiedIdentity:
    return request.state.identity


Identity = Annotated[VerifiedIdentity, Depends(get_identity)]


def require_roles(*roles: UserRole):
    """
    Dependency factory enforcing that the caller has one of ``roles``.

    Usage::
        @router.get("/admin-only")
        async def admin_only(identity: VerifiedIdentity = Depends(require_roles(UserRole.ADMIN))):
            ...
    """
    async def _check(identity: Identity) -> VerifiedIdentity:
        if identity.role not in roles:
            logger.warning(f"User {identity.user_id[:8]}... lacks role in {[r.value for r in roles]}")
            raise AuthorizationError()
        return identity

    return _check


require_admin = require_roles(UserRole.ADMIN)


def rate_limit_by_ip(limit_type: str):
    """
    Dependency factory counting every request against ``limit_type`` for the client IP.

    Route dependencies are solved before the request body is validated, so
    malformed bodies are counted too.
    """
    async def _check(request: Request) -> None:
        rate_limiter.check(limit_type, get_client_ip(request))

    return _check
