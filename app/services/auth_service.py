"""Authentication Service: JWT access tokens + rotating, store-backed refresh tokens."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    DuplicateEmail,
    InvalidCredentials,
    InvalidRefreshToken,
    RefreshExpired,
    RefreshTokenMissing,
    TokenExpired,
    TokenInvalid,
    TokenMissing,
    UserNotFound,
    WeakPassword,
)
from app.core.security import (
    ExpiredTokenError,
    InvalidTokenError,
    hash_password,
    pwd_context,
    sign_access_token,
    sign_refresh_token,
    verify_access_token,
    verify_refresh_token,
)
from app.models.user import User, UserRole
from app.schemas.user import UserCreate
from app.services.token_store import RefreshTokenStore

logger = logging.getLogger(__name__)

PASSWORD_PATTERN = re.compile(
    r"^(?=.*\d)(?=.*[a-z])(?=.*[A-Z])(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
)

# Precomputed fake hash to mitigate timing attacks
FAKE_HASHED_PASSWORD = pwd_context.hash(
    "this_is_a_fake_user_that_never_exists_2025"
)


@dataclass(frozen=True)
class IssuedSession:
    """Result of a successful login."""
    access_token: str
    refresh_token: str
    user: User


@dataclass(frozen=True)
class RotatedSession:
    """Result of a successful refresh-token rotation."""
    access_token: str
    refresh_token: str
    user_id: str


def check_password_strength(password: str) -> None:
    """Require 8+ chars with upper, lower, digit and symbol; raises ``WeakPassword``."""
    if not password or not PASSWORD_PATTERN.match(password):
        raise WeakPassword()


class AuthService:
    """Registration, login, refresh rotation, logout and identity lookup."""

    # ─── User Lookup ─────────────────────────────
    @staticmethod
    async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    # ─── Registration ───────────────────────────
    @staticmethod
    async def register(db: AsyncSession, user_data: UserCreate) -> User:
        """Create an account. No session is established."""
        check_password_strength(user_data.password)

        email = user_data.email.lower()
        if await AuthService.get_user_by_email(db, email):
            raise DuplicateEmail()

        user = User(
            name=user_data.name,
            email=email,
            hashed_password=hash_password(user_data.password),
            role=UserRole.USER,
        )
        db.add(user)
        await db.flush()
        logger.info(f"Registered user {user.id[:8]}...")
        return user

    # ─── Login ──────────────────────────────────
    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
        """Check credentials in constant time; unknown email and bad password fail alike."""
        user = await AuthService.get_user_by_email(db, email)
        hashed_password = user.hashed_password if user else FAKE_HASHED_PASSWORD
        password_correct = pwd_context.verify(password, hashed_password)

        if not user or not password_correct:
            logger.warning("Failed login attempt")
            raise InvalidCredentials()
        return user

    @staticmethod
    async def login(db: AsyncSession, email: str, password: str) -> IssuedSession:
        user = await AuthService.authenticate_user(db, email, password)
        user.last_login = datetime.now(timezone.utc)

        access_token = sign_access_token(user.id, user.name)
        refresh_token = sign_refresh_token(user.id)
        await RefreshTokenStore(db).create(user.id, refresh_token)

        logger.info(f"User {user.id[:8]}... logged in")
        return IssuedSession(access_token=access_token, refresh_token=refresh_token, user=user)

    # ─── Refresh (Rotation) ─────────────────────
    @staticmethod
    async def refresh(db: AsyncSession, refresh_token: Optional[str]) -> RotatedSession:
        """
        Exchange a refresh token for a new access/refresh pair.

        The presented token is single use. Every failure after the cookie is
        found asks for the refresh cookie to be cleared.
        """
        if not refresh_token:
            raise RefreshTokenMissing()

        store = RefreshTokenStore(db)

        try:
            claims = verify_refresh_token(refresh_token)
        except ExpiredTokenError:
            await store.discard_token(refresh_token)
            logger.info("Expired refresh token presented")
            raise RefreshExpired(clear_refresh_cookie=True)
        except InvalidTokenError:
            logger.warning("Refresh token failed signature verification")
            raise InvalidRefreshToken(clear_refresh_cookie=True)

        record = await store.find_by_token(refresh_token)
        if record is None or record.user_id != claims.user_id:
            # Already rotated, logged out, or never issued: treat as replay
            logger.warning(f"Refresh token not in store for user {claims.user_id[:8]}...")
            raise InvalidRefreshToken(
                "Refresh token is no longer valid",
                code="INVALID_TOKEN_DB",
                clear_refresh_cookie=True,
            )

        user = await AuthService.get_user_by_id(db, claims.user_id)
        if user is None:
            await store.discard_user_token(claims.user_id, refresh_token)
            raise UserNotFound(clear_refresh_cookie=True)

        # Issue the successor before consuming the old record so an interrupted
        # rotation leaves one extra live token rather than none.
        new_refresh_token = sign_refresh_token(user.id)
        await store.create(user.id, new_refresh_token)

        if not await store.delete_by_token(refresh_token):
            # A concurrent refresh consumed the same token first
            await store.discard_token(new_refresh_token)
            logger.warning(f"Lost refresh rotation race for user {user.id[:8]}...")
            raise InvalidRefreshToken(
                "Refresh token is no longer valid",
                code="INVALID_TOKEN_DB",
                clear_refresh_cookie=True,
            )

        logger.info(f"Rotated refresh token for user {user.id[:8]}...")
        return RotatedSession(
            access_token=sign_access_token(user.id, user.name),
            refresh_token=new_refresh_token,
            user_id=user.id,
        )

    # ─── Logout ─────────────────────────────────
    @staticmethod
    async def logout(db: AsyncSession, refresh_token: Optional[str]) -> bool:
        """Revoke the presented refresh token. Never raises; returns whether a record was removed."""
        if not refresh_token:
            return False

        store = RefreshTokenStore(db)
        try:
            claims = verify_refresh_token(refresh_token)
        except (ExpiredTokenError, InvalidTokenError):
            return await store.discard_token(refresh_token)

        removed = await store.discard_user_token(claims.user_id, refresh_token)
        logger.info(f"User {claims.user_id[:8]}... logged out (record removed={removed})")
        return removed

    @staticmethod
    async def logout_all(db: AsyncSession, user_id: str) -> int:
        count = await RefreshTokenStore(db).delete_all_for_user(user_id)
        logger.info(f"Revoked {count} refresh tokens for user {user_id[:8]}...")
        return count

    # ─── Current User ───────────────────────────
    @staticmethod
    async def get_current_user(db: AsyncSession, access_token: Optional[str]) -> User:
        """Resolve a bearer access token to its user. Independent of refresh state."""
        if not access_token:
            raise TokenMissing()
        try:
            claims = verify_access_token(access_token)
        except ExpiredTokenError:
            raise TokenExpired()
        except InvalidTokenError:
            raise TokenInvalid()

        user = await AuthService.get_user_by_id(db, claims.user_id)
        if user is None:
            raise UserNotFound()
        return user
