"""
Password reset via emailed single-use link.

Only the SHA-256 digest of the reset secret is stored on the user record,
together with its expiry. A successful reset clears both fields and revokes
every refresh token the user holds.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import InvalidResetToken
from app.core.security import hash_password, hash_reset_token
from app.models.user import User
from app.services.auth_service import AuthService, check_password_strength
from app.services.token_store import RefreshTokenStore

logger = logging.getLogger(__name__)
settings = get_settings()


class PasswordResetService:

    @staticmethod
    def generate_reset_token() -> str:
        return secrets.token_hex(32)

    @staticmethod
    def build_reset_url(token: str) -> str:
        return f"{settings.client_url.rstrip('/')}/reset-password/{token}"

    @staticmethod
    async def create_reset_token(db: AsyncSession, email: str) -> Optional[Tuple[User, str]]:
        """
        Start a reset for ``email``.

        Returns the user and the raw secret to email, or None when no such
        account exists. A new request replaces any outstanding secret.
        """
        user = await AuthService.get_user_by_email(db, email)
        if user is None:
            return None

        token = PasswordResetService.generate_reset_token()
        user.reset_password_token_hash = hash_reset_token(token)
        user.reset_password_expires = datetime.now(timezone.utc) + timedelta(
            minutes=settings.password_reset_expire_minutes
        )
        await db.flush()

        logger.info(f"Password reset requested for user {user.id[:8]}...")
        return user, token

    @staticmethod
    async def reset_password(db: AsyncSession, token: str, new_password: str) -> User:
        """Consume a reset secret and set a new password."""
        check_password_strength(new_password)

        now = datetime.now(timezone.utc)
        result = await db.execute(
            select(User).where(
                User.reset_password_token_hash == hash_reset_token(token),
                User.reset_password_expires > now,
            )
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise InvalidResetToken()

        user.hashed_password = hash_password(new_password)
        user.reset_password_token_hash = None
        user.reset_password_expires = None
        await db.flush()

        # Every existing session ends with the old password
        revoked = await RefreshTokenStore(db).delete_all_for_user(user.id)
        logger.info(f"Password reset completed for user {user.id[:8]}..., {revoked} sessions revoked")
        return user
