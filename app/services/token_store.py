"""
Refresh Token Store.

Each write commits on its own so every operation is individually atomic.
There is no update: rotation is always create-new plus delete-old.
"""

import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.best_effort import best_effort
from app.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)


class RefreshTokenStore:
    """Persistence for refresh-token records, bound to one database session."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def create(self, user_id: str, token: str) -> RefreshToken:
        record = RefreshToken(user_id=user_id, token=token)
        self._db.add(record)
        try:
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise
        logger.debug(f"Stored refresh token for user {user_id[:8]}...")
        return record

    async def find_by_token(self, token: str) -> Optional[RefreshToken]:
        result = await self._db.execute(
            select(RefreshToken).where(RefreshToken.token == token)
        )
        return result.scalar_one_or_none()

    async def delete_by_token(self, token: str) -> bool:
        """Delete the record for ``token``. True only for the caller that removed it."""
        deleted = await self._delete(RefreshToken.token == token)
        return deleted > 0

    async def delete_by_user_and_token(self, user_id: str, token: str) -> bool:
        deleted = await self._delete(
            RefreshToken.user_id == user_id,
            RefreshToken.token == token,
        )
        return deleted > 0

    async def delete_all_for_user(self, user_id: str) -> int:
        return await self._delete(RefreshToken.user_id == user_id)

    # ─── Best-effort variants (log, never raise) ──────────
    @best_effort(fallback=False)
    async def discard_token(self, token: str) -> bool:
        return await self.delete_by_token(token)

    @best_effort(fallback=False)
    async def discard_user_token(self, user_id: str, token: str) -> bool:
        return await self.delete_by_user_and_token(user_id, token)

    # ─── Helpers ─────────────────────────────────
    async def _delete(self, *criteria) -> int:
        """Run a DELETE and commit it, leaving the session usable on failure."""
        try:
            result = await self._db.execute(delete(RefreshToken).where(*criteria))
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise
        return result.rowcount
