"""
Tests for the authentication service: registration, login, rotation, logout.

Run with: pytest tests/test_auth_service.py -v
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    DuplicateEmail,
    InvalidCredentials,
    InvalidRefreshToken,
    RefreshExpired,
    RefreshTokenMissing,
    TokenExpired,
    TokenInvalid,
    TokenMissing,
    WeakPassword,
)
from app.core.security import sign_access_token, sign_refresh_token, verify_password
from app.models.refresh_token import RefreshToken
from app.schemas.user import UserCreate
from app.services.auth_service import AuthService, check_password_strength
from app.services.token_store import RefreshTokenStore

PASSWORD = "Aa1!aaaa"


async def _register_and_login(session_factory, email="a@x.com"):
    async with session_factory() as db:
        await AuthService.register(db, UserCreate(name="A", email=email, password=PASSWORD))
        await db.commit()
    async with session_factory() as db:
        return await AuthService.login(db, email, PASSWORD)


async def _token_count(session_factory, user_id) -> int:
    async with session_factory() as db:
        result = await db.execute(
            select(func.count()).select_from(RefreshToken).where(RefreshToken.user_id == user_id)
        )
        return result.scalar_one()


# ============================================
# Password Policy
# ============================================

class TestPasswordPolicy:

    @pytest.mark.parametrize("password", ["Aa1!aaaa", "Str0ng&Password", "xY9$xY9$"])
    def test_strong_passwords_accepted(self, password):
        check_password_strength(password)

    @pytest.mark.parametrize(
        "password",
        ["", "Aa1!aaa", "aa1!aaaa", "AA1!AAAA", "Aa!aaaaa", "Aa1aaaaa", "Aa1!aaa a", "Aa1#aaaa"],
    )
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(WeakPassword):
            check_password_strength(password)


# ============================================
# Registration & Login
# ============================================

class TestRegistration:

    @pytest.mark.asyncio
    async def test_weak_password_rejected_before_any_database_access(self):
        db = AsyncMock()
        with pytest.raises(WeakPassword):
            await AuthService.register(db, UserCreate(name="A", email="a@x.com", password="weak"))
        db.execute.assert_not_called()
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_register_stores_hash_not_password(self, session_factory):
        async with session_factory() as db:
            user = await AuthService.register(db, UserCreate(name="A", email="A@X.com", password=PASSWORD))
            await db.commit()

        assert user.email == "a@x.com"
        assert user.hashed_password != PASSWORD
        assert verify_password(PASSWORD, user.hashed_password)

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, session_factory):
        await _register_and_login(session_factory)
        async with session_factory() as db:
            with pytest.raises(DuplicateEmail):
                await AuthService.register(db, UserCreate(name="B", email="a@x.com", password=PASSWORD))

    @pytest.mark.asyncio
    async def test_register_creates_no_refresh_token(self, session_factory):
        async with session_factory() as db:
            user = await AuthService.register(db, UserCreate(name="A", email="a@x.com", password=PASSWORD))
            await db.commit()
        assert await _token_count(session_factory, user.id) == 0


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_issues_stored_refresh_token(self, session_factory):
        issued = await _register_and_login(session_factory)

        async with session_factory() as db:
            record = await RefreshTokenStore(db).find_by_token(issued.refresh_token)
        assert record is not None
        assert record.user_id == issued.user.id
        assert issued.user.last_login is not None

    @pytest.mark.asyncio
    async def test_unknown_email_and_wrong_password_fail_alike(self, session_factory):
        await _register_and_login(session_factory)

        async with session_factory() as db:
            with pytest.raises(InvalidCredentials) as wrong_password:
                await AuthService.login(db, "a@x.com", "Aa1!bbbb")
            with pytest.raises(InvalidCredentials) as unknown_email:
                await AuthService.login(db, "nobody@x.com", PASSWORD)

        assert wrong_password.value.detail == unknown_email.value.detail
        assert wrong_password.value.code == unknown_email.value.code

    @pytest.mark.asyncio
    async def test_each_login_is_a_separate_session(self, session_factory):
        first = await _register_and_login(session_factory)
        async with session_factory() as db:
            second = await AuthService.login(db, "a@x.com", PASSWORD)

        assert first.refresh_token != second.refresh_token
        assert await _token_count(session_factory, first.user.id) == 2


# ============================================
# Refresh Rotation
# ============================================

class TestRefreshRotation:

    @pytest.mark.asyncio
    async def test_rotation_replaces_the_stored_token(self, session_factory):
        issued = await _register_and_login(session_factory)

        async with session_factory() as db:
            rotated = await AuthService.refresh(db, issued.refresh_token)

        assert rotated.user_id == issued.user.id
        assert rotated.refresh_token != issued.refresh_token
        async with session_factory() as db:
            store = RefreshTokenStore(db)
            assert await store.find_by_token(issued.refresh_token) is None
            assert await store.find_by_token(rotated.refresh_token) is not None

    @pytest.mark.asyncio
    async def test_replayed_token_is_rejected(self, session_factory):
        issued = await _register_and_login(session_factory)
        async with session_factory() as db:
            await AuthService.refresh(db, issued.refresh_token)

        async with session_factory() as db:
            with pytest.raises(InvalidRefreshToken) as exc:
                await AuthService.refresh(db, issued.refresh_token)
        assert exc.value.code == "INVALID_TOKEN_DB"
        assert exc.value.clear_refresh_cookie

    @pytest.mark.asyncio
    async def test_losing_the_claim_discards_the_successor(self, session_factory):
        issued = await _register_and_login(session_factory)
        real_delete = RefreshTokenStore.delete_by_token

        async def consumed_by_someone_else(self, token):
            if token == issued.refresh_token:
                await real_delete(self, token)
                return False
            return await real_delete(self, token)

        with patch.object(RefreshTokenStore, "delete_by_token", consumed_by_someone_else):
            async with session_factory() as db:
                with pytest.raises(InvalidRefreshToken) as exc:
                    await AuthService.refresh(db, issued.refresh_token)

        assert exc.value.code == "INVALID_TOKEN_DB"
        assert await _token_count(session_factory, issued.user.id) == 0

    @pytest.mark.asyncio
    async def test_missing_token(self, session_factory):
        async with session_factory() as db:
            with pytest.raises(RefreshTokenMissing):
                await AuthService.refresh(db, None)

    @pytest.mark.asyncio
    async def test_expired_token_is_removed_from_store(self, session_factory):
        issued = await _register_and_login(session_factory)
        expired = sign_refresh_token(issued.user.id, expires_delta=timedelta(seconds=-5))
        async with session_factory() as db:
            await RefreshTokenStore(db).create(issued.user.id, expired)

        async with session_factory() as db:
            with pytest.raises(RefreshExpired) as exc:
                await AuthService.refresh(db, expired)
        assert exc.value.code == "REFRESH_TOKEN_EXPIRED"
        assert exc.value.status_code == 401
        assert exc.value.clear_refresh_cookie

        async with session_factory() as db:
            assert await RefreshTokenStore(db).find_by_token(expired) is None

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_refresh_token(self, session_factory):
        issued = await _register_and_login(session_factory)
        async with session_factory() as db:
            with pytest.raises(InvalidRefreshToken) as exc:
                await AuthService.refresh(db, issued.access_token)
        assert exc.value.code == "INVALID_REFRESH_TOKEN"

    @pytest.mark.asyncio
    async def test_valid_signature_but_never_stored(self, session_factory):
        issued = await _register_and_login(session_factory)
        async with session_factory() as db:
            with pytest.raises(InvalidRefreshToken) as exc:
                await AuthService.refresh(db, sign_refresh_token(issued.user.id))
        assert exc.value.code == "INVALID_TOKEN_DB"


# ============================================
# Logout & Identity
# ============================================

class TestLogout:

    @pytest.mark.asyncio
    async def test_logout_revokes_only_that_session(self, session_factory):
        first = await _register_and_login(session_factory)
        async with session_factory() as db:
            second = await AuthService.login(db, "a@x.com", PASSWORD)

        async with session_factory() as db:
            assert await AuthService.logout(db, first.refresh_token) is True

        async with session_factory() as db:
            store = RefreshTokenStore(db)
            assert await store.find_by_token(first.refresh_token) is None
            assert await store.find_by_token(second.refresh_token) is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "garbage"])
    async def test_logout_never_raises(self, session_factory, token):
        async with session_factory() as db:
            assert await AuthService.logout(db, token) is False

    @pytest.mark.asyncio
    async def test_logout_all(self, session_factory):
        issued = await _register_and_login(session_factory)
        async with session_factory() as db:
            await AuthService.login(db, "a@x.com", PASSWORD)

        async with session_factory() as db:
            assert await AuthService.logout_all(db, issued.user.id) == 2
        assert await _token_count(session_factory, issued.user.id) == 0


class TestCurrentUser:

    @pytest.mark.asyncio
    async def test_resolves_user(self, session_factory):
        issued = await _register_and_login(session_factory)
        async with session_factory() as db:
            user = await AuthService.get_current_user(db, issued.access_token)
        assert user.id == issued.user.id

    @pytest.mark.asyncio
    async def test_failure_codes(self, session_factory):
        issued = await _register_and_login(session_factory)
        expired = sign_access_token(issued.user.id, "A", expires_delta=timedelta(seconds=-5))

        async with session_factory() as db:
            with pytest.raises(TokenMissing):
                await AuthService.get_current_user(db, None)
            with pytest.raises(TokenExpired) as exc:
                await AuthService.get_current_user(db, expired)
            assert exc.value.code == "TOKEN_EXPIRED"
            with pytest.raises(TokenInvalid):
                await AuthService.get_current_user(db, issued.refresh_token)

    @pytest.mark.asyncio
    async def test_independent_of_refresh_state(self, session_factory):
        issued = await _register_and_login(session_factory)
        async with session_factory() as db:
            await AuthService.logout(db, issued.refresh_token)

        async with session_factory() as db:
            user = await AuthService.get_current_user(db, issued.access_token)
        assert user.id == issued.user.id
