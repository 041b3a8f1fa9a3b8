"""
Shared fixtures.

Signing keys and the database URL must be in the environment before any
application module reads the settings.
"""

import asyncio
import os
import tempfile

_test_tmp_dir = tempfile.mkdtemp(prefix="eventhub_test_")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-for-unit-tests")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-for-unit-tests")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_test_tmp_dir}/unused.db")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("CLIENT_URL", "https://app.eventhub.test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

import app.models  # noqa: E402,F401
from app.core.rate_limiter import rate_limiter  # noqa: E402
from app.db.session import Base, get_db  # noqa: E402
from app.services.email_service import get_email_service  # noqa: E402

PASSWORD = "Aa1!aaaa"


class FakeEmailService:
    """Captures reset links instead of sending them."""

    is_configured = True

    def __init__(self):
        self.sent = []

    async def send_password_reset_link(self, to_email, reset_url, user_name="there", expiry_minutes=60):
        self.sent.append({"to": to_email, "url": reset_url})
        return True


@pytest.fixture(autouse=True)
def reset_rate_limits():
    rate_limiter.reset_all()
    yield
    rate_limiter.reset_all()


@pytest.fixture
def session_factory(tmp_path):
    """Fresh SQLite file per test. NullPool keeps connections off any one event loop."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def _create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create_tables())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def outbox():
    return FakeEmailService()


@pytest.fixture
def app(session_factory, outbox):
    from main import app as fastapi_app

    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_db] = _get_test_db
    fastapi_app.dependency_overrides[get_email_service] = lambda: outbox
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """HTTPS base URL so Secure cookies are stored and sent back."""
    return TestClient(app, base_url="https://testserver")


class AuthApi:
    """Small helper around the auth endpoints used by several test modules."""

    def __init__(self, client: TestClient):
        self.client = client

    def register(self, name="A", email="a@x.com", password=PASSWORD):
        return self.client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
        )

    def login(self, email="a@x.com", password=PASSWORD):
        return self.client.post("/api/auth/login", json={"email": email, "password": password})

    def csrf_token(self) -> str:
        response = self.client.get("/api/auth/csrf-token")
        assert response.status_code == 200
        return response.json()["csrfToken"]

    def refresh(self, csrf_token: str, **kwargs):
        return self.client.post(
            "/api/auth/refresh-token",
            headers={"x-csrf-token": csrf_token, **kwargs.pop("headers", {})},
            **kwargs,
        )

    def logout(self, csrf_token: str):
        return self.client.post("/api/auth/logout", headers={"x-csrf-token": csrf_token})

    def signed_in(self, email="a@x.com"):
        """Register + log in; returns (access_token, csrf_token)."""
        assert self.register(email=email).status_code == 201
        csrf = self.csrf_token()
        response = self.login(email=email)
        assert response.status_code == 200
        return response.json()["accessToken"], csrf


@pytest.fixture
def api(client):
    return AuthApi(client)


def refresh_cookie_cleared(response) -> bool:
    return any(
        header.startswith("refreshToken=") and "Max-Age=0" in header
        for header in response.headers.get_list("set-cookie")
    )
