"""
Client-side session coordinator.

Owns the access token, the CSRF token and the current user for one API
client, keeps the session alive with a periodic refresh, and hands the rest
of the application an ``AuthCapabilities`` object instead of a global.

Lifecycle::

    async with SessionCoordinator(httpx.AsyncClient(base_url=...)) as session:
        caps = session.capabilities
        await caps.login("a@x.com", "Aa1!aaaa")

The underlying ``httpx.AsyncClient`` keeps the HttpOnly cookies (refresh
token, CSRF secret) in its cookie jar; this class never reads them.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from app.client.errors import ApiError, CsrfUnavailableError

logger = logging.getLogger(__name__)

# One minute of margin before the 15 minute access-token expiry
REFRESH_INTERVAL_SECONDS = 14 * 60
REQUEST_TIMEOUT_SECONDS = 8.0
CSRF_HEADER = "x-csrf-token"


class SessionPhase(str, Enum):
    INITIALIZING = "initializing"
    REFRESHING = "refreshing"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass
class SessionState:
    access_token: Optional[str] = None
    csrf_token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None
    phase: SessionPhase = SessionPhase.INITIALIZING


@dataclass(frozen=True)
class AuthCapabilities:
    """What the rest of the application may do with the session."""
    state: SessionState
    login: Callable[[str, str], Awaitable[Dict[str, Any]]]
    register: Callable[[str, str, str], Awaitable[str]]
    logout: Callable[[], Awaitable[None]]
    refresh: Callable[[], Awaitable[Optional[str]]]

    @property
    def is_authenticated(self) -> bool:
        return self.state.phase == SessionPhase.AUTHENTICATED

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self.state.user


class SessionCoordinator:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        auth_prefix: str = "/api/auth",
        refresh_interval: float = REFRESH_INTERVAL_SECONDS,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.http = http
        self.timeout = timeout
        self._auth_prefix = auth_prefix.rstrip("/")
        self._refresh_interval = refresh_interval
        self._state = SessionState()
        self._timer: Optional[asyncio.Task] = None
        self._inflight_refresh: Optional[asyncio.Task] = None
        # Bumped on logout; a refresh started under an older generation is discarded
        self._generation = 0

    # ─── State ───────────────────────────────────
    @property
    def state(self) -> SessionState:
        """A snapshot; mutating it does not affect the session."""
        return dataclasses.replace(self._state)

    @property
    def access_token(self) -> Optional[str]:
        return self._state.access_token

    @property
    def csrf_token(self) -> Optional[str]:
        return self._state.csrf_token

    @property
    def capabilities(self) -> AuthCapabilities:
        return AuthCapabilities(
            state=self.state,
            login=self.login,
            register=self.register,
            logout=self.logout,
            refresh=self.refresh,
        )

    # ─── Lifecycle ───────────────────────────────
    async def initialize(self) -> SessionState:
        """
        Fetch the CSRF token once, then try to resume a session from the refresh cookie.

        The refresh uses the token fetched here, never a cached one.
        """
        self._state.phase = SessionPhase.INITIALIZING
        try:
            csrf_token = await self._fetch_csrf_token()
        except (httpx.HTTPError, ApiError) as exc:
            logger.warning(f"Could not fetch CSRF token: {exc!r}")
            self._become_anonymous()
            return self.state

        self._state.csrf_token = csrf_token
        self._state.phase = SessionPhase.REFRESHING
        if await self.refresh(csrf_token=csrf_token):
            await self._load_user()
        return self.state

    async def teardown(self) -> None:
        self._stop_timer()
        await self._cancel_inflight_refresh()

    async def __aenter__(self) -> "SessionCoordinator":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.teardown()

    # ─── Refresh ─────────────────────────────────
    async def refresh(self, csrf_token: Optional[str] = None) -> Optional[str]:
        """
        Rotate the refresh cookie and return the new access token, or None.

        Concurrent callers (timer, request wrapper, UI) share one request.
        Any failure ends the session locally.
        """
        task = self._inflight_refresh
        if task is None or task.done():
            task = asyncio.create_task(self._refresh_once(csrf_token or self._state.csrf_token))
            self._inflight_refresh = task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The refresh itself was cancelled by logout or teardown, not this caller
            if task.cancelled():
                return None
            raise

    async def _refresh_once(self, csrf_token: Optional[str]) -> Optional[str]:
        generation = self._generation
        if not csrf_token:
            logger.warning("Refresh skipped: no CSRF token")
            self._become_anonymous()
            return None

        try:
            response = await self.http.post(
                f"{self._auth_prefix}/refresh-token",
                headers={CSRF_HEADER: csrf_token},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            if generation != self._generation:
                return None
            logger.warning(f"Token refresh failed: {exc!r}")
            self._become_anonymous()
            return None

        if generation != self._generation:
            logger.info("Discarding refresh result: session was logged out meanwhile")
            return None

        if response.status_code != 200:
            error = ApiError.from_response(response)
            logger.info(f"Token refresh rejected: {error.status_code} {error.code}")
            self._become_anonymous()
            return None

        access_token = response.json()["accessToken"]
        self._state.access_token = access_token
        self._state.phase = SessionPhase.AUTHENTICATED
        self._start_timer()
        return access_token

    # ─── Auth actions ────────────────────────────
    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Log in; on failure the state is left as it was and the error is raised."""
        response = await self.http.post(
            f"{self._auth_prefix}/login",
            json={"email": email, "password": password},
            headers=self._csrf_headers(),
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise ApiError.from_response(response)

        data = response.json()
        self._state.access_token = data["accessToken"]
        self._state.user = data["user"]
        self._state.phase = SessionPhase.AUTHENTICATED
        self._start_timer()
        return data["user"]

    async def register(self, name: str, email: str, password: str) -> str:
        response = await self.http.post(
            f"{self._auth_prefix}/register",
            json={"name": name, "email": email, "password": password},
            headers=self._csrf_headers(),
            timeout=self.timeout,
        )
        if response.status_code != 201:
            raise ApiError.from_response(response)
        return response.json()["message"]

    async def logout(self) -> None:
        """
        End the session. Local state is cleared even if the server call fails.

        A refresh already in flight is cancelled, and one that completes after
        this point cannot bring the session back.
        """
        self._generation += 1
        await self._cancel_inflight_refresh()
        try:
            response = await self.http.post(
                f"{self._auth_prefix}/logout",
                headers=self._csrf_headers(),
                timeout=self.timeout,
            )
            if response.status_code != 200:
                logger.warning(f"Logout returned {response.status_code}; clearing session anyway")
        except (httpx.HTTPError, CsrfUnavailableError) as exc:
            logger.warning(f"Logout request failed: {exc!r}; clearing session anyway")
        finally:
            self._generation += 1
            self._become_anonymous()

    # ─── Helpers ─────────────────────────────────
    async def _fetch_csrf_token(self) -> str:
        response = await self.http.get(f"{self._auth_prefix}/csrf-token", timeout=self.timeout)
        if response.status_code != 200:
            raise ApiError.from_response(response)
        return response.json()["csrfToken"]

    async def _load_user(self) -> None:
        """Fetch ``/me``; ``user`` is set only when this succeeds."""
        try:
            response = await self.http.get(
                f"{self._auth_prefix}/me",
                headers={"Authorization": f"Bearer {self._state.access_token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning(f"Could not load current user: {exc!r}")
            self._state.user = None
            return
        self._state.user = response.json() if response.status_code == 200 else None

    def _csrf_headers(self) -> Dict[str, str]:
        if not self._state.csrf_token:
            raise CsrfUnavailableError()
        return {CSRF_HEADER: self._state.csrf_token}

    def _become_anonymous(self) -> None:
        self._state.access_token = None
        self._state.user = None
        self._state.phase = SessionPhase.ANONYMOUS
        self._stop_timer()

    def _start_timer(self) -> None:
        if self._timer is None or self._timer.done():
            self._timer = asyncio.create_task(self._refresh_periodically())

    def _stop_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None and timer is not asyncio.current_task() and not timer.done():
            timer.cancel()

    async def _refresh_periodically(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            if await self.refresh() is None:
                logger.info("Periodic refresh failed; session ended")
                return
