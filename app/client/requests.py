"""Authenticated request wrapper with a single transparent refresh on expiry."""

import logging
from typing import Any, Dict, Optional

import httpx

from app.client.errors import ApiError, SessionExpiredError
from app.client.session import CSRF_HEADER, SessionCoordinator

logger = logging.getLogger(__name__)

TOKEN_EXPIRED_CODE = "TOKEN_EXPIRED"


def is_token_expired(response: httpx.Response) -> bool:
    """True only for the expiry-specific 401, not for any unauthorized answer."""
    if response.status_code != 401:
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("code") == TOKEN_EXPIRED_CODE


class AuthenticatedClient:
    """
    Sends requests with the session's bearer token and CSRF header.

    On an expired access token it refreshes once and retries once. If the
    refresh fails or the retry is still unauthorized, ``SessionExpiredError``
    is raised instead of trying again.
    """

    def __init__(self, session: SessionCoordinator):
        self._session = session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        response = await self._send(method, url, headers, **kwargs)
        if not is_token_expired(response):
            return response

        logger.info(f"Access token expired on {method} {url}; refreshing once")
        if await self._session.refresh() is None:
            raise SessionExpiredError()

        response = await self._send(method, url, headers, **kwargs)
        if response.status_code == 401:
            raise SessionExpiredError()
        return response

    async def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        """Like ``request`` but decodes JSON and raises ``ApiError`` on non-2xx."""
        response = await self.request(method, url, **kwargs)
        if not response.is_success:
            raise ApiError.from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request_json("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        return await self.request_json("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> Any:
        return await self.request_json("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> Any:
        return await self.request_json("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        return await self.request_json("DELETE", url, **kwargs)

    async def _send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]],
        **kwargs: Any,
    ) -> httpx.Response:
        merged = dict(headers or {})
        if self._session.access_token:
            merged["Authorization"] = f"Bearer {self._session.access_token}"
        if method.upper() != "GET" and self._session.csrf_token:
            merged[CSRF_HEADER] = self._session.csrf_token
        kwargs.setdefault("timeout", self._session.timeout)
        return await self._session.http.request(method, url, headers=merged, **kwargs)
