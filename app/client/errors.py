"""Errors raised by the API client."""

from typing import Optional

import httpx


class ClientError(Exception):
    """Base class for client-side failures."""


class ApiError(ClientError):
    """The API answered with a non-success status."""

    def __init__(self, status_code: int, detail: str, code: Optional[str] = None):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.code = code

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("detail") or f"Server returned {response.status_code}"
        return cls(response.status_code, str(detail), body.get("code"))

    def __repr__(self) -> str:
        return f"ApiError(status_code={self.status_code}, code={self.code!r})"


class SessionExpiredError(ClientError):
    """The session could not be renewed; the user has to log in again."""

    def __init__(self, detail: str = "Session expired. Please login again."):
        super().__init__(detail)


class CsrfUnavailableError(ClientError):
    """No CSRF token is held, so unsafe auth requests cannot be made."""

    def __init__(self, detail: str = "CSRF token unavailable; initialize the session first."):
        super().__init__(detail)
