"""Async Python client for the auth/session API."""

from app.client.errors import ApiError, ClientError, CsrfUnavailableError, SessionExpiredError
from app.client.requests import AuthenticatedClient
from app.client.session import AuthCapabilities, SessionCoordinator, SessionPhase, SessionState

__all__ = [
    "ApiError",
    "ClientError",
    "CsrfUnavailableError",
    "SessionExpiredError",
    "AuthenticatedClient",
    "AuthCapabilities",
    "SessionCoordinator",
    "SessionPhase",
    "SessionState",
]
