"""
Double-submit CSRF protection without server-side token storage.

The random secret lives in an HttpOnly cookie that scripts cannot read. The
token handed to the client is ``sha256(secret)``; unsafe requests must echo
it in the ``x-csrf-token`` header. A cross-site attacker can make the browser
send the cookie but cannot read it to compute the header.
"""

import hmac
import logging
import secrets
from typing import Optional

from fastapi import Request, Response

from app.core.config import get_settings
from app.core.exceptions import CsrfError
from app.core.security import hash_csrf_secret

logger = logging.getLogger(__name__)
settings = get_settings()

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def generate_secret() -> str:
    """256 random bits, hex encoded."""
    return secrets.token_hex(32)


def ensure_secret(request: Request, response: Response) -> str:
    """
    Return the CSRF token for this browser session, creating the secret if needed.

    The secret cookie is written to ``response`` before the token is returned,
    so callers never hand out a token whose secret was not set. Repeated calls
    with an existing cookie return the same token.
    """
    secret = request.cookies.get(settings.csrf_cookie_name)
    if not secret:
        secret = generate_secret()
        response.set_cookie(
            settings.csrf_cookie_name,
            secret,
            max_age=settings.csrf_cookie_max_age,
            path="/",
            secure=settings.cookie_secure,
            httponly=True,
            samesite=settings.cookie_samesite,
        )
        logger.debug("Issued new CSRF secret cookie")
    return hash_csrf_secret(secret)


def validate_csrf(method: str, secret: Optional[str], token: Optional[str]) -> None:
    """Raise ``CsrfError`` unless the request is safe or the token matches the secret."""
    if method.upper() in SAFE_METHODS:
        return
    if not secret:
        logger.warning("CSRF validation failed: secret cookie missing")
        raise CsrfError("CSRF validation failed: Secret missing.", code="CSRF_SECRET_MISSING")
    if not token:
        logger.warning("CSRF validation failed: token header missing")
        raise CsrfError("CSRF validation failed: Token missing.", code="CSRF_TOKEN_MISSING")
    if not hmac.compare_digest(hash_csrf_secret(secret).encode(), token.encode()):
        logger.warning("CSRF validation failed: token mismatch")
        raise CsrfError("CSRF validation failed: Token mismatch.", code="CSRF_TOKEN_MISMATCH")


async def csrf_protect(request: Request) -> None:
    """Route dependency enforcing CSRF validation on unsafe methods."""
    validate_csrf(
        request.method,
        request.cookies.get(settings.csrf_cookie_name),
        request.headers.get(settings.csrf_header_name),
    )
