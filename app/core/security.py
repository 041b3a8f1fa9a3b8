"""
Secret/token codec: password hashing, JWT signing/verification, CSRF digests.

Everything here is stateless. Failures are raised as codec exceptions and are
never translated to HTTP responses at this layer.
"""

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from app.core.config import get_settings

settings = get_settings()

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenError(Exception):
    """Base class for token verification failures."""


class InvalidTokenError(TokenError):
    """The token is malformed, forged, or of the wrong type."""


class ExpiredTokenError(TokenError):
    """The token is well-formed and correctly signed but past its expiry."""


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    name: str


@dataclass(frozen=True)
class RefreshClaims:
    user_id: str


# ─── Password ────────────────────────────────
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


# ─── JWT ─────────────────────────────────────
def _create_jwt(
    user_id: str,
    token_type: str,
    secret: str,
    expires_delta: timedelta,
    extra_claims: Optional[dict] = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "jti": str(uuid.uuid4()),
        "iat": now,
        "exp": now + expires_delta,
        "type": token_type,
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def _decode_jwt(token: str, secret: str, token_type: str) -> dict:
    """Verify signature, expiry and token type, returning the payload."""
    if not token:
        raise InvalidTokenError("empty token")
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise ExpiredTokenError("token expired") from exc
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc

    if payload.get("type") != token_type or not payload.get("sub"):
        raise InvalidTokenError(f"not a valid {token_type} token")
    return payload


def sign_access_token(user_id: str, name: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a short-lived bearer token carrying the user id and display name."""
    return _create_jwt(
        user_id=user_id,
        token_type=ACCESS_TOKEN_TYPE,
        secret=settings.access_token_secret,
        expires_delta=expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
        extra_claims={"name": name},
    )


def verify_access_token(token: str) -> AccessClaims:
    payload = _decode_jwt(token, settings.access_token_secret, ACCESS_TOKEN_TYPE)
    return AccessClaims(user_id=payload["sub"], name=payload.get("name", ""))


def sign_refresh_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a refresh token signed with the refresh-only key."""
    return _create_jwt(
        user_id=user_id,
        token_type=REFRESH_TOKEN_TYPE,
        secret=settings.refresh_token_secret,
        expires_delta=expires_delta or timedelta(days=settings.refresh_token_expire_days),
    )


def verify_refresh_token(token: str) -> RefreshClaims:
    payload = _decode_jwt(token, settings.refresh_token_secret, REFRESH_TOKEN_TYPE)
    return RefreshClaims(user_id=payload["sub"])


# ─── Digests ─────────────────────────────────
def hash_csrf_secret(secret: str) -> str:
    """Derive the script-readable CSRF token from the cookie-held secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def hash_reset_token(token: str) -> str:
    """Digest stored on the user record in place of a raw reset secret."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
