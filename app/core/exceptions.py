"""
Application error taxonomy and the FastAPI handlers that render it.

Every error is rendered as ``{"detail": <message>, "code": <CODE>}``.
"""

from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.cookies import clear_refresh_cookie


class AppError(Exception):
    """Base class for errors that map to an HTTP status and error code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    detail: str = "Internal server error"

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        code: Optional[str] = None,
        clear_refresh_cookie: bool = False,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.detail = detail or self.detail
        if code:
            self.code = code
        self.clear_refresh_cookie = clear_refresh_cookie
        self.headers = headers or {}
        super().__init__(self.detail)


# ─── 400 ─────────────────────────────────────
class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    detail = "Invalid request"


class WeakPassword(ValidationError):
    code = "WEAK_PASSWORD"
    detail = (
        "Password must be at least 8 characters, include a number, a lowercase, "
        "an uppercase, and a special character."
    )


class DuplicateEmail(ValidationError):
    code = "DUPLICATE_EMAIL"
    detail = "Email already in use"


class InvalidResetToken(ValidationError):
    code = "INVALID_RESET_TOKEN"
    detail = "Invalid or expired token"


# ─── 401 ─────────────────────────────────────
class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    detail = "Authentication required"


class InvalidCredentials(AuthenticationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_CREDENTIALS"
    detail = "Invalid credentials"


class TokenMissing(AuthenticationError):
    code = "TOKEN_MISSING"
    detail = "Access denied: No token provided"


class TokenInvalid(AuthenticationError):
    code = "TOKEN_INVALID"
    detail = "Invalid token"


class TokenExpired(AuthenticationError):
    code = "TOKEN_EXPIRED"
    detail = "Access token expired"


class RefreshTokenMissing(AuthenticationError):
    code = "REFRESH_TOKEN_MISSING"
    detail = "Access denied"


class RefreshExpired(TokenExpired):
    code = "REFRESH_TOKEN_EXPIRED"
    detail = "Refresh token expired"


# ─── 403 ─────────────────────────────────────
class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    detail = "Forbidden: Insufficient permissions"


class CsrfError(AuthorizationError):
    code = "CSRF_INVALID"
    detail = "CSRF validation failed"


class InvalidRefreshToken(AuthorizationError):
    code = "INVALID_REFRESH_TOKEN"
    detail = "Invalid refresh token"


# ─── 404 / 429 ───────────────────────────────
class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    detail = "Not found"


class UserNotFound(NotFound):
    code = "USER_NOT_FOUND"
    detail = "User not found"


class RateLimited(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"
    detail = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, detail: Optional[str] = None):
        super().__init__(detail, headers={"Retry-After": str(retry_after)})
        self.retry_after = retry_after


# ─────────────────────────────────────────────
# Handlers
# ─────────────────────────────────────────────

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    response = JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=exc.headers,
    )
    if exc.clear_refresh_cookie:
        clear_refresh_cookie(response)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request", "code": "VALIDATION_ERROR", "errors": errors},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
