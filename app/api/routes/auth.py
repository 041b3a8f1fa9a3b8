"""Authentication endpoints."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, Request, Response, status

from app.core.config import get_settings
from app.core.cookies import clear_refresh_cookie, set_refresh_cookie
from app.core.csrf import ensure_secret
from app.core.dependencies import CsrfProtected, CurrentUser, DbSession, rate_limit_by_ip
from app.core.rate_limiter import rate_limiter
from app.schemas.user import (
    CsrfTokenResponse,
    ForgotPasswordRequest,
    LoginResponse,
    MessageResponse,
    RefreshResponse,
    ResetPasswordRequest,
    UserCreate,
    UserLogin,
    UserPublic,
    UserResponse,
)
from app.services.auth_service import AuthService
from app.services.email_service import EmailService, get_email_service
from app.services.password_reset_service import PasswordResetService

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter()

RefreshCookie = Annotated[Optional[str], Cookie(alias=settings.refresh_cookie_name)]


# ─────────────────────────────────────────────
# CSRF Token
# ─────────────────────────────────────────────

@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def csrf_token(request: Request, response: Response):
    """Return the CSRF token, setting the secret cookie first if it is absent."""
    return CsrfTokenResponse(csrf_token=ensure_secret(request, response))


# ─────────────────────────────────────────────
# Register
# ─────────────────────────────────────────────

@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: DbSession):
    """Create an account. Does not log the user in."""
    await AuthService.register(db, user_data)
    return MessageResponse(message="User registered successfully")


# ─────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse, dependencies=[Depends(rate_limit_by_ip("login"))])
async def login(credentials: UserLogin, response: Response, db: DbSession):
    """
    Authenticate with email and password.

    The refresh token goes into an HttpOnly cookie; the access token is only
    returned in the body. Rate limited: 5 attempts per 15 minutes per client.
    """
    session = await AuthService.login(db, credentials.email, credentials.password)
    set_refresh_cookie(response, session.refresh_token)

    return LoginResponse(
        access_token=session.access_token,
        user=UserPublic.model_validate(session.user),
    )


# ─────────────────────────────────────────────
# Refresh Token (Rotation)
# ─────────────────────────────────────────────

@router.post("/refresh-token", response_model=RefreshResponse, dependencies=[CsrfProtected])
async def refresh_token(response: Response, db: DbSession, refresh_token: RefreshCookie = None):
    """Consume the refresh cookie and issue a new access token and refresh cookie."""
    session = await AuthService.refresh(db, refresh_token)
    set_refresh_cookie(response, session.refresh_token)
    return RefreshResponse(access_token=session.access_token, user_id=session.user_id)


# ─────────────────────────────────────────────
# Logout
# ─────────────────────────────────────────────

@router.post("/logout", response_model=MessageResponse, dependencies=[CsrfProtected])
async def logout(response: Response, db: DbSession, refresh_token: RefreshCookie = None):
    """Revoke the refresh cookie's store record. Succeeds even when already logged out."""
    await AuthService.logout(db, refresh_token)
    clear_refresh_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse, dependencies=[CsrfProtected])
async def logout_all(response: Response, current_user: CurrentUser, db: DbSession):
    """Revoke every refresh token of the current user ("sign out everywhere")."""
    count = await AuthService.logout_all(db, current_user.id)
    clear_refresh_cookie(response)
    return MessageResponse(message=f"Logged out of {count} sessions")


# ─────────────────────────────────────────────
# Current User
# ─────────────────────────────────────────────

@router.get("/me", response_model=UserResponse)
async def me(current_user: CurrentUser):
    return current_user


# ─────────────────────────────────────────────
# Forgot / Reset Password
# ─────────────────────────────────────────────

@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit_by_ip("password_reset_ip"))],
)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: DbSession,
    email_service: Annotated[EmailService, Depends(get_email_service)],
):
    """
    Email a single-use reset link.

    Always returns the same message to prevent user enumeration.
    Rate limited: 5 requests per 15 minutes per IP, 3 per hour per email.
    """
    email = body.email.lower()
    rate_limiter.check("password_reset_email", email)

    issued = await PasswordResetService.create_reset_token(db, email)
    if issued:
        user, token = issued
        sent = await email_service.send_password_reset_link(
            to_email=user.email,
            reset_url=PasswordResetService.build_reset_url(token),
            user_name=user.name,
            expiry_minutes=settings.password_reset_expire_minutes,
        )
        if not sent:
            logger.error(f"Password reset email for user {user.id[:8]}... was not delivered")

    return MessageResponse(
        message="If an account with this email exists, a password reset link has been sent."
    )


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(token: str, body: ResetPasswordRequest, db: DbSession):
    await PasswordResetService.reset_password(db, token, body.password)
    return MessageResponse(message="Password reset successful")
