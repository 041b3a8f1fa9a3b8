"""Services for business logic."""

from app.services.auth_service import AuthService
from app.services.password_reset_service import PasswordResetService
from app.services.token_store import RefreshTokenStore
from app.services.email_service import EmailService

__all__ = ["AuthService", "PasswordResetService", "RefreshTokenStore", "EmailService"]
