"""Application configuration settings."""

from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings

DEV_ACCESS_SECRET = "dev-access-secret-change-in-production"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "EventHub API"
    app_env: str = "development"
    debug: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 5000

    # Database
    database_url: str = "sqlite+aiosqlite:///./eventhub.db"

    # JWT Authentication (separate keys for access and refresh tokens)
    access_token_secret: str = DEV_ACCESS_SECRET
    refresh_token_secret: str = DEV_REFRESH_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7

    # Password hashing
    bcrypt_rounds: int = 10

    # Cookies. The API and the SPA are deployed on different sites, so both
    # auth cookies must be Secure + SameSite=None or browsers drop them.
    refresh_cookie_name: str = "refreshToken"
    csrf_cookie_name: str = "csrfSecret"
    csrf_header_name: str = "x-csrf-token"
    csrf_cookie_max_age_hours: int = 24
    cookie_secure: bool = True
    cookie_samesite: Literal["lax", "strict", "none"] = "none"

    # Rate limiting
    login_rate_limit_attempts: int = 5
    login_rate_limit_window_seconds: int = 900

    # Password reset
    password_reset_expire_minutes: int = 60

    # Email (SMTP)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "no-reply@eventhub.local"
    smtp_from_name: str = "EventHub"
    smtp_use_tls: bool = True

    # Frontend (reset links, CORS)
    client_url: str = "http://localhost:5173"

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Security
    allowed_hosts: str = "*"

    @property
    def allowed_hosts_list(self) -> List[str]:
        """Get allowed hosts as a list."""
        return [host.strip() for host in self.allowed_hosts.split(",")]

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list, always including the client URL."""
        origins = [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
        if self.client_url and self.client_url not in origins:
            origins.append(self.client_url.rstrip("/"))
        return origins

    @property
    def refresh_cookie_max_age(self) -> int:
        """Refresh cookie lifetime in seconds."""
        return self.refresh_token_expire_days * 24 * 60 * 60

    @property
    def csrf_cookie_max_age(self) -> int:
        """CSRF secret cookie lifetime in seconds."""
        return self.csrf_cookie_max_age_hours * 60 * 60

    def insecure_secrets(self) -> List[str]:
        """Describe problems with the configured signing keys (empty when fine)."""
        problems = []
        if self.access_token_secret == DEV_ACCESS_SECRET:
            problems.append("ACCESS_TOKEN_SECRET uses the development default")
        if self.refresh_token_secret == DEV_REFRESH_SECRET:
            problems.append("REFRESH_TOKEN_SECRET uses the development default")
        if self.access_token_secret == self.refresh_token_secret:
            problems.append("access and refresh tokens share one signing key")
        return problems

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
