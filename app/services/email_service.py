"""
Password-reset email delivery over SMTP.

Without SMTP credentials the service runs in log-only mode: it records that a
message would have been sent, never its body, since reset links carry a secret.
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

SMTP_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    user: str
    password: str
    from_email: str
    from_name: str
    use_tls: bool = True

    @classmethod
    def from_settings(cls, source: Settings) -> "SmtpConfig":
        return cls(
            host=source.smtp_host,
            port=source.smtp_port,
            user=source.smtp_user,
            password=source.smtp_password,
            from_email=source.smtp_from_email,
            from_name=source.smtp_from_name,
            use_tls=source.smtp_use_tls,
        )

    @property
    def is_complete(self) -> bool:
        return bool(self.host and self.port and self.user and self.password)


def build_reset_message(
    config: SmtpConfig,
    to_email: str,
    reset_url: str,
    user_name: str,
    expiry_minutes: int,
) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = f"{config.from_name} - Reset your password"
    message["From"] = f"{config.from_name} <{config.from_email}>"
    message["To"] = to_email

    message.set_content(
        f"Hi {user_name},\n\n"
        f"Open this link to choose a new password:\n\n{reset_url}\n\n"
        f"The link expires in {expiry_minutes} minutes and works once.\n"
        "If you did not ask for this, ignore this email.\n"
    )
    message.add_alternative(
        f"<p>Hi {user_name},</p>"
        f'<p><a href="{reset_url}">Choose a new password</a></p>'
        f"<p>The link expires in {expiry_minutes} minutes and works once.</p>"
        "<p>If you did not ask for this, ignore this email.</p>",
        subtype="html",
    )
    return message


class EmailService:
    """Sends password-reset links."""

    def __init__(self, config: Optional[SmtpConfig] = None):
        self.config = config or SmtpConfig.from_settings(settings)
        if self.is_configured:
            logger.info(f"Email service configured with SMTP: {self.config.host}:{self.config.port}")
        else:
            logger.warning("Email service not configured - emails will only be logged")

    @property
    def is_configured(self) -> bool:
        return self.config.is_complete

    async def send_password_reset_link(
        self,
        to_email: str,
        reset_url: str,
        user_name: str = "there",
        expiry_minutes: int = 60,
    ) -> bool:
        """Deliver the reset link. Returns False when SMTP delivery failed."""
        message = build_reset_message(self.config, to_email, reset_url, user_name, expiry_minutes)

        if not self.is_configured:
            logger.info(f"[EMAIL] Password reset for {to_email} (SMTP not configured, not sent)")
            return True

        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._deliver, message)
        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP authentication failed - check credentials")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send password reset email to {to_email}: {e}")
            return False

        logger.info(f"Password reset email sent to {to_email}")
        return True

    def _deliver(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.config.use_tls:
            with smtplib.SMTP(self.config.host, self.config.port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.starttls(context=context)
                server.login(self.config.user, self.config.password)
                server.send_message(message)
        else:
            # Implicit TLS (port 465)
            with smtplib.SMTP_SSL(
                self.config.host, self.config.port, context=context, timeout=SMTP_TIMEOUT_SECONDS
            ) as server:
                server.login(self.config.user, self.config.password)
                server.send_message(message)


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create the email service singleton."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
