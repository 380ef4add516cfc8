"""
Trustee Portal - Transactional Email

SMTP delivery with a dev-mode fallback that logs instead of sending. Sends
run in a worker thread; failures are logged and reported as False, never
raised. Callers dispatch these through ``fire_and_forget``.
"""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from email.mime.text import MIMEText
from typing import Optional

from trustee_portal.core.config import get_settings
from trustee_portal.core.logging import get_logger, redact_email

logger = get_logger(__name__)


class EmailService:
    """Email service for invitation, welcome, reset and security messages."""

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: Optional[bool] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.smtp_host = smtp_host or settings.SMTP_HOST
        self.smtp_port = smtp_port or settings.SMTP_PORT
        self.smtp_user = smtp_user or settings.SMTP_USER
        self.smtp_password = smtp_password or settings.SMTP_PASSWORD
        self.smtp_use_tls = settings.SMTP_USE_TLS if smtp_use_tls is None else smtp_use_tls
        self.from_email = from_email or settings.EMAIL_FROM
        self.from_name = from_name or settings.APP_NAME
        self.base_url = (base_url or settings.FRONTEND_URL).rstrip("/")

    @property
    def is_configured(self) -> bool:
        """Check if email sending is properly configured."""
        return bool(self.smtp_host and self.from_email)

    def _deliver(self, to_email: str, subject: str, body: str) -> bool:
        if not self.is_configured:
            logger.info(
                "email_dev_mode",
                to=redact_email(to_email),
                subject=subject,
                body_preview=body[:200],
            )
            return True

        msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email

        try:
            context = ssl.create_default_context()
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=30
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_email, to_email, msg.as_string())
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(
                "email_send_failed",
                to=redact_email(to_email),
                subject=subject,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

        logger.info("email_sent", to=redact_email(to_email), subject=subject)
        return True

    async def send(self, to_email: str, subject: str, body: str) -> bool:
        return await asyncio.to_thread(self._deliver, to_email, subject, body)

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    async def send_invitation(
        self,
        to_email: str,
        organization_name: str,
        inviter_name: str,
        role_name: str,
        accept_url: str,
        message: Optional[str] = None,
    ) -> bool:
        lines = [
            f"{inviter_name} has invited you to join {organization_name} as {role_name}.",
            "",
        ]
        if message:
            lines += [f'"{message}"', ""]
        lines += [
            f"Accept the invitation: {accept_url}",
            "",
            "This invitation expires in 7 days.",
        ]
        return await self.send(to_email, f"You're invited to join {organization_name}", "\n".join(lines))

    async def send_welcome(self, to_email: str, first_name: str, organization_name: str) -> bool:
        body = (
            f"Hi {first_name},\n\n"
            f"Welcome to {organization_name} on {self.from_name}.\n"
            f"Sign in at {self.base_url}/login"
        )
        return await self.send(to_email, f"Welcome to {organization_name}", body)

    async def send_added_to_organization(
        self,
        to_email: str,
        first_name: str,
        organization_name: str,
        role_name: str,
    ) -> bool:
        body = (
            f"Hi {first_name},\n\n"
            f"You now have access to {organization_name} as {role_name}.\n"
            f"Switch organizations from {self.base_url}/login"
        )
        return await self.send(to_email, f"You've been added to {organization_name}", body)

    async def send_membership_reactivated(
        self,
        to_email: str,
        organization_name: str,
        role_name: str,
    ) -> bool:
        body = (
            f"Your access to {organization_name} has been restored with the role {role_name}.\n"
            f"Sign in at {self.base_url}/login"
        )
        return await self.send(to_email, f"Your {organization_name} access has been restored", body)

    async def send_invitation_accepted(
        self,
        to_email: str,
        member_name: str,
        organization_name: str,
    ) -> bool:
        body = f"{member_name} accepted your invitation and has joined {organization_name}."
        return await self.send(to_email, f"{member_name} joined {organization_name}", body)

    async def send_password_reset(self, to_email: str, token: str) -> bool:
        body = (
            "We received a request to reset your password.\n\n"
            f"Reset it here: {self.base_url}/reset-password?token={token}\n\n"
            "This link expires in 1 hour. If you did not ask for this, ignore this email."
        )
        return await self.send(to_email, "Reset your password", body)

    async def send_password_changed(self, to_email: str) -> bool:
        body = (
            "Your password was just changed and all other sessions were signed out.\n"
            "If this was not you, reset your password immediately."
        )
        return await self.send(to_email, "Your password was changed", body)

    async def send_email_verification(self, to_email: str, token: str) -> bool:
        body = f"Confirm your email address: {self.base_url}/verify-email?token={token}"
        return await self.send(to_email, "Verify your email address", body)

    async def send_security_alert(self, to_email: str, reason: str, details: str = "") -> bool:
        body = f"Security alert: {reason}\n\n{details}".rstrip()
        return await self.send(to_email, "Security alert for your account", body)


# Module-level singleton
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get the email service singleton."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
