"""Email service for sending alert emails using Resend."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List

import resend
from jinja2 import Environment, FileSystemLoader

from alert_engine.core.config import get_settings

logger = logging.getLogger(__name__)

# Get the templates directory
TEMPLATES_DIR = Path(__file__).parent.parent / "templates" / "email"


class EmailDeliveryError(Exception):
    """Raised when the email provider rejects or fails a send."""


class EmailService:
    """Service for sending alert and digest emails via Resend."""

    def __init__(self):
        """Initialize the email service."""
        self.settings = get_settings()
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=True,
        )
        # Configure Resend API key
        if self.settings.RESEND_API_KEY:
            resend.api_key = self.settings.RESEND_API_KEY

    @property
    def is_configured(self) -> bool:
        """Check if email service is properly configured."""
        return bool(self.settings.RESEND_API_KEY and self.settings.EMAILS_FROM_EMAIL)

    @property
    def from_email(self) -> str:
        """Get the from email address.

        Uses Resend's test sender in development when no domain is verified.
        """
        if self.settings.DEBUG or not self.settings.RESEND_API_KEY:
            return "onboarding@resend.dev"
        return self.settings.EMAILS_FROM_EMAIL

    async def _send_email(self, to_email: str, subject: str, html_content: str) -> None:
        """Send an email using Resend.

        Raises:
            EmailDeliveryError: if the provider call fails. Callers own the
                retry policy.
        """
        if not self.is_configured:
            logger.warning("Email service not configured. Skipping email send.")
            logger.info(f"Would send email to {to_email}: {subject}")
            logger.debug(f"Email content: {html_content[:500]}...")
            return

        params: resend.Emails.SendParams = {
            "from": f"{self.settings.EMAILS_FROM_NAME} <{self.from_email}>",
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        try:
            # The Resend SDK is blocking
            email_response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            raise EmailDeliveryError(f"Failed to send email to {to_email}: {e}") from e

        email_id = (
            email_response.get("id", "unknown")
            if isinstance(email_response, dict)
            else getattr(email_response, "id", "unknown")
        )
        logger.info(f"Email sent successfully to {to_email}: {subject}, id={email_id}")

    def _render_template(self, template_name: str, **context) -> str:
        """Render an email template with the common branding context."""
        context.update({
            "support_email": self.settings.SUPPORT_EMAIL,
            "company_name": "EnergyExe",
            "client_portal_url": self.settings.CLIENT_PORTAL_URL,
        })

        template = self.jinja_env.get_template(template_name)
        return template.render(**context)

    async def send_alert_email(
        self,
        to_email: str,
        user_name: str,
        title: str,
        message: str,
        severity: str,
    ) -> None:
        """Send a single alert email.

        Args:
            to_email: Recipient email address
            user_name: Greeting name
            title: Notification title, used as the subject
            message: Notification body
            severity: Severity value, shown as a badge
        """
        html_content = self._render_template(
            "alert.html",
            user_name=user_name,
            title=title,
            message=message,
            severity=severity,
            alerts_url=f"{self.settings.CLIENT_PORTAL_URL}/alerts",
        )

        await self._send_email(
            to_email=to_email,
            subject=f"[{severity.upper()}] {title}",
            html_content=html_content,
        )

    async def send_digest_email(
        self,
        to_email: str,
        user_name: str,
        items: List[Dict[str, Any]],
        period_hours: int,
    ) -> None:
        """Send one digest email summarising several alert notifications.

        Args:
            to_email: Recipient email address
            user_name: Greeting name
            items: Dicts with ``title``, ``message``, ``severity`` and ``created_at``
            period_hours: The user's digest frequency, shown in the heading
        """
        html_content = self._render_template(
            "digest.html",
            user_name=user_name,
            items=items,
            period_hours=period_hours,
            alerts_url=f"{self.settings.CLIENT_PORTAL_URL}/alerts",
        )

        await self._send_email(
            to_email=to_email,
            subject=f"Your EnergyExe alert digest: {len(items)} alert(s)",
            html_content=html_content,
        )


# Singleton instance
email_service = EmailService()
