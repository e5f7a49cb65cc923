from app.config.settings import Settings, settings as default_settings
from app.core.errors import APIError, ServerError
from app.modules.contact.schemas import ContactRequest, WaitlistRequest
from html import escape
from typing import Any, Dict, Optional
import httpx
import logging

logger = logging.getLogger(__name__)


class EmailService:
    """Team notifications sent through the Resend HTTP API"""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or default_settings
        self.transport = transport

    def _require_configured(self) -> None:
        if not self.settings.email_enabled:
            logger.error("Missing RESEND_API_KEY or CONTACT_EMAIL environment variable")
            raise ServerError("Email service not configured")

    async def _send(self, payload: Dict[str, Any], failure_message: str) -> None:
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=10.0) as client:
                response = await client.post(
                    self.settings.resend_api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Resend error: {e}")
            raise APIError(500, "EMAIL_ERROR", failure_message)

    async def send_contact(self, submission: ContactRequest) -> None:
        self._require_configured()
        name, email = escape(submission.name), escape(submission.email)
        body = escape(submission.message).replace("\n", "<br>")
        await self._send({
            "from": "Margen Contact <onboarding@resend.dev>",
            "to": self.settings.contact_email,
            "reply_to": submission.email,
            "subject": f"New Contact Form Submission from {submission.name}",
            "text": f"Name: {submission.name}\nEmail: {submission.email}\n\nMessage:\n{submission.message}",
            "html": (
                "<h2>New Contact Form Submission</h2>"
                f"<p><strong>Name:</strong> {name}</p>"
                f"<p><strong>Email:</strong> {email}</p>"
                "<h3>Message:</h3>"
                f"<p>{body}</p>"
            ),
        }, "Failed to send message. Please try again.")
        logger.info("Contact form submission forwarded")

    async def send_waitlist(self, signup: WaitlistRequest) -> None:
        self._require_configured()
        await self._send({
            "from": "Margen Waitlist <onboarding@resend.dev>",
            "to": self.settings.contact_email,
            "reply_to": signup.email,
            "subject": f"New Waitlist Signup: {signup.name}",
            "text": f"New waitlist signup:\n\nName: {signup.name}\nEmail: {signup.email}",
            "html": (
                "<h2>New Waitlist Signup</h2>"
                f"<p><strong>Name:</strong> {escape(signup.name)}</p>"
                f"<p><strong>Email:</strong> {escape(signup.email)}</p>"
            ),
        }, "Failed to submit. Please try again.")
        logger.info("Waitlist signup forwarded")
