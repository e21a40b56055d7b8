"""Email Service - Brevo integration for campaign messages.

Features:
- Send campaign emails via the Brevo transactional API
- Plain text body with a minimal HTML wrapper and call-to-action link
- No external SDK required (uses httpx)
"""

from teleflow.config import settings
import html
import logging
import uuid
from typing import Optional, Dict, Any, List
import httpx

logger = logging.getLogger(__name__)

# Brevo API endpoint
BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


def render_html(body: str, link: Optional[str] = None) -> str:
    """Wrap plain text (and an optional offer link) in basic HTML."""
    paragraphs = html.escape(body).replace("\n", "<br>")
    button = ""
    if link:
        button = (
            f'<p><a href="{html.escape(link, quote=True)}" '
            'style="display:inline-block;padding:12px 20px;background:#4f46e5;'
            'color:#ffffff;border-radius:6px;text-decoration:none">View offer</a></p>'
        )
    return f"<html><body><p>{paragraphs}</p>{button}</body></html>"


class EmailService:
    """Sends campaign messages via Brevo API."""

    def __init__(self):
        self.api_key = settings.BREVO_API_KEY
        self.from_address = settings.EMAIL_FROM_ADDRESS
        self.from_name = settings.EMAIL_FROM_NAME

    @property
    def is_configured(self) -> bool:
        """Check if email service is properly configured."""
        return bool(self.api_key) and bool(self.from_address)

    def get_status(self) -> Dict[str, Any]:
        """Get email service configuration status."""
        return {
            "configured": self.is_configured,
            "provider": "brevo",
            "from_address": self.from_address,
            "from_name": self.from_name,
        }

    async def send(
        self,
        recipient: str,
        subject: str,
        body: str,
        link: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send one campaign message.

        Args:
            recipient: Recipient email address
            subject: Email subject line
            body: Plain text body
            link: Optional call-to-action URL appended to the body

        Returns:
            Dict with success, status_code, message_id and error
        """
        if not self.api_key:
            error_msg = "Brevo API key not configured"
            logger.error(error_msg)
            return {"success": False, "error": error_msg, "status_code": None, "message_id": None}

        text = f"{body}\n\n{link}" if link else body
        payload = {
            "sender": {"name": self.from_name, "email": self.from_address},
            "to": [{"email": recipient}],
            "subject": subject,
            "textContent": text,
            "htmlContent": render_html(body, link),
        }
        headers = {
            "accept": "application/json",
            "api-key": self.api_key,
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(BREVO_API_URL, json=payload, headers=headers, timeout=30.0)

            if response.status_code in (200, 201):
                message_id = response.json().get("messageId")
                logger.info(
                    "Campaign email sent via Brevo",
                    extra={"subject": subject[:50], "status_code": response.status_code, "message_id": message_id},
                )
                return {"success": True, "status_code": response.status_code, "message_id": message_id}

            logger.error("Brevo API error", extra={"status_code": response.status_code, "error": response.text})
            return {
                "success": False,
                "error": f"Brevo API error: {response.text}",
                "status_code": response.status_code,
                "message_id": None,
            }

        except httpx.TimeoutException:
            error_msg = "Brevo API request timed out"
            logger.error(error_msg)
            return {"success": False, "error": error_msg, "status_code": None, "message_id": None}
        except httpx.HTTPError as e:
            logger.error("Failed to send email via Brevo", extra={"error": str(e)})
            return {"success": False, "error": str(e), "status_code": None, "message_id": None}


class MockEmailService(EmailService):
    """Mock email service for testing and development."""

    def __init__(self, fail: bool = False):
        self.api_key = "mock-key"
        self.from_address = "test@example.com"
        self.from_name = "Test Sender"
        self.fail = fail
        self._sent_emails: List[Dict[str, Any]] = []

    @property
    def sent(self) -> List[Dict[str, Any]]:
        return list(self._sent_emails)

    async def send(
        self,
        recipient: str,
        subject: str,
        body: str,
        link: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record the message instead of sending it."""
        if self.fail:
            return {"success": False, "error": "Mock delivery failure", "status_code": 500, "message_id": None}

        mock_message_id = f"mock-{uuid.uuid4().hex[:16]}"
        self._sent_emails.append(
            {
                "to": recipient,
                "subject": subject,
                "body": body,
                "link": link,
                "message_id": mock_message_id,
            }
        )
        logger.info(f"Mock email sent to {recipient}: {subject}")
        return {"success": True, "status_code": 201, "message_id": mock_message_id}


def get_email_service() -> EmailService:
    """Brevo when configured, otherwise the mock (development)."""
    service = EmailService()
    if service.is_configured:
        return service
    logger.warning("Brevo not configured, using mock email service")
    return MockEmailService()
