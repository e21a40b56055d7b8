"""
Tests for Email Service.

Tests MockEmailService and the Brevo request path with httpx mocked out.
"""

import pytest
from unittest.mock import patch, MagicMock, AsyncMock

import httpx

from teleflow.services.email_service import EmailService, MockEmailService, get_email_service, render_html


def brevo_settings(mock_settings, api_key="test-api-key"):
    mock_settings.BREVO_API_KEY = api_key
    mock_settings.EMAIL_FROM_ADDRESS = "sender@example.com"
    mock_settings.EMAIL_FROM_NAME = "Test Sender"


def patched_client(response=None, error=None):
    """AsyncClient stand-in usable as ``async with httpx.AsyncClient() as client``."""
    client = MagicMock()
    client.post = AsyncMock(return_value=response, side_effect=error)
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=client)
    context.__aexit__ = AsyncMock(return_value=False)
    return context, client


class TestMockEmailService:
    """Tests for MockEmailService."""

    def test_mock_service_is_configured(self):
        service = MockEmailService()
        assert service.is_configured is True

    @pytest.mark.asyncio
    async def test_send_success(self):
        service = MockEmailService()

        result = await service.send(
            "recipient@example.com",
            "Test Subject",
            "Test body content",
            link="http://localhost:5173/campaign/c/u/p",
        )

        assert result["success"] is True
        assert result["status_code"] == 201
        assert result["message_id"].startswith("mock-")
        assert service.sent[0]["link"] == "http://localhost:5173/campaign/c/u/p"

    @pytest.mark.asyncio
    async def test_sent_emails_tracking(self):
        service = MockEmailService()

        await service.send("user1@example.com", "Email 1", "Body 1")
        await service.send("user2@example.com", "Email 2", "Body 2")

        assert [m["to"] for m in service.sent] == ["user1@example.com", "user2@example.com"]

    @pytest.mark.asyncio
    async def test_failing_mock_records_nothing(self):
        service = MockEmailService(fail=True)

        result = await service.send("user@example.com", "Subject", "Body")

        assert result["success"] is False
        assert result["error"] == "Mock delivery failure"
        assert service.sent == []


class TestEmailServiceNotConfigured:
    """Tests for EmailService when Brevo is not configured."""

    def test_not_configured_status(self):
        with patch("teleflow.services.email_service.settings") as mock_settings:
            brevo_settings(mock_settings, api_key=None)

            service = EmailService()
            assert service.is_configured is False
            assert service.get_status()["provider"] == "brevo"

    @pytest.mark.asyncio
    async def test_send_not_configured(self):
        with patch("teleflow.services.email_service.settings") as mock_settings:
            brevo_settings(mock_settings, api_key=None)

            result = await EmailService().send("test@example.com", "Test", "Test")

            assert result["success"] is False
            assert "not configured" in result["error"].lower()

    def test_factory_falls_back_to_mock(self):
        with patch("teleflow.services.email_service.settings") as mock_settings:
            brevo_settings(mock_settings, api_key=None)
            assert isinstance(get_email_service(), MockEmailService)


class TestEmailServiceIntegration:
    """EmailService with a mocked Brevo endpoint."""

    @pytest.mark.asyncio
    async def test_send_posts_to_brevo(self):
        response = MagicMock()
        response.status_code = 201
        response.json.return_value = {"messageId": "<brevo-123@smtp>"}
        context, client = patched_client(response=response)

        with patch("teleflow.services.email_service.settings") as mock_settings, \
             patch("teleflow.services.email_service.httpx.AsyncClient", return_value=context):
            brevo_settings(mock_settings)

            result = await EmailService().send(
                "recipient@example.com", "Subject", "Body", link="http://app/offer/o1?userId=u1"
            )

        assert result == {"success": True, "status_code": 201, "message_id": "<brevo-123@smtp>"}
        kwargs = client.post.call_args.kwargs
        assert kwargs["headers"]["api-key"] == "test-api-key"
        assert kwargs["json"]["to"] == [{"email": "recipient@example.com"}]
        assert kwargs["json"]["textContent"].endswith("http://app/offer/o1?userId=u1")

    @pytest.mark.asyncio
    async def test_api_error_is_reported(self):
        response = MagicMock()
        response.status_code = 400
        response.text = "invalid sender"
        context, _ = patched_client(response=response)

        with patch("teleflow.services.email_service.settings") as mock_settings, \
             patch("teleflow.services.email_service.httpx.AsyncClient", return_value=context):
            brevo_settings(mock_settings)
            result = await EmailService().send("recipient@example.com", "Subject", "Body")

        assert result["success"] is False
        assert result["status_code"] == 400
        assert "invalid sender" in result["error"]

    @pytest.mark.asyncio
    async def test_timeout_is_handled(self):
        context, _ = patched_client(error=httpx.ReadTimeout("timed out"))

        with patch("teleflow.services.email_service.settings") as mock_settings, \
             patch("teleflow.services.email_service.httpx.AsyncClient", return_value=context):
            brevo_settings(mock_settings)
            result = await EmailService().send("recipient@example.com", "Subject", "Body")

        assert result["success"] is False
        assert "timed out" in result["error"]


def test_render_html_escapes_body_and_link():
    rendered = render_html("Hi <b>there</b>\nBye", "http://app/x?a=1&b=2")

    assert "&lt;b&gt;" in rendered
    assert "<br>" in rendered
    assert 'href="http://app/x?a=1&amp;b=2"' in rendered
