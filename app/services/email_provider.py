"""
Email Provider (SendGrid)

Transactional email delivery. Providers never raise: every failure is
returned as an unsuccessful SendResult so callers can log and continue.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailProvider(Protocol):
    """Protocol for email providers."""

    async def send(self, to_email: str, subject: str, body: str) -> SendResult:
        ...

    async def close(self) -> None:
        ...


class LoggingEmailProvider:
    """Development provider - logs instead of sending email."""

    async def send(self, to_email: str, subject: str, body: str) -> SendResult:
        logger.info(
            f"[MOCK EMAIL] To: {to_email}\n"
            f"  Subject: {subject}\n"
            f"  Body preview: {body[:200]}"
        )
        return SendResult(success=True, message_id="mock")

    async def close(self) -> None:
        return None


class SendGridProvider:
    """SendGrid v3 mail/send over httpx."""

    BASE_URL = "https://api.sendgrid.com/v3"

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.SENDGRID_API_KEY
        self.from_email = from_email or settings.SENDGRID_FROM_EMAIL
        self.from_name = from_name or settings.SENDGRID_FROM_NAME
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=30.0,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._http_client

    async def close(self) -> None:
        """Explicit cleanup method."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def send(self, to_email: str, subject: str, body: str) -> SendResult:
        """Send single transactional email."""
        if not self.api_key:
            logger.warning("SendGrid API key not configured")
            return SendResult(success=False, error="Email not configured")

        http = await self._get_http_client()

        payload = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }

        try:
            resp = await http.post(f"{self.BASE_URL}/mail/send", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"SendGrid request failed for {to_email}: {e}")
            return SendResult(success=False, error=str(e))

        if resp.status_code in (200, 202):
            return SendResult(success=True, message_id=resp.headers.get("X-Message-Id"))

        logger.error(f"SendGrid send failed: {resp.status_code} - {resp.text}")
        return SendResult(success=False, error=f"HTTP {resp.status_code}")


def get_default_provider() -> EmailProvider:
    """SendGrid when configured, otherwise the logging provider."""
    if settings.SENDGRID_API_KEY:
        return SendGridProvider()
    return LoggingEmailProvider()
