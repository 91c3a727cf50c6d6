import httpx
import pytest

from app.services.email_provider import SendGridProvider
from app.services.notifications import NotificationService
from tests.fakes import OPERATOR_EMAIL


class ExplodingProvider:
    async def send(self, to_email, subject, body):
        raise RuntimeError("SMTP on fire")

    async def close(self):
        return None


@pytest.mark.asyncio
async def test_send_never_raises(store, comic):
    order = store.seed_order([(comic, 1)])
    notifier = NotificationService(provider=ExplodingProvider(), operator_email=OPERATOR_EMAIL)

    result = await notifier.send_order_confirmation(order, await store.get_order_items(order.id))

    assert result.success is False
    assert "SMTP on fire" in result.error


@pytest.mark.asyncio
async def test_missing_recipient_is_skipped(notifier, email_provider):
    result = await notifier.send("payment_failed", None, {})

    assert result.success is False
    assert email_provider.sent == []


@pytest.mark.asyncio
async def test_confirmation_lists_captured_lines(store, notifier, email_provider, comic):
    order = store.seed_order([(comic, 2)])

    await notifier.send_order_confirmation(order, await store.get_order_items(order.id))

    body = email_provider.sent[0]["body"]
    assert "2 x Watchmen #1 @ 12.50 EUR" in body
    assert "Total: 29.95 EUR" in body


@pytest.mark.asyncio
async def test_sendgrid_provider_posts_mail_send():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(202, headers={"X-Message-Id": "sg-1"})

    provider = SendGridProvider(
        api_key="SG.test", from_email="shop@example.com", transport=httpx.MockTransport(handler)
    )
    result = await provider.send("ana@example.com", "Hi", "Body")
    await provider.close()

    assert result.success is True
    assert result.message_id == "sg-1"
    assert captured["url"].endswith("/v3/mail/send")
    assert captured["auth"] == "Bearer SG.test"


@pytest.mark.asyncio
async def test_sendgrid_error_status_is_a_failed_result():
    provider = SendGridProvider(
        api_key="SG.test", transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    )

    result = await provider.send("ana@example.com", "Hi", "Body")
    await provider.close()

    assert result.success is False
    assert result.error == "HTTP 500"
