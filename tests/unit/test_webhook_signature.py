"""
Stripe signature verification with locally signed payloads.

Headers are built exactly as Stripe does: v1 = HMAC-SHA256(secret, "t.payload").
"""
import hashlib
import hmac
import json
import time

import pytest

from app.core.exceptions import WebhookSignatureError
from app.services.payments import StripeGateway

SECRET = "whsec_test_secret"
PAYLOAD = json.dumps({
    "id": "evt_sig",
    "type": "checkout.session.completed",
    "data": {"object": {"id": "cs_test_1", "metadata": {"order_id": "1"}}},
})


def sign(payload: str, secret: str = SECRET, timestamp: int = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def stripe_gateway():
    return StripeGateway(api_key="sk_test_dummy", webhook_secret=SECRET, tolerance=300)


def test_valid_signature_returns_event(stripe_gateway):
    event = stripe_gateway.parse_webhook(PAYLOAD.encode(), sign(PAYLOAD))

    assert event["id"] == "evt_sig"
    assert event["data"]["object"]["metadata"]["order_id"] == "1"


def test_tampered_payload_is_rejected(stripe_gateway):
    header = sign(PAYLOAD)
    tampered = PAYLOAD.replace('"order_id": "1"', '"order_id": "2"')

    with pytest.raises(WebhookSignatureError):
        stripe_gateway.parse_webhook(tampered.encode(), header)


def test_wrong_secret_is_rejected(stripe_gateway):
    with pytest.raises(WebhookSignatureError):
        stripe_gateway.parse_webhook(PAYLOAD.encode(), sign(PAYLOAD, secret="whsec_other"))


def test_stale_timestamp_is_rejected(stripe_gateway):
    header = sign(PAYLOAD, timestamp=int(time.time()) - 3600)

    with pytest.raises(WebhookSignatureError):
        stripe_gateway.parse_webhook(PAYLOAD.encode(), header)


@pytest.mark.parametrize("header", [None, "", "garbage", "t=123"])
def test_missing_or_malformed_header_is_rejected(stripe_gateway, header):
    with pytest.raises(WebhookSignatureError):
        stripe_gateway.parse_webhook(PAYLOAD.encode(), header)


def test_signed_non_event_body_is_rejected(stripe_gateway):
    body = json.dumps(["not", "an", "event"])

    with pytest.raises(WebhookSignatureError):
        stripe_gateway.parse_webhook(body.encode(), sign(body))


def test_missing_secret_fails_closed():
    gateway = StripeGateway(api_key="sk_test_dummy", webhook_secret="")

    with pytest.raises(WebhookSignatureError) as exc_info:
        gateway.parse_webhook(PAYLOAD.encode(), sign(PAYLOAD))
    assert exc_info.value.code == "WEBHOOK_NOT_CONFIGURED"


def test_line_items_are_in_cents_with_shipping(store, comic):
    order = store.seed_order([(comic, 2)], shipping_cost="4.95")
    gateway = StripeGateway(api_key="sk_test_dummy", webhook_secret=SECRET, currency="EUR")

    line_items = gateway.build_line_items(order, [i for i in store.order_items.values()])

    assert line_items[0]["price_data"]["unit_amount"] == 1250
    assert line_items[0]["price_data"]["currency"] == "eur"
    assert line_items[0]["quantity"] == 2
    assert line_items[-1]["price_data"]["product_data"]["name"] == "Shipping"
    assert line_items[-1]["price_data"]["unit_amount"] == 495
