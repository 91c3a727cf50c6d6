"""
HTTP surface driven through ASGITransport with the in-memory store, fake
gateway and recording email provider injected via dependency overrides.
"""
import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_gateway, get_notifier, get_store
from app.main import app

ADMIN = {"X-Admin-Token": "test-admin-token"}


@pytest_asyncio.fixture
async def client(store, gateway, notifier):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_root_and_public_config(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "operational"

    resp = await client.get("/api/config")
    assert resp.status_code == 200
    body = resp.json()
    assert body["currency"] == "eur"
    assert "stripe_publishable_key" in body


@pytest.mark.asyncio
async def test_create_session(client, store, comic):
    resp = await client.post("/api/checkout/create-session", json={
        "items": [{"product_id": comic.id, "quantity": 2, "price": 1.0}],
        "customer": {"name": "Ana Garcia", "email": "ana@example.com"},
        "shipping_option": "pickup",
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["url"].startswith("https://checkout.stripe.test/")
    assert store.orders[body["order_id"]].total == 25


@pytest.mark.asyncio
async def test_create_session_stock_conflict_is_409(client, comic):
    resp = await client.post("/api/checkout/create-session", json={
        "items": [{"product_id": comic.id, "quantity": 50}],
        "customer": {"name": "Ana", "email": "ana@example.com"},
        "shipping_option": "pickup",
    })

    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "STOCK_CONFLICT"
    assert body["details"]["insufficient"][0]["available"] == 5


@pytest.mark.asyncio
async def test_create_session_validation_error(client):
    resp = await client.post("/api/checkout/create-session", json={
        "items": [{"product_id": 1, "quantity": 1}],
        "customer": {"name": "Ana", "email": "not-an-email"},
        "shipping_option": "pickup",
    })
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_webhook_endpoint(client, store, email_provider, comic):
    order = store.seed_order([(comic, 1)])
    payload = json.dumps({
        "id": "evt_api",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_test_api", "payment_status": "paid", "payment_intent": "pi_api",
            "metadata": {"order_id": str(order.id)},
        }},
    })

    rejected = await client.post("/api/webhooks/stripe", content=payload, headers={"stripe-signature": "forged"})
    accepted = await client.post("/api/webhooks/stripe", content=payload, headers={"stripe-signature": "valid"})
    replayed = await client.post("/api/webhooks/stripe", content=payload, headers={"stripe-signature": "valid"})

    assert rejected.status_code == 400
    assert accepted.status_code == 200
    assert accepted.json() == {"received": True}
    assert replayed.status_code == 200
    assert order.status == "paid"
    assert comic.stock == 4
    assert len(email_provider.sent) == 2


@pytest.mark.asyncio
async def test_track_order(client, store, comic):
    order = store.seed_order([(comic, 2)], status="shipped", payment_status="paid")
    order.tracking_number = "1Z999"

    resp = await client.get("/api/orders/track", params={"order_number": order.order_number, "email": "ana@example.com"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "shipped"
    assert body["tracking_number"] == "1Z999"
    assert body["items"][0]["quantity"] == 2

    resp = await client.get("/api/orders/track", params={"order_number": order.order_number, "email": "x@example.com"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "ORDER_NOT_FOUND"


@pytest.mark.asyncio
async def test_admin_routes_require_token(client, store, comic):
    order = store.seed_order([(comic, 1)], status="paid", payment_status="paid")

    missing = await client.patch(f"/api/admin/orders/{order.id}/status", json={"status": "shipped", "tracking_number": "1Z"})
    wrong = await client.patch(
        f"/api/admin/orders/{order.id}/status",
        json={"status": "shipped", "tracking_number": "1Z"},
        headers={"X-Admin-Token": "nope"},
    )

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert order.status == "paid"


@pytest.mark.asyncio
async def test_admin_ships_order(client, store, comic):
    order = store.seed_order([(comic, 1)], status="paid", payment_status="paid")

    resp = await client.patch(
        f"/api/admin/orders/{order.id}/status", json={"status": "shipped", "tracking_number": "1Z"}, headers=ADMIN
    )

    assert resp.status_code == 200
    assert resp.json()["status"] == "shipped"


@pytest.mark.asyncio
async def test_admin_invalid_transition_is_409(client, store, comic):
    order = store.seed_order([(comic, 1)])

    resp = await client.patch(f"/api/admin/orders/{order.id}/status", json={"status": "delivered"}, headers=ADMIN)

    assert resp.status_code == 409
    assert resp.json()["details"]["current_status"] == "pending"


@pytest.mark.asyncio
async def test_return_lifecycle(client, store, comic):
    order = store.seed_order([(comic, 2)], status="delivered", payment_status="paid")
    comic.stock = 0

    created = await client.post("/api/returns", json={
        "order_id": order.id, "email": "ana@example.com", "reason": "not_liked",
        "items": [{"order_item_id": next(iter(store.order_items)), "quantity": 2, "price": 999}],
    })
    assert created.status_code == 201
    return_id = created.json()["id"]
    assert created.json()["refund_amount"] == 25.0

    for status in ("approved", "received", "completed"):
        resp = await client.patch(f"/api/admin/returns/{return_id}", json={"status": status}, headers=ADMIN)
        assert resp.status_code == 200

    assert comic.stock == 2
    assert order.status == "refunded"


@pytest.mark.asyncio
async def test_admin_invoices(client, store, comic):
    order = store.seed_order([(comic, 1)], status="paid", payment_status="paid")

    resp = await client.post("/api/admin/invoices", json={"type": "purchase", "order_id": order.id}, headers=ADMIN)
    assert resp.status_code == 200
    invoice_id = resp.json()["invoice_id"]

    pdf = await client.get(f"/api/admin/invoices/{invoice_id}/pdf", headers=ADMIN)
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")

    missing = await client.post("/api/admin/invoices", json={"type": "purchase", "order_id": 9999}, headers=ADMIN)
    assert missing.status_code == 422


@pytest.mark.asyncio
async def test_admin_webhook_log(client, store):
    await store.add_webhook_log("evt_1", "charge.refunded", "processed")
    await store.add_webhook_log("evt_2", "payment_intent.succeeded", "failed", "boom")

    resp = await client.get("/api/admin/webhooks", params={"status": "failed"}, headers=ADMIN)

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["webhooks"][0]["event_id"] == "evt_2"


@pytest.mark.asyncio
async def test_cart_sync(client, store, comic):
    resp = await client.put("/api/cart/5", json={"items": [{"product_id": comic.id, "quantity": 2}]})
    assert resp.status_code == 200
    assert resp.json()["item_count"] == 2

    resp = await client.get("/api/cart/5")
    assert resp.json()["items"][0]["name"] == "Watchmen #1"


@pytest.mark.asyncio
async def test_validate_discount_preview(client, store):
    store.add_code("SAVE10", value="10")

    resp = await client.post("/api/checkout/validate-discount", json={"code": "save10", "subtotal": "40.00"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["valid"] is True
    assert body["code"] == "SAVE10"
    assert body["discount_amount"] == 4.0

    resp = await client.post("/api/checkout/validate-discount", json={"code": "bogus", "subtotal": "40.00"})
    assert resp.status_code == 200
    assert resp.json()["valid"] is False
    assert resp.json()["reason"] == "INVALID"


@pytest.mark.asyncio
async def test_create_session_with_discount_code(client, store, gateway, comic):
    store.add_code("FIVE", discount_type="fixed_amount", value="5")

    resp = await client.post("/api/checkout/create-session", json={
        "items": [{"product_id": comic.id, "quantity": 2}],
        "customer": {"name": "Ana Garcia", "email": "ana@example.com"},
        "shipping_option": "pickup",
        "discount_code": "five",
    })

    assert resp.status_code == 200
    order = store.orders[resp.json()["order_id"]]
    assert order.discount_code == "FIVE"
    assert order.total == 20
    assert gateway.sessions[0]["amounts"] == [("Watchmen #1", comic.price, 2)]


@pytest.mark.asyncio
async def test_create_session_with_invalid_discount_is_422(client, store, comic):
    resp = await client.post("/api/checkout/create-session", json={
        "items": [{"product_id": comic.id, "quantity": 1}],
        "customer": {"name": "Ana", "email": "ana@example.com"},
        "shipping_option": "pickup",
        "discount_code": "NOPE",
    })

    assert resp.status_code == 422
    body = resp.json()
    assert body["error"] == "DISCOUNT_INVALID"
    assert body["details"]["reason"] == "INVALID"
    assert store.orders == {}


@pytest.mark.asyncio
async def test_admin_discount_codes(client, store):
    payload = {"code": "spring-24", "discount_type": "percentage", "discount_value": "15"}

    assert (await client.post("/api/admin/discount-codes", json=payload)).status_code == 401
    resp = await client.post("/api/admin/discount-codes", json=payload, headers=ADMIN)
    assert resp.status_code == 201
    assert resp.json()["code"] == "SPRING-24"
    assert resp.json()["usage_count"] == 0

    duplicate = await client.post("/api/admin/discount-codes", json=payload, headers=ADMIN)
    assert duplicate.status_code == 422
    assert duplicate.json()["details"]["reason"] == "DUPLICATE"

    listed = await client.get("/api/admin/discount-codes", headers=ADMIN)
    assert listed.json()["count"] == 1
    assert listed.json()["discount_codes"][0]["code"] == "SPRING-24"
