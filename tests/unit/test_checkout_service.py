from decimal import Decimal

import pytest

from app.core.exceptions import EmptyCartError, InvalidDiscountCodeError, PaymentProviderError, StockConflictError
from app.schemas.checkout import CheckoutSessionRequest
from app.services.checkout_service import CheckoutService, generate_order_number, shipping_cost_for

ADDRESS = {"street": "Calle Mayor 1", "city": "Madrid", "postal_code": "28001"}
CUSTOMER = {"name": "Ana Garcia", "email": "ANA@Example.com", "phone": "600000000"}


def make_request(items, **overrides) -> CheckoutSessionRequest:
    data = {"items": items, "customer": CUSTOMER, "address": ADDRESS}
    data.update(overrides)
    return CheckoutSessionRequest(**data)


@pytest.mark.asyncio
async def test_creates_pending_order_with_captured_prices(store, gateway, comic):
    service = CheckoutService(store, gateway)

    result = await service.create_session(make_request([{"product_id": comic.id, "quantity": 2}]))

    order = store.orders[result.order_id]
    assert order.status == "pending"
    assert order.payment_status == "pending"
    assert order.customer_email == "ana@example.com"
    assert order.customer_first_name == "Ana"
    assert order.subtotal == Decimal("25.00")
    assert order.shipping_cost == Decimal("4.95")
    assert order.total == Decimal("29.95")
    assert order.stripe_session_id == result.session_id
    assert result.url.endswith(result.session_id)
    assert store.commits == 1

    items = await store.get_order_items(order.id)
    assert [(i.product_id, i.price, i.quantity) for i in items] == [(comic.id, Decimal("12.50"), 2)]
    # Stock is only reserved by payment, never by checkout
    assert comic.stock == 5


@pytest.mark.asyncio
async def test_client_supplied_price_is_ignored(store, gateway, comic):
    service = CheckoutService(store, gateway)

    result = await service.create_session(
        make_request([{"product_id": comic.id, "quantity": 1, "price": 0.01}])
    )

    items = await store.get_order_items(result.order_id)
    assert items[0].price == Decimal("12.50")
    assert gateway.sessions[0]["amounts"] == [("Watchmen #1", Decimal("12.50"), 1)]


@pytest.mark.asyncio
async def test_rejects_whole_cart_listing_every_conflict(store, gateway, comic):
    sold_out = store.add_product("Sold Out Variant", "30.00", stock=0)
    service = CheckoutService(store, gateway)

    with pytest.raises(StockConflictError) as exc_info:
        await service.create_session(make_request([
            {"product_id": comic.id, "quantity": 6},
            {"product_id": sold_out.id, "quantity": 1},
            {"product_id": 999, "quantity": 1},
        ]))

    error = exc_info.value
    assert error.status_code == 409
    assert set(error.out_of_stock) == {"Sold Out Variant", "Product #999"}
    assert error.insufficient == [
        {"product_id": comic.id, "name": "Watchmen #1", "available": 5, "requested": 6}
    ]
    assert store.orders == {}
    assert gateway.sessions == []


@pytest.mark.asyncio
async def test_repeated_lines_are_merged_before_stock_check(store, gateway, comic):
    service = CheckoutService(store, gateway)

    with pytest.raises(StockConflictError):
        await service.create_session(make_request([
            {"product_id": comic.id, "quantity": 3},
            {"product_id": comic.id, "quantity": 3},
        ]))


@pytest.mark.asyncio
async def test_inactive_product_is_out_of_stock(store, gateway):
    hidden = store.add_product("Hidden", "10.00", stock=10, active=False)
    service = CheckoutService(store, gateway)

    with pytest.raises(StockConflictError) as exc_info:
        await service.create_session(make_request([{"product_id": hidden.id, "quantity": 1}]))
    assert exc_info.value.out_of_stock == ["Hidden"]


@pytest.mark.asyncio
async def test_empty_cart_is_rejected(store, gateway):
    with pytest.raises(EmptyCartError):
        await CheckoutService(store, gateway).create_session(make_request([]))


@pytest.mark.asyncio
async def test_provider_failure_rolls_back_pending_order(store, gateway, comic):
    gateway.fail_with = PaymentProviderError("Stripe down", provider_code="api_error")
    service = CheckoutService(store, gateway)

    with pytest.raises(PaymentProviderError):
        await service.create_session(make_request([{"product_id": comic.id, "quantity": 1}]))

    assert store.rollbacks == 1
    assert store.commits == 0


@pytest.mark.asyncio
async def test_pickup_has_no_shipping_and_no_address(store, gateway, comic):
    service = CheckoutService(store, gateway)

    result = await service.create_session(CheckoutSessionRequest(
        items=[{"product_id": comic.id, "quantity": 1}],
        customer=CUSTOMER,
        shipping_option="pickup",
    ))

    order = store.orders[result.order_id]
    assert order.shipping_cost == Decimal("0.00")
    assert order.shipping_address["type"] == "pickup"
    assert order.total == Decimal("12.50")


@pytest.mark.asyncio
async def test_registered_checkout_keeps_user_id(store, gateway, comic):
    result = await CheckoutService(store, gateway).create_session(
        make_request([{"product_id": comic.id, "quantity": 1}], user_id=7)
    )
    order = store.orders[result.order_id]
    assert order.user_id == 7
    assert order.checkout_type == "registered"


def test_delivery_requires_address():
    with pytest.raises(ValueError):
        CheckoutSessionRequest(items=[{"product_id": 1, "quantity": 1}], customer=CUSTOMER)


def test_shipping_is_free_above_threshold():
    assert shipping_cost_for("delivery", Decimal("49.99")) == Decimal("4.95")
    assert shipping_cost_for("delivery", Decimal("50.00")) == Decimal("0.00")
    assert shipping_cost_for("pickup", Decimal("10.00")) == Decimal("0.00")


def test_order_number_format():
    number = generate_order_number()
    prefix, date, suffix = number.split("-")
    assert prefix == "ORD"
    assert len(date) == 8 and date.isdigit()
    assert len(suffix) == 8


@pytest.mark.asyncio
async def test_discount_code_flows_into_total(store, gateway, comic):
    store.add_code("SAVE10", value="10")
    service = CheckoutService(store, gateway)

    result = await service.create_session(
        make_request([{"product_id": comic.id, "quantity": 2}], discount_code="save10")
    )

    order = store.orders[result.order_id]
    assert order.discount_code == "SAVE10"
    assert order.discount_amount == Decimal("2.50")
    assert order.total == Decimal("27.45")
    assert result.total == order.total

    # Captured line prices stay at catalog price; the discount is its own amount
    items = await store.get_order_items(order.id)
    assert [i.price for i in items] == [Decimal("12.50")]
    lines = sum((i.price * i.quantity for i in items), Decimal("0"))
    assert lines + order.shipping_cost - order.discount_amount == order.total
    # Usage is only counted once the order is paid
    assert store.discount_codes["SAVE10"].usage_count == 0


@pytest.mark.asyncio
async def test_free_shipping_uses_undiscounted_subtotal(store, gateway, comic):
    store.add_code("FIVE", discount_type="fixed_amount", value="5")
    service = CheckoutService(store, gateway)

    result = await service.create_session(
        make_request([{"product_id": comic.id, "quantity": 4}], discount_code="FIVE")
    )

    order = store.orders[result.order_id]
    assert order.subtotal == Decimal("50.00")
    assert order.shipping_cost == Decimal("0.00")
    assert order.total == Decimal("45.00")


@pytest.mark.asyncio
async def test_invalid_discount_code_creates_no_order(store, gateway, comic):
    service = CheckoutService(store, gateway)

    with pytest.raises(InvalidDiscountCodeError) as exc_info:
        await service.create_session(
            make_request([{"product_id": comic.id, "quantity": 1}], discount_code="NOPE")
        )

    assert exc_info.value.status_code == 422
    assert store.orders == {}
    assert gateway.sessions == []
