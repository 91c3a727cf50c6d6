"""
Hosted session payloads sent to Stripe, with the SDK calls patched out.
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe

from app.core.exceptions import PaymentProviderError
from app.services.payments import StripeGateway


@pytest.fixture
def stripe_gateway():
    return StripeGateway(api_key="sk_test_dummy", webhook_secret="whsec_test_secret", currency="EUR",
                         app_url="https://shop.test/")


def session_stub():
    return MagicMock(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")


def test_session_without_discount_sends_no_coupon(store, comic, stripe_gateway):
    order = store.seed_order([(comic, 2)])
    items = [i for i in store.order_items.values() if i.order_id == order.id]

    with patch("stripe.Coupon.create") as coupon_create, \
            patch("stripe.checkout.Session.create", return_value=session_stub()) as session_create:
        session = stripe_gateway.create_checkout_session(order, items)

    assert session.id == "cs_test_1"
    coupon_create.assert_not_called()
    kwargs = session_create.call_args.kwargs
    assert "discounts" not in kwargs
    assert kwargs["metadata"] == {"order_id": str(order.id), "order_number": order.order_number}
    assert kwargs["payment_intent_data"]["metadata"]["order_id"] == str(order.id)
    assert [(li["price_data"]["unit_amount"], li["quantity"]) for li in kwargs["line_items"]] == [
        (1250, 2),
        (495, 1),
    ]


def test_discount_is_a_one_off_coupon_and_lines_keep_captured_prices(store, comic, stripe_gateway):
    order = store.seed_order([(comic, 2)], discount_code="SAVE10", discount_amount="2.50")
    items = [i for i in store.order_items.values() if i.order_id == order.id]

    with patch("stripe.Coupon.create", return_value=MagicMock(id="co_1")) as coupon_create, \
            patch("stripe.checkout.Session.create", return_value=session_stub()) as session_create:
        stripe_gateway.create_checkout_session(order, items)

    coupon_kwargs = coupon_create.call_args.kwargs
    assert coupon_kwargs["amount_off"] == 250
    assert coupon_kwargs["currency"] == "eur"
    assert coupon_kwargs["duration"] == "once"
    assert coupon_kwargs["max_redemptions"] == 1

    kwargs = session_create.call_args.kwargs
    assert kwargs["discounts"] == [{"coupon": "co_1"}]
    charged = sum(li["price_data"]["unit_amount"] * li["quantity"] for li in kwargs["line_items"])
    assert charged - coupon_kwargs["amount_off"] == int(order.total * 100)
    assert order.total == Decimal("27.45")


def test_coupon_failure_is_a_provider_error(store, comic, stripe_gateway):
    order = store.seed_order([(comic, 1)], discount_code="SAVE10", discount_amount="1.25")
    items = [i for i in store.order_items.values() if i.order_id == order.id]

    with patch("stripe.Coupon.create", side_effect=stripe.APIConnectionError("network down")), \
            patch("stripe.checkout.Session.create") as session_create:
        with pytest.raises(PaymentProviderError):
            stripe_gateway.create_checkout_session(order, items)

    session_create.assert_not_called()
