"""
Payment gateway (Stripe hosted Checkout)

The gateway is constructed explicitly and injected into the checkout and
webhook services so tests can substitute a fake.

Webhook verification fails closed: a missing secret, missing header,
bad signature, stale timestamp or unparseable body all raise
WebhookSignatureError.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import stripe

from app.core.config import settings
from app.core.exceptions import PaymentProviderError, WebhookSignatureError
from app.core.utils import to_cents
from app.models import Order, OrderItem

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    id: str
    url: str


@dataclass
class SessionStatus:
    id: str
    payment_status: str
    payment_intent: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):

    def create_checkout_session(
        self, order: Order, items: List[OrderItem]
    ) -> CheckoutSession: ...

    def retrieve_checkout_session(self, session_id: str) -> SessionStatus: ...

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]: ...


class StripeGateway:
    """Stripe implementation of PaymentGateway."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        currency: Optional[str] = None,
        app_url: Optional[str] = None,
        tolerance: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.currency = (currency or settings.STRIPE_CURRENCY or "eur").lower()
        self.app_url = (app_url or settings.APP_URL).rstrip("/")
        self.tolerance = tolerance if tolerance is not None else settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS

    def build_line_items(self, order: Order, items: List[OrderItem]) -> List[Dict[str, Any]]:
        """Card line items in minor units, shipping as its own line."""
        line_items = [
            {
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": item.product_name},
                    "unit_amount": to_cents(item.price),
                },
                "quantity": item.quantity,
            }
            for item in items
        ]
        if order.shipping_cost and to_cents(order.shipping_cost) > 0:
            line_items.append({
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": "Shipping"},
                    "unit_amount": to_cents(order.shipping_cost),
                },
                "quantity": 1,
            })
        return line_items

    def create_order_discount(self, order: Order) -> List[Dict[str, str]]:
        """
        One-off coupon for the order's discount amount.

        Line items keep the captured unit prices, so the hosted page charges
        lines + shipping - discount, which equals order.total.
        """
        if not order.discount_amount or to_cents(order.discount_amount) <= 0:
            return []
        coupon = stripe.Coupon.create(
            api_key=self.api_key,
            amount_off=to_cents(order.discount_amount),
            currency=self.currency,
            duration="once",
            max_redemptions=1,
            name=(order.discount_code or "Discount")[:40],
            metadata={"order_id": str(order.id)},
        )
        return [{"coupon": coupon.id}]

    def create_checkout_session(self, order: Order, items: List[OrderItem]) -> CheckoutSession:
        if not self.api_key:
            raise PaymentProviderError("Payment provider not configured", provider_code="not_configured")

        metadata = {"order_id": str(order.id), "order_number": order.order_number}
        try:
            discounts = self.create_order_discount(order)
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=self.build_line_items(order, items),
                customer_email=order.customer_email,
                success_url=(
                    f"{self.app_url}/checkout/success?order={order.id}"
                    "&session_id={CHECKOUT_SESSION_ID}"
                ),
                cancel_url=f"{self.app_url}/cart?cancelled=true",
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                **({"discounts": discounts} if discounts else {}),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe session creation failed for order {order.order_number}: {e}")
            raise PaymentProviderError(
                "Could not start payment session",
                provider_code=getattr(e, "code", None),
            ) from e

        return CheckoutSession(id=session.id, url=session.url)

    def retrieve_checkout_session(self, session_id: str) -> SessionStatus:
        if not self.api_key:
            raise PaymentProviderError("Payment provider not configured", provider_code="not_configured")

        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.warning(f"Stripe session lookup failed for {session_id}: {e}")
            raise PaymentProviderError(
                "Could not verify payment session",
                provider_code=getattr(e, "code", None),
            ) from e

        metadata = getattr(session, "metadata", None) or {}
        return SessionStatus(
            id=session.id,
            payment_status=getattr(session, "payment_status", None) or "unpaid",
            payment_intent=getattr(session, "payment_intent", None),
            metadata={key: metadata[key] for key in metadata.keys()},
        )

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe-Signature header and decode the event body."""
        if not self.webhook_secret:
            logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET not configured")
            raise WebhookSignatureError("Webhook secret not configured", code="WEBHOOK_NOT_CONFIGURED")

        if not signature:
            raise WebhookSignatureError("Missing signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WebhookSignatureError("Invalid payload encoding") from e

        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Invalid signature: {e}") from e

        try:
            event = json.loads(body)
        except ValueError as e:
            raise WebhookSignatureError("Invalid payload") from e

        if not isinstance(event, dict) or "type" not in event:
            raise WebhookSignatureError("Payload is not an event")
        return event
