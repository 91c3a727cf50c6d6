"""
ReconciliationService - aligns orders with the payment provider's record

Webhook handling:
1. Verify the signature (fails closed, 400, logged as verification_failed)
2. Skip events already marked in Redis (fast path only)
3. Dispatch by event type
4. Always write a webhook_logs row (processed / failed + error)
5. Handler exception -> 500 so the provider redelivers

Payment confirmation splits the mandatory transition from advisory side
effects. The transition is a conditional UPDATE (pending and not yet paid)
committed on its own; only the caller that wins it runs the side effects.
Redeliveries, the success-page verification and the two success event
types therefore decrement stock and send emails exactly once per order.

Advisory steps (stock, cart, discount usage, emails, invoice) are each
committed on their own; a failure is logged and rolled back without touching
the others. Rolling back expires every loaded row, so the steps only close
over plain values and the order is re-read before the emails go out.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.exceptions import InvoiceError, WebhookSignatureError
from app.core.redis_client import is_webhook_processed, mark_webhook_processed
from app.core.utils import from_cents, to_money, utcnow
from app.models import (
    Order,
    OrderStatus,
    PaymentStatus,
    WEBHOOK_STATUS_FAILED,
    WEBHOOK_STATUS_PROCESSED,
)
from app.services.inventory import InventoryService
from app.services.invoice_service import InvoiceService
from app.services.notifications import NotificationService
from app.services.order_store import OrderStore
from app.services.payments import PaymentGateway
from app.services.side_effects import run_advisory

logger = logging.getLogger(__name__)

EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_PAYMENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_PAYMENT_FAILED = "payment_intent.payment_failed"
EVENT_CHARGE_REFUNDED = "charge.refunded"
EVENT_DISPUTE_CREATED = "charge.dispute.created"


@dataclass
class WebhookResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ConfirmationResult:
    order_id: Optional[int]
    found: bool = False
    newly_paid: bool = False
    steps: Dict[str, bool] = field(default_factory=dict)


def _object_id(value) -> Optional[str]:
    """Provider references arrive either as ids or as expanded objects."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _metadata_order_id(obj: Dict[str, Any]) -> Optional[int]:
    raw = (obj.get("metadata") or {}).get("order_id")
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric order_id metadata {raw!r} on {obj.get('id')}")
        return None


class ReconciliationService:

    def __init__(
        self,
        store: OrderStore,
        notifier: NotificationService,
        invoices: Optional[InvoiceService] = None,
        gateway: Optional[PaymentGateway] = None,
        inventory: Optional[InventoryService] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.invoices = invoices or InvoiceService(store)
        self.gateway = gateway
        self.inventory = inventory or InventoryService(store)
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Any]]] = {
            EVENT_CHECKOUT_COMPLETED: self.handle_checkout_completed,
            EVENT_PAYMENT_SUCCEEDED: self.handle_payment_succeeded,
            EVENT_PAYMENT_FAILED: self.handle_payment_failed,
            EVENT_CHARGE_REFUNDED: self.handle_charge_refunded,
            EVENT_DISPUTE_CREATED: self.handle_dispute_created,
        }

    # ----- Webhook entry point -----

    async def receive(self, payload: bytes, signature: Optional[str]) -> WebhookResponse:
        try:
            event = self.gateway.parse_webhook(payload, signature)
        except WebhookSignatureError as e:
            logger.warning(f"Stripe webhook rejected: {e.message}")
            await self._record("unknown", "verification_failed", WEBHOOK_STATUS_FAILED, e.message)
            return WebhookResponse(400, {"error": "invalid_signature"})

        event_id = event.get("id") or "unknown"
        event_type = event.get("type") or "unknown"

        if await is_webhook_processed(event_id):
            logger.info(f"Stripe webhook event {event_id} already processed, skipping")
            return WebhookResponse(200, {"status": "already_processed"})

        logger.info(f"Stripe webhook received: {event_type} (event_id={event_id})")

        try:
            await self.process(event)
        except Exception as e:
            await self.store.rollback()
            logger.exception(f"Stripe webhook {event_type} ({event_id}) failed")
            await self._record(event_id, event_type, WEBHOOK_STATUS_FAILED, str(e)[:1000])
            return WebhookResponse(500, {"error": "processing_failed"})

        await self._record(event_id, event_type, WEBHOOK_STATUS_PROCESSED)
        await mark_webhook_processed(event_id)
        return WebhookResponse(200, {"received": True})

    async def process(self, event: Dict[str, Any]) -> bool:
        """Dispatch an already verified event. Returns False for unhandled types."""
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled webhook event type: {event_type}")
            return False

        await handler(obj)
        return True

    async def _record(
        self, event_id: str, event_type: str, status: str, error_message: Optional[str] = None
    ) -> None:
        try:
            await self.store.add_webhook_log(event_id, event_type, status, error_message)
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            logger.exception(f"Could not write webhook log for {event_type} ({event_id})")

    # ----- Handlers -----

    async def handle_checkout_completed(self, session: Dict[str, Any]) -> ConfirmationResult:
        order_id = _metadata_order_id(session)
        if order_id is None:
            logger.warning(f"Checkout session {session.get('id')} has no order_id metadata")
            return ConfirmationResult(order_id=None)

        if session.get("payment_status") not in (None, "paid"):
            # Delayed payment methods complete the session before funds settle
            logger.info(
                f"Checkout session {session.get('id')} completed with payment_status="
                f"{session.get('payment_status')}, waiting for payment confirmation"
            )
            return ConfirmationResult(order_id=order_id)

        return await self.confirm_payment(
            order_id,
            payment_intent_id=_object_id(session.get("payment_intent")),
        )

    async def handle_payment_succeeded(self, intent: Dict[str, Any]) -> ConfirmationResult:
        order_id = _metadata_order_id(intent)
        if order_id is None and intent.get("id"):
            order = await self.store.find_order_by_payment_intent(intent["id"])
            order_id = order.id if order else None
        if order_id is None:
            logger.warning(f"Payment {intent.get('id')} succeeded but no order could be matched")
            return ConfirmationResult(order_id=None)

        return await self.confirm_payment(
            order_id,
            payment_intent_id=intent.get("id"),
            charge_id=_object_id(intent.get("latest_charge")),
        )

    async def confirm_payment(
        self,
        order_id: int,
        payment_intent_id: Optional[str] = None,
        charge_id: Optional[str] = None,
    ) -> ConfirmationResult:
        order = await self.store.get_order(order_id)
        if not order:
            logger.warning(f"Integrity anomaly: payment confirmed for unknown order {order_id}")
            return ConfirmationResult(order_id=order_id)

        now = utcnow()
        values = {
            "status": OrderStatus.PAID.value,
            "payment_status": PaymentStatus.PAID.value,
            "paid_at": now,
            "updated_at": now,
        }
        if payment_intent_id:
            values["stripe_payment_intent_id"] = payment_intent_id
        if charge_id:
            values["stripe_charge_id"] = charge_id

        # Primary transition: failures propagate so the provider redelivers
        won = await self.store.transition_order(
            order.id,
            values,
            status_in=(OrderStatus.PENDING.value,),
            payment_status_not_in=(PaymentStatus.PAID.value,),
        )
        await self.store.commit()

        if not won:
            order = await self.store.get_order(order.id)
            if order.payment_status == PaymentStatus.PAID.value:
                logger.info(f"Order {order.order_number} already paid, side effects skipped")
            else:
                logger.warning(
                    f"Payment received for order {order.order_number} in status {order.status}; "
                    f"not transitioned, manual review required"
                )
            await self._backfill_references(order, payment_intent_id, charge_id)
            return ConfirmationResult(order_id=order_id, found=True)

        logger.info(f"Order {order.order_number} marked paid (intent={payment_intent_id})")
        result = ConfirmationResult(order_id=order.id, found=True, newly_paid=True)

        order_id = order.id
        user_id = order.user_id
        discount_code = order.discount_code
        reference = f"order {order.order_number}"
        items = await self.store.get_order_items(order_id)

        result.steps["stock"] = await run_advisory(
            self.store, "stock", reference,
            lambda: self.inventory.decrement_for_order(order_id, items),
        )
        if user_id:
            result.steps["cart"] = await run_advisory(
                self.store, "cart", reference, lambda: self.store.clear_cart(user_id)
            )
        if discount_code:
            result.steps["discount"] = await run_advisory(
                self.store, "discount", reference,
                lambda: self.store.increment_discount_usage(discount_code),
            )

        order = await self.store.get_order(order_id)
        items = await self.store.get_order_items(order_id)
        result.steps["customer_email"] = (await self.notifier.send_order_confirmation(order, items)).success
        result.steps["operator_email"] = (await self.notifier.send_new_order_admin(order, items)).success
        result.steps["invoice"] = await run_advisory(
            self.store, "invoice", reference, lambda: self._generate_invoice(order_id)
        )
        return result

    async def handle_payment_failed(self, intent: Dict[str, Any]) -> bool:
        order_id = _metadata_order_id(intent)
        order = await self.store.get_order(order_id) if order_id is not None else None
        if order is None and intent.get("id"):
            order = await self.store.find_order_by_payment_intent(intent["id"])
        if order is None:
            logger.warning(f"Payment {intent.get('id')} failed for an unknown order, ignoring")
            return False

        reason = (intent.get("last_payment_error") or {}).get("message")
        # Order status stays pending so the customer can retry checkout
        won = await self.store.transition_order(
            order.id,
            {"payment_status": PaymentStatus.FAILED.value, "updated_at": utcnow()},
            status_in=(OrderStatus.PENDING.value,),
            payment_status_not_in=(PaymentStatus.PAID.value, PaymentStatus.FAILED.value),
        )
        await self.store.commit()

        if not won:
            logger.info(f"Payment failure for order {order.order_number} ignored (payment_status={order.payment_status})")
            return False

        logger.info(f"Order {order.order_number} payment failed: {reason or 'no reason given'}")
        await self.notifier.send_payment_failed(order)
        return True

    async def handle_charge_refunded(self, charge: Dict[str, Any]) -> bool:
        payment_intent_id = _object_id(charge.get("payment_intent"))
        order = None
        if payment_intent_id:
            order = await self.store.find_order_by_payment_intent(payment_intent_id)
        if order is None and charge.get("id"):
            order = await self.store.find_order_by_charge(charge["id"])
        if order is None:
            logger.warning(
                f"Integrity anomaly: refund for charge {charge.get('id')} "
                f"(intent={payment_intent_id}) matches no order"
            )
            return False

        refund_amount = from_cents(charge.get("amount_refunded") or 0)
        fully_refunded = charge.get("refunded") is True
        payment_status = (
            PaymentStatus.REFUNDED.value if fully_refunded else PaymentStatus.PARTIALLY_REFUNDED.value
        )

        if (
            order.refund_amount is not None
            and to_money(order.refund_amount) == refund_amount
            and order.payment_status == payment_status
        ):
            logger.info(f"Refund of {refund_amount} for order {order.order_number} already recorded")
            return False

        values = {
            "payment_status": payment_status,
            "refund_amount": refund_amount,
            "updated_at": utcnow(),
        }
        if fully_refunded:
            values["status"] = OrderStatus.REFUNDED.value
        if not order.stripe_charge_id and charge.get("id"):
            values["stripe_charge_id"] = charge["id"]

        await self.store.update_order(order.id, **values)
        await self.store.commit()
        logger.info(f"Order {order.order_number} refund recorded: {refund_amount} ({payment_status})")

        order = await self.store.get_order(order.id)
        await self.notifier.send_refund_confirmed(order)
        return True

    async def handle_dispute_created(self, dispute: Dict[str, Any]) -> bool:
        charge_id = _object_id(dispute.get("charge"))
        order = await self.store.find_order_by_charge(charge_id) if charge_id else None
        if order is None and dispute.get("payment_intent"):
            order = await self.store.find_order_by_payment_intent(_object_id(dispute["payment_intent"]))
        if order is None:
            logger.warning(f"Integrity anomaly: dispute {dispute.get('id')} on charge {charge_id} matches no order")
            return False

        won = await self.store.transition_order(
            order.id,
            {"payment_status": PaymentStatus.DISPUTED.value, "updated_at": utcnow()},
            payment_status_not_in=(PaymentStatus.DISPUTED.value,),
        )
        await self.store.commit()

        if not won:
            logger.info(f"Dispute for order {order.order_number} already recorded")
            return False

        logger.warning(
            f"Dispute {dispute.get('id')} opened for order {order.order_number}: "
            f"reason={dispute.get('reason')} amount={dispute.get('amount')}"
        )
        await self.notifier.send_dispute_notification(order, dispute)
        return True

    # ----- Success page -----

    async def verify_checkout_session(self, session_id: str) -> Optional[Order]:
        """Confirm a paid session from the success page; webhook and page race safely."""
        status = self.gateway.retrieve_checkout_session(session_id)
        order_id = _metadata_order_id({"id": status.id, "metadata": status.metadata})
        if order_id is None:
            logger.warning(f"Checkout session {session_id} has no order_id metadata")
            return None

        order = await self.store.get_order(order_id)
        if order is None:
            return None
        if order.stripe_session_id and order.stripe_session_id != status.id:
            logger.warning(f"Session {session_id} does not belong to order {order.order_number}")
            return None

        if status.payment_status == "paid":
            await self.confirm_payment(order_id, payment_intent_id=status.payment_intent)
            order = await self.store.get_order(order_id)
        return order

    # ----- Helpers -----

    async def _generate_invoice(self, order_id: int) -> None:
        result = await self.invoices.generate_purchase_invoice(order_id)
        if not result.success:
            raise InvoiceError(result.error or "Invoice generation failed")

    async def _backfill_references(
        self, order: Order, payment_intent_id: Optional[str], charge_id: Optional[str]
    ) -> None:
        order_id = order.id
        values = {}
        if payment_intent_id and not order.stripe_payment_intent_id:
            values["stripe_payment_intent_id"] = payment_intent_id
        if charge_id and not order.stripe_charge_id:
            values["stripe_charge_id"] = charge_id
        if values:
            await run_advisory(
                self.store, "references", f"order {order.order_number}",
                lambda: self.store.update_order(order_id, **values),
            )
