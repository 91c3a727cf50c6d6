"""
NotificationService - transactional emails for orders and returns

Emails are advisory: send() never raises. A delivery failure is logged and
returned as an unsuccessful SendResult, so an email outage can never make a
payment webhook fail or a status change roll back.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.core.config import settings
from app.models import Order, OrderItem, ReturnItem, ReturnRequest
from app.services.email_provider import EmailProvider, SendResult, get_default_provider

logger = logging.getLogger(__name__)


def _money(value: Any, currency: str = "eur") -> str:
    return f"{float(value or 0):.2f} {currency.upper()}"


def _lines(data: Dict[str, Any]) -> str:
    currency = data.get("currency", "eur")
    return "\n".join(
        f"  {line['quantity']} x {line['name']} @ {_money(line['price'], currency)}"
        for line in data.get("items", [])
    )


def _order_confirmation(data):
    discount = ""
    if data.get("discount_amount"):
        discount = f"Discount: -{_money(data['discount_amount'], data['currency'])}\n"
    return (
        f"Order {data['order_number']} confirmed",
        f"Hi {data['customer_name'] or 'there'},\n\n"
        f"We have received your payment for order {data['order_number']}.\n\n"
        f"{_lines(data)}\n\n"
        f"Subtotal: {_money(data['subtotal'], data['currency'])}\n"
        f"{discount}"
        f"Shipping: {_money(data['shipping_cost'], data['currency'])}\n"
        f"Total: {_money(data['total'], data['currency'])}\n",
    )


def _new_order_admin(data):
    return (
        f"New order {data['order_number']} ({_money(data['total'], data['currency'])})",
        f"Order {data['order_number']} has been paid.\n"
        f"Customer: {data['customer_name']} <{data['customer_email']}>\n"
        f"Shipping: {data['shipping_option']}\n\n"
        f"{_lines(data)}\n\n"
        f"Total: {_money(data['total'], data['currency'])}\n",
    )


def _payment_failed(data):
    return (
        f"Payment for order {data['order_number']} did not go through",
        f"Hi {data['customer_name'] or 'there'},\n\n"
        f"Your payment for order {data['order_number']} failed. "
        f"No money has been taken. You can try again from your cart.\n",
    )


def _refund_confirmed(data):
    return (
        f"Refund for order {data['order_number']}",
        f"Hi {data['customer_name'] or 'there'},\n\n"
        f"A refund of {_money(data['refund_amount'], data['currency'])} for order "
        f"{data['order_number']} has been issued to your original payment method.\n",
    )


def _dispute_notification(data):
    return (
        f"Payment dispute opened for order {data['order_number']}",
        f"A dispute was opened for order {data['order_number']}.\n"
        f"Dispute: {data.get('dispute_id')}\n"
        f"Amount: {_money(data.get('dispute_amount'), data['currency'])}\n"
        f"Reason: {data.get('dispute_reason') or 'unknown'}\n",
    )


def _return_requested(data):
    return (
        f"Return request {data['return_number']} received",
        f"Hi {data['customer_name'] or 'there'},\n\n"
        f"We have received your return request {data['return_number']} for order "
        f"{data['order_number']}.\n\n"
        f"{_lines(data)}\n\n"
        f"Refund amount: {_money(data['refund_amount'], data['currency'])}\n",
    )


def _return_requested_admin(data):
    return (
        f"New return request {data['return_number']}",
        f"Return {data['return_number']} for order {data['order_number']}.\n"
        f"Reason: {data['reason']}\n"
        f"Description: {data.get('description') or '-'}\n\n"
        f"{_lines(data)}\n\n"
        f"Refund amount: {_money(data['refund_amount'], data['currency'])}\n",
    )


RETURN_STATUS_MESSAGES = {
    "approved": "has been approved. Please send the items back to us.",
    "rejected": "has been rejected.",
    "received": "has been received and is being inspected.",
    "completed": "is complete and your refund has been issued.",
    "cancelled": "has been cancelled.",
}


def _return_status_update(data):
    message = RETURN_STATUS_MESSAGES.get(data["status"], f"is now {data['status']}.")
    body = f"Hi {data['customer_name'] or 'there'},\n\nYour return {data['return_number']} {message}\n"
    if data.get("admin_notes"):
        body += f"\nNotes: {data['admin_notes']}\n"
    return (f"Return {data['return_number']}: {data['status']}", body)


def _order_shipped(data):
    return (
        f"Order {data['order_number']} has shipped",
        f"Hi {data['customer_name'] or 'there'},\n\n"
        f"Your order {data['order_number']} is on its way.\n"
        f"Tracking number: {data.get('tracking_number') or '-'}\n",
    )


TEMPLATES: Dict[str, Callable[[Dict[str, Any]], Tuple[str, str]]] = {
    "order_confirmation": _order_confirmation,
    "new_order_admin": _new_order_admin,
    "payment_failed": _payment_failed,
    "refund_confirmed": _refund_confirmed,
    "dispute_notification": _dispute_notification,
    "return_requested": _return_requested,
    "return_requested_admin": _return_requested_admin,
    "return_status_update": _return_status_update,
    "order_shipped": _order_shipped,
}


def order_data(order: Order, items: Optional[List[OrderItem]] = None) -> Dict[str, Any]:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "currency": order.currency or settings.STRIPE_CURRENCY,
        "subtotal": order.subtotal,
        "shipping_cost": order.shipping_cost,
        "discount_amount": order.discount_amount,
        "total": order.total,
        "refund_amount": order.refund_amount,
        "shipping_option": order.shipping_option,
        "tracking_number": order.tracking_number,
        "items": [
            {"name": i.product_name, "quantity": i.quantity, "price": i.price}
            for i in (items or [])
        ],
    }


def return_data(ret: ReturnRequest, order: Order, items: Optional[List[ReturnItem]] = None) -> Dict[str, Any]:
    data = order_data(order)
    data.update({
        "return_number": ret.return_number,
        "reason": ret.reason,
        "description": ret.description,
        "status": ret.status,
        "admin_notes": ret.admin_notes,
        "refund_amount": ret.refund_amount,
        "items": [
            {"name": i.product_name, "quantity": i.quantity, "price": i.price}
            for i in (items or [])
        ],
    })
    return data


class NotificationService:
    """Renders templates and hands them to the configured provider."""

    def __init__(self, provider: Optional[EmailProvider] = None, operator_email: Optional[str] = None):
        self.provider = provider or get_default_provider()
        self.operator_email = operator_email or settings.STORE_OPERATOR_EMAIL

    async def send(self, template: str, to_email: Optional[str], data: Dict[str, Any]) -> SendResult:
        if not to_email:
            logger.warning(f"Email {template} skipped: no recipient")
            return SendResult(success=False, error="No recipient")

        try:
            subject, body = TEMPLATES[template](data)
            result = await self.provider.send(to_email, subject, body)
        except Exception as e:
            logger.exception(f"Email {template} to {to_email} failed")
            return SendResult(success=False, error=str(e))

        if result.success:
            logger.info(f"Email {template} sent to {to_email}")
        else:
            logger.warning(f"Email {template} to {to_email} not delivered: {result.error}")
        return result

    # ----- Orders -----

    async def send_order_confirmation(self, order: Order, items: List[OrderItem]) -> SendResult:
        return await self.send("order_confirmation", order.customer_email, order_data(order, items))

    async def send_new_order_admin(self, order: Order, items: List[OrderItem]) -> SendResult:
        return await self.send("new_order_admin", self.operator_email, order_data(order, items))

    async def send_payment_failed(self, order: Order) -> SendResult:
        return await self.send("payment_failed", order.customer_email, order_data(order))

    async def send_refund_confirmed(self, order: Order) -> SendResult:
        return await self.send("refund_confirmed", order.customer_email, order_data(order))

    async def send_dispute_notification(self, order: Order, dispute: Dict[str, Any]) -> SendResult:
        data = order_data(order)
        data.update({
            "dispute_id": dispute.get("id"),
            "dispute_amount": (dispute.get("amount") or 0) / 100,
            "dispute_reason": dispute.get("reason"),
        })
        return await self.send("dispute_notification", self.operator_email, data)

    async def send_order_shipped(self, order: Order) -> SendResult:
        return await self.send("order_shipped", order.customer_email, order_data(order))

    # ----- Returns -----

    async def send_return_requested(
        self, ret: ReturnRequest, order: Order, items: List[ReturnItem]
    ) -> SendResult:
        return await self.send("return_requested", ret.customer_email, return_data(ret, order, items))

    async def send_return_requested_admin(
        self, ret: ReturnRequest, order: Order, items: List[ReturnItem]
    ) -> SendResult:
        return await self.send("return_requested_admin", self.operator_email, return_data(ret, order, items))

    async def send_return_status_update(self, ret: ReturnRequest, order: Order) -> SendResult:
        return await self.send("return_status_update", ret.customer_email, return_data(ret, order))

    async def close(self) -> None:
        await self.provider.close()
