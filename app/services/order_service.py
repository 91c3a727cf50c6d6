"""
OrderService - customer tracking and admin fulfillment transitions

Payment-driven transitions belong to ReconciliationService. Admin
transitions follow VALID_ORDER_TRANSITIONS and use the same conditional
update, so an admin action racing a webhook cannot overwrite it.
"""
import logging
from typing import List, Optional, Tuple

from app.core.exceptions import InvalidStateTransitionError, OrderError, OrderNotFoundError
from app.core.utils import utcnow
from app.models import Order, OrderItem, OrderStatus, VALID_ORDER_TRANSITIONS
from app.services.notifications import NotificationService
from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)


def can_transition_order(current: str, requested: str) -> bool:
    try:
        return OrderStatus(requested) in VALID_ORDER_TRANSITIONS.get(OrderStatus(current), [])
    except ValueError:
        return False


class OrderService:

    def __init__(self, store: OrderStore, notifier: Optional[NotificationService] = None):
        self.store = store
        self.notifier = notifier

    async def track_order(self, order_number: str, email: str) -> Tuple[Order, List[OrderItem]]:
        order = await self.store.get_order_by_number(order_number.strip().upper())
        if order is None or (order.customer_email or "").lower() != email.strip().lower():
            raise OrderNotFoundError("Order not found")
        items = await self.store.get_order_items(order.id)
        return order, items

    async def update_status(
        self,
        order_id: int,
        new_status: str,
        tracking_number: Optional[str] = None,
    ) -> Order:
        order = await self.store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")

        current = order.status
        if not can_transition_order(current, new_status):
            raise InvalidStateTransitionError(
                f"Cannot move order {order.order_number} from {current} to {new_status}",
                current_status=current,
                requested_status=new_status,
            )

        now = utcnow()
        values = {"status": new_status, "updated_at": now}
        if new_status == OrderStatus.SHIPPED.value:
            if not tracking_number:
                raise OrderError("A tracking number is required to ship an order")
            values["tracking_number"] = tracking_number.strip()
            values["shipped_at"] = now
        elif new_status == OrderStatus.DELIVERED.value:
            values["delivered_at"] = now

        won = await self.store.transition_order(order.id, values, status_in=(current,))
        await self.store.commit()
        order = await self.store.get_order(order.id)
        if not won:
            raise InvalidStateTransitionError(
                f"Order {order.order_number} changed concurrently (now {order.status})",
                current_status=order.status,
                requested_status=new_status,
            )

        logger.info(f"Order {order.order_number}: {current} -> {new_status}")
        if new_status == OrderStatus.SHIPPED.value and self.notifier is not None:
            await self.notifier.send_order_shipped(order)
        return order
