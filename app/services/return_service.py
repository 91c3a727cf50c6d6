"""
ReturnService - return (RMA) requests and their admin lifecycle

Requests are only accepted for delivered orders and are always priced from
the persisted order lines: any price sent by the client is ignored and the
original shipping cost is never refunded.

Completion runs three advisory steps after the status change is committed:
1. Replenish stock for every returned line (unbounded increment)
2. Mark the parent order refunded
3. Generate the credit note
A failing step is logged and rolled back on its own; the others still run.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from app.core.exceptions import (
    InvalidStateTransitionError,
    InvoiceError,
    OrderNotFoundError,
    ReturnNotEligibleError,
    ReturnNotFoundError,
)
from app.core.utils import to_money, utcnow
from app.models import (
    OrderStatus,
    ReturnItem,
    ReturnRequest,
    ReturnStatus,
    can_transition,
)
from app.schemas.returns import ReturnCreateRequest
from app.services.inventory import InventoryService
from app.services.invoice_service import InvoiceService
from app.services.notifications import NotificationService
from app.services.order_store import OrderStore
from app.services.side_effects import run_advisory

logger = logging.getLogger(__name__)


class ReturnService:

    def __init__(
        self,
        store: OrderStore,
        notifier: NotificationService,
        invoices: Optional[InvoiceService] = None,
        inventory: Optional[InventoryService] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.invoices = invoices or InvoiceService(store)
        self.inventory = inventory or InventoryService(store)

    @staticmethod
    def generate_return_number() -> str:
        """Generate unique return number in format RET-YYYYMMDD-XXXXXXXX."""
        return f"RET-{datetime.now(timezone.utc).strftime('%Y%m%d')}-{uuid.uuid4().hex[:8].upper()}"

    async def create_request(self, request: ReturnCreateRequest) -> ReturnRequest:
        order = await self.store.get_order(request.order_id)
        # Unknown order and email mismatch are indistinguishable to the caller
        if order is None or (order.customer_email or "").lower() != request.email:
            raise OrderNotFoundError("Order not found")

        if order.status != OrderStatus.DELIVERED.value:
            raise ReturnNotEligibleError(
                f"Order {order.order_number} is {order.status}; only delivered orders can be returned",
                details={"order_status": order.status},
            )

        order_items = {item.id: item for item in await self.store.get_order_items(order.id)}
        if request.items:
            requested: Dict[int, int] = {}
            for line in request.items:
                requested[line.order_item_id] = requested.get(line.order_item_id, 0) + line.quantity
        else:
            requested = {item_id: item.quantity for item_id, item in order_items.items()}

        already_returned = await self.store.get_returned_quantities(order.id)

        items: List[ReturnItem] = []
        refund = to_money(0)
        for order_item_id, quantity in requested.items():
            order_item = order_items.get(order_item_id)
            if order_item is None:
                raise ReturnNotEligibleError(
                    f"Item {order_item_id} does not belong to order {order.order_number}",
                    details={"order_item_id": order_item_id},
                )
            returnable = order_item.quantity - already_returned.get(order_item_id, 0)
            if quantity > returnable:
                raise ReturnNotEligibleError(
                    f"Only {max(returnable, 0)} of {order_item.product_name} can be returned",
                    details={
                        "order_item_id": order_item_id,
                        "requested": quantity,
                        "returnable": max(returnable, 0),
                    },
                )
            price = to_money(order_item.price)
            refund += price * quantity
            items.append(ReturnItem(
                order_item_id=order_item.id,
                product_id=order_item.product_id,
                product_name=order_item.product_name,
                quantity=quantity,
                price=price,
            ))

        now = utcnow()
        ret = ReturnRequest(
            return_number=self.generate_return_number(),
            order_id=order.id,
            customer_email=order.customer_email,
            reason=request.reason,
            description=request.description,
            status=ReturnStatus.PENDING.value,
            refund_amount=to_money(refund),
            refund_status="pending",
            created_at=now,
            updated_at=now,
        )
        await self.store.add_return(ret, items)
        await self.store.commit()

        logger.info(
            f"Return {ret.return_number} requested for order {order.order_number}: "
            f"{len(items)} line(s), refund {ret.refund_amount}"
        )

        await self.notifier.send_return_requested(ret, order, items)
        await self.notifier.send_return_requested_admin(ret, order, items)
        return ret

    async def transition(
        self,
        return_id: int,
        new_status: str,
        admin_notes: Optional[str] = None,
    ) -> ReturnRequest:
        ret = await self.store.get_return(return_id)
        if ret is None:
            raise ReturnNotFoundError(f"Return {return_id} not found")

        current = ret.status
        if not can_transition(current, new_status):
            raise InvalidStateTransitionError(
                f"Cannot move return {ret.return_number} from {current} to {new_status}",
                current_status=current,
                requested_status=new_status,
            )

        now = utcnow()
        values = {"status": new_status, "updated_at": now}
        if admin_notes is not None:
            values["admin_notes"] = admin_notes
        if new_status == ReturnStatus.APPROVED.value:
            values["approved_at"] = now
        elif new_status == ReturnStatus.COMPLETED.value:
            values["completed_at"] = now
            values["refund_status"] = "completed"
        elif new_status in (ReturnStatus.REJECTED.value, ReturnStatus.CANCELLED.value):
            values["refund_status"] = "cancelled"

        won = await self.store.transition_return(ret.id, values, status_in=(current,))
        await self.store.commit()
        if not won:
            # Another admin action moved the return first
            ret = await self.store.get_return(ret.id)
            raise InvalidStateTransitionError(
                f"Return {ret.return_number} changed concurrently (now {ret.status})",
                current_status=ret.status,
                requested_status=new_status,
            )

        logger.info(f"Return {ret.return_number}: {current} -> {new_status}")

        if new_status == ReturnStatus.COMPLETED.value:
            await self._complete(ret)

        ret = await self.store.get_return(return_id)
        order = await self.store.get_order(ret.order_id)
        if order is not None:
            await self.notifier.send_return_status_update(ret, order)
        return ret

    async def _complete(self, ret: ReturnRequest) -> Dict[str, bool]:
        # Rolling back a failed step expires loaded rows, so every step
        # closes over plain values only
        return_id = ret.id
        order_id = ret.order_id
        refund_amount = to_money(ret.refund_amount)
        reference = f"return {ret.return_number}"
        items = await self.store.get_return_items(return_id)

        steps: Dict[str, bool] = {}
        steps["stock"] = await run_advisory(
            self.store, "stock", reference,
            lambda: self.inventory.replenish(reference, items),
        )
        steps["order"] = await run_advisory(
            self.store, "order", reference,
            lambda: self._mark_order_refunded(order_id, refund_amount),
        )
        steps["credit_note"] = await run_advisory(
            self.store, "credit_note", reference,
            lambda: self._generate_credit_note(return_id),
        )
        return steps

    async def _mark_order_refunded(self, order_id: int, amount: Decimal) -> None:
        order = await self.store.get_order(order_id)
        if order is None:
            logger.warning(f"Order {order_id} no longer exists, refund not recorded")
            return
        refunded = to_money(order.refund_amount or 0) + to_money(amount)
        await self.store.update_order(
            order_id,
            status=OrderStatus.REFUNDED.value,
            refund_amount=refunded,
            updated_at=utcnow(),
        )
        logger.info(f"Order {order.order_number} marked refunded ({refunded})")

    async def _generate_credit_note(self, return_id: int) -> None:
        result = await self.invoices.generate_return_invoice(return_id)
        if not result.success:
            raise InvoiceError(result.error or "Credit note generation failed")
