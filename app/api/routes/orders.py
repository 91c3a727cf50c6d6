"""
Order tracking routes

Customers look up an order by number plus the email used at checkout.
A wrong email answers exactly like an unknown order number.
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_order_service
from app.models import Order, OrderItem
from app.schemas.order import OrderItemResponse, OrderTrackingResponse
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def serialize_order(order: Order, items: List[OrderItem]) -> OrderTrackingResponse:
    return OrderTrackingResponse(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        subtotal=float(order.subtotal),
        shipping_cost=float(order.shipping_cost or 0),
        discount_amount=float(order.discount_amount or 0),
        total=float(order.total),
        refund_amount=float(order.refund_amount) if order.refund_amount is not None else None,
        currency=order.currency,
        shipping_option=order.shipping_option,
        shipping_address=order.shipping_address,
        tracking_number=order.tracking_number,
        items=[
            OrderItemResponse(
                id=i.id,
                product_id=i.product_id,
                product_name=i.product_name,
                price=float(i.price),
                quantity=i.quantity,
            )
            for i in items
        ],
        created_at=order.created_at,
        paid_at=order.paid_at,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
    )


@router.get("/track", response_model=OrderTrackingResponse)
async def track_order(
    order_number: str = Query(..., min_length=1, max_length=40),
    email: str = Query(..., min_length=3, max_length=255),
    service: OrderService = Depends(get_order_service),
):
    """Get status, totals, lines and tracking number for an order."""
    order, items = await service.track_order(order_number, email)
    return serialize_order(order, items)
