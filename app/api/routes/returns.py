"""
Return (RMA) routes

Customers request a return for a delivered order. Admin transitions live in
admin.py.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from app.api.deps import get_return_service
from app.models import ReturnItem, ReturnRequest
from app.schemas.returns import ReturnCreateRequest, ReturnItemResponse, ReturnResponse
from app.services.return_service import ReturnService

router = APIRouter(prefix="/returns", tags=["returns"])


def serialize_return(ret: ReturnRequest, items: Optional[List[ReturnItem]] = None) -> ReturnResponse:
    return ReturnResponse(
        id=ret.id,
        return_number=ret.return_number,
        order_id=ret.order_id,
        reason=ret.reason,
        description=ret.description,
        status=ret.status,
        refund_amount=float(ret.refund_amount),
        refund_status=ret.refund_status,
        admin_notes=ret.admin_notes,
        items=[
            ReturnItemResponse(
                id=i.id,
                order_item_id=i.order_item_id,
                product_id=i.product_id,
                product_name=i.product_name,
                quantity=i.quantity,
                price=float(i.price),
            )
            for i in (items or [])
        ],
        created_at=ret.created_at,
        approved_at=ret.approved_at,
        completed_at=ret.completed_at,
    )


@router.post("", response_model=ReturnResponse, status_code=status.HTTP_201_CREATED)
async def create_return(
    payload: ReturnCreateRequest,
    service: ReturnService = Depends(get_return_service),
):
    """
    Request a return for a delivered order.

    The refund is priced from the order's captured line prices; prices in
    the request body are ignored and shipping is never refunded.
    """
    ret = await service.create_request(payload)
    items = await service.store.get_return_items(ret.id)
    return serialize_return(ret, items)
