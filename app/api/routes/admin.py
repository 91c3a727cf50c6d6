"""
Admin Routes

Fulfillment, returns, webhook audit, invoicing and discount codes for store
operators.
Every route requires the X-Admin-Token header and every state change is
written to the audit log.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import Response

from app.api.deps import (
    get_discount_service,
    get_invoice_service,
    get_order_service,
    get_return_service,
    get_store,
    require_admin,
)
from app.api.routes.orders import serialize_order
from app.api.routes.returns import serialize_return
from app.core.audit_log import (
    ACTION_DISCOUNT_CREATE,
    ACTION_INVOICE_GENERATE,
    ACTION_ORDER_STATUS,
    ACTION_RETURN_STATUS,
    log_admin_action,
)
from app.core.rate_limit import get_client_ip
from app.schemas.discount import DiscountCodeCreateRequest, DiscountCodeResponse
from app.schemas.invoice import InvoiceGenerateRequest, InvoiceResultResponse
from app.schemas.order import OrderStatusUpdate, WebhookLogResponse
from app.schemas.returns import ReturnStatusUpdate
from app.services.discount_service import DiscountService
from app.services.invoice_service import InvoiceService
from app.services.order_service import OrderService
from app.services.order_store import SqlOrderStore
from app.services.return_service import ReturnService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    request: Request,
    service: OrderService = Depends(get_order_service),
):
    """
    Move an order through fulfillment.

    paid -> shipped (tracking number required, customer is emailed),
    shipped -> delivered, pending -> cancelled.
    """
    order = await service.update_status(order_id, payload.status, payload.tracking_number)
    log_admin_action(
        ACTION_ORDER_STATUS,
        "order",
        order.id,
        details={"status": payload.status, "tracking_number": payload.tracking_number},
        ip_address=get_client_ip(request),
    )
    items = await service.store.get_order_items(order.id)
    return serialize_order(order, items)


@router.patch("/returns/{return_id}")
async def update_return_status(
    return_id: int,
    payload: ReturnStatusUpdate,
    request: Request,
    service: ReturnService = Depends(get_return_service),
):
    ret = await service.transition(return_id, payload.status, payload.admin_notes)
    log_admin_action(
        ACTION_RETURN_STATUS,
        "return",
        ret.id,
        details={"status": payload.status},
        ip_address=get_client_ip(request),
    )
    items = await service.store.get_return_items(ret.id)
    return serialize_return(ret, items)


@router.get("/webhooks")
async def list_webhook_logs(
    status_filter: Optional[str] = Query(None, alias="status", description="processed or failed"),
    limit: int = Query(50, ge=1, le=200),
    store: SqlOrderStore = Depends(get_store),
):
    """Recent webhook deliveries, newest first."""
    logs = await store.list_webhook_logs(limit=limit, status=status_filter)
    return {
        "webhooks": [WebhookLogResponse.model_validate(log) for log in logs],
        "count": len(logs),
    }


@router.post("/invoices", response_model=InvoiceResultResponse)
async def generate_invoice(
    payload: InvoiceGenerateRequest,
    request: Request,
    service: InvoiceService = Depends(get_invoice_service),
):
    """Generate a purchase invoice or credit note if it does not exist yet."""
    if payload.type == "purchase":
        result = await service.generate_purchase_invoice(payload.order_id)
    else:
        result = await service.generate_return_invoice(payload.return_id)

    if result.success:
        await service.store.commit()
    else:
        await service.store.rollback()

    log_admin_action(
        ACTION_INVOICE_GENERATE,
        payload.type,
        payload.order_id or payload.return_id,
        details={"invoice_number": result.invoice_number, "error": result.error},
        ip_address=get_client_ip(request),
        success=result.success,
    )
    if not result.success:
        raise HTTPException(status_code=422, detail=result.error or "Invoice generation failed")

    return InvoiceResultResponse(
        success=True,
        invoice_id=result.invoice_id,
        invoice_number=result.invoice_number,
    )


@router.get("/invoices/{invoice_id}/pdf")
async def download_invoice_pdf(
    invoice_id: int,
    store: SqlOrderStore = Depends(get_store),
):
    invoice = await store.get_invoice(invoice_id)
    if invoice is None or not invoice.pdf_data:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return Response(
        content=invoice.pdf_data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{invoice.invoice_number}.pdf"'},
    )


@router.post("/discount-codes", response_model=DiscountCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_discount_code(
    payload: DiscountCodeCreateRequest,
    request: Request,
    service: DiscountService = Depends(get_discount_service),
):
    discount = await service.create_code(payload)
    log_admin_action(
        ACTION_DISCOUNT_CREATE,
        "discount_code",
        discount.id,
        details={"code": discount.code, "type": discount.discount_type},
        ip_address=get_client_ip(request),
    )
    return DiscountCodeResponse.model_validate(discount)


@router.get("/discount-codes")
async def list_discount_codes(
    active_only: bool = False,
    store: SqlOrderStore = Depends(get_store),
):
    codes = await store.list_discount_codes(active_only=active_only)
    return {
        "discount_codes": [DiscountCodeResponse.model_validate(c) for c in codes],
        "count": len(codes),
    }
