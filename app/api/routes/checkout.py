"""
Checkout API Routes

HOSTED CHECKOUT FLOW:
1. create-session: validate stock and any discount code, persist a pending
   order with captured prices, open a Stripe Checkout session (rate limited)
2. Customer pays on the hosted page
3. Stripe webhook marks the order paid (see webhooks.py)
4. verify: the success page confirms the session; it races the webhook
   safely because confirmation is a conditional update
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.api.deps import get_checkout_service, get_discount_service, get_reconciliation_service
from app.core.config import settings
from app.core.exceptions import InvalidDiscountCodeError
from app.core.rate_limit import limiter
from app.schemas.checkout import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    VerifyPaymentResponse,
)
from app.schemas.discount import DiscountValidateRequest, DiscountValidateResponse
from app.services.checkout_service import CheckoutService
from app.services.discount_service import DiscountService
from app.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/create-session", response_model=CheckoutSessionResponse)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def create_checkout_session(
    request: Request,
    payload: CheckoutSessionRequest,
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Create a pending order and a hosted payment session.

    Stock is checked for every line; if any line is short the whole request
    is rejected with 409 listing each offending line. Client prices are
    ignored.
    """
    if not settings.STRIPE_SECRET_KEY:
        logger.error("Checkout attempted but STRIPE_SECRET_KEY not configured")
        raise HTTPException(status_code=500, detail="Payments not configured")

    result = await service.create_session(payload)
    return CheckoutSessionResponse(
        session_id=result.session_id,
        url=result.url,
        order_id=result.order_id,
        order_number=result.order_number,
    )


@router.post("/validate-discount", response_model=DiscountValidateResponse)
async def validate_discount(
    payload: DiscountValidateRequest,
    service: DiscountService = Depends(get_discount_service),
):
    """
    Preview a discount code against the current cart subtotal.

    Invalid codes answer 200 with valid=false; create-session validates the
    code again against server-side prices.
    """
    try:
        code, amount = await service.validate(payload.code, payload.subtotal, payload.email)
    except InvalidDiscountCodeError as e:
        return DiscountValidateResponse(
            valid=False,
            code=payload.code.strip().upper(),
            reason=e.reason,
            message=e.message,
        )

    return DiscountValidateResponse(
        valid=True,
        code=code.code,
        discount_type=code.discount_type,
        discount_value=float(code.discount_value),
        discount_amount=float(amount),
        message=f"{amount:.2f} discount applied",
    )


@router.get("/verify", response_model=VerifyPaymentResponse)
async def verify_checkout_session(
    session_id: str = Query(..., min_length=1, max_length=255),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Success-page confirmation of a Checkout session."""
    order = await service.verify_checkout_session(session_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found for this session")
    return VerifyPaymentResponse(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        paid=order.payment_status == "paid",
    )


@router.get("/config")
async def get_stripe_config():
    """
    Return publishable key for frontend.
    This is safe to expose - it's meant to be public.
    """
    return {
        "publishable_key": settings.STRIPE_PUBLISHABLE_KEY,
        "currency": settings.STRIPE_CURRENCY,
    }
