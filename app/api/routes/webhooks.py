"""
Stripe webhook endpoint

The signature is verified against STRIPE_WEBHOOK_SECRET before anything is
trusted. Status codes follow Stripe's retry contract: 2xx stops redelivery,
400 marks the request as bad, 500 asks Stripe to retry.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_reconciliation_service
from app.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    result = await service.receive(payload, signature)
    return JSONResponse(status_code=result.status_code, content=result.body)
