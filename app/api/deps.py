"""
API dependencies

Services are assembled per request over the request's database session.
The payment gateway and the notification service are process-wide; the
notifier's HTTP client is closed by the application lifespan.

Admin routes authenticate with the X-Admin-Token header. An empty
ADMIN_API_TOKEN rejects every admin request.
"""
import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.services.cart_service import CartService
from app.services.checkout_service import CheckoutService
from app.services.discount_service import DiscountService
from app.services.invoice_service import InvoiceService
from app.services.notifications import NotificationService
from app.services.order_service import OrderService
from app.services.order_store import SqlOrderStore
from app.services.payments import PaymentGateway, StripeGateway
from app.services.reconciliation import ReconciliationService
from app.services.return_service import ReturnService

logger = logging.getLogger(__name__)

_gateway: Optional[PaymentGateway] = None
_notifier: Optional[NotificationService] = None


def get_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway


def get_notifier() -> NotificationService:
    global _notifier
    if _notifier is None:
        _notifier = NotificationService()
    return _notifier


async def close_notifier() -> None:
    global _notifier
    if _notifier is not None:
        await _notifier.close()
        _notifier = None


def get_store(db: AsyncSession = Depends(get_db)) -> SqlOrderStore:
    return SqlOrderStore(db)


def get_checkout_service(
    store: SqlOrderStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
) -> CheckoutService:
    return CheckoutService(store, gateway, DiscountService(store))


def get_reconciliation_service(
    store: SqlOrderStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: NotificationService = Depends(get_notifier),
) -> ReconciliationService:
    return ReconciliationService(store, notifier, gateway=gateway)


def get_return_service(
    store: SqlOrderStore = Depends(get_store),
    notifier: NotificationService = Depends(get_notifier),
) -> ReturnService:
    return ReturnService(store, notifier)


def get_order_service(
    store: SqlOrderStore = Depends(get_store),
    notifier: NotificationService = Depends(get_notifier),
) -> OrderService:
    return OrderService(store, notifier)


def get_cart_service(store: SqlOrderStore = Depends(get_store)) -> CartService:
    return CartService(store)


def get_discount_service(store: SqlOrderStore = Depends(get_store)) -> DiscountService:
    return DiscountService(store)


def get_invoice_service(store: SqlOrderStore = Depends(get_store)) -> InvoiceService:
    return InvoiceService(store)


async def require_admin(x_admin_token: Optional[str] = Header(None)) -> str:
    """Require a valid admin token, compared in constant time."""
    expected = settings.ADMIN_API_TOKEN
    if not expected or not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode(), expected.encode()
    ):
        logger.warning("Admin request rejected: invalid or missing X-Admin-Token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin authentication required",
        )
    return "admin"
