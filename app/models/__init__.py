from app.models.product import Product
from app.models.cart import CartItem
from app.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    CheckoutType,
    VALID_ORDER_TRANSITIONS,
)
from app.models.webhook_log import WebhookLog, WEBHOOK_STATUS_PROCESSED, WEBHOOK_STATUS_FAILED
from app.models.return_request import (
    ReturnRequest,
    ReturnItem,
    ReturnStatus,
    ReturnReason,
    VALID_RETURN_TRANSITIONS,
    can_transition,
)
from app.models.invoice import Invoice, InvoiceType
from app.models.discount_code import DiscountCode, DiscountType
