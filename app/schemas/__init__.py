from app.schemas.checkout import (
    CheckoutLine,
    CustomerInfo,
    DeliveryAddress,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    VerifyPaymentResponse,
)
from app.schemas.order import (
    OrderItemResponse,
    OrderTrackingResponse,
    OrderStatusUpdate,
    WebhookLogResponse,
)
from app.schemas.cart import CartLine, CartSyncRequest, CartItemResponse, CartResponse
from app.schemas.returns import (
    ReturnLineRequest,
    ReturnCreateRequest,
    ReturnStatusUpdate,
    ReturnItemResponse,
    ReturnResponse,
)
from app.schemas.invoice import InvoiceGenerateRequest, InvoiceResultResponse
from app.schemas.discount import (
    DiscountValidateRequest,
    DiscountValidateResponse,
    DiscountCodeCreateRequest,
    DiscountCodeResponse,
)
