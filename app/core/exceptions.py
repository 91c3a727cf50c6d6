"""
Storefront Exception Hierarchy

Structured exception classes for checkout, payment reconciliation, returns
and invoicing. All exceptions include code, message, and details for audit
trail and debugging.

Exception Hierarchy:
    StorefrontError
    ├── CheckoutError
    │   ├── EmptyCartError
    │   ├── StockConflictError
    │   └── InvalidDiscountCodeError
    ├── PaymentError
    │   ├── WebhookSignatureError
    │   └── PaymentProviderError
    ├── OrderError
    │   ├── OrderNotFoundError
    │   └── InvalidStateTransitionError
    ├── ReturnError
    │   ├── ReturnNotEligibleError
    │   └── ReturnNotFoundError
    └── InvoiceError
"""
import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """
    Base exception for all storefront errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
        status_code: HTTP status used when the error reaches a route
    """

    default_code: str = "STOREFRONT_ERROR"
    default_severity: str = "P2"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# CHECKOUT ERRORS
# =============================================================================

class CheckoutError(StorefrontError):
    """Base exception for checkout failures."""
    default_code = "CHECKOUT_ERROR"


class EmptyCartError(CheckoutError):
    default_code = "CART_EMPTY"
    default_severity = "P3"


class StockConflictError(CheckoutError):
    """One or more cart lines cannot be satisfied from current stock."""
    default_code = "STOCK_CONFLICT"
    default_severity = "P3"
    status_code = 409

    def __init__(
        self,
        message: str,
        out_of_stock: Optional[List[str]] = None,
        insufficient: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ):
        self.out_of_stock = out_of_stock or []
        self.insufficient = insufficient or []
        details = kwargs.pop("details", {})
        details.update({
            "out_of_stock": self.out_of_stock,
            "insufficient": self.insufficient,
        })
        super().__init__(message, details=details, **kwargs)


class InvalidDiscountCodeError(CheckoutError):
    """A discount code is unknown or cannot be used for this order."""
    default_code = "DISCOUNT_INVALID"
    default_severity = "P3"
    status_code = 422

    def __init__(self, message: str, reason: str = "INVALID", **kwargs):
        self.reason = reason
        details = kwargs.pop("details", {})
        details["reason"] = reason
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# PAYMENT ERRORS
# =============================================================================

class PaymentError(StorefrontError):
    """Base exception for payment provider errors."""
    default_code = "PAYMENT_ERROR"
    default_severity = "P1"


class WebhookSignatureError(PaymentError):
    """Webhook payload could not be authenticated."""
    default_code = "WEBHOOK_SIGNATURE_INVALID"
    default_severity = "P2"


class PaymentProviderError(PaymentError):
    """The payment provider rejected or failed a request."""
    default_code = "PAYMENT_PROVIDER_FAILED"
    status_code = 502

    def __init__(
        self,
        message: str,
        provider_code: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details["provider_code"] = provider_code
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# ORDER ERRORS
# =============================================================================

class OrderError(StorefrontError):
    """Base exception for order lifecycle errors."""
    default_code = "ORDER_ERROR"


class OrderNotFoundError(OrderError):
    default_code = "ORDER_NOT_FOUND"
    default_severity = "P3"
    status_code = 404


class InvalidStateTransitionError(OrderError):
    """Raised when attempting a status change the state machine forbids."""
    default_code = "INVALID_STATE_TRANSITION"
    default_severity = "P3"
    status_code = 409

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        requested_status: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "current_status": current_status,
            "requested_status": requested_status,
        })
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# RETURN ERRORS
# =============================================================================

class ReturnError(StorefrontError):
    """Base exception for return (RMA) errors."""
    default_code = "RETURN_ERROR"


class ReturnNotEligibleError(ReturnError):
    default_code = "RETURN_NOT_ELIGIBLE"
    default_severity = "P3"


class ReturnNotFoundError(ReturnError):
    default_code = "RETURN_NOT_FOUND"
    default_severity = "P3"
    status_code = 404


# =============================================================================
# INVOICE ERRORS
# =============================================================================

class InvoiceError(StorefrontError):
    """Invoice generation failed."""
    default_code = "INVOICE_ERROR"
    default_severity = "P2"
    status_code = 500
