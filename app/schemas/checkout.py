"""
Checkout schemas
"""
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, field_validator, model_validator


def normalize_email(value: str) -> str:
    value = (value or "").strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("Invalid email address")
    return value


class CheckoutLine(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1, le=100)
    # Accepted for client convenience, never used for pricing
    price: Optional[float] = None


class CustomerInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str
    phone: Optional[str] = Field(None, max_length=40)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)

    def split_name(self):
        """Split a full name into (first, last) on the first space."""
        parts = self.name.strip().split(" ", 1)
        return parts[0], parts[1] if len(parts) > 1 else ""


class DeliveryAddress(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = "ES"


class CheckoutSessionRequest(BaseModel):
    items: List[CheckoutLine]
    customer: CustomerInfo
    shipping_option: Literal["delivery", "pickup"] = "delivery"
    address: Optional[DeliveryAddress] = None
    user_id: Optional[int] = None
    discount_code: Optional[str] = Field(None, max_length=50)

    @model_validator(mode="after")
    def require_address_for_delivery(self):
        if self.shipping_option == "delivery" and self.address is None:
            raise ValueError("A delivery address is required for home delivery")
        return self


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: str
    order_id: int
    order_number: str


class VerifyPaymentResponse(BaseModel):
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    paid: bool = False
