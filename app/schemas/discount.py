"""
Discount code schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator, model_validator

from app.schemas.checkout import normalize_email


class DiscountValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    subtotal: Decimal = Field(..., ge=0)
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v) if v else None


class DiscountValidateResponse(BaseModel):
    valid: bool
    code: str
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    discount_amount: Optional[float] = None
    reason: Optional[str] = None
    message: Optional[str] = None


class DiscountCodeCreateRequest(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    discount_type: Literal["percentage", "fixed_amount"]
    discount_value: Decimal = Field(..., gt=0)
    minimum_order_value: Optional[Decimal] = Field(None, ge=0)
    maximum_discount: Optional[Decimal] = Field(None, gt=0)
    usage_limit_total: Optional[int] = Field(None, ge=1)
    usage_limit_per_customer: Optional[int] = Field(1, ge=1)
    target_email: Optional[str] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        v = v.strip().upper()
        if not v.replace("-", "").replace("_", "").isalnum():
            raise ValueError("Codes may only contain letters, digits, '-' and '_'")
        return v

    @field_validator("target_email")
    @classmethod
    def validate_target_email(cls, v):
        return normalize_email(v) if v else None

    @model_validator(mode="after")
    def check_value(self):
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("A percentage discount cannot exceed 100")
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        return self


class DiscountCodeResponse(BaseModel):
    id: int
    code: str
    discount_type: str
    discount_value: float
    minimum_order_value: Optional[float] = None
    maximum_discount: Optional[float] = None
    usage_limit_total: Optional[int] = None
    usage_limit_per_customer: Optional[int] = None
    usage_count: int
    target_email: Optional[str] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool

    class Config:
        from_attributes = True
