"""
Return (RMA) schemas
"""
from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, field_validator

from app.schemas.checkout import normalize_email


class ReturnLineRequest(BaseModel):
    order_item_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    # Ignored: refunds are priced from the persisted order line
    price: Optional[float] = None


class ReturnCreateRequest(BaseModel):
    order_id: int = Field(..., gt=0)
    email: str = Field(..., min_length=3, max_length=255)
    reason: Literal["not_liked", "defective", "wrong_item", "other"]
    description: Optional[str] = Field(None, max_length=2000)
    items: Optional[List[ReturnLineRequest]] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)


class ReturnStatusUpdate(BaseModel):
    status: Literal["approved", "rejected", "received", "completed", "cancelled"]
    admin_notes: Optional[str] = Field(None, max_length=2000)


class ReturnItemResponse(BaseModel):
    id: int
    order_item_id: int
    product_id: Optional[int]
    product_name: str
    quantity: int
    price: float

    class Config:
        from_attributes = True


class ReturnResponse(BaseModel):
    id: int
    return_number: str
    order_id: int
    reason: str
    description: Optional[str] = None
    status: str
    refund_amount: float
    refund_status: str
    admin_notes: Optional[str] = None
    items: List[ReturnItemResponse] = []
    created_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
