"""
Order schemas
"""
from datetime import datetime
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field


class OrderItemResponse(BaseModel):
    id: int
    product_id: Optional[int]
    product_name: str
    price: float
    quantity: int

    class Config:
        from_attributes = True


class OrderTrackingResponse(BaseModel):
    id: int
    order_number: str
    status: str
    payment_status: str
    subtotal: float
    shipping_cost: float
    discount_amount: float
    total: float
    refund_amount: Optional[float] = None
    currency: str
    shipping_option: str
    shipping_address: Optional[Dict[str, Any]] = None
    tracking_number: Optional[str] = None
    items: List[OrderItemResponse] = []
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderStatusUpdate(BaseModel):
    status: Literal["shipped", "delivered", "cancelled"]
    tracking_number: Optional[str] = Field(None, max_length=100)


class WebhookLogResponse(BaseModel):
    id: int
    event_id: str
    event_type: str
    status: str
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
