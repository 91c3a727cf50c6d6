"""
Cart schemas
"""
from typing import List
from pydantic import BaseModel, Field


class CartLine(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1, le=100)


class CartSyncRequest(BaseModel):
    items: List[CartLine]


class CartItemResponse(BaseModel):
    product_id: int
    name: str
    price: float
    quantity: int
    stock: int


class CartResponse(BaseModel):
    items: List[CartItemResponse]
    subtotal: float
    item_count: int
