"""
Invoice schemas
"""
from typing import Optional, Literal
from pydantic import BaseModel, Field, model_validator


class InvoiceGenerateRequest(BaseModel):
    type: Literal["purchase", "return"]
    order_id: Optional[int] = Field(None, gt=0)
    return_id: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def require_target(self):
        if self.type == "purchase" and not self.order_id:
            raise ValueError("order_id is required for purchase invoices")
        if self.type == "return" and not self.return_id:
            raise ValueError("return_id is required for credit notes")
        return self


class InvoiceResultResponse(BaseModel):
    success: bool
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None
    error: Optional[str] = None
