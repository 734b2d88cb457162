"""
Order & Draft Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date
from uuid import UUID
from decimal import Decimal

class DraftItemAdd(BaseModel):
    product_id: UUID
    batch_id: Optional[UUID] = None
    quantity: int = Field(gt=0)
    unit_price: Optional[Decimal] = None
    memo: Optional[str] = None

class DraftItemUpdate(BaseModel):
    quantity: int = Field(ge=0)  # 0 removes the item

class OrderItemInput(BaseModel):
    product_id: UUID
    batch_id: Optional[UUID] = None
    quantity: int = Field(gt=0)
    unit_price: Optional[Decimal] = None
    memo: Optional[str] = None

class DraftReplace(BaseModel):
    items: List[OrderItemInput] = []

class OrderCreate(BaseModel):
    # None -> take the items of the caller's draft
    items: Optional[List[OrderItemInput]] = None
    expected_delivery_date: Optional[date] = None
    memo: Optional[str] = None

class InboundItem(BaseModel):
    item_id: UUID
    inbound_qty: int = Field(ge=0)
    batch_no: Optional[str] = None
    expiry_date: Optional[date] = None
    storage: Optional[str] = None

class CompleteOrderRequest(BaseModel):
    # None -> every line received in full
    items: Optional[List[InboundItem]] = None
    inbound_manager: Optional[str] = None

class PartialInboundRequest(BaseModel):
    order_id: UUID
    inbounded_items: List[InboundItem]
    inbound_manager: Optional[str] = None

class RejectedItemInput(BaseModel):
    product_name: str
    product_brand: Optional[str] = None
    qty: int = Field(ge=0)

class ConfirmRejectedRequest(BaseModel):
    member_name: str
    # Empty -> one history line per order item
    items: List[RejectedItemInput] = []
