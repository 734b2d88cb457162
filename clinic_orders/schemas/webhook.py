"""
Supplier Webhook Schemas

The supplier platform posts camelCase (confirmation) and snake_case (split)
bodies; aliases accept both.
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Literal
from datetime import datetime
from decimal import Decimal

# Supplier spellings of the confirmation statuses
CONFIRMATION_STATUS_ALIASES = {
    "confirmed": "supplier_confirmed",
    "supplier_confirmed": "supplier_confirmed",
    "rejected": "rejected",
}


class ItemAdjustment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: str = Field(alias="itemId")
    actual_quantity: Optional[int] = Field(default=None, alias="actualQuantity", ge=0)
    actual_price: Optional[Decimal] = Field(default=None, alias="actualPrice", ge=0)
    quantity_change_reason: Optional[str] = Field(default=None, alias="quantityChangeReason")
    quantity_change_note: Optional[str] = Field(default=None, alias="quantityChangeNote")
    price_change_reason: Optional[str] = Field(default=None, alias="priceChangeReason")
    price_change_note: Optional[str] = Field(default=None, alias="priceChangeNote")
    rejection_reason: Optional[str] = Field(default=None, alias="rejectionReason")


class RemoteItemSnapshot(BaseModel):
    """The supplier's denormalized copy of one order line"""
    model_config = ConfigDict(populate_by_name=True)

    item_id: Optional[str] = Field(default=None, alias="itemId")
    product_id: Optional[str] = Field(default=None, alias="productId")
    product_name: Optional[str] = Field(default=None, alias="productName")
    brand: Optional[str] = None
    quantity: int = 0
    unit_price: Decimal = Field(default=Decimal("0"), alias="unitPrice")
    total_price: Optional[Decimal] = Field(default=None, alias="totalPrice")
    memo: Optional[str] = None


class SupplierConfirmationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_no: str = Field(alias="orderNo")
    tenant_id: str = Field(alias="clinicTenantId")
    status: str
    confirmed_at: Optional[datetime] = Field(default=None, alias="confirmedAt")
    adjustments: List[ItemAdjustment] = []
    updated_items: List[RemoteItemSnapshot] = Field(default_factory=list, alias="updatedItems")
    total_amount: Optional[Decimal] = Field(default=None, alias="totalAmount")
    memo: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _v_status(cls, v):
        # unknown statuses pass through and are rejected by the reconciler
        key = v.strip().lower()
        return CONFIRMATION_STATUS_ALIASES.get(key, key)


class SplitOrderPart(BaseModel):
    order_no: str
    status: str
    total_amount: Optional[Decimal] = None
    items: List[RemoteItemSnapshot] = []


class OrderSplitPayload(BaseModel):
    type: Literal["order_split"] = "order_split"
    original_order_no: str
    tenant_id: str = Field(alias="clinic_tenant_id")
    orders: List[SplitOrderPart] = Field(min_length=2, max_length=2)

    model_config = ConfigDict(populate_by_name=True)


class ReturnCompletionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    return_no: str = Field(alias="returnNo")
    tenant_id: Optional[str] = Field(default=None, alias="clinicTenantId")
    item_id: Optional[str] = Field(default=None, alias="itemId")
    status: str
