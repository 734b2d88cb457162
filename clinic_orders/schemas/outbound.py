"""
Outbound & Return Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from clinic_orders.models.outbound import OutboundType

class OutboundCreate(BaseModel):
    product_id: UUID
    batch_id: UUID
    outbound_qty: int
    manager_name: str
    patient_name: Optional[str] = None
    chart_number: Optional[str] = None
    memo: Optional[str] = None
    is_damaged: bool = False
    is_defective: bool = False

class BulkOutboundCreate(BaseModel):
    items: List[OutboundCreate]

class OutboundLine(BaseModel):
    product_id: UUID
    batch_id: UUID
    outbound_qty: int
    package_id: Optional[UUID] = None
    package_qty: Optional[int] = Field(default=None, ge=1)

class PackageOutboundCreate(BaseModel):
    package_id: Optional[UUID] = None
    package_qty: int = Field(default=1, ge=1)
    manager_name: str
    patient_name: Optional[str] = None
    chart_number: Optional[str] = None
    memo: Optional[str] = None
    items: List[OutboundLine]

class UnifiedOutboundCreate(BaseModel):
    outbound_type: OutboundType
    manager_name: str
    patient_name: Optional[str] = None
    chart_number: Optional[str] = None
    memo: Optional[str] = None
    is_damaged: bool = False
    is_defective: bool = False
    items: List[OutboundLine]

class OutboundCancel(BaseModel):
    outbound_timestamp: datetime
    manager_name: str

class ReturnFromInboundItem(BaseModel):
    item_id: UUID
    return_quantity: int = Field(gt=0)
    memo: Optional[str] = None

class ReturnFromInbound(BaseModel):
    order_id: UUID
    items: List[ReturnFromInboundItem]

class ReturnProcess(BaseModel):
    return_manager: Optional[str] = None
    memo: Optional[str] = None
    images: List[str] = []
