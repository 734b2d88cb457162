"""
Order Return API
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from clinic_orders.core import get_db
from clinic_orders.schemas import ReturnFromInbound, ReturnProcess
from clinic_orders.services import ReturnService, format_return
from .deps import get_tenant_id

return_router = APIRouter(prefix="/order-returns", tags=["Returns"])


@return_router.get("")
def list_returns(
    status: Optional[str] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return [format_return(r) for r in ReturnService(db).list_returns(tenant_id, status=status)]


@return_router.post("/from-inbound")
def create_returns_from_inbound(
    data: ReturnFromInbound,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    rows = ReturnService(db).create_from_inbound(tenant_id, data)
    return {"success": True, "returns": [format_return(r) for r in rows]}


@return_router.post("/{return_id}/process")
def process_return(
    return_id: UUID,
    data: ReturnProcess,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return format_return(ReturnService(db).process_return(tenant_id, return_id, data))
