"""
Outbound API - dispensing stock
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import datetime

from clinic_orders.core import get_db
from clinic_orders.schemas import (
    OutboundCreate, BulkOutboundCreate, PackageOutboundCreate, UnifiedOutboundCreate, OutboundCancel,
)
from clinic_orders.services import OutboundService, ViewCache, format_outbound
from .deps import get_tenant_id, get_user_id, get_view_cache

outbound_router = APIRouter(prefix="/outbound", tags=["Outbound"])


@outbound_router.post("")
def create_outbound(
    data: OutboundCreate,
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
    cache: ViewCache = Depends(get_view_cache),
):
    record = OutboundService(db, cache=cache).create_outbound(tenant_id, data, created_by=user_id)
    return format_outbound(record)


@outbound_router.post("/bulk")
def create_bulk_outbound(
    data: BulkOutboundCreate,
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
    cache: ViewCache = Depends(get_view_cache),
):
    records = OutboundService(db, cache=cache).create_bulk_outbound(tenant_id, data, created_by=user_id)
    return {"success": True, "count": len(records), "outbounds": [format_outbound(r) for r in records]}


@outbound_router.post("/package")
def create_package_outbound(
    data: PackageOutboundCreate,
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
    cache: ViewCache = Depends(get_view_cache),
):
    records = OutboundService(db, cache=cache).create_package_outbound(tenant_id, data, created_by=user_id)
    return {"success": True, "count": len(records), "outbounds": [format_outbound(r) for r in records]}


@outbound_router.post("/unified")
def create_unified_outbound(
    data: UnifiedOutboundCreate,
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
    cache: ViewCache = Depends(get_view_cache),
):
    """Per-line outbound; failed lines are reported, not raised"""
    return OutboundService(db, cache=cache).create_unified_outbound(tenant_id, data, created_by=user_id)


@outbound_router.get("/history")
def outbound_history(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    product_id: Optional[UUID] = None,
    package_id: Optional[UUID] = None,
    manager_name: Optional[str] = None,
    outbound_type: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=200),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    records, total = OutboundService(db).get_history(
        tenant_id,
        start_date=start_date,
        end_date=end_date,
        product_id=product_id,
        package_id=package_id,
        manager_name=manager_name,
        outbound_type=outbound_type,
        search=search,
        page=page,
        per_page=per_page,
    )
    return {
        "items": [format_outbound(r) for r in records],
        "total": total,
        "page": page,
        "per_page": per_page,
        "total_pages": (total + per_page - 1) // per_page,
    }


@outbound_router.delete("/cancel")
def cancel_outbound(
    outbound_timestamp: datetime,
    manager_name: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: ViewCache = Depends(get_view_cache),
):
    """Undo one outbound submission (same manager, within 2 seconds)"""
    data = OutboundCancel(outbound_timestamp=outbound_timestamp, manager_name=manager_name)
    result = OutboundService(db, cache=cache).cancel_by_timestamp(tenant_id, data)
    return {"success": True, **result}


@outbound_router.get("/{outbound_id}")
def get_outbound(
    outbound_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return format_outbound(OutboundService(db).get_outbound(tenant_id, outbound_id))
