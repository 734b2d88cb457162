"""
Order API - drafts, order lifecycle, order views
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from clinic_orders.core import get_db
from clinic_orders.schemas import (
    DraftItemAdd, DraftItemUpdate, DraftReplace, OrderItemInput, OrderCreate,
    CompleteOrderRequest, PartialInboundRequest, ConfirmRejectedRequest,
)
from clinic_orders.services import (
    DraftService, OrderService, PartialInboundService, OrderQueryService,
    NotificationPort, ViewCache, format_order, format_rejected,
)
from .deps import (
    get_tenant_id, get_session_id, get_optional_session_id, get_user_id,
    get_view_cache, get_notifier, get_session_factory,
)

order_router = APIRouter(prefix="/order", tags=["Orders"])


def _order_service(db: Session, notifier: NotificationPort, cache: ViewCache) -> OrderService:
    return OrderService(db, notifier=notifier, cache=cache)


# ===================== DRAFT =====================

@order_router.get("/draft")
def get_draft(
    tenant_id: str = Depends(get_tenant_id),
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    service = DraftService(db)
    return service.format_draft(service.get_draft(tenant_id, session_id))


@order_router.post("/draft/items")
def add_draft_item(
    data: DraftItemAdd,
    tenant_id: str = Depends(get_tenant_id),
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    service = DraftService(db)
    draft = service.add_item(tenant_id, session_id, OrderItemInput(**data.model_dump()))
    return service.format_draft(draft)


@order_router.put("/draft/items/{item_id}")
def update_draft_item(
    item_id: str,
    data: DraftItemUpdate,
    tenant_id: str = Depends(get_tenant_id),
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    service = DraftService(db)
    return service.format_draft(service.update_item(tenant_id, session_id, item_id, data.quantity))


@order_router.put("/draft")
def replace_draft(
    data: DraftReplace,
    tenant_id: str = Depends(get_tenant_id),
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    service = DraftService(db)
    return service.format_draft(service.replace_items(tenant_id, session_id, data.items))


@order_router.delete("/draft")
def delete_draft(
    tenant_id: str = Depends(get_tenant_id),
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db),
):
    deleted = DraftService(db).delete_draft(tenant_id, session_id)
    return {"success": True, "deleted": deleted}


# ===================== VIEWS =====================

@order_router.get("/pending-inbound")
def pending_inbound(
    tenant_id: str = Depends(get_tenant_id),
    cache: ViewCache = Depends(get_view_cache),
    session_factory=Depends(get_session_factory),
):
    """Confirmed orders waiting for receipt, grouped by supplier"""
    return OrderQueryService(session_factory, cache).pending_inbound(tenant_id)


@order_router.get("/products")
def order_products(
    search: Optional[str] = None,
    supplier_id: Optional[str] = None,
    risk_level: Optional[str] = Query(None, pattern="^(high|medium|low)$"),
    min_risk_score: Optional[float] = None,
    max_risk_score: Optional[float] = None,
    tenant_id: str = Depends(get_tenant_id),
    cache: ViewCache = Depends(get_view_cache),
    session_factory=Depends(get_session_factory),
):
    """Products ranked by reorder risk"""
    return OrderQueryService(session_factory, cache).order_products(
        tenant_id,
        search=search,
        supplier_id=supplier_id,
        level=risk_level,
        min_score=min_risk_score,
        max_score=max_risk_score,
    )


@order_router.get("/rejected")
def rejected_orders(
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return [format_rejected(row) for row in OrderService.list_rejected(db, tenant_id)]


# ===================== ORDERS =====================

@order_router.post("")
def create_order(
    data: OrderCreate,
    tenant_id: str = Depends(get_tenant_id),
    session_id: Optional[str] = Depends(get_optional_session_id),
    user_id: Optional[str] = Depends(get_user_id),
    db: Session = Depends(get_db),
    notifier: NotificationPort = Depends(get_notifier),
    cache: ViewCache = Depends(get_view_cache),
):
    """Create one order per supplier from the items or the caller's draft"""
    service = _order_service(db, notifier, cache)
    orders = service.create_order(tenant_id, data, session_id=session_id, created_by=user_id)
    return {
        "orders": [format_order(o) for o in orders],
        "notifications": {
            order_no: type(result).__name__.lower()
            for order_no, result in service.notifications.items()
        },
    }


@order_router.get("")
def list_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    orders, total = OrderService.list_orders(
        db, tenant_id, status=status, search=search,
        date_from=date_from, date_to=date_to, page=page, per_page=per_page,
    )
    return {
        "orders": [format_order(o) for o in orders],
        "total": total,
        "page": page,
        "per_page": per_page,
    }


@order_router.post("/partial-inbound")
def partial_inbound(
    data: PartialInboundRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    notifier: NotificationPort = Depends(get_notifier),
    cache: ViewCache = Depends(get_view_cache),
):
    return PartialInboundService(db, notifier=notifier, cache=cache).process(tenant_id, data)


@order_router.get("/{order_id}")
def get_order(
    order_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return format_order(OrderService.get_order(db, tenant_id, order_id))


@order_router.post("/{order_id}/cancel")
def cancel_order(
    order_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    notifier: NotificationPort = Depends(get_notifier),
    cache: ViewCache = Depends(get_view_cache),
):
    order = _order_service(db, notifier, cache).cancel_order(tenant_id, order_id)
    return format_order(order)


@order_router.post("/{order_id}/complete")
def complete_order(
    order_id: UUID,
    data: Optional[CompleteOrderRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    notifier: NotificationPort = Depends(get_notifier),
    cache: ViewCache = Depends(get_view_cache),
):
    order = _order_service(db, notifier, cache).complete_order(tenant_id, order_id, data)
    return format_order(order)


@order_router.post("/{order_id}/confirm-rejected")
def confirm_rejected(
    order_id: UUID,
    data: ConfirmRejectedRequest,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    notifier: NotificationPort = Depends(get_notifier),
    cache: ViewCache = Depends(get_view_cache),
):
    rows = _order_service(db, notifier, cache).confirm_rejected_order(tenant_id, order_id, data)
    return {"success": True, "rejected": [format_rejected(r) for r in rows]}


@order_router.delete("/{order_id}")
def delete_order(
    order_id: UUID,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    notifier: NotificationPort = Depends(get_notifier),
    cache: ViewCache = Depends(get_view_cache),
):
    order_no = _order_service(db, notifier, cache).delete_order(tenant_id, order_id)
    return {"success": True, "order_no": order_no}
