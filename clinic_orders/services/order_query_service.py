"""
Order Query Service - cached read views

pending_inbound   confirmed orders waiting for receipt, grouped by supplier
order_products    active products ranked by reorder risk

    SR = current_stock / min_stock      (0 when min_stock is 0)
    ER = remaining shelf life share of the earliest-expiring batch
         (manufacture..expiry span, 365 days when unknown; 1 without expiry)
    R  = alpha * (1 - SR) + beta * (1 - ER)
    high >= 0.7, medium >= 0.4, low otherwise
"""
from datetime import date
from typing import Callable, Dict, List, Optional
import logging

from sqlalchemy.orm import Session, sessionmaker

from clinic_orders.core.config import settings
from clinic_orders.models import Batch, Order, OrderStatus, Product
from .order_service import format_order
from .stock_service import StockService
from .view_cache import CacheView, ViewCache

logger = logging.getLogger(__name__)

DEFAULT_SHELF_LIFE_DAYS = 365


def risk_level(score: float) -> str:
    if score >= 0.7:
        return "high"
    if score >= 0.4:
        return "medium"
    return "low"


def expiry_ratio(batch: Optional[Batch], today: date) -> float:
    if batch is None or batch.expiry_date is None:
        return 1.0
    days_left = (batch.expiry_date - today).days
    total_days = DEFAULT_SHELF_LIFE_DAYS
    if batch.manufacture_date is not None:
        span = (batch.expiry_date - batch.manufacture_date).days
        if span > 0:
            total_days = span
    return max(0.0, min(1.0, days_left / total_days))


class OrderQueryService:

    def __init__(
        self,
        session_factory: sessionmaker,
        cache: ViewCache,
        today: Callable[[], date] = date.today,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.today = today

    # ========== Loaders (own session) ==========

    def _load_pending_inbound(self, tenant_id: str) -> List[Dict]:
        db: Session = self.session_factory()
        try:
            orders = db.query(Order).filter(
                Order.tenant_id == tenant_id,
                Order.status == OrderStatus.SUPPLIER_CONFIRMED.value,
            ).order_by(Order.confirmed_at.asc(), Order.created_at.asc()).all()

            groups: Dict[str, Dict] = {}
            for order in orders:
                contact = order.supplier_contact
                key = str(order.supplier_contact_id) if order.supplier_contact_id else "unknown"
                group = groups.setdefault(key, {
                    "supplier_id": key,
                    "supplier_name": contact.company_name if contact else None,
                    "manager_name": contact.manager_name if contact else None,
                    "orders": [],
                    "total_amount": 0.0,
                })
                group["orders"].append(format_order(order))
                group["total_amount"] += float(order.total_amount or 0)
            return list(groups.values())
        finally:
            db.close()

    def _load_order_products(self, tenant_id: str) -> List[Dict]:
        db: Session = self.session_factory()
        try:
            today = self.today()
            products = db.query(Product).filter(
                Product.tenant_id == tenant_id,
                Product.is_active == True,
            ).order_by(Product.created_at.desc()).all()

            rows = []
            for product in products:
                batches = StockService.get_fefo_batches(db, tenant_id, product.id)
                first_batch = batches[0] if batches else None
                link = product.supplier_links[0] if product.supplier_links else None
                contact = link.supplier_contact if link else None

                safe_stock = product.min_stock or 0
                stock_ratio = product.current_stock / safe_stock if safe_stock > 0 else 0.0
                exp_ratio = expiry_ratio(first_batch, today)
                score = settings.ORDER_RISK_ALPHA * (1 - stock_ratio) + settings.ORDER_RISK_BETA * (1 - exp_ratio)

                unit_price = None
                if link and link.purchase_price is not None:
                    unit_price = float(link.purchase_price)
                elif product.purchase_price is not None:
                    unit_price = float(product.purchase_price)

                rows.append({
                    "id": str(product.id),
                    "product_name": product.name,
                    "brand": product.brand,
                    "supplier_id": str(contact.id) if contact else None,
                    "supplier_name": contact.company_name if contact else None,
                    "batch_no": first_batch.batch_no if first_batch else None,
                    "expiry_date": first_batch.expiry_date.isoformat() if first_batch and first_batch.expiry_date else None,
                    "unit_price": unit_price,
                    "current_stock": product.current_stock,
                    "min_stock": product.min_stock,
                    "stock_ratio": stock_ratio,
                    "expiry_ratio": exp_ratio,
                    "risk_score": score,
                    "risk_level": risk_level(score),
                    "batches": [
                        {
                            "id": str(b.id),
                            "batch_no": b.batch_no,
                            "expiry_date": b.expiry_date.isoformat() if b.expiry_date else None,
                            "qty": b.qty,
                            "purchase_price": float(b.purchase_price) if b.purchase_price is not None else None,
                        }
                        for b in batches
                    ],
                })

            rows.sort(key=lambda r: r["risk_score"], reverse=True)
            return rows
        finally:
            db.close()

    # ========== Views ==========

    def pending_inbound(self, tenant_id: str) -> List[Dict]:
        return self.cache.get(tenant_id, CacheView.PENDING_INBOUND, lambda: self._load_pending_inbound(tenant_id))

    def order_products(
        self,
        tenant_id: str,
        search: Optional[str] = None,
        supplier_id: Optional[str] = None,
        level: Optional[str] = None,
        min_score: Optional[float] = None,
        max_score: Optional[float] = None,
    ) -> List[Dict]:
        """Risk-ranked products; filters apply to the cached list"""
        rows = self.cache.get(tenant_id, CacheView.ORDER_PRODUCTS, lambda: self._load_order_products(tenant_id))

        if search:
            term = search.lower()
            rows = [
                r for r in rows
                if term in (r["product_name"] or "").lower()
                or term in (r["brand"] or "").lower()
                or term in (r["supplier_name"] or "").lower()
            ]
        if supplier_id:
            rows = [r for r in rows if r["supplier_id"] == supplier_id]
        if level:
            rows = [r for r in rows if r["risk_level"] == level]
        if min_score is not None:
            rows = [r for r in rows if r["risk_score"] >= min_score]
        if max_score is not None:
            rows = [r for r in rows if r["risk_score"] <= max_score]
        return rows
