"""
Order Draft Store - one cart per (tenant, session), rolling expiry
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from clinic_orders.core.config import settings
from clinic_orders.core.exceptions import ValidationError, NotFoundError
from clinic_orders.models import OrderDraft, Product, ProductSupplier, utcnow
from clinic_orders.schemas import OrderItemInput
from .order_splitter import SplitLine, OrderSplitter, UNKNOWN_SUPPLIER
from .stock_service import StockService

logger = logging.getLogger(__name__)


def draft_item_id(product_id, batch_id=None) -> str:
    """productId, or productId-batchId when a batch is pinned"""
    return f"{product_id}-{batch_id}" if batch_id else str(product_id)


def draft_lines(draft: OrderDraft) -> List[SplitLine]:
    return [
        SplitLine(
            product_id=UUID(item["product_id"]),
            batch_id=UUID(item["batch_id"]) if item.get("batch_id") else None,
            quantity=int(item["quantity"]),
            unit_price=Decimal(str(item["unit_price"])),
            memo=item.get("memo"),
        )
        for item in (draft.items or [])
    ]


class DraftService:

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    # ========== Lookup ==========

    def find_draft(self, tenant_id: str, session_id: str) -> Optional[OrderDraft]:
        return self.db.query(OrderDraft).filter(
            OrderDraft.tenant_id == tenant_id,
            OrderDraft.session_id == session_id,
        ).first()

    def _touch(self, draft: OrderDraft):
        draft.expires_at = self.clock() + timedelta(hours=settings.DRAFT_EXPIRY_HOURS)

    def _reset(self, draft: OrderDraft):
        draft.items = []
        draft.total_amount = Decimal("0")
        self._touch(draft)

    def _load(self, tenant_id: str, session_id: str, create: bool = True) -> Optional[OrderDraft]:
        """Current draft; an expired one comes back emptied"""
        if not tenant_id or not session_id:
            raise ValidationError("Tenant and session are required")

        draft = self.find_draft(tenant_id, session_id)
        if draft is None:
            if not create:
                return None
            draft = OrderDraft(tenant_id=tenant_id, session_id=session_id)
            self._reset(draft)
            self.db.add(draft)
        elif draft.expires_at <= self.clock():
            logger.info(f"[SKIP] Draft {tenant_id}/{session_id} expired, starting empty")
            self._reset(draft)
        return draft

    def get_draft(self, tenant_id: str, session_id: str) -> OrderDraft:
        draft = self._load(tenant_id, session_id)
        self.db.commit()
        return draft

    # ========== Mutations ==========

    def resolve_unit_price(self, tenant_id: str, product: Product, batch_id: Optional[UUID]) -> Decimal:
        """Supplier link price, then batch price, then product price"""
        link = self.db.query(ProductSupplier).filter(
            ProductSupplier.tenant_id == tenant_id,
            ProductSupplier.product_id == product.id,
        ).order_by(ProductSupplier.created_at.desc()).first()
        if link and link.purchase_price is not None:
            return Decimal(link.purchase_price)

        if batch_id:
            batch = StockService.get_batch(self.db, tenant_id, batch_id, product_id=product.id)
            if batch.purchase_price is not None:
                return Decimal(batch.purchase_price)

        return Decimal(product.purchase_price or 0)

    def _build_item(self, tenant_id: str, data: OrderItemInput) -> Dict:
        product = StockService.get_product(self.db, tenant_id, data.product_id)
        if data.batch_id:
            StockService.get_batch(self.db, tenant_id, data.batch_id, product_id=product.id)

        unit_price = data.unit_price if data.unit_price is not None else self.resolve_unit_price(tenant_id, product, data.batch_id)
        unit_price = Decimal(unit_price)
        return {
            "id": draft_item_id(product.id, data.batch_id),
            "product_id": str(product.id),
            "batch_id": str(data.batch_id) if data.batch_id else None,
            "product_name": product.name,
            "brand": product.brand,
            "quantity": data.quantity,
            "unit_price": str(unit_price),
            "total_price": str(unit_price * data.quantity),
            "memo": data.memo,
        }

    def _store(self, draft: OrderDraft, items: List[Dict]):
        # Assign a new list so the JSON column sees the change
        draft.items = list(items)
        draft.total_amount = sum((Decimal(i["total_price"]) for i in items), Decimal("0"))
        self._touch(draft)

    def add_item(self, tenant_id: str, session_id: str, data: OrderItemInput) -> OrderDraft:
        """
        Add a line. A line with the same product/batch is replaced, so the
        last quantity wins rather than accumulating.
        """
        if data.quantity <= 0:
            raise ValidationError("Quantity must be positive")

        draft = self._load(tenant_id, session_id)
        new_item = self._build_item(tenant_id, data)

        items = [i for i in (draft.items or []) if i["id"] != new_item["id"]]
        replaced = len(items) != len(draft.items or [])
        items.append(new_item)
        self._store(draft, items)
        self.db.commit()

        logger.info(f"[OK] Draft {session_id}: {'set' if replaced else 'added'} {new_item['id']} x{data.quantity}")
        return draft

    def update_item(self, tenant_id: str, session_id: str, item_id: str, quantity: int) -> OrderDraft:
        """Set a line's quantity; 0 removes it"""
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")

        draft = self._load(tenant_id, session_id, create=False)
        if draft is None:
            raise NotFoundError("Draft not found")

        items = [dict(i) for i in (draft.items or [])]
        target = next((i for i in items if i["id"] == item_id), None)
        if target is None:
            self.db.commit()
            raise NotFoundError(f"Draft item {item_id} not found")

        if quantity == 0:
            items.remove(target)
        else:
            target["quantity"] = quantity
            target["total_price"] = str(Decimal(target["unit_price"]) * quantity)

        self._store(draft, items)
        self.db.commit()
        return draft

    def replace_items(self, tenant_id: str, session_id: str, lines: List[OrderItemInput]) -> OrderDraft:
        """Replace the whole cart; duplicate product/batch lines keep the last one"""
        draft = self._load(tenant_id, session_id)
        merged: Dict[str, Dict] = {}
        for line in lines:
            if line.quantity <= 0:
                raise ValidationError("Quantity must be positive")
            item = self._build_item(tenant_id, line)
            merged.pop(item["id"], None)
            merged[item["id"]] = item

        self._store(draft, list(merged.values()))
        self.db.commit()
        return draft

    def delete_draft(self, tenant_id: str, session_id: str) -> bool:
        draft = self.find_draft(tenant_id, session_id)
        if draft is None:
            return False
        self.db.delete(draft)
        self.db.commit()
        return True

    def purge_expired(self) -> int:
        """Delete every expired draft (maintenance job)"""
        count = self.db.query(OrderDraft).filter(OrderDraft.expires_at <= self.clock()).delete(
            synchronize_session=False
        )
        self.db.commit()
        return count

    # ========== Formatting ==========

    def format_draft(self, draft: OrderDraft) -> Dict:
        """Draft plus its items grouped the way they would split into orders"""
        groups = OrderSplitter(self.db).split(draft.tenant_id, draft_lines(draft))

        items_by_id = {i["id"]: i for i in (draft.items or [])}
        grouped = []
        for group in groups:
            contact = group.supplier_contact
            grouped.append({
                "supplier_id": group.supplier_key,
                "supplier_name": contact.company_name if contact else None,
                "manager_name": contact.manager_name if contact else None,
                "is_platform_linked": group.is_platform_linked,
                "items": [
                    _format_item(items_by_id[draft_item_id(line.product_id, line.batch_id)])
                    for line in group.lines
                ],
                "total_amount": float(group.sub_total),
            })

        return {
            "id": str(draft.id),
            "session_id": draft.session_id,
            "items": [_format_item(i) for i in (draft.items or [])],
            "total_amount": float(draft.total_amount or 0),
            "expires_at": draft.expires_at.isoformat() if draft.expires_at else None,
            "grouped_by_supplier": grouped,
            "has_unknown_supplier": any(g.supplier_key == UNKNOWN_SUPPLIER for g in groups),
        }


def _format_item(item: Dict) -> Dict:
    return {
        "id": item["id"],
        "product_id": item["product_id"],
        "batch_id": item.get("batch_id"),
        "product_name": item.get("product_name"),
        "brand": item.get("brand"),
        "quantity": item["quantity"],
        "unit_price": float(item["unit_price"]),
        "total_price": float(item["total_price"]),
        "memo": item.get("memo"),
    }
