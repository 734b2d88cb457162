"""
Reconciliation Service - apply supplier callbacks to local orders

Two callbacks arrive from the supplier platform:
  - confirmation: status change plus per-item quantity/price adjustments
  - order split: the supplier split one order into two

Both are idempotent. Adjusted values are set, never added, so a redelivered
payload leaves the order exactly as the first delivery did.
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from clinic_orders.core.database import run_in_transaction
from clinic_orders.core.exceptions import ValidationError, NotFoundError
from clinic_orders.models import Order, OrderItem, OrderStatus, TERMINAL_STATUSES, utcnow, to_naive_utc
from clinic_orders.schemas import SupplierConfirmationPayload, OrderSplitPayload
from .item_matching import ItemMatcher
from .order_service import OrderService
from .view_cache import ViewCache

logger = logging.getLogger(__name__)

S = OrderStatus

CONFIRMATION_STATUSES = (S.SUPPLIER_CONFIRMED.value, S.REJECTED.value)

SPLIT_STATUS_MAP = {
    "pending": S.PENDING.value,
    "confirmed": S.SUPPLIER_CONFIRMED.value,
    "supplier_confirmed": S.SUPPLIER_CONFIRMED.value,
    "rejected": S.REJECTED.value,
}


class ReconciliationService:

    def __init__(self, db: Session, cache: Optional[ViewCache] = None, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.cache = cache
        self.clock = clock

    def _invalidate(self, tenant_id: str):
        if self.cache is not None:
            self.cache.invalidate(tenant_id)

    @staticmethod
    def _load(db: Session, tenant_id: str, order_no: str) -> Order:
        order = OrderService.get_order_by_no(db, tenant_id, order_no, lock=True)
        if order is None:
            raise NotFoundError(f"Order {order_no} not found")
        return order

    # ========== Confirmation ==========

    def apply_confirmation(self, payload: SupplierConfirmationPayload) -> Dict:
        """
        Apply a supplier confirmation or rejection.

        A callback for an order that is already terminal locally
        (completed, cancelled, archived, confirmed_rejected) is ignored.
        """
        if payload.status not in CONFIRMATION_STATUSES:
            raise ValidationError(f"Unsupported supplier status: {payload.status}")

        def work(db: Session) -> Dict:
            order = self._load(db, payload.tenant_id, payload.order_no)

            if order.status in TERMINAL_STATUSES:
                logger.info(f"[SKIP] Order {order.order_no} is {order.status}, supplier {payload.status} ignored")
                return {
                    "success": False,
                    "ignored": True,
                    "orderId": str(order.id),
                    "message": f"Order {order.order_no} is already {order.status}",
                }

            OrderService.ensure_transition(order, payload.status)
            order.status = payload.status

            matcher = ItemMatcher(order.items, payload.updated_items)
            unmatched: List[str] = []
            for adjustment in payload.adjustments:
                result = matcher.match(adjustment.item_id)
                if not result.matched:
                    unmatched.append(adjustment.item_id)
                    continue

                item: OrderItem = result.item
                if payload.status == S.REJECTED.value:
                    # rejection only annotates; ordered quantity and price stay
                    if adjustment.rejection_reason:
                        item.memo = adjustment.rejection_reason
                    continue

                if adjustment.actual_quantity is not None:
                    item.quantity = adjustment.actual_quantity
                if adjustment.actual_price is not None:
                    item.unit_price = adjustment.actual_price
                item.recompute_total()
                if adjustment.rejection_reason:
                    item.memo = adjustment.rejection_reason
                logger.debug(f"Item {item.id} matched by {result.tier}: qty={item.quantity} price={item.unit_price}")

            if payload.status == S.SUPPLIER_CONFIRMED.value:
                order.confirmed_at = to_naive_utc(payload.confirmed_at) or order.confirmed_at or self.clock()

            if payload.total_amount is not None:
                order.total_amount = payload.total_amount
            else:
                order.total_amount = sum((Decimal(i.total_price or 0) for i in order.items), Decimal("0"))

            if payload.memo and payload.status == S.REJECTED.value:
                order.memo = payload.memo

            order.supplier_adjustments = {
                "status": payload.status,
                "adjustments": [a.model_dump(mode="json", by_alias=True) for a in payload.adjustments],
                "updatedItems": [i.model_dump(mode="json", by_alias=True) for i in payload.updated_items],
                "unmatched": unmatched,
            }

            return {
                "success": True,
                "orderId": str(order.id),
                "status": order.status,
                "unmatched": unmatched,
            }

        result = run_in_transaction(self.db, work, label="apply_confirmation")
        if result["success"]:
            logger.info(f"[OK] Order {payload.order_no} -> {payload.status}")
            self._invalidate(payload.tenant_id)
        return result

    # ========== Order split ==========

    def apply_split(self, payload: OrderSplitPayload) -> Dict:
        """Replace the original order with the supplier's two derivative orders"""
        statuses = {}
        for part in payload.orders:
            status = SPLIT_STATUS_MAP.get(part.status)
            if status is None:
                raise ValidationError(f"Unsupported split order status: {part.status}")
            statuses[part.order_no] = status

        def work(db: Session) -> Dict:
            original = self._load(db, payload.tenant_id, payload.original_order_no)
            existing = {
                part.order_no: OrderService.get_order_by_no(db, payload.tenant_id, part.order_no)
                for part in payload.orders
            }

            if original.status == S.ARCHIVED.value and all(existing.values()):
                logger.info(f"[SKIP] Order {original.order_no} already split")
                return {
                    "success": True,
                    "message": "Order already split",
                    "orderIds": [str(o.id) for o in existing.values()],
                }
            if original.status in TERMINAL_STATUSES:
                return {
                    "success": False,
                    "ignored": True,
                    "message": f"Order {original.order_no} is already {original.status}",
                }

            OrderService.ensure_transition(original, S.ARCHIVED.value)

            derived = []
            for part in payload.orders:
                if existing[part.order_no] is not None:
                    derived.append(existing[part.order_no])
                    continue

                # Each part may take a share of the same original line
                matcher = ItemMatcher(original.items)
                status = statuses[part.order_no]
                order = Order(
                    tenant_id=original.tenant_id,
                    order_no=part.order_no,
                    status=status,
                    supplier_contact_id=original.supplier_contact_id,
                    confirmed_at=self.clock() if status == S.SUPPLIER_CONFIRMED.value else None,
                    expected_delivery_date=original.expected_delivery_date,
                    created_by=original.created_by,
                )
                for position, snapshot in enumerate(part.items):
                    result = matcher.match(snapshot.item_id or "", snapshot=snapshot)
                    if not result.matched:
                        continue
                    local = result.item
                    item = OrderItem(
                        tenant_id=original.tenant_id,
                        product_id=local.product_id,
                        batch_id=local.batch_id,
                        position=position,
                        quantity=snapshot.quantity,
                        unit_price=snapshot.unit_price,
                        memo=snapshot.memo,
                    )
                    item.recompute_total()
                    order.items.append(item)

                if not order.items:
                    raise ValidationError(f"No item of split order {part.order_no} matches {original.order_no}")

                if part.total_amount is not None:
                    order.total_amount = part.total_amount
                else:
                    order.total_amount = sum((i.total_price for i in order.items), Decimal("0"))
                db.add(order)
                derived.append(order)

            original.status = S.ARCHIVED.value
            original.memo = f"Split into {', '.join(p.order_no for p in payload.orders)}"
            db.flush()

            return {
                "success": True,
                "message": "Order split applied",
                "orderIds": [str(o.id) for o in derived],
            }

        result = run_in_transaction(self.db, work, label="apply_split")
        if result["success"]:
            logger.info(f"[OK] Order {payload.original_order_no} split into {[p.order_no for p in payload.orders]}")
            self._invalidate(payload.tenant_id)
        return result
