"""
Partial Inbound Service - receive part of a confirmed order

The original order is archived and replaced by up to two derivatives:
    <no>-C  completed, the received lines at received quantities
    <no>-P  supplier_confirmed, the remaining quantities (only if any remain)
Received quantities become batches in the same transaction.
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from clinic_orders.core.database import run_in_transaction
from clinic_orders.core.exceptions import ValidationError, ConflictError
from clinic_orders.models import Order, OrderItem, OrderStatus, utcnow
from clinic_orders.schemas import PartialInboundRequest
from .notification_service import NotificationPort, dispatch_notification
from .order_number import OrderNumber, OrderVariant
from .order_service import OrderService, format_order
from .stock_service import StockService
from .view_cache import ViewCache

logger = logging.getLogger(__name__)

S = OrderStatus


def _copy_line(item: OrderItem, quantity: int, position: int) -> OrderItem:
    line = OrderItem(
        tenant_id=item.tenant_id,
        product_id=item.product_id,
        batch_id=item.batch_id,
        position=position,
        quantity=quantity,
        unit_price=item.unit_price,
        memo=item.memo,
    )
    line.recompute_total()
    return line


def _derived_order(original: Order, order_no: str, status: str, lines: List[OrderItem]) -> Order:
    order = Order(
        tenant_id=original.tenant_id,
        order_no=order_no,
        status=status,
        supplier_contact_id=original.supplier_contact_id,
        confirmed_at=original.confirmed_at,
        expected_delivery_date=original.expected_delivery_date,
        supplier_adjustments=original.supplier_adjustments,
        memo=original.memo,
        created_by=original.created_by,
    )
    order.items.extend(lines)
    order.total_amount = sum((line.total_price for line in lines), Decimal("0"))
    return order


class PartialInboundService:

    def __init__(
        self,
        db: Session,
        notifier: NotificationPort,
        cache: Optional[ViewCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.notifier = notifier
        self.cache = cache
        self.clock = clock

    def process(self, tenant_id: str, data: PartialInboundRequest) -> Dict:
        received: Dict[str, int] = {}

        def work(db: Session) -> Dict:
            received.clear()
            original = OrderService.get_order(db, tenant_id, data.order_id, lock=True)
            if original.status != S.SUPPLIER_CONFIRMED.value:
                raise ConflictError(f"Order {original.order_no} is {original.status}; only confirmed orders can be received")

            inbound = {str(i.item_id): i for i in data.inbounded_items}
            unknown = set(inbound) - {str(item.id) for item in original.items}
            if unknown:
                raise ValidationError(f"Items {sorted(unknown)} are not part of order {original.order_no}")
            if not any(i.inbound_qty > 0 for i in data.inbounded_items):
                raise ValidationError("Nothing was received")

            number = OrderNumber.parse(original.order_no)
            completed_lines: List[OrderItem] = []
            remaining_lines: List[OrderItem] = []

            for item in original.items:
                line_in = inbound.get(str(item.id))
                qty = line_in.inbound_qty if line_in else 0
                if qty > item.quantity:
                    logger.warning(f"Item {item.id}: received {qty} of {item.quantity}, recording {item.quantity}")
                    qty = item.quantity

                if qty > 0:
                    completed_lines.append(_copy_line(item, qty, len(completed_lines)))
                    StockService.receive(
                        db, tenant_id, item.product_id, qty,
                        order_no=str(number.derive(OrderVariant.COMPLETED)),
                        batch_no=line_in.batch_no,
                        expiry_date=line_in.expiry_date,
                        storage=line_in.storage,
                        purchase_price=item.unit_price,
                    )
                    received[str(item.id)] = qty
                if qty < item.quantity:
                    remaining_lines.append(_copy_line(item, item.quantity - qty, len(remaining_lines)))

            completed = _derived_order(
                original, str(number.derive(OrderVariant.COMPLETED)), S.COMPLETED.value, completed_lines,
            )
            completed.completed_at = self.clock()
            completed.inbound_manager = data.inbound_manager
            db.add(completed)

            remaining = None
            if remaining_lines:
                remaining = _derived_order(
                    original, str(number.derive(OrderVariant.PENDING)), S.SUPPLIER_CONFIRMED.value, remaining_lines,
                )
                db.add(remaining)

            for product_id in {line.product_id for line in completed_lines}:
                StockService.recompute_product_stock(db, tenant_id, product_id)

            OrderService.ensure_transition(original, S.ARCHIVED.value)
            original.status = S.ARCHIVED.value
            derived_nos = [completed.order_no] + ([remaining.order_no] if remaining else [])
            original.memo = f"Partial inbound: {', '.join(derived_nos)}"
            db.flush()

            return {
                "original": original,
                "completed": completed,
                "remaining": remaining,
            }

        result = run_in_transaction(self.db, work, label="partial_inbound")
        original = result["original"]
        logger.info(
            f"[OK] Partial inbound of {original.order_no}: completed {result['completed'].order_no}"
            + (f", remaining {result['remaining'].order_no}" if result["remaining"] else "")
        )

        if self.cache is not None:
            self.cache.invalidate(tenant_id)

        dispatch_notification(
            f"order_completed notification for {original.order_no}",
            lambda: self.notifier.order_completed(original, dict(received), partial=True),
        )

        return {
            "archived_order_id": str(original.id),
            "completed_order": format_order(result["completed"]),
            "remaining_order": format_order(result["remaining"]) if result["remaining"] else None,
        }
