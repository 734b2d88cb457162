"""
Order Service - purchase order lifecycle

create (split per supplier) -> supplier_confirmed / rejected (webhook)
-> completed / partially received / cancelled. Every state change runs in
one transaction; supplier notifications go out after commit.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_orders.core.config import settings
from clinic_orders.core.database import run_in_transaction
from clinic_orders.core.exceptions import ValidationError, NotFoundError, ConflictError, OrderNumberExhausted
from clinic_orders.models import (
    Order, OrderItem, OrderDraft, OrderStatus, RejectedOrder, SupplierContact, utcnow,
)
from clinic_orders.schemas import OrderCreate, CompleteOrderRequest, ConfirmRejectedRequest
from .draft_service import DraftService, draft_lines
from .notification_service import NotificationPort, NotificationResult, dispatch_notification
from .order_number import OrderNumber, default_suffix_source
from .order_splitter import OrderSplitter, SplitLine, SupplierGroup
from .stock_service import StockService
from .view_cache import ViewCache

logger = logging.getLogger(__name__)

S = OrderStatus


class OrderService:
    """Order lifecycle business logic"""

    # Valid status transitions
    STATUS_TRANSITIONS = {
        S.PENDING.value: [S.SUPPLIER_CONFIRMED.value, S.REJECTED.value, S.CANCELLED.value, S.ARCHIVED.value],
        S.SUPPLIER_CONFIRMED.value: [
            S.SUPPLIER_CONFIRMED.value, S.REJECTED.value, S.COMPLETED.value, S.CANCELLED.value, S.ARCHIVED.value,
        ],
        S.REJECTED.value: [S.REJECTED.value, S.SUPPLIER_CONFIRMED.value, S.CONFIRMED_REJECTED.value, S.ARCHIVED.value],
        S.CONFIRMED_REJECTED.value: [],
        S.COMPLETED.value: [],
        S.CANCELLED.value: [],
        S.ARCHIVED.value: [],
    }

    DELETABLE_STATUSES = [S.PENDING.value, S.CANCELLED.value, S.REJECTED.value, S.CONFIRMED_REJECTED.value]

    def __init__(
        self,
        db: Session,
        notifier: NotificationPort,
        cache: Optional[ViewCache] = None,
        suffix_source: Callable[[], int] = default_suffix_source,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.notifier = notifier
        self.cache = cache
        self.suffix_source = suffix_source
        self.clock = clock
        self.notifications: Dict[str, NotificationResult] = {}

    # ========== Helpers ==========

    @classmethod
    def can_transition(cls, current: str, new: str) -> bool:
        return new in cls.STATUS_TRANSITIONS.get(current, [])

    @classmethod
    def ensure_transition(cls, order: Order, new_status: str):
        if not cls.can_transition(order.status, new_status):
            raise ConflictError(f"Cannot change order {order.order_no} from {order.status} to {new_status}")

    @staticmethod
    def get_order(db: Session, tenant_id: str, order_id: UUID, lock: bool = False) -> Order:
        query = db.query(Order).filter(Order.id == order_id, Order.tenant_id == tenant_id)
        if lock:
            query = query.with_for_update()
        order = query.first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    def get_order_by_no(db: Session, tenant_id: str, order_no: str, lock: bool = False) -> Optional[Order]:
        query = db.query(Order).filter(Order.order_no == order_no, Order.tenant_id == tenant_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def _invalidate(self, tenant_id: str):
        if self.cache is not None:
            self.cache.invalidate(tenant_id)

    def _notify(self, order: Order, event: str, send: Callable[[], NotificationResult]) -> NotificationResult:
        result = dispatch_notification(f"{event} notification for {order.order_no}", send)
        self.notifications[order.order_no] = result
        return result

    # ========== Create ==========

    def _next_order_number(self, db: Session, tenant_id: str, taken: set) -> str:
        today = self.clock().date()
        for _ in range(settings.ORDER_NUMBER_MAX_RETRIES):
            candidate = str(OrderNumber.generate(tenant_id, today=today, suffix_source=self.suffix_source))
            if candidate in taken:
                continue
            if self.get_order_by_no(db, tenant_id, candidate) is not None:
                logger.warning(f"[RETRY] Order number {candidate} already taken")
                continue
            taken.add(candidate)
            return candidate
        raise OrderNumberExhausted(
            f"No free order number for tenant {tenant_id} after {settings.ORDER_NUMBER_MAX_RETRIES} attempts"
        )

    def _collect_lines(self, db: Session, tenant_id: str, data: OrderCreate, session_id: Optional[str]) -> Tuple[List[SplitLine], Optional[OrderDraft]]:
        drafts = DraftService(db, clock=self.clock)

        if data.items is None:
            if not session_id:
                raise ValidationError("Session is required to order from the draft")
            draft = drafts.find_draft(tenant_id, session_id)
            if draft is None or draft.expires_at <= self.clock() or not draft.items:
                raise ValidationError("Draft is empty")
            lines = draft_lines(draft)
        else:
            draft = None
            lines = []
            for item in data.items:
                product = StockService.get_product(db, tenant_id, item.product_id)
                unit_price = item.unit_price
                if unit_price is None:
                    unit_price = drafts.resolve_unit_price(tenant_id, product, item.batch_id)
                lines.append(SplitLine(
                    product_id=product.id,
                    batch_id=item.batch_id,
                    quantity=item.quantity,
                    unit_price=Decimal(unit_price),
                    memo=item.memo,
                ))

        if not lines:
            raise ValidationError("Order has no items")

        for line in lines:
            if line.quantity <= 0:
                raise ValidationError(f"Quantity for product {line.product_id} must be positive")
            StockService.get_product(db, tenant_id, line.product_id)
            if line.batch_id:
                StockService.get_batch(db, tenant_id, line.batch_id, product_id=line.product_id)

        return lines, draft

    def _build_order(self, tenant_id: str, order_no: str, group: SupplierGroup, data: OrderCreate, created_by: Optional[str]) -> Order:
        status = group.initial_status
        order = Order(
            tenant_id=tenant_id,
            order_no=order_no,
            status=status,
            supplier_contact_id=group.supplier_contact.id if group.supplier_contact else None,
            total_amount=group.sub_total,
            confirmed_at=self.clock() if status == S.SUPPLIER_CONFIRMED.value else None,
            expected_delivery_date=data.expected_delivery_date,
            memo=data.memo,
            created_by=created_by,
        )
        for position, line in enumerate(group.lines):
            order.items.append(OrderItem(
                tenant_id=tenant_id,
                product_id=line.product_id,
                batch_id=line.batch_id,
                position=position,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.total_price,
                memo=line.memo,
            ))
        return order

    def create_order(
        self,
        tenant_id: str,
        data: OrderCreate,
        session_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> List[Order]:
        """
        Create one order per supplier from explicit items or the caller's
        draft. All orders and the draft deletion commit together.
        """
        if not tenant_id:
            raise ValidationError("Tenant is required")

        def work(db: Session) -> List[Order]:
            lines, draft = self._collect_lines(db, tenant_id, data, session_id)
            groups = OrderSplitter(db).split(tenant_id, lines)

            taken: set = set()
            orders = []
            for group in groups:
                order_no = self._next_order_number(db, tenant_id, taken)
                order = self._build_order(tenant_id, order_no, group, data, created_by)
                db.add(order)
                orders.append(order)

            if draft is not None:
                db.delete(draft)
            db.flush()
            return orders

        for attempt in range(1, settings.ORDER_NUMBER_MAX_RETRIES + 1):
            try:
                orders = run_in_transaction(self.db, work, label="create_order")
                break
            except IntegrityError as e:
                # A concurrent create took the same number between check and insert
                logger.warning(f"[RETRY] create_order attempt {attempt}: {e.orig}")
        else:
            raise OrderNumberExhausted(f"Could not allocate order numbers for tenant {tenant_id}")

        logger.info(f"[OK] Created {len(orders)} order(s): {', '.join(o.order_no for o in orders)}")
        self._invalidate(tenant_id)

        for order in orders:
            self._notify(order, "order_created", lambda o=order: self.notifier.order_created(o))
        return orders

    # ========== Transitions ==========

    def cancel_order(self, tenant_id: str, order_id: UUID) -> Order:
        def work(db: Session) -> Order:
            order = self.get_order(db, tenant_id, order_id, lock=True)
            if order.status not in (S.PENDING.value, S.SUPPLIER_CONFIRMED.value):
                raise ConflictError(f"Order {order.order_no} is {order.status} and cannot be cancelled")
            order.status = S.CANCELLED.value
            return order

        order = run_in_transaction(self.db, work, label="cancel_order")
        logger.info(f"[OK] Cancelled order {order.order_no}")
        self._invalidate(tenant_id)
        self._notify(order, "order_cancelled", lambda: self.notifier.order_cancelled(order))
        return order

    def complete_order(self, tenant_id: str, order_id: UUID, data: Optional[CompleteOrderRequest] = None) -> Order:
        """Receive every line in full; each line becomes a new batch"""
        data = data or CompleteOrderRequest()
        received: Dict[str, int] = {}

        def work(db: Session) -> Order:
            received.clear()
            order = self.get_order(db, tenant_id, order_id, lock=True)
            self.ensure_transition(order, S.COMPLETED.value)

            inbound = {str(i.item_id): i for i in (data.items or [])}
            unknown = set(inbound) - {str(item.id) for item in order.items}
            if unknown:
                raise ValidationError(f"Items {sorted(unknown)} are not part of order {order.order_no}")

            for item in order.items:
                line_in = inbound.get(str(item.id))
                if line_in is not None and line_in.inbound_qty != item.quantity:
                    raise ValidationError(
                        f"Item {item.id} received {line_in.inbound_qty} of {item.quantity}; use partial inbound"
                    )
                StockService.receive(
                    db, tenant_id, item.product_id, item.quantity,
                    order_no=order.order_no,
                    batch_no=line_in.batch_no if line_in else None,
                    expiry_date=line_in.expiry_date if line_in else None,
                    storage=line_in.storage if line_in else None,
                    purchase_price=item.unit_price,
                )
                received[str(item.id)] = item.quantity

            for product_id in {item.product_id for item in order.items}:
                StockService.recompute_product_stock(db, tenant_id, product_id)

            order.status = S.COMPLETED.value
            order.completed_at = self.clock()
            order.inbound_manager = data.inbound_manager
            return order

        order = run_in_transaction(self.db, work, label="complete_order")
        logger.info(f"[OK] Completed order {order.order_no}")
        self._invalidate(tenant_id)
        self._notify(order, "order_completed", lambda: self.notifier.order_completed(order, dict(received)))
        return order

    def confirm_rejected_order(self, tenant_id: str, order_id: UUID, data: ConfirmRejectedRequest) -> List[RejectedOrder]:
        """Acknowledge a supplier rejection and keep one history line per item"""

        def work(db: Session) -> List[RejectedOrder]:
            order = self.get_order(db, tenant_id, order_id, lock=True)
            if order.status != S.REJECTED.value:
                raise ConflictError(f"Order {order.order_no} is {order.status}, not rejected")

            contact: Optional[SupplierContact] = order.supplier_contact
            if data.items:
                entries = [(i.product_name, i.product_brand, i.qty) for i in data.items]
            else:
                entries = [
                    (item.product.name if item.product else str(item.product_id),
                     item.product.brand if item.product else None,
                     item.quantity)
                    for item in order.items
                ]

            rows = []
            for product_name, product_brand, qty in entries:
                row = RejectedOrder(
                    tenant_id=tenant_id,
                    order_id=order.id,
                    order_no=order.order_no,
                    company_name=contact.company_name if contact else None,
                    manager_name=contact.manager_name if contact else None,
                    member_name=data.member_name,
                    product_name=product_name,
                    product_brand=product_brand,
                    qty=qty,
                )
                db.add(row)
                rows.append(row)

            order.status = S.CONFIRMED_REJECTED.value
            return rows

        rows = run_in_transaction(self.db, work, label="confirm_rejected_order")
        logger.info(f"[OK] Order {order_id} rejection confirmed ({len(rows)} lines)")
        self._invalidate(tenant_id)
        return rows

    def delete_order(self, tenant_id: str, order_id: UUID) -> str:
        def work(db: Session) -> str:
            order = self.get_order(db, tenant_id, order_id, lock=True)
            if order.status not in self.DELETABLE_STATUSES:
                raise ConflictError(f"Order {order.order_no} is {order.status} and cannot be deleted")
            order_no = order.order_no
            db.delete(order)
            return order_no

        order_no = run_in_transaction(self.db, work, label="delete_order")
        logger.info(f"[OK] Deleted order {order_no}")
        self._invalidate(tenant_id)
        return order_no

    # ========== Queries ==========

    @staticmethod
    def list_orders(
        db: Session,
        tenant_id: str,
        status: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[Order], int]:
        """Orders with filters and pagination"""
        query = db.query(Order).filter(Order.tenant_id == tenant_id)

        if status and status != "all":
            query = query.filter(Order.status == status)

        if search:
            search_term = f"%{search}%"
            query = query.outerjoin(SupplierContact, Order.supplier_contact_id == SupplierContact.id).filter(
                or_(
                    Order.order_no.ilike(search_term),
                    SupplierContact.company_name.ilike(search_term),
                    Order.memo.ilike(search_term),
                )
            )

        if date_from:
            query = query.filter(Order.created_at >= datetime.combine(date_from, datetime.min.time()))
        if date_to:
            query = query.filter(Order.created_at <= datetime.combine(date_to, datetime.max.time()))

        total = query.count()
        orders = query.order_by(Order.created_at.desc())\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()
        return orders, total

    @staticmethod
    def list_rejected(db: Session, tenant_id: str) -> List[RejectedOrder]:
        return db.query(RejectedOrder).filter(
            RejectedOrder.tenant_id == tenant_id,
        ).order_by(RejectedOrder.created_at.desc()).all()


def format_order(order: Order) -> Dict:
    contact = order.supplier_contact
    return {
        "id": str(order.id),
        "order_no": order.order_no,
        "status": order.status,
        "supplier_id": str(order.supplier_contact_id) if order.supplier_contact_id else None,
        "supplier_name": contact.company_name if contact else None,
        "manager_name": contact.manager_name if contact else None,
        "is_platform_linked": contact.is_platform_linked if contact else False,
        "total_amount": float(order.total_amount or 0),
        "confirmed_at": order.confirmed_at.isoformat() if order.confirmed_at else None,
        "completed_at": order.completed_at.isoformat() if order.completed_at else None,
        "expected_delivery_date": order.expected_delivery_date.isoformat() if order.expected_delivery_date else None,
        "memo": order.memo,
        "inbound_manager": order.inbound_manager,
        "supplier_adjustments": order.supplier_adjustments,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "items": [
            {
                "id": str(item.id),
                "product_id": str(item.product_id),
                "product_name": item.product.name if item.product else None,
                "brand": item.product.brand if item.product else None,
                "batch_id": str(item.batch_id) if item.batch_id else None,
                "quantity": item.quantity,
                "unit_price": float(item.unit_price or 0),
                "total_price": float(item.total_price or 0),
                "memo": item.memo,
            }
            for item in order.items
        ],
    }


def format_rejected(row: RejectedOrder) -> Dict:
    return {
        "id": str(row.id),
        "order_id": str(row.order_id),
        "order_no": row.order_no,
        "company_name": row.company_name,
        "manager_name": row.manager_name,
        "member_name": row.member_name,
        "product_name": row.product_name,
        "product_brand": row.product_brand,
        "qty": row.qty,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }
