"""
Return Service - goods going back to the supplier
"""
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from clinic_orders.core.database import run_in_transaction
from clinic_orders.core.exceptions import ValidationError, NotFoundError, ConflictError
from clinic_orders.models import (
    Batch, Order, OrderReturn, Outbound, Product, ProductSupplier, ReturnStatus, utcnow,
)
from clinic_orders.schemas import ReturnFromInbound, ReturnProcess, ReturnCompletionPayload
from .order_number import OrderNumber, OrderVariant, default_suffix_source
from .order_service import OrderService

logger = logging.getLogger(__name__)


class ReturnService:

    def __init__(
        self,
        db: Session,
        suffix_source: Callable[[], int] = default_suffix_source,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.suffix_source = suffix_source
        self.clock = clock

    def _supplier_for(self, tenant_id: str, product_id: UUID) -> Optional[UUID]:
        link = self.db.query(ProductSupplier).filter(
            ProductSupplier.tenant_id == tenant_id,
            ProductSupplier.product_id == product_id,
        ).order_by(ProductSupplier.created_at.desc()).first()
        return link.supplier_contact_id if link else None

    # ========== Create ==========

    def create_from_outbound(self, tenant_id: str, outbound: Outbound) -> OrderReturn:
        """Pending DEFECTIVE return for a defective outbound"""
        product: Product = outbound.product
        batch: Batch = outbound.batch
        if batch is not None and batch.order_no:
            return_no = str(OrderNumber.parse(batch.order_no).derive(OrderVariant.RETURN))
        else:
            number = OrderNumber.generate(tenant_id, today=self.clock().date(), suffix_source=self.suffix_source)
            return_no = str(number.derive(OrderVariant.RETURN))

        order_return = OrderReturn(
            tenant_id=tenant_id,
            return_no=return_no,
            order_no=batch.order_no if batch else None,
            outbound_id=outbound.id,
            supplier_contact_id=self._supplier_for(tenant_id, outbound.product_id),
            product_id=outbound.product_id,
            product_name=product.name if product else None,
            brand=product.brand if product else None,
            batch_no=outbound.batch_no,
            return_quantity=outbound.outbound_qty,
            total_quantity=outbound.outbound_qty,
            unit_price=batch.purchase_price if batch and batch.purchase_price is not None else (product.purchase_price if product else 0),
            return_type="DEFECTIVE",
            status=ReturnStatus.PENDING.value,
            memo=outbound.memo,
        )
        self.db.add(order_return)
        self.db.commit()
        logger.info(f"[OK] Return {return_no} created for defective outbound {outbound.id}")
        return order_return

    def create_from_inbound(self, tenant_id: str, data: ReturnFromInbound) -> List[OrderReturn]:
        """SHORTAGE returns for lines of a received order"""

        def work(db: Session) -> List[OrderReturn]:
            order: Order = OrderService.get_order(db, tenant_id, data.order_id)
            items = {str(item.id): item for item in order.items}
            return_no = str(OrderNumber.parse(order.order_no).derive(OrderVariant.RETURN))

            rows = []
            for line in data.items:
                item = items.get(str(line.item_id))
                if item is None:
                    raise ValidationError(f"Item {line.item_id} is not part of order {order.order_no}")
                if line.return_quantity > item.quantity:
                    raise ValidationError(f"Cannot return {line.return_quantity} of {item.quantity} for item {item.id}")

                row = OrderReturn(
                    tenant_id=tenant_id,
                    return_no=return_no,
                    order_id=order.id,
                    order_no=order.order_no,
                    supplier_contact_id=order.supplier_contact_id,
                    product_id=item.product_id,
                    product_name=item.product.name if item.product else None,
                    brand=item.product.brand if item.product else None,
                    return_quantity=line.return_quantity,
                    total_quantity=item.quantity,
                    unit_price=item.unit_price,
                    return_type="SHORTAGE",
                    status=ReturnStatus.PENDING.value,
                    memo=line.memo,
                )
                db.add(row)
                rows.append(row)
            return rows

        rows = run_in_transaction(self.db, work, label="create_return")
        logger.info(f"[OK] {len(rows)} return line(s) created for order {data.order_id}")
        return rows

    # ========== Process ==========

    def list_returns(self, tenant_id: str, status: Optional[str] = None) -> List[OrderReturn]:
        query = self.db.query(OrderReturn).filter(OrderReturn.tenant_id == tenant_id)
        if status and status != "all":
            query = query.filter(OrderReturn.status == status)
        return query.order_by(OrderReturn.created_at.desc()).all()

    def process_return(self, tenant_id: str, return_id: UUID, data: ReturnProcess) -> OrderReturn:
        def work(db: Session) -> OrderReturn:
            row = db.query(OrderReturn).filter(
                OrderReturn.id == return_id,
                OrderReturn.tenant_id == tenant_id,
            ).with_for_update().first()
            if row is None:
                raise NotFoundError(f"Return {return_id} not found")
            if row.status == ReturnStatus.COMPLETED.value:
                raise ConflictError(f"Return {row.return_no} is already completed")

            row.status = ReturnStatus.COMPLETED.value
            row.return_manager = data.return_manager
            if data.memo:
                row.memo = data.memo
            if data.images:
                row.images = list(data.images)
            return row

        return run_in_transaction(self.db, work, label="process_return")

    def complete_from_webhook(self, payload: ReturnCompletionPayload) -> Dict:
        """
        Supplier marked a return done. Missing or already completed returns
        are a no-op.
        """
        if payload.status.lower() not in ("completed", "complete", "done"):
            return {"success": True, "updated": 0, "message": f"Status {payload.status} ignored"}

        def work(db: Session) -> int:
            query = db.query(OrderReturn).filter(OrderReturn.return_no == payload.return_no)
            if payload.tenant_id:
                query = query.filter(OrderReturn.tenant_id == payload.tenant_id)
            if payload.item_id:
                try:
                    query = query.filter(OrderReturn.id == UUID(payload.item_id))
                except ValueError:
                    return 0

            updated = 0
            for row in query.with_for_update().all():
                if row.status == ReturnStatus.COMPLETED.value:
                    continue
                row.status = ReturnStatus.COMPLETED.value
                updated += 1
            return updated

        updated = run_in_transaction(self.db, work, label="complete_return")
        if updated:
            logger.info(f"[OK] Return {payload.return_no}: {updated} line(s) completed")
        else:
            logger.info(f"[SKIP] Return {payload.return_no}: nothing to complete")
        return {"success": True, "updated": updated}


def format_return(row: OrderReturn) -> Dict:
    contact = row.supplier_contact
    return {
        "id": str(row.id),
        "return_no": row.return_no,
        "order_no": row.order_no,
        "outbound_id": str(row.outbound_id) if row.outbound_id else None,
        "supplier_name": contact.company_name if contact else None,
        "manager_name": contact.manager_name if contact else None,
        "product_id": str(row.product_id) if row.product_id else None,
        "product_name": row.product_name,
        "brand": row.brand,
        "batch_no": row.batch_no,
        "return_quantity": row.return_quantity,
        "total_quantity": row.total_quantity,
        "unit_price": float(row.unit_price or 0),
        "return_type": row.return_type,
        "status": row.status,
        "return_manager": row.return_manager,
        "memo": row.memo,
        "images": row.images or [],
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }
