"""
Stock Service - batch quantities and the product stock aggregate

None of these methods commit. Callers run them inside one
run_in_transaction() so the batch change and the aggregate land together.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinic_orders.core.exceptions import ValidationError, NotFoundError
from clinic_orders.models import Batch, Product

logger = logging.getLogger(__name__)


class StockService:

    @staticmethod
    def validate_outbound(batch: Batch, quantity: int, today: Optional[date] = None, already_taken: int = 0):
        """
        Reject an outbound that must not happen.

        already_taken is what earlier lines of the same request take from
        this batch.
        """
        if quantity is None or quantity <= 0:
            raise ValidationError("Outbound quantity must be positive")

        available = (batch.qty or 0) - already_taken
        if available < quantity:
            raise ValidationError(
                f"Insufficient stock in batch {batch.batch_no}: available {available}, requested {quantity}"
            )

        today = today or date.today()
        # expired from the start of its expiry day
        if batch.expiry_date is not None and batch.expiry_date <= today:
            raise ValidationError(f"Batch {batch.batch_no} expired on {batch.expiry_date.isoformat()}")

    @staticmethod
    def get_product(db: Session, tenant_id: str, product_id: UUID) -> Product:
        product = db.query(Product).filter(
            Product.id == product_id,
            Product.tenant_id == tenant_id,
        ).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    @staticmethod
    def get_batch(db: Session, tenant_id: str, batch_id: UUID, product_id: UUID = None, lock: bool = False) -> Batch:
        query = db.query(Batch).filter(Batch.id == batch_id, Batch.tenant_id == tenant_id)
        if product_id is not None:
            query = query.filter(Batch.product_id == product_id)
        if lock:
            query = query.with_for_update()
        batch = query.first()
        if not batch:
            raise NotFoundError(f"Batch {batch_id} not found")
        return batch

    @staticmethod
    def deduct(db: Session, batch: Batch, quantity: int):
        """Decrement a locked batch; the aggregate is refreshed separately"""
        if batch.qty < quantity:
            raise ValidationError(
                f"Insufficient stock in batch {batch.batch_no}: available {batch.qty}, requested {quantity}"
            )
        batch.qty -= quantity

    @staticmethod
    def restore(db: Session, batch: Batch, quantity: int):
        batch.qty += quantity

    @staticmethod
    def receive(
        db: Session,
        tenant_id: str,
        product_id: UUID,
        quantity: int,
        order_no: str = None,
        batch_no: str = None,
        expiry_date: date = None,
        storage: str = None,
        purchase_price: Decimal = None,
    ) -> Batch:
        """Create the batch a receipt produces"""
        batch = Batch(
            tenant_id=tenant_id,
            product_id=product_id,
            batch_no=batch_no or order_no or "INBOUND",
            qty=quantity,
            expiry_date=expiry_date,
            storage=storage,
            purchase_price=purchase_price,
            order_no=order_no,
        )
        db.add(batch)
        logger.info(f"[OK] Received {quantity} of product {product_id} as batch {batch.batch_no}")
        return batch

    @staticmethod
    def recompute_product_stock(db: Session, tenant_id: str, product_id: UUID) -> int:
        """Re-derive product.current_stock from the sum of its batches"""
        db.flush()
        total = db.query(func.coalesce(func.sum(Batch.qty), 0)).filter(
            Batch.tenant_id == tenant_id,
            Batch.product_id == product_id,
        ).scalar()

        product = db.query(Product).filter(Product.id == product_id).first()
        if product:
            product.current_stock = int(total)
        return int(total)

    @staticmethod
    def get_fefo_batches(db: Session, tenant_id: str, product_id: UUID) -> List[Batch]:
        """Batches with stock, earliest expiry first, undated last"""
        return db.query(Batch).filter(
            Batch.tenant_id == tenant_id,
            Batch.product_id == product_id,
            Batch.qty > 0,
        ).order_by(
            Batch.expiry_date.is_(None),
            Batch.expiry_date.asc(),
            Batch.created_at.asc(),
        ).all()
