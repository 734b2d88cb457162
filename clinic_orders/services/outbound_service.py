"""
Outbound Service - dispense stock from batches

Plain, bulk and package outbound are all-or-nothing: every line is
validated against its locked batch (counting earlier lines of the same
request) before anything is written. Unified outbound processes each line
on its own and reports per-line results.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from clinic_orders.core.database import run_in_transaction
from clinic_orders.core.exceptions import DomainError, ValidationError, NotFoundError
from clinic_orders.models import (
    Batch, OrderReturn, Outbound, OutboundType, Package, Product, ReturnStatus, utcnow, to_naive_utc,
)
from clinic_orders.schemas import (
    OutboundCreate, BulkOutboundCreate, PackageOutboundCreate, UnifiedOutboundCreate, OutboundCancel,
)
from .return_service import ReturnService
from .stock_service import StockService
from .view_cache import CacheView, ViewCache

logger = logging.getLogger(__name__)

CANCEL_WINDOW = timedelta(seconds=2)


class OutboundService:

    def __init__(
        self,
        db: Session,
        cache: Optional[ViewCache] = None,
        returns: Optional[ReturnService] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.cache = cache
        self.returns = returns or ReturnService(db, clock=clock)
        self.clock = clock

    # ========== Helpers ==========

    def _after_commit(self, tenant_id: str, records: Iterable[Outbound]):
        if self.cache is not None:
            self.cache.invalidate(tenant_id, CacheView.ORDER_PRODUCTS)

        for record in records:
            if not record.is_defective:
                continue
            try:
                self.returns.create_from_outbound(tenant_id, record)
            except Exception as e:
                self.db.rollback()
                logger.error(f"[FAIL] Return for defective outbound {record.id} not created: {e}")

    def _check(self, db: Session, tenant_id: str, product_id: UUID, batch_id: UUID, qty: int, taken: Dict[UUID, int]) -> Batch:
        batch = StockService.get_batch(db, tenant_id, batch_id, product_id=product_id, lock=True)
        StockService.validate_outbound(batch, qty, today=self.clock().date(), already_taken=taken[batch.id])
        taken[batch.id] += qty
        return batch

    def _record(self, db: Session, tenant_id: str, batch: Batch, qty: int, outbound_type: str, header: Dict) -> Outbound:
        StockService.deduct(db, batch, qty)
        record = Outbound(
            tenant_id=tenant_id,
            product_id=batch.product_id,
            batch_id=batch.id,
            batch_no=batch.batch_no,
            outbound_qty=qty,
            outbound_type=outbound_type,
            **header,
        )
        db.add(record)
        return record

    @staticmethod
    def _recompute(db: Session, tenant_id: str, records: Iterable[Outbound]):
        for product_id in {r.product_id for r in records}:
            StockService.recompute_product_stock(db, tenant_id, product_id)

    def _header(self, data, created_by: Optional[str], package_id: Optional[UUID] = None) -> Dict:
        return {
            "outbound_date": self.clock(),
            "manager_name": data.manager_name,
            "patient_name": data.patient_name,
            "chart_number": data.chart_number,
            "memo": data.memo,
            "is_damaged": getattr(data, "is_damaged", False),
            "is_defective": getattr(data, "is_defective", False),
            "package_id": package_id,
            "created_by": created_by,
        }

    # ========== Create ==========

    def create_outbound(self, tenant_id: str, data: OutboundCreate, created_by: Optional[str] = None) -> Outbound:
        def work(db: Session) -> Outbound:
            taken = defaultdict(int)
            batch = self._check(db, tenant_id, data.product_id, data.batch_id, data.outbound_qty, taken)
            record = self._record(db, tenant_id, batch, data.outbound_qty, OutboundType.PRODUCT.value, self._header(data, created_by))
            self._recompute(db, tenant_id, [record])
            return record

        record = run_in_transaction(self.db, work, label="create_outbound")
        logger.info(f"[OK] Outbound {record.outbound_qty} from batch {record.batch_no}")
        self._after_commit(tenant_id, [record])
        return record

    def create_bulk_outbound(self, tenant_id: str, data: BulkOutboundCreate, created_by: Optional[str] = None) -> List[Outbound]:
        if not data.items:
            raise ValidationError("No outbound items")
        now = self.clock()

        def work(db: Session) -> List[Outbound]:
            taken = defaultdict(int)
            planned = [
                (line, self._check(db, tenant_id, line.product_id, line.batch_id, line.outbound_qty, taken))
                for line in data.items
            ]
            records = []
            for line, batch in planned:
                header = self._header(line, created_by)
                header["outbound_date"] = now
                records.append(self._record(db, tenant_id, batch, line.outbound_qty, OutboundType.PRODUCT.value, header))
            self._recompute(db, tenant_id, records)
            return records

        records = run_in_transaction(self.db, work, label="create_bulk_outbound")
        logger.info(f"[OK] Bulk outbound of {len(records)} lines")
        self._after_commit(tenant_id, records)
        return records

    def _package_products(self, db: Session, tenant_id: str, package_id: UUID) -> set:
        package = db.query(Package).filter(Package.id == package_id, Package.tenant_id == tenant_id).first()
        if package is None:
            raise NotFoundError(f"Package {package_id} not found")
        return {item.product_id for item in package.items}

    def create_package_outbound(self, tenant_id: str, data: PackageOutboundCreate, created_by: Optional[str] = None) -> List[Outbound]:
        if not data.items:
            raise ValidationError("No outbound items")

        def work(db: Session) -> List[Outbound]:
            members = self._package_products(db, tenant_id, data.package_id) if data.package_id else None
            taken = defaultdict(int)
            planned = []
            for line in data.items:
                if members is not None and line.product_id not in members:
                    raise ValidationError(f"Product {line.product_id} is not part of package {data.package_id}")
                planned.append((line, self._check(db, tenant_id, line.product_id, line.batch_id, line.outbound_qty, taken)))

            header = self._header(data, created_by)
            records = []
            for line, batch in planned:
                line_header = dict(header, package_id=line.package_id or data.package_id)
                records.append(self._record(db, tenant_id, batch, line.outbound_qty, OutboundType.PACKAGE.value, line_header))
            self._recompute(db, tenant_id, records)
            return records

        records = run_in_transaction(self.db, work, label="create_package_outbound")
        logger.info(f"[OK] Package outbound of {len(records)} lines")
        self._after_commit(tenant_id, records)
        return records

    def create_unified_outbound(self, tenant_id: str, data: UnifiedOutboundCreate, created_by: Optional[str] = None) -> Dict:
        """Each line succeeds or fails on its own; the report lists both"""
        if not data.items:
            raise ValidationError("No outbound items")

        def work(db: Session) -> Tuple[List[Outbound], List[Dict], List[str]]:
            taken = defaultdict(int)
            header = self._header(data, created_by)
            records, failed, logs = [], [], []

            for index, line in enumerate(data.items, start=1):
                try:
                    batch = self._check(db, tenant_id, line.product_id, line.batch_id, line.outbound_qty, taken)
                except DomainError as e:
                    failed.append({
                        "product_id": str(line.product_id),
                        "batch_id": str(line.batch_id),
                        "outbound_qty": line.outbound_qty,
                        "error": e.message,
                    })
                    logs.append(f"[FAIL] line {index}: {e.message}")
                    continue

                line_header = dict(header, package_id=line.package_id)
                records.append(self._record(db, tenant_id, batch, line.outbound_qty, data.outbound_type.value, line_header))
                logs.append(f"[OK] line {index}: {line.outbound_qty} from batch {batch.batch_no}")

            self._recompute(db, tenant_id, records)
            return records, failed, logs

        records, failed, logs = run_in_transaction(self.db, work, label="create_unified_outbound")
        for entry in logs:
            logger.info(f"Unified outbound {entry}")
        self._after_commit(tenant_id, records)

        return {
            "success": bool(records),
            "outbound_ids": [str(r.id) for r in records],
            "failed_items": failed,
            "logs": logs,
            "message": f"{len(records)} of {len(data.items)} lines processed",
        }

    # ========== Queries ==========

    def get_outbound(self, tenant_id: str, outbound_id: UUID) -> Outbound:
        record = self.db.query(Outbound).filter(
            Outbound.id == outbound_id,
            Outbound.tenant_id == tenant_id,
        ).first()
        if not record:
            raise NotFoundError(f"Outbound {outbound_id} not found")
        return record

    def get_history(
        self,
        tenant_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        product_id: Optional[UUID] = None,
        package_id: Optional[UUID] = None,
        manager_name: Optional[str] = None,
        outbound_type: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Outbound], int]:
        """Outbound history with filters and pagination"""
        query = self.db.query(Outbound).filter(Outbound.tenant_id == tenant_id)

        if start_date:
            query = query.filter(Outbound.outbound_date >= to_naive_utc(start_date))
        if end_date:
            query = query.filter(Outbound.outbound_date <= to_naive_utc(end_date))
        if product_id:
            query = query.filter(Outbound.product_id == product_id)
        if package_id:
            query = query.filter(Outbound.package_id == package_id)
        if manager_name:
            query = query.filter(Outbound.manager_name == manager_name)
        if outbound_type and outbound_type != "all":
            query = query.filter(Outbound.outbound_type == outbound_type)

        if search:
            search_term = f"%{search}%"
            query = query.join(Product, Outbound.product_id == Product.id).filter(
                or_(
                    Product.name.ilike(search_term),
                    Product.brand.ilike(search_term),
                    Outbound.batch_no.ilike(search_term),
                    Outbound.patient_name.ilike(search_term),
                    Outbound.chart_number.ilike(search_term),
                    Outbound.manager_name.ilike(search_term),
                    Outbound.memo.ilike(search_term),
                )
            )

        total = query.count()
        records = query.order_by(Outbound.outbound_date.desc())\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()
        return records, total

    # ========== Cancel ==========

    def cancel_by_timestamp(self, tenant_id: str, data: OutboundCancel) -> Dict:
        """Undo every outbound one manager recorded within 2s of a timestamp"""
        target = to_naive_utc(data.outbound_timestamp)

        def work(db: Session) -> Dict:
            records = db.query(Outbound).filter(
                Outbound.tenant_id == tenant_id,
                Outbound.manager_name == data.manager_name,
                Outbound.outbound_date >= target - CANCEL_WINDOW,
                Outbound.outbound_date <= target + CANCEL_WINDOW,
            ).all()
            if not records:
                raise NotFoundError("No outbound found for that time and manager")

            restored: Dict[str, int] = defaultdict(int)
            for record in records:
                batch = StockService.get_batch(db, tenant_id, record.batch_id, lock=True)
                StockService.restore(db, batch, record.outbound_qty)
                restored[batch.batch_no] += record.outbound_qty

            record_ids = [r.id for r in records]
            product_ids = {r.product_id for r in records}

            # Returns raised for these outbounds are void
            db.query(OrderReturn).filter(
                OrderReturn.outbound_id.in_(record_ids),
                OrderReturn.status == ReturnStatus.PENDING.value,
            ).delete(synchronize_session=False)
            for record in records:
                db.delete(record)

            for product_id in product_ids:
                StockService.recompute_product_stock(db, tenant_id, product_id)

            return {"cancelled": len(records), "restored": dict(restored)}

        result = run_in_transaction(self.db, work, label="cancel_outbound")
        logger.info(f"[OK] Cancelled {result['cancelled']} outbound record(s) of {data.manager_name}")
        if self.cache is not None:
            self.cache.invalidate(tenant_id, CacheView.ORDER_PRODUCTS)
        return result


def format_outbound(record: Outbound) -> Dict:
    product = record.product
    return {
        "id": str(record.id),
        "product_id": str(record.product_id),
        "product_name": product.name if product else None,
        "brand": product.brand if product else None,
        "batch_id": str(record.batch_id),
        "batch_no": record.batch_no,
        "outbound_qty": record.outbound_qty,
        "outbound_type": record.outbound_type,
        "outbound_date": record.outbound_date.isoformat() if record.outbound_date else None,
        "manager_name": record.manager_name,
        "patient_name": record.patient_name,
        "chart_number": record.chart_number,
        "memo": record.memo,
        "is_damaged": record.is_damaged,
        "is_defective": record.is_defective,
        "package_id": str(record.package_id) if record.package_id else None,
        "package_name": record.package.name if record.package else None,
    }
