"""
Order Splitter - partition a cart into one group per supplier
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from clinic_orders.models import OrderStatus, ProductSupplier, SupplierContact

logger = logging.getLogger(__name__)

UNKNOWN_SUPPLIER = "unknown"


@dataclass
class SplitLine:
    product_id: UUID
    quantity: int
    unit_price: Decimal
    batch_id: Optional[UUID] = None
    memo: Optional[str] = None

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class SupplierGroup:
    supplier_key: str
    supplier_contact: Optional[SupplierContact] = None
    lines: List[SplitLine] = field(default_factory=list)

    @property
    def sub_total(self) -> Decimal:
        return sum((line.total_price for line in self.lines), Decimal("0"))

    @property
    def is_platform_linked(self) -> bool:
        return self.supplier_contact is not None and self.supplier_contact.is_platform_linked

    @property
    def initial_status(self) -> str:
        # Manual and unknown suppliers confirm by phone; nothing will call back
        if self.is_platform_linked:
            return OrderStatus.PENDING.value
        return OrderStatus.SUPPLIER_CONFIRMED.value


SupplierResolver = Callable[[UUID], Optional[SupplierContact]]


def resolve_supplier(db: Session, tenant_id: str, product_id: UUID) -> Optional[SupplierContact]:
    """Latest supplier link for a product, None when the product has none"""
    link = db.query(ProductSupplier).filter(
        ProductSupplier.tenant_id == tenant_id,
        ProductSupplier.product_id == product_id,
    ).order_by(ProductSupplier.created_at.desc()).first()
    return link.supplier_contact if link else None


def partition(lines: List[SplitLine], resolver: SupplierResolver) -> List[SupplierGroup]:
    """
    Group lines by resolved supplier.

    Every line lands in exactly one group, groups keep the order their
    first line appeared in, and lines without a supplier share the
    "unknown" group.
    """
    groups: Dict[str, SupplierGroup] = {}
    for line in lines:
        contact = resolver(line.product_id)
        key = str(contact.id) if contact is not None else UNKNOWN_SUPPLIER
        group = groups.get(key)
        if group is None:
            group = groups[key] = SupplierGroup(supplier_key=key, supplier_contact=contact)
        group.lines.append(line)

    result = list(groups.values())
    logger.debug(f"Split {len(lines)} lines into {len(result)} supplier groups")
    return result


class OrderSplitter:

    def __init__(self, db: Session):
        self.db = db

    def split(self, tenant_id: str, lines: List[SplitLine]) -> List[SupplierGroup]:
        cache: Dict[UUID, Optional[SupplierContact]] = {}

        def resolver(product_id: UUID) -> Optional[SupplierContact]:
            if product_id not in cache:
                cache[product_id] = resolve_supplier(self.db, tenant_id, product_id)
            return cache[product_id]

        return partition(lines, resolver)
