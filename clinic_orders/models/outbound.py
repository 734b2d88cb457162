"""
Outbound (dispensing) and Return Models
"""
import enum
from sqlalchemy import Column, String, Integer, Numeric, Boolean, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship
from clinic_orders.core import Base
from .base import UUIDMixin, TimestampMixin, JSONType, utcnow


class OutboundType(str, enum.Enum):
    PRODUCT = "product"
    PACKAGE = "package"
    BARCODE = "barcode"


class Outbound(Base, UUIDMixin, TimestampMixin):
    """Immutable dispensing record; its only side effect is a batch decrement"""
    __tablename__ = "outbound"

    tenant_id = Column(String(100), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"), nullable=False, index=True)
    batch_id = Column(Uuid(as_uuid=True), ForeignKey("batch.id"), nullable=False)
    batch_no = Column(String(100))
    outbound_qty = Column(Integer, nullable=False)
    outbound_type = Column(String(20), default=OutboundType.PRODUCT.value, nullable=False)
    outbound_date = Column(DateTime, default=utcnow, nullable=False, index=True)

    manager_name = Column(String(200), nullable=False)
    patient_name = Column(String(200))
    chart_number = Column(String(100))
    memo = Column(Text)
    is_damaged = Column(Boolean, default=False)
    is_defective = Column(Boolean, default=False)
    package_id = Column(Uuid(as_uuid=True), ForeignKey("package.id"))
    created_by = Column(String(100))

    # Relationships
    product = relationship("Product")
    batch = relationship("Batch")
    package = relationship("Package")


class ReturnStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class OrderReturn(Base, UUIDMixin, TimestampMixin):
    """Goods going back to the supplier (defective outbound, short inbound)"""
    __tablename__ = "order_return"

    tenant_id = Column(String(100), nullable=False, index=True)
    return_no = Column(String(100), nullable=False, index=True)
    order_id = Column(Uuid(as_uuid=True))
    order_no = Column(String(100))
    outbound_id = Column(Uuid(as_uuid=True))
    supplier_contact_id = Column(Uuid(as_uuid=True), ForeignKey("supplier_contact.id"))

    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"))
    product_name = Column(String(300))
    brand = Column(String(200))
    batch_no = Column(String(100))
    return_quantity = Column(Integer, nullable=False)
    total_quantity = Column(Integer)
    unit_price = Column(Numeric(12, 2), default=0)
    return_type = Column(String(30))  # DEFECTIVE, SHORTAGE

    status = Column(String(20), default=ReturnStatus.PENDING.value, nullable=False)
    return_manager = Column(String(200))
    memo = Column(Text)
    images = Column(JSONType)

    # Relationships
    supplier_contact = relationship("SupplierContact")
