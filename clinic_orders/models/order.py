"""
Order Models: purchase orders, drafts, rejected-order history
"""
import enum
from sqlalchemy import Column, String, Numeric, Integer, DateTime, Date, ForeignKey, Text, Index, Uuid
from sqlalchemy.orm import relationship
from clinic_orders.core import Base
from .base import UUIDMixin, TimestampMixin, JSONType


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    SUPPLIER_CONFIRMED = "supplier_confirmed"
    REJECTED = "rejected"
    CONFIRMED_REJECTED = "confirmed_rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


TERMINAL_STATUSES = {
    OrderStatus.COMPLETED.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.ARCHIVED.value,
    OrderStatus.CONFIRMED_REJECTED.value,
}


class Order(Base, UUIDMixin, TimestampMixin):
    """Purchase order sent to one supplier"""
    __tablename__ = "purchase_order"

    tenant_id = Column(String(100), nullable=False, index=True)
    order_no = Column(String(100), nullable=False)
    status = Column(String(30), default=OrderStatus.PENDING.value, nullable=False, index=True)

    # Resolved supplier contact (None = unknown supplier bucket)
    supplier_contact_id = Column(Uuid(as_uuid=True), ForeignKey("supplier_contact.id"))

    total_amount = Column(Numeric(14, 2), default=0, nullable=False)
    confirmed_at = Column(DateTime)
    completed_at = Column(DateTime)
    expected_delivery_date = Column(Date)

    # Last supplier callback snapshot (adjustments, updated items)
    supplier_adjustments = Column(JSONType)

    memo = Column(Text)
    inbound_manager = Column(String(200))
    created_by = Column(String(100))

    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    supplier_contact = relationship("SupplierContact")

    __table_args__ = (
        Index("ix_purchase_order_tenant_order_no", tenant_id, order_no, unique=True),
    )

    def __repr__(self):
        return f"<Order {self.order_no} {self.status}>"

class OrderItem(Base, UUIDMixin, TimestampMixin):
    """Order line"""
    __tablename__ = "purchase_order_item"

    order_id = Column(Uuid(as_uuid=True), ForeignKey("purchase_order.id"), nullable=False, index=True)
    tenant_id = Column(String(100), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"), nullable=False)
    batch_id = Column(Uuid(as_uuid=True), ForeignKey("batch.id"))
    position = Column(Integer, default=0, nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), default=0, nullable=False)
    total_price = Column(Numeric(14, 2), default=0, nullable=False)

    # Carries supplier rejection reasons
    memo = Column(Text)

    # Relationships
    order = relationship("Order", back_populates="items")
    product = relationship("Product")
    batch = relationship("Batch")

    def recompute_total(self):
        self.total_price = self.unit_price * self.quantity

class OrderDraft(Base, UUIDMixin, TimestampMixin):
    """Session-scoped cart, keyed by tenant + session"""
    __tablename__ = "order_draft"

    tenant_id = Column(String(100), nullable=False)
    session_id = Column(String(200), nullable=False)
    items = Column(JSONType, nullable=False, default=list)
    total_amount = Column(Numeric(14, 2), default=0, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_order_draft_tenant_session", tenant_id, session_id, unique=True),
    )

class RejectedOrder(Base, UUIDMixin, TimestampMixin):
    """Denormalized history line, one per rejected order item"""
    __tablename__ = "rejected_order"

    tenant_id = Column(String(100), nullable=False, index=True)
    order_id = Column(Uuid(as_uuid=True), nullable=False)
    order_no = Column(String(100), nullable=False)
    company_name = Column(String(200))
    manager_name = Column(String(200))
    member_name = Column(String(200))
    product_name = Column(String(300), nullable=False)
    product_brand = Column(String(200))
    qty = Column(Integer, nullable=False)
