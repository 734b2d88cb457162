"""
Catalog & Stock Models: Product, Batch, Package, supplier contacts
"""
from sqlalchemy import Column, String, Integer, Numeric, Boolean, Date, ForeignKey, Text, Uuid, Index
from sqlalchemy.orm import relationship
from clinic_orders.core import Base
from .base import UUIDMixin, TimestampMixin

class Product(Base, UUIDMixin, TimestampMixin):
    """Product Master (per tenant)"""
    __tablename__ = "product"

    tenant_id = Column(String(100), nullable=False, index=True)
    name = Column(String(300), nullable=False)
    brand = Column(String(200))
    barcode = Column(String(100))
    category = Column(String(100))
    unit = Column(String(30))
    purchase_price = Column(Numeric(12, 2))
    sale_price = Column(Numeric(12, 2))

    # Cached aggregate, always re-derived from batch quantities
    current_stock = Column(Integer, default=0, nullable=False)
    min_stock = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True)

    # Relationships
    batches = relationship("Batch", back_populates="product", order_by="Batch.created_at")
    supplier_links = relationship("ProductSupplier", back_populates="product", order_by="ProductSupplier.created_at.desc()")

class Batch(Base, UUIDMixin, TimestampMixin):
    """Receipt lot of a product"""
    __tablename__ = "batch"

    tenant_id = Column(String(100), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"), nullable=False, index=True)
    batch_no = Column(String(100), nullable=False)
    qty = Column(Integer, default=0, nullable=False)  # never negative
    expiry_date = Column(Date)
    manufacture_date = Column(Date)
    storage = Column(String(200))
    purchase_price = Column(Numeric(12, 2))
    order_no = Column(String(100))  # set when created by a receipt

    # Relationships
    product = relationship("Product", back_populates="batches")

class Package(Base, UUIDMixin, TimestampMixin):
    """Named bundle of products dispensed together"""
    __tablename__ = "package"

    tenant_id = Column(String(100), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True)

    # Relationships
    items = relationship("PackageItem", back_populates="package", cascade="all, delete-orphan")

class PackageItem(Base, UUIDMixin):
    """Package component"""
    __tablename__ = "package_item"

    package_id = Column(Uuid(as_uuid=True), ForeignKey("package.id"), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)

    # Relationships
    package = relationship("Package", back_populates="items")
    product = relationship("Product")

class SupplierManager(Base, UUIDMixin, TimestampMixin):
    """Mirror of a manager account on the supplier platform"""
    __tablename__ = "supplier_manager"

    supplier_tenant_id = Column(String(100), nullable=False, index=True)
    name = Column(String(200))
    phone = Column(String(30))
    email = Column(String(200))
    status = Column(String(20), default="ACTIVE")

class SupplierContact(Base, UUIDMixin, TimestampMixin):
    """
    Clinic-side supplier contact.

    linked_manager_id set -> platform-linked supplier (webhook protocol).
    linked_manager_id empty -> manual supplier (SMS/email protocol).
    """
    __tablename__ = "supplier_contact"

    tenant_id = Column(String(100), nullable=False, index=True)
    company_name = Column(String(200), nullable=False)
    manager_name = Column(String(200))
    phone = Column(String(30))
    email = Column(String(200))
    memo = Column(Text)
    linked_manager_id = Column(Uuid(as_uuid=True), ForeignKey("supplier_manager.id"))

    # Relationships
    linked_manager = relationship("SupplierManager")

    @property
    def supplier_tenant_id(self):
        """Remote supplier tenant, or None for a manual supplier"""
        if self.linked_manager is None:
            return None
        return self.linked_manager.supplier_tenant_id

    @property
    def is_platform_linked(self) -> bool:
        return bool(self.supplier_tenant_id)

class ProductSupplier(Base, UUIDMixin, TimestampMixin):
    """Which supplier contact sells a product, and at what price"""
    __tablename__ = "product_supplier"

    tenant_id = Column(String(100), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"), nullable=False)
    supplier_contact_id = Column(Uuid(as_uuid=True), ForeignKey("supplier_contact.id"), nullable=False)
    purchase_price = Column(Numeric(12, 2))

    # Relationships
    product = relationship("Product", back_populates="supplier_links")
    supplier_contact = relationship("SupplierContact")

    __table_args__ = (
        Index("ix_product_supplier_product", product_id, supplier_contact_id),
    )
