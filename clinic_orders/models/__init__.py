from .base import TimestampMixin, UUIDMixin, utcnow, to_naive_utc
from .catalog import Product, Batch, Package, PackageItem, SupplierManager, SupplierContact, ProductSupplier
from .order import Order, OrderItem, OrderDraft, RejectedOrder, OrderStatus, TERMINAL_STATUSES
from .outbound import Outbound, OutboundType, OrderReturn, ReturnStatus
from .integration import WebhookLog

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin", "utcnow", "to_naive_utc",
    # Catalog
    "Product", "Batch", "Package", "PackageItem",
    "SupplierManager", "SupplierContact", "ProductSupplier",
    # Order
    "Order", "OrderItem", "OrderDraft", "RejectedOrder", "OrderStatus", "TERMINAL_STATUSES",
    # Outbound & returns
    "Outbound", "OutboundType", "OrderReturn", "ReturnStatus",
    # Integration
    "WebhookLog",
]
