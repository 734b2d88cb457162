# Services Package
from .order_number import OrderNumber, OrderVariant
from .stock_service import StockService
from .order_splitter import OrderSplitter, SplitLine, SupplierGroup
from .draft_service import DraftService
from .notification_service import (
    NotificationPort, SupplierNotifier, NullNotifier, Sent, Skipped, Failed, dispatch_notification,
)
from .view_cache import ViewCache, CacheView
from .order_service import OrderService, format_order, format_rejected
from .item_matching import ItemMatcher
from .reconciliation_service import ReconciliationService
from .partial_inbound_service import PartialInboundService
from .return_service import ReturnService, format_return
from .outbound_service import OutboundService, format_outbound
from .order_query_service import OrderQueryService
from . import integration_service

__all__ = [
    "OrderNumber", "OrderVariant",
    "StockService",
    "OrderSplitter", "SplitLine", "SupplierGroup",
    "DraftService",
    "NotificationPort", "SupplierNotifier", "NullNotifier", "Sent", "Skipped", "Failed", "dispatch_notification",
    "ViewCache", "CacheView",
    "OrderService", "format_order", "format_rejected",
    "ItemMatcher",
    "ReconciliationService",
    "PartialInboundService",
    "ReturnService", "format_return",
    "OutboundService", "format_outbound",
    "OrderQueryService",
    "integration_service",
]
