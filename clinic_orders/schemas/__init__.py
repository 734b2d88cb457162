# Pydantic Schemas Package
from .order import (
    DraftItemAdd, DraftItemUpdate, DraftReplace, OrderItemInput, OrderCreate,
    InboundItem, CompleteOrderRequest, PartialInboundRequest,
    RejectedItemInput, ConfirmRejectedRequest,
)
from .webhook import (
    ItemAdjustment, RemoteItemSnapshot, SupplierConfirmationPayload,
    SplitOrderPart, OrderSplitPayload, ReturnCompletionPayload,
)
from .outbound import (
    OutboundCreate, BulkOutboundCreate, OutboundLine, PackageOutboundCreate,
    UnifiedOutboundCreate, OutboundCancel, ReturnFromInbound, ReturnFromInboundItem, ReturnProcess,
)

__all__ = [
    "DraftItemAdd", "DraftItemUpdate", "DraftReplace", "OrderItemInput", "OrderCreate",
    "InboundItem", "CompleteOrderRequest", "PartialInboundRequest",
    "RejectedItemInput", "ConfirmRejectedRequest",
    "ItemAdjustment", "RemoteItemSnapshot", "SupplierConfirmationPayload",
    "SplitOrderPart", "OrderSplitPayload", "ReturnCompletionPayload",
    "OutboundCreate", "BulkOutboundCreate", "OutboundLine", "PackageOutboundCreate",
    "UnifiedOutboundCreate", "OutboundCancel", "ReturnFromInbound", "ReturnFromInboundItem", "ReturnProcess",
]
