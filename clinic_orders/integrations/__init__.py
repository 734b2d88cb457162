# Outbound integrations
from .base import BaseHttpClient
from .supplier_platform import SupplierPlatformClient
from .messaging import MessageProvider, HttpRelayMessageProvider
from .telegram import TelegramAlertClient

__all__ = [
    "BaseHttpClient",
    "SupplierPlatformClient",
    "MessageProvider",
    "HttpRelayMessageProvider",
    "TelegramAlertClient",
]
