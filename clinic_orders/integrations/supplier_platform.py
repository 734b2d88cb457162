"""
Supplier Platform Client
Pushes order events to the supplier backend, authenticated with x-api-key.

    POST /supplier/orders           order created
    POST /supplier/orders/cancel    order cancelled
    POST /supplier/orders/complete  order received (fully or partially)
"""
from typing import Optional, Dict, Any
import logging

import httpx

from clinic_orders.core.config import settings
from .base import BaseHttpClient

logger = logging.getLogger(__name__)


class SupplierPlatformClient(BaseHttpClient):
    CLIENT_NAME = "supplier-platform"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url if base_url is not None else settings.SUPPLIER_BACKEND_URL,
            api_key=api_key if api_key is not None else settings.SUPPLIER_BACKEND_API_KEY,
            timeout=timeout or settings.WEBHOOK_TIMEOUT_SECONDS,
            transport=transport,
        )

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._post("/supplier/orders", payload)

    def cancel_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._post("/supplier/orders/cancel", payload)

    def complete_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._post("/supplier/orders/complete", payload)
