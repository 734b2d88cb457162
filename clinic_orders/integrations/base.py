"""
Base HTTP Client - shared plumbing for outbound integrations
"""
from abc import ABC
from typing import Optional, Dict, Any
import logging

import httpx

from clinic_orders.core.exceptions import NotificationFailure

logger = logging.getLogger(__name__)


class BaseHttpClient(ABC):
    """
    Base class for the HTTP integrations (supplier platform, message relay,
    Telegram). One short-lived httpx.Client per call, bounded timeout.
    """
    CLIENT_NAME: str = "base"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        # Injected in tests (httpx.MockTransport)
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def _build_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _build_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _log_api_call(self, method: str, endpoint: str, status_code: int):
        logger.info(f"[{self.CLIENT_NAME}] {method} {endpoint} - {status_code}")

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST JSON and return the decoded body.

        Raises NotificationFailure on transport errors and non-2xx replies.
        """
        url = self._build_url(endpoint)
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, headers=self._build_headers(), json=payload)
        except httpx.RequestError as e:
            logger.error(f"[{self.CLIENT_NAME}] request error on {endpoint}: {e}")
            raise NotificationFailure(f"{self.CLIENT_NAME} request failed: {e}") from e

        self._log_api_call("POST", endpoint, response.status_code)
        if not response.is_success:
            raise NotificationFailure(
                f"{self.CLIENT_NAME} returned {response.status_code}: {response.text[:200]}"
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}
