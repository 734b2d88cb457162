"""
Message Providers - SMS / email for suppliers without a platform account
"""
from abc import ABC, abstractmethod
from typing import Optional
import logging

import httpx

from clinic_orders.core.config import settings
from .base import BaseHttpClient

logger = logging.getLogger(__name__)


class MessageProvider(ABC):

    @abstractmethod
    def send_sms(self, phone: str, text: str) -> bool:
        """Send one SMS. Raises NotificationFailure on failure."""
        pass

    @abstractmethod
    def send_email(self, to: str, subject: str, body: str) -> bool:
        """Send one email. Raises NotificationFailure on failure."""
        pass

    @property
    def is_configured(self) -> bool:
        return True


class HttpRelayMessageProvider(BaseHttpClient, MessageProvider):
    """
    Hands messages to an HTTP relay (POST {relay}/sms, {relay}/email).
    Unconfigured when MESSAGE_RELAY_URL is empty.
    """
    CLIENT_NAME = "message-relay"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url if base_url is not None else settings.MESSAGE_RELAY_URL,
            api_key=api_key if api_key is not None else settings.MESSAGE_RELAY_API_KEY,
            timeout=timeout or settings.WEBHOOK_TIMEOUT_SECONDS,
            transport=transport,
        )

    def send_sms(self, phone: str, text: str) -> bool:
        self._post("/sms", {"to": phone, "text": text})
        return True

    def send_email(self, to: str, subject: str, body: str) -> bool:
        self._post("/email", {"to": to, "subject": subject, "body": body})
        return True
