"""
Telegram operator alerts
"""
from typing import Optional
import logging

import httpx

from clinic_orders.core.config import settings
from clinic_orders.core.exceptions import NotificationFailure
from .base import BaseHttpClient

logger = logging.getLogger(__name__)


class TelegramAlertClient(BaseHttpClient):
    CLIENT_NAME = "telegram"
    BASE_URL = "https://api.telegram.org"

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        enabled: Optional[bool] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(base_url=self.BASE_URL, timeout=settings.WEBHOOK_TIMEOUT_SECONDS, transport=transport)
        self.bot_token = bot_token if bot_token is not None else settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id if chat_id is not None else settings.TELEGRAM_CHAT_ID
        self.enabled = settings.ENABLE_TELEGRAM_NOTIFICATIONS if enabled is None else enabled

    @property
    def is_configured(self) -> bool:
        return bool(self.enabled and self.bot_token and self.chat_id)

    def send_message(self, text: str) -> bool:
        """Send an alert; never raises"""
        if not self.is_configured:
            logger.debug("[SKIP] Telegram alerts disabled")
            return False

        try:
            self._post(f"/bot{self.bot_token}/sendMessage", {
                "chat_id": self.chat_id,
                "text": text,
                "parse_mode": "HTML",
            })
            return True
        except NotificationFailure as e:
            logger.error(f"[FAIL] Telegram alert not sent: {e.message}")
            return False
