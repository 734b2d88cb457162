"""
Notification Service - tell suppliers about order events

Platform-linked suppliers get a webhook, manual suppliers get SMS/email.
Every send returns a result value (Sent / Skipped / Failed); callers run it
after their transaction committed, so a failure here never rolls anything
back.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union
import logging

from clinic_orders.core.exceptions import NotificationFailure
from clinic_orders.integrations import (
    SupplierPlatformClient, MessageProvider, HttpRelayMessageProvider, TelegramAlertClient,
)
from clinic_orders.models import Order, SupplierContact
from .order_number import OrderNumber

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sent:
    channel: str
    detail: str = ""


@dataclass(frozen=True)
class Skipped:
    reason: str


@dataclass(frozen=True)
class Failed:
    error: str


NotificationResult = Union[Sent, Skipped, Failed]


class NotificationPort(ABC):
    """Outbound order events, one method per event"""

    @abstractmethod
    def order_created(self, order: Order) -> NotificationResult:
        pass

    @abstractmethod
    def order_cancelled(self, order: Order) -> NotificationResult:
        pass

    @abstractmethod
    def order_completed(self, order: Order, received: Dict[str, int], partial: bool = False) -> NotificationResult:
        """received maps order item id -> quantity received"""
        pass


def dispatch_notification(label: str, send: Callable[[], NotificationResult]) -> NotificationResult:
    """Run one send at the notification boundary; nothing escapes"""
    try:
        result = send()
    except Exception as e:
        logger.error(f"[FAIL] {label}: {e}")
        return Failed(str(e))

    if isinstance(result, Sent):
        logger.info(f"[OK] {label} via {result.channel}")
    elif isinstance(result, Skipped):
        logger.info(f"[SKIP] {label}: {result.reason}")
    else:
        logger.warning(f"[FAIL] {label}: {result.error}")
    return result


class NullNotifier(NotificationPort):
    """Notifier for deployments without any outbound channel"""

    def order_created(self, order):
        return Skipped("notifications disabled")

    def order_cancelled(self, order):
        return Skipped("notifications disabled")

    def order_completed(self, order, received, partial=False):
        return Skipped("notifications disabled")


class SupplierNotifier(NotificationPort):

    def __init__(
        self,
        platform: Optional[SupplierPlatformClient] = None,
        messages: Optional[MessageProvider] = None,
        alerts: Optional[TelegramAlertClient] = None,
    ):
        self.platform = platform or SupplierPlatformClient()
        self.messages = messages or HttpRelayMessageProvider()
        self.alerts = alerts

    # ========== Payloads ==========

    @staticmethod
    def _item_payload(item) -> Dict:
        product = item.product
        return {
            "itemId": str(item.id),
            "productId": str(item.product_id),
            "productName": product.name if product else None,
            "brand": product.brand if product else None,
            "quantity": item.quantity,
            "unitPrice": float(item.unit_price or 0),
            "totalPrice": float(item.total_price or 0),
            "memo": item.memo,
        }

    def _order_payload(self, order: Order) -> Dict:
        contact = order.supplier_contact
        return {
            "orderNo": OrderNumber.parse(order.order_no).external,
            "clinicTenantId": order.tenant_id,
            "supplierTenantId": contact.supplier_tenant_id if contact else None,
            "supplierManagerId": str(contact.linked_manager_id) if contact and contact.linked_manager_id else None,
            "status": order.status,
            "totalAmount": float(order.total_amount or 0),
            "expectedDeliveryDate": order.expected_delivery_date.isoformat() if order.expected_delivery_date else None,
            "memo": order.memo,
            "items": [self._item_payload(item) for item in order.items],
        }

    @staticmethod
    def _message_text(order: Order, event: str) -> str:
        lines = [f"[{event}] Order {order.order_no}"]
        for item in order.items:
            name = item.product.name if item.product else str(item.product_id)
            lines.append(f"- {name} x{item.quantity}")
        lines.append(f"Total: {float(order.total_amount or 0):,.0f}")
        return "\n".join(lines)

    # ========== Channels ==========

    def _alert(self, order: Order, event: str, error: str):
        if self.alerts is None:
            return
        self.alerts.send_message(
            f"<b>Supplier notification failed</b>\nEvent: {event}\nOrder: {order.order_no}\nError: {error}"
        )

    def _via_platform(self, order: Order, event: str, send: Callable[[Dict], Dict], payload: Dict) -> NotificationResult:
        if not self.platform.is_configured:
            return Skipped("supplier platform URL not configured")
        try:
            send(payload)
        except NotificationFailure as e:
            self._alert(order, event, e.message)
            return Failed(e.message)
        return Sent("webhook", payload.get("orderNo", ""))

    def _via_messages(self, order: Order, event: str, contact: SupplierContact) -> NotificationResult:
        if not self.messages.is_configured:
            return Skipped("message relay not configured")
        if not contact.phone and not contact.email:
            return Skipped(f"supplier {contact.company_name} has no phone or email")

        text = self._message_text(order, event)
        channels = []
        try:
            if contact.phone:
                self.messages.send_sms(contact.phone, text)
                channels.append("sms")
            if contact.email:
                self.messages.send_email(contact.email, f"[{event}] Order {order.order_no}", text)
                channels.append("email")
        except NotificationFailure as e:
            self._alert(order, event, e.message)
            return Failed(e.message)
        return Sent("+".join(channels), contact.phone or contact.email)

    def _route(self, order: Order, event: str, platform_send: Callable[[Dict], Dict], payload: Dict) -> NotificationResult:
        contact = order.supplier_contact
        if contact is None:
            return Skipped("order has no supplier")
        if contact.is_platform_linked:
            return self._via_platform(order, event, platform_send, payload)
        return self._via_messages(order, event, contact)

    # ========== Events ==========

    def order_created(self, order: Order) -> NotificationResult:
        return self._route(order, "ORDER", self.platform.create_order, self._order_payload(order))

    def order_cancelled(self, order: Order) -> NotificationResult:
        payload = {
            "orderNo": OrderNumber.parse(order.order_no).external,
            "clinicTenantId": order.tenant_id,
            "status": order.status,
        }
        return self._route(order, "CANCEL", self.platform.cancel_order, payload)

    def order_completed(self, order: Order, received: Dict[str, int], partial: bool = False) -> NotificationResult:
        # Manual suppliers are not told about receipts
        contact = order.supplier_contact
        if contact is None or not contact.is_platform_linked:
            return Skipped("receipts are only reported to platform-linked suppliers")

        payload = {
            "orderNo": OrderNumber.parse(order.order_no).external,
            "clinicTenantId": order.tenant_id,
            "isPartial": partial,
            "items": [
                {"itemId": item_id, "quantity": qty}
                for item_id, qty in received.items()
            ],
        }
        return self._via_platform(order, "COMPLETE", self.platform.complete_order, payload)
