"""
Webhook API Endpoints - callbacks from the supplier platform

Every callback is logged to webhook_log first. An unknown order or return
answers 200 with success=false so the supplier does not retry forever.
"""
from fastapi import APIRouter, Request, Depends
from sqlalchemy.orm import Session
from typing import Callable, Dict
import logging

from clinic_orders.core import get_db
from clinic_orders.core.exceptions import DomainError, NotFoundError
from clinic_orders.models import WebhookLog
from clinic_orders.schemas import SupplierConfirmationPayload, OrderSplitPayload, ReturnCompletionPayload
from clinic_orders.services import integration_service, ReconciliationService, ReturnService, ViewCache
from .deps import verify_supplier_api_key, get_view_cache

logger = logging.getLogger(__name__)

webhook_router = APIRouter(tags=["Webhooks"], dependencies=[Depends(verify_supplier_api_key)])


def _process(db: Session, log: WebhookLog, handler: Callable[[], Dict]) -> Dict:
    """Run a webhook handler and record the outcome on its log row"""
    try:
        result = handler()
    except NotFoundError as e:
        integration_service.mark_webhook_processed(db, log.id, "NOT_FOUND", e.message)
        logger.warning(f"[SKIP] Webhook {log.event_type} {log.reference}: {e.message}")
        return {"success": False, "message": e.message}
    except DomainError as e:
        integration_service.mark_webhook_processed(db, log.id, "FAILED", e.message)
        logger.error(f"[FAIL] Webhook {log.event_type} {log.reference}: {e.message}")
        raise
    except Exception as e:
        db.rollback()
        integration_service.mark_webhook_processed(db, log.id, "FAILED", str(e))
        logger.error(f"[FAIL] Webhook {log.event_type} {log.reference}: {e}")
        raise

    outcome = "SUCCESS" if result.get("success") else "IGNORED"
    integration_service.mark_webhook_processed(db, log.id, outcome, result.get("message"))
    logger.info(f"Webhook {log.event_type} {log.reference} -> {outcome}")
    return result


def _client_ip(request: Request):
    return request.client.host if request.client else None


# ========== Order confirmation ==========

@webhook_router.post("/order/supplier-confirmed")
def supplier_confirmed(
    payload: SupplierConfirmationPayload,
    request: Request,
    db: Session = Depends(get_db),
    cache: ViewCache = Depends(get_view_cache),
):
    """Supplier confirmed (with adjustments) or rejected an order"""
    log = integration_service.log_webhook(
        db,
        event_type="supplier_confirmed",
        payload=payload.model_dump(mode="json", by_alias=True),
        tenant_id=payload.tenant_id,
        reference=payload.order_no,
        ip_address=_client_ip(request),
    )
    return _process(db, log, lambda: ReconciliationService(db, cache).apply_confirmation(payload))


# ========== Order split ==========

@webhook_router.post("/order/order-split")
def order_split(
    payload: OrderSplitPayload,
    request: Request,
    db: Session = Depends(get_db),
    cache: ViewCache = Depends(get_view_cache),
):
    """Supplier split one order into two"""
    log = integration_service.log_webhook(
        db,
        event_type="order_split",
        payload=payload.model_dump(mode="json", by_alias=True),
        tenant_id=payload.tenant_id,
        reference=payload.original_order_no,
        ip_address=_client_ip(request),
    )
    return _process(db, log, lambda: ReconciliationService(db, cache).apply_split(payload))


# ========== Return completion ==========

@webhook_router.post("/order-returns/webhook/complete")
def return_completed(
    payload: ReturnCompletionPayload,
    request: Request,
    db: Session = Depends(get_db),
):
    """Supplier finished processing a return"""
    log = integration_service.log_webhook(
        db,
        event_type="return_completed",
        payload=payload.model_dump(mode="json", by_alias=True),
        tenant_id=payload.tenant_id,
        reference=payload.return_no,
        ip_address=_client_ip(request),
    )
    return _process(db, log, lambda: ReturnService(db).complete_from_webhook(payload))
