"""
Integration Service - inbound supplier webhook log
"""
from typing import Optional, List
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from clinic_orders.models.integration import WebhookLog

logger = logging.getLogger(__name__)


# ========== Webhook Logs ==========

def log_webhook(
    db: Session,
    event_type: str,
    payload: dict,
    tenant_id: str = None,
    reference: str = None,
    ip_address: str = None,
    source: str = "supplier",
) -> WebhookLog:
    """Log incoming webhook"""
    log = WebhookLog(
        source=source,
        event_type=event_type,
        tenant_id=tenant_id,
        reference=reference,
        payload=payload,
        ip_address=ip_address,
        processed=False,
    )

    db.add(log)
    db.commit()
    db.refresh(log)

    return log


def mark_webhook_processed(
    db: Session,
    log_id: UUID,
    result: str,
    error: str = None,
) -> Optional[WebhookLog]:
    """Mark webhook as processed"""
    log = db.query(WebhookLog).filter(WebhookLog.id == log_id).first()
    if not log:
        return None

    log.mark_processed(result, error)
    db.commit()
    db.refresh(log)

    return log


def get_webhook_logs(
    db: Session,
    tenant_id: Optional[str] = None,
    reference: Optional[str] = None,
    unprocessed_only: bool = False,
    limit: int = 100,
) -> List[WebhookLog]:
    """Recent webhooks, newest first"""
    query = db.query(WebhookLog)

    if tenant_id:
        query = query.filter(WebhookLog.tenant_id == tenant_id)
    if reference:
        query = query.filter(WebhookLog.reference == reference)
    if unprocessed_only:
        query = query.filter(WebhookLog.processed == False)

    return query.order_by(WebhookLog.received_at.desc()).limit(limit).all()
