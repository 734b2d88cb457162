"""
Request-scoped dependencies: caller identity, webhook auth, shared services
"""
import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

from clinic_orders.core.config import settings
from clinic_orders.core.database import SessionLocal
from clinic_orders.core.exceptions import ValidationError
from clinic_orders.services import NotificationPort, ViewCache

logger = logging.getLogger(__name__)


def get_tenant_id(x_tenant_id: Optional[str] = Header(None)) -> str:
    if not x_tenant_id:
        raise ValidationError("Tenant ID is required")
    return x_tenant_id


def get_session_id(x_session_id: Optional[str] = Header(None)) -> str:
    if not x_session_id:
        raise ValidationError("Session ID is required")
    return x_session_id


def get_optional_session_id(x_session_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_session_id or None


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id or None


def verify_supplier_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Inbound supplier callbacks must carry the shared x-api-key"""
    expected = settings.SUPPLIER_WEBHOOK_API_KEY
    if not expected:
        logger.error("Supplier webhook API key not configured")
        raise HTTPException(status_code=401, detail="API key not configured on server")
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def get_view_cache(request: Request) -> ViewCache:
    return request.app.state.view_cache


def get_notifier(request: Request) -> NotificationPort:
    return request.app.state.notifier


def get_session_factory():
    """Session factory for loaders that run outside the request session"""
    return SessionLocal
