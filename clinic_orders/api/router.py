"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from datetime import datetime
import logging

from clinic_orders.core.exceptions import DomainError

# Import sub-routers
from clinic_orders.api.webhooks import webhook_router
from clinic_orders.api.orders import order_router
from clinic_orders.api.outbound import outbound_router
from clinic_orders.api.returns import return_router

logger = logging.getLogger(__name__)

api_router = APIRouter(tags=["API"])

# Webhooks first: fixed /order/... paths before /order/{order_id}
api_router.include_router(webhook_router)
api_router.include_router(order_router)
api_router.include_router(outbound_router)
api_router.include_router(return_router)


@api_router.get("/status")
def api_status():
    return {"status": "ok", "version": "1.0.0", "timestamp": datetime.now().isoformat()}


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        if exc.status_code >= 500:
            logger.error(f"[FAIL] {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
