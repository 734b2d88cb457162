"""
ClinicOrders - Clinic Inventory & Supplier Ordering Engine
FastAPI Application Entry Point
"""
import uvicorn
from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from clinic_orders.core import settings, engine, Base
from clinic_orders.core.log_config import setup_logging
from clinic_orders.api.router import api_router, register_exception_handlers
from clinic_orders.integrations import TelegramAlertClient
from clinic_orders.jobs import start_scheduler, stop_scheduler
from clinic_orders.services import NullNotifier, SupplierNotifier, ViewCache

logger = logging.getLogger(__name__)

# Lifespan for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    # Startup: Create tables if not exist
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} starting on port {settings.APP_PORT}")

    app.state.view_cache = ViewCache(
        ttl_seconds=settings.VIEW_CACHE_TTL_SECONDS,
        max_size=settings.VIEW_CACHE_MAX_SIZE,
    )
    if settings.ENABLE_SUPPLIER_NOTIFICATIONS:
        app.state.notifier = SupplierNotifier(alerts=TelegramAlertClient())
    else:
        app.state.notifier = NullNotifier()

    # Start background scheduler for housekeeping
    if settings.ENABLE_SCHEDULER:
        try:
            start_scheduler(app.state.view_cache)
        except Exception as e:
            logger.warning(f"Could not start scheduler: {e}")

    yield

    # Shutdown
    stop_scheduler()
    app.state.view_cache.shutdown()
    logger.info(f"{settings.APP_NAME} shutting down")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Clinic inventory, supplier ordering & dispensing engine",
    version="1.0.0",
    lifespan=lifespan
)

register_exception_handlers(app)

# Include routers
app.include_router(api_router, prefix="/api")

# Health check
@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.APP_NAME}

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.APP_PORT,
        reload=settings.DEBUG
    )
