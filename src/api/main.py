"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os
from datetime import datetime

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.dependencies import api_key_protection, build_services, set_services
from src.api.endpoints.monitor import router as monitor_router
from src.api.endpoints.payments import payments_api
from src.api.endpoints.webhooks import router as webhooks_router
from src.error_handler import ErrorHandler
from src.integrations.clients.mocks.odoo import OdooMockClient
from src.integrations.services.order_service import OrderNotFoundError
from src.integrations.services.response_wrappers import (
    IntegrationResponseError,
    OdooRPCError,
    PaymentGatewayError,
    PaymentNotFoundError,
)
from src.utils.config_loader import load_payments_config

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Petshop Payment Gateway API",
    description="Flip and Xendit payment orchestration with Odoo order reconciliation",
    version="1.0.0",
    dependencies=[Depends(api_key_protection)],  # protect everything by default
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================

payments_config = load_payments_config()

# Session store: real Redis when REDIS_URL is set, else in-memory stub
if os.getenv("REDIS_URL"):
    from src.database.redis_real import PaymentSessionStore

    session_store = PaymentSessionStore(url=os.environ["REDIS_URL"])
else:
    from src.database.redis import PaymentSessionStore

    session_store = PaymentSessionStore()

services = build_services(payments_config, session_store)
set_services(services)

if isinstance(services.orders.client, OdooMockClient):
    services.orders.client.seed_demo_orders()

app.include_router(payments_api, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(webhooks_router, prefix="/api/v1")
app.include_router(monitor_router, prefix="/api/v1/monitor")

error_handler = ErrorHandler()


async def payment_error_response(request: Request, exc: Exception) -> JSONResponse:
    payload = error_handler.handle_exception(exc, context={"path": request.url.path})
    return JSONResponse(status_code=payload["status_code"], content={"detail": payload})


for _exc_type in (PaymentGatewayError, IntegrationResponseError, OdooRPCError, PaymentNotFoundError, OrderNotFoundError):
    app.add_exception_handler(_exc_type, payment_error_response)


# ============================================================================
# ENDPOINTS
# ============================================================================
@app.get("/", tags=["Health"])
async def root():
    return {"service": "Petshop Payment Gateway API", "status": "healthy", "version": "1.0.0", "timestamp": datetime.now().isoformat()}


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check (integration mode, session store, monitor)."""
    return {
        "status": "healthy",
        "mode": services.mode,
        "sessions": {"redis": session_store.ping(), "active": len(session_store.list_sessions())},
        "monitor": services.monitor.get_monitoring_status(),
        "timestamp": datetime.now().isoformat(),
    }


# ============================================================================
# STARTUP/SHUTDOWN EVENTS
# ============================================================================
@app.on_event("startup")
async def startup_event():
    """Start background monitoring and pick up payments left pending by a previous process."""
    logger.info("Starting Petshop Payment Gateway API (%s integrations)...", services.mode)

    if session_store.ping():
        logger.info("Session store connection successful")
    else:
        logger.warning("Session store connection failed")

    if payments_config.monitor.enabled:
        services.monitor.start_monitoring(payments_config.monitor.interval_seconds)

    try:
        await services.integration.resume_payment_monitoring()
    except Exception as e:
        logger.error(f"Error resuming payment monitoring: {str(e)}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down Petshop Payment Gateway API...")
    services.monitor.stop_monitoring()
    services.polling.stop_all_polling()
