import hmac
import logging
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from src.integrations.clients.mocks.flip import FlipMockClient
from src.integrations.clients.mocks.odoo import OdooMockClient
from src.integrations.clients.mocks.xendit import XenditMockClient
from src.integrations.clients.real_http.flip import FlipPaymentClient
from src.integrations.clients.real_http.odoo import OdooJsonRpcClient
from src.integrations.clients.real_http.xendit import XenditPaymentClient
from src.integrations.contracts.interfaces import FlipGateway, XenditGateway
from src.integrations.services.order_service import OrderService
from src.payments.gateway_service import PaymentGatewayService
from src.payments.integration_service import PaymentIntegrationService
from src.payments.monitor import AutomatedPaymentMonitor
from src.payments.polling import PaymentPollingService
from src.payments.simulator import PaymentSimulator
from src.payments.webhook_processor import WebhookProcessor
from src.utils.config_loader import PaymentsConfig

logger = logging.getLogger(__name__)

_ALLOWLIST_PATHS = {
    "/",
    "/health",
    "/docs",
    "/docs/oauth2-redirect",
    "/openapi.json",
    "/redoc",
    # Providers authenticate with their own callback tokens
    "/api/v1/webhooks/xendit",
    "/api/v1/webhooks/flip",
}


def get_api_keys():
    keys = os.getenv("API_KEYS", "")
    return [k.strip() for k in keys.split(",") if k.strip()]


async def api_key_protection(
    request: Request = None,  # keep Request type so FastAPI injects it; default None for direct calls/tests
    x_api_key: str = Header(default=None, alias="X-API-KEY"),
):
    debug = os.getenv("API_KEY_DEBUG", "").lower() in ("1", "true", "yes")
    path = request.url.path if request is not None else "<no-request>"

    if request is not None and request.url.path in _ALLOWLIST_PATHS:
        if debug:
            logger.info("API key check: allowlisted path=%s", path)
        return

    valid_keys = get_api_keys()
    candidate = (x_api_key or "").strip()

    ok = bool(candidate) and any(hmac.compare_digest(candidate, k) for k in valid_keys)
    if debug:
        logger.info("API key check: path=%s ok=%s configured_keys=%d", path, ok, len(valid_keys))

    if not ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key",
        )


# ============================================================================
# SERVICE WIRING
# ============================================================================


@dataclass
class PaymentServices:
    config: PaymentsConfig
    flip: FlipGateway
    xendit: XenditGateway
    orders: OrderService
    gateway: PaymentGatewayService
    polling: PaymentPollingService
    integration: PaymentIntegrationService
    webhooks: WebhookProcessor
    monitor: AutomatedPaymentMonitor
    simulator: PaymentSimulator
    sessions: object
    mode: str = "mock"


def should_use_real_integrations() -> bool:
    mode = os.getenv("INTEGRATIONS_MODE", "").strip().lower()
    if mode in {"real", "live"}:
        return True
    if mode in {"mock", "test"}:
        return False
    return bool(os.getenv("FLIP_SECRET_KEY") or os.getenv("XENDIT_SECRET_KEY"))


def build_services(config: PaymentsConfig, sessions, use_real: Optional[bool] = None) -> PaymentServices:
    """Wire clients and services. Odoo stays mocked until ODOO_URL is set."""
    if use_real is None:
        use_real = should_use_real_integrations()

    if use_real:
        flip: FlipGateway = FlipPaymentClient(config.flip)
        xendit: XenditGateway = XenditPaymentClient(config)
    else:
        flip = FlipMockClient(config.flip)
        xendit = XenditMockClient(config)

    if use_real and os.getenv(config.odoo.url_env):
        odoo = OdooJsonRpcClient(config.odoo)
    else:
        odoo = OdooMockClient(model=config.odoo.sale_order_model)

    orders = OrderService(odoo, model=config.odoo.sale_order_model)
    gateway = PaymentGatewayService(flip, xendit, config)
    polling = PaymentPollingService(gateway, orders, config)
    integration = PaymentIntegrationService(gateway, polling, orders, sessions, config)
    webhooks = WebhookProcessor(orders)
    simulator = PaymentSimulator(gateway, orders)
    # Orders confirmed outside the poller (webhook, monitor, simulation) stop being polled
    webhooks.add_listener(integration.release_order)
    simulator.add_listener(integration.release_order)
    logger.info(
        "Payment services wired: providers=%s odoo=%s",
        "real" if use_real else "mock",
        type(odoo).__name__,
    )
    return PaymentServices(
        config=config,
        flip=flip,
        xendit=xendit,
        orders=orders,
        gateway=gateway,
        polling=polling,
        integration=integration,
        webhooks=webhooks,
        monitor=AutomatedPaymentMonitor(gateway, orders, webhooks, config.monitor),
        simulator=simulator,
        sessions=sessions,
        mode="real" if use_real else "mock",
    )


_services: Optional[PaymentServices] = None


def set_services(services: PaymentServices) -> None:
    global _services
    _services = services


def get_services() -> PaymentServices:
    """Dependency for the wired payment services"""
    if _services is None:
        raise HTTPException(status_code=503, detail="Payment services not initialised")
    return _services


def require_simulation(services: PaymentServices) -> None:
    """Simulation endpoints mark orders paid without money; keep them off in real mode unless enabled."""
    if services.mode == "mock":
        return
    if os.getenv("ALLOW_PAYMENT_SIMULATION", "").lower() in ("1", "true", "yes"):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Payment simulation is only available in mock mode or with ALLOW_PAYMENT_SIMULATION set.",
    )
