"""Pytest fixtures for payment gateway, order and webhook tests."""

from datetime import datetime, timedelta

import pytest

from src.database.redis import PaymentSessionStore
from src.integrations.clients.mocks.flip import FlipMockClient
from src.integrations.clients.mocks.odoo import OdooMockClient
from src.integrations.clients.mocks.xendit import XenditMockClient
from src.integrations.services.order_service import OrderService
from src.payments.gateway_service import PaymentGatewayService
from src.payments.integration_service import PaymentIntegrationService
from src.payments.monitor import AutomatedPaymentMonitor
from src.payments.polling import PaymentPollingService
from src.payments.simulator import PaymentSimulator
from src.payments.webhook_processor import WebhookProcessor
from src.utils.config_loader import PaymentsConfig


class FakeClock:
    """Callable clock for services that take a `now` function."""

    def __init__(self, start: datetime = datetime(2025, 8, 18, 12, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def payments_config():
    return PaymentsConfig()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def odoo():
    """In-memory Odoo with no orders."""
    return OdooMockClient()


@pytest.fixture
def waiting_order(odoo):
    """Order 35, draft and waiting for a 150.000 IDR payment."""
    return odoo.add_order(35, note="[WAITING_PAYMENT] Kirim sore", amount_total=150000.0)


@pytest.fixture
def orders(odoo):
    return OrderService(odoo)


@pytest.fixture
def flip(payments_config):
    return FlipMockClient(payments_config.flip)


@pytest.fixture
def xendit(payments_config):
    return XenditMockClient(payments_config)


@pytest.fixture
def gateway(flip, xendit, payments_config):
    return PaymentGatewayService(flip, xendit, payments_config)


@pytest.fixture
def polling(gateway, orders, payments_config, clock):
    return PaymentPollingService(gateway, orders, payments_config, now=clock)


@pytest.fixture
def sessions():
    return PaymentSessionStore()


@pytest.fixture
def integration(gateway, polling, orders, sessions, payments_config):
    return PaymentIntegrationService(gateway, polling, orders, sessions, payments_config)


@pytest.fixture
def webhooks(orders):
    return WebhookProcessor(orders)


@pytest.fixture
def monitor(gateway, orders, webhooks, payments_config):
    return AutomatedPaymentMonitor(gateway, orders, webhooks, payments_config.monitor)


@pytest.fixture
def simulator(gateway, orders):
    return PaymentSimulator(gateway, orders)
