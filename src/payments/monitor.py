"""
Automated payment monitor.

A safety net for missed webhooks: on a fixed interval it walks the orders that
still wait for a payment, asks the provider for the payment status, and feeds
paid payments through the webhook processor as if the provider had called us.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from src.integrations.contracts.interfaces import PaymentMethod, PaymentStatusResult
from src.integrations.contracts.payments import EXTERNAL_ID_PREFIXES, build_external_id, infer_provider
from src.integrations.services.order_service import COMPLETED_PAYMENT_STATUSES, OrderNotFoundError, OrderService
from src.integrations.services.response_wrappers import OdooRPCError
from src.payments.gateway_service import PaymentGatewayService
from src.payments.webhook_processor import WebhookProcessor
from src.utils.config_loader import MonitorConfig

logger = logging.getLogger(__name__)

# Odoo states in which an order no longer needs a payment
_SETTLED_ODOO_STATES = {"sale", "done", "cancel"}


class AutomatedPaymentMonitor:
    def __init__(
        self,
        gateway: PaymentGatewayService,
        orders: OrderService,
        webhooks: WebhookProcessor,
        config: Optional[MonitorConfig] = None,
    ):
        self.gateway = gateway
        self.orders = orders
        self.webhooks = webhooks
        self.config = config or MonitorConfig()
        self.interval_seconds = self.config.interval_seconds
        self.last_run_at: Optional[datetime] = None
        self.last_summary: Optional[Dict[str, int]] = None
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_monitoring(self, interval_seconds: Optional[float] = None) -> bool:
        """Start the background loop. Returns False if it was already running."""
        if self.is_monitoring:
            logger.info("Payment monitor already running")
            return False
        if interval_seconds:
            self.interval_seconds = interval_seconds
        self._task = asyncio.create_task(self._run())
        logger.info("Payment monitor started (every %ss)", self.interval_seconds)
        return True

    def stop_monitoring(self) -> bool:
        if not self.is_monitoring:
            self._task = None
            return False
        self._task.cancel()
        self._task = None
        logger.info("Payment monitor stopped")
        return True

    def get_monitoring_status(self) -> Dict[str, Any]:
        return {
            "is_monitoring": self.is_monitoring,
            "interval_active": self._task is not None,
            "interval_seconds": self.interval_seconds,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_summary": self.last_summary,
        }

    async def _run(self) -> None:
        while True:
            try:
                await self.check_and_process_pending_payments()
            except Exception:
                logger.exception("Payment monitor run failed")
            await asyncio.sleep(self.interval_seconds)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def check_and_process_pending_payments(self) -> Dict[str, int]:
        summary = {"checked": 0, "confirmed": 0, "updated": 0, "errors": 0}
        orders = await self.orders.get_orders_with_pending_payments()
        logger.debug("Payment monitor: %d order(s) with pending payments", len(orders))

        for order in orders:
            summary["checked"] += 1
            outcome = await self._process_order(order, record_changes=True)
            if outcome in summary:
                summary[outcome] += 1

        self.last_run_at = datetime.utcnow()
        self.last_summary = summary
        if summary["confirmed"] or summary["errors"]:
            logger.info("Payment monitor run: %s", summary)
        return summary

    async def process_existing_completed_payments(self, limit: Optional[int] = None) -> Dict[str, int]:
        """Catch up on webhooks missed while the service was down."""
        summary = {"checked": 0, "confirmed": 0, "updated": 0, "errors": 0}
        orders = await self.orders.get_orders(limit=limit or self.config.catch_up_limit)

        for order in orders:
            if order["odoo_state"] in _SETTLED_ODOO_STATES:
                continue
            info = self.orders.get_payment_info_from_order(order)
            if not info.payment_id or info.payment_status in COMPLETED_PAYMENT_STATUSES:
                continue
            summary["checked"] += 1
            outcome = await self._process_order(order, record_changes=False)
            if outcome in summary:
                summary[outcome] += 1

        logger.info("Catch-up over %d recent order(s): %s", len(orders), summary)
        return summary

    async def simulate_webhook_for_order(self, order_id: str) -> Dict[str, Any]:
        order = await self.orders.get_order_by_id(order_id)
        info = self.orders.get_payment_info_from_order(order)
        method = _method_or_none(info.payment_method) or PaymentMethod.VIRTUAL_ACCOUNT
        return await self.webhooks.simulate_payment_webhook(str(order_id), method)

    async def _process_order(self, order: Dict[str, Any], record_changes: bool) -> Optional[str]:
        order_id = str(order["id"])
        info = self.orders.get_payment_info_from_order(order)
        method = _method_or_none(info.payment_method)
        if not info.payment_id or method is None:
            logger.warning("Order %s has unusable payment info %r", order_id, info)
            return "errors"

        result = await self.gateway.get_payment_status(info.payment_id, payment_method=method)
        if result.error:
            return "errors"

        try:
            if result.is_paid:
                outcome = await self.webhooks.process_webhook(
                    self._completed_webhook(order, info.payment_id, method, result)
                )
                if outcome.get("error"):
                    return "errors"
                return "confirmed" if outcome["processed"] else None

            if record_changes and result.raw_status != info.payment_status:
                await self.orders.update_order_payment_info(order_id, info.payment_id, method.value, result.raw_status)
                return "updated"
        except (OdooRPCError, OrderNotFoundError) as e:
            logger.error("Payment monitor could not update order %s: %s", order_id, e)
            return "errors"
        return None

    @staticmethod
    def _completed_webhook(
        order: Dict[str, Any], payment_id: str, method: PaymentMethod, result: PaymentStatusResult
    ) -> Dict[str, Any]:
        order_id = str(order["id"])
        amount = order["amount_total"]
        millis = int(datetime.utcnow().timestamp() * 1000)
        return {
            "id": payment_id,
            "external_id": build_external_id(EXTERNAL_ID_PREFIXES.get(method, "va"), order_id, millis),
            "reference_id": order_id,
            "status": "COMPLETED",
            "payment_method": method.value,
            "provider": infer_provider(payment_id).value,
            "expected_amount": amount,
            "received_amount": result.paid_amount or amount,
        }


def _method_or_none(value: Optional[str]) -> Optional[PaymentMethod]:
    try:
        return PaymentMethod(value) if value else None
    except ValueError:
        return None
