"""
Payment polling.

Each pending payment gets its own asyncio task that asks the provider for the
payment status every `poll_interval_seconds` until the payment is paid,
failed, expired, or `max_polling_seconds` has passed.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from src.integrations.contracts.interfaces import PaymentMethod, PaymentProvider, PaymentStatus, PendingPayment
from src.integrations.services.order_service import COMPLETED_PAYMENT_STATUSES, OrderNotFoundError, OrderService
from src.integrations.services.response_wrappers import OdooRPCError
from src.payments.gateway_service import PaymentGatewayService
from src.utils.config_loader import PollingSettings, PaymentsConfig

logger = logging.getLogger(__name__)

PaymentListener = Callable[[str, str, Dict[str, Any]], Awaitable[None]]

MESSAGE_PAID = "Pembayaran berhasil! Status pesanan telah diperbarui."
MESSAGE_CHECK_ERROR = "Terjadi kesalahan saat mengecek status pembayaran. Silakan coba lagi."
MESSAGE_FAILED = "Pembayaran gagal atau telah expired. Silakan buat pesanan baru."
MESSAGE_PENDING = "Status pembayaran: {status}. Silakan selesaikan pembayaran."

_FAILED_STATUSES = {PaymentStatus.FAILED, PaymentStatus.EXPIRED}

# Odoo states of an order that has already been paid
_PAID_ODOO_STATES = {"sale", "done"}


class PaymentPollingService:
    def __init__(
        self,
        gateway: PaymentGatewayService,
        orders: OrderService,
        config: Optional[PaymentsConfig] = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.gateway = gateway
        self.orders = orders
        self.settings: Dict[PaymentMethod, PollingSettings] = (config or PaymentsConfig()).polling
        self._now = now
        self._pending: Dict[str, PendingPayment] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._success_listeners: List[PaymentListener] = []
        self._failure_listeners: List[PaymentListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_success_listener(self, listener: PaymentListener) -> None:
        self._success_listeners.append(listener)

    def add_failure_listener(self, listener: PaymentListener) -> None:
        self._failure_listeners.append(listener)

    async def _notify(self, listeners: List[PaymentListener], payment_id: str, order_id: str, result: Dict[str, Any]) -> None:
        for listener in listeners:
            try:
                await listener(payment_id, order_id, result)
            except Exception:
                logger.exception("Payment listener failed for %s", payment_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_polling(
        self,
        payment_id: str,
        payment_method: PaymentMethod,
        order_id: str,
        provider: Optional[PaymentProvider] = None,
        settings: Optional[PollingSettings] = None,
    ) -> PendingPayment:
        """Start (or restart) polling for a payment. Must be called from a running event loop."""
        self.stop_polling(payment_id)

        payment_method = PaymentMethod(payment_method)
        defaults = settings or self.settings.get(payment_method) or self.settings[PaymentMethod.QRIS]
        pending = PendingPayment(
            payment_id=payment_id,
            payment_method=payment_method,
            order_id=str(order_id),
            provider=provider,
            max_polling_seconds=defaults.max_polling_seconds,
            poll_interval_seconds=defaults.poll_interval_seconds,
            start_time=self._now(),
        )
        self._pending[payment_id] = pending
        self._tasks[payment_id] = asyncio.create_task(self._run(payment_id))
        logger.info(
            "Polling %s payment %s for order %s every %ss",
            payment_method.value,
            payment_id,
            order_id,
            pending.poll_interval_seconds,
        )
        return pending

    def stop_polling(self, payment_id: str) -> None:
        task = self._tasks.pop(payment_id, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        if self._pending.pop(payment_id, None) is not None:
            logger.info("Stopped polling payment %s", payment_id)

    def stop_all_polling(self) -> None:
        for payment_id in list(self._pending):
            self.stop_polling(payment_id)

    def is_polling(self, payment_id: str) -> bool:
        return payment_id in self._pending

    def get_pending_payments(self) -> List[PendingPayment]:
        return list(self._pending.values())

    async def _run(self, payment_id: str) -> None:
        while payment_id in self._pending:
            await asyncio.sleep(self._pending[payment_id].poll_interval_seconds)
            try:
                await self.poll_payment_status(payment_id)
            except Exception:
                logger.exception("Polling tick failed for payment %s", payment_id)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_payment_status(self, payment_id: str) -> Optional[str]:
        """
        Run one polling tick.

        Returns "timeout", "paid", "failed" or "pending", or None when the
        payment is not being polled. An order that was confirmed elsewhere
        (webhook, monitor, simulation) counts as "paid" and is never cancelled.
        """
        pending = self._pending.get(payment_id)
        if pending is None:
            return None

        elapsed = (self._now() - pending.start_time).total_seconds()
        if elapsed > pending.max_polling_seconds:
            self.stop_polling(payment_id)
            if await self._order_already_paid(pending.order_id):
                await self._notify(self._success_listeners, payment_id, pending.order_id, _settled_result())
                return "paid"
            logger.info("Polling window for payment %s elapsed; cancelling order %s", payment_id, pending.order_id)
            await self._set_order_status(pending.order_id, "cancelled")
            await self._notify(self._failure_listeners, payment_id, pending.order_id, _timeout_result())
            return "timeout"

        result = await self.gateway.check_and_update_payment(
            payment_id,
            pending.payment_method,
            pending.order_id,
            provider=pending.provider,
            on_paid=self._confirm_order,
        )

        if result["is_paid"]:
            self.stop_polling(payment_id)
            await self._notify(self._success_listeners, payment_id, pending.order_id, result)
            return "paid"

        if result["status"] in _FAILED_STATUSES:
            self.stop_polling(payment_id)
            if await self._order_already_paid(pending.order_id):
                logger.info(
                    "Payment %s is %s but order %s is already paid", payment_id, result["raw_status"], pending.order_id
                )
                await self._notify(self._success_listeners, payment_id, pending.order_id, _settled_result())
                return "paid"
            await self._set_order_status(pending.order_id, "cancelled")
            await self._notify(self._failure_listeners, payment_id, pending.order_id, result)
            return "failed"

        return "pending"

    async def manual_payment_check(
        self,
        payment_id: str,
        payment_method: PaymentMethod,
        order_id: str,
        provider: Optional[PaymentProvider] = None,
    ) -> Dict[str, Any]:
        result = await self.gateway.check_and_update_payment(
            payment_id,
            PaymentMethod(payment_method),
            str(order_id),
            provider=provider,
            on_paid=self._confirm_order,
        )
        status = result["status"].value

        if result["is_paid"]:
            self.stop_polling(payment_id)
            await self._notify(self._success_listeners, payment_id, str(order_id), result)
            message = MESSAGE_PAID
        elif result["error"]:
            status = "ERROR"
            message = MESSAGE_CHECK_ERROR
        elif result["status"] in _FAILED_STATUSES:
            self.stop_polling(payment_id)
            await self._notify(self._failure_listeners, payment_id, str(order_id), result)
            message = MESSAGE_FAILED
        else:
            message = MESSAGE_PENDING.format(status=status)

        return {"is_paid": result["is_paid"], "status": status, "message": message}

    # ------------------------------------------------------------------
    # Order updates
    # ------------------------------------------------------------------

    async def _confirm_order(self, order_id: str, is_paid: bool, payment_data: Optional[Dict[str, Any]]) -> None:
        if is_paid:
            await self.orders.update_order_status(order_id, "payment_confirmed")
            logger.info("Order %s confirmed as paid", order_id)

    async def _order_already_paid(self, order_id: str) -> bool:
        try:
            order = await self.orders.get_order_by_id(order_id)
        except (OdooRPCError, OrderNotFoundError) as e:
            logger.warning("Could not re-read order %s before cancelling: %s", order_id, e)
            return False
        info = self.orders.get_payment_info_from_order(order)
        return info.payment_status in COMPLETED_PAYMENT_STATUSES or order["odoo_state"] in _PAID_ODOO_STATES

    async def _set_order_status(self, order_id: str, status: str) -> None:
        try:
            await self.orders.update_order_status(order_id, status)
        except (OdooRPCError, OrderNotFoundError) as e:
            logger.error("Could not set order %s to %s: %s", order_id, status, e)


def _settled_result() -> Dict[str, Any]:
    return {
        "is_paid": True,
        "status": PaymentStatus.PAID,
        "raw_status": "ORDER_CONFIRMED",
        "error": None,
        "order_updated": False,
        "payment_data": None,
    }


def _timeout_result() -> Dict[str, Any]:
    return {
        "is_paid": False,
        "status": PaymentStatus.EXPIRED,
        "raw_status": "POLLING_TIMEOUT",
        "error": None,
        "order_updated": True,
        "payment_data": None,
    }
