"""
Payment integration service.

Glues the gateway, the order notes in Odoo and the polling service together:
a payment created here is written to its order, remembered as a session and
polled until it settles.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.integrations.contracts.interfaces import (
    PaymentMethod,
    PaymentProvider,
    PaymentSession,
    UnifiedPaymentRequest,
)
from src.integrations.contracts.payments import (
    infer_provider,
    payment_response_to_dict,
    session_from_dict,
    session_to_dict,
)
from src.integrations.services.order_service import OrderNotFoundError, OrderService
from src.integrations.services.response_wrappers import (
    IntegrationResponseError,
    OdooRPCError,
    PaymentGatewayError,
)
from src.payments.gateway_service import PaymentGatewayService
from src.payments.polling import PaymentPollingService
from src.utils.config_loader import PaymentsConfig

logger = logging.getLogger(__name__)

PAYMENT_METHOD_NAMES = {
    PaymentMethod.QRIS: "QRIS (Scan QR)",
    PaymentMethod.VIRTUAL_ACCOUNT: "Virtual Account",
    PaymentMethod.EWALLET: "E-Wallet",
    PaymentMethod.CARDS: "Kartu Kredit/Debit",
}

# Methods offered at checkout, in display order
CHECKOUT_METHODS = [PaymentMethod.QRIS, PaymentMethod.VIRTUAL_ACCOUNT, PaymentMethod.EWALLET]

_FEE_BEARING_METHODS = {PaymentMethod.QRIS, PaymentMethod.EWALLET, PaymentMethod.VIRTUAL_ACCOUNT}

MESSAGE_NO_PAYMENT = "Tidak ada informasi pembayaran untuk pesanan ini."
MESSAGE_MANUAL_CHECK_ERROR = "Terjadi kesalahan saat mengecek pembayaran. Silakan coba lagi."


class PaymentIntegrationService:
    def __init__(
        self,
        gateway: PaymentGatewayService,
        polling: PaymentPollingService,
        orders: OrderService,
        sessions,
        config: Optional[PaymentsConfig] = None,
    ):
        self.gateway = gateway
        self.polling = polling
        self.orders = orders
        # PaymentSessionStore from src.database.redis or src.database.redis_real
        self.sessions = sessions
        self.config = config or PaymentsConfig()
        # Sessions live from payment creation until the payment settles or times out
        self.polling.add_success_listener(self._release_settled_payment)
        self.polling.add_failure_listener(self._release_settled_payment)

    async def create_payment_with_monitoring(
        self,
        order: Dict[str, Any],
        payment_method: PaymentMethod,
        payment_options: Optional[Dict[str, Any]] = None,
        preferred_provider: Optional[PaymentProvider] = None,
    ) -> Dict[str, Any]:
        """
        Create a payment for `order` and start watching it.

        `order` carries order_id, amount, customer_name and optionally
        customer_email, customer_phone and description. Failures are returned
        as `success=False` with `error` and `error_code` (INVALID_REQUEST or
        GATEWAY_ERROR) rather than raised.
        """
        payment_method = PaymentMethod(payment_method)
        request = UnifiedPaymentRequest(
            order_id=str(order.get("order_id") or ""),
            amount=float(order.get("amount") or 0),
            payment_method=payment_method,
            customer_name=order.get("customer_name") or "",
            customer_email=order.get("customer_email"),
            customer_phone=order.get("customer_phone"),
            description=order.get("description"),
        )

        try:
            response = await self.gateway.create_payment(request, preferred_provider, payment_options)
            if not response.payment_id:
                raise IntegrationResponseError("Failed to create payment - no payment ID returned")

            await self.orders.update_order_payment_info(
                request.order_id, response.payment_id, payment_method.value, response.status.value
            )

            session = PaymentSession(
                order_id=request.order_id,
                payment_id=response.payment_id,
                payment_method=payment_method,
                provider=response.provider,
                amount=request.amount,
                payment_data=payment_response_to_dict(response),
            )
            self.sessions.set_session(response.payment_id, session_to_dict(session))
            self.polling.start_polling(response.payment_id, payment_method, request.order_id, response.provider)
        except (PaymentGatewayError, IntegrationResponseError, OdooRPCError, OrderNotFoundError) as e:
            logger.error("Payment creation failed for order %s: %s", request.order_id, e)
            return {"success": False, "error": str(e), "error_code": "GATEWAY_ERROR"}
        except ValueError as e:
            logger.warning("Rejected payment request for order %s: %s", request.order_id, e)
            return {"success": False, "error": str(e), "error_code": "INVALID_REQUEST"}

        result: Dict[str, Any] = {
            "success": True,
            "payment_id": response.payment_id,
            "provider": response.provider.value,
            "payment_data": payment_response_to_dict(response),
        }
        if payment_method == PaymentMethod.QRIS:
            result["qr_string"] = response.qr_string
            result["payment_url"] = response.payment_url
        elif payment_method == PaymentMethod.VIRTUAL_ACCOUNT:
            result["account_number"] = response.account_number
            result["bank_code"] = response.bank_code
        elif payment_method == PaymentMethod.EWALLET:
            result["payment_url"] = response.payment_url
        return result

    async def check_payment_manually(self, order_id: str) -> Dict[str, Any]:
        try:
            order = await self.orders.get_order_by_id(order_id)
            info = self.orders.get_payment_info_from_order(order)
            if not info.payment_id or not info.payment_method:
                return {"success": False, "is_paid": False, "status": "NO_PAYMENT", "message": MESSAGE_NO_PAYMENT}

            session = self.get_payment_session(info.payment_id)
            provider = session.provider if session else infer_provider(info.payment_id)
            result = await self.polling.manual_payment_check(
                info.payment_id, PaymentMethod(info.payment_method), str(order_id), provider
            )
        except (OdooRPCError, OrderNotFoundError, ValueError) as e:
            logger.error("Manual payment check failed for order %s: %s", order_id, e)
            return {"success": False, "is_paid": False, "status": "ERROR", "message": MESSAGE_MANUAL_CHECK_ERROR}

        return {"success": True, **result}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_payment_session(self, payment_id: str) -> Optional[PaymentSession]:
        data = self.sessions.get_session(payment_id)
        return session_from_dict(data) if data else None

    def remove_payment_session(self, payment_id: str) -> bool:
        self.polling.stop_polling(payment_id)
        return self.sessions.delete_session(payment_id)

    def get_active_payment_sessions(self) -> List[PaymentSession]:
        return [session_from_dict(data) for data in self.sessions.list_sessions()]

    async def release_order(self, order_id: str, event: Optional[Any] = None) -> List[str]:
        """
        Stop polling and drop the sessions of an order confirmed outside the
        poller (webhook, payment monitor, simulation). Returns the released
        payment ids.
        """
        order_id = str(order_id)
        payment_ids = {p.payment_id for p in self.polling.get_pending_payments() if p.order_id == order_id}
        payment_ids.update(s.payment_id for s in self.get_active_payment_sessions() if s.order_id == order_id)
        for payment_id in payment_ids:
            self.remove_payment_session(payment_id)
        if payment_ids:
            logger.info("Released %d payment(s) of confirmed order %s", len(payment_ids), order_id)
        return sorted(payment_ids)

    async def _release_settled_payment(self, payment_id: str, order_id: str, result: Dict[str, Any]) -> None:
        if self.sessions.delete_session(payment_id):
            logger.info("Payment session %s closed (%s)", payment_id, result.get("raw_status"))

    async def resume_payment_monitoring(self) -> int:
        """Restart polling for orders that still wait for a payment. Returns how many were resumed."""
        resumed = 0
        for order in await self.orders.get_orders_with_pending_payments():
            info = self.orders.get_payment_info_from_order(order)
            if not info.payment_id or not info.payment_method or self.polling.is_polling(info.payment_id):
                continue
            try:
                payment_method = PaymentMethod(info.payment_method)
            except ValueError:
                logger.warning("Order %s has unknown payment method %r", order["id"], info.payment_method)
                continue

            existing = self.get_payment_session(info.payment_id)
            session = existing or PaymentSession(
                order_id=str(order["id"]),
                payment_id=info.payment_id,
                payment_method=payment_method,
                provider=infer_provider(info.payment_id),
                amount=order["amount_total"],
                start_time=datetime.utcnow(),
            )
            self.sessions.set_session(info.payment_id, session_to_dict(session))
            self.polling.start_polling(info.payment_id, payment_method, session.order_id, session.provider)
            resumed += 1

        logger.info("Resumed monitoring for %d pending payment(s)", resumed)
        return resumed

    def stop_all_payment_monitoring(self) -> None:
        self.polling.stop_all_polling()
        self.sessions.clear()

    # ------------------------------------------------------------------
    # Fees & methods (display only)
    # ------------------------------------------------------------------

    def calculate_payment_fee(self, amount: float, payment_method: PaymentMethod) -> int:
        if PaymentMethod(payment_method) in _FEE_BEARING_METHODS:
            return self.gateway.calculate_flip_fee(amount)
        return 0

    def get_total_amount_with_fees(self, base_amount: float, payment_method: PaymentMethod) -> Dict[str, float]:
        fee = self.calculate_payment_fee(base_amount, payment_method)
        return {"base_amount": base_amount, "fee": fee, "total_amount": base_amount + fee}

    def get_available_payment_methods(self, amount: float) -> List[Dict[str, Any]]:
        limits = self.config.limits
        within_limits = limits.min_amount <= amount <= limits.max_amount
        methods = []
        for method in CHECKOUT_METHODS:
            fee = self.calculate_payment_fee(amount, method)
            methods.append(
                {
                    "method": method.value,
                    "name": PAYMENT_METHOD_NAMES[method],
                    "fee": fee,
                    "total_amount": amount + fee,
                    "enabled": within_limits and self.config.method(method).enabled,
                }
            )
        return methods
