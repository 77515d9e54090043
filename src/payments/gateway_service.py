"""
Payment gateway service.

Routes payment creation to Flip or Xendit and gives every caller the same
`UnifiedPaymentResponse` / `PaymentStatusResult` shapes regardless of the
provider that handled the payment.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from src.integrations.contracts.interfaces import (
    FlipGateway,
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    PaymentStatusResult,
    UnifiedPaymentRequest,
    UnifiedPaymentResponse,
    XenditGateway,
)
from src.integrations.contracts.payments import infer_provider, infer_xendit_method, validate_payment_request
from src.integrations.services.response_wrappers import (
    IntegrationResponseError,
    PaymentGatewayError,
    PaymentNotFoundError,
    flip_bill_status,
    map_flip_status,
    normalize_flip_bill_response,
    normalize_flip_direct_response,
    normalize_flip_mobile_payment,
    normalize_xendit_ewallet_response,
    normalize_xendit_qris_response,
    normalize_xendit_va_response,
)
from src.utils.config_loader import PaymentsConfig

logger = logging.getLogger(__name__)

OrderCallback = Callable[[str, bool, Optional[Dict[str, Any]]], Awaitable[None]]


class PaymentGatewayService:
    def __init__(self, flip: FlipGateway, xendit: XenditGateway, config: Optional[PaymentsConfig] = None):
        self.flip = flip
        self.xendit = xendit
        self.config = config or PaymentsConfig()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def select_provider(
        self, payment_method: PaymentMethod, preferred_provider: Optional[PaymentProvider] = None
    ) -> PaymentProvider:
        if preferred_provider:
            return PaymentProvider(preferred_provider)
        if payment_method in (PaymentMethod.QRIS, PaymentMethod.EWALLET):
            return PaymentProvider.XENDIT
        return self.config.primary_provider

    async def create_payment(
        self,
        request: UnifiedPaymentRequest,
        preferred_provider: Optional[PaymentProvider] = None,
        payment_options: Optional[Dict[str, Any]] = None,
    ) -> UnifiedPaymentResponse:
        """
        Create a payment with the provider chosen for the request's method.

        Raises:
            ValueError: invalid request or missing method option
                (e.g. `channel_code` for Xendit e-wallets)
            PaymentGatewayError: the provider rejected the call or returned
                an unusable response
        """
        errors = validate_payment_request(request)
        if errors:
            raise ValueError("; ".join(errors))

        provider = self.select_provider(request.payment_method, preferred_provider)
        options = payment_options or {}
        logger.info(
            "Creating %s payment for order %s via %s (amount=%s)",
            request.payment_method.value,
            request.order_id,
            provider.value,
            request.amount,
        )

        try:
            if provider == PaymentProvider.FLIP:
                return await self._create_flip_payment(request, options)
            return await self._create_xendit_payment(request, options)
        except (PaymentGatewayError, IntegrationResponseError) as e:
            logger.error("Payment failed with %s for order %s: %s", provider.value, request.order_id, e)
            raise PaymentGatewayError(
                f"Payment failed with {provider.value}: {e}",
                provider=provider,
                status_code=getattr(e, "status_code", None),
                payload=e.payload,
            ) from e

    async def _create_flip_payment(self, request: UnifiedPaymentRequest, options: Dict[str, Any]) -> UnifiedPaymentResponse:
        fees = self.calculate_flip_fee(request.amount)
        method = request.payment_method

        if method == PaymentMethod.VIRTUAL_ACCOUNT:
            bank_code = options.get("bank_code")
            if bank_code:
                raw = await self.flip.create_va_payment(request, bank_code)
                return normalize_flip_direct_response(
                    raw, fallback_amount=request.amount, fallback_bank_code=bank_code.upper(), fees=fees
                )
            # No bank chosen: manual transfer instructions, no remote bill.
            return normalize_flip_mobile_payment(self.flip.create_mobile_payment(request), fees=fees)

        if method == PaymentMethod.QRIS:
            raw = await self.flip.create_qris_payment(request)
            return normalize_flip_direct_response(raw, fallback_amount=request.amount, fees=fees)

        if method == PaymentMethod.EWALLET and options.get("ewallet_code"):
            raw = await self.flip.create_ewallet_payment(request, options["ewallet_code"])
            return normalize_flip_direct_response(raw, fallback_amount=request.amount, fees=fees)

        raw = await self.flip.create_bill_payment(request)
        return normalize_flip_bill_response(raw, fees=fees)

    async def _create_xendit_payment(self, request: UnifiedPaymentRequest, options: Dict[str, Any]) -> UnifiedPaymentResponse:
        method = request.payment_method
        fees = self.xendit.calculate_fee(request.amount, method)

        if method == PaymentMethod.QRIS:
            raw = await self.xendit.create_qris_payment(request)
            return normalize_xendit_qris_response(raw, fees=fees)

        if method == PaymentMethod.EWALLET:
            channel_code = options.get("channel_code")
            if not channel_code:
                raise ValueError("E-wallet channel code is required")
            raw = await self.xendit.create_ewallet_payment(request, channel_code)
            return normalize_xendit_ewallet_response(raw, fees=fees)

        if method == PaymentMethod.VIRTUAL_ACCOUNT:
            bank_code = options.get("bank_code")
            if not bank_code:
                raise ValueError("Bank code is required for virtual account")
            raw = await self.xendit.create_virtual_account(request, bank_code)
            return normalize_xendit_va_response(raw, fees=fees)

        raise ValueError(f"Unsupported payment method for Xendit: {method.value}")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_payment_status(
        self,
        payment_id: str,
        provider: Optional[PaymentProvider] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> PaymentStatusResult:
        provider = PaymentProvider(provider) if provider else infer_provider(payment_id)
        try:
            if provider == PaymentProvider.FLIP:
                return await self._get_flip_status(payment_id)
            method = PaymentMethod(payment_method) if payment_method else infer_xendit_method(payment_id)
            return await self.xendit.check_payment_status_universal(payment_id, method)
        except (PaymentGatewayError, PaymentNotFoundError, ValueError) as e:
            logger.warning("Status check failed for %s (%s): %s", payment_id, provider.value, e)
            return PaymentStatusResult(
                is_paid=False,
                status=PaymentStatus.PENDING,
                raw_status="ERROR",
                error=str(e),
            )

    async def _get_flip_status(self, payment_id: str) -> PaymentStatusResult:
        if payment_id.startswith("FLIP"):
            # Manual transfers have no bill on Flip's side; an operator confirms them.
            return PaymentStatusResult(
                is_paid=False,
                status=PaymentStatus.PENDING,
                raw_status="PENDING",
                payment_data={"mobile_payment": True, "payment_id": payment_id},
            )

        data = await self.flip.get_bill_status(int(payment_id))
        raw_status = flip_bill_status(data)
        status = map_flip_status(raw_status, has_payment=bool(data.get("payment_id")))
        amount = float(data.get("amount") or 0)
        is_paid = status == PaymentStatus.PAID
        return PaymentStatusResult(
            is_paid=is_paid,
            status=status,
            raw_status=raw_status,
            amount=amount,
            paid_amount=amount if is_paid else 0.0,
            payment_data=data,
        )

    async def check_and_update_payment(
        self,
        payment_id: str,
        payment_method: PaymentMethod,
        order_id: str,
        provider: Optional[PaymentProvider] = None,
        on_paid: Optional[OrderCallback] = None,
    ) -> Dict[str, Any]:
        result = await self.get_payment_status(payment_id, provider, payment_method)

        order_updated = False
        if result.is_paid and on_paid is not None:
            try:
                await on_paid(order_id, True, result.payment_data)
                order_updated = True
            except Exception:
                logger.exception("Order update failed for paid payment %s (order %s)", payment_id, order_id)

        return {
            "is_paid": result.is_paid,
            "status": result.status,
            "raw_status": result.raw_status,
            "error": result.error,
            "order_updated": order_updated,
            "payment_data": result.payment_data,
        }

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    async def simulate_va_payment(self, va_id: str, amount: float) -> Dict[str, Any]:
        return await self.xendit.simulate_va_payment(va_id, amount)

    def calculate_flip_fee(self, amount: float) -> int:
        rule = self.config.fee_rule(PaymentProvider.FLIP, "PAYMENT_LINK")
        percentage = rule.percentage if rule else 0.3
        return int(round(amount * percentage / 100))

    async def get_provider_health(self) -> Dict[str, Dict[str, Any]]:
        flip, xendit = await asyncio.gather(
            self._probe("Flip", self.flip.get_available_banks),
            self._probe("Xendit", self.xendit.check_health),
        )
        return {"flip": flip, "xendit": xendit}

    async def _probe(self, name: str, call: Callable[[], Awaitable[Any]]) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            await call()
        except PaymentGatewayError as e:
            logger.warning("%s health probe failed: %s", name, e)
            return {"status": "down", "error": str(e)}
        return {"status": "healthy", "response_time_ms": int((time.perf_counter() - started) * 1000)}
