"""
Xendit: MOCK client.

⚠️  This is a mock implementation for development and testing.
    No network calls are made. Payments are kept in memory and stay pending
    until `mark_paid` (or `simulate_va_payment`) is called, so the polling
    and webhook paths can be exercised end-to-end.
"""

import hmac
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from src.integrations.contracts.interfaces import (
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    PaymentStatusResult,
    UnifiedPaymentRequest,
    XenditGateway,
)
from src.integrations.contracts.payments import build_external_id
from src.integrations.services.response_wrappers import PaymentGatewayError, map_xendit_status, xendit_check_status
from src.utils.config_loader import PaymentsConfig

logger = logging.getLogger(__name__)


class XenditMockClient(XenditGateway):
    """
    Mock Xendit client.

    Parameters
    ----------
    config : PaymentsConfig
        Used for fees and expiry windows.
    webhook_token : str
        Token accepted by `validate_webhook_token`. Default "mock-xendit-token".
    fail_creation : bool
        If True, every create call raises PaymentGatewayError. Default False.
    """

    def __init__(
        self,
        config: Optional[PaymentsConfig] = None,
        webhook_token: str = "mock-xendit-token",
        fail_creation: bool = False,
    ):
        self.config = config or PaymentsConfig()
        self._webhook_token = webhook_token
        self._fail_creation = fail_creation

        # In-memory store (reset on restart): payment id -> (method, payload)
        self._payments: Dict[str, Dict[str, Any]] = {}
        self._methods: Dict[str, PaymentMethod] = {}

        logger.info("[XENDIT MOCK] Client initialised")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _guard(self, operation: str) -> None:
        if self._fail_creation:
            raise PaymentGatewayError(f"[XENDIT MOCK] {operation} rejected", provider=PaymentProvider.XENDIT)

    def _now(self) -> str:
        return datetime.utcnow().isoformat() + "Z"

    def _expiry(self, method: PaymentMethod) -> str:
        minutes = self.config.method(method).expiry_minutes
        return (datetime.utcnow() + timedelta(minutes=minutes)).isoformat() + "Z"

    def _millis(self) -> int:
        return int(datetime.utcnow().timestamp() * 1000)

    def _store(self, method: PaymentMethod, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._payments[payload["id"]] = payload
        self._methods[payload["id"]] = method
        return dict(payload)

    # ------------------------------------------------------------------
    # Payment creation
    # ------------------------------------------------------------------

    async def create_qris_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        self._guard("create_qris_payment")
        amount = max(self.config.xendit.qris_minimum_amount, int(round(request.amount)))
        payment_id = f"qr_{uuid.uuid4()}"
        logger.info("[XENDIT MOCK] QRIS order=%s amount=%s", request.order_id, amount)
        return self._store(PaymentMethod.QRIS, {
            "id": payment_id,
            "external_id": build_external_id("qris", request.order_id, self._millis()),
            "reference_id": request.order_id,
            "business_id": "mock-business",
            "currency": "IDR",
            "amount": amount,
            "channel_code": "QRIS",
            "type": "DYNAMIC",
            "qr_string": f"00020101021226660014ID.CO.QRIS.WWW{uuid.uuid4().hex[:16].upper()}5204581253033605802ID",
            "expires_at": self._expiry(PaymentMethod.QRIS),
            "status": "ACTIVE",
            "created": self._now(),
            "updated": self._now(),
        })

    async def create_ewallet_payment(self, request: UnifiedPaymentRequest, channel_code: str) -> Dict[str, Any]:
        self._guard("create_ewallet_payment")
        if not request.customer_name:
            raise ValueError("Customer name is required")
        charge_id = f"ewc_{uuid.uuid4()}"
        amount = int(round(request.amount))
        logger.info("[XENDIT MOCK] E-wallet %s order=%s amount=%s", channel_code, request.order_id, amount)
        return self._store(PaymentMethod.EWALLET, {
            "id": charge_id,
            "business_id": "mock-business",
            "reference_id": request.order_id,
            "status": "PENDING",
            "currency": "IDR",
            "charge_amount": amount,
            "capture_amount": amount,
            "checkout_method": "ONE_TIME_PAYMENT",
            "channel_code": channel_code,
            "channel_properties": {"success_redirect_url": self.config.xendit.success_redirect_url},
            "actions": {
                "mobile_web_checkout_url": f"https://ewallet-mock.xendit.co/checkout/{charge_id}",
                "mobile_deeplink_checkout_url": None,
            },
            "is_redirect_required": True,
            "created": self._now(),
            "updated": self._now(),
        })

    async def create_virtual_account(self, request: UnifiedPaymentRequest, bank_code: str) -> Dict[str, Any]:
        self._guard("create_virtual_account")
        amount = max(self.config.xendit.va_minimum_amount, int(round(request.amount)))
        va_id = uuid.uuid4().hex[:24]
        logger.info("[XENDIT MOCK] VA %s order=%s amount=%s", bank_code, request.order_id, amount)
        return self._store(PaymentMethod.VIRTUAL_ACCOUNT, {
            "id": va_id,
            "external_id": build_external_id("va", request.order_id, self._millis()),
            "owner_id": "mock-owner",
            "bank_code": bank_code,
            "merchant_code": "88608",
            "name": request.customer_name[:50],
            "account_number": f"88608{uuid.uuid4().int % 10**11:011d}",
            "is_closed": True,
            "expected_amount": amount,
            "expiration_date": self._expiry(PaymentMethod.VIRTUAL_ACCOUNT),
            "is_single_use": True,
            "status": "PENDING",
            "currency": "IDR",
            "created": self._now(),
            "updated": self._now(),
        })

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def mark_paid(self, payment_id: str) -> None:
        payment = self._payments[payment_id]
        method = self._methods[payment_id]
        if method == PaymentMethod.VIRTUAL_ACCOUNT:
            payment["received_amount"] = payment["expected_amount"]
            payment["status"] = "COMPLETED"
        elif method == PaymentMethod.EWALLET:
            payment["status"] = "SUCCEEDED"
        else:
            payment["status"] = "COMPLETED"
        payment["updated"] = self._now()
        logger.info("[XENDIT MOCK] Payment %s marked paid", payment_id)

    def set_status(self, payment_id: str, status: str) -> None:
        self._payments[payment_id]["status"] = status

    async def check_payment_status_universal(
        self, payment_id: str, payment_method: PaymentMethod
    ) -> PaymentStatusResult:
        payment = self._payments.get(payment_id)
        if payment is None:
            return PaymentStatusResult(
                is_paid=False,
                status=PaymentStatus.PENDING,
                raw_status="ERROR",
                error="Transaction not found; may still be processing.",
            )

        raw_status = payment["status"]
        is_paid = map_xendit_status(raw_status) == PaymentStatus.PAID
        amount = float(payment.get("amount") or payment.get("charge_amount") or payment.get("expected_amount") or 0)
        return PaymentStatusResult(
            is_paid=is_paid,
            status=xendit_check_status(raw_status, payment_method, is_paid),
            raw_status=raw_status,
            amount=amount,
            paid_amount=amount if is_paid else 0.0,
            payment_data=dict(payment),
        )

    async def simulate_va_payment(self, va_id: str, amount: float) -> Dict[str, Any]:
        if va_id not in self._payments:
            raise PaymentGatewayError(
                f"[XENDIT MOCK] VA '{va_id}' not found", provider=PaymentProvider.XENDIT, status_code=404
            )
        self.mark_paid(va_id)
        return {"status": "COMPLETED", "message": "Payment for the Fixed VA has been simulated", "amount": amount}

    async def check_health(self) -> Dict[str, Any]:
        return {"balance": 0}

    # ------------------------------------------------------------------
    # Display helpers
    # ------------------------------------------------------------------

    def calculate_fee(self, amount: float, payment_method: PaymentMethod) -> int:
        rule = self.config.fee_rule(PaymentProvider.XENDIT, PaymentMethod(payment_method).value)
        if rule is None:
            return 0
        return int(round(amount * rule.percentage / 100 + rule.fixed))

    def validate_webhook_token(self, token: Optional[str]) -> bool:
        return hmac.compare_digest((token or "").strip(), self._webhook_token)
