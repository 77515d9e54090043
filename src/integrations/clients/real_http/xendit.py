"""
Real Xendit HTTP Client.

Used when XENDIT_SECRET_KEY is configured. Xendit authenticates with HTTP
Basic auth using `<secret_key>:`. Keys starting with `xnd_development_`
belong to test mode.
"""

from __future__ import annotations

import hmac
import logging
import os
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import httpx

from src.integrations.contracts.interfaces import (
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    PaymentStatusResult,
    UnifiedPaymentRequest,
    XenditGateway,
)
from src.integrations.contracts.payments import build_external_id
from src.integrations.services.response_wrappers import PaymentGatewayError, xendit_check_status
from src.utils.config_loader import PaymentsConfig, XenditConfig

logger = logging.getLogger(__name__)

# Banks that reject the `description` field on callback virtual accounts.
BANKS_WITHOUT_DESCRIPTION = {"BCA", "MANDIRI"}

_EWALLET_ERROR_MESSAGES = {
    "INVALID_JSON_FORMAT": "Format data tidak valid. Silakan coba lagi.",
    "DUPLICATE_PAYMENT": "Pembayaran dengan ID ini sudah ada.",
}

_STATUS_ENDPOINTS = {
    PaymentMethod.QRIS: "/qr_codes/{id}",
    PaymentMethod.EWALLET: "/ewallets/charges/{id}",
    PaymentMethod.VIRTUAL_ACCOUNT: "/callback_virtual_accounts/{id}",
}


def format_phone_number(phone: Optional[str]) -> str:
    """Normalize an Indonesian mobile number to the 62xxxxxxxx form."""
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return ""
    if digits.startswith("0"):
        digits = "62" + digits[1:]
    if not digits.startswith("62"):
        digits = "62" + digits
    return digits


class XenditPaymentClient(XenditGateway):
    def __init__(
        self,
        config: Optional[PaymentsConfig] = None,
        secret_key: Optional[str] = None,
        webhook_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.payments_config = config or PaymentsConfig()
        self.config: XenditConfig = self.payments_config.xendit
        self.base_url = self.config.base_url.rstrip("/")
        self.secret_key = secret_key or os.getenv(self.config.secret_key_env, "")
        self.webhook_token = webhook_token or os.getenv(self.config.webhook_token_env, "")
        self._transport = transport
        self._now = now
        if not self.secret_key:
            logger.warning("Xendit secret key is not set (%s).", self.config.secret_key_env)

    @property
    def is_test_mode(self) -> bool:
        return self.secret_key.startswith("xnd_development_")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_message: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            logger.info("Xendit %s %s (test_mode=%s)", method, url, self.is_test_mode)
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                auth=(self.secret_key, ""),
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, json=json)
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            body = _safe_json(e.response)
            logger.error("HTTP error from Xendit: %s %s", e.response.status_code, body or e.response.text)
            raise PaymentGatewayError(
                str(body.get("message") or error_message),
                provider=PaymentProvider.XENDIT,
                status_code=e.response.status_code,
                payload=body,
            ) from e
        except httpx.RequestError as e:
            logger.error("Request error connecting to Xendit: %s", e)
            raise PaymentGatewayError(error_message, provider=PaymentProvider.XENDIT) from e

    def _millis(self) -> int:
        return int(self._now().timestamp() * 1000)

    def _expiry(self, method: PaymentMethod) -> str:
        minutes = self.payments_config.method(method).expiry_minutes
        return (self._now() + timedelta(minutes=minutes)).isoformat() + "Z"

    # ------------------------------------------------------------------
    # Payment creation
    # ------------------------------------------------------------------

    async def create_qris_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        amount = int(round(float(request.amount)))
        if amount < self.config.qris_minimum_amount:
            logger.warning(
                "QRIS amount %s below Xendit minimum, raising to %s", amount, self.config.qris_minimum_amount
            )
        payload = {
            "external_id": build_external_id("qris", request.order_id, self._millis()),
            "reference_id": request.order_id,
            "type": "DYNAMIC",
            "currency": "IDR",
            "amount": max(self.config.qris_minimum_amount, amount),
            "channel_code": "QRIS",
            "callback_url": self.config.callback_url,
            "expires_at": self._expiry(PaymentMethod.QRIS),
            "metadata": {
                "customer_name": request.customer_name,
                "customer_email": request.customer_email,
                "customer_phone": request.customer_phone,
                "description": request.description,
            },
        }
        return await self._request("POST", "/qr_codes", json=payload, error_message="Failed to create QRIS payment")

    async def create_ewallet_payment(self, request: UnifiedPaymentRequest, channel_code: str) -> Dict[str, Any]:
        if not request.order_id:
            raise ValueError("Order ID is required")
        if not request.amount or request.amount <= 0:
            raise ValueError("Valid amount is required")
        if not request.customer_name:
            raise ValueError("Customer name is required")

        channel_properties: Dict[str, Any] = {
            "success_redirect_url": self.config.success_redirect_url,
            "failure_redirect_url": self.config.failure_redirect_url,
        }
        phone = format_phone_number(request.customer_phone)
        if phone:
            channel_properties["mobile_number"] = phone

        payload = {
            "reference_id": request.order_id,
            "currency": "IDR",
            "amount": int(round(float(request.amount))),
            "checkout_method": "ONE_TIME_PAYMENT",
            "channel_code": channel_code,
            "channel_properties": channel_properties,
            "metadata": {
                "customer_name": request.customer_name,
                "customer_email": request.customer_email or "",
                "description": request.description or f"Payment for order {request.order_id}",
            },
        }
        logger.debug("E-wallet payload: %s", payload)

        try:
            data = await self._request(
                "POST", "/ewallets/charges", json=payload, error_message="Gagal membuat pembayaran e-wallet"
            )
        except PaymentGatewayError as e:
            error_code = e.payload.get("error_code")
            if error_code == "CHANNEL_UNAVAILABLE":
                raise PaymentGatewayError(
                    f"{channel_code} sedang tidak tersedia. Silakan pilih metode lain.",
                    provider=PaymentProvider.XENDIT,
                    status_code=e.status_code,
                    payload=e.payload,
                ) from e
            if error_code in _EWALLET_ERROR_MESSAGES:
                raise PaymentGatewayError(
                    _EWALLET_ERROR_MESSAGES[error_code],
                    provider=PaymentProvider.XENDIT,
                    status_code=e.status_code,
                    payload=e.payload,
                ) from e
            raise

        logger.info("E-wallet payment created: %s", data.get("id"))
        return data

    async def create_virtual_account(self, request: UnifiedPaymentRequest, bank_code: str) -> Dict[str, Any]:
        amount = int(round(float(request.amount)))
        if amount < self.config.va_minimum_amount:
            logger.warning("VA amount %s below minimum, raising to %s", amount, self.config.va_minimum_amount)

        payload: Dict[str, Any] = {
            "external_id": build_external_id("va", request.order_id, self._millis()),
            "bank_code": bank_code,
            "name": request.customer_name[:50],
            "expected_amount": max(self.config.va_minimum_amount, amount),
            "is_closed": True,
            "is_single_use": True,
            "expiration_date": self._expiry(PaymentMethod.VIRTUAL_ACCOUNT),
        }
        if bank_code.upper() not in BANKS_WITHOUT_DESCRIPTION and request.description:
            payload["description"] = request.description

        return await self._request(
            "POST", "/callback_virtual_accounts", json=payload, error_message="Failed to create virtual account"
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_payment_status(self, payment_id: str, payment_method: PaymentMethod) -> Dict[str, Any]:
        template = _STATUS_ENDPOINTS.get(PaymentMethod(payment_method))
        if template is None:
            raise ValueError(f"Invalid payment type: {payment_method}")
        return await self._request(
            "GET", template.format(id=payment_id), error_message="Failed to get payment status"
        )

    async def check_payment_status_universal(
        self, payment_id: str, payment_method: PaymentMethod
    ) -> PaymentStatusResult:
        try:
            data = await self.get_payment_status(payment_id, payment_method)
        except (PaymentGatewayError, ValueError) as e:
            logger.warning("Xendit status check failed for %s (%s): %s", payment_id, payment_method, e)
            return _error_result(str(e))

        raw_status = str(data.get("status") or "UNKNOWN")
        method = PaymentMethod(payment_method)

        if method == PaymentMethod.QRIS:
            is_paid = raw_status == "COMPLETED"
            amount = float(data.get("amount") or 0)
            paid_amount = amount if is_paid else 0.0
        elif method == PaymentMethod.VIRTUAL_ACCOUNT:
            amount = float(data.get("expected_amount") or 0)
            paid_amount = float(data.get("received_amount") or 0)
            is_paid = raw_status == "COMPLETED" or (paid_amount > 0 and paid_amount >= amount)
        else:
            is_paid = raw_status in {"SUCCEEDED", "CAPTURED"}
            amount = float(data.get("charge_amount") or 0)
            paid_amount = float(data.get("capture_amount") or amount) if is_paid else 0.0

        return PaymentStatusResult(
            is_paid=is_paid,
            status=xendit_check_status(raw_status, method, is_paid),
            raw_status=raw_status,
            amount=amount,
            paid_amount=paid_amount,
            payment_data=data,
        )

    # ------------------------------------------------------------------
    # Test mode
    # ------------------------------------------------------------------

    async def simulate_va_payment(self, va_id: str, amount: float) -> Dict[str, Any]:
        payload = {"amount": int(round(amount))}
        return await self._request(
            "POST",
            f"/pool_virtual_accounts/{va_id}/simulate_payment",
            json=payload,
            error_message="Failed to simulate VA payment",
        )

    async def check_health(self) -> Dict[str, Any]:
        return await self._request("GET", "/balance", error_message="Xendit health check failed")

    # ------------------------------------------------------------------
    # Display helpers
    # ------------------------------------------------------------------

    def calculate_fee(self, amount: float, payment_method: PaymentMethod) -> int:
        rule = self.payments_config.fee_rule(PaymentProvider.XENDIT, PaymentMethod(payment_method).value)
        if rule is None:
            return 0
        return int(round(amount * rule.percentage / 100 + rule.fixed))

    @staticmethod
    def format_va_number(account_number: str) -> str:
        return re.sub(r"(\d{4})(?=\d)", r"\1-", account_number)

    @staticmethod
    def generate_qr_code_url(qr_string: str) -> str:
        return f"https://api.qrserver.com/v1/create-qr-code/?size=300x300&data={quote(qr_string, safe='')}"

    def validate_webhook_token(self, token: Optional[str]) -> bool:
        if not self.webhook_token:
            logger.warning("Xendit webhook token is not configured; rejecting callback.")
            return False
        return hmac.compare_digest((token or "").strip(), self.webhook_token)


def _error_result(message: str) -> PaymentStatusResult:
    return PaymentStatusResult(
        is_paid=False,
        status=PaymentStatus.PENDING,
        raw_status="ERROR",
        error=message,
    )


def _safe_json(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"body": body}
