"""
Real Flip HTTP Client.

Used when FLIP_SECRET_KEY is configured. Flip authenticates with HTTP Basic
auth: the secret key is the username and the password is blank.

Two API generations are used:
- v2 payment links (`/v2/pwf/bill`, form-encoded)
- v3 direct API bills (`big_api/v3/pwf/bill`, JSON) for QRIS, VA and e-wallets
"""

from __future__ import annotations

import hmac
import logging
import os
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx

from src.integrations.contracts.interfaces import FlipGateway, PaymentProvider, UnifiedPaymentRequest
from src.integrations.services.response_wrappers import (
    FLIP_BANK_NAMES,
    FLIP_EWALLET_NAMES,
    PaymentGatewayError,
    PaymentNotFoundError,
)
from src.utils.config_loader import FlipConfig

logger = logging.getLogger(__name__)


class FlipPaymentClient(FlipGateway):
    def __init__(
        self,
        config: Optional[FlipConfig] = None,
        secret_key: Optional[str] = None,
        validation_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.config = config or FlipConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.secret_key = secret_key or os.getenv(self.config.secret_key_env, "")
        self.validation_key = validation_key or os.getenv(self.config.validation_key_env, "")
        self._transport = transport
        self._now = now
        if not self.secret_key:
            logger.warning("Flip secret key is not set (%s).", self.config.secret_key_env)

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
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            logger.info("Flip %s %s", method, url)
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                auth=(self.secret_key, ""),
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, json=json, data=data)
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            body = _safe_json(e.response)
            logger.error("HTTP error from Flip: %s %s", e.response.status_code, body or e.response.text)
            raise PaymentGatewayError(
                str(body.get("message") or error_message),
                provider=PaymentProvider.FLIP,
                status_code=e.response.status_code,
                payload=body,
            ) from e
        except httpx.RequestError as e:
            logger.error("Request error connecting to Flip: %s", e)
            raise PaymentGatewayError(error_message, provider=PaymentProvider.FLIP) from e

    def _direct_bill_payload(
        self,
        request: UnifiedPaymentRequest,
        sender_bank: str,
        sender_bank_type: str,
    ) -> Dict[str, Any]:
        # expired_date is optional and Flip rejects most formats, so it is omitted.
        return {
            "title": request.description or f"Payment for order {request.order_id}",
            "type": "single",
            "step": "direct_api",
            "amount": int(round(request.amount)),
            "sender_name": request.customer_name,
            "sender_email": request.customer_email or self.config.default_sender_email,
            "sender_bank": sender_bank,
            "sender_bank_type": sender_bank_type,
            "reference_id": request.order_id,
        }

    # ------------------------------------------------------------------
    # v2 payment links
    # ------------------------------------------------------------------

    async def create_bill_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        expired_date = self._now() + timedelta(hours=24)
        form: Dict[str, Any] = {
            "title": f"Payment for order {request.order_id}",
            "type": "SINGLE",
            "amount": str(int(round(request.amount))),
            "sender_name": request.customer_name,
            "expired_date": expired_date.strftime("%Y-%m-%d"),
            "is_address_required": "0",
            "is_phone_number_required": "0",
        }
        if request.customer_email:
            form["sender_email"] = request.customer_email
        if request.customer_phone:
            form["sender_phone_number"] = request.customer_phone

        logger.info("Creating Flip bill payment for order %s", request.order_id)
        return await self._request("POST", "/v2/pwf/bill", data=form, error_message="Failed to create Flip payment")

    async def get_bill_status(self, bill_id: int) -> Dict[str, Any]:
        try:
            return await self._request("GET", f"/v2/bill/{bill_id}", error_message="Failed to get payment status")
        except PaymentGatewayError as e:
            if e.status_code == 404:
                # Flip's sandbox does not always expose fresh links; treat as unpaid.
                logger.info("Flip bill %s not found, treating as still pending", bill_id)
                return {"link_id": bill_id, "status": "ACTIVE", "step": 1, "payment_id": None}
            raise

    # ------------------------------------------------------------------
    # v3 direct API
    # ------------------------------------------------------------------

    async def create_qris_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        payload = self._direct_bill_payload(request, "qris", "wallet_account")
        logger.info("Creating Flip QRIS payment for order %s", request.order_id)
        return await self._request(
            "POST", "big_api/v3/pwf/bill", json=payload, error_message="Failed to create Flip QRIS payment"
        )

    async def create_va_payment(
        self,
        request: UnifiedPaymentRequest,
        bank_code: str,
        customized_va_unique_numbers: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = self._direct_bill_payload(request, bank_code.lower(), "virtual_account")
        if customized_va_unique_numbers:
            payload["customized_va_unique_numbers"] = customized_va_unique_numbers
        logger.info("Creating Flip VA payment (%s) for order %s", bank_code, request.order_id)
        data = await self._request(
            "POST", "big_api/v3/pwf/bill", json=payload, error_message="Failed to create Flip VA payment"
        )
        receiver = (data.get("bill_payment") or {}).get("receiver_bank_account") or {}
        resolved_code = str(receiver.get("bank_code") or bank_code)
        data.setdefault("bank_name", FLIP_BANK_NAMES.get(resolved_code.lower(), resolved_code.upper()))
        return data

    async def create_ewallet_payment(self, request: UnifiedPaymentRequest, ewallet_code: str) -> Dict[str, Any]:
        payload = self._direct_bill_payload(request, ewallet_code, "wallet_account")
        logger.info("Creating Flip e-wallet payment (%s) for order %s", ewallet_code, request.order_id)
        data = await self._request(
            "POST", "big_api/v3/pwf/bill", json=payload, error_message="Failed to create Flip E-Wallet payment"
        )
        data.setdefault("ewallet_name", FLIP_EWALLET_NAMES.get(ewallet_code.lower(), ewallet_code.upper()))
        return data

    async def get_v3_bill_status(self, bill_id: str) -> Dict[str, Any]:
        try:
            return await self._request("GET", f"big_api/v3/bill/{bill_id}", error_message="Failed to get bill status")
        except PaymentGatewayError as e:
            if e.status_code == 404:
                raise PaymentNotFoundError(f"Flip bill {bill_id} not found") from e
            raise

    # ------------------------------------------------------------------
    # In-app transfer instructions
    # ------------------------------------------------------------------

    def create_mobile_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        transfer = self.config.mobile_transfer
        now = self._now()
        payment_id = f"FLIP{int(now.timestamp() * 1000)}{uuid.uuid4().hex[:5]}"
        amount_label = f"{int(round(request.amount)):,}".replace(",", ".")

        return {
            "payment_id": payment_id,
            "amount": request.amount,
            "bank_details": {
                "bank_name": transfer.bank_name,
                "bank_code": transfer.bank_code,
                "account_number": transfer.account_number,
                "account_name": f"{transfer.account_name_prefix}{request.customer_name}",
            },
            "instructions": [
                f"Transfer tepat sejumlah Rp {amount_label}",
                f"Ke rekening {transfer.bank_name} di atas",
                "Gunakan aplikasi mobile banking Anda",
                "Pembayaran akan otomatis terdeteksi",
                "Jangan transfer lebih atau kurang dari jumlah yang tertera",
            ],
            "expires_at": (now + timedelta(hours=transfer.expiry_hours)).isoformat(),
            "status": "PENDING",
        }

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    async def get_available_banks(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/general/banks", error_message="Failed to get available banks")

    async def calculate_transfer_fee(self, sender_bank: str, beneficiary_bank: str, amount: float) -> float:
        form = {
            "sender_bank": sender_bank,
            "beneficiary_bank": beneficiary_bank,
            "amount": str(int(round(amount))),
        }
        try:
            data = await self._request(
                "POST", "/disbursement/calculate-fee", data=form, error_message="Failed to calculate Flip fee"
            )
        except PaymentGatewayError as e:
            logger.warning("Flip fee calculation failed, reporting zero fee: %s", e)
            return 0
        return data.get("fee") or 0

    def validate_webhook_token(self, token: Optional[str]) -> bool:
        if not self.validation_key:
            logger.warning("Flip validation key is not configured; rejecting callback.")
            return False
        return hmac.compare_digest((token or "").strip(), self.validation_key)


def _safe_json(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"body": body}
