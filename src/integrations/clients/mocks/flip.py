"""
Flip: MOCK client.

⚠️  This is a mock implementation for development and testing.
    Bills are kept in memory and remain unpaid until `mark_paid` is called.
"""

import hmac
import itertools
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from src.integrations.contracts.interfaces import FlipGateway, PaymentProvider, UnifiedPaymentRequest
from src.integrations.services.response_wrappers import FLIP_BANK_NAMES, PaymentGatewayError
from src.utils.config_loader import FlipConfig

logger = logging.getLogger(__name__)


_MOCK_BANKS: List[Dict[str, Any]] = [
    {"bank_code": "mandiri", "name": "Mandiri", "fee": 0, "queue": 0, "status": "OPERATIONAL"},
    {"bank_code": "bca", "name": "BCA", "fee": 0, "queue": 0, "status": "OPERATIONAL"},
    {"bank_code": "bni", "name": "BNI", "fee": 0, "queue": 0, "status": "OPERATIONAL"},
    {"bank_code": "bri", "name": "BRI", "fee": 0, "queue": 0, "status": "OPERATIONAL"},
]


class FlipMockClient(FlipGateway):
    def __init__(
        self,
        config: Optional[FlipConfig] = None,
        validation_key: str = "mock-flip-validation-key",
        healthy: bool = True,
    ):
        self.config = config or FlipConfig()
        self._validation_key = validation_key
        self._healthy = healthy
        self._link_ids = itertools.count(100001)
        self._bills: Dict[int, Dict[str, Any]] = {}
        logger.info("[FLIP MOCK] Client initialised")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _new_bill(self, request: UnifiedPaymentRequest, **extra: Any) -> Dict[str, Any]:
        link_id = next(self._link_ids)
        bill = {
            "link_id": link_id,
            "link_url": f"flip.id/pwf-sandbox/#{link_id}",
            "title": request.description or f"Payment for order {request.order_id}",
            "type": "SINGLE",
            "amount": int(round(request.amount)),
            "expired_date": (datetime.utcnow() + timedelta(hours=24)).strftime("%Y-%m-%d %H:%M"),
            "status": "ACTIVE",
            "step": 1,
            "sender_name": request.customer_name,
            "sender_email": request.customer_email or self.config.default_sender_email,
            "reference_id": request.order_id,
            "created_from": "API",
        }
        bill.update(extra)
        self._bills[link_id] = bill
        return bill

    def _direct_bill(self, request: UnifiedPaymentRequest, sender_bank: str, receiver: Dict[str, Any]) -> Dict[str, Any]:
        bill_payment = {
            "id": f"PGPWF{uuid.uuid4().hex[:12].upper()}",
            "status": "PENDING",
            "sender_bank": sender_bank,
            "receiver_bank_account": receiver,
        }
        bill = self._new_bill(request, bill_payment=bill_payment)
        bill["payment_url"] = f"https://flip.id/pwf-sandbox/pay/{bill['link_id']}"
        return dict(bill)

    # ------------------------------------------------------------------
    # v2 payment links
    # ------------------------------------------------------------------

    async def create_bill_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        bill = self._new_bill(request)
        logger.info("[FLIP MOCK] Bill %s created for order %s", bill["link_id"], request.order_id)
        return dict(bill)

    async def get_bill_status(self, bill_id: int) -> Dict[str, Any]:
        bill = self._bills.get(int(bill_id))
        if bill is None:
            return {"link_id": bill_id, "status": "ACTIVE", "step": 1, "payment_id": None}
        return dict(bill)

    # ------------------------------------------------------------------
    # v3 direct API
    # ------------------------------------------------------------------

    async def create_qris_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        receiver = {"account_type": "qris", "qr_code_data": f"00020101021226590016ID.CO.FLIP.WWW{uuid.uuid4().hex[:12]}"}
        return self._direct_bill(request, "qris", receiver)

    async def create_va_payment(self, request: UnifiedPaymentRequest, bank_code: str) -> Dict[str, Any]:
        receiver = {
            "account_type": "virtual_account",
            "bank_code": bank_code.lower(),
            "account_number": f"8{uuid.uuid4().int % 10**15:015d}",
        }
        bill = self._direct_bill(request, bank_code.lower(), receiver)
        bill["bank_name"] = FLIP_BANK_NAMES.get(bank_code.lower(), bank_code.upper())
        return bill

    async def create_ewallet_payment(self, request: UnifiedPaymentRequest, ewallet_code: str) -> Dict[str, Any]:
        return self._direct_bill(request, ewallet_code, {"account_type": "wallet_account"})

    def create_mobile_payment(self, request: UnifiedPaymentRequest) -> Dict[str, Any]:
        transfer = self.config.mobile_transfer
        return {
            "payment_id": f"FLIP{int(datetime.utcnow().timestamp() * 1000)}{uuid.uuid4().hex[:5]}",
            "amount": request.amount,
            "bank_details": {
                "bank_name": transfer.bank_name,
                "bank_code": transfer.bank_code,
                "account_number": transfer.account_number,
                "account_name": f"{transfer.account_name_prefix}{request.customer_name}",
            },
            "instructions": [f"Transfer tepat sejumlah Rp {int(round(request.amount))}"],
            "expires_at": (datetime.utcnow() + timedelta(hours=transfer.expiry_hours)).isoformat(),
            "status": "PENDING",
        }

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def mark_paid(self, link_id: int) -> None:
        bill = self._bills[int(link_id)]
        bill["payment_id"] = next(self._link_ids)
        if "bill_payment" in bill:
            bill["bill_payment"]["status"] = "SUCCESSFUL"
        logger.info("[FLIP MOCK] Bill %s marked paid", link_id)

    def set_status(self, link_id: int, status: str) -> None:
        self._bills[int(link_id)]["status"] = status

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    async def get_available_banks(self) -> List[Dict[str, Any]]:
        if not self._healthy:
            raise PaymentGatewayError("[FLIP MOCK] unavailable", provider=PaymentProvider.FLIP, status_code=503)
        return [dict(bank) for bank in _MOCK_BANKS]

    def validate_webhook_token(self, token: Optional[str]) -> bool:
        return hmac.compare_digest((token or "").strip(), self._validation_key)
