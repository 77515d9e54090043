"""
Payment contracts.

Defines the request/response structures and validation helpers for the
payment flow, e.g.:
- creating a payment with Flip or Xendit
- checking payment status
- receiving provider webhooks

These contracts must be used by both:
- clients/mocks/* (fake responses for development/testing)
- clients/real_http/* (real API calls)
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .interfaces import (
    PaymentMethod,
    PaymentProvider,
    PaymentSession,
    PaymentStatus,
    PaymentStatusResult,
    UnifiedPaymentRequest,
    UnifiedPaymentResponse,
)

# Orders are identified by the numeric Odoo id embedded in external ids,
# e.g. va_35_1755536546716 or qris_35_1755536546716.
_EXTERNAL_ID_PATTERN = re.compile(r"(?:va_|qris_|ewallet_)(\d+)_")

# Provider status strings that mean the money has arrived.
COMPLETED_PROVIDER_STATUSES = frozenset({"COMPLETED", "SUCCEEDED", "SUCCESSFUL", "PAID", "CAPTURED"})


# ---------------------------------------------------------------------------
# Webhook model
# ---------------------------------------------------------------------------


@dataclass
class PaymentWebhookEvent:
    """Payload received from a provider webhook callback."""
    event_id: str
    external_id: str
    reference_id: Optional[str]
    status: str
    payment_method: PaymentMethod
    provider: PaymentProvider
    expected_amount: float = 0.0
    received_amount: float = 0.0
    received_at: datetime = field(default_factory=datetime.utcnow)
    raw_payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def dedupe_key(self) -> str:
        return self.external_id or self.event_id


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def validate_payment_request(request: UnifiedPaymentRequest) -> List[str]:
    """
    Return a list of validation errors.
    Empty list means the request is valid.
    """
    errors: List[str] = []

    if not request.order_id:
        errors.append("order_id is required")
    if request.amount is None or request.amount <= 0:
        errors.append("amount must be greater than zero")
    if not request.customer_name:
        errors.append("customer_name is required")
    if request.payment_method not in set(PaymentMethod):
        errors.append(f"payment_method '{request.payment_method}' is not supported")

    return errors


def is_terminal_status(status: PaymentStatus) -> bool:
    """Return True if the payment has reached a final, non-changeable state."""
    return status in {PaymentStatus.PAID, PaymentStatus.EXPIRED, PaymentStatus.FAILED, PaymentStatus.REFUNDED}


def extract_order_id(external_id: Optional[str]) -> Optional[str]:
    if not external_id:
        return None
    match = _EXTERNAL_ID_PATTERN.search(external_id)
    return match.group(1) if match else None


def build_external_id(prefix: str, order_id: str, millis: int) -> str:
    return f"{prefix}_{order_id}_{millis}"


def payment_response_to_dict(response: UnifiedPaymentResponse) -> Dict[str, Any]:
    return {
        "provider": response.provider.value,
        "payment_id": response.payment_id,
        "status": response.status.value,
        "amount": response.amount,
        "payment_url": response.payment_url,
        "qr_string": response.qr_string,
        "account_number": response.account_number,
        "bank_code": response.bank_code,
        "expires_at": response.expires_at,
        "fees": response.fees,
        "payment_data": response.payment_data,
    }


def payment_status_to_dict(result: PaymentStatusResult) -> Dict[str, Any]:
    return {
        "is_paid": result.is_paid,
        "status": result.status.value,
        "raw_status": result.raw_status,
        "amount": result.amount,
        "paid_amount": result.paid_amount,
        "error": result.error,
        "payment_data": result.payment_data,
    }


def session_to_dict(session: PaymentSession) -> Dict[str, Any]:
    return {
        "order_id": session.order_id,
        "payment_id": session.payment_id,
        "payment_method": session.payment_method.value,
        "provider": session.provider.value,
        "amount": session.amount,
        "payment_data": session.payment_data,
        "start_time": session.start_time.isoformat(),
    }


def session_from_dict(data: Dict[str, Any]) -> PaymentSession:
    return PaymentSession(
        order_id=str(data["order_id"]),
        payment_id=str(data["payment_id"]),
        payment_method=PaymentMethod(data["payment_method"]),
        provider=PaymentProvider(data["provider"]),
        amount=float(data.get("amount") or 0),
        payment_data=data.get("payment_data"),
        start_time=datetime.fromisoformat(data["start_time"]) if data.get("start_time") else datetime.utcnow(),
    )


EXTERNAL_ID_PREFIXES = {
    PaymentMethod.QRIS: "qris",
    PaymentMethod.EWALLET: "ewallet",
    PaymentMethod.VIRTUAL_ACCOUNT: "va",
}


def infer_provider(payment_id: str) -> PaymentProvider:
    """
    Flip ids are numeric bill link ids or FLIP-prefixed transfer ids;
    everything else was issued by Xendit.
    """
    value = str(payment_id or "")
    if value.startswith("FLIP") or value.isdigit():
        return PaymentProvider.FLIP
    return PaymentProvider.XENDIT


def infer_xendit_method(payment_id: str) -> PaymentMethod:
    value = str(payment_id or "")
    if value.startswith("qr_"):
        return PaymentMethod.QRIS
    if value.startswith("ewc_"):
        return PaymentMethod.EWALLET
    return PaymentMethod.VIRTUAL_ACCOUNT
