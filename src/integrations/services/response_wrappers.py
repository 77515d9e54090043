from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from src.integrations.contracts.interfaces import (
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    UnifiedPaymentResponse,
)


class IntegrationResponseError(ValueError):
    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class PaymentNotFoundError(LookupError):
    """The provider answered 404 for a payment id."""


class NormalizedPaymentModel(BaseModel):
    payment_id: str
    status: PaymentStatus
    amount: float = Field(gt=0)
    payment_url: Optional[str] = None
    qr_string: Optional[str] = None
    account_number: Optional[str] = None
    bank_code: Optional[str] = None
    expires_at: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


_XENDIT_STATUS_MAP = {
    "PENDING": PaymentStatus.PENDING,
    "ACTIVE": PaymentStatus.PENDING,
    "PAID": PaymentStatus.PAID,
    "SUCCEEDED": PaymentStatus.PAID,
    "COMPLETED": PaymentStatus.PAID,
    "CAPTURED": PaymentStatus.PAID,
    "EXPIRED": PaymentStatus.EXPIRED,
    "INACTIVE": PaymentStatus.EXPIRED,
    "FAILED": PaymentStatus.FAILED,
    "CANCELLED": PaymentStatus.FAILED,
    "VOIDED": PaymentStatus.FAILED,
    "REFUNDED": PaymentStatus.REFUNDED,
}

_FLIP_STATUS_MAP = {
    "PENDING": PaymentStatus.PENDING,
    "SUCCESSFUL": PaymentStatus.PAID,
    "PAID": PaymentStatus.PAID,
    "COMPLETED": PaymentStatus.PAID,
    "DONE": PaymentStatus.PAID,
    "EXPIRED": PaymentStatus.EXPIRED,
    "CANCELLED": PaymentStatus.EXPIRED,
    "INACTIVE": PaymentStatus.EXPIRED,
    "FAILED": PaymentStatus.FAILED,
}

FLIP_BANK_NAMES = {
    "bca": "BCA",
    "mandiri": "Bank Mandiri",
    "bni": "BNI",
    "bri": "BRI",
    "permata": "Bank Permata",
    "cimb": "CIMB Niaga",
    "bsm": "Bank Syariah Mandiri",
    "bsi": "Bank Syariah Indonesia",
}

FLIP_EWALLET_NAMES = {
    "shopeepay_app": "ShopeePay",
    "shopeepay": "ShopeePay",
    "ovo": "OVO",
    "dana": "DANA",
    "gopay": "GoPay",
    "linkaja": "LinkAja",
}


def map_xendit_status(raw_status: Any) -> PaymentStatus:
    value = str(raw_status or "").strip().upper()
    return _XENDIT_STATUS_MAP.get(value, PaymentStatus.PENDING)


def xendit_check_status(raw_status: Any, payment_method: PaymentMethod, is_paid: bool) -> PaymentStatus:
    """Status for a Xendit status check. A closed callback VA reports INACTIVE once it has been paid."""
    if is_paid:
        return PaymentStatus.PAID
    status = map_xendit_status(raw_status)
    if status == PaymentStatus.PAID:
        return PaymentStatus.PENDING
    if str(raw_status or "").strip().upper() == "INACTIVE" and PaymentMethod(payment_method) == PaymentMethod.VIRTUAL_ACCOUNT:
        return PaymentStatus.PENDING
    return status


def map_flip_status(raw_status: Any, *, has_payment: bool = False) -> PaymentStatus:
    value = str(raw_status or "").strip().upper()
    if value == "ACTIVE":
        # An active v2 link only counts as paid once a payment is attached to it.
        return PaymentStatus.PAID if has_payment else PaymentStatus.PENDING
    return _FLIP_STATUS_MAP.get(value, PaymentStatus.PENDING)


def flip_bill_status(raw: Dict[str, Any]) -> str:
    bill_payment = raw.get("bill_payment") or {}
    return str(bill_payment.get("status") or raw.get("status") or "")


def normalize_flip_bill_response(raw: Dict[str, Any], *, fees: Optional[float] = None) -> UnifiedPaymentResponse:
    """v2 payment link (`/v2/pwf/bill`)."""
    link_id = _first_non_empty(raw, "link_id", "id")
    status = PaymentStatus.PENDING if str(raw.get("status", "")).upper() == "ACTIVE" else PaymentStatus.FAILED
    model = _build_model(
        NormalizedPaymentModel,
        {
            "payment_id": str(link_id),
            "status": status,
            "amount": _coerce_positive_amount(raw.get("amount"), "Flip bill amount"),
            "payment_url": raw.get("link_url"),
            "expires_at": raw.get("expired_date"),
            "raw": raw,
        },
        raw,
    )
    return _to_unified(PaymentProvider.FLIP, model, fees)


def normalize_flip_direct_response(
    raw: Dict[str, Any],
    *,
    fallback_amount: float,
    fallback_bank_code: Optional[str] = None,
    fees: Optional[float] = None,
) -> UnifiedPaymentResponse:
    """v3 direct-API bill (`big_api/v3/pwf/bill`) for QRIS, VA and e-wallets."""
    bill_payment = raw.get("bill_payment") or {}
    receiver = bill_payment.get("receiver_bank_account") or {}

    payment_id = raw.get("link_id") or bill_payment.get("id") or raw.get("id")
    if payment_id is None or str(payment_id).strip() == "":
        raise IntegrationResponseError("Flip response carries no link_id or bill_payment id.", payload=raw)

    qr_string = receiver.get("qr_code_data") or raw.get("qr_string") or raw.get("qris_string") or None
    account_number = receiver.get("account_number") or None
    bank_code = receiver.get("bank_code") or fallback_bank_code

    model = _build_model(
        NormalizedPaymentModel,
        {
            "payment_id": str(payment_id),
            "status": map_flip_status(flip_bill_status(raw)),
            "amount": _coerce_positive_amount(raw.get("amount", fallback_amount), "Flip bill amount"),
            "payment_url": raw.get("payment_url") or raw.get("link_url") or None,
            "qr_string": qr_string,
            "account_number": account_number,
            "bank_code": bank_code,
            "expires_at": raw.get("expired_date"),
            "raw": raw,
        },
        raw,
    )
    return _to_unified(PaymentProvider.FLIP, model, fees)


def normalize_flip_mobile_payment(raw: Dict[str, Any], *, fees: Optional[float] = None) -> UnifiedPaymentResponse:
    bank_details = raw.get("bank_details") or {}
    model = _build_model(
        NormalizedPaymentModel,
        {
            "payment_id": str(_first_non_empty(raw, "payment_id")),
            "status": PaymentStatus.PENDING,
            "amount": _coerce_positive_amount(raw.get("amount"), "Flip transfer amount"),
            "account_number": bank_details.get("account_number"),
            "bank_code": bank_details.get("bank_code"),
            "expires_at": raw.get("expires_at"),
            "raw": raw,
        },
        raw,
    )
    return _to_unified(PaymentProvider.FLIP, model, fees)


def normalize_xendit_qris_response(raw: Dict[str, Any], *, fees: Optional[float] = None) -> UnifiedPaymentResponse:
    model = _build_model(
        NormalizedPaymentModel,
        {
            "payment_id": str(_first_non_empty(raw, "id")),
            "status": map_xendit_status(raw.get("status")),
            "amount": _coerce_positive_amount(raw.get("amount"), "Xendit QR amount"),
            "qr_string": _first_non_empty(raw, "qr_string"),
            "expires_at": raw.get("expires_at"),
            "raw": raw,
        },
        raw,
    )
    return _to_unified(PaymentProvider.XENDIT, model, fees)


def normalize_xendit_ewallet_response(raw: Dict[str, Any], *, fees: Optional[float] = None) -> UnifiedPaymentResponse:
    actions = raw.get("actions") or {}
    model = _build_model(
        NormalizedPaymentModel,
        {
            "payment_id": str(_first_non_empty(raw, "id")),
            "status": map_xendit_status(raw.get("status")),
            "amount": _coerce_positive_amount(
                _first_non_empty(raw, "charge_amount", "capture_amount", "amount"), "Xendit e-wallet amount"
            ),
            "payment_url": actions.get("mobile_web_checkout_url")
            or actions.get("mobile_deeplink_checkout_url")
            or actions.get("desktop_web_checkout_url"),
            "qr_string": actions.get("qr_checkout_string"),
            "raw": raw,
        },
        raw,
    )
    return _to_unified(PaymentProvider.XENDIT, model, fees)


def normalize_xendit_va_response(raw: Dict[str, Any], *, fees: Optional[float] = None) -> UnifiedPaymentResponse:
    # A freshly created callback VA is always awaiting transfer.
    model = _build_model(
        NormalizedPaymentModel,
        {
            "payment_id": str(_first_non_empty(raw, "id")),
            "status": PaymentStatus.PENDING,
            "amount": _coerce_positive_amount(raw.get("expected_amount"), "Xendit VA expected amount"),
            "account_number": str(_first_non_empty(raw, "account_number")),
            "bank_code": raw.get("bank_code"),
            "expires_at": raw.get("expiration_date"),
            "raw": raw,
        },
        raw,
    )
    return _to_unified(PaymentProvider.XENDIT, model, fees)


def _to_unified(provider: PaymentProvider, model: NormalizedPaymentModel, fees: Optional[float]) -> UnifiedPaymentResponse:
    return UnifiedPaymentResponse(
        provider=provider,
        payment_id=model.payment_id,
        status=model.status,
        amount=model.amount,
        payment_data=model.raw,
        payment_url=model.payment_url,
        qr_string=model.qr_string,
        account_number=model.account_number,
        bank_code=model.bank_code,
        expires_at=model.expires_at,
        fees=fees,
    )


def _first_non_empty(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    if default is not None:
        return default
    raise IntegrationResponseError(f"Missing required field. Checked keys: {', '.join(keys)}", payload=data)


def _coerce_positive_amount(value: Any, label: str) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise IntegrationResponseError(f"Invalid {label}: {value!r}") from exc
    if amount <= 0:
        raise IntegrationResponseError(f"{label.capitalize()} must be > 0; got {amount}.")
    return amount


def _build_model(model_type, payload: Dict[str, Any], raw: Dict[str, Any]):
    try:
        return model_type(**payload)
    except ValidationError as exc:
        raise IntegrationResponseError(f"Response validation failed: {exc}", payload=raw) from exc


class PaymentGatewayError(RuntimeError):
    """A provider call failed (HTTP error, network error or rejected request)."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[PaymentProvider] = None,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.payload = payload or {}


class OdooRPCError(RuntimeError):
    """Odoo answered with a JSON-RPC error or could not be reached."""

    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.payload = payload or {}
