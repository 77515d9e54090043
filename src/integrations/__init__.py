"""
Integrations layer.
This package contains all code used to communicate with external systems such as:
- Flip (payment links, QRIS, virtual accounts, e-wallets)
- Xendit (QR codes, e-wallet charges, callback virtual accounts)
- Odoo ERP (sale orders, via JSON-RPC execute_kw)

Key rule:
- Payment services MUST NOT call external APIs directly.
- Services should call integration clients (under src/integrations/clients).
- We use MOCK clients during development and swap to REAL_HTTP clients when credentials are available.

Switching implementations:
- The selection of mock vs real clients happens in ONE place (build_services in src/api/dependencies.py).
"""

from .contracts.interfaces import (
    EwalletChannel,
    OrderPaymentInfo,
    PaymentItem,
    PaymentMethod,
    PaymentProvider,
    PaymentSession,
    PaymentStatus,
    PaymentStatusResult,
    PendingPayment,
    UnifiedPaymentRequest,
    UnifiedPaymentResponse,
    VirtualAccountBank,
)
from .contracts.payments import (
    PaymentWebhookEvent,
    extract_order_id,
    is_terminal_status,
    validate_payment_request,
)

__all__ = [
    # interfaces
    "EwalletChannel", "OrderPaymentInfo", "PaymentItem", "PaymentMethod",
    "PaymentProvider", "PaymentSession", "PaymentStatus", "PaymentStatusResult", "PendingPayment",
    "UnifiedPaymentRequest", "UnifiedPaymentResponse", "VirtualAccountBank",
    # payments
    "PaymentWebhookEvent", "extract_order_id", "is_terminal_status",
    "validate_payment_request",
]
