"""
Webhook processor.

Turns provider callbacks (real, or synthesized by the payment monitor) into
order updates. The payload shape decides how it is read:

- Xendit callback VA: `bank_code` + `account_number`
- Xendit QR code: `qr_string`, or `type == "QRIS"`
- Xendit e-wallet: `channel_code`, or `type == "EWALLET"`
- Flip bill callback: `bill_link_id`
- anything else: generic, order id from `reference_id` or the external id

Completed events are remembered by external id (falling back to the event
id) so provider retries do not confirm an order twice.
"""

import logging
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from src.integrations.contracts.interfaces import PaymentMethod, PaymentProvider
from src.integrations.contracts.payments import (
    EXTERNAL_ID_PREFIXES,
    PaymentWebhookEvent,
    build_external_id,
    extract_order_id,
)
from src.integrations.services.order_service import OrderNotFoundError, OrderService
from src.integrations.services.response_wrappers import OdooRPCError

logger = logging.getLogger(__name__)

WebhookListener = Callable[[str, PaymentWebhookEvent], Awaitable[None]]

_QRIS_COMPLETED = {"COMPLETED", "SUCCEEDED"}
_EWALLET_COMPLETED = {"SUCCEEDED", "CAPTURED"}
_FLIP_COMPLETED = {"SUCCESSFUL"}
_GENERIC_COMPLETED = {"COMPLETED", "SUCCEEDED", "PAID"}


class WebhookProcessor:
    def __init__(self, orders: OrderService, history_size: int = 1000):
        self.orders = orders
        self._history_size = history_size
        self._processed: "OrderedDict[str, datetime]" = OrderedDict()
        self._listeners: List[WebhookListener] = []

    def add_listener(self, listener: WebhookListener) -> None:
        """Called with (order_id, event) after an order is confirmed as paid."""
        self._listeners.append(listener)

    def is_duplicate(self, key: str) -> bool:
        return bool(key) and key in self._processed

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_event(self, payload: Dict[str, Any]) -> PaymentWebhookEvent:
        data = _unwrap(payload)
        kind = detect_kind(data)

        if kind == "flip":
            method, provider = _flip_method(data), PaymentProvider.FLIP
        elif kind == "va":
            method, provider = PaymentMethod.VIRTUAL_ACCOUNT, PaymentProvider.XENDIT
        elif kind == "qris":
            method, provider = PaymentMethod.QRIS, PaymentProvider.XENDIT
        elif kind == "ewallet":
            method, provider = PaymentMethod.EWALLET, PaymentProvider.XENDIT
        else:
            method = _enum_value(PaymentMethod, data.get("payment_method"), PaymentMethod.VIRTUAL_ACCOUNT)
            provider = _enum_value(PaymentProvider, data.get("provider"), PaymentProvider.XENDIT)

        return PaymentWebhookEvent(
            event_id=str(data.get("id") or ""),
            external_id=str(data.get("external_id") or ""),
            reference_id=str(data["reference_id"]) if data.get("reference_id") else None,
            status=str(data.get("status") or "").upper(),
            payment_method=method,
            provider=provider,
            expected_amount=float(data.get("expected_amount") or data.get("amount") or 0),
            received_amount=float(data.get("received_amount") or data.get("amount") or 0),
            raw_payload=data,
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_webhook(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a webhook to its order.

        Returns a summary with `processed`, `duplicate`, `order_id`,
        `payment_method`, `status` and, when the order could not be updated,
        `error`.
        """
        event = self.parse_event(payload)
        kind = detect_kind(event.raw_payload)
        result: Dict[str, Any] = {
            "processed": False,
            "duplicate": False,
            "order_id": None,
            "payment_method": event.payment_method.value,
            "status": event.status,
        }

        if self.is_duplicate(event.dedupe_key):
            logger.info("Ignoring duplicate webhook %s", event.dedupe_key)
            result["duplicate"] = True
            return result

        try:
            order_id = await self._resolve_order_id(kind, event)
            result["order_id"] = order_id
            if not order_id:
                logger.warning("Webhook %s carries no usable order reference", event.dedupe_key or "<no id>")
                return result

            payment_id = self._payment_id(kind, event)
            if _is_complete(kind, event):
                if await self._already_confirmed(order_id, payment_id):
                    self._remember(event.dedupe_key)
                    result["duplicate"] = True
                    return result
                await self.orders.update_order_payment_info(order_id, payment_id, event.payment_method.value, "COMPLETED")
                await self.orders.update_order_status(order_id, "payment_confirmed")
                self._remember(event.dedupe_key)
                result["processed"] = True
                logger.info("Order %s confirmed from %s webhook", order_id, event.provider.value)
                await self._notify(order_id, event)
            elif kind in ("va", "flip"):
                # Non-final VA and Flip updates are recorded so the order note shows the latest provider status.
                await self.orders.update_order_payment_info(order_id, payment_id, event.payment_method.value, event.status)
                result["processed"] = True
        except (OdooRPCError, OrderNotFoundError) as e:
            logger.error("Webhook %s could not update order: %s", event.dedupe_key, e)
            result["error"] = str(e)

        return result

    async def simulate_payment_webhook(
        self, order_id: str, payment_method: PaymentMethod = PaymentMethod.VIRTUAL_ACCOUNT
    ) -> Dict[str, Any]:
        """Push a completed webhook through the normal path, for testing without real payments."""
        order = await self.orders.get_order_by_id(order_id)
        amount = order["amount_total"] or 100000
        millis = int(datetime.utcnow().timestamp() * 1000)
        prefix = EXTERNAL_ID_PREFIXES.get(PaymentMethod(payment_method), "va")
        payload = {
            "id": f"mock_payment_{millis}_{uuid.uuid4().hex[:6]}",
            "external_id": build_external_id(prefix, str(order_id), millis),
            "reference_id": str(order_id),
            "status": "COMPLETED",
            "payment_method": PaymentMethod(payment_method).value,
            "expected_amount": amount,
            "received_amount": amount,
        }
        if payment_method == PaymentMethod.VIRTUAL_ACCOUNT:
            payload.update({"bank_code": "BRI", "account_number": "1234567890"})
        return await self.process_webhook(payload)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _resolve_order_id(self, kind: str, event: PaymentWebhookEvent) -> Optional[str]:
        if kind == "flip":
            if event.reference_id:
                return event.reference_id
            order = await self.orders.find_order_by_payment_id(str(event.raw_payload["bill_link_id"]))
            return str(order["id"]) if order else None
        if kind == "va":
            return extract_order_id(event.external_id) or event.reference_id
        return event.reference_id or extract_order_id(event.external_id)

    @staticmethod
    def _payment_id(kind: str, event: PaymentWebhookEvent) -> str:
        data = event.raw_payload
        if kind == "flip":
            return str(data["bill_link_id"])
        if kind == "va" and data.get("callback_virtual_account_id"):
            return str(data["callback_virtual_account_id"])
        if kind == "qris" and data.get("qr_id"):
            return str(data["qr_id"])
        return event.event_id

    async def _already_confirmed(self, order_id: str, payment_id: str) -> bool:
        order = await self.orders.get_order_by_id(order_id)
        info = self.orders.get_payment_info_from_order(order)
        return info.payment_id == payment_id and info.payment_status == "COMPLETED"

    def _remember(self, key: str) -> None:
        if not key:
            return
        self._processed[key] = datetime.utcnow()
        while len(self._processed) > self._history_size:
            self._processed.popitem(last=False)

    async def _notify(self, order_id: str, event: PaymentWebhookEvent) -> None:
        for listener in self._listeners:
            try:
                await listener(order_id, event)
            except Exception:
                logger.exception("Webhook listener failed for order %s", order_id)


def _unwrap(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Newer Xendit callbacks wrap the object as {"event": "qr.payment", "data": {...}}."""
    data = payload.get("data")
    event = str(payload.get("event") or "")
    if not isinstance(data, dict) or not event:
        return payload

    unwrapped = dict(data)
    if event.startswith("qr.") and "type" not in unwrapped:
        unwrapped["type"] = "QRIS"
    elif event.startswith("ewallet.") and "type" not in unwrapped:
        unwrapped["type"] = "EWALLET"
    return unwrapped


def detect_kind(data: Dict[str, Any]) -> str:
    if data.get("bill_link_id"):
        return "flip"
    if data.get("bank_code") and data.get("account_number"):
        return "va"
    if data.get("qr_string") or data.get("type") == "QRIS":
        return "qris"
    if data.get("channel_code") or data.get("type") == "EWALLET":
        return "ewallet"
    return "generic"


def _is_complete(kind: str, event: PaymentWebhookEvent) -> bool:
    status = event.status
    if kind == "flip":
        return status in _FLIP_COMPLETED
    if kind == "va":
        return status == "COMPLETED" or (
            status == "ACTIVE" and event.received_amount > 0 and event.received_amount >= event.expected_amount
        )
    if kind == "qris":
        return status in _QRIS_COMPLETED
    if kind == "ewallet":
        return status in _EWALLET_COMPLETED
    return status in _GENERIC_COMPLETED


def _flip_method(data: Dict[str, Any]) -> PaymentMethod:
    if str(data.get("sender_bank") or "").lower() == "qris":
        return PaymentMethod.QRIS
    if data.get("sender_bank_type") == "wallet_account":
        return PaymentMethod.EWALLET
    return PaymentMethod.VIRTUAL_ACCOUNT


def _enum_value(enum_type, value: Any, default):
    try:
        return enum_type(str(value).upper()) if value else default
    except ValueError:
        return default
