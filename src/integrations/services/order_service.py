"""
Order reconciliation against Odoo sale orders.

Odoo only knows its own states (draft, sent, sale, done, cancel), so the
richer order lifecycle is stored as a `[STATUS]` tag at the start of the order
note, and the current payment as a `[PAYMENT] METHOD:ID:STATUS` line:

    [PAYMENT] QRIS:qr_4f1c...:PENDING
    [WAITING_PAYMENT] Delivery before noon please
"""

import logging
import re
from typing import Any, Dict, List, Optional

from src.integrations.contracts.interfaces import OdooClient, OrderPaymentInfo

logger = logging.getLogger(__name__)

ORDER_FIELDS = [
    "id",
    "name",
    "state",
    "note",
    "amount_total",
    "amount_untaxed",
    "amount_tax",
    "partner_id",
    "date_order",
]

ODOO_STATES = {"draft", "sent", "sale", "done", "cancel"}

# custom status -> (odoo state, note tag)
_STATUS_MAPPING = {
    "waiting_payment": ("draft", "WAITING_PAYMENT"),
    "payment_confirmed": ("sale", "PAYMENT_CONFIRMED"),
    "admin_review": ("sale", "ADMIN_REVIEW"),
    "approved": ("sale", "APPROVED"),
    "processing": ("sale", "PROCESSING"),
    "shipped": ("sale", "SHIPPED"),
    "delivered": ("done", "DELIVERED"),
    "cancelled": ("cancel", None),
    "cancel": ("cancel", None),
}

_STATUS_TEXT = {
    "waiting_payment": "Menunggu Pembayaran",
    "payment_confirmed": "Pembayaran Dikonfirmasi",
    "admin_review": "Sedang Ditinjau Admin",
    "approved": "Disetujui",
    "processing": "Sedang Diproses",
    "shipped": "Dikirim",
    "delivered": "Terkirim",
    "draft": "Draft",
    "sent": "Quotation Sent",
    "sale": "Sales Order",
    "done": "Completed",
    "cancel": "Cancelled",
}

COMPLETED_PAYMENT_STATUSES = {"COMPLETED", "SUCCEEDED", "PAID"}

_STATUS_TAG = re.compile(r"^\[(?!PAYMENT\])([A-Z_]+)\]\s*", re.MULTILINE)
_PAYMENT_LINE = re.compile(r"\[PAYMENT\][^\n]*\n?")
_PAYMENT_INFO = re.compile(r"\[PAYMENT\]\s*([^:\n]+):([^:\n]+):([^\n]+)")


class OrderNotFoundError(LookupError):
    pass


class OrderService:
    def __init__(self, client: OdooClient, model: str = "sale.order"):
        self.client = client
        self.model = model

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order_by_id(self, order_id: Any) -> Dict[str, Any]:
        records = await self.client.execute_kw(
            self.model,
            "search_read",
            [[["id", "=", int(order_id)]]],
            {"fields": ORDER_FIELDS, "limit": 1},
        )
        if not records:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return self._transform_order(records[0])

    async def get_orders(self, limit: int = 20, domain: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        records = await self.client.execute_kw(
            self.model,
            "search_read",
            [domain or []],
            {"fields": ORDER_FIELDS, "limit": limit, "order": "id desc"},
        )
        return [self._transform_order(r) for r in records or []]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_order_status(self, order_id: Any, status: str) -> Dict[str, Any]:
        """
        Write a lifecycle status. Custom statuses map to an Odoo state plus a
        note tag; plain Odoo states are written as-is; anything else becomes
        `sale` tagged with the upper-cased status.
        """
        status = (status or "").strip()
        if status in _STATUS_MAPPING:
            odoo_state, tag = _STATUS_MAPPING[status]
        elif status in ODOO_STATES:
            odoo_state, tag = status, None
        else:
            odoo_state, tag = "sale", status.upper()

        current = await self.get_order_by_id(order_id)
        note = current.get("note") or ""
        payment_lines = "".join(line.rstrip("\n") + "\n" for line in _PAYMENT_LINE.findall(note))
        body = _STATUS_TAG.sub("", _PAYMENT_LINE.sub("", note), count=1)

        values: Dict[str, Any] = {"state": odoo_state}
        if tag:
            values["note"] = f"{payment_lines}[{tag}] {body}".strip()
        elif odoo_state == "cancel" and _STATUS_TAG.search(note):
            # A cancelled order must not keep looking like it awaits payment.
            values["note"] = f"{payment_lines}{body}".strip()

        await self.client.execute_kw(self.model, "write", [[int(order_id)], values])
        logger.info("Order %s -> %s (odoo state %s)", order_id, status, odoo_state)
        return await self.get_order_by_id(order_id)

    async def update_order_payment_info(
        self,
        order_id: Any,
        payment_id: str,
        payment_method: str,
        payment_status: str,
    ) -> None:
        if not order_id:
            raise ValueError("Order ID is required")

        current = await self.get_order_by_id(order_id)
        clean_note = _PAYMENT_LINE.sub("", current.get("note") or "")
        new_note = f"[PAYMENT] {payment_method}:{payment_id}:{payment_status}\n{clean_note}".strip()

        await self.client.execute_kw(self.model, "write", [[int(order_id)], {"note": new_note}])
        logger.info("Order %s payment info: %s %s %s", order_id, payment_method, payment_id, payment_status)

    # ------------------------------------------------------------------
    # Payment helpers
    # ------------------------------------------------------------------

    @staticmethod
    def get_payment_info_from_order(order: Dict[str, Any]) -> OrderPaymentInfo:
        match = _PAYMENT_INFO.search(order.get("note") or "")
        if not match:
            return OrderPaymentInfo()
        return OrderPaymentInfo(
            payment_method=match.group(1).strip(),
            payment_id=match.group(2).strip(),
            payment_status=match.group(3).strip(),
        )

    @staticmethod
    def is_payment_pending(info: OrderPaymentInfo) -> bool:
        return bool(info.payment_id) and info.payment_status not in COMPLETED_PAYMENT_STATUSES

    async def has_order_pending_payment(self, order_id: Any) -> bool:
        try:
            order = await self.get_order_by_id(order_id)
        except OrderNotFoundError:
            return False
        return self.is_payment_pending(self.get_payment_info_from_order(order))

    async def get_orders_with_pending_payments(self, limit: int = 100) -> List[Dict[str, Any]]:
        orders = await self.get_orders(limit=limit)
        return [
            order
            for order in orders
            if self.is_payment_pending(self.get_payment_info_from_order(order))
            and (order["state"] == "waiting_payment" or "[WAITING_PAYMENT]" in order["note"])
        ]

    async def find_order_by_payment_id(self, payment_id: str, limit: int = 100) -> Optional[Dict[str, Any]]:
        orders = await self.get_orders(limit=limit, domain=[["note", "ilike", f":{payment_id}:"]])
        for order in orders:
            if self.get_payment_info_from_order(order).payment_id == str(payment_id):
                return order
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _transform_order(raw: Dict[str, Any]) -> Dict[str, Any]:
        # Odoo returns False for empty text fields
        note = raw.get("note") or ""
        odoo_state = raw.get("state") or "draft"

        state = odoo_state
        tag = _STATUS_TAG.search(note)
        if tag and odoo_state != "cancel":
            state = tag.group(1).lower()

        order = dict(raw)
        order.update(
            {
                "note": note,
                "odoo_state": odoo_state,
                "state": state,
                "status_text": _STATUS_TEXT.get(state) or state.replace("_", " ").title(),
                "amount_total": float(raw.get("amount_total") or 0),
            }
        )
        return order
