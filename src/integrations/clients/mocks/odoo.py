"""
Odoo: MOCK client.

⚠️  In-memory stand-in for the ERP. Only the `sale.order` calls used by order
    reconciliation are supported: search_read, read, write, create and
    action_confirm. Domains support the simple (field, operator, value) form.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from src.integrations.contracts.interfaces import OdooClient
from src.integrations.services.response_wrappers import OdooRPCError

logger = logging.getLogger(__name__)

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "=": lambda left, right: left == right,
    "!=": lambda left, right: left != right,
    "in": lambda left, right: left in right,
    "not in": lambda left, right: left not in right,
    "ilike": lambda left, right: str(right).lower() in str(left or "").lower(),
}

_CREATE_FIELDS = {"name", "state", "note", "amount_total", "partner_id"}


class OdooMockClient(OdooClient):
    def __init__(self, model: str = "sale.order"):
        self.model = model
        self._orders: Dict[int, Dict[str, Any]] = {}
        # Every execute_kw call, for assertions in tests
        self.calls: List[Dict[str, Any]] = []
        logger.info("[ODOO MOCK] Client initialised")

    def add_order(
        self,
        order_id: Optional[int] = None,
        *,
        name: Optional[str] = None,
        state: str = "draft",
        note: str = "",
        amount_total: float = 0.0,
        partner_id: Optional[List[Any]] = None,
    ) -> Dict[str, Any]:
        order_id = order_id or max(self._orders, default=0) + 1
        record = {
            "id": order_id,
            "name": name or f"S{order_id:05d}",
            "state": state,
            "note": note,
            "amount_total": amount_total,
            "partner_id": partner_id or [1, "Mock Customer"],
            "date_order": datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S"),
        }
        self._orders[order_id] = record
        return dict(record)

    def seed_demo_orders(self, count: int = 3) -> List[Dict[str, Any]]:
        """Draft orders waiting for payment, so the API is usable in mock mode."""
        return [
            self.add_order(note="[WAITING_PAYMENT]", amount_total=150000.0 * (i + 1))
            for i in range(count)
        ]

    def get(self, order_id: int) -> Dict[str, Any]:
        return dict(self._orders[int(order_id)])

    # ------------------------------------------------------------------
    # execute_kw
    # ------------------------------------------------------------------

    async def execute_kw(
        self,
        model: str,
        method: str,
        args: Optional[List[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        args = args or []
        kwargs = kwargs or {}
        self.calls.append({"model": model, "method": method, "args": args, "kwargs": kwargs})

        if model != self.model:
            raise OdooRPCError(f"Object {model} doesn't exist")

        if method == "search_read":
            domain = args[0] if args else kwargs.get("domain", [])
            return self._search_read(
                domain,
                fields=kwargs.get("fields"),
                limit=kwargs.get("limit"),
                offset=kwargs.get("offset", 0),
                order=kwargs.get("order"),
            )
        if method == "read":
            return [self._project(self._require(order_id), kwargs.get("fields")) for order_id in args[0]]
        if method == "write":
            ids, values = args[0], args[1]
            for order_id in ids:
                self._require(order_id).update(values)
            return True
        if method == "create":
            values = {k: v for k, v in dict(args[0]).items() if k in _CREATE_FIELDS}
            return self.add_order(**values)["id"]
        if method == "action_confirm":
            for order_id in args[0]:
                self._require(order_id)["state"] = "sale"
            return True

        raise OdooRPCError(f"The method '{method}' does not exist on the model '{model}'")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require(self, order_id: Any) -> Dict[str, Any]:
        record = self._orders.get(int(order_id))
        if record is None:
            raise OdooRPCError(f"Record does not exist or has been deleted. (Record: {self.model}({order_id},))")
        return record

    def _search_read(
        self,
        domain: List[Any],
        *,
        fields: Optional[List[str]],
        limit: Optional[int],
        offset: int,
        order: Optional[str],
    ) -> List[Dict[str, Any]]:
        records = [r for r in self._orders.values() if self._matches(r, domain)]

        if order:
            key, _, direction = order.partition(" ")
            records.sort(key=lambda r: r.get(key) or 0, reverse=direction.strip().lower() == "desc")

        records = records[offset:]
        if limit:
            records = records[:limit]
        return [self._project(r, fields) for r in records]

    @staticmethod
    def _matches(record: Dict[str, Any], domain: List[Any]) -> bool:
        for clause in domain:
            if not isinstance(clause, (list, tuple)) or len(clause) != 3:
                continue  # '&' / '|' prefixes are not needed by the callers
            field_name, operator, value = clause
            check = _OPERATORS.get(operator)
            if check is None:
                raise OdooRPCError(f"Invalid domain operator {operator!r}")
            if not check(record.get(field_name), value):
                return False
        return True

    @staticmethod
    def _project(record: Dict[str, Any], fields: Optional[List[str]]) -> Dict[str, Any]:
        if not fields:
            return dict(record)
        projected = {name: record.get(name, False) for name in fields}
        projected["id"] = record["id"]
        return projected
