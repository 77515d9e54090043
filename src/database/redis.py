"""
Lightweight in-memory payment session store for local development.

Implements the same interface as src.database.redis_real so the FastAPI app
can run without a real Redis instance.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PaymentSessionStore:
    def __init__(self) -> None:
        # Simple in-memory store: payment_id -> session data
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def set_session(self, payment_id: str, data: Dict[str, Any], ttl: int = 86400) -> None:
        # TTL is ignored in this in-memory implementation.
        self._sessions[payment_id] = dict(data)

    def get_session(self, payment_id: str) -> Optional[Dict[str, Any]]:
        session = self._sessions.get(payment_id)
        return dict(session) if session is not None else None

    def delete_session(self, payment_id: str) -> bool:
        return self._sessions.pop(payment_id, None) is not None

    def list_sessions(self) -> List[Dict[str, Any]]:
        return [dict(s) for s in self._sessions.values()]

    def clear(self) -> None:
        self._sessions.clear()

    def ping(self) -> bool:
        """Health check calls this; always True in local/dev mode."""
        return True
