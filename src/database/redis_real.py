"""
Real Redis-backed payment session store for production when REDIS_URL is set.
Implements the same interface as src.database.redis (in-memory stub).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)


class PaymentSessionStore:
    """
    Redis-backed payment sessions. Sessions survive restarts, so monitoring
    can be resumed for payments created by a previous process.
    """

    def __init__(self, url: str, default_ttl: int = 86400, prefix: str = "payment_session:") -> None:
        self._client = redis.from_url(url, decode_responses=True)
        self._default_ttl = default_ttl
        self._prefix = prefix

    def _key(self, payment_id: str) -> str:
        return f"{self._prefix}{payment_id}"

    def set_session(self, payment_id: str, data: Dict[str, Any], ttl: int = 86400) -> None:
        payload = json.dumps(data, default=str)
        self._client.setex(self._key(payment_id), ttl or self._default_ttl, payload)

    def get_session(self, payment_id: str) -> Optional[Dict[str, Any]]:
        return self._decode(self._client.get(self._key(payment_id)))

    def delete_session(self, payment_id: str) -> bool:
        return bool(self._client.delete(self._key(payment_id)))

    def list_sessions(self) -> List[Dict[str, Any]]:
        sessions = []
        for key in self._client.scan_iter(match=f"{self._prefix}*"):
            session = self._decode(self._client.get(key))
            if session is not None:
                sessions.append(session)
        return sessions

    def clear(self) -> None:
        keys = list(self._client.scan_iter(match=f"{self._prefix}*"))
        if keys:
            self._client.delete(*keys)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    @staticmethod
    def _decode(raw: Optional[str]) -> Optional[Dict[str, Any]]:
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Dropping undecodable payment session payload")
            return None
