"""
Real Odoo JSON-RPC client.

Talks to `/jsonrpc` with the classic `common.authenticate` +
`object.execute_kw` pair. The uid is cached after the first successful login.
"""

from __future__ import annotations

import itertools
import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from src.integrations.contracts.interfaces import OdooClient
from src.integrations.services.response_wrappers import OdooRPCError
from src.utils.config_loader import OdooConfig

logger = logging.getLogger(__name__)


class OdooJsonRpcClient(OdooClient):
    def __init__(
        self,
        config: Optional[OdooConfig] = None,
        url: Optional[str] = None,
        database: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or OdooConfig()
        self.url = (url or os.getenv(self.config.url_env, "")).rstrip("/")
        self.database = database or os.getenv(self.config.database_env, "")
        self.username = username or os.getenv(self.config.username_env, "")
        self.password = password or os.getenv(self.config.password_env, "")
        self._transport = transport
        self._uid: Optional[int] = None
        self._ids = itertools.count(1)
        if not self.url:
            logger.warning("Odoo URL is not set (%s).", self.config.url_env)

    async def json_rpc(self, service: str, method: str, args: List[Any]) -> Any:
        if not self.url:
            raise OdooRPCError(f"{self.config.url_env} is not configured.")

        payload = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": {"service": service, "method": method, "args": args},
            "id": next(self._ids),
        }
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport) as client:
                response = await client.post(f"{self.url}/jsonrpc", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Odoo HTTP error - service=%s method=%s status=%s", service, method, e.response.status_code)
            raise OdooRPCError(f"Odoo returned HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("Odoo connection failed - service=%s method=%s: %s", service, method, e)
            raise OdooRPCError("Odoo connection failed") from e

        error = data.get("error")
        if error:
            message = (error.get("data") or {}).get("message") or error.get("message") or "JSON-RPC Error"
            logger.error("Odoo RPC error - service=%s method=%s: %s", service, method, message)
            raise OdooRPCError(message, payload=error)
        return data.get("result")

    async def authenticate(self) -> int:
        if self._uid:
            return self._uid
        if not self.username or not self.password:
            raise OdooRPCError("Odoo credentials not configured in environment")

        uid = await self.json_rpc("common", "authenticate", [self.database, self.username, self.password, {}])
        # Odoo answers `false` rather than an error for bad credentials.
        if not uid:
            raise OdooRPCError("Authentication failed! Please check your credentials.")
        self._uid = int(uid)
        logger.info("Authenticated against Odoo database %s as uid=%s", self.database, self._uid)
        return self._uid

    async def execute_kw(
        self,
        model: str,
        method: str,
        args: Optional[List[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        uid = await self.authenticate()
        return await self.json_rpc(
            "object",
            "execute_kw",
            [self.database, uid, self.password, model, method, args or [], kwargs or {}],
        )
