import json

import httpx
import pytest

from src.integrations.clients.real_http.odoo import OdooJsonRpcClient
from src.integrations.services.response_wrappers import OdooRPCError


def _client(handler, **kwargs):
    values = dict(url="https://odoo.example.com/", database="petshop", username="api@petshop.id", password="secret")
    values.update(kwargs)
    return OdooJsonRpcClient(transport=httpx.MockTransport(handler), **values)


@pytest.mark.asyncio
async def test_execute_kw_authenticates_once_then_calls_object_service():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/jsonrpc"
        body = json.loads(request.content)
        calls.append(body["params"])
        if body["params"]["service"] == "common":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": 7})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": [{"id": 35}]})

    client = _client(handler)
    first = await client.execute_kw("sale.order", "search_read", [[["id", "=", 35]]], {"limit": 1})
    await client.execute_kw("sale.order", "read", [[35]])

    assert first == [{"id": 35}]
    assert [c["service"] for c in calls] == ["common", "object", "object"]
    assert calls[0]["args"] == ["petshop", "api@petshop.id", "secret", {}]
    assert calls[1]["method"] == "execute_kw"
    assert calls[1]["args"][:6] == ["petshop", 7, "secret", "sale.order", "search_read", [[["id", "=", 35]]]]


@pytest.mark.asyncio
async def test_rejected_credentials_raise():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": False})

    with pytest.raises(OdooRPCError, match="Authentication failed"):
        await _client(handler).authenticate()


@pytest.mark.asyncio
async def test_missing_credentials_raise_without_calling_odoo(monkeypatch):
    monkeypatch.delenv("ODOO_USERNAME", raising=False)
    monkeypatch.delenv("ODOO_PASSWORD", raising=False)

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("Odoo must not be called")

    with pytest.raises(OdooRPCError):
        await _client(handler, username="", password="").authenticate()


@pytest.mark.asyncio
async def test_rpc_error_message_is_taken_from_error_data():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "error": {"code": 200, "message": "Odoo Server Error", "data": {"message": "Access Denied"}},
            },
        )

    with pytest.raises(OdooRPCError) as exc:
        await _client(handler).json_rpc("common", "version", [])

    assert str(exc.value) == "Access Denied"
    assert exc.value.payload["code"] == 200


@pytest.mark.asyncio
async def test_http_and_network_errors_raise_rpc_error():
    def failing(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(OdooRPCError, match="HTTP 502"):
        await _client(failing).json_rpc("common", "version", [])
    with pytest.raises(OdooRPCError, match="connection failed"):
        await _client(unreachable).json_rpc("common", "version", [])


@pytest.mark.asyncio
async def test_unconfigured_url_raises(monkeypatch):
    monkeypatch.delenv("ODOO_URL", raising=False)
    client = OdooJsonRpcClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))

    with pytest.raises(OdooRPCError, match="ODOO_URL"):
        await client.json_rpc("common", "version", [])
