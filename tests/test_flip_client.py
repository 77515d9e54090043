import base64
import json
from datetime import datetime
from urllib.parse import parse_qs

import httpx
import pytest

from src.integrations.clients.real_http.flip import FlipPaymentClient
from src.integrations.contracts.interfaces import PaymentMethod, PaymentProvider, UnifiedPaymentRequest
from src.integrations.services.response_wrappers import PaymentGatewayError, PaymentNotFoundError


def _request(**overrides):
    values = dict(
        order_id="35",
        amount=150000,
        payment_method=PaymentMethod.VIRTUAL_ACCOUNT,
        customer_name="Budi Santoso",
        customer_email="budi@example.com",
        customer_phone="081234567890",
    )
    values.update(overrides)
    return UnifiedPaymentRequest(**values)


def _client(handler, **kwargs):
    return FlipPaymentClient(
        secret_key="JDJ5JDEzJHNlY3JldA",
        validation_key="flip-validation",
        transport=httpx.MockTransport(handler),
        now=lambda: datetime(2025, 8, 18, 12, 0, 0),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_create_bill_payment_posts_form_with_basic_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"link_id": 123456, "link_url": "flip.id/#123456", "amount": 150000, "status": "ACTIVE"})

    data = await _client(handler).create_bill_payment(_request())

    assert data["link_id"] == 123456
    assert seen["path"] == "/v2/pwf/bill"
    assert seen["auth"] == "Basic " + base64.b64encode(b"JDJ5JDEzJHNlY3JldA:").decode()
    assert seen["form"]["amount"] == ["150000"]
    assert seen["form"]["expired_date"] == ["2025-08-19"]
    assert seen["form"]["sender_email"] == ["budi@example.com"]


@pytest.mark.asyncio
async def test_create_va_payment_uses_direct_api_and_adds_bank_name():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "link_id": 777,
                "amount": 150000,
                "status": "ACTIVE",
                "bill_payment": {
                    "id": "PGPWF1",
                    "status": "PENDING",
                    "receiver_bank_account": {"bank_code": "bni", "account_number": "8808000011112222"},
                },
            },
        )

    data = await _client(handler).create_va_payment(_request(), "BNI")

    assert seen["path"] == "/big_api/v3/pwf/bill"
    assert seen["body"]["sender_bank"] == "bni"
    assert seen["body"]["sender_bank_type"] == "virtual_account"
    assert seen["body"]["step"] == "direct_api"
    assert seen["body"]["reference_id"] == "35"
    assert data["bank_name"] == "BNI"


@pytest.mark.asyncio
async def test_http_error_becomes_gateway_error_with_provider_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"code": "VALIDATION_ERROR", "message": "amount is invalid"})

    with pytest.raises(PaymentGatewayError) as exc:
        await _client(handler).create_qris_payment(_request(payment_method=PaymentMethod.QRIS))

    assert str(exc.value) == "amount is invalid"
    assert exc.value.status_code == 422
    assert exc.value.provider == PaymentProvider.FLIP
    assert exc.value.payload["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_network_error_becomes_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentGatewayError) as exc:
        await _client(handler).get_available_banks()

    assert exc.value.status_code is None
    assert "banks" in str(exc.value)


@pytest.mark.asyncio
async def test_missing_v2_bill_is_treated_as_pending():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "not found"})

    data = await _client(handler).get_bill_status(424242)

    assert data == {"link_id": 424242, "status": "ACTIVE", "step": 1, "payment_id": None}


@pytest.mark.asyncio
async def test_missing_v3_bill_raises_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "not found"})

    with pytest.raises(PaymentNotFoundError):
        await _client(handler).get_v3_bill_status("PGPWF1")


def test_mobile_payment_uses_configured_bank_account():
    client = _client(lambda request: httpx.Response(500))
    data = client.create_mobile_payment(_request())

    assert data["payment_id"].startswith("FLIP")
    assert data["status"] == "PENDING"
    assert data["bank_details"]["bank_code"] == "MANDIRI"
    assert data["bank_details"]["account_name"] == "FLIP - Budi Santoso"
    assert data["instructions"][0] == "Transfer tepat sejumlah Rp 150.000"


def test_validate_webhook_token():
    client = _client(lambda request: httpx.Response(200))
    assert client.validate_webhook_token("flip-validation") is True
    assert client.validate_webhook_token("wrong") is False
    assert client.validate_webhook_token(None) is False
