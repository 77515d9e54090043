import json

import httpx
import pytest

from src.integrations.clients.real_http.xendit import XenditPaymentClient, format_phone_number
from src.integrations.contracts.interfaces import PaymentMethod, PaymentStatus, UnifiedPaymentRequest
from src.integrations.services.response_wrappers import PaymentGatewayError


def _request(**overrides):
    values = dict(
        order_id="35",
        amount=150000,
        payment_method=PaymentMethod.VIRTUAL_ACCOUNT,
        customer_name="Budi Santoso",
        customer_phone="0812-3456-7890",
        description="Dog food 5kg",
    )
    values.update(overrides)
    return UnifiedPaymentRequest(**values)


def _client(handler):
    return XenditPaymentClient(
        secret_key="xnd_development_abc",
        webhook_token="callback-token",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0812-3456-7890", "6281234567890"),
        ("+62 812 3456 7890", "6281234567890"),
        ("81234567890", "6281234567890"),
        ("", ""),
        (None, ""),
    ],
)
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


def test_development_keys_are_test_mode():
    assert _client(lambda request: httpx.Response(200)).is_test_mode is True


@pytest.mark.asyncio
async def test_create_virtual_account_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "va-1", **seen["body"], "account_number": "9999000011"})

    await _client(handler).create_virtual_account(_request(amount=5000), "BCA")

    body = seen["body"]
    assert seen["path"] == "/callback_virtual_accounts"
    assert body["external_id"].startswith("va_35_")
    assert body["expected_amount"] == 10000  # raised to the VA minimum
    assert body["is_closed"] is True and body["is_single_use"] is True
    assert "description" not in body  # BCA rejects descriptions


@pytest.mark.asyncio
async def test_create_virtual_account_keeps_description_for_other_banks():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "va-2"})

    await _client(handler).create_virtual_account(_request(), "BRI")

    assert seen["body"]["description"] == "Dog food 5kg"


@pytest.mark.asyncio
async def test_create_ewallet_sends_normalised_phone():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "ewc_1", "status": "PENDING"})

    await _client(handler).create_ewallet_payment(_request(payment_method=PaymentMethod.EWALLET), "ID_OVO")

    assert seen["body"]["channel_code"] == "ID_OVO"
    assert seen["body"]["channel_properties"]["mobile_number"] == "6281234567890"
    assert seen["body"]["checkout_method"] == "ONE_TIME_PAYMENT"


@pytest.mark.asyncio
async def test_create_ewallet_channel_unavailable_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error_code": "CHANNEL_UNAVAILABLE", "message": "down"})

    with pytest.raises(PaymentGatewayError) as exc:
        await _client(handler).create_ewallet_payment(_request(payment_method=PaymentMethod.EWALLET), "ID_DANA")

    assert "ID_DANA sedang tidak tersedia" in str(exc.value)
    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_create_ewallet_requires_customer_name():
    client = _client(lambda request: httpx.Response(200))
    with pytest.raises(ValueError):
        await client.create_ewallet_payment(_request(customer_name=""), "ID_OVO")


@pytest.mark.asyncio
async def test_va_status_paid_when_received_amount_covers_expected():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/callback_virtual_accounts/va-1"
        return httpx.Response(200, json={"id": "va-1", "status": "ACTIVE", "expected_amount": 150000, "received_amount": 150000})

    result = await _client(handler).check_payment_status_universal("va-1", PaymentMethod.VIRTUAL_ACCOUNT)

    assert result.is_paid is True
    assert result.status == PaymentStatus.PAID
    assert result.raw_status == "ACTIVE"
    assert result.paid_amount == 150000


@pytest.mark.asyncio
async def test_qris_status_active_is_pending():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/qr_codes/qr_1"
        return httpx.Response(200, json={"id": "qr_1", "status": "ACTIVE", "amount": 150000})

    result = await _client(handler).check_payment_status_universal("qr_1", PaymentMethod.QRIS)

    assert result.is_paid is False
    assert result.status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_ewallet_status_succeeded_is_paid():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "ewc_1", "status": "SUCCEEDED", "charge_amount": 50000, "capture_amount": 50000})

    result = await _client(handler).check_payment_status_universal("ewc_1", PaymentMethod.EWALLET)

    assert result.is_paid is True
    assert result.paid_amount == 50000


@pytest.mark.asyncio
async def test_status_check_failure_returns_error_result():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error_code": "DATA_NOT_FOUND", "message": "not found"})

    result = await _client(handler).check_payment_status_universal("qr_missing", PaymentMethod.QRIS)

    assert result.is_paid is False
    assert result.raw_status == "ERROR"
    assert result.error == "not found"


@pytest.mark.asyncio
async def test_simulate_va_payment_and_health_paths():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append((request.method, request.url.path))
        return httpx.Response(200, json={"status": "COMPLETED", "balance": 1000})

    client = _client(handler)
    await client.simulate_va_payment("va-1", 150000)
    await client.check_health()

    assert paths == [
        ("POST", "/pool_virtual_accounts/va-1/simulate_payment"),
        ("GET", "/balance"),
    ]


def test_format_helpers():
    assert XenditPaymentClient.format_va_number("88608123456") == "8860-8123-456"
    assert XenditPaymentClient.generate_qr_code_url("00020101").endswith("data=00020101")


def test_validate_webhook_token():
    client = _client(lambda request: httpx.Response(200))
    assert client.validate_webhook_token("callback-token") is True
    assert client.validate_webhook_token("nope") is False
