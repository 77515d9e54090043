import pytest

from src.api.dependencies import build_services
from src.database.redis import PaymentSessionStore
from src.integrations.clients.mocks.flip import FlipMockClient
from src.integrations.clients.mocks.xendit import XenditMockClient
from src.integrations.contracts.interfaces import PaymentMethod, PaymentProvider
from src.payments.gateway_service import PaymentGatewayService
from src.payments.integration_service import MESSAGE_NO_PAYMENT, PaymentIntegrationService
from src.payments.polling import MESSAGE_PAID, PaymentPollingService

ORDER = {"order_id": "35", "amount": 150000, "customer_name": "Budi Santoso", "customer_phone": "081234567890"}


@pytest.mark.asyncio
async def test_create_qris_payment_records_order_session_and_polling(integration, odoo, waiting_order):
    try:
        result = await integration.create_payment_with_monitoring(ORDER, PaymentMethod.QRIS)

        payment_id = result["payment_id"]
        assert result["success"] is True
        assert result["provider"] == "XENDIT"
        assert result["qr_string"]
        assert odoo.get(35)["note"].startswith(f"[PAYMENT] QRIS:{payment_id}:PENDING\n")
        assert integration.polling.is_polling(payment_id)

        session = integration.get_payment_session(payment_id)
        assert session.order_id == "35"
        assert session.provider == PaymentProvider.XENDIT
        assert session.payment_data["payment_id"] == payment_id
    finally:
        integration.stop_all_payment_monitoring()


@pytest.mark.asyncio
async def test_create_va_without_bank_returns_transfer_account(integration, waiting_order):
    try:
        result = await integration.create_payment_with_monitoring(ORDER, PaymentMethod.VIRTUAL_ACCOUNT)
    finally:
        integration.stop_all_payment_monitoring()

    assert result["success"] is True
    assert result["provider"] == "FLIP"
    assert result["bank_code"] == "MANDIRI"
    assert result["account_number"]


@pytest.mark.asyncio
async def test_invalid_request_is_reported_not_raised(integration, waiting_order):
    result = await integration.create_payment_with_monitoring({**ORDER, "amount": 0}, PaymentMethod.QRIS)

    assert result["success"] is False
    assert result["error_code"] == "INVALID_REQUEST"
    assert integration.get_active_payment_sessions() == []


@pytest.mark.asyncio
async def test_provider_failure_is_reported_as_gateway_error(payments_config, orders, sessions, waiting_order):
    gateway = PaymentGatewayService(
        FlipMockClient(payments_config.flip), XenditMockClient(payments_config, fail_creation=True), payments_config
    )
    polling = PaymentPollingService(gateway, orders, payments_config)
    integration = PaymentIntegrationService(gateway, polling, orders, sessions, payments_config)

    result = await integration.create_payment_with_monitoring(ORDER, PaymentMethod.QRIS)

    assert result["success"] is False
    assert result["error_code"] == "GATEWAY_ERROR"
    assert "XENDIT" in result["error"]


@pytest.mark.asyncio
async def test_missing_order_is_reported_as_gateway_error(integration):
    result = await integration.create_payment_with_monitoring({**ORDER, "order_id": "999"}, PaymentMethod.QRIS)

    assert result["success"] is False
    assert result["error_code"] == "GATEWAY_ERROR"
    assert integration.get_active_payment_sessions() == []


@pytest.mark.asyncio
async def test_check_payment_manually(integration, xendit, waiting_order):
    assert await integration.check_payment_manually("35") == {
        "success": False,
        "is_paid": False,
        "status": "NO_PAYMENT",
        "message": MESSAGE_NO_PAYMENT,
    }

    try:
        created = await integration.create_payment_with_monitoring(ORDER, PaymentMethod.QRIS)
        pending = await integration.check_payment_manually("35")
        xendit.mark_paid(created["payment_id"])
        paid = await integration.check_payment_manually("35")
    finally:
        integration.stop_all_payment_monitoring()

    assert pending["success"] is True
    assert pending["status"] == "PENDING"
    assert paid["is_paid"] is True
    assert paid["message"] == MESSAGE_PAID
    assert not integration.polling.is_polling(created["payment_id"])


@pytest.mark.asyncio
async def test_check_payment_manually_for_missing_order(integration):
    result = await integration.check_payment_manually("999")

    assert result["success"] is False
    assert result["status"] == "ERROR"


@pytest.mark.asyncio
async def test_remove_payment_session_stops_polling(integration, waiting_order):
    try:
        created = await integration.create_payment_with_monitoring(ORDER, PaymentMethod.QRIS)
        payment_id = created["payment_id"]

        assert integration.remove_payment_session(payment_id) is True
        assert integration.remove_payment_session(payment_id) is False
        assert not integration.polling.is_polling(payment_id)
    finally:
        integration.stop_all_payment_monitoring()


@pytest.mark.asyncio
async def test_resume_payment_monitoring_from_order_notes(integration, odoo):
    odoo.add_order(35, note="[PAYMENT] QRIS:qr_resume:PENDING\n[WAITING_PAYMENT]", amount_total=150000.0)
    odoo.add_order(36, note="[PAYMENT] BITCOIN:btc_1:PENDING\n[WAITING_PAYMENT]", amount_total=99000.0)
    odoo.add_order(37, note="[PAYMENT] VIRTUAL_ACCOUNT:100001:PENDING\n[WAITING_PAYMENT]", amount_total=50000.0)

    try:
        assert await integration.resume_payment_monitoring() == 2
        assert await integration.resume_payment_monitoring() == 0

        qris = integration.get_payment_session("qr_resume")
        va = integration.get_payment_session("100001")
        assert qris.provider == PaymentProvider.XENDIT
        assert qris.amount == 150000.0
        assert va.provider == PaymentProvider.FLIP
        assert integration.get_payment_session("btc_1") is None
    finally:
        integration.stop_all_payment_monitoring()

    assert integration.get_active_payment_sessions() == []


def test_fee_helpers(integration):
    assert integration.calculate_payment_fee(100000, PaymentMethod.QRIS) == 300
    assert integration.calculate_payment_fee(100000, PaymentMethod.CARDS) == 0
    assert integration.get_total_amount_with_fees(100000, PaymentMethod.EWALLET) == {
        "base_amount": 100000,
        "fee": 300,
        "total_amount": 100300,
    }


def test_available_payment_methods_respect_limits(integration):
    within = integration.get_available_payment_methods(150000)
    below = integration.get_available_payment_methods(5000)

    assert [m["method"] for m in within] == ["QRIS", "VIRTUAL_ACCOUNT", "EWALLET"]
    assert all(m["enabled"] for m in within)
    assert within[0]["fee"] == 450
    assert within[0]["total_amount"] == 150450
    assert not any(m["enabled"] for m in below)


@pytest.mark.asyncio
async def test_session_is_closed_when_payment_is_paid(integration, xendit, waiting_order):
    try:
        created = await integration.create_payment_with_monitoring(ORDER, PaymentMethod.QRIS)
        payment_id = created["payment_id"]
        xendit.mark_paid(payment_id)

        assert await integration.polling.poll_payment_status(payment_id) == "paid"
    finally:
        integration.stop_all_payment_monitoring()

    assert integration.get_payment_session(payment_id) is None


@pytest.mark.asyncio
async def test_session_is_closed_when_polling_times_out(integration, clock, waiting_order):
    try:
        created = await integration.create_payment_with_monitoring(ORDER, PaymentMethod.QRIS)
        payment_id = created["payment_id"]
        clock.advance(1801)

        assert await integration.polling.poll_payment_status(payment_id) == "timeout"
        assert integration.get_active_payment_sessions() == []
    finally:
        integration.stop_all_payment_monitoring()


@pytest.mark.asyncio
async def test_paid_xendit_va_is_not_cancelled_when_it_turns_inactive(
    integration, webhooks, xendit, odoo, waiting_order
):
    webhooks.add_listener(integration.release_order)
    try:
        created = await integration.create_payment_with_monitoring(
            ORDER, PaymentMethod.VIRTUAL_ACCOUNT, {"bank_code": "BRI"}, PaymentProvider.XENDIT
        )
        payment_id = created["payment_id"]
        callback = {
            "id": "cb_va_1",
            "external_id": "va_35_1755536546716",
            "callback_virtual_account_id": payment_id,
            "bank_code": "BRI",
            "account_number": created["account_number"],
            "status": "COMPLETED",
            "amount": 150000,
        }

        assert (await webhooks.process_webhook(callback))["processed"] is True
        assert not integration.polling.is_polling(payment_id)
        assert integration.get_payment_session(payment_id) is None

        # A poller that is still around sees the closed VA
        xendit.set_status(payment_id, "INACTIVE")
        integration.polling.start_polling(payment_id, PaymentMethod.VIRTUAL_ACCOUNT, "35", PaymentProvider.XENDIT)
        assert await integration.polling.poll_payment_status(payment_id) == "pending"
    finally:
        integration.stop_all_payment_monitoring()

    assert odoo.get(35)["state"] == "sale"


@pytest.mark.asyncio
async def test_release_order_stops_every_payment_of_the_order(integration, waiting_order):
    try:
        created = await integration.create_payment_with_monitoring(ORDER, PaymentMethod.QRIS)
        payment_id = created["payment_id"]

        assert await integration.release_order("35") == [payment_id]
        assert not integration.polling.is_polling(payment_id)
        assert integration.get_active_payment_sessions() == []
        assert await integration.release_order("35") == []
    finally:
        integration.stop_all_payment_monitoring()


@pytest.mark.asyncio
async def test_confirmations_outside_polling_release_the_payment(payments_config):
    services = build_services(payments_config, PaymentSessionStore(), use_real=False)
    services.orders.client.add_order(35, note="[WAITING_PAYMENT]", amount_total=150000.0)
    services.orders.client.add_order(36, note="[WAITING_PAYMENT]", amount_total=150000.0)
    try:
        qris = await services.integration.create_payment_with_monitoring(ORDER, PaymentMethod.QRIS)
        va = await services.integration.create_payment_with_monitoring(
            {**ORDER, "order_id": "36"}, PaymentMethod.VIRTUAL_ACCOUNT, {"bank_code": "BRI"}
        )

        webhook = await services.webhooks.simulate_payment_webhook("35", PaymentMethod.QRIS)
        simulated = await services.simulator.simulate_virtual_account_payment("36")

        assert webhook["processed"] is True
        assert simulated["success"] is True
        assert not services.polling.is_polling(qris["payment_id"])
        assert not services.polling.is_polling(va["payment_id"])
        assert services.integration.get_active_payment_sessions() == []
    finally:
        services.integration.stop_all_payment_monitoring()
