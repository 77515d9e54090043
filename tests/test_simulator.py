import pytest

from src.integrations.contracts.interfaces import PaymentMethod, PaymentProvider, UnifiedPaymentRequest


async def _xendit_va(gateway, orders, order_id="35"):
    request = UnifiedPaymentRequest(
        order_id=order_id, amount=150000, payment_method=PaymentMethod.VIRTUAL_ACCOUNT, customer_name="Budi Santoso"
    )
    resp = await gateway.create_payment(request, PaymentProvider.XENDIT, {"bank_code": "BNI"})
    await orders.update_order_payment_info(order_id, resp.payment_id, "VIRTUAL_ACCOUNT", "PENDING")
    return resp.payment_id


@pytest.mark.asyncio
async def test_xendit_va_is_paid_through_simulation_endpoint(simulator, gateway, orders, xendit, odoo, waiting_order):
    va_id = await _xendit_va(gateway, orders)

    result = await simulator.simulate_virtual_account_payment("35")

    assert result["success"] is True
    assert "via Xendit" in result["message"]
    assert result["simulation_data"]["status"] == "COMPLETED"
    assert (await xendit.check_payment_status_universal(va_id, PaymentMethod.VIRTUAL_ACCOUNT)).is_paid is True
    assert odoo.get(35)["note"].startswith(f"[PAYMENT] VIRTUAL_ACCOUNT:{va_id}:COMPLETED\n")
    assert (await orders.get_order_by_id(35))["state"] == "payment_confirmed"


@pytest.mark.asyncio
async def test_order_without_payment_is_confirmed_directly(simulator, orders, waiting_order):
    result = await simulator.simulate_virtual_account_payment("35")

    assert result["success"] is True
    assert result["simulation_data"] is None
    assert result["message"] == "Payment completed for order S00035. Status updated to payment confirmed."
    assert (await orders.get_order_by_id(35))["state"] == "payment_confirmed"


@pytest.mark.asyncio
async def test_unknown_va_in_note_falls_back_to_direct_confirmation(simulator, orders, odoo):
    odoo.add_order(
        35,
        note="[PAYMENT] VIRTUAL_ACCOUNT:0f8e2f4a-1b2c-4d5e-8f90-123456789abc:PENDING\n[WAITING_PAYMENT]",
        amount_total=150000.0,
    )

    result = await simulator.simulate_virtual_account_payment("35")

    assert result["success"] is True
    assert result["simulation_data"] is None
    assert odoo.get(35)["note"].startswith("[PAYMENT] VIRTUAL_ACCOUNT:0f8e2f4a-1b2c-4d5e-8f90-123456789abc:COMPLETED")


@pytest.mark.asyncio
async def test_missing_order_fails(simulator):
    result = await simulator.simulate_virtual_account_payment("999")

    assert result["success"] is False
    assert result["message"].startswith("Failed to simulate payment:")


@pytest.mark.asyncio
async def test_simulate_by_order_name(simulator, orders, waiting_order):
    assert (await simulator.simulate_payment_by_order_name("S00035"))["success"] is True
    assert (await orders.get_order_by_id(35))["state"] == "payment_confirmed"

    invalid = await simulator.simulate_payment_by_order_name("no-digits")
    assert invalid == {"success": False, "message": "Invalid order name format", "simulation_data": None}


@pytest.mark.asyncio
async def test_get_order_payment_status(simulator, gateway, orders, waiting_order):
    va_id = await _xendit_va(gateway, orders)

    status = await simulator.get_order_payment_status("35")

    assert status == {
        "order_id": "35",
        "order_name": "S00035",
        "state": "waiting_payment",
        "status_text": "Menunggu Pembayaran",
        "payment_method": "VIRTUAL_ACCOUNT",
        "payment_id": va_id,
        "payment_status": "PENDING",
        "pending": True,
    }


@pytest.mark.asyncio
async def test_listeners_hear_about_simulated_payments(simulator, waiting_order):
    confirmed = []

    async def on_confirmed(order_id):
        confirmed.append(order_id)

    async def broken(order_id):
        raise RuntimeError("listener down")

    simulator.add_listener(broken)
    simulator.add_listener(on_confirmed)

    assert (await simulator.simulate_virtual_account_payment(35))["success"] is True
    assert confirmed == ["35"]
