"""Tests for order reconciliation against the in-memory Odoo."""

import pytest

from src.integrations.contracts.interfaces import OrderPaymentInfo
from src.integrations.services.order_service import OrderNotFoundError, OrderService


@pytest.mark.asyncio
async def test_get_order_by_id_reads_custom_status_from_note(orders, waiting_order):
    order = await orders.get_order_by_id(35)

    assert order["id"] == 35
    assert order["name"] == "S00035"
    assert order["odoo_state"] == "draft"
    assert order["state"] == "waiting_payment"
    assert order["status_text"] == "Menunggu Pembayaran"
    assert order["amount_total"] == 150000.0


@pytest.mark.asyncio
async def test_get_order_by_id_missing(orders):
    with pytest.raises(OrderNotFoundError):
        await orders.get_order_by_id(999)


@pytest.mark.asyncio
async def test_get_orders_newest_first(orders, odoo):
    for order_id in (1, 3, 2):
        odoo.add_order(order_id)

    result = await orders.get_orders(limit=2)

    assert [o["id"] for o in result] == [3, 2]


@pytest.mark.asyncio
async def test_update_order_status_payment_confirmed(orders, odoo, waiting_order):
    order = await orders.update_order_status(35, "payment_confirmed")

    assert odoo.get(35)["state"] == "sale"
    assert odoo.get(35)["note"] == "[PAYMENT_CONFIRMED] Kirim sore"
    assert order["state"] == "payment_confirmed"
    assert order["status_text"] == "Pembayaran Dikonfirmasi"


@pytest.mark.asyncio
async def test_update_order_status_keeps_payment_line_first(orders, odoo, waiting_order):
    await orders.update_order_payment_info(35, "va-123", "VIRTUAL_ACCOUNT", "PENDING")
    await orders.update_order_status(35, "payment_confirmed")

    assert odoo.get(35)["note"] == "[PAYMENT] VIRTUAL_ACCOUNT:va-123:PENDING\n[PAYMENT_CONFIRMED] Kirim sore"


@pytest.mark.asyncio
async def test_cancelling_strips_status_tag(orders, odoo, waiting_order):
    await orders.update_order_payment_info(35, "qr_1", "QRIS", "PENDING")
    order = await orders.update_order_status(35, "cancelled")

    assert odoo.get(35)["state"] == "cancel"
    assert "[WAITING_PAYMENT]" not in odoo.get(35)["note"]
    assert order["state"] == "cancel"
    assert await orders.get_orders_with_pending_payments() == []


@pytest.mark.asyncio
async def test_unknown_status_becomes_tagged_sale(orders, odoo, waiting_order):
    order = await orders.update_order_status(35, "ready_for_pickup")

    assert odoo.get(35)["state"] == "sale"
    assert order["state"] == "ready_for_pickup"
    assert order["status_text"] == "Ready For Pickup"


@pytest.mark.asyncio
async def test_update_order_payment_info_replaces_previous_line(orders, odoo, waiting_order):
    await orders.update_order_payment_info(35, "va-123", "VIRTUAL_ACCOUNT", "PENDING")
    await orders.update_order_payment_info(35, "va-123", "VIRTUAL_ACCOUNT", "COMPLETED")

    note = odoo.get(35)["note"]
    assert note.count("[PAYMENT]") == 1
    assert note.startswith("[PAYMENT] VIRTUAL_ACCOUNT:va-123:COMPLETED\n")


@pytest.mark.asyncio
async def test_update_order_payment_info_requires_order_id(orders):
    with pytest.raises(ValueError):
        await orders.update_order_payment_info("", "va-123", "VIRTUAL_ACCOUNT", "PENDING")


def test_get_payment_info_from_order():
    info = OrderService.get_payment_info_from_order({"note": "[PAYMENT] QRIS:qr_abc:PENDING\n[WAITING_PAYMENT]"})
    assert info == OrderPaymentInfo(payment_method="QRIS", payment_id="qr_abc", payment_status="PENDING")

    assert OrderService.get_payment_info_from_order({"note": "no payment here"}) == OrderPaymentInfo()


@pytest.mark.parametrize(
    "status,pending",
    [("PENDING", True), ("ACTIVE", True), ("COMPLETED", False), ("SUCCEEDED", False), ("PAID", False)],
)
def test_is_payment_pending(status, pending):
    info = OrderPaymentInfo(payment_method="QRIS", payment_id="qr_1", payment_status=status)
    assert OrderService.is_payment_pending(info) is pending


@pytest.mark.asyncio
async def test_has_order_pending_payment(orders, waiting_order):
    assert await orders.has_order_pending_payment(35) is False
    await orders.update_order_payment_info(35, "qr_1", "QRIS", "PENDING")
    assert await orders.has_order_pending_payment(35) is True
    assert await orders.has_order_pending_payment(404) is False


@pytest.mark.asyncio
async def test_get_orders_with_pending_payments_filters(orders, odoo):
    odoo.add_order(35, note="[PAYMENT] QRIS:qr_1:PENDING\n[WAITING_PAYMENT]")
    odoo.add_order(36, note="[WAITING_PAYMENT]")
    odoo.add_order(37, note="[PAYMENT] QRIS:qr_3:COMPLETED\n[WAITING_PAYMENT]")
    odoo.add_order(38, state="sale", note="[PAYMENT] QRIS:qr_4:PENDING")

    pending = await orders.get_orders_with_pending_payments()

    assert [o["id"] for o in pending] == [35]


@pytest.mark.asyncio
async def test_find_order_by_payment_id(orders, odoo):
    odoo.add_order(40, note="[PAYMENT] VIRTUAL_ACCOUNT:100001:PENDING")
    odoo.add_order(41, note="[PAYMENT] VIRTUAL_ACCOUNT:1000011:PENDING")

    order = await orders.find_order_by_payment_id("100001")

    assert order["id"] == 40
    assert await orders.find_order_by_payment_id("555") is None
