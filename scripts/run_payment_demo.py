#!/usr/bin/env python3
"""
Run a payment end to end against the mock providers and print each stage.
Creates a QRIS payment for a demo order, pays it in the mock Xendit, lets the
payment monitor pick it up, and shows the order before and after.

Usage (from repo root):
  python scripts/run_payment_demo.py
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.api.dependencies import build_services
from src.database.redis import PaymentSessionStore
from src.integrations.contracts.interfaces import PaymentMethod
from src.utils.config_loader import load_payments_config


def setup_logging():
    """Log to terminal at INFO so every stage is visible."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )


def print_stage(title: str, data: dict | list | str):
    """Print a stage header and data to the terminal."""
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)
    if isinstance(data, (dict, list)):
        print(json.dumps(data, indent=2, default=str))
    else:
        print(data)
    print()


async def main():
    setup_logging()
    services = build_services(load_payments_config(), PaymentSessionStore(), use_real=False)
    order = services.orders.client.seed_demo_orders(count=1)[0]
    order_id = str(order["id"])

    print_stage("ORDER BEFORE PAYMENT", await services.simulator.get_order_payment_status(order_id))

    print_stage("AVAILABLE METHODS", services.integration.get_available_payment_methods(order["amount_total"]))

    created = await services.integration.create_payment_with_monitoring(
        {"order_id": order_id, "amount": order["amount_total"], "customer_name": "Demo Customer"},
        PaymentMethod.QRIS,
    )
    print_stage("PAYMENT CREATED", created)
    if not created["success"]:
        return

    # Customer scans and pays; the mock provider now reports COMPLETED
    services.xendit.mark_paid(created["payment_id"])
    print_stage("PROVIDER STATUS", (await services.gateway.get_payment_status(created["payment_id"])).raw_status)

    print_stage("MONITOR RUN", await services.monitor.check_and_process_pending_payments())
    print_stage("ORDER AFTER PAYMENT", await services.simulator.get_order_payment_status(order_id))

    services.integration.stop_all_payment_monitoring()


if __name__ == "__main__":
    asyncio.run(main())
