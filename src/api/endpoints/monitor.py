from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.dependencies import PaymentServices, get_services, require_simulation
from src.integrations.services.order_service import OrderNotFoundError
from src.integrations.services.response_wrappers import OdooRPCError

router = APIRouter()


@router.get("/status", tags=["Monitor"])
async def monitor_status(services: PaymentServices = Depends(get_services)):
    return services.monitor.get_monitoring_status()


@router.post("/start", tags=["Monitor"])
async def start_monitor(
    interval_seconds: Optional[float] = Query(default=None, gt=0),
    services: PaymentServices = Depends(get_services),
):
    started = services.monitor.start_monitoring(interval_seconds)
    return {"started": started, **services.monitor.get_monitoring_status()}


@router.post("/stop", tags=["Monitor"])
async def stop_monitor(services: PaymentServices = Depends(get_services)):
    stopped = services.monitor.stop_monitoring()
    return {"stopped": stopped, **services.monitor.get_monitoring_status()}


@router.post("/run", tags=["Monitor"])
async def run_monitor_once(services: PaymentServices = Depends(get_services)):
    """One pass over pending payments, outside the interval."""
    try:
        return await services.monitor.check_and_process_pending_payments()
    except OdooRPCError as e:
        raise HTTPException(status_code=502, detail={"message": str(e), "payload": e.payload}) from e


@router.post("/catch-up", tags=["Monitor"])
async def catch_up(
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    services: PaymentServices = Depends(get_services),
):
    try:
        return await services.monitor.process_existing_completed_payments(limit)
    except OdooRPCError as e:
        raise HTTPException(status_code=502, detail={"message": str(e), "payload": e.payload}) from e


@router.post("/orders/{order_id}/simulate-webhook", tags=["Monitor"])
async def simulate_webhook(order_id: str, services: PaymentServices = Depends(get_services)):
    require_simulation(services)
    try:
        return await services.monitor.simulate_webhook_for_order(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
