from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from src.api.dependencies import PaymentServices, get_services, require_simulation
from src.integrations.contracts.interfaces import PaymentMethod, PaymentProvider
from src.integrations.contracts.payments import payment_status_to_dict, session_to_dict
from src.integrations.services.order_service import OrderNotFoundError
from src.integrations.services.response_wrappers import OdooRPCError

api = APIRouter()
payments_api = api


class CreatePaymentRequest(BaseModel):
    order_id: str
    amount: float
    payment_method: PaymentMethod
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    description: Optional[str] = None
    provider: Optional[PaymentProvider] = Field(default=None, description="Force FLIP or XENDIT instead of the configured routing")
    bank_code: Optional[str] = Field(default=None, description="VA bank, e.g. BRI or BNI")
    channel_code: Optional[str] = Field(default=None, description="Xendit e-wallet channel, e.g. ID_OVO")
    ewallet_code: Optional[str] = Field(default=None, description="Flip e-wallet code, e.g. ovo")


@api.post("", tags=["Payments"])
async def create_payment(request: CreatePaymentRequest, services: PaymentServices = Depends(get_services)):
    """Create a payment for an order and start monitoring it."""
    options = {
        key: value
        for key, value in {
            "bank_code": request.bank_code,
            "channel_code": request.channel_code,
            "ewallet_code": request.ewallet_code,
        }.items()
        if value
    }
    result = await services.integration.create_payment_with_monitoring(
        {
            "order_id": request.order_id,
            "amount": request.amount,
            "customer_name": request.customer_name,
            "customer_email": request.customer_email,
            "customer_phone": request.customer_phone,
            "description": request.description,
        },
        request.payment_method,
        payment_options=options,
        preferred_provider=request.provider,
    )
    if not result["success"]:
        code = 400 if result.get("error_code") == "INVALID_REQUEST" else 502
        raise HTTPException(status_code=code, detail={"message": result["error"], "error_code": result.get("error_code")})
    return result


@api.get("/orders/{order_id}/check", tags=["Payments"])
async def check_order_payment(order_id: str, services: PaymentServices = Depends(get_services)):
    return await services.integration.check_payment_manually(order_id)


@api.get("/orders/{order_id}/status", tags=["Payments"])
async def get_order_payment_status(order_id: str, services: PaymentServices = Depends(get_services)):
    try:
        return await services.simulator.get_order_payment_status(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except OdooRPCError as e:
        raise HTTPException(status_code=502, detail={"message": str(e), "payload": e.payload}) from e


@api.get("/status/{payment_id}", tags=["Payments"])
async def get_payment_status(
    payment_id: str,
    provider: Optional[PaymentProvider] = Query(default=None),
    payment_method: Optional[PaymentMethod] = Query(default=None),
    services: PaymentServices = Depends(get_services),
):
    """Ask the provider directly; nothing is written to the order."""
    result = await services.gateway.get_payment_status(payment_id, provider, payment_method)
    return {"payment_id": payment_id, **payment_status_to_dict(result)}


@api.get("/sessions", tags=["Payments"])
async def list_payment_sessions(services: PaymentServices = Depends(get_services)):
    sessions = services.integration.get_active_payment_sessions()
    polling = {pending.payment_id for pending in services.polling.get_pending_payments()}
    return {
        "count": len(sessions),
        "sessions": [{**session_to_dict(s), "polling": s.payment_id in polling} for s in sessions],
    }


@api.delete("/sessions/{payment_id}", tags=["Payments"])
async def remove_payment_session(payment_id: str, services: PaymentServices = Depends(get_services)):
    if not services.integration.remove_payment_session(payment_id):
        raise HTTPException(status_code=404, detail=f"No payment session for {payment_id}")
    return {"success": True, "payment_id": payment_id}


@api.get("/polling", tags=["Payments"])
async def list_polled_payments(services: PaymentServices = Depends(get_services)):
    return [
        {
            "payment_id": p.payment_id,
            "payment_method": p.payment_method.value,
            "order_id": p.order_id,
            "provider": p.provider.value if p.provider else None,
            "started_at": p.start_time.isoformat(),
            "poll_interval_seconds": p.poll_interval_seconds,
            "max_polling_seconds": p.max_polling_seconds,
        }
        for p in services.polling.get_pending_payments()
    ]


@api.get("/methods", tags=["Payments"])
async def get_payment_methods(
    amount: float = Query(..., ge=0, description="Order total in IDR"),
    services: PaymentServices = Depends(get_services),
):
    return {"amount": amount, "methods": services.integration.get_available_payment_methods(amount)}


@api.get("/fees", tags=["Payments"])
async def get_payment_fees(
    amount: float = Query(..., ge=0),
    payment_method: PaymentMethod = Query(default=PaymentMethod.QRIS),
    services: PaymentServices = Depends(get_services),
):
    return {
        "payment_method": payment_method.value,
        **services.integration.get_total_amount_with_fees(amount, payment_method),
    }


@api.get("/providers/health", tags=["Payments"])
async def get_provider_health(services: PaymentServices = Depends(get_services)) -> Dict[str, Any]:
    return await services.gateway.get_provider_health()


@api.post("/orders/{order_id}/simulate", tags=["Payments"])
async def simulate_order_payment(order_id: str, services: PaymentServices = Depends(get_services)):
    require_simulation(services)
    result = await services.simulator.simulate_virtual_account_payment(order_id)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["message"])
    return result


@api.post("/simulate/by-name/{order_name}", tags=["Payments"])
async def simulate_payment_by_order_name(order_name: str, services: PaymentServices = Depends(get_services)):
    require_simulation(services)
    result = await services.simulator.simulate_payment_by_order_name(order_name)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["message"])
    return result
