"""
Provider callbacks.

Both routes are exempt from the X-API-KEY check; each provider proves itself
with its own token instead (Xendit: `x-callback-token` header, Flip: the
`token` form field).
"""

import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from src.api.dependencies import PaymentServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


async def _process(services: PaymentServices, payload: Dict[str, Any]) -> Dict[str, Any]:
    result = await services.webhooks.process_webhook(payload)
    if result.get("error"):
        # Non-2xx makes the provider retry once the order store is reachable again
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=result)
    return {"received": True, **result}


@router.post("/webhooks/xendit", tags=["Webhooks"])
async def xendit_webhook(
    request: Request,
    x_callback_token: Optional[str] = Header(default=None, alias="x-callback-token"),
    services: PaymentServices = Depends(get_services),
):
    if not services.xendit.validate_webhook_token(x_callback_token):
        logger.warning("Rejected Xendit callback with invalid token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid callback token")

    try:
        payload = await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Callback body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Callback body must be a JSON object")

    return await _process(services, payload)


@router.post("/webhooks/flip", tags=["Webhooks"])
async def flip_webhook(request: Request, services: PaymentServices = Depends(get_services)):
    """Flip posts application/x-www-form-urlencoded with `token` and a JSON `data` field."""
    try:
        form = parse_qs((await request.body()).decode("utf-8"))
    except UnicodeDecodeError as e:
        raise HTTPException(status_code=400, detail="Callback body is not valid UTF-8") from e
    token = (form.get("token") or [""])[0]
    if not services.flip.validate_webhook_token(token):
        logger.warning("Rejected Flip callback with invalid token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid callback token")

    try:
        data = json.loads((form.get("data") or [""])[0])
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail="Field 'data' is not valid JSON") from e
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Field 'data' must be a JSON object")

    return await _process(services, data)
