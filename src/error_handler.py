"""Error handling helpers for the payment API."""
from typing import Any, Dict, Tuple
import logging

from src.integrations.services.order_service import OrderNotFoundError
from src.integrations.services.response_wrappers import (
    IntegrationResponseError,
    OdooRPCError,
    PaymentGatewayError,
    PaymentNotFoundError,
)

logger = logging.getLogger(__name__)

# Checked in order; IntegrationResponseError must come before ValueError.
_ERROR_CODES: Tuple[Tuple[type, int, str, bool], ...] = (
    (PaymentGatewayError, 502, "GATEWAY_ERROR", True),
    (IntegrationResponseError, 502, "INVALID_PROVIDER_RESPONSE", True),
    (OdooRPCError, 502, "ORDER_STORE_ERROR", True),
    (PaymentNotFoundError, 404, "PAYMENT_NOT_FOUND", False),
    (OrderNotFoundError, 404, "ORDER_NOT_FOUND", False),
    (ValueError, 400, "INVALID_REQUEST", False),
)


class ErrorHandler:
    def classify(self, exc: Exception) -> Tuple[int, str, bool]:
        """(HTTP status, error code, retryable) for an exception."""
        for exc_type, status_code, code, retryable in _ERROR_CODES:
            if isinstance(exc, exc_type):
                return status_code, code, retryable
        return 500, "INTERNAL_ERROR", False

    def handle_exception(self, exc: Exception, context: Dict[str, Any] = None) -> Dict[str, Any]:
        status_code, code, retryable = self.classify(exc)
        if status_code >= 500:
            logger.error("Payment request failed (%s): %s", code, exc, exc_info=status_code == 500)
        else:
            logger.warning("Payment request rejected (%s): %s", code, exc)

        metadata: Dict[str, Any] = {"error": str(exc), "context": context or {}}
        provider = getattr(exc, "provider", None)
        if provider is not None:
            metadata["provider"] = getattr(provider, "value", provider)

        return {
            "message": _MESSAGES.get(code, _MESSAGES["INTERNAL_ERROR"]),
            "error_code": code,
            "status_code": status_code,
            "retryable": retryable,
            "metadata": metadata,
        }


_MESSAGES = {
    "GATEWAY_ERROR": "The payment provider could not process the request. Please try again later.",
    "INVALID_PROVIDER_RESPONSE": "The payment provider returned an unexpected response. Please try again later.",
    "ORDER_STORE_ERROR": "The order could not be read or updated. Please try again later.",
    "PAYMENT_NOT_FOUND": "The payment was not found.",
    "ORDER_NOT_FOUND": "The order was not found.",
    "INVALID_REQUEST": "The request is invalid.",
    "INTERNAL_ERROR": "An internal error occurred while processing your request. Please try again later.",
}
