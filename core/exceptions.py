# core/exceptions.py

"""
EXCEPTION RENDERING

Every API error leaves the service in one envelope:

    {"success": false, "error": "<code>", "message": "<text>", ...}

Domain exceptions may attach UI fields (retry_after, attempts_remaining,
locked_until) through ``get_extra_data()``; these are merged into the
envelope. Internal diagnostics are never included.
"""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException, Throttled, ValidationError
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ServiceUnavailableException(APIException):
    """Feature switched off or dependency down"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service temporarily unavailable. Please try again later."
    default_code = "service_unavailable"


def _message_from(data):
    if isinstance(data, dict):
        if "detail" in data:
            return str(data["detail"])
        return "Invalid request."
    if isinstance(data, list) and data:
        return str(data[0])
    return str(data)


def custom_exception_handler(exc, context):
    """
    Custom exception handler for consistent error responses.
    """
    response = exception_handler(exc, context)

    if response is None:
        return None

    if isinstance(exc, ValidationError):
        payload = {
            "success": False,
            "error": "invalid_input",
            "message": "Invalid request.",
            "fields": response.data,
        }
    else:
        payload = {
            "success": False,
            "error": getattr(exc, "default_code", "error"),
            "message": _message_from(response.data),
        }

    if isinstance(exc, Throttled) and exc.wait is not None:
        payload["retry_after"] = int(exc.wait)

    get_extra = getattr(exc, "get_extra_data", None)
    if callable(get_extra):
        payload.update(get_extra())

    if response.status_code >= 500:
        logger.warning(
            "API error %s on %s: %s",
            payload["error"],
            getattr(context.get("request"), "path", "?"),
            exc.__class__.__name__,
        )

    response.data = payload
    return response
