# core/middleware.py

"""
CUSTOM MIDDLEWARE

Request/response processing middleware for:
- Request logging
- Security headers
"""

import time
import uuid
import logging
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(MiddlewareMixin):
    """
    Log all incoming requests with timing information.

    Adds request ID for tracing across services.
    """

    def process_request(self, request):
        request.request_id = str(uuid.uuid4())[:8]
        request.start_time = time.monotonic()

        logger.info(
            f"[{request.request_id}] {request.method} {request.path}"
        )

    def process_response(self, request, response):
        if hasattr(request, "start_time"):
            duration_ms = (time.monotonic() - request.start_time) * 1000

            response["X-Request-Duration-Ms"] = f"{duration_ms:.2f}"

            logger.info(
                f"[{getattr(request, 'request_id', 'unknown')}] "
                f"Response: {response.status_code} ({duration_ms:.2f}ms)"
            )

            if duration_ms > 1000:
                logger.warning(
                    f"Slow request: {request.method} {request.path} "
                    f"took {duration_ms:.2f}ms"
                )

        if hasattr(request, "request_id"):
            response["X-Request-ID"] = request.request_id

        return response


class SecurityHeadersMiddleware(MiddlewareMixin):
    """
    Add security headers to all responses.
    """

    def process_response(self, request, response):
        response["X-Frame-Options"] = "DENY"
        response["X-Content-Type-Options"] = "nosniff"
        response["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Tokens and challenge outcomes must never be cached by proxies
        if request.path.startswith("/api/"):
            response["Cache-Control"] = "no-store"

        return response
