# core/health_urls.py

import logging

from django.urls import path
from django.http import JsonResponse
from django.db import DatabaseError, connection
from redis.exceptions import RedisError

from otp.services.redis_service import redis_service

logger = logging.getLogger(__name__)


def health_check(request):
    """Basic health check endpoint"""
    return JsonResponse({"status": "healthy"})


def readiness_check(request):
    """Readiness probe: challenge store and rate-limit backend"""
    checks = {}
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        checks["database"] = "ok"
    except DatabaseError:
        logger.exception("Readiness: database check failed")
        checks["database"] = "error"

    try:
        redis_service.client.ping()
        checks["redis"] = "ok"
    except RedisError:
        logger.exception("Readiness: redis check failed")
        checks["redis"] = "error"

    ready = all(value == "ok" for value in checks.values())
    return JsonResponse(
        {"status": "ready" if ready else "not ready", "checks": checks},
        status=200 if ready else 503,
    )


def liveness_check(request):
    """Liveness probe"""
    return JsonResponse({"status": "alive"})


urlpatterns = [
    path("", health_check, name="health"),
    path("ready/", readiness_check, name="readiness"),
    path("live/", liveness_check, name="liveness"),
]
