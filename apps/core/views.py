"""
Core views for the card service.
Health endpoints for container orchestration.
"""

from django.conf import settings
from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse


def health_check(request):
    """
    Health check endpoint.

    Returns 200 with {"status": "healthy"} when the database and cache answer,
    503 otherwise. The gateway check is informational only.
    """
    health_data = {
        "status": "healthy",
        "checks": {},
    }
    status_code = 200

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_data["checks"]["database"] = "connected"
    except Exception as e:
        health_data["status"] = "unhealthy"
        health_data["checks"]["database"] = f"error: {str(e)}"
        status_code = 503

    try:
        cache.set("health_check_ping", "pong", 5)
        health_data["checks"]["cache"] = "connected" if cache.get("health_check_ping") == "pong" else "degraded"
    except Exception as e:
        health_data["status"] = "unhealthy"
        health_data["checks"]["cache"] = f"error: {str(e)}"
        status_code = 503

    health_data["checks"]["vnpay"] = "configured" if settings.VNPAY_HASH_SECRET else "missing_secret"

    return JsonResponse(health_data, status=status_code)


def liveness_check(request):
    """Liveness probe: the process is up."""
    return JsonResponse({"status": "alive"})
