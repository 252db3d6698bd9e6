"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the business domain but are
essential for application infrastructure:
- health_check: liveness/readiness probe
- api_exception_handler: DRF exception handler mapping domain errors to
  stable API responses
"""

from __future__ import annotations

import logging
import uuid

from django.db import connection
from django.http import JsonResponse
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: All systems operational
        503: Database unreachable
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    # Cache failure degrades locking but does not fail the probe
    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        health_status["cache"] = "disconnected"

    return JsonResponse(health_status, status=200 if is_healthy else 503)


def api_exception_handler(exc, context):
    """
    Convert domain exceptions into API responses.

    BaseApplicationError subclasses keep their error code and map to their
    ``http_status``. Internal errors (``expose = False``, e.g. ledger
    invariant violations) are logged with a correlation id and returned as
    a generic message carrying only that id.

    Everything else falls through to DRF's default handler.
    """
    if not isinstance(exc, BaseApplicationError):
        return exception_handler(exc, context)

    if exc.expose:
        return Response(exc.to_dict(), status=exc.http_status)

    correlation_id = str(uuid.uuid4())
    view = context.get("view")
    logger.error(
        f"Internal error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
        extra={
            "correlation_id": correlation_id,
            "error_code": exc.error_code,
            "details": exc.details,
        },
        exc_info=exc,
    )
    return Response(
        {
            "error": "An internal error occurred while processing the request.",
            "error_code": "INTERNAL_ERROR",
            "details": {"correlation_id": correlation_id},
        },
        status=500,
    )
