"""Liveness and readiness probes for the load balancer and gunicorn checks."""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import connection
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

logger = logging.getLogger(__name__)


@require_GET
def healthz(_request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok"})


@require_GET
def readyz(_request: HttpRequest) -> JsonResponse:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except Exception as exc:
        logger.exception("Readiness check failed: database unreachable")
        body: dict[str, str] = {"status": "not ready", "database": "unavailable"}
        if settings.DEBUG:
            body["error"] = str(exc)
        return JsonResponse(body, status=503)

    return JsonResponse({"status": "ready", "database": connection.vendor})
