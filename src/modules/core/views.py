import time
from typing import Any, Callable, Dict

import structlog
from django.conf import settings
from django.core.cache import caches
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

logger = structlog.get_logger(__name__)


def _probe(check: Callable[[], None]) -> Dict[str, Any]:
    start = time.monotonic()
    check()
    return {
        "status": "up",
        "response_time_ms": round((time.monotonic() - start) * 1000, 2),
    }


def _check_database() -> None:
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()


def _check_cache(alias: str) -> Callable[[], None]:
    def check() -> None:
        backend = caches[alias]
        backend.set("_health_check", "ok", 10)
        if backend.get("_health_check") != "ok":
            raise ConnectionError("Cache read failed")

    return check


def health_check(request: HttpRequest) -> JsonResponse:
    """Liveness probe: database, default cache and the draft cache."""
    checks = {
        "database": _check_database,
        "cache": _check_cache("default"),
    }
    if settings.DRAFT_CACHE_ALIAS != "default":
        checks["draft_cache"] = _check_cache(settings.DRAFT_CACHE_ALIAS)

    services: Dict[str, Dict[str, Any]] = {}
    overall_healthy = True
    for name, check in checks.items():
        try:
            services[name] = _probe(check)
        except Exception:
            services[name] = {"status": "down"}
            overall_healthy = False
            logger.exception("health_check.service_down", service=name)

    state = "healthy" if overall_healthy else "unhealthy"
    logger.info("health_check.completed", status=state)

    return JsonResponse(
        {
            "status": state,
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=200 if overall_healthy else 503,
    )
