from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from itinerary.services.cache import InMemoryCache, get_cache
from itinerary.utils.settings import get_settings

router = APIRouter(tags=["health"])


def _check_cache_ready() -> dict[str, Any]:
    cache = get_cache()
    if isinstance(cache, InMemoryCache):
        return {"status": "ready", "backend": "memory"}
    try:
        cache.get("health-probe")
        return {"status": "ready", "backend": "redis"}
    except Exception as exc:  # noqa: BLE001
        return {"status": "unready", "backend": "redis", "detail": str(exc)}


def _check_routes_ready() -> dict[str, Any]:
    settings = get_settings()
    if not settings.feature_google_routes:
        return {"status": "skipped", "detail": "route optimization disabled"}
    if not settings.resolved_google_routes_api_key:
        return {"status": "unready", "detail": "Google Routes API key is not configured"}
    return {"status": "ready", "travel_mode": settings.google_travel_mode}


def _build_readiness_report() -> dict[str, Any]:
    checks = {
        "cache": _check_cache_ready(),
        "google_routes": _check_routes_ready(),
    }
    ready = all(check["status"] in {"ready", "skipped"} for check in checks.values())
    return {"status": "ok" if ready else "degraded", "ready": ready, "checks": checks}


@router.get("/api/v1/health")
def health() -> dict[str, Any]:
    settings = get_settings()
    return {
        "status": "ok",
        "env": settings.app_env,
        "feature_google_routes": bool(settings.feature_google_routes),
        "google_routes_configured": bool(settings.resolved_google_routes_api_key),
    }


@router.get("/health/live")
def health_live() -> dict[str, Any]:
    settings = get_settings()
    return {"status": "ok", "env": settings.app_env}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    report = _build_readiness_report()
    status_code = 200 if report["ready"] else 503
    return JSONResponse(status_code=status_code, content=report)
