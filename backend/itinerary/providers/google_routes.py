from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from itinerary.services.cache import CacheBackend, get_cache
from itinerary.utils.settings import Settings, get_settings


LOGGER = logging.getLogger(__name__)

GOOGLE_COMPUTE_ROUTES_URL = "https://routes.googleapis.com/directions/v2:computeRoutes"
ROUTES_FIELD_MASK = (
    "routes.optimizedIntermediateWaypointIndex,"
    "routes.legs.duration,"
    "routes.legs.staticDuration,"
    "routes.legs.distanceMeters"
)
MAX_INTERMEDIATES_PER_REQUEST = 25
DEPARTURE_BUCKET_MINUTES = 10
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
TRAFFIC_AWARE_MODES = {"DRIVE", "TWO_WHEELER"}


@dataclass
class RouteLeg:
    duration_s: int
    static_duration_s: int | None = None
    distance_m: float | None = None


@dataclass
class ComputedRoute:
    legs: list[RouteLeg]
    # permutation of intermediate indices; None when the order was kept
    optimized_order: list[int] | None = None


class GoogleRoutesError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        code: str = "GOOGLE_ROUTES_ERROR",
        status_code: int | None = None,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.retryable = retryable
        self.details = details or {}


def parse_google_duration_seconds(value: str | int | float | None) -> int:
    if value is None:
        raise ValueError("Duration value is missing")
    if isinstance(value, (int, float)):
        return max(0, int(round(float(value))))

    text = str(value).strip()
    if text.endswith("s"):
        text = text[:-1]
    return max(0, int(round(float(text))))


def future_departure(*, lead_seconds: int, now: datetime | None = None) -> datetime:
    """Traffic-aware requests reject past departure times; the lead absorbs clock drift."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(timezone.utc) + timedelta(seconds=max(0, lead_seconds))


def _departure_bucket(departure: datetime) -> str:
    minute = (departure.minute // DEPARTURE_BUCKET_MINUTES) * DEPARTURE_BUCKET_MINUTES
    return departure.replace(minute=minute, second=0, microsecond=0).strftime("%Y-%m-%dT%H:%M")


def _validated_order(raw: Any, intermediate_count: int) -> list[int] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise GoogleRoutesError("Optimized waypoint order has an invalid format", code="GOOGLE_ORDER_INVALID")
    if intermediate_count == 0 and raw in ([], [-1]):
        return None
    try:
        order = [int(item) for item in raw]
    except (TypeError, ValueError) as exc:
        raise GoogleRoutesError("Optimized waypoint order has an invalid format", code="GOOGLE_ORDER_INVALID") from exc
    if sorted(order) != list(range(intermediate_count)):
        raise GoogleRoutesError(
            "Optimized waypoint order is not a permutation of the intermediates",
            code="GOOGLE_ORDER_INVALID",
            details={"order": order, "intermediates": intermediate_count},
        )
    return order


def parse_compute_routes_payload(
    payload: dict[str, Any],
    *,
    intermediate_count: int,
    optimized: bool,
) -> ComputedRoute:
    routes = payload.get("routes") if isinstance(payload, dict) else None
    if not isinstance(routes, list) or not routes:
        # Typically an impossible drive, e.g. stops separated by water.
        raise GoogleRoutesError("Google Routes response has no routes", code="GOOGLE_ROUTES_EMPTY")

    route = routes[0]
    if not isinstance(route, dict):
        raise GoogleRoutesError("Google Routes route format invalid", code="GOOGLE_ROUTES_INVALID")

    expected_legs = intermediate_count + 1
    legs_obj = route.get("legs")
    if not isinstance(legs_obj, list) or len(legs_obj) != expected_legs:
        raise GoogleRoutesError(
            "Google Routes leg count mismatch",
            code="GOOGLE_LEG_COUNT_MISMATCH",
            details={"expected": expected_legs, "actual": len(legs_obj) if isinstance(legs_obj, list) else 0},
        )

    legs: list[RouteLeg] = []
    for index, leg in enumerate(legs_obj):
        if not isinstance(leg, dict) or leg.get("duration") is None:
            raise GoogleRoutesError(
                "Google Routes leg is unreachable",
                code="GOOGLE_LEG_UNREACHABLE",
                details={"leg_index": index},
            )
        static_raw = leg.get("staticDuration")
        distance_raw = leg.get("distanceMeters")
        try:
            legs.append(
                RouteLeg(
                    duration_s=parse_google_duration_seconds(leg.get("duration")),
                    static_duration_s=parse_google_duration_seconds(static_raw) if static_raw is not None else None,
                    distance_m=float(distance_raw) if distance_raw is not None else None,
                )
            )
        except (TypeError, ValueError) as exc:
            raise GoogleRoutesError(
                "Google Routes leg format invalid",
                code="GOOGLE_LEG_INVALID",
                details={"leg_index": index},
            ) from exc

    order = _validated_order(route.get("optimizedIntermediateWaypointIndex"), intermediate_count) if optimized else None
    return ComputedRoute(legs=legs, optimized_order=order)


class GoogleRoutesProvider:
    def __init__(
        self,
        *,
        settings: Settings | None = None,
        http: httpx.AsyncClient | None = None,
        cache: CacheBackend | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else get_cache()
        timeout = max(1, int(self.settings.google_timeout_seconds))
        self.http = http or httpx.AsyncClient(timeout=timeout)
        self._cache_ttl_seconds = int(self.settings.google_cache_ttl_seconds)

    @property
    def enabled(self) -> bool:
        return bool(self.settings.feature_google_routes and self.settings.resolved_google_routes_api_key)

    def _headers(self) -> dict[str, str]:
        api_key = self.settings.resolved_google_routes_api_key
        if not api_key:
            raise GoogleRoutesError("Google Routes API key is not configured", code="GOOGLE_KEY_MISSING")
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": api_key,
            "X-Goog-FieldMask": ROUTES_FIELD_MASK,
        }

    @staticmethod
    async def _sleep_backoff(attempt: int) -> None:
        await asyncio.sleep(min(3.0, (2**attempt) * 0.2 + 0.05))

    @staticmethod
    def _request_error_details(exc: Exception) -> dict[str, Any]:
        details: dict[str, Any] = {
            "error_type": exc.__class__.__name__,
            "error": str(exc),
        }
        request = getattr(exc, "request", None) if isinstance(exc, httpx.RequestError) else None
        if request is not None:
            details["method"] = str(getattr(request, "method", "") or "")
            details["url"] = str(getattr(request, "url", "") or "")
        cause = exc.__cause__
        if cause is not None:
            details["cause_type"] = cause.__class__.__name__
            details["cause"] = str(cause)
            errno = getattr(cause, "errno", None)
            if isinstance(errno, int):
                details["cause_errno"] = int(errno)
        return details

    async def _post(self, payload: dict[str, Any], *, max_attempts: int | None = None) -> httpx.Response:
        attempts = max(1, int(max_attempts or self.settings.google_max_attempts))
        last_error: GoogleRoutesError | None = None
        for attempt in range(attempts):
            try:
                response = await self.http.post(GOOGLE_COMPUTE_ROUTES_URL, json=payload, headers=self._headers())
            except httpx.TimeoutException as exc:
                error_details = self._request_error_details(exc)
                error_details["attempt"] = attempt + 1
                error_details["max_attempts"] = attempts
                last_error = GoogleRoutesError(
                    "Google Routes request timed out",
                    code="GOOGLE_ROUTES_TIMEOUT",
                    retryable=True,
                    details=error_details,
                )
                if attempt == attempts - 1:
                    raise last_error from exc
                await self._sleep_backoff(attempt)
                continue
            except httpx.RequestError as exc:
                error_details = self._request_error_details(exc)
                error_details["attempt"] = attempt + 1
                error_details["max_attempts"] = attempts
                last_error = GoogleRoutesError(
                    "Google Routes request failed",
                    code="GOOGLE_ROUTES_REQUEST_ERROR",
                    retryable=True,
                    details=error_details,
                )
                if attempt == attempts - 1:
                    LOGGER.warning("Google Routes request error after retries (details=%s)", error_details)
                    raise last_error from exc
                await self._sleep_backoff(attempt)
                continue

            if response.status_code in RETRYABLE_STATUS_CODES:
                last_error = GoogleRoutesError(
                    "Google Routes unavailable",
                    code="GOOGLE_ROUTES_UNAVAILABLE",
                    status_code=response.status_code,
                    retryable=True,
                    details={"status_code": response.status_code},
                )
                if attempt == attempts - 1:
                    raise last_error
                await self._sleep_backoff(attempt)
                continue

            if response.status_code >= 400:
                raise GoogleRoutesError(
                    "Google Routes request rejected",
                    code="GOOGLE_ROUTES_REJECTED",
                    status_code=response.status_code,
                    details={"status_code": response.status_code, "body": response.text[:300]},
                )

            return response

        if last_error:
            raise last_error
        raise GoogleRoutesError("Google Routes request failed", code="GOOGLE_ROUTES_ERROR")

    @staticmethod
    def _cache_key(payload: dict[str, Any], departure: datetime) -> str:
        material = {key: value for key, value in payload.items() if key != "departureTime"}
        material["departureBucket"] = _departure_bucket(departure)
        digest = hashlib.sha1(json.dumps(material, sort_keys=True).encode("utf-8")).hexdigest()
        return f"google_routes:{digest}"

    def build_payload(
        self,
        origin: dict[str, Any],
        destination: dict[str, Any],
        intermediates: list[dict[str, Any]],
        *,
        optimize_order: bool,
        departure: datetime,
        travel_mode: str | None = None,
    ) -> dict[str, Any]:
        mode = (travel_mode or self.settings.google_travel_mode).upper()
        payload: dict[str, Any] = {
            "origin": origin,
            "destination": destination,
            "intermediates": intermediates,
            "travelMode": mode,
            "optimizeWaypointOrder": bool(optimize_order and intermediates),
            "departureTime": departure.isoformat(timespec="seconds").replace("+00:00", "Z"),
            "languageCode": "en-US",
            "units": "METRIC",
        }
        if mode in TRAFFIC_AWARE_MODES:
            payload["routingPreference"] = self.settings.resolved_google_routing_preference
        return payload

    async def compute_route(
        self,
        origin: dict[str, Any],
        destination: dict[str, Any],
        intermediates: list[dict[str, Any]],
        *,
        optimize_order: bool,
        travel_mode: str | None = None,
        departure: datetime | None = None,
    ) -> ComputedRoute:
        if not self.enabled:
            raise GoogleRoutesError("Google Routes feature disabled", code="GOOGLE_ROUTES_DISABLED")
        if len(intermediates) > MAX_INTERMEDIATES_PER_REQUEST:
            raise GoogleRoutesError(
                "Too many stops for a single route request",
                code="GOOGLE_TOO_MANY_INTERMEDIATES",
                details={"intermediates": len(intermediates), "max": MAX_INTERMEDIATES_PER_REQUEST},
            )

        departure = departure or future_departure(lead_seconds=self.settings.google_departure_lead_seconds)
        payload = self.build_payload(
            origin,
            destination,
            intermediates,
            optimize_order=optimize_order,
            departure=departure,
            travel_mode=travel_mode,
        )

        key = self._cache_key(payload, departure)
        hit = self._cache_read(key)
        if isinstance(hit, dict):
            try:
                return ComputedRoute(
                    legs=[RouteLeg(**leg) for leg in hit["legs"]],
                    optimized_order=hit.get("optimized_order"),
                )
            except (KeyError, TypeError):
                self._cache_drop(key)

        response = await self._post(payload)
        try:
            body = response.json()
        except ValueError as exc:
            raise GoogleRoutesError("Google Routes returned invalid JSON", code="GOOGLE_ROUTES_INVALID") from exc
        result = parse_compute_routes_payload(
            body,
            intermediate_count=len(intermediates),
            optimized=payload["optimizeWaypointOrder"],
        )

        self._cache_write(
            key,
            {"legs": [asdict(leg) for leg in result.legs], "optimized_order": result.optimized_order},
        )
        return result

    # cache failures never fail a route request

    def _cache_read(self, key: str) -> Any:
        if self._cache_ttl_seconds <= 0:
            return None
        try:
            return self.cache.get(key)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Route cache read failed; treating as miss (%s: %s)", exc.__class__.__name__, exc)
            return None

    def _cache_write(self, key: str, value: dict[str, Any]) -> None:
        if self._cache_ttl_seconds <= 0:
            return
        try:
            self.cache.set(key, value, ttl_seconds=self._cache_ttl_seconds)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Route cache write failed; result not cached (%s: %s)", exc.__class__.__name__, exc)

    def _cache_drop(self, key: str) -> None:
        try:
            self.cache.delete(key)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Route cache delete failed (%s: %s)", exc.__class__.__name__, exc)

    async def aclose(self) -> None:
        await self.http.aclose()


_PROVIDER: GoogleRoutesProvider | None = None


def get_google_routes_provider() -> GoogleRoutesProvider:
    global _PROVIDER
    if _PROVIDER is None:
        _PROVIDER = GoogleRoutesProvider()
    return _PROVIDER


def reset_google_routes_provider(provider: GoogleRoutesProvider | None = None) -> None:
    global _PROVIDER
    _PROVIDER = provider


async def close_google_routes_provider() -> None:
    global _PROVIDER
    provider, _PROVIDER = _PROVIDER, None
    if provider is not None:
        await provider.aclose()
