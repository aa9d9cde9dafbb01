import os

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/0")
os.environ.setdefault("FEATURE_GOOGLE_ROUTES", "true")
os.environ.setdefault("GOOGLE_ROUTES_API_KEY", "unit-test-key")

from itinerary.main import app
from itinerary.providers.google_routes import ComputedRoute, GoogleRoutesError, RouteLeg, reset_google_routes_provider
from itinerary.services.cache import InMemoryCache, reset_cache
from itinerary.services.trip_store import get_trip_store
from itinerary.utils.settings import get_settings


class FakeRoutesProvider:
    """Stands in for ``GoogleRoutesProvider``; every leg takes ``leg_seconds``."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.leg_seconds: list[int] | None = None
        self.static_seconds: list[int | None] | None = None
        self.order: list[int] | None = None
        self.error: Exception | None = None
        self.closed = False

    async def compute_route(self, origin, destination, intermediates, *, optimize_order, travel_mode=None, departure=None):
        self.calls.append(
            {
                "origin": origin,
                "destination": destination,
                "intermediates": list(intermediates),
                "optimize_order": optimize_order,
                "travel_mode": travel_mode,
            }
        )
        if self.error is not None:
            raise self.error
        count = len(intermediates) + 1
        durations = self.leg_seconds or [600] * count
        statics = self.static_seconds or [None] * count
        legs = [
            RouteLeg(duration_s=durations[i], static_duration_s=statics[i], distance_m=1000.0 * (i + 1))
            for i in range(count)
        ]
        order = self.order if optimize_order and intermediates else None
        return ComputedRoute(legs=legs, optimized_order=order)

    def fail_with(self, code: str) -> None:
        self.error = GoogleRoutesError("provider failure", code=code)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def reset_state():
    get_settings.cache_clear()
    reset_cache(InMemoryCache())
    reset_google_routes_provider()
    get_trip_store().clear()
    yield
    get_trip_store().clear()
    reset_google_routes_provider()
    reset_cache()
    get_settings.cache_clear()


@pytest.fixture()
def fake_routes():
    provider = FakeRoutesProvider()
    reset_google_routes_provider(provider)
    return provider


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c
