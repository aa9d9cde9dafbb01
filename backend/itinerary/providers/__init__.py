from itinerary.providers.google_routes import (
    ComputedRoute,
    GoogleRoutesError,
    GoogleRoutesProvider,
    RouteLeg,
    get_google_routes_provider,
    parse_compute_routes_payload,
    parse_google_duration_seconds,
)

__all__ = [
    "ComputedRoute",
    "GoogleRoutesError",
    "GoogleRoutesProvider",
    "RouteLeg",
    "get_google_routes_provider",
    "parse_compute_routes_payload",
    "parse_google_duration_seconds",
]
