from __future__ import annotations

import math
from typing import Any

from itinerary.models.activity import Activity
from itinerary.utils.errors import WaypointResolutionError


# place ids produced locally when a maps link could not be resolved
PLACEHOLDER_PLACE_IDS = {"unknown"}
PLACEHOLDER_PLACE_ID_PREFIXES = ("link-",)


def has_valid_place_id(place_id: str | None) -> bool:
    if not place_id:
        return False
    text = str(place_id).strip()
    if not text or text in PLACEHOLDER_PLACE_IDS:
        return False
    return not text.startswith(PLACEHOLDER_PLACE_ID_PREFIXES)


def _coordinate(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def build_waypoint(activity: Activity) -> dict[str, Any] | None:
    """Routes API waypoint for an activity, or ``None`` when it has no usable location."""
    if has_valid_place_id(activity.place_id):
        return {"placeId": str(activity.place_id).strip()}

    lat = _coordinate(activity.lat)
    lng = _coordinate(activity.lng)
    if lat is None or lng is None:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return {
        "location": {
            "latLng": {
                "latitude": lat,
                "longitude": lng,
            }
        }
    }


def waypoint_key(waypoint: dict[str, Any]) -> str:
    if "placeId" in waypoint:
        return f"p:{waypoint['placeId']}"
    lat_lng = waypoint["location"]["latLng"]
    return f"c:{round(float(lat_lng['latitude']), 5)}:{round(float(lat_lng['longitude']), 5)}"


def build_waypoints(activities: list[Activity]) -> list[dict[str, Any]]:
    """Resolve every activity or fail the whole batch.

    Dropping a stop would shift the provider's optimized index permutation
    out of line with ``activities``.
    """
    waypoints: list[dict[str, Any]] = []
    missing: list[str] = []
    for activity in activities:
        waypoint = build_waypoint(activity)
        if waypoint is None:
            missing.append(activity.title or activity.id)
            continue
        waypoints.append(waypoint)
    if missing:
        raise WaypointResolutionError(missing)
    return waypoints
