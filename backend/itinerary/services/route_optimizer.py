from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from itinerary.models.activity import DEFAULT_PARKING_BUFFER_MIN, Activity
from itinerary.providers.google_routes import ComputedRoute, GoogleRoutesError, GoogleRoutesProvider, get_google_routes_provider
from itinerary.services.congestion import classify_congestion
from itinerary.services.propagation import propagate
from itinerary.services.timecodec import format_distance, seconds_to_minutes
from itinerary.services.waypoints import build_waypoints


LOGGER = logging.getLogger(__name__)


@dataclass
class OptimizationResult:
    activities: list[Activity]
    applied: bool
    error_code: str | None = None
    error_message: str | None = None


def arrange_anchors(day_activities: list[Activity]) -> tuple[list[Activity], bool]:
    """Move the ``is_start`` activity first and the ``is_end`` activity last.

    Returns the arranged day and whether it has a fixed end. The day's start
    time stays with whichever activity ends up first.
    """
    if len(day_activities) < 2:
        return list(day_activities), False

    start = next((a for a in day_activities if a.is_start), None)
    end = next((a for a in day_activities if a.is_end and a is not start), None)
    middle = [a for a in day_activities if a is not start and a is not end]
    arranged = ([start] if start else []) + middle + ([end] if end else [])

    day_start_min = day_activities[0].start_min
    if arranged[0] is not day_activities[0]:
        arranged[0] = arranged[0].copy(start_min=day_start_min)
    return arranged, end is not None


def select_anchors(
    day_activities: list[Activity],
    *,
    fix_end: bool,
) -> tuple[Activity, Activity, list[Activity]]:
    """Origin, destination and the pool of intermediate stops.

    With a fixed end the route runs first to last; otherwise it loops back to
    the first activity.
    """
    origin = day_activities[0]
    if fix_end:
        return origin, day_activities[-1], list(day_activities[1:-1])
    return origin, origin, list(day_activities[1:])


def apply_route(
    origin: Activity,
    pool: list[Activity],
    destination: Activity | None,
    route: ComputedRoute,
) -> list[Activity]:
    """Reassemble the day in route order and attach each incoming leg.

    ``destination`` is None for a loop; the closing leg back to the origin is
    then dropped.
    """
    ordered_pool = [pool[index] for index in route.optimized_order] if route.optimized_order is not None else list(pool)
    sequence = [*ordered_pool, destination] if destination is not None else ordered_pool

    result = [origin.copy(travel_min=None, travel_distance=None, congestion=None)]
    for leg, activity in zip(route.legs, sequence):
        result.append(
            activity.copy(
                travel_min=seconds_to_minutes(leg.duration_s),
                travel_distance=format_distance(leg.distance_m),
                congestion=classify_congestion(leg.duration_s, leg.static_duration_s),
            )
        )
    return result


class RouteOptimizer:
    def __init__(
        self,
        provider: GoogleRoutesProvider | None = None,
        *,
        default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
    ) -> None:
        self._provider = provider
        self.default_buffer = default_buffer

    @property
    def provider(self) -> GoogleRoutesProvider:
        if self._provider is None:
            self._provider = get_google_routes_provider()
        return self._provider

    async def try_optimize(
        self,
        day_activities: list[Activity],
        *,
        preserve_order: bool = False,
        fix_end: bool = False,
        travel_mode: str | None = None,
    ) -> OptimizationResult:
        """Route the day through the provider.

        Raises ``WaypointResolutionError`` when any stop has no location. Any
        provider failure yields the original list with ``applied=False``.
        """
        original = list(day_activities)
        if len(original) < 2:
            return OptimizationResult(activities=original, applied=False)

        origin, destination, pool = select_anchors(original, fix_end=fix_end)
        stops = [origin, *pool, destination] if fix_end else [origin, *pool]
        waypoints = build_waypoints(stops)
        origin_wp = waypoints[0]
        pool_wps = waypoints[1 : 1 + len(pool)]
        destination_wp = waypoints[-1] if fix_end else origin_wp

        try:
            route = await self.provider.compute_route(
                origin_wp,
                destination_wp,
                pool_wps,
                optimize_order=not preserve_order,
                travel_mode=travel_mode,
            )
        except (GoogleRoutesError, httpx.HTTPError) as exc:
            code = getattr(exc, "code", exc.__class__.__name__)
            details = getattr(exc, "details", {})
            LOGGER.warning(
                "Route optimization fallback activated; keeping original order (code=%s, details=%s)",
                code,
                details,
            )
            return OptimizationResult(activities=original, applied=False, error_code=code, error_message=str(exc))
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Route optimization fallback activated after unexpected provider error; keeping original order",
                exc_info=True,
            )
            return OptimizationResult(
                activities=original,
                applied=False,
                error_code=exc.__class__.__name__,
                error_message=str(exc),
            )

        optimized = apply_route(origin, pool, destination if fix_end else None, route)
        LOGGER.info(
            "Route %s for %s stops (mode=%s, reordered=%s)",
            "refreshed" if preserve_order else "optimized",
            len(optimized),
            "linear" if fix_end else "loop",
            route.optimized_order is not None,
        )
        return OptimizationResult(activities=optimized, applied=True)

    async def optimize(
        self,
        day_activities: list[Activity],
        *,
        preserve_order: bool = False,
        fix_end: bool = False,
        travel_mode: str | None = None,
    ) -> list[Activity]:
        result = await self.try_optimize(
            day_activities,
            preserve_order=preserve_order,
            fix_end=fix_end,
            travel_mode=travel_mode,
        )
        return result.activities

    async def optimize_day(
        self,
        day_activities: list[Activity],
        *,
        preserve_order: bool = False,
        travel_mode: str | None = None,
    ) -> OptimizationResult:
        """Arrange anchors, optimize, then re-propagate from the day's original start time."""
        if len(day_activities) < 2:
            return OptimizationResult(activities=list(day_activities), applied=False)

        arranged, fix_end = arrange_anchors(day_activities)
        result = await self.try_optimize(
            arranged,
            preserve_order=preserve_order,
            fix_end=fix_end,
            travel_mode=travel_mode,
        )
        if not result.applied:
            result.activities = list(day_activities)
            return result

        optimized = result.activities
        day_start_min = day_activities[0].start_min
        if optimized[0].start_min != day_start_min:
            optimized[0] = optimized[0].copy(start_min=day_start_min)
        result.activities = propagate(optimized, default_buffer=self.default_buffer)
        return result
