from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from itinerary.schemas.api import OptimizeRouteRequest, PropagateRequest, activities_to_domain, activities_to_wire
from itinerary.services.propagation import propagate
from itinerary.services.route_optimizer import RouteOptimizer
from itinerary.utils.errors import AppError
from itinerary.utils.settings import get_settings

router = APIRouter(prefix="/api/v1/schedule", tags=["schedule"])


def get_route_optimizer() -> RouteOptimizer:
    return RouteOptimizer(default_buffer=get_settings().default_parking_buffer_min)


@router.post("/propagate")
def propagate_day(payload: PropagateRequest) -> dict[str, Any]:
    activities = activities_to_domain(payload.items)
    days = {activity.day_offset for activity in activities}
    if len(days) > 1:
        raise AppError(
            message="Propagation runs on a single day",
            error_code="MULTIPLE_DAYS",
            details={"day_offsets": sorted(days)},
            stage="PROPAGATE",
        )
    settings = get_settings()
    return {"items": activities_to_wire(propagate(activities, default_buffer=settings.default_parking_buffer_min))}


@router.post("/optimize")
async def optimize_route(payload: OptimizeRouteRequest) -> dict[str, Any]:
    activities = activities_to_domain(payload.items)
    if len(activities) < 2:
        raise AppError(
            message="Route optimization needs at least two activities",
            error_code="TOO_FEW_ACTIVITIES",
            details={"count": len(activities)},
            stage="OPTIMIZE",
        )
    result = await get_route_optimizer().try_optimize(
        activities,
        preserve_order=payload.preserve_order,
        fix_end=payload.fix_end,
    )
    items = result.activities
    if result.applied:
        start_min = activities[0].start_min
        items = propagate(
            [items[0].copy(start_min=start_min), *items[1:]],
            default_buffer=get_settings().default_parking_buffer_min,
        )
    return {
        "items": activities_to_wire(items),
        "applied": result.applied,
        "errorCode": result.error_code,
    }
