from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from itinerary.models.activity import TravelMode
from itinerary.schemas.api import (
    ActivityPayload,
    BufferEditRequest,
    DayStateOut,
    InsertActivityRequest,
    LibraryInsertRequest,
    ReorderRequest,
    TimeEditRequest,
    TripActivitiesRequest,
    activities_to_domain,
    activities_to_wire,
)
from itinerary.services.schedule import ScheduleMutator
from itinerary.services.timecodec import hhmm_to_minutes, parse_duration, parse_optional_duration
from itinerary.services.trip_store import get_trip_store
from itinerary.utils.settings import get_settings

router = APIRouter(prefix="/api/v1/trips", tags=["trips"])


def _day_state(trip_id: str, mutator: ScheduleMutator) -> dict[str, Any]:
    state = mutator.state
    return DayStateOut(
        trip_id=trip_id,
        day_offset=state.day_offset,
        items=activities_to_wire(mutator.day_activities()),
        is_optimizing=state.is_optimizing,
        is_updating_traffic=state.is_updating_traffic,
        notice=state.last_notice,
    ).model_dump(by_alias=True)


def _on_day(trip_id: str, day_offset: int) -> ScheduleMutator:
    mutator = get_trip_store().get(trip_id)
    mutator.select_day(day_offset)
    return mutator


def _changes_from_payload(payload: ActivityPayload, current_duration: int) -> dict[str, Any]:
    fields = payload.model_fields_set
    changes: dict[str, Any] = {}
    simple = {
        "title": "title",
        "type": "kind",
        "parking_buffer": "parking_buffer_min",
        "is_start": "is_start",
        "is_end": "is_end",
        "place_id": "place_id",
        "lat": "lat",
        "lng": "lng",
        "google_maps_link": "google_maps_link",
        "is_time_fixed": "time_pinned",
    }
    for wire_name, domain_name in simple.items():
        if wire_name in fields:
            changes[domain_name] = getattr(payload, wire_name)
    if "duration" in fields:
        changes["duration_min"] = parse_duration(payload.duration, default=current_duration)
    if "travel_time" in fields:
        changes["travel_min"] = parse_optional_duration(payload.travel_time)
    if "travel_mode" in fields:
        changes["travel_mode"] = TravelMode(payload.travel_mode) if payload.travel_mode else None
    if payload.model_extra:
        changes["extra"] = dict(payload.model_extra)
    return changes


@router.put("/{trip_id}/activities")
async def load_trip(trip_id: str, payload: TripActivitiesRequest) -> dict[str, Any]:
    mutator = get_trip_store().load(trip_id, activities_to_domain(payload.items), day_offset=payload.day_offset)
    return _day_state(trip_id, mutator)


@router.get("/{trip_id}/days/{day_offset}")
async def get_day(trip_id: str, day_offset: int) -> dict[str, Any]:
    return _day_state(trip_id, _on_day(trip_id, day_offset))


@router.get("/{trip_id}/days/{day_offset}/stats")
async def get_day_stats(trip_id: str, day_offset: int) -> dict[str, Any]:
    stats = _on_day(trip_id, day_offset).stats().formatted()
    return {
        "destinations": stats["destinations"],
        "roadTime": stats["road_time"],
        "spotTime": stats["spot_time"],
        "totalTime": stats["total_time"],
    }


@router.get("/{trip_id}/days/{day_offset}/library")
async def get_library(trip_id: str, day_offset: int) -> dict[str, Any]:
    return {"items": activities_to_wire(_on_day(trip_id, day_offset).library())}


@router.post("/{trip_id}/days/{day_offset}/propagate")
async def propagate_day(trip_id: str, day_offset: int) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    mutator.propagate()
    return _day_state(trip_id, mutator)


@router.post("/{trip_id}/days/{day_offset}/reorder")
async def reorder_day(trip_id: str, day_offset: int, payload: ReorderRequest) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    mutator.reorder(payload.ordered_ids)
    return _day_state(trip_id, mutator)


@router.post("/{trip_id}/days/{day_offset}/activities")
async def insert_activity(trip_id: str, day_offset: int, payload: InsertActivityRequest) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    activity = payload.activity.to_domain()
    mutator.add_activity(activity, payload.index)
    return _day_state(trip_id, mutator)


@router.post("/{trip_id}/days/{day_offset}/library")
async def insert_from_library(trip_id: str, day_offset: int, payload: LibraryInsertRequest) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    duration_min = payload.duration_min
    if duration_min is None:
        duration_min = get_settings().default_activity_duration_min
    mutator.add_from_library(payload.place.to_domain(), duration_min, payload.index)
    return _day_state(trip_id, mutator)


@router.patch("/{trip_id}/days/{day_offset}/activities/{activity_id}")
async def update_activity(trip_id: str, day_offset: int, activity_id: str, payload: ActivityPayload) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    current = next((a for a in mutator.day_activities() if a.id == activity_id), None)
    fallback_duration = current.duration_min if current else get_settings().default_activity_duration_min
    changes = _changes_from_payload(payload, fallback_duration)
    mutator.update_activity(activity_id, **changes)
    return _day_state(trip_id, mutator)


@router.delete("/{trip_id}/days/{day_offset}/activities/{activity_id}")
async def delete_activity(trip_id: str, day_offset: int, activity_id: str) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    mutator.remove_activity(activity_id)
    return _day_state(trip_id, mutator)


@router.post("/{trip_id}/days/{day_offset}/activities/{activity_id}/check-in")
async def check_in(trip_id: str, day_offset: int, activity_id: str) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    mutator.check_in(activity_id)
    return _day_state(trip_id, mutator)


@router.post("/{trip_id}/days/{day_offset}/activities/{activity_id}/skip")
async def skip(trip_id: str, day_offset: int, activity_id: str) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    mutator.skip(activity_id)
    return _day_state(trip_id, mutator)


@router.put("/{trip_id}/days/{day_offset}/activities/{activity_id}/time")
async def edit_time(trip_id: str, day_offset: int, activity_id: str, payload: TimeEditRequest) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    mutator.edit_time(activity_id, hhmm_to_minutes(payload.time))
    return _day_state(trip_id, mutator)


@router.put("/{trip_id}/days/{day_offset}/activities/{activity_id}/buffer")
async def edit_buffer(trip_id: str, day_offset: int, activity_id: str, payload: BufferEditRequest) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    mutator.edit_buffer(activity_id, payload.parking_buffer)
    return _day_state(trip_id, mutator)


@router.post("/{trip_id}/days/{day_offset}/optimize")
async def optimize_day(trip_id: str, day_offset: int) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    await mutator.optimize()
    return _day_state(trip_id, mutator)


@router.post("/{trip_id}/days/{day_offset}/traffic")
async def refresh_traffic(trip_id: str, day_offset: int) -> dict[str, Any]:
    mutator = _on_day(trip_id, day_offset)
    await mutator.refresh_traffic()
    return _day_state(trip_id, mutator)


@router.post("/{trip_id}/undo")
async def undo(trip_id: str) -> dict[str, Any]:
    mutator = get_trip_store().get(trip_id)
    restored = mutator.undo()
    return {"restored": restored, **_day_state(trip_id, mutator)}
