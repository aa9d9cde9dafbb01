from __future__ import annotations

import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from itinerary.models.activity import Activity, ActivityStatus, Congestion, TravelMode
from itinerary.services.timecodec import (
    format_duration,
    format_time,
    parse_duration,
    parse_optional_duration,
    parse_time,
)
from itinerary.utils.settings import get_settings


_STATUS_ALIASES = {
    "checked in": ActivityStatus.CHECKED_IN,
    "checkedin": ActivityStatus.CHECKED_IN,
    "checked_in": ActivityStatus.CHECKED_IN,
    "skipped": ActivityStatus.SKIPPED,
}


def parse_status(value: str | None) -> ActivityStatus:
    if not value:
        return ActivityStatus.SCHEDULED
    return _STATUS_ALIASES.get(str(value).strip().lower(), ActivityStatus.SCHEDULED)


class ActivityPayload(BaseModel):
    """Wire shape of an activity. Unknown fields (images, ratings, ...) pass through."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str | None = None
    title: str = ""
    type: str = "Play"
    day_offset: int = Field(default=0, alias="dayOffset")
    time: str | None = None
    duration: str | None = None
    travel_time: str | None = Field(default=None, alias="travelTime")
    travel_distance: str | None = Field(default=None, alias="travelDistance")
    travel_mode: Literal["drive", "walk", "transit"] | None = Field(default=None, alias="travelMode")
    congestion: Literal["low", "moderate", "high"] | None = None
    parking_buffer: int | None = Field(default=None, ge=0, le=24 * 60, alias="parkingBuffer")
    status: str | None = None
    is_start: bool = Field(default=False, alias="isStart")
    is_end: bool = Field(default=False, alias="isEnd")
    place_id: str | None = Field(default=None, alias="placeId")
    lat: float | None = None
    lng: float | None = None
    google_maps_link: str | None = Field(default=None, alias="googleMapsLink")
    pre_check_in_time: str | None = Field(default=None, alias="preCheckInTime")
    is_time_fixed: bool = Field(default=False, alias="isTimeFixed")

    @field_validator("is_start", "is_end", "is_time_fixed", mode="before")
    @classmethod
    def _none_is_false(cls, value: object) -> bool:
        return bool(value)

    def to_domain(self, default_duration: int | None = None) -> Activity:
        if default_duration is None:
            default_duration = get_settings().default_activity_duration_min
        return Activity(
            id=self.id or str(uuid.uuid4()),
            title=self.title,
            kind=self.type,
            day_offset=self.day_offset,
            start_min=parse_time(self.time),
            duration_min=parse_duration(self.duration, default=default_duration),
            travel_min=parse_optional_duration(self.travel_time),
            travel_distance=self.travel_distance,
            travel_mode=TravelMode(self.travel_mode) if self.travel_mode else None,
            congestion=Congestion(self.congestion) if self.congestion else None,
            parking_buffer_min=self.parking_buffer,
            status=parse_status(self.status),
            is_start=self.is_start,
            is_end=self.is_end,
            place_id=self.place_id,
            lat=self.lat,
            lng=self.lng,
            google_maps_link=self.google_maps_link,
            pre_check_in_min=parse_time(self.pre_check_in_time) if self.pre_check_in_time else None,
            time_pinned=self.is_time_fixed,
            extra=dict(self.model_extra or {}),
        )

    @classmethod
    def from_domain(cls, activity: Activity) -> ActivityPayload:
        data: dict[str, Any] = dict(activity.extra)
        data.update(
            {
                "id": activity.id,
                "title": activity.title,
                "type": activity.kind,
                "dayOffset": activity.day_offset,
                "time": format_time(activity.start_min),
                "duration": format_duration(activity.duration_min),
                "travelTime": format_duration(activity.travel_min) if activity.travel_min is not None else None,
                "travelDistance": activity.travel_distance,
                "travelMode": activity.travel_mode.value if activity.travel_mode else None,
                "congestion": activity.congestion.value if activity.congestion else None,
                "parkingBuffer": activity.parking_buffer_min,
                "status": activity.status.value,
                "isStart": activity.is_start,
                "isEnd": activity.is_end,
                "placeId": activity.place_id,
                "lat": activity.lat,
                "lng": activity.lng,
                "googleMapsLink": activity.google_maps_link,
                "preCheckInTime": format_time(activity.pre_check_in_min) if activity.pre_check_in_min is not None else None,
                "isTimeFixed": activity.time_pinned,
            }
        )
        return cls.model_validate(data)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def activities_to_domain(items: list[ActivityPayload]) -> list[Activity]:
    return [item.to_domain() for item in items]


def activities_to_wire(activities: list[Activity]) -> list[dict[str, Any]]:
    return [ActivityPayload.from_domain(activity).dump() for activity in activities]


class PropagateRequest(BaseModel):
    items: list[ActivityPayload]


class OptimizeRouteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[ActivityPayload]
    preserve_order: bool = Field(default=False, alias="preserveOrder")
    fix_end: bool = Field(default=False, alias="fixEnd")


class TripActivitiesRequest(BaseModel):
    items: list[ActivityPayload]
    day_offset: int = Field(default=0, alias="dayOffset")

    model_config = ConfigDict(populate_by_name=True)


class ReorderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ordered_ids: list[str] = Field(alias="orderedIds")


class InsertActivityRequest(BaseModel):
    activity: ActivityPayload
    index: int | None = Field(default=None, ge=0)


class LibraryInsertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    place: ActivityPayload
    duration_min: int | None = Field(default=None, ge=0, le=24 * 60, alias="durationMin")
    index: int | None = Field(default=None, ge=0)


class TimeEditRequest(BaseModel):
    time: str = Field(pattern=r"^\d{1,2}:\d{2}$")


class BufferEditRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    parking_buffer: int = Field(ge=0, le=24 * 60, alias="parkingBuffer")


class DayStatsOut(BaseModel):
    destinations: int
    road_time: str = Field(serialization_alias="roadTime")
    spot_time: str = Field(serialization_alias="spotTime")
    total_time: str = Field(serialization_alias="totalTime")


class DayStateOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    trip_id: str = Field(serialization_alias="tripId")
    day_offset: int = Field(serialization_alias="dayOffset")
    items: list[dict[str, Any]]
    is_optimizing: bool = Field(serialization_alias="isOptimizing")
    is_updating_traffic: bool = Field(serialization_alias="isUpdatingTraffic")
    notice: str | None = None
