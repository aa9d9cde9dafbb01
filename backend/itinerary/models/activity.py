from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


DEFAULT_PARKING_BUFFER_MIN = 10
DEFAULT_START_MIN = 9 * 60


class ActivityStatus(str, Enum):
    SCHEDULED = "Scheduled"
    CHECKED_IN = "Checked In"
    SKIPPED = "Skipped"


class Congestion(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class TravelMode(str, Enum):
    DRIVE = "drive"
    WALK = "walk"
    TRANSIT = "transit"


@dataclass
class Activity:
    """One stop of a trip day.

    Times are minutes since midnight and durations are minutes. The wire
    strings ("9:00 AM", "1h 30m") only exist in ``itinerary.schemas``.
    """

    id: str
    title: str = ""
    kind: str = "Play"
    day_offset: int = 0
    start_min: int = DEFAULT_START_MIN
    duration_min: int = 60
    travel_min: int | None = None
    travel_distance: str | None = None
    travel_mode: TravelMode | None = None
    congestion: Congestion | None = None
    parking_buffer_min: int | None = None
    status: ActivityStatus = ActivityStatus.SCHEDULED
    is_start: bool = False
    is_end: bool = False
    place_id: str | None = None
    lat: float | None = None
    lng: float | None = None
    google_maps_link: str | None = None
    # start time held before a check-in overwrote it
    pre_check_in_min: int | None = None
    # set by a manual time edit or check-in; propagation keeps this start
    time_pinned: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_skipped(self) -> bool:
        return self.status == ActivityStatus.SKIPPED

    @property
    def occupancy_min(self) -> int:
        return 0 if self.is_skipped else max(0, self.duration_min)

    def effective_buffer(self, default: int = DEFAULT_PARKING_BUFFER_MIN) -> int:
        if self.parking_buffer_min is None:
            return default
        return max(0, self.parking_buffer_min)

    def copy(self, **changes: Any) -> Activity:
        changes.setdefault("extra", dict(self.extra))
        return replace(self, **changes)
