from itinerary.models.activity import (
    DEFAULT_PARKING_BUFFER_MIN,
    DEFAULT_START_MIN,
    Activity,
    ActivityStatus,
    Congestion,
    TravelMode,
)

__all__ = [
    "DEFAULT_PARKING_BUFFER_MIN",
    "DEFAULT_START_MIN",
    "Activity",
    "ActivityStatus",
    "Congestion",
    "TravelMode",
]
