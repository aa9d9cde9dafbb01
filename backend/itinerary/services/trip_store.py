from __future__ import annotations

import threading

from itinerary.models.activity import Activity
from itinerary.services.route_optimizer import RouteOptimizer
from itinerary.services.schedule import ScheduleMutator
from itinerary.utils.errors import AppError
from itinerary.utils.settings import get_settings


class TripStore:
    """In-process registry of one ``ScheduleMutator`` per trip.

    Persisting trips is the caller's concern; this only keeps live sessions.
    """

    def __init__(self, optimizer: RouteOptimizer | None = None) -> None:
        self._trips: dict[str, ScheduleMutator] = {}
        self._lock = threading.Lock()
        self._optimizer = optimizer

    def _new_mutator(self, activities: list[Activity], day_offset: int) -> ScheduleMutator:
        settings = get_settings()
        optimizer = self._optimizer or RouteOptimizer(default_buffer=settings.default_parking_buffer_min)
        return ScheduleMutator(
            activities,
            day_offset=day_offset,
            optimizer=optimizer,
            history_limit=settings.history_limit,
            default_buffer=settings.default_parking_buffer_min,
        )

    def load(self, trip_id: str, activities: list[Activity], *, day_offset: int = 0) -> ScheduleMutator:
        with self._lock:
            mutator = self._trips.get(trip_id)
            if mutator is None:
                mutator = self._new_mutator(activities, day_offset)
                self._trips[trip_id] = mutator
            else:
                mutator.load(activities)
                mutator.select_day(day_offset)
            return mutator

    def get(self, trip_id: str) -> ScheduleMutator:
        with self._lock:
            mutator = self._trips.get(trip_id)
        if mutator is None:
            raise AppError(
                message=f"Trip not loaded: {trip_id}",
                error_code="TRIP_NOT_FOUND",
                status_code=404,
                details={"trip_id": trip_id},
            )
        return mutator

    def drop(self, trip_id: str) -> None:
        with self._lock:
            mutator = self._trips.pop(trip_id, None)
        if mutator is not None:
            mutator.cancel_refresh()

    def clear(self) -> None:
        with self._lock:
            trip_ids = list(self._trips)
        for trip_id in trip_ids:
            self.drop(trip_id)


_STORE: TripStore | None = None


def get_trip_store() -> TripStore:
    global _STORE
    if _STORE is None:
        _STORE = TripStore()
    return _STORE
