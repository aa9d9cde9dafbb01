"""Schedule state transitions.

The module-level functions are pure: each takes the whole trip's activity
list plus a day offset and returns a new list in which only that day has
changed. ``ScheduleMutator`` owns the mutable state (current list, selected
day, undo history, in-flight flags) and adds the asynchronous route refresh
on top of the pure transitions.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from itinerary.models.activity import DEFAULT_PARKING_BUFFER_MIN, Activity, ActivityStatus
from itinerary.services.propagation import propagate, replace_day, split_day
from itinerary.services.route_optimizer import OptimizationResult, RouteOptimizer
from itinerary.services.timecodec import format_duration_short
from itinerary.utils.errors import ActivityNotFoundError, AppError, WaypointResolutionError


LOGGER = logging.getLogger(__name__)

LIBRARY_DEFAULT_START_MIN = 9 * 60
TRAVEL_FIELDS = ("travel_min", "travel_distance", "congestion")
EDITABLE_FIELDS = {
    "title",
    "kind",
    "duration_min",
    "travel_min",
    "travel_mode",
    "parking_buffer_min",
    "is_start",
    "is_end",
    "place_id",
    "lat",
    "lng",
    "google_maps_link",
    "time_pinned",
    "extra",
}


def _locate(activities: list[Activity], day_offset: int, activity_id: str) -> tuple[list[Activity], int]:
    day, _ = split_day(activities, day_offset)
    for index, activity in enumerate(day):
        if activity.id == activity_id:
            return day, index
    raise ActivityNotFoundError(activity_id, day_offset=day_offset)


def _commit(
    activities: list[Activity],
    day_offset: int,
    day: list[Activity],
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    if day:
        day = propagate(day, default_buffer=default_buffer)
    return replace_day(activities, day_offset, day)


def reorder_day(
    activities: list[Activity],
    day_offset: int,
    ordered_ids: list[str],
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    """Apply a manual drag order. Travel data is kept as-is, even though it is now stale."""
    day, _ = split_day(activities, day_offset)
    by_id = {activity.id: activity for activity in day}
    if len(ordered_ids) != len(by_id) or set(ordered_ids) != set(by_id):
        raise AppError(
            message="Reorder must list every activity of the day exactly once",
            error_code="INVALID_ORDER",
            details={"expected": sorted(by_id), "received": ordered_ids},
            stage="SCHEDULE",
        )
    return _commit(activities, day_offset, [by_id[i] for i in ordered_ids], default_buffer=default_buffer)


def edit_time(
    activities: list[Activity],
    day_offset: int,
    activity_id: str,
    start_min: int,
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    """Move an activity to a new start time; everything after it follows.

    Editing the first activity moves the whole day. Any later activity is
    pinned, so re-propagation from the day start keeps the edited time.
    """
    day, index = _locate(activities, day_offset, activity_id)
    day[index] = day[index].copy(start_min=int(start_min), time_pinned=index > 0)
    return _commit(activities, day_offset, day, default_buffer=default_buffer)


def edit_buffer(
    activities: list[Activity],
    day_offset: int,
    activity_id: str,
    buffer_min: int,
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    day, index = _locate(activities, day_offset, activity_id)
    day[index] = day[index].copy(parking_buffer_min=max(0, int(buffer_min)))
    return _commit(activities, day_offset, day, default_buffer=default_buffer)


def toggle_skip(
    activities: list[Activity],
    day_offset: int,
    activity_id: str,
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    day, index = _locate(activities, day_offset, activity_id)
    current = day[index]
    status = ActivityStatus.SCHEDULED if current.is_skipped else ActivityStatus.SKIPPED
    day[index] = current.copy(status=status)
    return _commit(activities, day_offset, day, default_buffer=default_buffer)


def toggle_check_in(
    activities: list[Activity],
    day_offset: int,
    activity_id: str,
    now_min: int,
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    """Check in at ``now_min`` (the rest of the day shifts after it), or undo a check-in."""
    day, index = _locate(activities, day_offset, activity_id)
    current = day[index]
    if current.status == ActivityStatus.CHECKED_IN:
        restored = current.pre_check_in_min if current.pre_check_in_min is not None else current.start_min
        day[index] = current.copy(
            status=ActivityStatus.SCHEDULED,
            start_min=restored,
            pre_check_in_min=None,
            time_pinned=False,
        )
        return _commit(activities, day_offset, day, default_buffer=default_buffer)

    day[index] = current.copy(
        status=ActivityStatus.CHECKED_IN,
        start_min=int(now_min),
        pre_check_in_min=current.start_min,
        time_pinned=index > 0,
    )
    return _commit(activities, day_offset, day, default_buffer=default_buffer)


def insert_activity(
    activities: list[Activity],
    day_offset: int,
    activity: Activity,
    index: int | None = None,
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    day, _ = split_day(activities, day_offset)
    placed = activity.copy(day_offset=day_offset)
    if index is None or index >= len(day):
        day.append(placed)
    else:
        day.insert(max(0, index), placed)
    return _commit(activities, day_offset, day, default_buffer=default_buffer)


def update_activity(
    activities: list[Activity],
    day_offset: int,
    activity_id: str,
    changes: dict[str, Any],
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise AppError(
            message="Fields cannot be edited directly",
            error_code="FIELD_NOT_EDITABLE",
            details={"fields": sorted(unknown)},
            stage="SCHEDULE",
        )
    day, index = _locate(activities, day_offset, activity_id)
    day[index] = day[index].copy(**changes)
    return _commit(activities, day_offset, day, default_buffer=default_buffer)


def remove_activity(
    activities: list[Activity],
    day_offset: int,
    activity_id: str,
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    day, index = _locate(activities, day_offset, activity_id)
    del day[index]
    return _commit(activities, day_offset, day, default_buffer=default_buffer)


def instantiate_place(place: Activity, day_offset: int, duration_min: int, *, new_id: str | None = None) -> Activity:
    """Copy a library place into a day as a fresh, scheduled activity."""
    return place.copy(
        id=new_id or str(uuid.uuid4()),
        day_offset=day_offset,
        status=ActivityStatus.SCHEDULED,
        duration_min=max(0, int(duration_min)),
        start_min=LIBRARY_DEFAULT_START_MIN,
        pre_check_in_min=None,
        time_pinned=False,
        travel_min=None,
        travel_distance=None,
        congestion=None,
        is_start=False,
        is_end=False,
    )


def _library_key(activity: Activity) -> str | None:
    return activity.place_id or activity.google_maps_link or activity.title or None


def library_candidates(activities: list[Activity], day_offset: int) -> list[Activity]:
    """Unique places of the whole trip that are not already on ``day_offset``."""
    on_day = {_library_key(a) for a in activities if a.day_offset == day_offset}
    unique: dict[str, Activity] = {}
    for activity in activities:
        key = _library_key(activity)
        if key is None or key in on_day or key in unique:
            continue
        unique[key] = activity
    return list(unique.values())


@dataclass
class DayStats:
    destinations: int
    road_min: int
    spot_min: int

    @property
    def total_min(self) -> int:
        return self.road_min + self.spot_min

    def formatted(self) -> dict[str, Any]:
        return {
            "destinations": self.destinations,
            "road_time": format_duration_short(self.road_min),
            "spot_time": format_duration_short(self.spot_min),
            "total_time": format_duration_short(self.total_min),
        }


def day_stats(day_activities: list[Activity]) -> DayStats:
    return DayStats(
        destinations=len(day_activities),
        road_min=sum(a.travel_min or 0 for a in day_activities),
        spot_min=sum(a.occupancy_min for a in day_activities),
    )


def merge_travel_fields(day_activities: list[Activity], refreshed: list[Activity]) -> list[Activity]:
    """Overlay route-derived fields by id; time, status and duration stay untouched."""
    updates = {activity.id: activity for activity in refreshed}
    merged: list[Activity] = []
    for activity in day_activities:
        source = updates.get(activity.id)
        if source is None:
            merged.append(activity)
            continue
        merged.append(activity.copy(**{name: getattr(source, name) for name in TRAVEL_FIELDS}))
    return merged


@dataclass
class ItineraryState:
    activities: list[Activity] = field(default_factory=list)
    day_offset: int = 0
    history: list[list[Activity]] = field(default_factory=list)
    is_optimizing: bool = False
    is_updating_traffic: bool = False
    last_notice: str | None = None


def _local_now() -> datetime:
    return datetime.now()


class ScheduleMutator:
    """The only mutation surface over a trip's activities."""

    def __init__(
        self,
        activities: list[Activity] | None = None,
        *,
        day_offset: int = 0,
        optimizer: RouteOptimizer | None = None,
        history_limit: int = 5,
        default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self.state = ItineraryState(activities=list(activities or []), day_offset=day_offset)
        self.optimizer = optimizer or RouteOptimizer(default_buffer=default_buffer)
        self.history_limit = history_limit
        self.default_buffer = default_buffer
        self.clock = clock
        self._refresh_task: asyncio.Task | None = None

    @property
    def activities(self) -> list[Activity]:
        return list(self.state.activities)

    @property
    def day_offset(self) -> int:
        return self.state.day_offset

    def day_activities(self, day_offset: int | None = None) -> list[Activity]:
        day, _ = split_day(self.state.activities, self.day_offset if day_offset is None else day_offset)
        return day

    def select_day(self, day_offset: int) -> list[Activity]:
        self.state.day_offset = int(day_offset)
        return self.day_activities()

    def load(self, activities: list[Activity]) -> None:
        self.state.activities = list(activities)
        self.state.history.clear()
        self.state.last_notice = None

    # history

    def _remember(self, snapshot: list[Activity] | None = None) -> None:
        if self.history_limit <= 0:
            return
        self.state.history.append(list(self.state.activities) if snapshot is None else snapshot)
        if len(self.state.history) > self.history_limit:
            del self.state.history[: len(self.state.history) - self.history_limit]

    def undo(self) -> bool:
        if not self.state.history:
            return False
        self.state.activities = self.state.history.pop()
        return True

    # synchronous transitions

    def _apply(self, transition: Callable[..., list[Activity]], *args: Any) -> list[Activity]:
        self.state.activities = transition(
            self.state.activities,
            self.day_offset,
            *args,
            default_buffer=self.default_buffer,
        )
        return self.day_activities()

    def _apply_recorded(self, transition: Callable[..., list[Activity]], *args: Any) -> list[Activity]:
        updated = transition(
            self.state.activities,
            self.day_offset,
            *args,
            default_buffer=self.default_buffer,
        )
        self._remember()
        self.state.activities = updated
        return self.day_activities()

    def propagate(self) -> list[Activity]:
        day = self.day_activities()
        if day:
            self.state.activities = _commit(self.state.activities, self.day_offset, day, default_buffer=self.default_buffer)
        return self.day_activities()

    def reorder(self, ordered_ids: list[str]) -> list[Activity]:
        return self._apply(reorder_day, ordered_ids)

    def edit_time(self, activity_id: str, start_min: int) -> list[Activity]:
        return self._apply(edit_time, activity_id, start_min)

    def edit_buffer(self, activity_id: str, buffer_min: int) -> list[Activity]:
        return self._apply(edit_buffer, activity_id, buffer_min)

    def check_in(self, activity_id: str) -> list[Activity]:
        now = self.clock()
        return self._apply(toggle_check_in, activity_id, now.hour * 60 + now.minute)

    def skip(self, activity_id: str) -> list[Activity]:
        """Toggle skip locally, then refresh traffic for the remaining stops in the background."""
        day = self._apply(toggle_skip, activity_id)
        self._schedule_traffic_refresh(self.day_offset)
        return day

    def add_activity(self, activity: Activity, index: int | None = None) -> list[Activity]:
        return self._apply_recorded(insert_activity, activity, index)

    def add_from_library(self, place: Activity, duration_min: int, index: int | None = None) -> list[Activity]:
        return self.add_activity(instantiate_place(place, self.day_offset, duration_min), index)

    def update_activity(self, activity_id: str, **changes: Any) -> list[Activity]:
        return self._apply_recorded(update_activity, activity_id, changes)

    def remove_activity(self, activity_id: str) -> list[Activity]:
        return self._apply_recorded(remove_activity, activity_id)

    def library(self) -> list[Activity]:
        return library_candidates(self.state.activities, self.day_offset)

    def stats(self) -> DayStats:
        return day_stats(self.day_activities())

    # asynchronous refinements

    async def optimize(self) -> OptimizationResult | None:
        """Reorder the selected day through the routing provider.

        Returns None when an optimization is already running.
        """
        if self.state.is_optimizing:
            return None
        day_offset = self.day_offset
        snapshot = list(self.state.activities)
        self.state.is_optimizing = True
        try:
            result = await self.optimizer.optimize_day(self.day_activities(day_offset))
        except WaypointResolutionError as exc:
            self.state.last_notice = exc.message
            raise
        finally:
            self.state.is_optimizing = False

        if result.applied:
            if self._apply_optimized_order(day_offset, result.activities):
                self._remember(snapshot)
        else:
            self.state.last_notice = self._failure_notice("Route optimization", result)
        return result

    def _apply_optimized_order(self, day_offset: int, optimized: list[Activity]) -> bool:
        current = self.day_activities(day_offset)
        if {a.id for a in current} != {a.id for a in optimized}:
            self.state.last_notice = "The day changed while optimizing; the suggested route was discarded."
            return False
        by_id = {a.id: a for a in current}
        start_min = current[0].start_min
        reordered = merge_travel_fields([by_id[a.id] for a in optimized], optimized)
        reordered[0] = reordered[0].copy(start_min=start_min)
        self.state.activities = _commit(self.state.activities, day_offset, reordered, default_buffer=self.default_buffer)
        self.state.last_notice = None
        return True

    async def refresh_traffic(self, day_offset: int | None = None, *, active_only: bool = False) -> OptimizationResult | None:
        """Refresh travel times and congestion keeping the current order.

        Returns None when a refresh is already running.
        """
        if self.state.is_updating_traffic:
            return None
        self.state.is_updating_traffic = True
        snapshot = None if active_only else list(self.state.activities)
        return await self._run_traffic_refresh(
            self.day_offset if day_offset is None else day_offset,
            active_only,
            snapshot=snapshot,
        )

    async def _run_traffic_refresh(
        self,
        day_offset: int,
        active_only: bool,
        *,
        snapshot: list[Activity] | None = None,
    ) -> OptimizationResult | None:
        # caller has already raised is_updating_traffic
        try:
            day = self.day_activities(day_offset)
            if active_only:
                day = [a for a in day if not a.is_skipped]
            if len(day) < 2:
                return OptimizationResult(activities=day, applied=False)
            try:
                result = await self.optimizer.try_optimize(day, preserve_order=True, fix_end=day[-1].is_end)
            except WaypointResolutionError as exc:
                self.state.last_notice = exc.message
                if active_only:
                    return OptimizationResult(activities=day, applied=False, error_code=exc.error_code, error_message=exc.message)
                raise
        finally:
            self.state.is_updating_traffic = False

        if not result.applied:
            self.state.last_notice = self._failure_notice("Traffic update", result)
            return result

        full_day = self.day_activities(day_offset)
        refreshed = result.activities
        if refreshed and full_day and refreshed[0].id != full_day[0].id:
            # the route started at the first active stop; its real incoming leg is not part of it
            refreshed = refreshed[1:]
        merged = merge_travel_fields(full_day, refreshed)
        if snapshot is not None:
            self._remember(snapshot)
        self.state.activities = _commit(self.state.activities, day_offset, merged, default_buffer=self.default_buffer)
        self.state.last_notice = None
        return result

    def _schedule_traffic_refresh(self, day_offset: int) -> asyncio.Task | None:
        if self.state.is_updating_traffic:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running event loop; skipping background traffic refresh")
            return None
        self.state.is_updating_traffic = True
        task = loop.create_task(self._run_traffic_refresh(day_offset, True))
        task.add_done_callback(self._on_refresh_done)
        self._refresh_task = task
        return task

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            # a task cancelled before it started never reaches its own finally
            self.state.is_updating_traffic = False
        if not task.cancelled() and task.exception() is not None:
            LOGGER.warning("Background traffic refresh failed: %r", task.exception())

    @property
    def refresh_task(self) -> asyncio.Task | None:
        return self._refresh_task

    async def wait_for_refresh(self) -> OptimizationResult | None:
        task = self._refresh_task
        if task is None:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            return None

    def cancel_refresh(self) -> bool:
        task = self._refresh_task
        if task is None or task.done():
            return False
        return task.cancel()

    @staticmethod
    def _failure_notice(action: str, result: OptimizationResult) -> str:
        if result.error_code == "GOOGLE_ROUTES_EMPTY":
            return (
                f"{action} failed: no route found. Stops separated by water need a ferry; "
                "split the day or manage these legs manually."
            )
        if result.error_code:
            return f"{action} failed ({result.error_code}); the schedule was left unchanged."
        return f"{action} skipped; the schedule was left unchanged."
