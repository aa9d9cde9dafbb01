from __future__ import annotations

from collections.abc import Iterable

from itinerary.models.activity import DEFAULT_PARKING_BUFFER_MIN, Activity


def propagate(
    day_activities: list[Activity],
    *,
    anchor_index: int = 0,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    """Recompute start times of one day's ordered activities.

    The activity at ``anchor_index`` keeps its start time; every later activity
    starts after the previous one's occupancy plus its own incoming travel and
    parking buffer. A later activity with ``time_pinned`` keeps its own start
    and the clock restarts from it. Activities before the anchor are returned
    untouched.
    Skipped activities occupy no time, but the travel into them still counts.
    Returns new ``Activity`` objects; the input list is not mutated.
    """
    if not day_activities:
        return []
    if anchor_index < 0 or anchor_index >= len(day_activities):
        raise IndexError(f"anchor_index {anchor_index} out of range for {len(day_activities)} activities")

    result = list(day_activities[:anchor_index])
    anchor = day_activities[anchor_index]
    clock = anchor.start_min + anchor.occupancy_min
    result.append(anchor)

    for activity in day_activities[anchor_index + 1 :]:
        if activity.time_pinned:
            result.append(activity)
            clock = activity.start_min + activity.occupancy_min
            continue
        if activity.travel_min is not None:
            clock += max(0, activity.travel_min) + activity.effective_buffer(default_buffer)
        result.append(activity if clock == activity.start_min else activity.copy(start_min=clock))
        clock += activity.occupancy_min
    return result


def split_day(activities: Iterable[Activity], day_offset: int) -> tuple[list[Activity], list[Activity]]:
    day: list[Activity] = []
    others: list[Activity] = []
    for activity in activities:
        (day if activity.day_offset == day_offset else others).append(activity)
    return day, others


def replace_day(activities: list[Activity], day_offset: int, new_day: list[Activity]) -> list[Activity]:
    """Other days keep their relative order, followed by the new day sequence."""
    _, others = split_day(activities, day_offset)
    return [*others, *new_day]


def propagate_day(
    activities: list[Activity],
    day_offset: int,
    *,
    default_buffer: int = DEFAULT_PARKING_BUFFER_MIN,
) -> list[Activity]:
    day, _ = split_day(activities, day_offset)
    if not day:
        return list(activities)
    return replace_day(activities, day_offset, propagate(day, default_buffer=default_buffer))
