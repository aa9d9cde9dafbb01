from itinerary.models.activity import Activity, ActivityStatus
from itinerary.services.propagation import propagate, propagate_day, replace_day, split_day
from itinerary.services.timecodec import format_time


def _day(*stops, day_offset=0):
    return [Activity(id=name, title=name, day_offset=day_offset, **fields) for name, fields in stops]


def _times(activities):
    return [format_time(a.start_min) for a in activities]


def _scenario(**start_kwargs):
    return _day(
        ("Start", {"start_min": 480, "duration_min": 0, "is_start": True, **start_kwargs}),
        ("Beach", {"travel_min": 20, "duration_min": 120}),
        ("Lunch", {"travel_min": 15, "duration_min": 60}),
        ("End", {"travel_min": 10, "duration_min": 0, "is_end": True}),
    )


def test_day_chains_travel_buffer_then_dwell():
    result = propagate(_scenario())
    assert _times(result) == ["8:00 AM", "8:30 AM", "10:55 AM", "12:15 PM"]


def test_day_with_dwell_at_start_and_no_buffers():
    day = [a.copy(parking_buffer_min=0) for a in _scenario(duration_min=10)]
    result = propagate(day)
    assert _times(result) == ["8:00 AM", "8:30 AM", "10:45 AM", "11:55 AM"]


def test_propagate_is_idempotent():
    once = propagate(_scenario())
    assert propagate(once) == once


def test_anchor_keeps_its_time():
    day = _scenario()
    day[0] = day[0].copy(start_min=7 * 60 + 13)
    result = propagate(day)
    assert result[0].start_min == 7 * 60 + 13
    assert result[1].start_min == 7 * 60 + 13 + 30


def test_propagate_does_not_mutate_input():
    day = _scenario()
    before = [a.start_min for a in day]
    propagate(day)
    assert [a.start_min for a in day] == before


def test_skip_zeroes_dwell_but_keeps_travel():
    day = _day(
        ("A", {"start_min": 540, "duration_min": 60}),
        ("B", {"travel_min": 30, "duration_min": 45}),
        ("C", {"travel_min": 15, "duration_min": 30}),
    )
    scheduled = propagate(day)
    skipped_day = list(scheduled)
    skipped_day[1] = skipped_day[1].copy(status=ActivityStatus.SKIPPED)
    skipped = propagate(skipped_day)

    assert skipped[1].start_min == scheduled[1].start_min == 540 + 60 + 30 + 10
    assert scheduled[2].start_min - skipped[2].start_min == 45


def test_activity_without_travel_follows_immediately():
    result = propagate(
        _day(
            ("A", {"start_min": 600, "duration_min": 30}),
            ("B", {"duration_min": 30}),
        )
    )
    assert result[1].start_min == 630


def test_custom_buffer_overrides_default():
    result = propagate(
        _day(
            ("A", {"start_min": 600, "duration_min": 30}),
            ("B", {"travel_min": 20, "parking_buffer_min": 0}),
            ("C", {"travel_min": 20, "parking_buffer_min": 25}),
        ),
        default_buffer=10,
    )
    assert [a.start_min for a in result] == [600, 650, 755]


def test_clock_never_moves_backwards():
    day = _day(
        ("A", {"start_min": 540, "duration_min": 90}),
        ("B", {"start_min": 0, "travel_min": 0, "duration_min": 0, "parking_buffer_min": 0}),
        ("C", {"start_min": 100, "travel_min": -20, "duration_min": -5}),
        ("D", {"start_min": 60, "travel_min": 5}),
    )
    result = propagate(day)
    starts = [a.start_min for a in result]
    assert starts == sorted(starts)


def test_anchor_index_leaves_earlier_activities_untouched():
    day = propagate(_scenario())
    day[1] = day[1].copy(start_min=9 * 60)
    day[0] = day[0].copy(start_min=6 * 60)
    result = propagate(day, anchor_index=1)
    assert result[0].start_min == 6 * 60
    assert result[1].start_min == 9 * 60
    assert result[2].start_min == 9 * 60 + 120 + 25


def test_propagate_day_leaves_other_days_alone():
    day_zero = _day(("A", {"start_min": 540}), ("B", {"travel_min": 10, "start_min": 0}))
    day_one = _day(("X", {"start_min": 600}), ("Y", {"travel_min": 10, "start_min": 0}), day_offset=1)
    trip = [day_one[0], *day_zero, day_one[1]]

    result = propagate_day(trip, 0)
    moved, others = split_day(result, 0)
    assert [a.start_min for a in moved] == [540, 620]
    assert others == day_one


def test_replace_day_keeps_other_days_first():
    trip = _day(("A", {}), ("B", {})) + _day(("X", {}), day_offset=1)
    new_day = [trip[1], trip[0]]
    assert [a.id for a in replace_day(trip, 0, new_day)] == ["X", "B", "A"]


def test_pinned_activity_keeps_its_time_and_restarts_clock():
    day = propagate(_scenario())
    day[2] = day[2].copy(start_min=12 * 60, time_pinned=True)
    day[1] = day[1].copy(parking_buffer_min=0)
    result = propagate(day)
    assert _times(result) == ["8:00 AM", "8:20 AM", "12:00 PM", "1:20 PM"]
    assert propagate(result) == result
