import asyncio
import logging

import httpx
import pytest

from itinerary.models.activity import Activity, Congestion
from itinerary.services.route_optimizer import RouteOptimizer, arrange_anchors, select_anchors
from itinerary.utils.errors import WaypointResolutionError


def _stop(name: str, **kwargs) -> Activity:
    kwargs.setdefault("place_id", f"place-{name}")
    return Activity(id=name, title=name.title(), **kwargs)


def _day() -> list[Activity]:
    return [
        _stop("hotel", start_min=480, duration_min=0),
        _stop("beach", travel_min=99, duration_min=120),
        _stop("lunch", travel_min=99, duration_min=60),
        _stop("museum", travel_min=99, duration_min=90),
    ]


def test_select_anchors_loop_and_linear():
    day = _day()
    origin, destination, pool = select_anchors(day, fix_end=False)
    assert origin is destination is day[0]
    assert [a.id for a in pool] == ["beach", "lunch", "museum"]

    origin, destination, pool = select_anchors(day, fix_end=True)
    assert destination is day[-1]
    assert [a.id for a in pool] == ["beach", "lunch"]


def test_arrange_anchors_moves_flags_and_keeps_day_start():
    day = _day()
    day[2] = day[2].copy(is_start=True)
    day[0] = day[0].copy(is_end=True)

    arranged, fix_end = arrange_anchors(day)
    assert fix_end is True
    assert [a.id for a in arranged] == ["lunch", "beach", "museum", "hotel"]
    assert arranged[0].start_min == 480


def test_loop_optimization_reorders_pool_and_drops_closing_leg(fake_routes):
    fake_routes.order = [2, 0, 1]
    fake_routes.leg_seconds = [600, 1200, 300, 900]
    fake_routes.static_seconds = [600, 800, 300, 900]

    result = asyncio.run(RouteOptimizer(fake_routes).try_optimize(_day()))

    assert result.applied is True
    assert [a.id for a in result.activities] == ["hotel", "museum", "beach", "lunch"]
    assert result.activities[0].travel_min is None
    assert [a.travel_min for a in result.activities[1:]] == [10, 20, 5]
    assert result.activities[2].congestion == Congestion.HIGH
    assert result.activities[1].travel_distance == "1.0 km"

    call = fake_routes.calls[0]
    assert call["origin"] == call["destination"] == {"placeId": "place-hotel"}
    assert call["optimize_order"] is True
    assert len(call["intermediates"]) == 3


def test_linear_optimization_keeps_destination_last(fake_routes):
    fake_routes.order = [1, 0]

    result = asyncio.run(RouteOptimizer(fake_routes).try_optimize(_day(), fix_end=True))

    assert [a.id for a in result.activities] == ["hotel", "lunch", "beach", "museum"]
    assert all(a.travel_min == 10 for a in result.activities[1:])
    assert fake_routes.calls[0]["destination"] == {"placeId": "place-museum"}


def test_optimization_returns_permutation_of_input(fake_routes):
    fake_routes.order = [1, 2, 0]
    day = _day()
    result = asyncio.run(RouteOptimizer(fake_routes).optimize(day))
    assert sorted(a.id for a in result) == sorted(a.id for a in day)
    assert len(result) == len(day)


def test_preserve_order_only_refreshes_travel(fake_routes):
    fake_routes.order = [2, 1, 0]
    day = _day()
    result = asyncio.run(RouteOptimizer(fake_routes).try_optimize(day, preserve_order=True))
    assert [a.id for a in result.activities] == [a.id for a in day]
    assert fake_routes.calls[0]["optimize_order"] is False


@pytest.mark.parametrize("code", ["GOOGLE_ROUTES_EMPTY", "GOOGLE_ROUTES_TIMEOUT", "GOOGLE_LEG_UNREACHABLE"])
def test_provider_failure_returns_original_day(fake_routes, code, caplog):
    fake_routes.fail_with(code)
    day = _day()

    with caplog.at_level(logging.WARNING):
        result = asyncio.run(RouteOptimizer(fake_routes).try_optimize(day))

    assert result.applied is False
    assert result.error_code == code
    assert result.activities == day
    assert any("fallback activated" in r.getMessage() and code in r.getMessage() for r in caplog.records)


def test_transport_error_is_treated_as_provider_failure(fake_routes):
    fake_routes.error = httpx.ConnectError("offline")
    day = _day()
    result = asyncio.run(RouteOptimizer(fake_routes).try_optimize(day))
    assert result.applied is False
    assert result.error_code == "ConnectError"
    assert result.activities == day


def test_unexpected_provider_error_falls_back_to_original_day(fake_routes, caplog):
    fake_routes.error = ConnectionError("redis went away")
    day = _day()

    with caplog.at_level(logging.WARNING):
        result = asyncio.run(RouteOptimizer(fake_routes).try_optimize(day))

    assert result.applied is False
    assert result.error_code == "ConnectionError"
    assert result.activities == day
    assert any("fallback activated" in r.getMessage() for r in caplog.records)


def test_unresolvable_stop_aborts_before_calling_provider(fake_routes):
    day = _day()
    day[2] = day[2].copy(place_id=None)
    with pytest.raises(WaypointResolutionError) as err:
        asyncio.run(RouteOptimizer(fake_routes).try_optimize(day))
    assert err.value.titles == ["Lunch"]
    assert fake_routes.calls == []


def test_single_activity_is_returned_unapplied(fake_routes):
    day = _day()[:1]
    result = asyncio.run(RouteOptimizer(fake_routes).try_optimize(day))
    assert result.applied is False
    assert result.activities == day
    assert fake_routes.calls == []


def test_optimize_day_repropagates_from_original_start(fake_routes):
    fake_routes.order = [1, 0, 2]
    result = asyncio.run(RouteOptimizer(fake_routes).optimize_day(_day()))

    assert result.applied is True
    assert [a.id for a in result.activities] == ["hotel", "lunch", "beach", "museum"]
    assert [a.start_min for a in result.activities] == [480, 500, 580, 720]


def test_optimize_day_uses_end_anchor(fake_routes):
    day = _day()
    day[1] = day[1].copy(is_end=True)
    fake_routes.order = [1, 0]

    result = asyncio.run(RouteOptimizer(fake_routes).optimize_day(day))

    assert [a.id for a in result.activities] == ["hotel", "museum", "lunch", "beach"]
    assert fake_routes.calls[0]["destination"] == {"placeId": "place-beach"}


def test_optimize_day_failure_keeps_original_order(fake_routes):
    day = _day()
    day[1] = day[1].copy(is_end=True)
    fake_routes.fail_with("GOOGLE_ROUTES_EMPTY")
    result = asyncio.run(RouteOptimizer(fake_routes).optimize_day(day))
    assert result.activities == day
