import pytest

from itinerary.models.activity import Activity
from itinerary.services.waypoints import build_waypoint, build_waypoints, has_valid_place_id, waypoint_key
from itinerary.utils.errors import WaypointResolutionError


def test_place_id_wins_over_coordinates():
    activity = Activity(id="a", place_id=" ChIJ123 ", lat=1.3, lng=103.8)
    assert build_waypoint(activity) == {"placeId": "ChIJ123"}


@pytest.mark.parametrize("place_id", ["", "   ", "unknown", "link-1700000000"])
def test_placeholder_place_ids_are_ignored(place_id):
    assert has_valid_place_id(place_id) is False
    activity = Activity(id="a", place_id=place_id, lat=1.29, lng=103.85)
    assert build_waypoint(activity) == {"location": {"latLng": {"latitude": 1.29, "longitude": 103.85}}}


@pytest.mark.parametrize(
    ("lat", "lng"),
    [(None, 103.8), (1.3, None), (float("nan"), 103.8), (91.0, 0.0), (0.0, 181.0), (True, 1.0)],
)
def test_unusable_coordinates_yield_none(lat, lng):
    assert build_waypoint(Activity(id="a", lat=lat, lng=lng)) is None


def test_batch_names_every_unresolvable_activity():
    activities = [
        Activity(id="1", title="Hotel", place_id="ChIJhotel"),
        Activity(id="2", title="Hidden Beach"),
        Activity(id="3", title="Night Market", place_id="link-42"),
        Activity(id="4", title="", lat=None),
    ]
    with pytest.raises(WaypointResolutionError) as err:
        build_waypoints(activities)

    assert err.value.titles == ["Hidden Beach", "Night Market", "4"]
    assert err.value.error_code == "WAYPOINT_UNRESOLVABLE"
    assert "Hidden Beach, Night Market" in err.value.message


def test_batch_keeps_input_order():
    activities = [
        Activity(id="1", place_id="p1"),
        Activity(id="2", lat=1.0, lng=2.0),
        Activity(id="3", place_id="p3"),
    ]
    waypoints = build_waypoints(activities)
    assert [waypoint_key(w) for w in waypoints] == ["p:p1", "c:1.0:2.0", "p:p3"]
