from datetime import UTC, datetime, timedelta

from homecare.models import DEFAULT_LOCATION, GeoPoint, OptimizedRoute, Patient, Waypoint
from homecare.routing import (
    build_route,
    care_minutes,
    travel_between_tours,
    travel_minutes,
)

START = datetime(2026, 5, 5, 8, 0, tzinfo=UTC)


def _patient(patient_id: int, care_level: int, lat: float | None, lng: float | None) -> Patient:
    location = GeoPoint(lat=lat, lng=lng) if lat is not None else None
    return Patient(
        id=patient_id, name=f"Patient {patient_id}", care_level=care_level, location=location
    )


def test_care_minutes_by_level() -> None:
    assert [care_minutes(level) for level in range(1, 6)] == [30, 40, 50, 60, 70]


def test_travel_minutes_flat_earth() -> None:
    origin = GeoPoint(lat=52.0, lng=13.0)
    assert travel_minutes(origin, origin) == 0
    # 0.1 degrees = 11.1 km = 22.2 minutes
    assert travel_minutes(origin, GeoPoint(lat=52.1, lng=13.0)) == 22


def test_build_route_sequencing() -> None:
    patients = [
        _patient(1, 2, 52.52, 13.405),
        _patient(2, 3, 52.53, 13.41),
        _patient(3, 4, 52.51, 13.39),
    ]
    route = build_route(patients, START)

    assert [w.patient_id for w in route.waypoints] == [1, 2, 3]
    assert route.waypoints[0].estimated_time == START
    for previous, current in zip(route.waypoints, route.waypoints[1:]):
        assert current.estimated_time == previous.estimated_time + timedelta(
            minutes=previous.visit_duration + previous.travel_time_to_next
        )
    assert route.waypoints[-1].travel_time_to_next == 0
    assert route.estimated_duration == sum(
        w.visit_duration + w.travel_time_to_next for w in route.waypoints
    )
    assert route.total_distance == sum(w.distance_to_next for w in route.waypoints)


def test_build_route_empty() -> None:
    route = build_route([], START)
    assert route.waypoints == []
    assert route.estimated_duration == 0
    assert route.total_distance == 0


def test_build_route_falls_back_to_default_location() -> None:
    route = build_route([_patient(1, 1, None, None)], START)
    waypoint = route.waypoints[0]
    assert (waypoint.lat, waypoint.lng) == (DEFAULT_LOCATION.lat, DEFAULT_LOCATION.lng)
    assert route.estimated_duration == 30


def test_travel_between_tours_zero_when_empty() -> None:
    stop = Waypoint(
        patient_id=1,
        lat=52.5,
        lng=13.4,
        estimated_time=START,
        visit_duration=30,
        travel_time_to_next=0,
        distance_to_next=0,
    )
    populated = OptimizedRoute(waypoints=[stop], estimated_duration=30)
    assert travel_between_tours(OptimizedRoute(), populated) == 0
    assert travel_between_tours(populated, OptimizedRoute()) == 0
    assert travel_between_tours(populated, populated) == 0
