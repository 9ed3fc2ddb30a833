"""
Travel and visit time estimates plus the waypoint sequencer for tours.

Distances use a flat-earth approximation: one degree of latitude or longitude
counts as 111 km everywhere, and caregivers travel at an effective 30 km/h
(2 minutes per km). This is adequate for tours inside a single city and
wrong near the poles.
"""

import math
from collections.abc import Sequence
from datetime import datetime, timedelta

from homecare.log import get_logger
from homecare.models import (
    DEFAULT_LOCATION,
    GeoPoint,
    OptimizedRoute,
    Patient,
    Waypoint,
)

logger = get_logger(__name__)

KM_PER_DEGREE = 111
MINUTES_PER_KM = 2

BASE_VISIT_MINUTES = 30
MINUTES_PER_CARE_LEVEL = 10


def travel_minutes(origin: GeoPoint, destination: GeoPoint) -> int:
    degrees = math.sqrt(
        (destination.lat - origin.lat) ** 2 + (destination.lng - origin.lng) ** 2
    )
    return round(degrees * KM_PER_DEGREE * MINUTES_PER_KM)


def care_minutes(care_level: int) -> int:
    """Visit duration for a care level: 30, 40, 50, 60, 70 minutes for 1-5."""
    return BASE_VISIT_MINUTES + (care_level - 1) * MINUTES_PER_CARE_LEVEL


def patient_location(patient: Patient) -> GeoPoint:
    if patient.location is None:
        logger.warning(
            "patient_location_missing",
            patient_id=patient.id,
            fallback_lat=DEFAULT_LOCATION.lat,
            fallback_lng=DEFAULT_LOCATION.lng,
        )
        return DEFAULT_LOCATION
    return patient.location


def build_route(patients: Sequence[Patient], start: datetime) -> OptimizedRoute:
    """
    Assign arrival times to patients visited in the given order.

    Each stop's estimated time is the previous stop's estimated time plus
    that stop's visit duration and the travel time to this stop. Leg
    distances are derived back from the rounded travel times.
    """
    locations = [patient_location(p) for p in patients]

    waypoints: list[Waypoint] = []
    elapsed = 0
    for i, patient in enumerate(patients):
        visit = care_minutes(patient.care_level)
        travel = (
            travel_minutes(locations[i], locations[i + 1])
            if i + 1 < len(patients)
            else 0
        )
        waypoints.append(
            Waypoint(
                patient_id=patient.id,
                lat=locations[i].lat,
                lng=locations[i].lng,
                estimated_time=start + timedelta(minutes=elapsed),
                visit_duration=visit,
                travel_time_to_next=travel,
                distance_to_next=travel / MINUTES_PER_KM,
            )
        )
        elapsed += visit + travel

    return OptimizedRoute(
        waypoints=waypoints,
        total_distance=sum(w.distance_to_next for w in waypoints),
        estimated_duration=elapsed,
    )


def travel_between_tours(
    earlier: OptimizedRoute, later: OptimizedRoute
) -> int:
    """Travel from the last stop of one tour to the first stop of the next.

    Zero when either tour has no stops.
    """
    if not earlier.waypoints or not later.waypoints:
        return 0
    last = earlier.waypoints[-1]
    first = later.waypoints[0]
    return travel_minutes(
        GeoPoint(lat=last.lat, lng=last.lng),
        GeoPoint(lat=first.lat, lng=first.lng),
    )
