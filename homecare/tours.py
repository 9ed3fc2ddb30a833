"""
Tour mutations and the cascading reschedule of a caregiver's day.

Whenever a tour's stops or start change, its waypoints are rebuilt and every
later tour of the same caregiver on the same day is moved so it starts when
the previous tour ends plus the travel time between the two tours. The whole
mutation runs in one store transaction under a per-caregiver, per-day lock,
so a failed cascade leaves the day exactly as it was.
"""

import asyncio
from collections.abc import Callable, Iterable
from contextlib import AsyncExitStack
from datetime import UTC, date, datetime, time, timedelta

from homecare.database import Database
from homecare.errors import NotFoundError, RescheduleError
from homecare.log import get_logger
from homecare.models import Patient, Tour, TourCreate, TourUpdate
from homecare.realtime import TourUpdated, get_manager
from homecare.routing import build_route, travel_between_tours

logger = get_logger(__name__)

DayKey = tuple[int, date]

_reschedule_locks: dict[DayKey, asyncio.Lock] = {}
_locks_lock = asyncio.Lock()


async def _get_day_lock(key: DayKey) -> asyncio.Lock:
    """Get or create the lock guarding one caregiver's day."""
    async with _locks_lock:
        if key not in _reschedule_locks:
            _reschedule_locks[key] = asyncio.Lock()
        return _reschedule_locks[key]


def clear_reschedule_locks() -> None:
    _reschedule_locks.clear()


def _day_key(tour: Tour) -> DayKey:
    return (tour.employee_id, tour.date.date())


def _require_tour(db: Database, tour_id: int) -> Tour:
    tour = db.tours.get(tour_id)
    if tour is None:
        raise NotFoundError("Tour", tour_id)
    return tour


def _require_patients(db: Database, patient_ids: Iterable[int]) -> None:
    for patient_id in patient_ids:
        if db.patients.get(patient_id) is None:
            raise NotFoundError("Patient", patient_id)


def _require_employee(db: Database, employee_id: int) -> None:
    if db.employees.get(employee_id) is None:
        raise NotFoundError("Employee", employee_id)


def resolve_patients(db: Database, tour: Tour) -> list[Patient]:
    """Patients of a tour in visit order, skipping ids with no record."""
    patients = []
    for patient_id in tour.patient_ids:
        patient = db.patients.get(patient_id)
        if patient is None:
            logger.warning(
                "tour_patient_missing", tour_id=tour.id, patient_id=patient_id
            )
            continue
        patients.append(patient)
    return patients


def recompute_route(db: Database, tour: Tour) -> Tour:
    patients = resolve_patients(db, tour)
    # Dropped ids are removed so waypoints and patient_ids stay aligned
    tour.patient_ids = [p.id for p in patients]
    tour.optimized_route = build_route(patients, tour.date)
    db.tours.put(tour.id, tour)
    return tour


def cascade_from(db: Database, anchor: Tour) -> list[Tour]:
    """Pack every tour after ``anchor`` on its caregiver's day behind it.

    Returns the tours whose start moved.
    """
    tours = db.get_tours_for_employee_on(anchor.employee_id, anchor.date.date())
    index = next(i for i, t in enumerate(tours) if t.id == anchor.id)

    shifted: list[Tour] = []
    previous = tours[index]
    for tour in tours[index + 1 :]:
        recompute_route(db, tour)
        travel = travel_between_tours(previous.optimized_route, tour.optimized_route)
        new_start = previous.end + timedelta(minutes=travel)
        if new_start != tour.date:
            logger.info(
                "tour_rescheduled",
                tour_id=tour.id,
                employee_id=tour.employee_id,
                old_start=tour.date.isoformat(),
                new_start=new_start.isoformat(),
                inter_tour_travel=travel,
            )
            tour.date = new_start
            recompute_route(db, tour)
            shifted.append(tour)
        previous = tour
    return shifted


def close_gap(db: Database, key: DayKey, removed_start: datetime) -> list[Tour]:
    """Re-pack a day after a tour starting at ``removed_start`` left it."""
    employee_id, day = key
    tours = db.get_tours_for_employee_on(employee_id, day)
    if not tours:
        return []
    earlier = [t for t in tours if t.date < removed_start]
    anchor = earlier[-1] if earlier else tours[0]
    return cascade_from(db, anchor)


async def _mutate(
    db: Database,
    keys: Iterable[DayKey],
    action: str,
    mutation: Callable[[], list[Tour]],
) -> list[Tour]:
    """Run ``mutation`` atomically while holding the locks for ``keys``.

    Broadcasts every changed tour after the transaction commits.
    """
    keys = list(keys)
    async with AsyncExitStack() as stack:
        # sorted acquisition keeps two-day moves deadlock free
        for key in sorted(set(keys)):
            await stack.enter_async_context(await _get_day_lock(key))
        try:
            with db.transaction():
                changed = mutation()
        except NotFoundError:
            raise
        except Exception as exc:
            logger.error(
                "tour_mutation_failed",
                action=action,
                days=[f"{e}:{d.isoformat()}" for e, d in keys],
                error=str(exc),
                exc_info=True,
            )
            raise RescheduleError(
                f"Could not {action}; the affected tours were left unchanged"
            ) from exc

    manager = get_manager()
    seen: set[int] = set()
    for tour in changed:
        if tour.id in seen:
            continue
        seen.add(tour.id)
        await manager.broadcast(TourUpdated(tour=tour.model_dump(mode="json")))
    return changed


async def create_tour(db: Database, payload: TourCreate, default_start: time) -> Tour:
    _require_employee(db, payload.employee_id)
    _require_patients(db, payload.patient_ids)

    start = datetime.combine(
        payload.date, payload.start_time or default_start, tzinfo=UTC
    )
    key = (payload.employee_id, payload.date)

    def mutation() -> list[Tour]:
        tour = Tour(
            id=db.tours.next_id(),
            employee_id=payload.employee_id,
            date=start,
            patient_ids=list(payload.patient_ids),
        )
        return [recompute_route(db, tour)]

    changed = await _mutate(db, [key], "create tour", mutation)
    tour = changed[0]
    logger.info(
        "tour_created",
        tour_id=tour.id,
        employee_id=tour.employee_id,
        stops=len(tour.patient_ids),
        estimated_duration=tour.optimized_route.estimated_duration,
    )
    return tour


async def update_tour(db: Database, tour_id: int, changes: TourUpdate) -> Tour:
    current = _require_tour(db, tour_id)
    updates = changes.model_dump(exclude_unset=True, exclude_none=True)
    if "employee_id" in updates:
        _require_employee(db, updates["employee_id"])
    if "patient_ids" in updates:
        _require_patients(db, updates["patient_ids"])

    old_key = _day_key(current)
    old_start = current.date
    new_key = (
        updates.get("employee_id", current.employee_id),
        updates["date"].date() if "date" in updates else current.date.date(),
    )
    reschedule = bool({"employee_id", "date", "patient_ids"} & set(updates))

    def mutation() -> list[Tour]:
        tour = _require_tour(db, tour_id)
        for field, value in updates.items():
            setattr(tour, field, value)
        if not reschedule:
            db.tours.put(tour.id, tour)
            return [tour]
        recompute_route(db, tour)
        changed = [tour, *cascade_from(db, tour)]
        if new_key != old_key:
            changed.extend(close_gap(db, old_key, old_start))
        return changed

    changed = await _mutate(db, [old_key, new_key], "update tour", mutation)
    return changed[0]


async def add_patient(
    db: Database, tour_id: int, patient_id: int, position: int | None = None
) -> Tour:
    current = _require_tour(db, tour_id)
    _require_patients(db, [patient_id])

    def mutation() -> list[Tour]:
        tour = _require_tour(db, tour_id)
        if patient_id in tour.patient_ids:
            tour.patient_ids.remove(patient_id)
        if position is None:
            tour.patient_ids.append(patient_id)
        else:
            tour.patient_ids.insert(position, patient_id)
        recompute_route(db, tour)
        return [tour, *cascade_from(db, tour)]

    changed = await _mutate(db, [_day_key(current)], "add patient to tour", mutation)
    return changed[0]


async def remove_patient(db: Database, tour_id: int, patient_id: int) -> Tour:
    current = _require_tour(db, tour_id)
    if patient_id not in current.patient_ids:
        raise NotFoundError("Patient", patient_id)

    def mutation() -> list[Tour]:
        tour = _require_tour(db, tour_id)
        tour.patient_ids = [p for p in tour.patient_ids if p != patient_id]
        recompute_route(db, tour)
        return [tour, *cascade_from(db, tour)]

    changed = await _mutate(
        db, [_day_key(current)], "remove patient from tour", mutation
    )
    return changed[0]


async def delete_tour(db: Database, tour_id: int) -> list[Tour]:
    """Delete a tour and re-pack the rest of the caregiver's day."""
    current = _require_tour(db, tour_id)
    key = _day_key(current)
    start = current.date

    def mutation() -> list[Tour]:
        _require_tour(db, tour_id)
        db.tours.delete(tour_id)
        return close_gap(db, key, start)

    return await _mutate(db, [key], "delete tour", mutation)
