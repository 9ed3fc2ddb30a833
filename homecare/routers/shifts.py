from datetime import UTC, date, datetime, time, timedelta

from fastapi import APIRouter, HTTPException, Response, status

from homecare.conflicts import conflict_info_for, find_conflicts
from homecare.database import Database, get_db
from homecare.log import get_logger
from homecare.models import (
    ChangeRequestStatus,
    Shift,
    ShiftChange,
    ShiftChangeCreate,
    ShiftChangeUpdate,
    ShiftCreate,
    ShiftPreference,
    ShiftPreferenceUpdate,
    ShiftTemplate,
    ShiftTemplateCreate,
    ShiftUpdate,
    apply_update,
    utcnow,
)

router = APIRouter(prefix="/api/shifts", tags=["shifts"])
logger = get_logger(__name__)


def _get_shift_or_404(shift_id: int) -> Shift:
    shift = get_db().shifts.get(shift_id)
    if shift is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Shift {shift_id} not found",
        )
    return shift


def _require_employee(db: Database, employee_id: int) -> None:
    if db.employees.get(employee_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Employee {employee_id} not found",
        )


def _require_window(start_time: datetime, end_time: datetime) -> None:
    if end_time <= start_time:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_time must be after start_time",
        )


def _with_conflicts(db: Database, shift: Shift) -> Shift:
    conflicts = find_conflicts(
        db, shift.employee_id, shift.start_time, shift.end_time, shift.id
    )
    shift.conflict_info = conflict_info_for(conflicts)
    if conflicts:
        logger.warning(
            "shift_conflict_detected",
            shift_id=shift.id,
            employee_id=shift.employee_id,
            conflicting_shift_ids=[s.id for s in conflicts],
        )
    return shift


@router.get("")
async def list_shifts(
    start_date: date,
    end_date: date,
    department: str | None = None,
) -> list[Shift]:
    """Shifts overlapping the calendar days ``start_date`` through ``end_date``."""
    start = datetime.combine(start_date, time.min, tzinfo=UTC)
    end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=UTC)
    return get_db().get_shifts_between(start, end, department)


@router.get("/employee/{employee_id}")
async def list_employee_shifts(
    employee_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Shift]:
    db = get_db()
    _require_employee(db, employee_id)
    shifts = [s for s in db.shifts.all() if s.employee_id == employee_id]
    if start_date is not None:
        shifts = [s for s in shifts if s.end_time.date() >= start_date]
    if end_date is not None:
        shifts = [s for s in shifts if s.start_time.date() <= end_date]
    return sorted(shifts, key=lambda s: s.start_time)


# --- templates ---


@router.get("/templates")
async def list_templates() -> list[ShiftTemplate]:
    return get_db().shift_templates.all()


@router.post("/templates", status_code=status.HTTP_201_CREATED)
async def create_template(payload: ShiftTemplateCreate) -> ShiftTemplate:
    db = get_db()
    template = ShiftTemplate(id=db.shift_templates.next_id(), **payload.model_dump())
    db.shift_templates.put(template.id, template)
    return template


# --- preferences ---


@router.get("/preferences/{employee_id}")
async def get_preferences(employee_id: int) -> ShiftPreference:
    db = get_db()
    _require_employee(db, employee_id)
    preference = db.shift_preferences.get(employee_id)
    if preference is None:
        return ShiftPreference(employee_id=employee_id)
    return preference


@router.patch("/preferences/{employee_id}")
async def update_preferences(
    employee_id: int, payload: ShiftPreferenceUpdate
) -> ShiftPreference:
    db = get_db()
    _require_employee(db, employee_id)
    current = db.shift_preferences.get(employee_id) or ShiftPreference(
        employee_id=employee_id
    )
    preference = apply_update(current, payload)
    preference.last_updated = utcnow()
    db.shift_preferences.put(employee_id, preference)
    return preference


# --- change requests ---


@router.post("/changes", status_code=status.HTTP_201_CREATED)
async def request_change(payload: ShiftChangeCreate) -> ShiftChange:
    db = get_db()
    _get_shift_or_404(payload.shift_id)
    _require_employee(db, payload.requested_by)
    change = ShiftChange(id=db.shift_changes.next_id(), **payload.model_dump())
    db.shift_changes.put(change.id, change)
    logger.info(
        "shift_change_requested",
        change_id=change.id,
        shift_id=change.shift_id,
        requested_by=change.requested_by,
    )
    return change


@router.patch("/changes/{change_id}")
async def update_change(change_id: int, payload: ShiftChangeUpdate) -> ShiftChange:
    db = get_db()
    current = db.shift_changes.get(change_id)
    if current is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Shift change {change_id} not found",
        )
    change = apply_update(current, payload)
    if (
        change.request_status != ChangeRequestStatus.PENDING
        and change.request_status != current.request_status
    ):
        change.responded_at = utcnow()
    db.shift_changes.put(change_id, change)
    return change


# --- shifts ---


@router.get("/{shift_id}")
async def get_shift(shift_id: int) -> Shift:
    return _get_shift_or_404(shift_id)


@router.get("/{shift_id}/changes")
async def list_shift_changes(shift_id: int) -> list[ShiftChange]:
    _get_shift_or_404(shift_id)
    return get_db().get_shift_changes(shift_id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_shift(payload: ShiftCreate) -> Shift:
    """
    Create a shift.

    Overlaps with the employee's other shifts do not block the write; they
    are recorded on the shift's conflict_info for the planner to resolve.
    """
    db = get_db()
    _require_employee(db, payload.employee_id)
    _require_window(payload.start_time, payload.end_time)

    shift = Shift(id=db.shifts.next_id(), **payload.model_dump())
    _with_conflicts(db, shift)
    db.shifts.put(shift.id, shift)
    logger.info("shift_created", shift_id=shift.id, employee_id=shift.employee_id)
    return shift


@router.patch("/{shift_id}")
async def update_shift(shift_id: int, payload: ShiftUpdate) -> Shift:
    db = get_db()
    shift = apply_update(_get_shift_or_404(shift_id), payload)
    if payload.employee_id is not None:
        _require_employee(db, shift.employee_id)
    _require_window(shift.start_time, shift.end_time)

    _with_conflicts(db, shift)
    shift.last_modified = utcnow()
    db.shifts.put(shift_id, shift)
    return shift


@router.delete("/{shift_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_shift(shift_id: int) -> Response:
    _get_shift_or_404(shift_id)
    get_db().shifts.delete(shift_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
