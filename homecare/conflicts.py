"""Overlap detection between an employee's shifts."""

from datetime import datetime

from homecare.database import Database
from homecare.models import ConflictInfo, Shift


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open interval overlap: a shift ending as another begins is fine."""
    return start_a < end_b and start_b < end_a


def find_conflicts(
    db: Database,
    employee_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_shift_id: int | None = None,
) -> list[Shift]:
    candidates = db.get_employee_shifts(employee_id, start_time, end_time)
    return [
        shift
        for shift in candidates
        if shift.id != exclude_shift_id
        and overlaps(start_time, end_time, shift.start_time, shift.end_time)
    ]


def conflict_info_for(conflicts: list[Shift]) -> ConflictInfo | None:
    if not conflicts:
        return None
    return ConflictInfo(affected_shift_ids=[s.id for s in conflicts])
