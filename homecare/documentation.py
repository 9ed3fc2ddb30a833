"""Care documentation workflow and the missing-documentation check used before billing."""

from datetime import date

from homecare.database import Database
from homecare.errors import InvalidTransitionError
from homecare.models import (
    Documentation,
    DocumentationStatus,
    MissingDocumentation,
)

ALLOWED_STATUS_TRANSITIONS: dict[DocumentationStatus, set[DocumentationStatus]] = {
    DocumentationStatus.PENDING: {DocumentationStatus.REVIEW},
    DocumentationStatus.REVIEW: {
        DocumentationStatus.COMPLETED,
        DocumentationStatus.PENDING,
    },
    DocumentationStatus.COMPLETED: {DocumentationStatus.REVIEW},
}


def transition_status(doc: Documentation, status: DocumentationStatus) -> Documentation:
    if status == doc.status:
        return doc
    if status not in ALLOWED_STATUS_TRANSITIONS[doc.status]:
        raise InvalidTransitionError("documentation", doc.status, status)
    doc.status = status
    return doc


def find_missing_documentation(
    db: Database, patient_id: int, start: date, end: date
) -> list[MissingDocumentation]:
    """
    List tours and shifts for a patient in [start, end] that have no
    documentation entry.

    A tour or shift counts as documented when a documentation entry exists
    for the same patient on the same calendar day referencing its id.
    """
    documented_tours: set[tuple[int, date]] = set()
    documented_shifts: set[tuple[int, date]] = set()
    for doc in db.get_documentation_for_patient(patient_id):
        day = doc.date.date()
        if doc.tour_id is not None:
            documented_tours.add((doc.tour_id, day))
        if doc.shift_id is not None:
            documented_shifts.add((doc.shift_id, day))

    missing: list[MissingDocumentation] = []
    for tour in db.get_tours_for_patient(patient_id, start, end):
        day = tour.date.date()
        if (tour.id, day) not in documented_tours:
            missing.append(MissingDocumentation(date=day, type="tour", id=tour.id))

    for shift in db.get_shifts_for_patient(patient_id, start, end):
        day = shift.start_time.date()
        if (shift.id, day) not in documented_shifts:
            missing.append(MissingDocumentation(date=day, type="shift", id=shift.id))

    return sorted(missing, key=lambda m: (m.date, m.type, m.id))
