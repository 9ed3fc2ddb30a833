from __future__ import annotations

import json
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel

from homecare.log import get_logger
from homecare.models import (
    Documentation,
    Employee,
    ExpiryItem,
    InsuranceBilling,
    Patient,
    Shift,
    ShiftChange,
    ShiftPreference,
    ShiftTemplate,
    Tour,
)

logger = get_logger(__name__)

V = TypeVar("V", bound=BaseModel)


class InMemoryTable(Generic[V]):
    """
    In-memory table keyed by a serial integer id.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._store: MutableMapping[int, V] = {}
        self._next_id = 1

    def next_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def put(self, key: int, value: V) -> None:
        self._store[key] = value
        if key >= self._next_id:
            self._next_id = key + 1

    def get(self, key: int) -> V | None:
        return self._store.get(key)

    def delete(self, key: int) -> bool:
        return self._store.pop(key, None) is not None

    def all(self) -> list[V]:
        return list(self._store.values())

    def clear(self) -> None:
        self._store.clear()
        self._next_id = 1

    def snapshot(self) -> tuple[dict[int, V], int]:
        return (
            {k: v.model_copy(deep=True) for k, v in self._store.items()},
            self._next_id,
        )

    def restore(self, snapshot: tuple[dict[int, V], int]) -> None:
        rows, next_id = snapshot
        self._store = rows
        self._next_id = next_id

    def __len__(self) -> int:
        return len(self._store)


class Database:
    """Container for all tables plus the cross-table queries the API needs."""

    def __init__(self) -> None:
        self.patients: InMemoryTable[Patient] = InMemoryTable("patients")
        self.employees: InMemoryTable[Employee] = InMemoryTable("employees")
        self.tours: InMemoryTable[Tour] = InMemoryTable("tours")
        self.shifts: InMemoryTable[Shift] = InMemoryTable("shifts")
        self.shift_templates: InMemoryTable[ShiftTemplate] = InMemoryTable(
            "shift_templates"
        )
        self.shift_changes: InMemoryTable[ShiftChange] = InMemoryTable(
            "shift_changes"
        )
        # keyed by employee id
        self.shift_preferences: InMemoryTable[ShiftPreference] = (
            InMemoryTable("shift_preferences")
        )
        self.documentation: InMemoryTable[Documentation] = InMemoryTable(
            "documentation"
        )
        self.billings: InMemoryTable[InsuranceBilling] = InMemoryTable(
            "billings"
        )
        self.expiry_items: InMemoryTable[ExpiryItem] = InMemoryTable(
            "expiry_items"
        )

    def tables(self) -> list[InMemoryTable]:
        return [
            self.patients,
            self.employees,
            self.tours,
            self.shifts,
            self.shift_templates,
            self.shift_changes,
            self.shift_preferences,
            self.documentation,
            self.billings,
            self.expiry_items,
        ]

    def clear(self) -> None:
        for table in self.tables():
            table.clear()

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """
        Run a block of writes atomically.

        Every table is snapshotted on entry; if the block raises, all tables
        are restored and the exception propagates.
        """
        snapshots = [(table, table.snapshot()) for table in self.tables()]
        try:
            yield self
        except Exception:
            for table, snapshot in snapshots:
                table.restore(snapshot)
            logger.warning("transaction_rolled_back")
            raise

    # --- tours ---

    def get_tours_for_employee_on(
        self, employee_id: int, day: date
    ) -> list[Tour]:
        """Tours of one caregiver on one calendar day, ordered by start."""
        tours = [
            tour
            for tour in self.tours.all()
            if tour.employee_id == employee_id and tour.date.date() == day
        ]
        return sorted(tours, key=lambda t: (t.date, t.id))

    def get_tours_for_patient(
        self, patient_id: int, start: date, end: date
    ) -> list[Tour]:
        return [
            tour
            for tour in self.tours.all()
            if patient_id in tour.patient_ids and start <= tour.date.date() <= end
        ]

    # --- shifts ---

    def get_shifts_between(
        self, start: datetime, end: datetime, department: str | None = None
    ) -> list[Shift]:
        """Shifts overlapping [start, end), ordered by start time."""
        shifts = [
            shift
            for shift in self.shifts.all()
            if shift.start_time < end
            and start < shift.end_time
            and (department is None or shift.department == department)
        ]
        return sorted(shifts, key=lambda s: s.start_time)

    def get_employee_shifts(
        self, employee_id: int, start: datetime, end: datetime
    ) -> list[Shift]:
        return [
            shift
            for shift in self.get_shifts_between(start, end)
            if shift.employee_id == employee_id
        ]

    def get_shifts_for_patient(
        self, patient_id: int, start: date, end: date
    ) -> list[Shift]:
        return [
            shift
            for shift in self.shifts.all()
            if patient_id in shift.patient_ids
            and start <= shift.start_time.date() <= end
        ]

    def get_shift_changes(self, shift_id: int) -> list[ShiftChange]:
        changes = [c for c in self.shift_changes.all() if c.shift_id == shift_id]
        return sorted(changes, key=lambda c: c.created_at, reverse=True)

    # --- documentation / billing ---

    def get_documentation_for_patient(
        self, patient_id: int
    ) -> list[Documentation]:
        docs = [d for d in self.documentation.all() if d.patient_id == patient_id]
        return sorted(docs, key=lambda d: d.date, reverse=True)

    def get_billings_for_patient(self, patient_id: int) -> list[InsuranceBilling]:
        billings = [b for b in self.billings.all() if b.patient_id == patient_id]
        return sorted(billings, key=lambda b: b.date, reverse=True)

    def get_billings_between(self, start: date, end: date) -> list[InsuranceBilling]:
        return [b for b in self.billings.all() if start <= b.date <= end]

    # --- employees ---

    def get_available_employees(self, day: date) -> list[Employee]:
        return [e for e in self.employees.all() if e.is_available_on(day)]


_db: Database | None = None


def get_db() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


SAMPLE_DATA_PATH = Path(__file__).parent.parent / "sample_data.json"

_SAMPLE_TABLES: dict[str, tuple[str, type[BaseModel]]] = {
    "patients": ("patients", Patient),
    "employees": ("employees", Employee),
    "shifts": ("shifts", Shift),
    "documentation": ("documentation", Documentation),
    "expiry_items": ("expiry_items", ExpiryItem),
}


def load_sample_data(
    db: Database | None = None, path: Path = SAMPLE_DATA_PATH
) -> None:
    """Load sample records from sample_data.json into the database."""
    if db is None:
        db = get_db()

    with open(path) as f:
        data = json.load(f)

    for key, (attr, model) in _SAMPLE_TABLES.items():
        table: InMemoryTable = getattr(db, attr)
        for row in data.get(key, []):
            record = model(**row)
            table.put(record.id, record)

    logger.info(
        "sample_data_loaded",
        patients=len(db.patients),
        employees=len(db.employees),
        shifts=len(db.shifts),
    )
