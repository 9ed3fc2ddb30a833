"""
Domain models for patients, staff, tours, shifts, documentation and billing.
"""

from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Literal, TypeVar

from pydantic import AfterValidator, BaseModel, Field, computed_field


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive input is taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# Every stored timestamp is aware UTC, so comparisons never mix naive and
# aware values. Calendar days (tour days, documentation days) are UTC days.
UTCDatetime = Annotated[datetime, AfterValidator(as_utc)]


class GeoPoint(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


# Geographic centre of Germany, used when a patient has no coordinates
DEFAULT_LOCATION = GeoPoint(lat=51.1657, lng=10.4515)


# --- Patients -----------------------------------------------------------


class PatientCreate(BaseModel):
    name: str = Field(min_length=1)
    care_level: int = Field(ge=1, le=5)
    address: str = ""  # human readable, never parsed for coordinates
    location: GeoPoint | None = None
    medications: list[str] = []
    insurance_provider: str = ""
    insurance_number: str = ""
    emergency_contact: str = ""
    notes: str | None = None
    last_visit: UTCDatetime | None = None


class PatientUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    care_level: int | None = Field(default=None, ge=1, le=5)
    address: str | None = None
    location: GeoPoint | None = None
    medications: list[str] | None = None
    insurance_provider: str | None = None
    insurance_number: str | None = None
    emergency_contact: str | None = None
    notes: str | None = None
    last_visit: UTCDatetime | None = None


class Patient(PatientCreate):
    id: int


# --- Employees ----------------------------------------------------------


class EmployeeStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Qualifications(BaseModel):
    nursing_degree: bool = False
    medication_administration: bool = False
    wound_care: bool = False
    dementia_care: bool = False
    palliative_care: bool = False
    lifting: bool = False
    first_aid: bool = False
    additional_certifications: list[str] = []


class WorkingDay(BaseModel):
    start: time = time(8, 0)
    end: time = time(16, 0)
    is_working_day: bool = True


WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def default_working_hours() -> dict[str, WorkingDay]:
    return {
        day: WorkingDay(is_working_day=day not in ("saturday", "sunday"))
        for day in WEEKDAYS
    }


class EmployeeCreate(BaseModel):
    name: str = Field(min_length=1)
    role: str = "caregiver"
    email: str | None = None
    phone: str | None = None
    status: EmployeeStatus = EmployeeStatus.ACTIVE
    qualifications: Qualifications = Field(default_factory=Qualifications)
    working_hours: dict[str, WorkingDay] = Field(
        default_factory=default_working_hours
    )
    max_patients_per_day: int = Field(default=8, ge=1)
    languages: list[str] = []
    preferred_districts: list[str] = []
    vacation_days: list[date] = []


class EmployeeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    role: str | None = None
    email: str | None = None
    phone: str | None = None
    status: EmployeeStatus | None = None
    qualifications: Qualifications | None = None
    working_hours: dict[str, WorkingDay] | None = None
    max_patients_per_day: int | None = Field(default=None, ge=1)
    languages: list[str] | None = None
    preferred_districts: list[str] | None = None
    vacation_days: list[date] | None = None


class Employee(EmployeeCreate):
    id: int

    def is_available_on(self, day: date) -> bool:
        if self.status != EmployeeStatus.ACTIVE or day in self.vacation_days:
            return False
        hours = self.working_hours.get(WEEKDAYS[day.weekday()])
        return hours is not None and hours.is_working_day


# --- Tours --------------------------------------------------------------


class TourStatus(StrEnum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Waypoint(BaseModel):
    patient_id: int
    lat: float
    lng: float
    estimated_time: UTCDatetime
    visit_duration: int  # minutes
    travel_time_to_next: int  # minutes, 0 for the last stop
    distance_to_next: float  # km


class OptimizedRoute(BaseModel):
    waypoints: list[Waypoint] = []
    total_distance: float = 0.0
    estimated_duration: int = 0  # minutes, visits plus travel


class TourCreate(BaseModel):
    employee_id: int
    date: date
    start_time: time | None = None  # defaults to the configured tour start
    patient_ids: list[int] = []


class TourUpdate(BaseModel):
    employee_id: int | None = None
    date: UTCDatetime | None = None  # new start
    patient_ids: list[int] | None = None
    status: TourStatus | None = None


class TourPatientAdd(BaseModel):
    patient_id: int
    position: int | None = Field(default=None, ge=0)  # append when omitted


class Tour(BaseModel):
    id: int
    employee_id: int
    date: UTCDatetime  # start of the first visit
    patient_ids: list[int] = []
    optimized_route: OptimizedRoute = Field(default_factory=OptimizedRoute)
    status: TourStatus = TourStatus.SCHEDULED

    @property
    def end(self) -> datetime:
        return self.date + timedelta(
            minutes=self.optimized_route.estimated_duration
        )


# --- Shifts -------------------------------------------------------------


class ShiftType(StrEnum):
    REGULAR = "regular"
    ON_CALL = "on_call"
    OVERTIME = "overtime"


class ConflictInfo(BaseModel):
    type: Literal["overlap"] = "overlap"
    description: str = "Overlapping shifts detected"
    severity: Literal["low", "medium", "high"] = "high"
    affected_shift_ids: list[int] = []


class ShiftCreate(BaseModel):
    employee_id: int
    start_time: UTCDatetime
    end_time: UTCDatetime
    type: ShiftType = ShiftType.REGULAR
    department: str | None = None
    patient_ids: list[int] = []  # patients covered by this shift
    notes: str | None = None


class ShiftUpdate(BaseModel):
    employee_id: int | None = None
    start_time: UTCDatetime | None = None
    end_time: UTCDatetime | None = None
    type: ShiftType | None = None
    department: str | None = None
    patient_ids: list[int] | None = None
    notes: str | None = None


class Shift(ShiftCreate):
    id: int
    conflict_info: ConflictInfo | None = None
    last_modified: UTCDatetime = Field(default_factory=utcnow)


class ShiftTemplateCreate(BaseModel):
    name: str = Field(min_length=1)
    start_time: time
    end_time: time
    type: ShiftType = ShiftType.REGULAR
    department: str | None = None


class ShiftTemplate(ShiftTemplateCreate):
    id: int


class ShiftPreferenceUpdate(BaseModel):
    preferred_shift_types: list[ShiftType] | None = None
    preferred_days: list[str] | None = None
    max_shifts_per_week: int | None = Field(default=None, ge=0)
    min_rest_hours: int | None = Field(default=None, ge=0)
    blackout_dates: list[date] | None = None


class ShiftPreference(BaseModel):
    employee_id: int
    preferred_shift_types: list[ShiftType] = []
    preferred_days: list[str] = []
    max_shifts_per_week: int = 5
    min_rest_hours: int = 11
    blackout_dates: list[date] = []
    last_updated: UTCDatetime = Field(default_factory=utcnow)


class ChangeRequestStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ShiftChangeCreate(BaseModel):
    shift_id: int
    requested_by: int  # employee id
    reason: str = ""
    proposed_start_time: UTCDatetime | None = None
    proposed_end_time: UTCDatetime | None = None


class ShiftChangeUpdate(BaseModel):
    reason: str | None = None
    proposed_start_time: UTCDatetime | None = None
    proposed_end_time: UTCDatetime | None = None
    request_status: ChangeRequestStatus | None = None


class ShiftChange(ShiftChangeCreate):
    id: int
    request_status: ChangeRequestStatus = ChangeRequestStatus.PENDING
    created_at: UTCDatetime = Field(default_factory=utcnow)
    responded_at: UTCDatetime | None = None


# --- Documentation ------------------------------------------------------


class DocumentationStatus(StrEnum):
    PENDING = "pending"
    REVIEW = "review"
    COMPLETED = "completed"


class DocumentationCreate(BaseModel):
    patient_id: int
    employee_id: int | None = None
    tour_id: int | None = None
    shift_id: int | None = None
    date: UTCDatetime
    type: str = "visit"
    content: str = ""
    status: DocumentationStatus = DocumentationStatus.PENDING


class DocumentationUpdate(BaseModel):
    employee_id: int | None = None
    tour_id: int | None = None
    shift_id: int | None = None
    date: UTCDatetime | None = None
    type: str | None = None
    content: str | None = None


class DocumentationStatusUpdate(BaseModel):
    status: DocumentationStatus


class Documentation(DocumentationCreate):
    id: int


class MissingDocumentation(BaseModel):
    date: date
    type: Literal["tour", "shift"]
    id: int


# --- Billing ------------------------------------------------------------


class BillingStatus(StrEnum):
    DRAFT = "draft"
    PENDING = "pending"
    SUBMITTED = "submitted"
    PAID = "paid"
    REJECTED = "rejected"


class BillingService(BaseModel):
    code: str = ""
    description: str = ""
    amount: Decimal = Field(default=Decimal("0"), ge=0)


def _initial_billing_status(value: BillingStatus) -> BillingStatus:
    if value not in (BillingStatus.DRAFT, BillingStatus.PENDING):
        raise ValueError("a new billing must be draft or pending")
    return value


class BillingCreate(BaseModel):
    patient_id: int
    employee_id: int | None = None
    date: date
    # Documentation is checked from period_start (default: first of the month)
    # through the billing date.
    period_start: date | None = None
    services: list[BillingService] = []
    status: Annotated[
        BillingStatus, AfterValidator(_initial_billing_status)
    ] = BillingStatus.DRAFT
    proceed_without_documentation: bool = False


class BillingStatusUpdate(BaseModel):
    status: BillingStatus


class InsuranceBilling(BaseModel):
    id: int
    patient_id: int
    employee_id: int | None = None
    date: date
    services: list[BillingService] = []
    status: BillingStatus = BillingStatus.DRAFT

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_amount(self) -> Decimal:
        return sum((s.amount for s in self.services), Decimal("0"))


# --- Expiry tracking ----------------------------------------------------


class ExpiryStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    DISPOSED = "disposed"


class ExpiryItemCreate(BaseModel):
    name: str = Field(min_length=1)
    category: str = "medication"
    quantity: int = Field(default=1, ge=0)
    expiry_date: date
    status: ExpiryStatus = ExpiryStatus.ACTIVE
    notes: str | None = None


class ExpiryItemUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    category: str | None = None
    quantity: int | None = Field(default=None, ge=0)
    expiry_date: date | None = None
    status: ExpiryStatus | None = None
    notes: str | None = None


class ExpiryItem(ExpiryItemCreate):
    id: int
    created_at: UTCDatetime = Field(default_factory=utcnow)
    updated_at: UTCDatetime = Field(default_factory=utcnow)


M = TypeVar("M", bound=BaseModel)


def apply_update(record: M, changes: BaseModel) -> M:
    """Return a re-validated copy of ``record`` with the fields set in ``changes``."""
    data = record.model_dump()
    data.update(changes.model_dump(exclude_unset=True))
    return type(record).model_validate(data)
