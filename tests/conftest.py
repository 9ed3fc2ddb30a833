from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from homecare.ai import (
    AIUnavailableError,
    DocumentationSuggestion,
    ExtractedPatientData,
    ScheduleSnapshot,
    ScheduleSuggestions,
    TourSuggestion,
    WorkloadAdvice,
)
from homecare.api import create_app
from homecare.database import get_db, load_sample_data
from homecare.models import BillingService, Employee, Patient, Shift, Tour
from homecare.tours import clear_reschedule_locks


class FakeAssistant:
    """Deterministic stand-in for CareAssistant. Set ``available = False``
    to make every call fail the way an unreachable provider does."""

    def __init__(self) -> None:
        self.available = True
        self.calls: list[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if not self.available:
            raise AIUnavailableError("provider down")

    async def patient_insights(self, patient: Patient) -> str:
        self._check("patient_insights")
        return f"Insights for {patient.name}"

    async def care_prediction(self, patient: Patient) -> str:
        self._check("care_prediction")
        return f"Stable outlook for {patient.name}"

    async def suggest(self, snapshot: ScheduleSnapshot) -> ScheduleSuggestions:
        self._check("suggest")
        return ScheduleSuggestions(
            optimized_schedule=[
                TourSuggestion(
                    tour_id=t.id,
                    suggested_time=t.date,
                    suggested_employee_id=t.employee_id,
                    confidence=0.9,
                )
                for t in snapshot.tours
            ],
            workload_balance=[
                WorkloadAdvice(employee_id=e.id, current_load=50)
                for e in snapshot.employees
            ],
            overall_efficiency=80,
        )

    async def shift_recommendations(
        self, day: date, employees: list[Employee], shifts: list[Shift]
    ) -> str:
        self._check("shift_recommendations")
        return f"{len(shifts)} shifts reviewed"

    async def suggest_route_order(
        self, tour: Tour, patients: list[Patient]
    ) -> list[int]:
        self._check("suggest_route_order")
        return [p.id for p in reversed(patients)]

    async def enhance_billing(
        self, patient: Patient, services: list[BillingService]
    ) -> list[BillingService]:
        self._check("enhance_billing")
        return [
            s.model_copy(update={"description": s.description.upper()})
            for s in services
        ]

    async def transcribe_documentation(self, transcript: str) -> str:
        self._check("transcribe_documentation")
        return f"Observations: {transcript}"

    async def documentation_suggestions(
        self, patient: Patient, doc_type: str, content: str
    ) -> list[DocumentationSuggestion]:
        self._check("documentation_suggestions")
        return [
            DocumentationSuggestion(
                type="completion", content=f"{content} Vitals stable.", confidence=0.8
            )
        ]

    async def extract_patient(
        self, image_base64: str, mime_type: str = "image/jpeg"
    ) -> ExtractedPatientData:
        self._check("extract_patient")
        return ExtractedPatientData(name="Erika Mustermann", care_level=2)


@pytest_asyncio.fixture
async def client():
    """
    Test fixture that creates an async client for the API.
    """
    app = create_app()
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as async_client:
        yield async_client


@pytest.fixture
def assistant() -> FakeAssistant:
    import homecare.ai

    return homecare.ai._assistant


@pytest.fixture(autouse=True)
def reset_state():
    """Reset the store, locks, realtime manager and AI client before each test."""
    import homecare.ai
    import homecare.database
    import homecare.realtime

    clear_reschedule_locks()
    homecare.realtime._manager = None
    homecare.ai._assistant = FakeAssistant()

    homecare.database._db = None
    db = get_db()
    db.clear()
    load_sample_data(db)
    yield
