"""
Generative-AI helpers behind a narrow interface.

Every call goes to an OpenAI-compatible chat completions endpoint. Any
failure (missing key, network error, refusal, response that is not the JSON
we asked for) raises AIUnavailableError so callers can degrade to a
"feature unavailable" answer and keep the user's input untouched.
"""

import json
from collections import Counter
from datetime import date
from typing import Any

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from homecare.config import Settings, get_settings
from homecare.log import get_logger
from homecare.models import (
    BillingService,
    Employee,
    GeoPoint,
    Patient,
    Shift,
    Tour,
    UTCDatetime,
)

logger = get_logger(__name__)


class AIUnavailableError(RuntimeError):
    pass


# --- response shapes ----------------------------------------------------


class ScheduleSnapshot(BaseModel):
    date: date
    tours: list[Tour]
    employees: list[Employee]
    patients: list[Patient]


class TourSuggestion(BaseModel):
    tour_id: int
    suggested_time: UTCDatetime
    suggested_employee_id: int
    confidence: float = Field(ge=0, le=1)
    reasoning: str = ""


class WorkloadAdvice(BaseModel):
    employee_id: int
    current_load: float = Field(ge=0, le=100)
    recommendation: str = ""


class ScheduleSuggestions(BaseModel):
    optimized_schedule: list[TourSuggestion] = []
    workload_balance: list[WorkloadAdvice] = []
    overall_efficiency: float = Field(default=0, ge=0, le=100)
    suggestions: list[str] = []


class DocumentationSuggestion(BaseModel):
    type: str  # completion, correction or insight
    content: str
    confidence: float = Field(ge=0, le=1)


class ExtractedPatientData(BaseModel):
    name: str | None = None
    care_level: int | None = Field(default=None, ge=1, le=5)
    address: str | None = None
    location: GeoPoint | None = None
    medications: list[str] = []
    insurance_provider: str | None = None
    insurance_number: str | None = None
    emergency_contact: str | None = None
    notes: str | None = None


route_order_adapter = TypeAdapter(list[int])
billing_services_adapter = TypeAdapter(list[BillingService])
suggestions_adapter = TypeAdapter(list[DocumentationSuggestion])


# --- prompts ------------------------------------------------------------

DOCUMENTATION_SYSTEM_PROMPT = (
    "You are a home-care documentation assistant. Turn the dictated notes "
    "into a structured nursing note with sections for vitals, medication, "
    "general condition and special observations. Use clear professional "
    "language and do not invent findings."
)

SCHEDULE_SYSTEM_PROMPT = (
    "You optimize home-nursing schedules. Consider employee qualifications "
    "against patient care levels, geographic proximity, workload balance and "
    "travel time. Reply with JSON only, using the keys optimized_schedule "
    "(tour_id, suggested_time, suggested_employee_id, confidence 0-1, "
    "reasoning), workload_balance (employee_id, current_load 0-100, "
    "recommendation), overall_efficiency (0-100) and suggestions (list of "
    "strings)."
)

ROUTE_SYSTEM_PROMPT = (
    "You order home visits for one caregiver. Consider care urgency, "
    "geographic proximity and care duration. Reply with JSON only: "
    '{"optimized_order": [patient ids]} using every given id exactly once.'
)

BILLING_SYSTEM_PROMPT = (
    "You improve the wording of insurance billing line items for home-care "
    "services. Keep codes and amounts unchanged and only rewrite the "
    'descriptions. Reply with JSON only: {"services": [{"code", '
    '"description", "amount"}]} in the same order.'
)

EXTRACTION_SYSTEM_PROMPT = (
    "Extract patient intake data from the document image. Reply with JSON "
    "only, using the keys name, care_level (1-5), address, medications "
    "(list), insurance_provider, insurance_number, emergency_contact and "
    "notes. Use null for anything that is not legible."
)


def _patient_summary(patient: Patient) -> str:
    lines = [f"Patient: {patient.name}", f"Care level: {patient.care_level}"]
    if patient.medications:
        lines.append(f"Medications: {', '.join(patient.medications)}")
    if patient.last_visit:
        lines.append(f"Last visit: {patient.last_visit.date().isoformat()}")
    if patient.notes:
        lines.append(f"Notes: {patient.notes}")
    if patient.insurance_provider:
        lines.append(f"Insurance: {patient.insurance_provider}")
    return "\n".join(lines)


class CareAssistant:
    """AI features used by the API."""

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._timeout = timeout
        self._client: AsyncOpenAI | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CareAssistant":
        key = settings.openai_api_key
        return cls(
            api_key=key.get_secret_value() if key else None,
            model=settings.llm_model,
            timeout=settings.ai_timeout_seconds,
        )

    def _get_client(self) -> AsyncOpenAI:
        if not self._api_key:
            raise AIUnavailableError("AI provider is not configured")
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def _complete(
        self,
        system: str,
        content: str | list[dict[str, Any]],
        *,
        json_output: bool = False,
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ) -> str:
        client = self._get_client()
        extra: dict[str, Any] = {}
        if json_output:
            extra["response_format"] = {"type": "json_object"}
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": content},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                **extra,
            )
        except OpenAIError as exc:
            logger.warning("ai_request_failed", model=self.model, error=str(exc))
            raise AIUnavailableError(str(exc)) from exc

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise AIUnavailableError("AI provider returned an empty response")
        return text

    async def _complete_json(
        self, system: str, content: str | list[dict[str, Any]], **kwargs: Any
    ) -> dict[str, Any]:
        text = await self._complete(system, content, json_output=True, **kwargs)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("ai_response_not_json", model=self.model)
            raise AIUnavailableError("AI provider returned malformed JSON") from exc
        if not isinstance(data, dict):
            raise AIUnavailableError("AI provider returned unexpected JSON")
        return data

    async def patient_insights(self, patient: Patient) -> str:
        return await self._complete(
            "You are a clinical assistant for a home-nursing service. Summarize "
            "the patient, list points that need attention, care "
            "recommendations for the care level, and what staff should observe "
            "and document.",
            _patient_summary(patient),
            temperature=0.7,
        )

    async def care_prediction(self, patient: Patient) -> str:
        return await self._complete(
            "You forecast the care needs of a home-nursing patient. Give a "
            "short-term (3-6 months) and mid-term (6-12 months) outlook, risk "
            "factors with prevention measures, and the staff time and "
            "qualifications likely needed.",
            _patient_summary(patient),
            temperature=0.7,
        )

    async def suggest(self, snapshot: ScheduleSnapshot) -> ScheduleSuggestions:
        data = await self._complete_json(
            SCHEDULE_SYSTEM_PROMPT,
            snapshot.model_dump_json(),
            max_tokens=1500,
        )
        try:
            return ScheduleSuggestions.model_validate(data)
        except ValidationError as exc:
            raise AIUnavailableError("AI schedule suggestions were malformed") from exc

    async def shift_recommendations(
        self, day: date, employees: list[Employee], shifts: list[Shift]
    ) -> str:
        payload = {
            "date": day.isoformat(),
            "employees": [
                e.model_dump(
                    mode="json",
                    include={"id", "name", "role", "qualifications", "working_hours"},
                )
                for e in employees
            ],
            "shifts": [
                s.model_dump(
                    mode="json",
                    include={"id", "employee_id", "start_time", "end_time", "type"},
                )
                for s in shifts
            ],
        }
        return await self._complete(
            "You review nursing shift rosters. Suggest a better distribution of "
            "shifts given qualifications and availability, point out conflicts "
            "and staffing gaps, and check rest periods and fairness.",
            json.dumps(payload),
            temperature=0.5,
        )

    async def suggest_route_order(
        self, tour: Tour, patients: list[Patient]
    ) -> list[int]:
        payload = {
            "tour_id": tour.id,
            "patients": [
                p.model_dump(mode="json", include={"id", "care_level", "location"})
                for p in patients
            ],
        }
        data = await self._complete_json(ROUTE_SYSTEM_PROMPT, json.dumps(payload))
        try:
            order = route_order_adapter.validate_python(data.get("optimized_order"))
        except ValidationError as exc:
            raise AIUnavailableError("AI route order was malformed") from exc
        if Counter(order) != Counter(p.id for p in patients):
            raise AIUnavailableError("AI route order did not match the tour's patients")
        return order

    async def enhance_billing(
        self, patient: Patient, services: list[BillingService]
    ) -> list[BillingService]:
        payload = {
            "care_level": patient.care_level,
            "services": [s.model_dump(mode="json") for s in services],
        }
        data = await self._complete_json(BILLING_SYSTEM_PROMPT, json.dumps(payload))
        try:
            enhanced = billing_services_adapter.validate_python(data.get("services", []))
        except ValidationError as exc:
            raise AIUnavailableError("AI billing text was malformed") from exc
        if len(enhanced) != len(services):
            raise AIUnavailableError("AI billing text changed the number of services")
        # only the wording may change
        return [
            original.model_copy(update={"description": new.description or original.description})
            for original, new in zip(services, enhanced)
        ]

    async def transcribe_documentation(self, transcript: str) -> str:
        return await self._complete(
            DOCUMENTATION_SYSTEM_PROMPT, transcript, temperature=0.7, max_tokens=800
        )

    async def documentation_suggestions(
        self, patient: Patient, doc_type: str, content: str
    ) -> list[DocumentationSuggestion]:
        prompt = (
            f"Documentation type: {doc_type}\n{_patient_summary(patient)}\n"
            f"Current text: {content or '(empty)'}"
        )
        data = await self._complete_json(
            "You help nurses write care documentation. Return JSON "
            '{"suggestions": [{"type": "completion"|"correction"|"insight", '
            '"content": str, "confidence": 0-1}]} with one completion of the '
            "text, one correction in professional language and one insight on "
            "what else should be documented.",
            prompt,
        )
        try:
            return suggestions_adapter.validate_python(data.get("suggestions", []))
        except ValidationError as exc:
            raise AIUnavailableError("AI documentation suggestions were malformed") from exc

    async def extract_patient(
        self, image_base64: str, mime_type: str = "image/jpeg"
    ) -> ExtractedPatientData:
        content = [
            {"type": "text", "text": "Extract the patient data from this document."},
            {
                "type": "image_url",
                "image_url": {"url": f"data:{mime_type};base64,{image_base64}"},
            },
        ]
        data = await self._complete_json(EXTRACTION_SYSTEM_PROMPT, content)
        try:
            return ExtractedPatientData.model_validate(data)
        except ValidationError as exc:
            raise AIUnavailableError("AI extraction result was malformed") from exc


_assistant: CareAssistant | None = None


def get_assistant() -> CareAssistant:
    """Get the global AI assistant."""
    global _assistant
    if _assistant is None:
        _assistant = CareAssistant.from_settings(get_settings())
    return _assistant
