"""
AI endpoints.

Every endpoint answers 200 even when the provider is unavailable; the body
then carries ``available: false``, a message, and the caller's original
input so nothing the user typed is lost.
"""

from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from homecare.ai import AIUnavailableError, get_assistant
from homecare.database import get_db
from homecare.log import get_logger
from homecare.models import BillingService, Patient

router = APIRouter(prefix="/api/ai", tags=["ai"])
logger = get_logger(__name__)


class PatientRequest(BaseModel):
    patient_id: int


class ShiftOptimizationRequest(BaseModel):
    date: date


class BillingAssistRequest(BaseModel):
    patient_id: int
    services: list[BillingService] = Field(min_length=1)


class ExtractPatientRequest(BaseModel):
    image_base64: str = Field(min_length=1)
    mime_type: str = "image/jpeg"


class DocumentationSuggestionRequest(BaseModel):
    patient_id: int
    type: str = "visit"
    content: str = ""


class TranscriptionRequest(BaseModel):
    content: str = Field(min_length=1)


def _get_patient_or_404(patient_id: int) -> Patient:
    patient = get_db().patients.get(patient_id)
    if patient is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Patient {patient_id} not found",
        )
    return patient


def _unavailable(feature: str, exc: AIUnavailableError, **original: Any) -> dict[str, Any]:
    logger.warning("ai_feature_unavailable", feature=feature, error=str(exc))
    return {"available": False, "message": f"Could not generate {feature}", **original}


@router.post("/patient-insights")
async def patient_insights(payload: PatientRequest) -> dict[str, Any]:
    patient = _get_patient_or_404(payload.patient_id)
    try:
        insights = await get_assistant().patient_insights(patient)
    except AIUnavailableError as exc:
        return _unavailable("patient insights", exc)
    return {"available": True, "insights": insights}


@router.post("/care-prediction")
async def care_prediction(payload: PatientRequest) -> dict[str, Any]:
    patient = _get_patient_or_404(payload.patient_id)
    try:
        prediction = await get_assistant().care_prediction(patient)
    except AIUnavailableError as exc:
        return _unavailable("care prediction", exc)
    return {"available": True, "prediction": prediction}


@router.post("/shift-optimization")
async def shift_optimization(payload: ShiftOptimizationRequest) -> dict[str, Any]:
    db = get_db()
    start = datetime.combine(payload.date, time.min, tzinfo=UTC)
    shifts = db.get_shifts_between(start, start + timedelta(days=1))
    employees = db.get_available_employees(payload.date)
    try:
        recommendations = await get_assistant().shift_recommendations(
            payload.date, employees, shifts
        )
    except AIUnavailableError as exc:
        return _unavailable("shift recommendations", exc)
    return {"available": True, "recommendations": recommendations}


@router.post("/billing-assist")
async def billing_assist(payload: BillingAssistRequest) -> dict[str, Any]:
    patient = _get_patient_or_404(payload.patient_id)
    try:
        services = await get_assistant().enhance_billing(patient, payload.services)
    except AIUnavailableError as exc:
        return _unavailable(
            "billing descriptions",
            exc,
            services=[s.model_dump(mode="json") for s in payload.services],
        )
    return {
        "available": True,
        "services": [s.model_dump(mode="json") for s in services],
    }


@router.post("/extract-patient")
async def extract_patient(payload: ExtractPatientRequest) -> dict[str, Any]:
    try:
        data = await get_assistant().extract_patient(
            payload.image_base64, payload.mime_type
        )
    except AIUnavailableError as exc:
        return _unavailable("patient data from the document", exc)
    return {"available": True, "patient": data.model_dump(mode="json")}


@router.post("/documentation-suggestions")
async def documentation_suggestions(
    payload: DocumentationSuggestionRequest,
) -> dict[str, Any]:
    patient = _get_patient_or_404(payload.patient_id)
    try:
        suggestions = await get_assistant().documentation_suggestions(
            patient, payload.type, payload.content
        )
    except AIUnavailableError as exc:
        return _unavailable("documentation suggestions", exc, content=payload.content)
    return {
        "available": True,
        "suggestions": [s.model_dump(mode="json") for s in suggestions],
    }


@router.post("/transcribe")
async def transcribe(payload: TranscriptionRequest) -> dict[str, Any]:
    try:
        documentation = await get_assistant().transcribe_documentation(
            payload.content
        )
    except AIUnavailableError as exc:
        return _unavailable("documentation", exc, original_content=payload.content)
    return {"available": True, "documentation": documentation}
