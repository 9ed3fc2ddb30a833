from fastapi import APIRouter, HTTPException, Response, status

from homecare.database import get_db
from homecare.log import get_logger
from homecare.models import Patient, PatientCreate, PatientUpdate, apply_update

router = APIRouter(prefix="/api/patients", tags=["patients"])
logger = get_logger(__name__)


def _get_patient_or_404(patient_id: int) -> Patient:
    patient = get_db().patients.get(patient_id)
    if patient is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Patient {patient_id} not found",
        )
    return patient


@router.get("")
async def list_patients() -> list[Patient]:
    patients = get_db().patients.all()
    # most recently visited first, never-visited last
    return sorted(
        patients,
        key=lambda p: (p.last_visit is not None, p.last_visit or p.id),
        reverse=True,
    )


@router.get("/{patient_id}")
async def get_patient(patient_id: int) -> Patient:
    return _get_patient_or_404(patient_id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_patient(payload: PatientCreate) -> Patient:
    db = get_db()
    patient = Patient(id=db.patients.next_id(), **payload.model_dump())
    db.patients.put(patient.id, patient)
    logger.info("patient_created", patient_id=patient.id, care_level=patient.care_level)
    return patient


@router.patch("/{patient_id}")
async def update_patient(patient_id: int, payload: PatientUpdate) -> Patient:
    db = get_db()
    patient = _get_patient_or_404(patient_id)
    updated = apply_update(patient, payload)
    db.patients.put(patient_id, updated)
    return updated


@router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_patient(patient_id: int) -> Response:
    db = get_db()
    _get_patient_or_404(patient_id)
    referencing = [t.id for t in db.tours.all() if patient_id in t.patient_ids]
    if referencing:
        logger.warning(
            "patient_deleted_with_tours", patient_id=patient_id, tour_ids=referencing
        )
    db.patients.delete(patient_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
