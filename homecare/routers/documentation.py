from datetime import date

from fastapi import APIRouter, HTTPException, status

from homecare import documentation as doc_service
from homecare.database import get_db
from homecare.log import get_logger
from homecare.models import (
    Documentation,
    DocumentationCreate,
    DocumentationStatusUpdate,
    DocumentationUpdate,
    MissingDocumentation,
    apply_update,
)
from homecare.realtime import DocStatusUpdated, get_manager

router = APIRouter(prefix="/api/documentation", tags=["documentation"])
logger = get_logger(__name__)


def _get_documentation_or_404(documentation_id: int) -> Documentation:
    doc = get_db().documentation.get(documentation_id)
    if doc is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Documentation {documentation_id} not found",
        )
    return doc


@router.get("")
async def list_documentation(patient_id: int | None = None) -> list[Documentation]:
    db = get_db()
    if patient_id is not None:
        return db.get_documentation_for_patient(patient_id)
    return sorted(db.documentation.all(), key=lambda d: d.date, reverse=True)


@router.get("/check")
async def check_documentation(
    patient_id: int, start: date, end: date
) -> list[MissingDocumentation]:
    """Tours and shifts of a patient in [start, end] lacking documentation."""
    if get_db().patients.get(patient_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Patient {patient_id} not found",
        )
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must not be before start",
        )
    return doc_service.find_missing_documentation(get_db(), patient_id, start, end)


@router.get("/{documentation_id}")
async def get_documentation(documentation_id: int) -> Documentation:
    return _get_documentation_or_404(documentation_id)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_documentation(payload: DocumentationCreate) -> Documentation:
    db = get_db()
    if db.patients.get(payload.patient_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Patient {payload.patient_id} not found",
        )
    doc = Documentation(id=db.documentation.next_id(), **payload.model_dump())
    db.documentation.put(doc.id, doc)
    logger.info(
        "documentation_created",
        documentation_id=doc.id,
        patient_id=doc.patient_id,
        tour_id=doc.tour_id,
        shift_id=doc.shift_id,
    )
    return doc


@router.patch("/{documentation_id}")
async def update_documentation(
    documentation_id: int, payload: DocumentationUpdate
) -> Documentation:
    doc = apply_update(_get_documentation_or_404(documentation_id), payload)
    get_db().documentation.put(documentation_id, doc)
    return doc


@router.patch("/{documentation_id}/status")
async def update_documentation_status(
    documentation_id: int, payload: DocumentationStatusUpdate
) -> Documentation:
    doc = _get_documentation_or_404(documentation_id)
    previous = doc.status
    doc_service.transition_status(doc, payload.status)
    get_db().documentation.put(documentation_id, doc)
    if doc.status != previous:
        logger.info(
            "documentation_status_changed",
            documentation_id=documentation_id,
            old_status=previous,
            new_status=doc.status,
        )
        await get_manager().broadcast(
            DocStatusUpdated(documentation_id=documentation_id, status=doc.status)
        )
    return doc
