from datetime import date
from typing import Any

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel

from homecare import tours as tour_service
from homecare.ai import AIUnavailableError, ScheduleSnapshot, get_assistant
from homecare.config import get_settings
from homecare.database import get_db
from homecare.log import get_logger
from homecare.models import Tour, TourCreate, TourPatientAdd, TourUpdate
from homecare.realtime import OptimizationComplete, get_manager

router = APIRouter(prefix="/api/tours", tags=["tours"])
logger = get_logger(__name__)


class OptimizeRequest(BaseModel):
    date: date


@router.get("")
async def list_tours(
    patient_id: int | None = None,
    employee_id: int | None = None,
    start_date: date | None = None,
) -> list[Tour]:
    tours = get_db().tours.all()
    if patient_id is not None:
        tours = [t for t in tours if patient_id in t.patient_ids]
    if employee_id is not None:
        tours = [t for t in tours if t.employee_id == employee_id]
    if start_date is not None:
        tours = [t for t in tours if t.date.date() >= start_date]
    return sorted(tours, key=lambda t: t.date, reverse=True)


@router.get("/{tour_id}")
async def get_tour(tour_id: int) -> Tour:
    tour = get_db().tours.get(tour_id)
    if tour is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tour {tour_id} not found",
        )
    return tour


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tour(payload: TourCreate) -> Tour:
    return await tour_service.create_tour(
        get_db(), payload, get_settings().default_tour_start
    )


@router.patch("/{tour_id}")
async def update_tour(tour_id: int, payload: TourUpdate) -> Tour:
    return await tour_service.update_tour(get_db(), tour_id, payload)


@router.delete("/{tour_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tour(tour_id: int) -> Response:
    await tour_service.delete_tour(get_db(), tour_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{tour_id}/patients")
async def add_patient_to_tour(tour_id: int, payload: TourPatientAdd) -> Tour:
    return await tour_service.add_patient(
        get_db(), tour_id, payload.patient_id, payload.position
    )


@router.delete("/{tour_id}/patients/{patient_id}")
async def remove_patient_from_tour(tour_id: int, patient_id: int) -> Tour:
    return await tour_service.remove_patient(get_db(), tour_id, patient_id)


@router.post("/optimize")
async def optimize_schedule(payload: OptimizeRequest) -> dict[str, Any]:
    """
    Ask the AI provider for schedule improvements for one day.

    Suggestions are returned for review and never applied automatically.
    """
    db = get_db()
    snapshot = ScheduleSnapshot(
        date=payload.date,
        tours=[t for t in db.tours.all() if t.date.date() == payload.date],
        employees=db.employees.all(),
        patients=db.patients.all(),
    )
    try:
        suggestions = await get_assistant().suggest(snapshot)
    except AIUnavailableError as exc:
        logger.warning("schedule_optimization_unavailable", error=str(exc))
        return {
            "available": False,
            "message": "Could not generate schedule suggestions",
            "tours": [t.model_dump(mode="json") for t in snapshot.tours],
        }

    await get_manager().broadcast(
        OptimizationComplete(
            date=payload.date,
            suggestion_count=len(suggestions.optimized_schedule),
        )
    )
    return {"available": True, "suggestions": suggestions.model_dump(mode="json")}
