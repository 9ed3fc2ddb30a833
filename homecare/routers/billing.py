from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse

from homecare import billing as billing_service
from homecare.database import get_db
from homecare.documentation import find_missing_documentation
from homecare.log import get_logger
from homecare.models import (
    BillingCreate,
    BillingService,
    BillingStatusUpdate,
    InsuranceBilling,
)

router = APIRouter(prefix="/api/billing", tags=["billing"])
logger = get_logger(__name__)


def _get_billing_or_404(billing_id: int) -> InsuranceBilling:
    billing = get_db().billings.get(billing_id)
    if billing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Billing {billing_id} not found",
        )
    return billing


@router.get("")
async def list_billings(patient_id: int | None = None) -> list[InsuranceBilling]:
    db = get_db()
    if patient_id is not None:
        return db.get_billings_for_patient(patient_id)
    return sorted(db.billings.all(), key=lambda b: b.date, reverse=True)


@router.get("/services/suggestions")
async def suggest_services(
    care_level: int = Query(ge=1, le=5),
) -> list[BillingService]:
    return billing_service.suggest_services(care_level)


@router.get("/{billing_id}")
async def get_billing(billing_id: int) -> InsuranceBilling:
    return _get_billing_or_404(billing_id)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=InsuranceBilling)
async def create_billing(payload: BillingCreate):
    """
    Create a billing record after checking the period's documentation.

    Tours and shifts of the patient between ``period_start`` (default: the
    first day of the billing month) and the billing date must all be
    documented. Otherwise the request is answered with 409 and the missing
    entries, unless ``proceed_without_documentation`` is set.
    """
    db = get_db()
    if db.patients.get(payload.patient_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Patient {payload.patient_id} not found",
        )

    period_start = payload.period_start or payload.date.replace(day=1)
    missing = find_missing_documentation(
        db, payload.patient_id, period_start, payload.date
    )
    if missing and not payload.proceed_without_documentation:
        logger.info(
            "billing_blocked_missing_documentation",
            patient_id=payload.patient_id,
            missing=len(missing),
        )
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": "Documentation is missing for the billing period",
                "missing_documentation": [m.model_dump(mode="json") for m in missing],
            },
        )
    if missing:
        logger.warning(
            "billing_created_without_documentation",
            patient_id=payload.patient_id,
            missing=[m.model_dump(mode="json") for m in missing],
        )

    billing = InsuranceBilling(
        id=db.billings.next_id(),
        patient_id=payload.patient_id,
        employee_id=payload.employee_id,
        date=payload.date,
        services=payload.services,
        status=payload.status,
    )
    db.billings.put(billing.id, billing)
    logger.info(
        "billing_created",
        billing_id=billing.id,
        patient_id=billing.patient_id,
        total_amount=str(billing.total_amount),
    )
    return billing


@router.patch("/{billing_id}/status")
async def update_billing_status(
    billing_id: int, payload: BillingStatusUpdate
) -> InsuranceBilling:
    billing = _get_billing_or_404(billing_id)
    previous = billing.status
    billing_service.transition_status(billing, payload.status)
    get_db().billings.put(billing_id, billing)
    if billing.status != previous:
        logger.info(
            "billing_status_changed",
            billing_id=billing_id,
            old_status=previous,
            new_status=billing.status,
        )
    return billing
