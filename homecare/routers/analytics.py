from datetime import date, timedelta

from fastapi import APIRouter, HTTPException, Query, status

from homecare.analytics import (
    BillingAnalytics,
    PatientAnalytics,
    billing_analytics,
    patient_analytics,
)
from homecare.database import get_db
from homecare.models import utcnow

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/billing")
async def get_billing_analytics(
    date_from: date | None = Query(default=None, alias="from"),
    date_to: date | None = Query(default=None, alias="to"),
) -> BillingAnalytics:
    """Billing figures for a date range, the last month by default."""
    date_to = date_to or utcnow().date()
    date_from = date_from or date_to - timedelta(days=30)
    if date_to < date_from:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="'to' must not be before 'from'",
        )
    billings = get_db().get_billings_between(date_from, date_to)
    return billing_analytics(billings, date_from, date_to)


@router.get("/patients")
async def get_patient_analytics() -> PatientAnalytics:
    db = get_db()
    return patient_analytics(db.patients.all(), db.employees.all())
