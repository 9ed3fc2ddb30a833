"""Aggregate figures for the billing and patient dashboards."""

from collections import Counter
from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from homecare.models import (
    BillingStatus,
    Employee,
    EmployeeStatus,
    InsuranceBilling,
    Patient,
    Qualifications,
)

# Planning assumption: one active caregiver covers eight patients a day
PATIENTS_PER_EMPLOYEE = 8


class BillingAnalytics(BaseModel):
    date_from: date
    date_to: date
    total_revenue: Decimal
    pending_count: int
    submitted_count: int
    paid_count: int
    rejected_count: int
    success_rate: float


class PatientAnalytics(BaseModel):
    total_patients: int
    by_care_level: dict[int, int]
    active_employees: int
    max_capacity: int
    utilization_rate: float
    patient_to_staff_ratio: float
    qualification_coverage: dict[str, float]


def billing_analytics(
    billings: list[InsuranceBilling], date_from: date, date_to: date
) -> BillingAnalytics:
    statuses = Counter(b.status for b in billings)
    submitted = statuses[BillingStatus.SUBMITTED]
    paid = statuses[BillingStatus.PAID]
    # paid and rejected bills were submitted before
    settled_base = submitted + paid + statuses[BillingStatus.REJECTED]
    return BillingAnalytics(
        date_from=date_from,
        date_to=date_to,
        total_revenue=sum((b.total_amount for b in billings), Decimal("0")),
        pending_count=statuses[BillingStatus.PENDING] + statuses[BillingStatus.DRAFT],
        submitted_count=submitted,
        paid_count=paid,
        rejected_count=statuses[BillingStatus.REJECTED],
        success_rate=(paid / settled_base * 100) if settled_base else 0.0,
    )


def qualification_coverage(employees: list[Employee]) -> dict[str, float]:
    """Share of employees (in percent) holding each boolean qualification."""
    if not employees:
        return {}
    flags = [
        name
        for name, field in Qualifications.model_fields.items()
        if field.annotation is bool
    ]
    coverage = {}
    for flag in flags:
        holders = sum(1 for e in employees if getattr(e.qualifications, flag))
        coverage[flag] = holders / len(employees) * 100
    return coverage


def patient_analytics(
    patients: list[Patient], employees: list[Employee]
) -> PatientAnalytics:
    active = [e for e in employees if e.status == EmployeeStatus.ACTIVE]
    max_capacity = len(active) * PATIENTS_PER_EMPLOYEE
    by_level = Counter(p.care_level for p in patients)
    return PatientAnalytics(
        total_patients=len(patients),
        by_care_level={level: by_level.get(level, 0) for level in range(1, 6)},
        active_employees=len(active),
        max_capacity=max_capacity,
        utilization_rate=(len(patients) / max_capacity * 100) if max_capacity else 0.0,
        patient_to_staff_ratio=(len(patients) / len(active)) if active else 0.0,
        qualification_coverage=qualification_coverage(employees),
    )
