"""Billing lifecycle and the care-level service catalog."""

from decimal import Decimal

from homecare.errors import InvalidTransitionError
from homecare.models import BillingService, BillingStatus, InsuranceBilling

ALLOWED_STATUS_TRANSITIONS: dict[BillingStatus, set[BillingStatus]] = {
    BillingStatus.DRAFT: {BillingStatus.PENDING},
    BillingStatus.PENDING: {BillingStatus.SUBMITTED},
    BillingStatus.SUBMITTED: {BillingStatus.PAID, BillingStatus.REJECTED},
    BillingStatus.PAID: set(),
    BillingStatus.REJECTED: set(),
}

SERVICE_CATALOG = [
    BillingService(code="P1", description="Basic care", amount=Decimal("35.50")),
    BillingService(code="P2", description="Treatment care", amount=Decimal("45.00")),
    BillingService(code="P3", description="Domestic support", amount=Decimal("28.50")),
    BillingService(code="P4", description="Counselling visit", amount=Decimal("40.00")),
    BillingService(code="P5", description="Care review visit", amount=Decimal("35.00")),
]

# Extra services offered from a given care level upwards
LEVEL_SERVICES: list[tuple[int, BillingService]] = [
    (3, BillingService(code="P1", description="Intensified basic care", amount=Decimal("45.50"))),
    (3, BillingService(code="P2", description="Extended treatment care", amount=Decimal("55.00"))),
    (4, BillingService(code="P6", description="Mobilisation and transfer", amount=Decimal("40.00"))),
    (4, BillingService(code="P7", description="Pressure ulcer prophylaxis", amount=Decimal("35.00"))),
]


def suggest_services(care_level: int) -> list[BillingService]:
    extras = [service for level, service in LEVEL_SERVICES if care_level >= level]
    return [*SERVICE_CATALOG, *extras]


def transition_status(
    billing: InsuranceBilling, status: BillingStatus
) -> InsuranceBilling:
    if status == billing.status:
        return billing
    if status not in ALLOWED_STATUS_TRANSITIONS[billing.status]:
        raise InvalidTransitionError("billing", billing.status, status)
    billing.status = status
    return billing
