from decimal import Decimal

import pytest
from httpx import AsyncClient

from homecare.billing import suggest_services
from homecare.database import get_db

SERVICES = [
    {"code": "P1", "description": "Basic care", "amount": "35.50"},
    {"code": "P2", "description": "Treatment care", "amount": "45.00"},
]


async def _undocumented_tour(client: AsyncClient) -> dict:
    response = await client.post(
        "/api/tours", json={"employee_id": 1, "date": "2026-05-05", "patient_ids": [1]}
    )
    return response.json()


@pytest.mark.asyncio
async def test_billing_blocked_by_missing_documentation(client: AsyncClient) -> None:
    tour = await _undocumented_tour(client)

    response = await client.post(
        "/api/billing",
        json={"patient_id": 1, "date": "2026-05-20", "services": SERVICES},
    )
    assert response.status_code == 409
    assert response.json()["missing_documentation"] == [
        {"date": "2026-05-05", "type": "tour", "id": tour["id"]}
    ]
    assert len(get_db().billings) == 0


@pytest.mark.asyncio
async def test_billing_proceeds_when_confirmed(client: AsyncClient) -> None:
    await _undocumented_tour(client)

    response = await client.post(
        "/api/billing",
        json={
            "patient_id": 1,
            "date": "2026-05-20",
            "services": SERVICES,
            "proceed_without_documentation": True,
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert Decimal(data["total_amount"]) == Decimal("80.50")
    assert data["status"] == "draft"
    # the gate never writes documentation
    assert len(get_db().documentation) == 1


@pytest.mark.asyncio
async def test_billing_period_start_limits_the_check(client: AsyncClient) -> None:
    await _undocumented_tour(client)

    response = await client.post(
        "/api/billing",
        json={
            "patient_id": 1,
            "date": "2026-05-20",
            "period_start": "2026-05-10",
            "services": SERVICES,
        },
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_documented_period_bills_directly(client: AsyncClient) -> None:
    # sample shift 1 on 2026-03-02 is documented for patient 1
    response = await client.post(
        "/api/billing",
        json={"patient_id": 1, "date": "2026-03-20", "services": SERVICES},
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_billing_unknown_patient(client: AsyncClient) -> None:
    response = await client.post(
        "/api/billing", json={"patient_id": 99, "date": "2026-03-20"}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_billing_rejects_negative_amount(client: AsyncClient) -> None:
    response = await client.post(
        "/api/billing",
        json={
            "patient_id": 1,
            "date": "2026-03-20",
            "services": [{"code": "P1", "description": "x", "amount": "-1"}],
        },
    )
    assert response.status_code == 400
    assert "amount" in response.json()["detail"]


@pytest.mark.asyncio
async def test_billing_status_moves_forward_only(client: AsyncClient) -> None:
    response = await client.post(
        "/api/billing",
        json={"patient_id": 1, "date": "2026-03-20", "services": SERVICES},
    )
    billing_id = response.json()["id"]

    for status in ("pending", "submitted", "paid"):
        response = await client.patch(
            f"/api/billing/{billing_id}/status", json={"status": status}
        )
        assert response.status_code == 200
        assert response.json()["status"] == status

    response = await client.patch(
        f"/api/billing/{billing_id}/status", json={"status": "draft"}
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_draft_cannot_jump_to_paid(client: AsyncClient) -> None:
    response = await client.post(
        "/api/billing", json={"patient_id": 1, "date": "2026-03-20"}
    )
    response = await client.patch(
        f"/api/billing/{response.json()['id']}/status", json={"status": "paid"}
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_service_suggestions_by_care_level(client: AsyncClient) -> None:
    response = await client.get(
        "/api/billing/services/suggestions", params={"care_level": 1}
    )
    assert [s["code"] for s in response.json()] == ["P1", "P2", "P3", "P4", "P5"]

    response = await client.get(
        "/api/billing/services/suggestions", params={"care_level": 6}
    )
    assert response.status_code == 400


def test_higher_care_levels_get_extra_services() -> None:
    level_3 = [s.code for s in suggest_services(3)]
    level_4 = [s.code for s in suggest_services(4)]
    assert len(level_3) == 7
    assert level_4[-2:] == ["P6", "P7"]


@pytest.mark.asyncio
async def test_list_billings_for_patient(client: AsyncClient) -> None:
    await client.post("/api/billing", json={"patient_id": 1, "date": "2026-03-20"})
    response = await client.get("/api/billing", params={"patient_id": 1})
    assert len(response.json()) == 1
    response = await client.get("/api/billing", params={"patient_id": 3})
    assert response.json() == []


@pytest.mark.asyncio
async def test_new_billing_must_start_as_draft_or_pending(client: AsyncClient) -> None:
    for status in ("submitted", "paid", "rejected"):
        response = await client.post(
            "/api/billing",
            json={"patient_id": 1, "date": "2026-03-20", "status": status},
        )
        assert response.status_code == 400
        assert "status" in response.json()["detail"]
    assert len(get_db().billings) == 0

    response = await client.post(
        "/api/billing",
        json={"patient_id": 1, "date": "2026-03-20", "status": "pending"},
    )
    assert response.status_code == 201
    assert response.json()["status"] == "pending"
