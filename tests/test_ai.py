from decimal import Decimal
from types import SimpleNamespace

import pytest
from httpx import AsyncClient

import homecare.ai
from homecare.ai import AIUnavailableError, CareAssistant
from homecare.database import get_db
from homecare.models import BillingService, Tour


class StubCompletions:
    """Mimics ``client.chat.completions`` returning a fixed message."""

    def __init__(self, content: str | None) -> None:
        self.content = content
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _assistant_returning(content: str | None) -> tuple[CareAssistant, StubCompletions]:
    completions = StubCompletions(content)
    assistant = CareAssistant(api_key="test-key", model="test-model")
    assistant._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return assistant, completions


@pytest.mark.asyncio
async def test_patient_insights(client: AsyncClient) -> None:
    response = await client.post("/api/ai/patient-insights", json={"patient_id": 1})
    assert response.json() == {"available": True, "insights": "Insights for Anna Schmidt"}


@pytest.mark.asyncio
async def test_patient_insights_unknown_patient(client: AsyncClient) -> None:
    response = await client.post("/api/ai/patient-insights", json={"patient_id": 50})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_care_prediction_unavailable(client: AsyncClient, assistant) -> None:
    assistant.available = False
    response = await client.post("/api/ai/care-prediction", json={"patient_id": 1})
    assert response.status_code == 200
    assert response.json() == {
        "available": False,
        "message": "Could not generate care prediction",
    }


@pytest.mark.asyncio
async def test_shift_optimization(client: AsyncClient) -> None:
    response = await client.post(
        "/api/ai/shift-optimization", json={"date": "2026-03-02"}
    )
    assert response.json() == {"available": True, "recommendations": "2 shifts reviewed"}


@pytest.mark.asyncio
async def test_billing_assist_keeps_services_on_failure(
    client: AsyncClient, assistant
) -> None:
    services = [{"code": "P1", "description": "Basic care", "amount": "35.50"}]

    response = await client.post(
        "/api/ai/billing-assist", json={"patient_id": 1, "services": services}
    )
    assert response.json()["services"][0]["description"] == "BASIC CARE"

    assistant.available = False
    response = await client.post(
        "/api/ai/billing-assist", json={"patient_id": 1, "services": services}
    )
    data = response.json()
    assert data["available"] is False
    assert data["services"] == services


@pytest.mark.asyncio
async def test_transcribe_unavailable_echoes_input(
    client: AsyncClient, assistant
) -> None:
    assistant.available = False
    response = await client.post("/api/ai/transcribe", json={"content": "Pulse 72"})
    assert response.json() == {
        "available": False,
        "message": "Could not generate documentation",
        "original_content": "Pulse 72",
    }


@pytest.mark.asyncio
async def test_documentation_suggestions(client: AsyncClient, assistant) -> None:
    response = await client.post(
        "/api/ai/documentation-suggestions",
        json={"patient_id": 2, "content": "Patient mobile."},
    )
    suggestions = response.json()["suggestions"]
    assert suggestions[0]["content"] == "Patient mobile. Vitals stable."

    assistant.available = False
    response = await client.post(
        "/api/ai/documentation-suggestions",
        json={"patient_id": 2, "content": "Patient mobile."},
    )
    assert response.json()["content"] == "Patient mobile."


@pytest.mark.asyncio
async def test_extract_patient(client: AsyncClient) -> None:
    response = await client.post(
        "/api/ai/extract-patient", json={"image_base64": "aGVsbG8="}
    )
    data = response.json()
    assert data["patient"]["name"] == "Erika Mustermann"
    # extraction never creates a patient
    assert len(get_db().patients) == 4


@pytest.mark.asyncio
async def test_missing_api_key_degrades(client: AsyncClient) -> None:
    homecare.ai._assistant = CareAssistant(api_key=None)
    response = await client.post("/api/ai/patient-insights", json={"patient_id": 1})
    assert response.json()["available"] is False


@pytest.mark.asyncio
async def test_malformed_json_is_unavailable() -> None:
    assistant, _ = _assistant_returning("this is not json")
    snapshot = homecare.ai.ScheduleSnapshot(
        date="2026-05-05", tours=[], employees=[], patients=[]
    )
    with pytest.raises(AIUnavailableError):
        await assistant.suggest(snapshot)


@pytest.mark.asyncio
async def test_empty_response_is_unavailable() -> None:
    assistant, _ = _assistant_returning(None)
    with pytest.raises(AIUnavailableError):
        await assistant.transcribe_documentation("Pulse 72")


@pytest.mark.asyncio
async def test_route_order_must_cover_every_patient() -> None:
    db = get_db()
    patients = [db.patients.get(1), db.patients.get(2)]
    tour = Tour(id=1, employee_id=1, date="2026-05-05T08:00:00")

    assistant, completions = _assistant_returning('{"optimized_order": [2, 1]}')
    assert await assistant.suggest_route_order(tour, patients) == [2, 1]
    assert completions.requests[0]["response_format"] == {"type": "json_object"}
    assert completions.requests[0]["model"] == "test-model"

    assistant, _ = _assistant_returning('{"optimized_order": [2, 3]}')
    with pytest.raises(AIUnavailableError):
        await assistant.suggest_route_order(tour, patients)


@pytest.mark.asyncio
async def test_enhance_billing_keeps_codes_and_amounts() -> None:
    services = [BillingService(code="P1", description="Basic care", amount=Decimal("35.50"))]
    assistant, _ = _assistant_returning(
        '{"services": [{"code": "X9", "description": "Personal hygiene support", "amount": "999"}]}'
    )
    enhanced = await assistant.enhance_billing(get_db().patients.get(1), services)
    assert enhanced == [
        BillingService(
            code="P1", description="Personal hygiene support", amount=Decimal("35.50")
        )
    ]


@pytest.mark.asyncio
async def test_route_order_with_foreign_ids_is_unavailable() -> None:
    db = get_db()
    patients = [db.patients.get(1), db.patients.get(2)]
    tour = Tour(id=1, employee_id=1, date="2026-05-05T08:00:00Z")

    for content in (
        '{"optimized_order": ["x", 2]}',
        '{"optimized_order": [1, 1]}',
        '{"optimized_order": "1,2"}',
        "{}",
    ):
        assistant, _ = _assistant_returning(content)
        with pytest.raises(AIUnavailableError):
            await assistant.suggest_route_order(tour, patients)


@pytest.mark.asyncio
async def test_non_list_services_are_unavailable() -> None:
    services = [BillingService(code="P1", description="Basic care", amount=Decimal("35.50"))]
    assistant, _ = _assistant_returning('{"services": 5}')
    with pytest.raises(AIUnavailableError):
        await assistant.enhance_billing(get_db().patients.get(1), services)


@pytest.mark.asyncio
async def test_non_list_suggestions_are_unavailable() -> None:
    assistant, _ = _assistant_returning('{"suggestions": "nope"}')
    with pytest.raises(AIUnavailableError):
        await assistant.documentation_suggestions(get_db().patients.get(1), "visit", "")
