from fastapi.testclient import TestClient

from homecare.api import create_app
from homecare.database import get_db
from homecare.realtime import get_manager


def _ensure_registered(websocket) -> None:
    # a rejected message round-trip guarantees the socket is tracked
    websocket.send_text("not json")
    assert websocket.receive_json()["type"] == "ERROR"


def test_malformed_message_gets_error_reply() -> None:
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "NO_SUCH_TYPE"})
            reply = websocket.receive_json()
            assert reply["type"] == "ERROR"
            assert reply["error"].startswith("Invalid message")

            websocket.send_json({"type": "OPTIMIZE_TOUR"})
            assert websocket.receive_json()["type"] == "ERROR"

    assert get_manager().client_count == 0


def test_optimize_tour_proposes_order_without_saving() -> None:
    with TestClient(create_app()) as client:
        response = client.post(
            "/api/tours",
            json={"employee_id": 1, "date": "2026-05-05", "patient_ids": [1, 2, 3]},
        )
        tour_id = response.json()["id"]

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "OPTIMIZE_TOUR", "tour_id": tour_id})
            reply = websocket.receive_json()

    assert reply["type"] == "OPTIMIZED_TOUR"
    assert reply["ai_available"] is True
    assert reply["patient_ids"] == [3, 2, 1]
    assert [w["patient_id"] for w in reply["workflow"]["waypoints"]] == [3, 2, 1]
    assert get_db().tours.get(tour_id).patient_ids == [1, 2, 3]


def test_optimize_tour_falls_back_to_current_order(assistant) -> None:
    assistant.available = False
    with TestClient(create_app()) as client:
        response = client.post(
            "/api/tours",
            json={"employee_id": 1, "date": "2026-05-05", "patient_ids": [1, 2]},
        )
        tour_id = response.json()["id"]

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "OPTIMIZE_TOUR", "tour_id": tour_id})
            reply = websocket.receive_json()

    assert reply["ai_available"] is False
    assert reply["patient_ids"] == [1, 2]


def test_optimize_unknown_tour() -> None:
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "OPTIMIZE_TOUR", "tour_id": 999})
            reply = websocket.receive_json()
    assert reply == {"type": "ERROR", "error": "Tour 999 not found"}


def test_voice_transcription() -> None:
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json(
                {"type": "VOICE_TRANSCRIPTION", "audio_content": "BP 130 over 85"}
            )
            progress = websocket.receive_json()
            complete = websocket.receive_json()

    assert progress == {"type": "TRANSCRIPTION_PROGRESS", "preview": "BP 130 over 85"}
    assert complete == {
        "type": "TRANSCRIPTION_COMPLETE",
        "documentation": "Observations: BP 130 over 85",
    }


def test_voice_transcription_failure_keeps_original(assistant) -> None:
    assistant.available = False
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json(
                {"type": "VOICE_TRANSCRIPTION", "audio_content": "BP 130 over 85"}
            )
            websocket.receive_json()
            reply = websocket.receive_json()

    assert reply["type"] == "TRANSCRIPTION_ERROR"
    assert reply["original_content"] == "BP 130 over 85"


def test_tour_update_is_relayed_to_other_clients() -> None:
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as sender, client.websocket_connect(
            "/ws"
        ) as listener:
            _ensure_registered(sender)
            _ensure_registered(listener)

            sender.send_json({"type": "TOUR_UPDATE", "tour": {"id": 7}})
            relayed = listener.receive_json()
            assert relayed == {"type": "TOUR_UPDATED", "tour": {"id": 7}}

            # the sender is excluded, so its next reply is for its next message
            _ensure_registered(sender)


def test_doc_status_update_is_relayed() -> None:
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as sender, client.websocket_connect(
            "/ws"
        ) as listener:
            _ensure_registered(sender)
            _ensure_registered(listener)

            sender.send_json(
                {"type": "DOC_STATUS_UPDATE", "documentation_id": 1, "status": "review"}
            )
            assert listener.receive_json() == {
                "type": "DOC_STATUS_UPDATED",
                "documentation_id": 1,
                "status": "review",
            }


def test_http_tour_changes_are_broadcast() -> None:
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as websocket:
            _ensure_registered(websocket)

            response = client.post(
                "/api/tours",
                json={"employee_id": 1, "date": "2026-05-05", "patient_ids": [1]},
            )
            message = websocket.receive_json()

    assert message["type"] == "TOUR_UPDATED"
    assert message["tour"]["id"] == response.json()["id"]
    assert message["tour"]["patient_ids"] == [1]


def test_documentation_status_change_is_broadcast() -> None:
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as websocket:
            _ensure_registered(websocket)

            client.patch("/api/documentation/1/status", json={"status": "review"})
            message = websocket.receive_json()

    assert message == {
        "type": "DOC_STATUS_UPDATED",
        "documentation_id": 1,
        "status": "review",
    }


def test_binary_frame_gets_error_reply() -> None:
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as websocket:
            websocket.send_bytes(b"\x00\x01")
            assert websocket.receive_json() == {
                "type": "ERROR",
                "error": "Only text frames are supported",
            }
            _ensure_registered(websocket)


def test_failed_message_keeps_connection_open(assistant, monkeypatch) -> None:
    async def broken_route_order(tour, patients):
        raise ValueError("unexpected provider payload")

    monkeypatch.setattr(assistant, "suggest_route_order", broken_route_order)
    with TestClient(create_app()) as client:
        response = client.post(
            "/api/tours",
            json={"employee_id": 1, "date": "2026-05-05", "patient_ids": [1, 2]},
        )
        tour_id = response.json()["id"]

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "OPTIMIZE_TOUR", "tour_id": tour_id})
            assert websocket.receive_json() == {
                "type": "ERROR",
                "error": "Could not process OPTIMIZE_TOUR message",
            }
            _ensure_registered(websocket)
