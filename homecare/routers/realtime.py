from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from homecare.ai import AIUnavailableError, get_assistant
from homecare.database import get_db
from homecare.log import get_logger
from homecare.realtime import (
    DocStatusUpdated,
    DocStatusUpdateNotice,
    ErrorMessage,
    InboundMessage,
    OptimizedTour,
    OptimizeTourRequest,
    TourUpdated,
    TourUpdateNotice,
    TranscriptionComplete,
    TranscriptionError,
    TranscriptionProgress,
    VoiceTranscriptionRequest,
    get_manager,
    inbound_adapter,
)
from homecare.routing import build_route
from homecare.tours import resolve_patients

router = APIRouter(tags=["realtime"])
logger = get_logger(__name__)

PREVIEW_LENGTH = 100


async def _optimize_tour(websocket: WebSocket, message: OptimizeTourRequest) -> None:
    """Propose a visit order for a tour without persisting it."""
    manager = get_manager()
    db = get_db()
    tour = db.tours.get(message.tour_id)
    if tour is None:
        await manager.send(
            websocket, ErrorMessage(error=f"Tour {message.tour_id} not found")
        )
        return

    patients = resolve_patients(db, tour)
    ai_available = True
    try:
        order = await get_assistant().suggest_route_order(tour, patients)
        by_id = {p.id: p for p in patients}
        patients = [by_id[patient_id] for patient_id in order]
    except AIUnavailableError as exc:
        logger.warning("route_order_unavailable", tour_id=tour.id, error=str(exc))
        ai_available = False

    await manager.send(
        websocket,
        OptimizedTour(
            tour_id=tour.id,
            patient_ids=[p.id for p in patients],
            workflow=build_route(patients, tour.date),
            ai_available=ai_available,
        ),
    )


async def _transcribe(
    websocket: WebSocket, message: VoiceTranscriptionRequest
) -> None:
    manager = get_manager()
    await manager.send(
        websocket,
        TranscriptionProgress(preview=message.audio_content[:PREVIEW_LENGTH]),
    )
    try:
        documentation = await get_assistant().transcribe_documentation(
            message.audio_content
        )
    except AIUnavailableError as exc:
        logger.warning("transcription_unavailable", error=str(exc))
        await manager.send(
            websocket,
            TranscriptionError(
                error="Could not generate documentation",
                original_content=message.audio_content,
            ),
        )
        return
    await manager.send(websocket, TranscriptionComplete(documentation=documentation))


async def _dispatch(websocket: WebSocket, message: InboundMessage) -> None:
    manager = get_manager()
    if isinstance(message, OptimizeTourRequest):
        await _optimize_tour(websocket, message)
    elif isinstance(message, VoiceTranscriptionRequest):
        await _transcribe(websocket, message)
    elif isinstance(message, TourUpdateNotice):
        await manager.broadcast(TourUpdated(tour=message.tour), exclude=websocket)
    elif isinstance(message, DocStatusUpdateNotice):
        await manager.broadcast(
            DocStatusUpdated(
                documentation_id=message.documentation_id, status=message.status
            ),
            exclude=websocket,
        )


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket) -> None:
    manager = get_manager()
    await manager.connect(websocket)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            raw = frame.get("text")
            if raw is None:
                logger.info("realtime_frame_rejected", reason="binary")
                await manager.send(
                    websocket, ErrorMessage(error="Only text frames are supported")
                )
                continue
            try:
                message = inbound_adapter.validate_json(raw)
            except ValidationError as exc:
                logger.info("realtime_message_rejected", errors=exc.error_count())
                await manager.send(
                    websocket, ErrorMessage(error=f"Invalid message: {exc.errors()[0]['msg']}")
                )
                continue
            try:
                await _dispatch(websocket, message)
            except WebSocketDisconnect:
                raise
            except Exception:
                # the connection stays open after a failed message
                logger.exception("realtime_message_failed", message_type=message.type)
                await manager.send(
                    websocket, ErrorMessage(error=f"Could not process {message.type} message")
                )
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket)
