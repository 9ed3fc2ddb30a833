"""
Realtime notification channel.

Messages are JSON objects discriminated by their ``type`` field. Inbound
envelopes are validated against a tagged union so malformed messages get an
ERROR reply instead of being dropped. Broadcasts are best-effort: a client
whose socket fails is disconnected and logged, and delivery order relative
to HTTP writes is not guaranteed.
"""

import asyncio
from datetime import date
from typing import Annotated, Any, Literal

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, TypeAdapter

from homecare.log import get_logger
from homecare.models import DocumentationStatus, OptimizedRoute

logger = get_logger(__name__)


# --- inbound ------------------------------------------------------------


class OptimizeTourRequest(BaseModel):
    type: Literal["OPTIMIZE_TOUR"]
    tour_id: int


class VoiceTranscriptionRequest(BaseModel):
    type: Literal["VOICE_TRANSCRIPTION"]
    audio_content: str = Field(min_length=1)  # raw transcript text
    patient_id: int | None = None


class TourUpdateNotice(BaseModel):
    type: Literal["TOUR_UPDATE"]
    tour: dict[str, Any]


class DocStatusUpdateNotice(BaseModel):
    type: Literal["DOC_STATUS_UPDATE"]
    documentation_id: int
    status: DocumentationStatus


InboundMessage = Annotated[
    OptimizeTourRequest
    | VoiceTranscriptionRequest
    | TourUpdateNotice
    | DocStatusUpdateNotice,
    Field(discriminator="type"),
]

inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)


# --- outbound -----------------------------------------------------------


class OptimizedTour(BaseModel):
    type: Literal["OPTIMIZED_TOUR"] = "OPTIMIZED_TOUR"
    tour_id: int
    patient_ids: list[int]
    workflow: OptimizedRoute
    ai_available: bool = True


class TranscriptionProgress(BaseModel):
    type: Literal["TRANSCRIPTION_PROGRESS"] = "TRANSCRIPTION_PROGRESS"
    preview: str


class TranscriptionComplete(BaseModel):
    type: Literal["TRANSCRIPTION_COMPLETE"] = "TRANSCRIPTION_COMPLETE"
    documentation: str


class TranscriptionError(BaseModel):
    type: Literal["TRANSCRIPTION_ERROR"] = "TRANSCRIPTION_ERROR"
    error: str
    original_content: str


class TourUpdated(BaseModel):
    type: Literal["TOUR_UPDATED"] = "TOUR_UPDATED"
    tour: dict[str, Any]


class DocStatusUpdated(BaseModel):
    type: Literal["DOC_STATUS_UPDATED"] = "DOC_STATUS_UPDATED"
    documentation_id: int
    status: DocumentationStatus


class OptimizationComplete(BaseModel):
    type: Literal["OPTIMIZATION_COMPLETE"] = "OPTIMIZATION_COMPLETE"
    date: date
    suggestion_count: int


class ErrorMessage(BaseModel):
    type: Literal["ERROR"] = "ERROR"
    error: str


class ConnectionManager:
    """Tracks connected sockets and fans messages out to them."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info("realtime_client_connected", clients=len(self._connections))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.discard(websocket)
        logger.info(
            "realtime_client_disconnected", clients=len(self._connections)
        )

    @property
    def client_count(self) -> int:
        return len(self._connections)

    async def send(self, websocket: WebSocket, message: BaseModel) -> None:
        await websocket.send_json(message.model_dump(mode="json"))

    async def broadcast(
        self, message: BaseModel, exclude: WebSocket | None = None
    ) -> int:
        """Send to every connected client except ``exclude``.

        Returns the number of clients the message was delivered to.
        """
        async with self._lock:
            targets = [ws for ws in self._connections if ws is not exclude]

        delivered = 0
        for websocket in targets:
            try:
                await self.send(websocket, message)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.warning(
                    "realtime_delivery_failed",
                    message_type=getattr(message, "type", None),
                    error=str(exc),
                )
                await self.disconnect(websocket)
        return delivered


_manager: ConnectionManager | None = None


def get_manager() -> ConnectionManager:
    """Get the global connection manager."""
    global _manager
    if _manager is None:
        _manager = ConnectionManager()
    return _manager
