from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Type

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from mafia.errors import ErrorCode, GameError
from mafia.room.room_manager import OutboundTransport, RoomManager
from mafia.schemas import (
    ChatPayload,
    CreateRoomPayload,
    JoinRoomPayload,
    RestoreSessionPayload,
    RoomPayload,
    TargetPayload,
    WSEnvelope,
)

logger = logging.getLogger(__name__)

# sentinel that tells a writer task to stop
_CLOSE = object()


@dataclass
class WSConnection:
    connection_id: str
    websocket: WebSocket
    queue: "asyncio.Queue[Any]" = field(default_factory=asyncio.Queue)
    writer: Optional["asyncio.Task[None]"] = None


class WSConnectionManager(OutboundTransport):
    """Per-socket outbound queues. ``send`` never awaits, so the engine can call it synchronously."""

    def __init__(self) -> None:
        self._connections: Dict[str, WSConnection] = {}
        self._event_counter: int = 0

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        connection = WSConnection(connection_id=connection_id, websocket=websocket)
        connection.writer = asyncio.create_task(self._writer(connection))
        self._connections[connection_id] = connection
        logger.debug("ws connected connection=%s", connection_id)
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return
        connection.queue.put_nowait(_CLOSE)
        if connection.writer is not None:
            await connection.writer
        logger.debug("ws disconnected connection=%s", connection_id)

    def send(self, connection_id: str, event: str, payload: dict) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        self._event_counter += 1
        connection.queue.put_nowait(
            {
                "event_id": self._event_counter,
                "event": event,
                "payload": payload,
                "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            }
        )

    def ack(self, connection_id: str, request_id: Optional[str], body: dict) -> None:
        self.send(connection_id, "ack", {"request_id": request_id, **body})

    def __len__(self) -> int:
        return len(self._connections)

    async def _writer(self, connection: WSConnection) -> None:
        while True:
            message = await connection.queue.get()
            if message is _CLOSE:
                return
            try:
                await connection.websocket.send_text(json.dumps(message, ensure_ascii=False))
            except (WebSocketDisconnect, RuntimeError, OSError):
                # socket already gone; the reader side will run the disconnect path
                logger.debug("ws send failed connection=%s", connection.connection_id)
                return


Handler = Callable[[RoomManager, str, Any], dict]

EVENT_HANDLERS: Dict[str, Tuple[Type[BaseModel], Handler]] = {
    "create_room": (CreateRoomPayload, lambda m, cid, p: m.create_room(cid, p.host_name)),
    "join_room": (JoinRoomPayload, lambda m, cid, p: m.join_room(cid, p.room_code, p.player_name)),
    "start_game": (RoomPayload, lambda m, cid, p: m.start_game(cid, p.room_code)),
    "cast_vote": (TargetPayload, lambda m, cid, p: m.cast_day_vote(cid, p.room_code, p.target_id)),
    "doctor_protect": (TargetPayload, lambda m, cid, p: m.protect_target(cid, p.room_code, p.target_id)),
    "mafia_vote_kill": (TargetPayload, lambda m, cid, p: m.cast_mafia_vote(cid, p.room_code, p.target_id)),
    "detective_check": (TargetPayload, lambda m, cid, p: m.investigate(cid, p.room_code, p.target_id)),
    "restore_session": (RestoreSessionPayload, lambda m, cid, p: m.restore_session(cid, p.room_code, p.token)),
    "public_chat": (ChatPayload, lambda m, cid, p: m.public_chat(cid, p.room_code, p.message)),
    "mafia_chat": (ChatPayload, lambda m, cid, p: m.mafia_chat(cid, p.room_code, p.message)),
    "close_room": (RoomPayload, lambda m, cid, p: m.close_room(cid, p.room_code)),
}


def dispatch(manager: RoomManager, connection_id: str, raw: str) -> Tuple[Optional[str], dict]:
    """Run one inbound message. Returns the request id and the ack body."""
    try:
        envelope = WSEnvelope.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError):
        return None, GameError(ErrorCode.INVALID_PAYLOAD, "Malformed message.").to_ack()

    entry = EVENT_HANDLERS.get(envelope.event)
    if entry is None:
        return envelope.request_id, GameError(ErrorCode.UNKNOWN_EVENT, f"Unknown event: {envelope.event}").to_ack()

    payload_model, handler = entry
    try:
        payload = payload_model.model_validate(envelope.payload)
        result = handler(manager, connection_id, payload)
    except ValidationError as exc:
        logger.debug("rejected event=%s connection=%s invalid payload", envelope.event, connection_id)
        return envelope.request_id, GameError(ErrorCode.INVALID_PAYLOAD, _first_error(exc)).to_ack()
    except GameError as exc:
        logger.debug("rejected event=%s connection=%s code=%s", envelope.event, connection_id, exc.code.value)
        return envelope.request_id, exc.to_ack()
    return envelope.request_id, {"ok": True, **(result or {})}


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid payload."
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid')}" if location else str(first.get("msg", "invalid"))
