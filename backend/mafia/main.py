from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from mafia.api.deps import build_room_manager
from mafia.api.rest import router as rest_router
from mafia.errors import ErrorCode, GameError
from mafia.room.room_manager import RoomManager
from mafia.websocket.handler import WSConnectionManager, dispatch

logger = logging.getLogger(__name__)

_BINARY_FRAME = GameError(ErrorCode.INVALID_PAYLOAD, "Only text frames are accepted.")


async def _sweep_rooms(manager: RoomManager) -> None:
    interval = manager.config.rules.sweep_interval_seconds
    while True:
        await asyncio.sleep(interval)
        try:
            manager.evict_abandoned()
        except Exception:
            logger.exception("room sweep failed")


def create_app(manager: Optional[RoomManager] = None) -> FastAPI:
    manager = manager or build_room_manager()
    if not isinstance(manager.transport, WSConnectionManager):
        manager.transport = WSConnectionManager()
    ws_manager: WSConnectionManager = manager.transport

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = asyncio.create_task(_sweep_rooms(manager))
        try:
            yield
        finally:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
            manager.shutdown_cleanup()
            logger.info("graceful shutdown cleanup completed: rooms=%s", len(manager.registry))

    app = FastAPI(
        title="Mafia Backend",
        version="0.1.0",
        description="Phase state machine backend for multiplayer Mafia rooms.",
        lifespan=lifespan,
    )
    app.state.room_manager = manager
    app.state.ws_manager = ws_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rest_router)

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "service": "mafia-backend",
            "summary": manager.health_summary(),
        }

    @app.websocket("/ws")
    async def room_ws(websocket: WebSocket) -> None:
        connection_id = await ws_manager.connect(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text")
                if raw is None:
                    # binary frames carry no envelope
                    ws_manager.ack(connection_id, None, _BINARY_FRAME.to_ack())
                    continue
                request_id, body = dispatch(manager, connection_id, raw)
                ws_manager.ack(connection_id, request_id, body)
        except WebSocketDisconnect:
            logger.debug("ws closed by peer connection=%s", connection_id)
        finally:
            manager.disconnect(connection_id)
            await ws_manager.disconnect(connection_id)

    return app
