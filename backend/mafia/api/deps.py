from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request

from mafia.config.server_env import ServerSettings, load_server_settings
from mafia.core.game_config import default_game_config
from mafia.room.room_manager import RoomManager
from mafia.storage.repository import SQLiteRepository
from mafia.websocket.handler import WSConnectionManager

logger = logging.getLogger(__name__)


def build_room_manager(settings: Optional[ServerSettings] = None) -> RoomManager:
    settings = settings or load_server_settings()
    config = default_game_config(disconnect_policy=settings.disconnect_policy)
    repository = SQLiteRepository(settings.db_path) if settings.db_path else None
    if repository is None:
        logger.info("game archive disabled")
    return RoomManager(config=config, transport=WSConnectionManager(), repository=repository)


def get_room_manager(request: Request) -> RoomManager:
    return request.app.state.room_manager
