from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Dict, List, Optional

from mafia.core.game_config import GameConfig
from mafia.engine.game_engine import EventSink, GameEngine
from mafia.engine.scheduler import PhaseScheduler
from mafia.errors import ErrorCode, GameError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Room:
    room_code: str
    engine: GameEngine
    created_at: datetime
    # set while no connection is bound to the room
    abandoned_since: Optional[datetime] = None


def normalize_room_code(room_code: Optional[str]) -> str:
    return str(room_code or "").strip().upper()


class RoomRegistry:
    """Process-scoped store of live rooms keyed by their public code."""

    def __init__(self, config: GameConfig, rng: Optional[random.Random] = None) -> None:
        self._rooms: Dict[str, Room] = {}
        self._lock = RLock()
        self.config = config
        self._rng = rng or random.SystemRandom()

    def create(
        self,
        host_name: str,
        host_token: str,
        scheduler: PhaseScheduler,
        sink: Optional[EventSink] = None,
        engine_rng: Optional[random.Random] = None,
    ) -> Room:
        with self._lock:
            room_code = self._new_room_code()
            while room_code in self._rooms:
                room_code = self._new_room_code()
            engine = GameEngine(
                room_code=room_code,
                host_name=host_name,
                host_token=host_token,
                config=self.config,
                scheduler=scheduler,
                sink=sink,
                rng=engine_rng,
            )
            room = Room(room_code=room_code, engine=engine, created_at=scheduler.now())
            self._rooms[room_code] = room
            logger.info("[Room] created room=%s live_rooms=%s", room_code, len(self._rooms))
            return room

    def get(self, room_code: Optional[str]) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(normalize_room_code(room_code))

    def must_get(self, room_code: Optional[str]) -> Room:
        room = self.get(room_code)
        if not room:
            raise GameError(ErrorCode.ROOM_NOT_FOUND, "Room not found.")
        return room

    def remove(self, room_code: str) -> Optional[Room]:
        with self._lock:
            room = self._rooms.pop(normalize_room_code(room_code), None)
            if room:
                logger.info("[Room] removed room=%s live_rooms=%s", room.room_code, len(self._rooms))
            return room

    def codes(self) -> List[str]:
        with self._lock:
            return list(self._rooms.keys())

    def rooms(self) -> List[Room]:
        with self._lock:
            return list(self._rooms.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def __contains__(self, room_code: object) -> bool:
        with self._lock:
            return isinstance(room_code, str) and normalize_room_code(room_code) in self._rooms

    def _new_room_code(self) -> str:
        alphabet = self.config.rules.room_code_alphabet
        length = self.config.rules.room_code_length
        return "".join(self._rng.choice(alphabet) for _ in range(length))
