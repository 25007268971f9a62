from __future__ import annotations

import random
from typing import Dict, List, Optional, Tuple

import pytest

from mafia.core.game_config import default_game_config
from mafia.core.models import Role
from mafia.engine.scheduler import VirtualClockScheduler
from mafia.room.room_manager import OutboundTransport, RoomManager


class RecordingTransport(OutboundTransport):
    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, dict]] = []

    def send(self, connection_id: str, event: str, payload: dict) -> None:
        self.sent.append((connection_id, event, payload))

    def events_for(self, connection_id: str, event: Optional[str] = None) -> List[dict]:
        return [
            payload
            for cid, name, payload in self.sent
            if cid == connection_id and (event is None or name == event)
        ]

    def names_for(self, connection_id: str) -> List[str]:
        return [name for cid, name, _ in self.sent if cid == connection_id]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def scheduler() -> VirtualClockScheduler:
    return VirtualClockScheduler()


@pytest.fixture
def make_manager(transport: RecordingTransport, scheduler: VirtualClockScheduler):
    def _make(disconnect_policy: Optional[str] = None, repository=None) -> RoomManager:
        return RoomManager(
            config=default_game_config(disconnect_policy=disconnect_policy),
            transport=transport,
            scheduler=scheduler,
            repository=repository,
            engine_rng=random.Random(7),
        )

    return _make


@pytest.fixture
def manager(make_manager) -> RoomManager:
    return make_manager()


def open_room(manager: RoomManager, player_count: int = 6) -> Tuple[str, str, Dict[str, dict]]:
    """Create a room on connection ``host-c`` and join players on ``c1``..``cN``.

    Returns the room code, the host token and the join acks keyed by connection id.
    """
    created = manager.create_room("host-c", "Hosty")
    room_code = created["room_code"]
    joined: Dict[str, dict] = {}
    for index in range(1, player_count + 1):
        joined[f"c{index}"] = manager.join_room(f"c{index}", room_code, f"P{index}")
    return room_code, created["host_token"], joined


def connections_by_role(manager: RoomManager, room_code: str, joined: Dict[str, dict]) -> Dict[Role, List[str]]:
    players = manager.must_get_room(room_code).engine.snapshot.players
    result: Dict[Role, List[str]] = {}
    for cid, ack in joined.items():
        role = players[ack["player_id"]].role
        result.setdefault(role, []).append(cid)
    return result
