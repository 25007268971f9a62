from __future__ import annotations

import pytest

from mafia.core.game_config import GameConfig
from mafia.engine.scheduler import VirtualClockScheduler
from mafia.errors import ErrorCode, GameError
from mafia.room.registry import RoomRegistry


class _ScriptedRng:
    def __init__(self, chars: str) -> None:
        self._chars = iter(chars)

    def choice(self, seq: str) -> str:
        return next(self._chars)


def test_codes_use_unambiguous_alphabet() -> None:
    config = GameConfig()
    registry = RoomRegistry(config)
    scheduler = VirtualClockScheduler()

    codes = {registry.create("Host", f"token-{i}", scheduler).room_code for i in range(50)}

    assert len(codes) == 50
    for code in codes:
        assert len(code) == 5
        assert set(code) <= set(config.rules.room_code_alphabet)
        assert not set(code) & set("0O1I")


def test_collision_is_retried() -> None:
    registry = RoomRegistry(GameConfig(), rng=_ScriptedRng("AAAAA" "AAAAA" "BBBBB"))
    scheduler = VirtualClockScheduler()

    first = registry.create("Host", "t1", scheduler)
    second = registry.create("Host", "t2", scheduler)

    assert first.room_code == "AAAAA"
    assert second.room_code == "BBBBB"
    assert len(registry) == 2


def test_lookup_normalises_code() -> None:
    registry = RoomRegistry(GameConfig())
    room = registry.create("Host", "t1", VirtualClockScheduler())

    assert registry.get(f"  {room.room_code.lower()} ") is room
    assert room.room_code.lower() in registry


def test_unknown_room_raises() -> None:
    registry = RoomRegistry(GameConfig())

    assert registry.get("ZZZZZ") is None
    with pytest.raises(GameError) as exc:
        registry.must_get("ZZZZZ")
    assert exc.value.code == ErrorCode.ROOM_NOT_FOUND
    assert exc.value.message == "Room not found."


def test_remove_drops_room() -> None:
    registry = RoomRegistry(GameConfig())
    room = registry.create("Host", "t1", VirtualClockScheduler())

    assert registry.remove(room.room_code) is room
    assert registry.codes() == []
    assert registry.remove(room.room_code) is None
