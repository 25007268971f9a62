from __future__ import annotations

import random
from collections import Counter

import pytest

from mafia.core.game_config import RuleConfig, default_game_config
from mafia.core.models import HOST_IDENTITY, Role
from mafia.engine.game_engine import GameEngine, OutboundEvent
from mafia.engine.scheduler import VirtualClockScheduler


def _started(count: int, seed: int = 1) -> tuple[GameEngine, list[OutboundEvent]]:
    events: list[OutboundEvent] = []
    engine = GameEngine(
        room_code="ROLES",
        host_name="Host",
        host_token="host-token",
        scheduler=VirtualClockScheduler(),
        sink=events.append,
        rng=random.Random(seed),
    )
    for i in range(1, count + 1):
        engine.add_player(f"p{i}", f"P{i}", f"token-{i}")
    engine.start_game(HOST_IDENTITY)
    return engine, events


@pytest.mark.parametrize(
    "count,mafia",
    [(6, 2), (8, 2), (9, 3), (12, 3), (13, 4), (16, 4)],
)
def test_mafia_band_by_player_count(count: int, mafia: int) -> None:
    assert RuleConfig().mafia_count_for(count) == mafia
    assert default_game_config().rules.mafia_count_for(count) == mafia


@pytest.mark.parametrize("count", [6, 9, 13])
def test_role_multiset(count: int) -> None:
    engine, _ = _started(count)

    roles = Counter(p.role for p in engine.snapshot.players.values())
    mafia = RuleConfig().mafia_count_for(count)

    assert roles[Role.DOCTOR] == 1
    assert roles[Role.DETECTIVE] == 1
    assert roles[Role.MAFIA] == mafia
    assert roles[Role.TOWN] == count - 2 - mafia
    assert all(p.alive for p in engine.snapshot.players.values())


def test_same_seed_same_assignment() -> None:
    first, _ = _started(8, seed=42)
    second, _ = _started(8, seed=42)

    assert [p.role for p in first.snapshot.players.values()] == [
        p.role for p in second.snapshot.players.values()
    ]


def test_private_role_events() -> None:
    engine, events = _started(9)

    your_role = [e for e in events if e.event == "your_role"]
    assert sorted(e.recipients[0] for e in your_role) == sorted(engine.snapshot.players)
    for event in your_role:
        assert event.payload["role"] == engine.snapshot.players[event.recipients[0]].role.value

    mafia_ids = sorted(p.player_id for p in engine.snapshot.players.values() if p.role == Role.MAFIA)
    rosters = [e for e in events if e.event == "mafia_team"]
    assert sorted(e.recipients[0] for e in rosters) == mafia_ids
    for roster in rosters:
        assert sorted(roster.payload["mafia_ids"]) == mafia_ids
        assert len(roster.payload["mafia_names"]) == len(mafia_ids)


def test_public_state_hides_living_roles() -> None:
    engine, events = _started(6)

    state = engine.public_state()

    assert all(p["revealed_role"] is None for p in state["players"])
    assert "role" not in state["players"][0]
    broadcasts = [e for e in events if e.recipients is None]
    assert {e.event for e in broadcasts} == {"room_state"}
