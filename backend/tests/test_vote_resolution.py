from __future__ import annotations

import pytest

from mafia.core.models import HOST_IDENTITY, Phase, Role
from mafia.engine.game_engine import GameEngine
from mafia.engine.scheduler import VirtualClockScheduler
from mafia.engine.vote_resolution import resolve_majority, tally_votes
from mafia.errors import ErrorCode, GameError


def _everyone(_: str) -> bool:
    return True


def test_unique_leader_wins() -> None:
    votes = {"a": "x", "b": "x", "c": "y"}
    assert resolve_majority(votes, _everyone, _everyone) == "x"


def test_tie_at_top_resolves_to_none() -> None:
    votes = {"a": "x", "b": "y", "c": "x", "d": "y", "e": "z"}
    assert resolve_majority(votes, _everyone, _everyone) is None


def test_no_votes_resolves_to_none() -> None:
    assert resolve_majority({}, _everyone, _everyone) is None


def test_ineligible_voters_and_targets_are_skipped() -> None:
    votes = {"a": "x", "b": "x", "c": "y", "d": "y", "e": "y"}
    dead = {"d", "e"}

    assert resolve_majority(votes, lambda v: v not in dead, _everyone) == "x"
    assert tally_votes(votes, _everyone, lambda t: t != "y") == {"x": 2}


def _make_voting_game() -> GameEngine:
    engine = GameEngine(
        room_code="VOTES",
        host_name="Host",
        host_token="host-token",
        scheduler=VirtualClockScheduler(),
    )
    for i in range(1, 8):
        engine.add_player(f"p{i}", f"P{i}", f"token-{i}")
    engine.start_game(HOST_IDENTITY)
    role_map = {
        "p1": Role.MAFIA,
        "p2": Role.MAFIA,
        "p3": Role.DOCTOR,
        "p4": Role.DETECTIVE,
        "p5": Role.TOWN,
        "p6": Role.TOWN,
        "p7": Role.TOWN,
    }
    for pid, role in role_map.items():
        engine.snapshot.players[pid].role = role
    engine.advance_phase()
    assert engine.phase == Phase.DAY_VOTING
    return engine


def test_day_majority_eliminates_and_reveals_role() -> None:
    engine = _make_voting_game()
    engine.submit_day_vote("p3", "p1")
    engine.submit_day_vote("p4", "p1")
    engine.submit_day_vote("p5", "p2")

    engine.advance_phase()

    assert engine.phase == Phase.SLEEP
    assert engine.snapshot.players["p1"].alive is False
    assert engine.snapshot.announcement == "Voting result: P1 eliminated. Role: MAFIA"
    revealed = {p["player_id"]: p["revealed_role"] for p in engine.public_state()["players"]}
    assert revealed["p1"] == "mafia"
    assert revealed["p2"] is None


def test_day_tie_eliminates_nobody() -> None:
    engine = _make_voting_game()
    engine.submit_day_vote("p3", "p1")
    engine.submit_day_vote("p4", "p2")

    engine.advance_phase()

    assert all(p.alive for p in engine.snapshot.players.values())
    assert engine.snapshot.announcement == "Voting ended: No one was eliminated (tie or no votes)."


def test_latest_vote_replaces_earlier_one() -> None:
    engine = _make_voting_game()
    engine.submit_day_vote("p5", "p1")
    engine.submit_day_vote("p5", "p2")
    engine.submit_day_vote("p6", "p2")

    assert engine.snapshot.day_votes == {"p5": "p2", "p6": "p2"}
    engine.advance_phase()
    assert engine.snapshot.players["p2"].alive is False
    assert engine.snapshot.players["p1"].alive is True


def test_self_vote_is_allowed() -> None:
    engine = _make_voting_game()
    engine.submit_day_vote("p5", "p5")

    engine.advance_phase()

    assert engine.snapshot.players["p5"].alive is False


def test_vote_validation_leaves_tally_untouched() -> None:
    engine = _make_voting_game()
    engine.snapshot.players["p7"].alive = False

    with pytest.raises(GameError) as dead_voter:
        engine.submit_day_vote("p7", "p1")
    with pytest.raises(GameError) as dead_target:
        engine.submit_day_vote("p5", "p7")
    with pytest.raises(GameError) as host_vote:
        engine.submit_day_vote(HOST_IDENTITY, "p1")
    with pytest.raises(GameError) as empty_target:
        engine.submit_day_vote("p5", "")

    assert dead_voter.value.code == ErrorCode.NOT_ALIVE
    assert dead_target.value.code == ErrorCode.TARGET_INVALID
    assert host_vote.value.code == ErrorCode.NOT_A_PLAYER
    assert empty_target.value.code == ErrorCode.EMPTY_INPUT
    assert engine.snapshot.day_votes == {}


def test_day_elimination_of_last_mafia_ends_game() -> None:
    engine = _make_voting_game()
    engine.snapshot.players["p2"].alive = False
    engine.submit_day_vote("p3", "p1")

    engine.advance_phase()

    assert engine.phase == Phase.ENDED
    assert engine.snapshot.winner is not None
    assert engine.snapshot.winner.value == "town"


def test_three_town_votes_against_mafia_beat_a_single_stray_vote() -> None:
    engine = _make_voting_game()
    engine.submit_day_vote("p5", "p2")
    engine.submit_day_vote("p6", "p2")
    engine.submit_day_vote("p7", "p2")
    engine.submit_day_vote("p3", "p4")

    engine.advance_phase()

    assert engine.snapshot.players["p2"].alive is False
    assert engine.snapshot.players["p4"].alive is True
    assert engine.snapshot.announcement.endswith("Role: MAFIA")
