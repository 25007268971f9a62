from __future__ import annotations

from mafia.core.models import HOST_IDENTITY, NightResult, Phase, Role, Winner
from mafia.engine.game_engine import GameEngine, OutboundEvent
from mafia.engine.scheduler import VirtualClockScheduler


def _make_started_game() -> tuple[GameEngine, list[OutboundEvent]]:
    events: list[OutboundEvent] = []
    engine = GameEngine(
        room_code="NIGHT",
        host_name="Host",
        host_token="host-token",
        scheduler=VirtualClockScheduler(),
        sink=events.append,
    )
    for i in range(1, 8):
        engine.add_player(f"p{i}", f"P{i}", f"token-{i}")
    engine.start_game(HOST_IDENTITY)

    # force deterministic roles for test readability
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
    return engine, events


def _to_doctor_phase(engine: GameEngine) -> None:
    # DAY_DISCUSSION -> DAY_VOTING -> SLEEP -> DOCTOR, nobody voted
    for _ in range(3):
        engine.advance_phase()
    assert engine.phase == Phase.DOCTOR


def _run_night(engine: GameEngine, protect: str | None, kills: dict[str, str]) -> None:
    _to_doctor_phase(engine)
    if protect:
        engine.protect_target("p3", protect)
    engine.advance_phase()
    assert engine.phase == Phase.MAFIA
    for mafia_id, target in kills.items():
        engine.submit_mafia_vote(mafia_id, target)
    engine.advance_phase()
    assert engine.phase == Phase.EXECUTION
    engine.advance_phase()


def test_unprotected_target_dies_with_role_reveal() -> None:
    engine, _ = _make_started_game()

    _run_night(engine, protect="p6", kills={"p1": "p5", "p2": "p5"})

    assert engine.phase == Phase.ANNOUNCEMENT
    assert engine.snapshot.players["p5"].alive is False
    outcome = engine.snapshot.last_night_outcome
    assert outcome.result == NightResult.KILLED
    assert outcome.revealed_role == Role.TOWN
    assert engine.snapshot.announcement == "Night result: P5 was killed. Role: TOWN"


def test_doctor_save_beats_mafia_same_target() -> None:
    engine, _ = _make_started_game()

    _run_night(engine, protect="p5", kills={"p1": "p5", "p2": "p5"})

    assert engine.snapshot.players["p5"].alive is True
    assert engine.snapshot.last_night_outcome.result == NightResult.SAVED
    assert engine.snapshot.announcement == "Night result: P5 was attacked but saved by Doctor."


def test_doctor_may_protect_self() -> None:
    engine, _ = _make_started_game()

    _run_night(engine, protect="p3", kills={"p1": "p3", "p2": "p3"})

    assert engine.snapshot.players["p3"].alive is True
    assert engine.snapshot.last_night_outcome.result == NightResult.SAVED


def test_latest_protection_wins() -> None:
    engine, _ = _make_started_game()
    _to_doctor_phase(engine)

    engine.protect_target("p3", "p5")
    engine.protect_target("p3", "p6")

    assert engine.snapshot.night_actions.doctor_target == "p6"


def test_split_mafia_vote_means_no_kill() -> None:
    engine, _ = _make_started_game()

    _run_night(engine, protect=None, kills={"p1": "p5", "p2": "p6"})

    assert engine.snapshot.last_night_outcome.result == NightResult.NO_KILL
    assert engine.snapshot.announcement == "Night result: Mafia did not finalize a kill. No one died."
    assert all(p.alive for p in engine.snapshot.players.values())


def test_no_mafia_votes_means_no_kill() -> None:
    engine, _ = _make_started_game()

    _run_night(engine, protect="p5", kills={})

    assert engine.snapshot.last_night_outcome.result == NightResult.NO_KILL


def test_protection_from_dead_doctor_does_not_count() -> None:
    engine, _ = _make_started_game()
    _to_doctor_phase(engine)
    engine.protect_target("p3", "p5")
    engine.advance_phase()
    engine.submit_mafia_vote("p1", "p5")
    engine.submit_mafia_vote("p2", "p5")
    engine.snapshot.players["p3"].alive = False
    engine.advance_phase()
    engine.advance_phase()

    assert engine.snapshot.players["p5"].alive is False
    assert engine.snapshot.last_night_outcome.result == NightResult.KILLED


def test_mafia_vote_from_dead_member_is_ignored() -> None:
    engine, _ = _make_started_game()
    _to_doctor_phase(engine)
    engine.advance_phase()
    engine.submit_mafia_vote("p1", "p5")
    engine.submit_mafia_vote("p2", "p6")
    engine.snapshot.players["p2"].alive = False
    engine.advance_phase()
    engine.advance_phase()

    assert engine.snapshot.players["p5"].alive is False
    assert engine.snapshot.players["p6"].alive is True


def test_night_kill_reaching_parity_ends_game() -> None:
    engine, events = _make_started_game()
    engine.snapshot.players["p5"].alive = False
    engine.snapshot.players["p6"].alive = False

    _run_night(engine, protect="p4", kills={"p1": "p7", "p2": "p7"})

    assert engine.phase == Phase.ENDED
    assert engine.snapshot.winner == Winner.MAFIA
    assert engine.snapshot.phase_ends_at is None
    assert engine.snapshot.announcement == "GAME OVER. Winner: MAFIA"
    assert not engine.has_pending_wakeup

    game_over = [e for e in events if e.event == "game_over"]
    assert len(game_over) == 1
    assert game_over[0].payload["winner"] == "mafia"
    roles = {row["player_id"]: row["role"] for row in game_over[0].payload["final_roles"]}
    assert roles["p1"] == "mafia"
    assert roles["p3"] == "doctor"
    assert events[-1].event == "room_state"
    assert events[-1].payload["phase"] == "ended"
