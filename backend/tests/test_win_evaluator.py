from __future__ import annotations

from mafia.core.models import PlayerState, Role, Winner
from mafia.engine.game_engine import evaluate_winner


def _table(*seats: tuple[Role, bool]) -> list[PlayerState]:
    return [
        PlayerState(player_id=f"p{i}", name=f"P{i}", token=f"t{i}", role=role, alive=alive)
        for i, (role, alive) in enumerate(seats, start=1)
    ]


def test_no_living_mafia_is_town_win() -> None:
    players = _table((Role.MAFIA, False), (Role.MAFIA, False), (Role.TOWN, True))
    assert evaluate_winner(players) == Winner.TOWN


def test_parity_is_mafia_win() -> None:
    players = _table(
        (Role.MAFIA, True),
        (Role.MAFIA, True),
        (Role.DOCTOR, True),
        (Role.DETECTIVE, True),
        (Role.TOWN, False),
    )
    assert evaluate_winner(players) == Winner.MAFIA


def test_mafia_majority_is_mafia_win() -> None:
    players = _table((Role.MAFIA, True), (Role.MAFIA, True), (Role.TOWN, True))
    assert evaluate_winner(players) == Winner.MAFIA


def test_game_continues_while_town_outnumbers_mafia() -> None:
    players = _table(
        (Role.MAFIA, True),
        (Role.MAFIA, True),
        (Role.DOCTOR, True),
        (Role.DETECTIVE, True),
        (Role.TOWN, True),
    )
    assert evaluate_winner(players) is None


def test_doctor_and_detective_count_as_town() -> None:
    players = _table((Role.MAFIA, True), (Role.DOCTOR, True), (Role.DETECTIVE, True))
    assert evaluate_winner(players) is None
