from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

TIMED_PHASES = (
    "day_discussion",
    "day_voting",
    "sleep",
    "doctor",
    "mafia",
    "execution",
    "announcement",
)
CONFUSABLE_CHARS = set("0O1I")
DISCONNECT_POLICIES = {"reconnect", "eliminate"}


@dataclass(slots=True)
class ValidationResult:
    ok: bool
    warnings: List[str]


class ConfigValidator:
    MIN_PLAYERS_FLOOR = 4

    @staticmethod
    def normalize_durations(durations: Dict[str, Any]) -> Dict[str, int]:
        return {phase: int(durations.get(phase, 0)) for phase in TIMED_PHASES}

    @staticmethod
    def normalize_bands(bands: List[Dict[str, Any]]) -> List[Dict[str, int]]:
        mapped = [
            {
                "min_players": int(band.get("min_players", 0)),
                "mafia": int(band.get("mafia", band.get("mafia_count", 0))),
            }
            for band in bands
        ]
        return mapped

    @classmethod
    def validate_rules(
        cls,
        durations: Dict[str, int],
        mafia_bands: List[Dict[str, int]],
        min_players: int,
        alphabet: str,
        code_length: int,
        disconnect_policy: str,
    ) -> ValidationResult:
        missing = [phase for phase in TIMED_PHASES if durations.get(phase, 0) <= 0]
        if missing:
            raise ValueError(f"phase durations must be positive: {missing}")

        if not mafia_bands:
            raise ValueError("mafia_bands must not be empty")
        thresholds = [band["min_players"] for band in mafia_bands]
        if thresholds != sorted(thresholds) or len(set(thresholds)) != len(thresholds):
            raise ValueError("mafia_bands must be strictly ordered by min_players")
        if any(band["mafia"] < 1 for band in mafia_bands):
            raise ValueError("every mafia band needs at least one mafia seat")

        if min_players < cls.MIN_PLAYERS_FLOOR:
            raise ValueError(f"min_players must be >= {cls.MIN_PLAYERS_FLOOR}")
        smallest_mafia = mafia_bands[0]["mafia"]
        # doctor + detective + mafia must leave at least one town seat
        if min_players - 2 - smallest_mafia < 1:
            raise ValueError("min_players leaves no town seat for the smallest mafia band")

        if code_length < 4:
            raise ValueError("room code length must be >= 4")
        if len(set(alphabet)) < 16:
            raise ValueError("room code alphabet is too small")
        confusable = sorted(CONFUSABLE_CHARS & set(alphabet))
        if confusable:
            raise ValueError(f"room code alphabet contains confusable characters: {confusable}")

        if disconnect_policy not in DISCONNECT_POLICIES:
            raise ValueError(f"unknown disconnect_policy: {disconnect_policy}")

        warnings: List[str] = []
        for band in mafia_bands:
            size = max(band["min_players"], min_players)
            if band["mafia"] * 2 >= size:
                warnings.append(
                    f"band starting at {band['min_players']} players gives mafia a near-immediate win"
                )
        if durations["day_voting"] < 30:
            warnings.append("day_voting shorter than 30s leaves little time to vote")

        return ValidationResult(ok=True, warnings=warnings)
