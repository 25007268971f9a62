from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mafia.config.config_loader import load_game_rules
from mafia.core.models import DisconnectPolicy, Phase


@dataclass(slots=True)
class TimeoutConfig:
    day_discussion_seconds: int = 12 * 60
    day_voting_seconds: int = 3 * 60
    sleep_seconds: int = 60
    doctor_seconds: int = 2 * 60
    mafia_seconds: int = 3 * 60
    execution_seconds: int = 3 * 60
    announcement_seconds: int = 15

    def seconds_for(self, phase: Phase) -> Optional[int]:
        if phase in (Phase.LOBBY, Phase.ENDED):
            return None
        return int(getattr(self, f"{phase.value}_seconds"))


@dataclass(slots=True)
class MafiaBand:
    min_players: int
    mafia: int


@dataclass(slots=True)
class RuleConfig:
    min_players: int = 6
    mafia_bands: List[MafiaBand] = field(
        default_factory=lambda: [
            MafiaBand(min_players=6, mafia=2),
            MafiaBand(min_players=9, mafia=3),
            MafiaBand(min_players=13, mafia=4),
        ]
    )
    room_code_length: int = 5
    room_code_alphabet: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    disconnect_policy: DisconnectPolicy = DisconnectPolicy.RECONNECT
    max_chat_length: int = 500
    abandoned_room_ttl_seconds: int = 30 * 60
    ended_room_ttl_seconds: int = 10 * 60
    sweep_interval_seconds: int = 60

    def mafia_count_for(self, player_count: int) -> int:
        count = self.mafia_bands[0].mafia
        for band in self.mafia_bands:
            if player_count >= band.min_players:
                count = band.mafia
        return count


@dataclass(slots=True)
class GameConfig:
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    rules: RuleConfig = field(default_factory=RuleConfig)
    warnings: List[str] = field(default_factory=list)

    def role_pool(self, player_count: int) -> Dict[str, int]:
        mafia = self.rules.mafia_count_for(player_count)
        return {
            "doctor": 1,
            "detective": 1,
            "mafia": mafia,
            "town": max(player_count - 2 - mafia, 0),
        }


def default_game_config(
    rules_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    disconnect_policy: Optional[str] = None,
) -> GameConfig:
    loaded = load_game_rules(path=rules_path, overrides=overrides)
    durations = loaded["phase_durations"]
    policy = disconnect_policy or loaded["disconnect_policy"]
    return GameConfig(
        timeout=TimeoutConfig(**{f"{phase}_seconds": seconds for phase, seconds in durations.items()}),
        rules=RuleConfig(
            min_players=loaded["min_players"],
            mafia_bands=[MafiaBand(**band) for band in loaded["mafia_bands"]],
            room_code_length=loaded["room_code_length"],
            room_code_alphabet=loaded["room_code_alphabet"],
            disconnect_policy=DisconnectPolicy(policy),
            max_chat_length=loaded["max_chat_length"],
            abandoned_room_ttl_seconds=loaded["abandoned_room_ttl_seconds"],
            ended_room_ttl_seconds=loaded["ended_room_ttl_seconds"],
            sweep_interval_seconds=loaded["sweep_interval_seconds"],
        ),
        warnings=loaded.get("warnings", []),
    )
