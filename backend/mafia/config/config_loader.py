from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from mafia.config.config_validator import ConfigValidator

RULES_PATH_ENV = "MAFIA_GAME_RULES"
_BUILTIN_RULES = Path(__file__).resolve().parent / "game_rules.yaml"


def load_game_rules(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    raw = _load_rules_file(path)
    if overrides:
        raw = {**raw, **overrides}

    durations = ConfigValidator.normalize_durations(raw.get("phase_durations", {}))
    bands = ConfigValidator.normalize_bands(raw.get("mafia_bands", []))
    code_node = raw.get("room_code", {}) or {}
    eviction = raw.get("eviction", {}) or {}

    rules = {
        "phase_durations": durations,
        "mafia_bands": bands,
        "min_players": int(raw.get("min_players", 6)),
        "room_code_length": int(code_node.get("length", 5)),
        "room_code_alphabet": str(code_node.get("alphabet", "")),
        "disconnect_policy": str(raw.get("disconnect_policy", "reconnect")).strip().lower(),
        "max_chat_length": int(raw.get("max_chat_length", 500)),
        "abandoned_room_ttl_seconds": int(eviction.get("abandoned_room_ttl_seconds", 1800)),
        "ended_room_ttl_seconds": int(eviction.get("ended_room_ttl_seconds", 600)),
        "sweep_interval_seconds": int(eviction.get("sweep_interval_seconds", 60)),
    }

    result = ConfigValidator.validate_rules(
        durations=rules["phase_durations"],
        mafia_bands=rules["mafia_bands"],
        min_players=rules["min_players"],
        alphabet=rules["room_code_alphabet"],
        code_length=rules["room_code_length"],
        disconnect_policy=rules["disconnect_policy"],
    )
    rules["warnings"] = result.warnings
    return rules


def _load_rules_file(path: Optional[str]) -> Dict[str, Any]:
    config_path = Path(path or os.getenv(RULES_PATH_ENV) or _BUILTIN_RULES)
    if not config_path.exists():
        raise ValueError(f"game rules file not found: {config_path}")
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"game rules file must be a mapping: {config_path}")
    return raw
