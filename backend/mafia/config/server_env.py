from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

_DB_PATH_KEY = "MAFIA_DB_PATH"
_POLICY_KEY = "MAFIA_DISCONNECT_POLICY"
_RELOAD_KEY = "MAFIA_BACKEND_RELOAD"
_HOST_KEY = "MAFIA_HOST"
_PORT_KEY = "MAFIA_PORT"
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class ServerSettings:
    db_path: Optional[str] = "./data/mafia.db"
    disconnect_policy: Optional[str] = None
    reload: bool = False
    host: str = "0.0.0.0"
    port: int = 8000


def _parse_env_file(env_path: Path = _ENV_PATH) -> Dict[str, str]:
    if not env_path.exists():
        return {}
    result: Dict[str, str] = {}
    for line in env_path.read_text(encoding="utf-8").splitlines():
        row = line.strip()
        if not row or row.startswith("#") or "=" not in row:
            continue
        key, value = row.split("=", 1)
        result[key.strip()] = value.strip()
    return result


def load_server_settings(env_path: Path = _ENV_PATH) -> ServerSettings:
    file_env = _parse_env_file(env_path)

    def _get(key: str) -> Optional[str]:
        return os.getenv(key) or file_env.get(key)

    defaults = ServerSettings()
    db_path = _get(_DB_PATH_KEY)
    # an explicit "none" turns the game archive off
    if db_path is not None and db_path.strip().lower() in {"", "none", "off"}:
        db_path = None
    elif db_path is None:
        db_path = defaults.db_path

    policy = _get(_POLICY_KEY)
    port_raw = _get(_PORT_KEY)

    return ServerSettings(
        db_path=db_path,
        disconnect_policy=policy.strip().lower() if policy else None,
        reload=str(_get(_RELOAD_KEY) or "0").strip().lower() in _TRUTHY,
        host=_get(_HOST_KEY) or defaults.host,
        port=int(port_raw) if port_raw else defaults.port,
    )
