from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

HOST_IDENTITY = "host"


class Role(str, Enum):
    TOWN = "town"
    MAFIA = "mafia"
    DOCTOR = "doctor"
    DETECTIVE = "detective"


class Faction(str, Enum):
    MAFIA = "mafia"
    TOWN = "town"


class Phase(str, Enum):
    LOBBY = "lobby"
    DAY_DISCUSSION = "day_discussion"
    DAY_VOTING = "day_voting"
    SLEEP = "sleep"
    DOCTOR = "doctor"
    MAFIA = "mafia"
    EXECUTION = "execution"
    ANNOUNCEMENT = "announcement"
    ENDED = "ended"


class Winner(str, Enum):
    TOWN = "town"
    MAFIA = "mafia"


class NightResult(str, Enum):
    NO_KILL = "no_kill"
    SAVED = "saved"
    KILLED = "killed"


class DisconnectPolicy(str, Enum):
    RECONNECT = "reconnect"
    ELIMINATE = "eliminate"


@dataclass(slots=True)
class PlayerState:
    player_id: str
    name: str
    token: str
    role: Optional[Role] = None
    alive: bool = True
    online: bool = True

    @property
    def faction(self) -> Optional[Faction]:
        if self.role is None:
            return None
        return ROLE_FACTION_MAP[self.role]


@dataclass(slots=True)
class HostState:
    name: str
    token: str
    present: bool = True


@dataclass(slots=True)
class NightActions:
    doctor_target: Optional[str] = None
    mafia_votes: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class DetectiveWindow:
    used: bool = False
    target_id: Optional[str] = None


@dataclass(slots=True)
class NightOutcome:
    result: NightResult
    target_id: Optional[str] = None
    revealed_role: Optional[Role] = None


@dataclass(slots=True)
class RoomSnapshot:
    room_code: str
    host: HostState
    phase: Phase = Phase.LOBBY
    phase_ends_at: Optional[datetime] = None
    round_no: int = 1
    announcement: str = "Room created. Waiting for players..."
    players: Dict[str, PlayerState] = field(default_factory=dict)
    day_votes: Dict[str, str] = field(default_factory=dict)
    night_actions: NightActions = field(default_factory=NightActions)
    detective: DetectiveWindow = field(default_factory=DetectiveWindow)
    last_night_outcome: Optional[NightOutcome] = None
    winner: Optional[Winner] = None
    ended_at: Optional[datetime] = None
    action_audit_log: List[Dict[str, Any]] = field(default_factory=list)


ROLE_FACTION_MAP: Dict[Role, Faction] = {
    Role.TOWN: Faction.TOWN,
    Role.MAFIA: Faction.MAFIA,
    Role.DOCTOR: Faction.TOWN,
    Role.DETECTIVE: Faction.TOWN,
}
