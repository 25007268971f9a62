from __future__ import annotations

from typing import Dict, Optional

from mafia.core.models import Phase, PlayerState, Role, RoomSnapshot
from mafia.engine.states import DETECTIVE_WINDOW
from mafia.errors import ErrorCode, GameError
from mafia.roles.base import SkillStrategy


def assert_alive_actor(snapshot: RoomSnapshot, actor_id: str) -> PlayerState:
    actor = snapshot.players.get(actor_id)
    if actor is None:
        raise GameError(ErrorCode.NOT_A_PLAYER, "Only players can do this.")
    if not actor.alive:
        raise GameError(ErrorCode.NOT_ALIVE, "You are not alive.")
    return actor


def assert_target_alive(snapshot: RoomSnapshot, target_id: Optional[str]) -> PlayerState:
    if not target_id:
        raise GameError(ErrorCode.EMPTY_INPUT, "Target is required.")
    target = snapshot.players.get(target_id)
    if target is None or not target.alive:
        raise GameError(ErrorCode.TARGET_INVALID, "Target not alive.")
    return target


class MafiaSkill(SkillStrategy):
    role = Role.MAFIA

    def validate(self, snapshot: RoomSnapshot, actor_id: str, target_id: Optional[str]) -> None:
        if snapshot.phase != Phase.MAFIA:
            raise GameError(ErrorCode.WRONG_PHASE, "Not Mafia phase.")
        actor = assert_alive_actor(snapshot, actor_id)
        if actor.role != Role.MAFIA:
            raise GameError(ErrorCode.ROLE_REQUIRED, "You are not Mafia.")
        assert_target_alive(snapshot, target_id)

    def apply(self, snapshot: RoomSnapshot, actor_id: str, target_id: Optional[str]) -> Optional[dict]:
        self.validate(snapshot, actor_id, target_id)
        snapshot.night_actions.mafia_votes[actor_id] = target_id or ""
        return None


class DoctorSkill(SkillStrategy):
    role = Role.DOCTOR

    def validate(self, snapshot: RoomSnapshot, actor_id: str, target_id: Optional[str]) -> None:
        if snapshot.phase != Phase.DOCTOR:
            raise GameError(ErrorCode.WRONG_PHASE, "Not Doctor phase.")
        actor = assert_alive_actor(snapshot, actor_id)
        if actor.role != Role.DOCTOR:
            raise GameError(ErrorCode.ROLE_REQUIRED, "You are not Doctor.")
        assert_target_alive(snapshot, target_id)

    def apply(self, snapshot: RoomSnapshot, actor_id: str, target_id: Optional[str]) -> Optional[dict]:
        self.validate(snapshot, actor_id, target_id)
        snapshot.night_actions.doctor_target = target_id
        return None


class DetectiveSkill(SkillStrategy):
    role = Role.DETECTIVE

    def validate(self, snapshot: RoomSnapshot, actor_id: str, target_id: Optional[str]) -> None:
        if snapshot.phase not in DETECTIVE_WINDOW:
            raise GameError(ErrorCode.WRONG_PHASE, "Investigations are only allowed during the day.")
        actor = assert_alive_actor(snapshot, actor_id)
        if actor.role != Role.DETECTIVE:
            raise GameError(ErrorCode.ROLE_REQUIRED, "You are not Detective.")
        if snapshot.detective.used:
            raise GameError(ErrorCode.ALLOWANCE_USED, "Investigation already used this day.")
        assert_target_alive(snapshot, target_id)

    def apply(self, snapshot: RoomSnapshot, actor_id: str, target_id: Optional[str]) -> Optional[dict]:
        self.validate(snapshot, actor_id, target_id)
        target = snapshot.players[target_id or ""]
        snapshot.detective.used = True
        snapshot.detective.target_id = target.player_id
        is_mafia = target.role == Role.MAFIA
        return {
            "target_id": target.player_id,
            "target_name": target.name,
            "is_mafia": is_mafia,
            "result": "MAFIA" if is_mafia else "NOT MAFIA",
        }


SKILL_REGISTRY: Dict[Role, SkillStrategy] = {
    Role.MAFIA: MafiaSkill(),
    Role.DOCTOR: DoctorSkill(),
    Role.DETECTIVE: DetectiveSkill(),
}
