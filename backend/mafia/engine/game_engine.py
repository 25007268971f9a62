from __future__ import annotations

import logging
import random
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from mafia.core.game_config import GameConfig, default_game_config
from mafia.core.models import (
    HOST_IDENTITY,
    DisconnectPolicy,
    Faction,
    HostState,
    NightOutcome,
    NightResult,
    Phase,
    PlayerState,
    Role,
    RoomSnapshot,
    Winner,
)
from mafia.engine.scheduler import AsyncioPhaseScheduler, PhaseScheduler, ScheduledWakeup
from mafia.engine.states import STATE_REGISTRY
from mafia.engine.vote_resolution import resolve_majority
from mafia.errors import ErrorCode, GameError
from mafia.roles.skills import SKILL_REGISTRY, assert_alive_actor, assert_target_alive

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OutboundEvent:
    room_code: str
    event: str
    payload: dict
    # identity ids (player_id or "host"); None addresses the whole room
    recipients: Optional[Tuple[str, ...]] = None


EventSink = Callable[[OutboundEvent], None]


def evaluate_winner(players: Iterable[PlayerState]) -> Optional[Winner]:
    alive_mafia = 0
    alive_others = 0
    for player in players:
        if not player.alive:
            continue
        if player.faction == Faction.MAFIA:
            alive_mafia += 1
        else:
            alive_others += 1

    if alive_mafia == 0:
        return Winner.TOWN
    if alive_mafia >= alive_others:
        return Winner.MAFIA
    return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def _role_label(role: Optional[Role]) -> str:
    return role.value.upper() if role else "UNKNOWN"


class GameEngine:
    def __init__(
        self,
        room_code: str,
        host_name: str,
        host_token: str,
        config: Optional[GameConfig] = None,
        scheduler: Optional[PhaseScheduler] = None,
        sink: Optional[EventSink] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.snapshot = RoomSnapshot(room_code=room_code, host=HostState(name=host_name, token=host_token))
        self.config = config or default_game_config()
        self.scheduler = scheduler or AsyncioPhaseScheduler()
        self.sink = sink
        self.rng = rng or random.Random()
        self._wakeup: Optional[ScheduledWakeup] = None
        self._phase_seq = 0
        self.hooks: Dict[str, List[Callable[[RoomSnapshot], None]]] = {
            "on_phase_start": [],
            "on_player_death": [],
            "on_game_over": [],
        }

    def register_hook(self, hook_name: str, callback: Callable[[RoomSnapshot], None]) -> None:
        if hook_name not in self.hooks:
            self.hooks[hook_name] = []
        self.hooks[hook_name].append(callback)

    def _trigger_hook(self, hook_name: str) -> None:
        for callback in self.hooks.get(hook_name, []):
            callback(self.snapshot)

    @property
    def phase(self) -> Phase:
        return self.snapshot.phase

    @property
    def has_pending_wakeup(self) -> bool:
        return self._wakeup is not None and not self._wakeup.cancelled

    # -- lobby -----------------------------------------------------------

    def add_player(self, player_id: str, name: str, token: str) -> PlayerState:
        if self.snapshot.phase != Phase.LOBBY:
            raise GameError(ErrorCode.GAME_ALREADY_STARTED, "Game already started.")
        if player_id in self.snapshot.players:
            raise GameError(ErrorCode.INVALID_PAYLOAD, "Player already in room.")
        player = PlayerState(player_id=player_id, name=name, token=token)
        self.snapshot.players[player_id] = player
        self._audit("join", player_id, {"name": name})
        return player

    def start_game(self, operator_id: str) -> None:
        if operator_id != HOST_IDENTITY:
            raise GameError(ErrorCode.NOT_HOST, "Only host can start.")
        if self.snapshot.phase != Phase.LOBBY:
            raise GameError(ErrorCode.GAME_ALREADY_STARTED, "Game already started.")
        min_players = self.config.rules.min_players
        if len(self.snapshot.players) < min_players:
            raise GameError(ErrorCode.INSUFFICIENT_PLAYERS, f"Minimum {min_players} players required.")

        self._assign_roles()
        for player_id in self.snapshot.players:
            self.send_private_role(player_id)

        self.snapshot.announcement = "Game started. Day discussion begins."
        logger.info(
            "[Phase] room=%s game started players=%s pool=%s",
            self.snapshot.room_code,
            len(self.snapshot.players),
            self.config.role_pool(len(self.snapshot.players)),
        )
        self._goto_phase(Phase.DAY_DISCUSSION)

    def _assign_roles(self) -> None:
        players = list(self.snapshot.players.values())
        pool = self.config.role_pool(len(players))
        roles: List[Role] = [Role.DOCTOR, Role.DETECTIVE]
        roles.extend([Role.MAFIA] * pool["mafia"])
        roles.extend([Role.TOWN] * pool["town"])
        self.rng.shuffle(roles)
        for player, role in zip(players, roles):
            player.role = role
            player.alive = True

    # -- player actions --------------------------------------------------

    def submit_day_vote(self, voter_id: str, target_id: Optional[str]) -> None:
        if self.snapshot.phase != Phase.DAY_VOTING:
            raise GameError(ErrorCode.WRONG_PHASE, "Not voting phase.")
        assert_alive_actor(self.snapshot, voter_id)
        target = assert_target_alive(self.snapshot, target_id)

        self.snapshot.day_votes[voter_id] = target.player_id
        self._audit("day_vote", voter_id, {"target": target.player_id})
        self.broadcast_state()

    def protect_target(self, actor_id: str, target_id: Optional[str]) -> None:
        SKILL_REGISTRY[Role.DOCTOR].apply(self.snapshot, actor_id, target_id)
        self._audit("protect", actor_id, {"target": target_id})

    def submit_mafia_vote(self, actor_id: str, target_id: Optional[str]) -> None:
        SKILL_REGISTRY[Role.MAFIA].apply(self.snapshot, actor_id, target_id)
        self._audit("mafia_vote", actor_id, {"target": target_id})

    def investigate(self, actor_id: str, target_id: Optional[str]) -> dict:
        result = SKILL_REGISTRY[Role.DETECTIVE].apply(self.snapshot, actor_id, target_id) or {}
        self._audit("investigate", actor_id, {"target": target_id})
        self._emit("detective_result", result, recipients=(actor_id,))
        return result

    # -- connection status -----------------------------------------------

    def mark_online_status(self, identity_id: str, online: bool) -> None:
        if identity_id == HOST_IDENTITY:
            self.snapshot.host.present = online
            return
        player = self._must_get_player(identity_id)
        player.online = online

    def handle_departure(self, identity_id: str, policy: DisconnectPolicy) -> bool:
        """Apply the disconnect policy to a dropped identity. Returns True if the room must close."""
        if identity_id == HOST_IDENTITY:
            self.snapshot.host.present = False
            self._audit("departure", identity_id, {"policy": policy.value})
            if policy == DisconnectPolicy.ELIMINATE:
                return True
            self.broadcast_state()
            return False

        player = self.snapshot.players.get(identity_id)
        if player is None:
            return False
        player.online = False
        self._audit("departure", identity_id, {"policy": policy.value})

        if policy == DisconnectPolicy.RECONNECT:
            self.broadcast_state()
            return False

        if self.snapshot.phase == Phase.LOBBY:
            del self.snapshot.players[identity_id]
            self.snapshot.announcement = f"{player.name} left the room."
            self.broadcast_state()
            return False

        if self.snapshot.phase == Phase.ENDED or not player.alive:
            self.broadcast_state()
            return False

        self._kill_player(identity_id, "disconnect")
        self.snapshot.announcement = f"{player.name} disconnected and is removed. Role: {_role_label(player.role)}"
        if self._check_and_finalize_winner() is None:
            self.broadcast_state()
        return False

    # -- phase machine ---------------------------------------------------

    def advance_phase(self) -> None:
        phase = self.snapshot.phase
        if phase in (Phase.LOBBY, Phase.ENDED):
            return

        if phase == Phase.DAY_VOTING:
            if self._resolve_day_vote() is not None and self._check_and_finalize_winner():
                return
        elif phase == Phase.EXECUTION:
            outcome = self._resolve_night()
            if outcome.result == NightResult.KILLED and self._check_and_finalize_winner():
                return
        elif phase == Phase.ANNOUNCEMENT:
            self.snapshot.round_no += 1

        next_phase = STATE_REGISTRY[phase].next_phase()
        if next_phase is None:
            return
        self._goto_phase(next_phase)

    def _on_deadline(self, phase_seq: int) -> None:
        if phase_seq != self._phase_seq:
            return
        self._wakeup = None
        self.advance_phase()

    def _goto_phase(self, phase: Phase) -> None:
        self._phase_seq += 1
        self.snapshot.phase = phase

        seconds = self.config.timeout.seconds_for(phase)
        self._cancel_wakeup()
        if seconds is None:
            self.snapshot.phase_ends_at = None
        else:
            self.snapshot.phase_ends_at = self.scheduler.now() + timedelta(seconds=seconds)
            phase_seq = self._phase_seq
            self._wakeup = self.scheduler.schedule(seconds, lambda: self._on_deadline(phase_seq))

        if phase == Phase.DAY_DISCUSSION:
            self.snapshot.detective.used = False
            self.snapshot.detective.target_id = None
        if phase == Phase.DAY_VOTING:
            self.snapshot.day_votes.clear()
        if phase == Phase.DOCTOR:
            self.snapshot.night_actions.doctor_target = None
        if phase == Phase.MAFIA:
            self.snapshot.night_actions.mafia_votes.clear()

        logger.info(
            "[Phase] room=%s phase=%s round=%s ends_at=%s",
            self.snapshot.room_code,
            phase.value,
            self.snapshot.round_no,
            format_timestamp(self.snapshot.phase_ends_at),
        )
        self._audit("phase_change", "system", {"phase": phase.value, "round": self.snapshot.round_no})
        self._trigger_hook("on_phase_start")
        self.broadcast_state()

    def _cancel_wakeup(self) -> None:
        if self._wakeup is not None:
            self._wakeup.cancel()
            self._wakeup = None

    def shutdown(self) -> None:
        self._phase_seq += 1
        self._cancel_wakeup()

    # -- resolution ------------------------------------------------------

    def _is_alive_player(self, player_id: str) -> bool:
        player = self.snapshot.players.get(player_id)
        return player is not None and player.alive

    def _is_alive_mafia(self, player_id: str) -> bool:
        player = self.snapshot.players.get(player_id)
        return player is not None and player.alive and player.role == Role.MAFIA

    def _resolve_day_vote(self) -> Optional[str]:
        target_id = resolve_majority(self.snapshot.day_votes, self._is_alive_player, self._is_alive_player)
        if target_id is None:
            self.snapshot.announcement = "Voting ended: No one was eliminated (tie or no votes)."
            self._audit("vote_result", "system", {"result": "no_elimination"})
            return None

        target = self.snapshot.players[target_id]
        self._kill_player(target_id, "vote")
        self.snapshot.announcement = f"Voting result: {target.name} eliminated. Role: {_role_label(target.role)}"
        self._audit("vote_result", "system", {"result": "eliminated", "target": target_id})
        return target_id

    def _active_protection(self) -> Optional[str]:
        doctor_alive = any(
            p.alive and p.role == Role.DOCTOR for p in self.snapshot.players.values()
        )
        if not doctor_alive:
            return None
        return self.snapshot.night_actions.doctor_target

    def _resolve_night(self) -> NightOutcome:
        kill_target = resolve_majority(
            self.snapshot.night_actions.mafia_votes,
            self._is_alive_mafia,
            self._is_alive_player,
        )

        if kill_target is None:
            outcome = NightOutcome(result=NightResult.NO_KILL)
            self.snapshot.announcement = "Night result: Mafia did not finalize a kill. No one died."
        elif kill_target == self._active_protection():
            target = self.snapshot.players[kill_target]
            outcome = NightOutcome(result=NightResult.SAVED, target_id=kill_target)
            self.snapshot.announcement = f"Night result: {target.name} was attacked but saved by Doctor."
        else:
            target = self.snapshot.players[kill_target]
            self._kill_player(kill_target, "mafia")
            outcome = NightOutcome(result=NightResult.KILLED, target_id=kill_target, revealed_role=target.role)
            self.snapshot.announcement = f"Night result: {target.name} was killed. Role: {_role_label(target.role)}"

        self.snapshot.last_night_outcome = outcome
        self._audit("night_result", "system", {"result": outcome.result.value, "target": outcome.target_id})
        return outcome

    def _kill_player(self, player_id: str, cause: str) -> None:
        player = self._must_get_player(player_id)
        if not player.alive:
            return
        player.alive = False
        logger.info("[Phase] room=%s death player=%s cause=%s", self.snapshot.room_code, player_id, cause)
        self._audit("death", "system", {"player_id": player_id, "cause": cause})
        self._trigger_hook("on_player_death")

    def _check_and_finalize_winner(self) -> Optional[Winner]:
        if self.snapshot.phase in (Phase.LOBBY, Phase.ENDED):
            return None
        winner = evaluate_winner(self.snapshot.players.values())
        if winner is None:
            return None
        self._finish_game(winner)
        return winner

    def _finish_game(self, winner: Winner) -> None:
        self.shutdown()
        self.snapshot.phase = Phase.ENDED
        self.snapshot.phase_ends_at = None
        self.snapshot.winner = winner
        self.snapshot.ended_at = self.scheduler.now()
        self.snapshot.announcement = f"GAME OVER. Winner: {winner.value.upper()}"

        logger.info(
            "[Phase] room=%s game over winner=%s rounds=%s",
            self.snapshot.room_code,
            winner.value,
            self.snapshot.round_no,
        )
        self._audit("game_over", "system", {"winner": winner.value})
        self._emit("game_over", {"winner": winner.value, "final_roles": self.final_roles()})
        self._trigger_hook("on_game_over")
        self.broadcast_state()

    # -- outbound --------------------------------------------------------

    def _emit(self, event: str, payload: dict, recipients: Optional[Tuple[str, ...]] = None) -> None:
        if self.sink is None:
            return
        self.sink(OutboundEvent(self.snapshot.room_code, event, payload, recipients))

    def broadcast_state(self) -> None:
        self._emit("room_state", self.public_state())

    def send_private_role(self, player_id: str) -> None:
        player = self._must_get_player(player_id)
        if player.role is None:
            return
        self._emit("your_role", {"role": player.role.value}, recipients=(player_id,))
        if player.role == Role.MAFIA:
            mafia = [p for p in self.snapshot.players.values() if p.role == Role.MAFIA]
            self._emit(
                "mafia_team",
                {"mafia_names": [p.name for p in mafia], "mafia_ids": [p.player_id for p in mafia]},
                recipients=(player_id,),
            )

    def final_roles(self) -> List[dict]:
        return [
            {
                "player_id": p.player_id,
                "name": p.name,
                "role": p.role.value if p.role else None,
                "alive": p.alive,
            }
            for p in self.snapshot.players.values()
        ]

    def public_state(self) -> dict:
        return {
            "room_code": self.snapshot.room_code,
            "host_name": self.snapshot.host.name,
            "host_present": self.snapshot.host.present,
            "phase": self.snapshot.phase.value,
            "phase_ends_at": format_timestamp(self.snapshot.phase_ends_at),
            "round": self.snapshot.round_no,
            "announcement": self.snapshot.announcement,
            "players": [
                {
                    "player_id": p.player_id,
                    "name": p.name,
                    "alive": p.alive,
                    "online": p.online,
                    "revealed_role": p.role.value if (p.role and not p.alive) else None,
                }
                for p in self.snapshot.players.values()
            ],
        }

    # -- helpers ---------------------------------------------------------

    def find_identity_by_token(self, token: str) -> Optional[str]:
        if not token:
            return None
        # str compare_digest rejects non-ASCII input
        candidate = token.encode("utf-8")
        if secrets.compare_digest(self.snapshot.host.token.encode("utf-8"), candidate):
            return HOST_IDENTITY
        for player in self.snapshot.players.values():
            if secrets.compare_digest(player.token.encode("utf-8"), candidate):
                return player.player_id
        return None

    def _audit(self, event_type: str, actor_id: str, payload: dict) -> None:
        self.snapshot.action_audit_log.append(
            {
                "ts": format_timestamp(self.scheduler.now()),
                "event_type": event_type,
                "actor_id": actor_id,
                "payload": payload,
            }
        )

    def _must_get_player(self, player_id: str) -> PlayerState:
        player = self.snapshot.players.get(player_id)
        if not player:
            raise GameError(ErrorCode.TARGET_INVALID, "Player not found.")
        return player
