from __future__ import annotations

import logging
import random
import uuid
from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from mafia.core.game_config import GameConfig, default_game_config
from mafia.core.models import HOST_IDENTITY, Phase, Role
from mafia.engine.game_engine import OutboundEvent, format_timestamp
from mafia.engine.scheduler import AsyncioPhaseScheduler, PhaseScheduler
from mafia.errors import ErrorCode, GameError
from mafia.room.registry import Room, RoomRegistry
from mafia.room.session_manager import SessionManager
from mafia.storage.repository import SQLiteRepository

logger = logging.getLogger("uvicorn.error")


class OutboundTransport(ABC):
    """Delivery of one event to one connection. Must not block."""

    @abstractmethod
    def send(self, connection_id: str, event: str, payload: dict) -> None:
        pass


class RoomManager:
    def __init__(
        self,
        config: Optional[GameConfig] = None,
        transport: Optional[OutboundTransport] = None,
        scheduler: Optional[PhaseScheduler] = None,
        repository: Optional[SQLiteRepository] = None,
        sessions: Optional[SessionManager] = None,
        registry: Optional[RoomRegistry] = None,
        engine_rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or default_game_config()
        self.transport = transport
        self.scheduler = scheduler or AsyncioPhaseScheduler()
        self.repository = repository
        self.sessions = sessions or SessionManager()
        self.registry = registry or RoomRegistry(self.config)
        self.records: Dict[str, int] = {}
        self._engine_rng = engine_rng
        self._lock = RLock()

    # -- room lifecycle --------------------------------------------------

    def create_room(self, connection_id: Optional[str], host_name: Optional[str]) -> dict:
        with self._lock:
            if connection_id:
                self._assert_unbound(connection_id)
            host_token = self.sessions.mint_token()
            room = self.registry.create(
                host_name=(host_name or "").strip() or "Host",
                host_token=host_token,
                scheduler=self.scheduler,
                sink=self._deliver,
                engine_rng=self._engine_rng,
            )
            room_code = room.room_code
            room.engine.register_hook("on_game_over", lambda _snapshot: self._archive(room_code))

            if connection_id:
                self._bind(connection_id, room, HOST_IDENTITY)
            else:
                # created over REST: the host claims the room later with restore_session
                room.engine.mark_online_status(HOST_IDENTITY, False)
                room.abandoned_since = self.scheduler.now()

            room.engine.broadcast_state()
            return {"room_code": room_code, "host_token": host_token}

    def join_room(self, connection_id: Optional[str], room_code: Optional[str], player_name: Optional[str]) -> dict:
        with self._lock:
            if connection_id:
                self._assert_unbound(connection_id)
            room = self.registry.must_get(room_code)
            player_id = self._new_player_id()
            player_token = self.sessions.mint_token()
            room.engine.add_player(player_id, (player_name or "").strip() or "Player", player_token)

            if connection_id:
                self._bind(connection_id, room, player_id)
            else:
                room.engine.mark_online_status(player_id, False)

            room.engine.broadcast_state()
            return {"room_code": room.room_code, "player_id": player_id, "player_token": player_token}

    def start_game(self, connection_id: str, room_code: Optional[str]) -> dict:
        with self._lock:
            room, identity_id = self._actor(connection_id, room_code)
            room.engine.start_game(identity_id)
            return {}

    def close_room(self, connection_id: str, room_code: Optional[str]) -> dict:
        with self._lock:
            room, identity_id = self._actor(connection_id, room_code)
            if identity_id != HOST_IDENTITY:
                raise GameError(ErrorCode.NOT_HOST, "Only host can close the room.")
            self._close_room(room, "closed_by_host", "Host closed the room.")
            return {}

    # -- game actions ----------------------------------------------------

    def cast_day_vote(self, connection_id: str, room_code: Optional[str], target_id: Optional[str]) -> dict:
        with self._lock:
            room, identity_id = self._actor(connection_id, room_code)
            room.engine.submit_day_vote(identity_id, target_id)
            return {}

    def protect_target(self, connection_id: str, room_code: Optional[str], target_id: Optional[str]) -> dict:
        with self._lock:
            room, identity_id = self._actor(connection_id, room_code)
            room.engine.protect_target(identity_id, target_id)
            return {}

    def cast_mafia_vote(self, connection_id: str, room_code: Optional[str], target_id: Optional[str]) -> dict:
        with self._lock:
            room, identity_id = self._actor(connection_id, room_code)
            room.engine.submit_mafia_vote(identity_id, target_id)
            return {}

    def investigate(self, connection_id: str, room_code: Optional[str], target_id: Optional[str]) -> dict:
        with self._lock:
            room, identity_id = self._actor(connection_id, room_code)
            return room.engine.investigate(identity_id, target_id)

    # -- chat ------------------------------------------------------------

    def public_chat(self, connection_id: str, room_code: Optional[str], message: Optional[str]) -> dict:
        with self._lock:
            room, identity_id = self._actor(connection_id, room_code)
            sender = room.engine.snapshot.players.get(identity_id)
            if sender is None:
                raise GameError(ErrorCode.NOT_A_PLAYER, "Host cannot send public chat.")
            if not sender.alive:
                raise GameError(ErrorCode.NOT_ALIVE, "Dead players cannot send public chat.")
            text = self._chat_text(message)

            self._deliver(
                OutboundEvent(
                    room.room_code,
                    "public_chat_message",
                    {"sender_name": sender.name, "message": text, "time": format_timestamp(self.scheduler.now())},
                )
            )
            return {}

    def mafia_chat(self, connection_id: str, room_code: Optional[str], message: Optional[str]) -> dict:
        with self._lock:
            room, identity_id = self._actor(connection_id, room_code)
            sender = room.engine.snapshot.players.get(identity_id)
            if sender is None:
                raise GameError(ErrorCode.NOT_A_PLAYER, "Host cannot use mafia chat.")
            if not sender.alive:
                raise GameError(ErrorCode.NOT_ALIVE, "Dead players cannot use mafia chat.")
            if sender.role != Role.MAFIA:
                raise GameError(ErrorCode.ROLE_REQUIRED, "Only Mafia can use mafia chat.")
            text = self._chat_text(message)

            alive_mafia = tuple(
                p.player_id for p in room.engine.snapshot.players.values() if p.alive and p.role == Role.MAFIA
            )
            self._deliver(
                OutboundEvent(
                    room.room_code,
                    "mafia_chat_message",
                    {"sender_name": sender.name, "message": text, "time": format_timestamp(self.scheduler.now())},
                    recipients=alive_mafia,
                )
            )
            return {}

    def _chat_text(self, message: Optional[str]) -> str:
        text = str(message or "").strip()
        if not text:
            raise GameError(ErrorCode.EMPTY_INPUT, "Empty message.")
        if len(text) > self.config.rules.max_chat_length:
            raise GameError(ErrorCode.MESSAGE_TOO_LONG, "Message too long.")
        return text

    # -- sessions --------------------------------------------------------

    def restore_session(self, connection_id: str, room_code: Optional[str], token: Optional[str]) -> dict:
        with self._lock:
            room = self.registry.must_get(room_code)
            identity_id = room.engine.find_identity_by_token(str(token or ""))
            if identity_id is None:
                raise GameError(ErrorCode.INVALID_SESSION, "Invalid session token.")
            self._assert_unbound(connection_id, room.room_code, identity_id)

            self._bind(connection_id, room, identity_id)
            if identity_id != HOST_IDENTITY:
                room.engine.send_private_role(identity_id)
            room.engine.broadcast_state()

            logger.info("[Session] restored room=%s identity=%s", room.room_code, identity_id)
            return {
                "room_code": room.room_code,
                "identity": "host" if identity_id == HOST_IDENTITY else "player",
                "player_id": None if identity_id == HOST_IDENTITY else identity_id,
            }

    def disconnect(self, connection_id: str) -> None:
        with self._lock:
            binding = self.sessions.unbind(connection_id)
            if binding is None:
                return
            room = self.registry.get(binding.room_code)
            if room is None:
                return

            policy = self.config.rules.disconnect_policy
            must_close = room.engine.handle_departure(binding.identity_id, policy)
            logger.info(
                "[Session] disconnect room=%s identity=%s policy=%s",
                room.room_code,
                binding.identity_id,
                policy.value,
            )
            if must_close:
                self._close_room(room, "host_disconnected", "Host disconnected. Room closed.")
            elif not self.sessions.has_connections(room.room_code):
                room.abandoned_since = self.scheduler.now()

    def _bind(self, connection_id: str, room: Room, identity_id: str) -> None:
        displaced = self.sessions.bind(connection_id, room.room_code, identity_id)
        if displaced is not None and self.transport is not None:
            self.transport.send(displaced, "session_replaced", {"room_code": room.room_code})
        room.engine.mark_online_status(identity_id, True)
        room.abandoned_since = None

    def _assert_unbound(
        self,
        connection_id: str,
        room_code: Optional[str] = None,
        identity_id: Optional[str] = None,
    ) -> None:
        binding = self.sessions.binding_for(connection_id)
        if binding is None:
            return
        if binding.room_code == room_code and binding.identity_id == identity_id:
            return
        raise GameError(ErrorCode.ALREADY_BOUND, "This connection is already bound to a room.")

    def _actor(self, connection_id: Optional[str], room_code: Optional[str]) -> Tuple[Room, str]:
        room = self.registry.must_get(room_code)
        binding = self.sessions.binding_for(connection_id) if connection_id else None
        if binding is None or binding.room_code != room.room_code:
            raise GameError(ErrorCode.NOT_IN_ROOM, "You are not in this room.")
        return room, binding.identity_id

    # -- teardown --------------------------------------------------------

    def evict_abandoned(self) -> List[str]:
        with self._lock:
            now = self.scheduler.now()
            rules = self.config.rules
            closed: List[str] = []
            for room in self.registry.rooms():
                ended_at = room.engine.snapshot.ended_at
                if room.engine.phase == Phase.ENDED and ended_at is not None:
                    if (now - ended_at).total_seconds() >= rules.ended_room_ttl_seconds:
                        self._close_room(room, "game_ended", "Game finished. Room closed.")
                        closed.append(room.room_code)
                        continue
                if room.abandoned_since is not None:
                    if (now - room.abandoned_since).total_seconds() >= rules.abandoned_room_ttl_seconds:
                        self._close_room(room, "abandoned", "Room abandoned. Room closed.")
                        closed.append(room.room_code)
            if closed:
                logger.info("[Evict] closed rooms=%s", closed)
            return closed

    def _close_room(self, room: Room, reason: str, message: str) -> None:
        with self._lock:
            room.engine.shutdown()
            self._deliver(OutboundEvent(room.room_code, "room_closed", {"reason": reason, "message": message}))
            self.sessions.drop_room(room.room_code)
            self.registry.remove(room.room_code)
            logger.info("[Room] closed room=%s reason=%s", room.room_code, reason)

    def shutdown_cleanup(self) -> None:
        for room in self.registry.rooms():
            room.engine.shutdown()
        if self.repository is not None:
            self.repository.dispose()

    # -- delivery --------------------------------------------------------

    def _deliver(self, event: OutboundEvent) -> None:
        if self.transport is None:
            return
        if event.recipients is None:
            connection_ids = self.sessions.connections_in_room(event.room_code)
        else:
            connection_ids = []
            for identity_id in event.recipients:
                connection_id = self.sessions.connection_for(event.room_code, identity_id)
                if connection_id is not None:
                    connection_ids.append(connection_id)
        for connection_id in connection_ids:
            self.transport.send(connection_id, event.event, event.payload)

    def _archive(self, room_code: str) -> None:
        if self.repository is None:
            return
        room = self.registry.get(room_code)
        if room is None:
            return
        snapshot = room.engine.snapshot
        try:
            record_id = self.repository.save_finished_game(
                room_code=room_code,
                host_name=snapshot.host.name,
                winner=snapshot.winner.value if snapshot.winner else "none",
                rounds=snapshot.round_no,
                final_roles=room.engine.final_roles(),
                audit_log=snapshot.action_audit_log,
            )
        except SQLAlchemyError:
            logger.exception("[Room] failed to archive finished game room=%s", room_code)
            return
        self.records[room_code] = record_id
        logger.info("[Room] archived room=%s record_id=%s", room_code, record_id)

    # -- queries ---------------------------------------------------------

    def get_room(self, room_code: Optional[str]) -> Optional[Room]:
        return self.registry.get(room_code)

    def must_get_room(self, room_code: Optional[str]) -> Room:
        return self.registry.must_get(room_code)

    def state(self, room_code: Optional[str]) -> dict:
        return self.must_get_room(room_code).engine.public_state()

    def health_summary(self) -> dict:
        by_phase: Dict[str, int] = {}
        connections = 0
        for room in self.registry.rooms():
            phase = room.engine.phase.value
            by_phase[phase] = by_phase.get(phase, 0) + 1
            connections += len(self.sessions.connections_in_room(room.room_code))
        return {
            "rooms": len(self.registry),
            "rooms_by_phase": by_phase,
            "connections": connections,
            "disconnect_policy": self.config.rules.disconnect_policy.value,
        }

    def replay_record(self, record_id: int) -> dict:
        if self.repository is None:
            raise ValueError("game archive is disabled")
        record = self.repository.get_game_record(record_id)
        if record is None:
            raise ValueError("record not found")
        return record

    def recent_records(self, limit: int = 20) -> List[dict]:
        if self.repository is None:
            return []
        return self.repository.list_recent_games(limit)

    @staticmethod
    def _new_player_id() -> str:
        return uuid.uuid4().hex
