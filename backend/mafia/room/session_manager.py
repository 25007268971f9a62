"""Bindings between transient connections and durable room identities.

A player (or the host) is identified inside a room by ``identity_id`` and
reclaims that identity with a durable token. Connections come and go; this
table is the only place that knows which connection currently speaks for
which identity.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from threading import RLock
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24


@dataclass(frozen=True, slots=True)
class Binding:
    room_code: str
    identity_id: str


class SessionManager:
    def __init__(self) -> None:
        self._by_connection: Dict[str, Binding] = {}
        self._by_identity: Dict[Tuple[str, str], str] = {}
        self._lock = RLock()

    @staticmethod
    def mint_token() -> str:
        return secrets.token_urlsafe(TOKEN_BYTES)

    def bind(self, connection_id: str, room_code: str, identity_id: str) -> Optional[str]:
        """Bind a connection to an identity. Returns the connection it displaced, if any."""
        with self._lock:
            key = (room_code, identity_id)
            displaced = self._by_identity.get(key)
            if displaced == connection_id:
                return None
            if displaced is not None:
                self._by_connection.pop(displaced, None)
            self._by_identity[key] = connection_id
            self._by_connection[connection_id] = Binding(room_code=room_code, identity_id=identity_id)
            logger.info(
                "[Session] bind room=%s identity=%s connection=%s displaced=%s",
                room_code,
                identity_id,
                connection_id,
                displaced,
            )
            return displaced

    def unbind(self, connection_id: str) -> Optional[Binding]:
        with self._lock:
            binding = self._by_connection.pop(connection_id, None)
            if binding is None:
                return None
            key = (binding.room_code, binding.identity_id)
            if self._by_identity.get(key) == connection_id:
                del self._by_identity[key]
            return binding

    def binding_for(self, connection_id: str) -> Optional[Binding]:
        with self._lock:
            return self._by_connection.get(connection_id)

    def connection_for(self, room_code: str, identity_id: str) -> Optional[str]:
        with self._lock:
            return self._by_identity.get((room_code, identity_id))

    def connections_in_room(self, room_code: str) -> List[str]:
        with self._lock:
            return [
                connection_id
                for (code, _), connection_id in self._by_identity.items()
                if code == room_code
            ]

    def has_connections(self, room_code: str) -> bool:
        with self._lock:
            return any(code == room_code for code, _ in self._by_identity)

    def drop_room(self, room_code: str) -> List[str]:
        with self._lock:
            dropped = self.connections_in_room(room_code)
            for connection_id in dropped:
                self.unbind(connection_id)
            return dropped
