from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    ROOM_NOT_FOUND = "room_not_found"
    WRONG_PHASE = "wrong_phase"
    NOT_ALIVE = "not_alive"
    NOT_A_PLAYER = "not_a_player"
    ROLE_REQUIRED = "role_required"
    TARGET_INVALID = "target_invalid"
    EMPTY_INPUT = "empty_input"
    MESSAGE_TOO_LONG = "message_too_long"
    ALLOWANCE_USED = "allowance_used"
    INSUFFICIENT_PLAYERS = "insufficient_players"
    NOT_HOST = "not_host"
    NOT_IN_ROOM = "not_in_room"
    GAME_ALREADY_STARTED = "game_already_started"
    INVALID_SESSION = "invalid_session"
    ALREADY_BOUND = "already_bound"
    INVALID_PAYLOAD = "invalid_payload"
    UNKNOWN_EVENT = "unknown_event"


class GameError(ValueError):
    """Rejected inbound action. Raised before any room state is touched."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code

    @property
    def message(self) -> str:
        return str(self)

    def to_ack(self) -> dict:
        return {"ok": False, "error": self.message, "code": self.code.value}
