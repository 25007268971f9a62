from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WSEnvelope(BaseModel):
    event: str = Field(min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = None


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class CreateRoomPayload(_Payload):
    host_name: Optional[str] = Field(default=None, max_length=30)


class JoinRoomPayload(_Payload):
    room_code: str
    player_name: Optional[str] = Field(default=None, max_length=30)


class RoomPayload(_Payload):
    room_code: str


class TargetPayload(RoomPayload):
    target_id: Optional[str] = None


class RestoreSessionPayload(RoomPayload):
    token: str


class ChatPayload(RoomPayload):
    message: Optional[str] = None


class CreateRoomRequest(BaseModel):
    host_name: Optional[str] = Field(default=None, max_length=30)


class CreateRoomResponse(BaseModel):
    room_code: str
    host_token: str


class RoomPlayerView(BaseModel):
    player_id: str
    name: str
    alive: bool
    online: bool
    revealed_role: Optional[str] = None


class RoomStateResponse(BaseModel):
    room_code: str
    host_name: str
    host_present: bool
    phase: str
    phase_ends_at: Optional[str] = None
    round: int
    announcement: str
    players: List[RoomPlayerView]


class ReplayResponse(BaseModel):
    record: Dict[str, Any]


class RecordListResponse(BaseModel):
    records: List[Dict[str, Any]]
