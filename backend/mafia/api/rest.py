from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from mafia.api.deps import get_room_manager
from mafia.errors import ErrorCode, GameError
from mafia.room.room_manager import RoomManager
from mafia.schemas import (
    CreateRoomRequest,
    CreateRoomResponse,
    RecordListResponse,
    ReplayResponse,
    RoomPlayerView,
    RoomStateResponse,
)

router = APIRouter(prefix="/api", tags=["mafia"])


@router.post("/rooms", response_model=CreateRoomResponse)
async def create_room(req: CreateRoomRequest, manager: RoomManager = Depends(get_room_manager)) -> CreateRoomResponse:
    try:
        return CreateRoomResponse(**manager.create_room(None, req.host_name))
    except GameError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc


@router.get("/rooms/{room_code}", response_model=RoomStateResponse)
async def room_state(room_code: str, manager: RoomManager = Depends(get_room_manager)) -> RoomStateResponse:
    try:
        state = manager.state(room_code)
    except GameError as exc:
        status = 404 if exc.code == ErrorCode.ROOM_NOT_FOUND else 400
        raise HTTPException(status_code=status, detail=exc.message) from exc
    return RoomStateResponse(
        room_code=state["room_code"],
        host_name=state["host_name"],
        host_present=state["host_present"],
        phase=state["phase"],
        phase_ends_at=state["phase_ends_at"],
        round=state["round"],
        announcement=state["announcement"],
        players=[RoomPlayerView(**p) for p in state["players"]],
    )


@router.get("/records/{record_id}", response_model=ReplayResponse)
async def replay_record(record_id: int, manager: RoomManager = Depends(get_room_manager)) -> ReplayResponse:
    try:
        return ReplayResponse(record=manager.replay_record(record_id))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/records", response_model=RecordListResponse)
async def recent_records(
    limit: int = Query(default=20, ge=1, le=100),
    manager: RoomManager = Depends(get_room_manager),
) -> RecordListResponse:
    return RecordListResponse(records=manager.recent_records(limit))
