"""
router.py — Room REST Endpoints
===============================
Create/discover rooms, join by code, and the per-room action endpoint the
clients poll and push telemetry to.

ENDPOINTS:
----------
POST   /api/rooms                 → create-or-join by location
POST   /api/rooms/find            → nearby joinable rooms
GET    /api/rooms/code/{code}     → resolve a join code
GET    /api/rooms/{room_id}       → room snapshot (polled every second)
POST   /api/rooms/{room_id}       → join | updatePlayer | start | update | leave
GET    /api/rooms                 → all rooms (debug/admin)

Every response is `{success: true, ...payload}` or
`{success: false, error, code}` (see src/core/errors.py).
"""

from fastapi import APIRouter, Depends, status

from src.apps.rooms.schema import (
    FindRoomsRequest,
    FindRoomsResponse,
    NearbyRoom,
    RoomActionRequest,
    RoomCodeResponse,
    RoomCodeSummary,
    RoomCreateRequest,
    RoomListResponse,
    RoomResponse,
    build_profile,
)
from src.apps.rooms.service import RoomService
from src.core.dependencies import get_room_service

# ═══════════════════════════════════════════════════
# ROUTER SETUP
# ═══════════════════════════════════════════════════

router = APIRouter(
    prefix="/api/rooms",
    tags=["rooms"],
    responses={
        400: {"description": "Validation or capacity error"},
        403: {"description": "Only the host can start"},
        404: {"description": "Room not found"},
    },
)


# ═══════════════════════════════════════════════════
# ENDPOINTS
# ═══════════════════════════════════════════════════

@router.post("", response_model=RoomResponse)
async def create_room_endpoint(req: RoomCreateRequest, service: RoomService = Depends(get_room_service)):
    """
    Create or join the room for the caller's ~100 m cell.

    Re-sending the same request as an existing member is harmless.
    The returned room always carries a join code.
    """
    room = await service.create_or_join(req.lat, req.lng, req.player_id, req.profile())
    return RoomResponse(room=room)


@router.post("/find", response_model=FindRoomsResponse)
async def find_rooms_endpoint(req: FindRoomsRequest, service: RoomService = Depends(get_room_service)):
    """
    Joinable rooms (not racing, not full) within `radius` km.

    Order is unspecified; sort by `distance` client-side if needed.
    """
    rooms = await service.find_nearby(req.lat, req.lng, req.radius)
    return FindRoomsResponse(rooms=[NearbyRoom(**r) for r in rooms])


@router.get("/code/{code}", response_model=RoomCodeResponse)
async def get_room_by_code_endpoint(code: str, service: RoomService = Depends(get_room_service)):
    """
    Resolve a join code.

    Returns:
        200: room summary
        400: malformed code, room full or race in progress
        404: no room with this code
    """
    room = await service.lookup_code(code)
    return RoomCodeResponse(
        room=RoomCodeSummary(
            id=room.id,
            code=room.code,
            player_count=len(room.players),
            players=room.players,
        )
    )


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room_endpoint(room_id: str, service: RoomService = Depends(get_room_service)):
    room = await service.get_room(room_id)
    return RoomResponse(room=room)


@router.post("/{room_id}", response_model=RoomResponse, status_code=status.HTTP_200_OK)
async def room_action_endpoint(
    room_id: str,
    req: RoomActionRequest,
    service: RoomService = Depends(get_room_service),
):
    """
    Member actions.

    Returns:
        200: updated room
        400: room full, race running, fewer than 2 players
        403: start requested by someone other than the host
        404: room (or player) not found
    """
    if req.action == "join":
        profile = build_profile(req.player_name, req.player_color, req.player_avatar)
        room = await service.join(room_id, req.player_id, profile, req.lat, req.lng)
    elif req.action == "updatePlayer":
        room = await service.update_profile(room_id, req.player_id, req.profile_fields())
    elif req.action == "start":
        room = await service.start(room_id, req.player_id, req.duration)
    elif req.action == "update":
        room = await service.update_telemetry(room_id, req.player_id, req.telemetry())
    else:
        room = await service.leave(room_id, req.player_id)
    return RoomResponse(room=room)


@router.get("", response_model=RoomListResponse)
async def list_rooms_endpoint(service: RoomService = Depends(get_room_service)):
    """All rooms (debug/admin)."""
    return RoomListResponse(rooms=await service.list_rooms())
