"""
schema.py — Room Request/Response Models
========================================
Pydantic models for the room endpoints. JSON keys are camelCase
(`playerId`, `isActive`, ...) to match the mobile clients.
"""

from typing import Literal

from pydantic import ConfigDict, Field

from src.apps.rooms.models import CamelModel, PlayerProfile, Room, RoomPlayer


# ═══════════════════════════════════════════════════
# REQUEST MODELS
# ═══════════════════════════════════════════════════

class RoomCreateRequest(CamelModel):
    """
    Create-or-join the room at the caller's location.
    """
    player_id: str = Field(..., min_length=1, description="Stable player id")
    player_name: str = Field(..., min_length=1, max_length=30, description="Display name")
    player_color: str | None = Field(None, description="Hex colour, must be unique in the room")
    player_avatar: str | None = Field(None, description="Avatar emoji")
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "playerId": "player-10-0-0-7-1718000000000",
            "playerName": "Efe",
            "playerColor": "#3B82F6",
            "playerAvatar": "🦖",
            "lat": 43.7735,
            "lng": -79.5019,
        }
    })

    def profile(self) -> PlayerProfile:
        return build_profile(self.player_name, self.player_color, self.player_avatar)


class RoomActionRequest(CamelModel):
    """
    Single endpoint for everything a member does to a room.

    - join:          playerName/playerColor/playerAvatar, optional lat/lng
    - updatePlayer:  any of playerName/playerColor/playerAvatar/lat/lng
    - start:         optional duration (seconds)
    - update:        any of lat/lng/distance/speed/points
    - leave:         nothing else
    """
    action: Literal["join", "updatePlayer", "start", "update", "leave"]
    player_id: str = Field(..., min_length=1)
    player_name: str | None = Field(None, min_length=1, max_length=30)
    player_color: str | None = None
    player_avatar: str | None = None
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)
    distance: float | None = Field(None, ge=0)
    speed: float | None = Field(None, ge=0)
    points: int | None = Field(None, ge=0)
    duration: int | None = Field(None, gt=0, description="Auto-stop after this many seconds")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "action": "update",
            "playerId": "player-10-0-0-7-1718000000000",
            "lat": 43.77352,
            "lng": -79.50188,
            "distance": 0.42,
            "speed": 11.3,
            "points": 6,
        }
    })

    def telemetry(self) -> dict:
        return {k: getattr(self, k) for k in ("lat", "lng", "distance", "speed", "points")}

    def profile_fields(self) -> dict:
        return {
            "name": self.player_name,
            "color": self.player_color,
            "avatar": self.player_avatar,
            "lat": self.lat,
            "lng": self.lng,
        }


class FindRoomsRequest(CamelModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    radius: float | None = Field(None, gt=0, description="Search radius in km (default 0.1)")


# ═══════════════════════════════════════════════════
# RESPONSE MODELS
# ═══════════════════════════════════════════════════

class RoomResponse(CamelModel):
    success: bool = True
    room: Room


class RoomCodeSummary(CamelModel):
    id: str
    code: str | None
    player_count: int
    players: list[RoomPlayer]


class RoomCodeResponse(CamelModel):
    success: bool = True
    room: RoomCodeSummary


class NearbyRoom(CamelModel):
    id: str
    code: str | None = None
    player_count: int
    distance: float = Field(..., description="km from the search point")
    lat: float
    lng: float


class FindRoomsResponse(CamelModel):
    success: bool = True
    rooms: list[NearbyRoom]


class RoomListResponse(CamelModel):
    success: bool = True
    rooms: list[Room]


def build_profile(name: str | None, color: str | None, avatar: str | None) -> PlayerProfile:
    data = {"name": name or "Runner", "color": color}
    if avatar:
        data["avatar"] = avatar
    return PlayerProfile(**data)
