"""
Room models — records held by the room store.

Attributes are snake_case in Python and camelCase on the wire. Fields that
were never assigned stay out of `model_fields_set`, so the store can tell an
unset `code` apart from an explicit `code = None`.
"""

import time

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Palette offered by the clients; a joining runner whose colour is taken
# gets the first free one.
AVAILABLE_COLORS = [
    "#EF4444",  # Red Hot
    "#3B82F6",  # Ocean Blue
    "#84CC16",  # Lime Green
    "#A855F7",  # Purple Haze
    "#F97316",  # Sunset Orange
    "#EC4899",  # Pink Power
    "#1E293B",  # Midnight
    "#06B6D4",  # Cyan
]

DEFAULT_AVATAR = "🏃"


def now_ms() -> int:
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlayerProfile(CamelModel):
    """What a runner looks like to the others. Supplied by the account layer."""
    name: str = Field(..., min_length=1, max_length=30)
    color: str | None = None
    avatar: str = DEFAULT_AVATAR


class RoomPlayer(CamelModel):
    id: str
    name: str
    color: str
    avatar: str = DEFAULT_AVATAR
    lat: float | None = None
    lng: float | None = None
    distance: float = 0.0  # km
    speed: float = 0.0     # km/h
    time: int = 0          # seconds
    points: int = 0
    joined_at: int = Field(default_factory=now_ms)
    last_update: int | None = None

    def last_seen(self) -> int:
        return self.last_update or self.joined_at


class Room(CamelModel):
    id: str
    code: str | None = None
    lat: float
    lng: float
    host_id: str | None = None
    is_active: bool = False
    start_time: int | None = None
    duration: int | None = None  # seconds, None = no auto-stop
    players: list[RoomPlayer] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    def find_player(self, player_id: str) -> RoomPlayer | None:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def has_player(self, player_id: str) -> bool:
        return self.find_player(player_id) is not None

    def taken_colors(self, exclude: str | None = None) -> set[str]:
        return {p.color for p in self.players if p.id != exclude}
