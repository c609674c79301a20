"""
service.py — Room Lifecycle Business Logic
==========================================
Create-or-join by location, explicit joins, profile and telemetry updates,
host-gated start and leave.

Every operation is a read-modify-write of one room record. There is no
version check between the read and the write, so two players writing the
same room at the same instant can lose one update. Each player only ever
writes their own slot, which keeps that failure to a lost write rather than
a corrupted record.
"""

import logging
from collections.abc import Callable
from typing import Any

from src.apps.rooms.codes import CodeAllocator
from src.apps.rooms.models import AVAILABLE_COLORS, PlayerProfile, Room, RoomPlayer, now_ms
from src.core.config import Settings
from src.core.database import RoomStore
from src.core.errors import AuthorizationError, CapacityError, NotFoundError, ValidationError
from src.core.geo import derive_room_id, haversine_km
from src.core.race_clock import RacePhase, room_phase

logger = logging.getLogger(__name__)

TELEMETRY_FIELDS = ("lat", "lng", "distance", "speed", "points")
PROFILE_FIELDS = ("name", "color", "avatar", "lat", "lng")


def _validate_location(lat: Any, lng: Any) -> None:
    if lat is None or lng is None:
        raise ValidationError("MISSING_LOCATION", "Missing location")
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValidationError("INVALID_LOCATION", f"Location out of range: ({lat}, {lng})")


class RoomService:
    def __init__(
        self,
        store: RoomStore,
        allocator: CodeAllocator,
        settings: Settings,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.allocator = allocator
        self.settings = settings
        self.clock = clock

    # ═══════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════

    async def _load(self, room_id: str) -> Room:
        room = await self.store.get(room_id)
        if room is None:
            raise NotFoundError("ROOM_NOT_FOUND", "Room not found")
        return room

    async def _save(self, room: Room) -> Room:
        room.updated_at = self.clock()
        await self.store.set(room.id, room)
        return room

    def _pick_color(self, room: Room, wanted: str | None, player_id: str) -> str:
        taken = room.taken_colors(exclude=player_id)
        if wanted and wanted not in taken:
            return wanted
        for color in AVAILABLE_COLORS:
            if color not in taken:
                return color
        # Palette is larger than the room, so this only happens with foreign colours
        return wanted or AVAILABLE_COLORS[0]

    def _new_player(
        self,
        room: Room,
        player_id: str,
        profile: PlayerProfile,
        lat: float | None,
        lng: float | None,
    ) -> RoomPlayer:
        return RoomPlayer(
            id=player_id,
            name=profile.name,
            color=self._pick_color(room, profile.color, player_id),
            avatar=profile.avatar,
            lat=lat,
            lng=lng,
            joined_at=self.clock(),
        )

    def _ensure_capacity(self, room: Room) -> None:
        if len(room.players) >= self.settings.MAX_PLAYERS_PER_ROOM:
            raise CapacityError("ROOM_FULL", "Room is full")

    def _ensure_not_racing(self, room: Room) -> None:
        if room.is_active:
            raise CapacityError("RACE_IN_PROGRESS", "Race is already in progress")

    async def _with_code(self, room: Room) -> Room:
        if room.code:
            return room
        await self.allocator.assign_code(room.id)
        return await self._load(room.id)

    def phase(self, room: Room) -> RacePhase:
        return room_phase(room, now=self.clock)

    # ═══════════════════════════════════════════════════
    # ROOM LIFECYCLE
    # ═══════════════════════════════════════════════════

    async def get_room(self, room_id: str) -> Room:
        return await self._load(room_id)

    async def list_rooms(self) -> list[Room]:
        return [room for _, room in await self.store.list()]

    async def create_or_join(
        self,
        lat: float,
        lng: float,
        player_id: str,
        profile: PlayerProfile,
    ) -> Room:
        """
        Join the room for this ~100 m cell, creating it if nobody has.

        Calling it again as an existing member returns the room unchanged.

        Raises:
            ValidationError: missing player id or location
            CapacityError: room full or already racing
        """
        if not player_id:
            raise ValidationError("MISSING_PLAYER_ID", "Missing required fields")
        _validate_location(lat, lng)

        room_id = derive_room_id(lat, lng)
        room = await self.store.get(room_id)
        now = self.clock()

        if room is None:
            room = Room(
                id=room_id,
                lat=lat,
                lng=lng,
                host_id=player_id,
                is_active=False,
                start_time=None,
                players=[],
                created_at=now,
                updated_at=now,
            )
            logger.info(f"🏁 Room created: {room_id} by {player_id}")

        if room.has_player(player_id):
            if room.host_id is None:
                room.host_id = room.players[0].id
                await self._save(room)
            return await self._with_code(room)

        self._ensure_not_racing(room)
        self._ensure_capacity(room)

        if room.host_id is None:
            room.host_id = room.players[0].id if room.players else player_id

        room.players.append(self._new_player(room, player_id, profile, lat, lng))
        await self._save(room)
        logger.info(f"👤 {profile.name} ({player_id}) joined {room_id} [{len(room.players)}/{self.settings.MAX_PLAYERS_PER_ROOM}]")

        return await self._with_code(room)

    async def join(
        self,
        room_id: str,
        player_id: str,
        profile: PlayerProfile,
        lat: float | None = None,
        lng: float | None = None,
    ) -> Room:
        """
        Explicit join, used after a code lookup. A rejoin refreshes the
        runner's profile in place.

        Raises:
            NotFoundError: no such room
            CapacityError: room full or race in progress
        """
        if not player_id:
            raise ValidationError("MISSING_PLAYER_ID", "Missing required fields")
        room = await self._load(room_id)

        existing = room.find_player(player_id)
        if existing is not None:
            existing.name = profile.name
            existing.avatar = profile.avatar
            if profile.color:
                existing.color = self._pick_color(room, profile.color, player_id)
            if lat is not None and lng is not None:
                existing.lat, existing.lng = lat, lng
            logger.info(f"🔁 {player_id} rejoined {room_id}")
            return await self._save(room)

        self._ensure_not_racing(room)
        self._ensure_capacity(room)

        room.players.append(self._new_player(room, player_id, profile, lat, lng))
        if room.host_id is None:
            room.host_id = room.players[0].id
        logger.info(f"👤 {profile.name} ({player_id}) joined {room_id} [{len(room.players)}/{self.settings.MAX_PLAYERS_PER_ROOM}]")
        return await self._save(room)

    async def update_profile(self, room_id: str, player_id: str, fields: dict[str, Any]) -> Room:
        """Change name/color/avatar/location of a member. Race fields are untouched."""
        room = await self._load(room_id)
        player = room.find_player(player_id)
        if player is None:
            raise NotFoundError("PLAYER_NOT_FOUND", "Player is not in this room")

        updates = {k: v for k, v in fields.items() if k in PROFILE_FIELDS and v is not None}
        color = updates.get("color")
        if color and color in room.taken_colors(exclude=player_id):
            raise ValidationError("COLOR_TAKEN", f"Color {color} is already taken")

        for key, value in updates.items():
            setattr(player, key, value)
        return await self._save(room)

    async def update_telemetry(self, room_id: str, player_id: str, fields: dict[str, Any]) -> Room:
        """
        Merge the supplied telemetry fields into the player's slot.

        Values are client-reported and taken as-is, except that distance and
        points never move backwards: a late push cannot undo a newer one.
        """
        room = await self._load(room_id)
        player = room.find_player(player_id)
        if player is None:
            raise NotFoundError("PLAYER_NOT_FOUND", "Player is not in this room")

        for key in TELEMETRY_FIELDS:
            value = fields.get(key)
            if value is None:
                continue
            if key == "distance":
                value = max(player.distance, float(value))
            elif key == "points":
                value = max(player.points, int(value))
            setattr(player, key, value)
        player.last_update = self.clock()
        return await self._save(room)

    async def start(self, room_id: str, player_id: str, duration: int | None = None) -> Room:
        """
        Start the race. Only the host may do it, and only with company.

        A room that is already racing (or finished) is returned unchanged so
        retried start requests are harmless.

        Raises:
            AuthorizationError: caller is not the host
            CapacityError: fewer than MIN_PLAYERS_TO_START runners
        """
        room = await self._load(room_id)

        if room.is_active:
            logger.info(f"Start ignored for {room_id}: already {self.phase(room).value}")
            return room

        if room.players and not room.has_player(room.host_id or ""):
            previous = room.host_id
            room.host_id = room.players[0].id
            logger.info(f"👑 Host re-elected in {room_id}: {previous} -> {room.host_id}")
            await self._save(room)

        if room.host_id != player_id:
            raise AuthorizationError("NOT_HOST", "Only the host can start the race")

        if len(room.players) < self.settings.MIN_PLAYERS_TO_START:
            raise CapacityError(
                "NOT_ENOUGH_PLAYERS",
                f"Need at least {self.settings.MIN_PLAYERS_TO_START} players",
            )

        if duration is not None and duration <= 0:
            raise ValidationError("INVALID_DURATION", "Duration must be a positive number of seconds")

        room.is_active = True
        room.start_time = self.clock()
        if duration is not None:
            room.duration = duration
        logger.info(f"🚀 Race started in {room_id} with {len(room.players)} runners (duration={duration})")
        return await self._save(room)

    async def leave(self, room_id: str, player_id: str) -> Room:
        """Drop the player. The host slot and a running race are left alone."""
        room = await self._load(room_id)
        before = len(room.players)
        room.players = [p for p in room.players if p.id != player_id]
        if len(room.players) == before:
            return room
        logger.info(f"👋 {player_id} left {room_id} [{len(room.players)} left]")
        return await self._save(room)

    # ═══════════════════════════════════════════════════
    # DISCOVERY
    # ═══════════════════════════════════════════════════

    async def find_nearby(self, lat: float, lng: float, radius_km: float | None = None) -> list[dict]:
        """Joinable rooms within the radius. Order is not guaranteed."""
        _validate_location(lat, lng)
        radius = self.settings.DEFAULT_SEARCH_RADIUS_KM if radius_km is None else radius_km
        nearby = []
        for _, room in await self.store.list():
            if room.is_active or len(room.players) >= self.settings.MAX_PLAYERS_PER_ROOM:
                continue
            distance = haversine_km(lat, lng, room.lat, room.lng)
            if distance <= radius:
                nearby.append({
                    "id": room.id,
                    "code": room.code,
                    "playerCount": len(room.players),
                    "distance": round(distance, 3),
                    "lat": room.lat,
                    "lng": room.lng,
                })
        return nearby

    async def lookup_code(self, raw_code: str) -> Room:
        """
        Resolve a join code to a room the caller can still join.

        Raises:
            ValidationError: malformed code
            NotFoundError: unknown code
            CapacityError: room full or race in progress
        """
        room = await self.allocator.resolve_code(raw_code)
        self._ensure_capacity(room)
        self._ensure_not_racing(room)
        return room
