"""
reconciler.py — Telemetry Reconciler (client side)
==================================================
Each client keeps its own list of runners and feeds it from two sources:

1. its own GPS fixes (`apply_fix`): distance, speed and points are computed
   locally and pushed to the room
2. room snapshots from polling (`merge_snapshot`): the only way a client
   learns where the *other* runners are

The local runner is never overwritten from a snapshot; the round-tripped
copy is always older than what the device just measured.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace

from src.apps.rooms.models import DEFAULT_AVATAR, Room, RoomPlayer
from src.core.geo import haversine_km

# Single-tick jumps longer than this are GPS glitches
MAX_TICK_JUMP_KM = 0.1

# Trail points closer than this (degrees) are the same fix repeated
TRAIL_EPSILON_DEG = 1e-5

SPEED_BONUS_THRESHOLD_KMH = 10


@dataclass
class GeoPoint:
    lat: float
    lng: float


@dataclass
class GpsFix:
    lat: float
    lng: float
    speed: float | None = None  # m/s as reported by the device, None if unknown


@dataclass
class Runner:
    id: str
    name: str
    color: str
    avatar: str = DEFAULT_AVATAR
    distance: float = 0.0  # km
    speed: float = 0.0     # km/h
    time: int = 0          # seconds
    points: int = 0
    location: GeoPoint | None = None
    path_history: list[GeoPoint] = field(default_factory=list)

    @classmethod
    def from_player(cls, player: RoomPlayer) -> Runner:
        location = GeoPoint(player.lat, player.lng) if player.lat is not None and player.lng is not None else None
        return cls(
            id=player.id,
            name=player.name,
            color=player.color,
            avatar=player.avatar,
            distance=player.distance,
            speed=player.speed,
            time=player.time,
            points=player.points,
            location=location,
            path_history=[location] if location else [],
        )


def score_delta(delta_km: float, speed_kmh: float) -> int:
    """One point per 100 m, plus floor(speed/10) while faster than 10 km/h."""
    bonus = math.floor(speed_kmh / 10) if speed_kmh > SPEED_BONUS_THRESHOLD_KMH else 0
    return math.floor(delta_km * 10) + bonus


def apply_fix(runner: Runner, fix: GpsFix) -> dict:
    """
    Advance the local runner by one GPS fix.

    Returns the telemetry payload to push for this fix.
    """
    delta = 0.0
    if runner.location is not None:
        delta = haversine_km(runner.location.lat, runner.location.lng, fix.lat, fix.lng)
    if delta > MAX_TICK_JUMP_KM:
        delta = 0.0

    if fix.speed is not None:
        speed = fix.speed * 3.6
    elif delta > 0:
        # delta treated as one second of movement
        speed = delta / (1 / 3600)
    else:
        speed = 0.0

    runner.distance += delta
    runner.speed = speed
    runner.points += score_delta(delta, speed)
    runner.location = GeoPoint(fix.lat, fix.lng)
    runner.path_history.append(runner.location)

    return {
        "lat": fix.lat,
        "lng": fix.lng,
        "distance": runner.distance,
        "speed": runner.speed,
        "points": runner.points,
    }


def _moved(a: GeoPoint, b: GeoPoint) -> bool:
    return abs(a.lat - b.lat) > TRAIL_EPSILON_DEG or abs(a.lng - b.lng) > TRAIL_EPSILON_DEG


def merge_snapshot(runners: list[Runner], room: Room, local_player_id: str | None, now: int) -> list[Runner]:
    """
    Rebuild the runner list from a polled room, in room join order.

    Remote runners take distance/speed/points/location from the room; their
    trail grows only when they actually moved. The local runner is carried
    over untouched, and kept even if the snapshot no longer lists it.
    """
    current = {r.id: r for r in runners}
    merged: list[Runner] = []

    for player in room.players:
        existing = current.get(player.id)
        if player.id == local_player_id and existing is not None:
            merged.append(existing)
            continue

        if player.lat is not None and player.lng is not None:
            location = GeoPoint(player.lat, player.lng)
        else:
            location = existing.location if existing else None

        trail = list(existing.path_history) if existing else []
        if location is not None:
            if existing is None or existing.location is None:
                trail = [location]
            elif _moved(location, existing.location):
                trail.append(location)

        if room.start_time:
            elapsed = max(0, (now - room.start_time) // 1000)
        else:
            elapsed = existing.time if existing else 0

        merged.append(Runner(
            id=player.id,
            name=player.name,
            color=player.color,
            avatar=player.avatar,
            distance=player.distance or 0.0,
            speed=player.speed or 0.0,
            time=elapsed,
            points=player.points or 0,
            location=location,
            path_history=trail,
        ))

    listed = {p.id for p in room.players}
    if local_player_id and local_player_id not in listed and local_player_id in current:
        merged.append(current[local_player_id])

    return merged


def rank(runners: list[Runner]) -> list[Runner]:
    """Leaderboard order: points, then distance, both descending."""
    return sorted(runners, key=lambda r: (-r.points, -r.distance))


def finalize(runners: list[Runner], elapsed: int) -> list[Runner]:
    """Stamp the final race time on every runner (copies, inputs untouched)."""
    return [replace(r, time=elapsed, path_history=list(r.path_history)) for r in runners]
