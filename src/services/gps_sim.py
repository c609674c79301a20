"""Synthetic GPS tracks: laps of an ellipse around a start point, for demos and tests."""

import asyncio
import math
from collections.abc import AsyncIterator, Iterator

from src.services.reconciler import GpsFix

DEFAULT_CENTER = (43.7735, -79.5019)
LAP_LENGTH_KM = 2.0


def _seed(runner_id: str) -> int:
    return sum(ord(c) for c in runner_id)


def lap_position(distance_km: float, runner_id: str, center: tuple[float, float] = DEFAULT_CENTER) -> tuple[float, float]:
    """Point on the runner's lap after `distance_km`. Each runner id gets its own lane."""
    seed = _seed(runner_id)
    sign = 1 if seed % 2 == 0 else -1
    offset_lat = (seed % 10) * 0.00005 * sign
    offset_lng = (seed % 8) * 0.00005 * sign
    angle = ((distance_km % LAP_LENGTH_KM) / LAP_LENGTH_KM) * math.pi * 2
    rad_lat = 0.0015 + (seed % 3) * 0.0001
    rad_lng = 0.002 + (seed % 4) * 0.0001
    return (
        center[0] + math.sin(angle) * rad_lat + offset_lat,
        center[1] + math.cos(angle) * rad_lng + offset_lng,
    )


def track_fixes(
    runner_id: str,
    speed_kmh: float,
    count: int,
    interval_sec: float = 1.0,
    center: tuple[float, float] = DEFAULT_CENTER,
    report_speed: bool = True,
) -> Iterator[GpsFix]:
    """`count` fixes, one per `interval_sec` of simulated running at `speed_kmh`."""
    step_km = speed_kmh * interval_sec / 3600
    for i in range(count):
        lat, lng = lap_position(i * step_km, runner_id, center)
        yield GpsFix(lat=lat, lng=lng, speed=speed_kmh / 3.6 if report_speed else None)


async def stream_fixes(
    runner_id: str,
    speed_kmh: float,
    interval_sec: float = 1.0,
    center: tuple[float, float] = DEFAULT_CENTER,
) -> AsyncIterator[GpsFix]:
    """Endless real-time version of `track_fixes`, for `RaceSession.run(gps=...)`."""
    step_km = speed_kmh * interval_sec / 3600
    i = 0
    while True:
        lat, lng = lap_position(i * step_km, runner_id, center)
        yield GpsFix(lat=lat, lng=lng, speed=speed_kmh / 3.6)
        i += 1
        await asyncio.sleep(interval_sec)
