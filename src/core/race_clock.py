"""
race_clock.py — Race Clock
==========================
Elapsed time + auto-stop, rebuilt independently by every participant from
the room's shared `startTime` / `duration`. Nobody owns the timer; clients
watching the same start time agree within one tick.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from src.apps.rooms.models import Room, now_ms

logger = logging.getLogger(__name__)


class RacePhase(str, Enum):
    SETUP = "setup"
    ACTIVE = "active"
    ENDED = "ended"


class RaceClock:
    def __init__(
        self,
        start_time: int,
        duration: int | None = None,
        now: Callable[[], int] = now_ms,
        tick_interval: float = 1.0,
    ):
        self.start_time = start_time
        self.duration = duration
        self.now = now
        self.tick_interval = tick_interval

    @classmethod
    def for_room(cls, room: Room, now: Callable[[], int] = now_ms, tick_interval: float = 1.0) -> "RaceClock | None":
        if room.start_time is None:
            return None
        return cls(room.start_time, room.duration, now=now, tick_interval=tick_interval)

    def elapsed(self) -> int:
        """Whole seconds since the start, never negative."""
        return max(0, (self.now() - self.start_time) // 1000)

    def remaining(self) -> int | None:
        if not self.duration:
            return None
        return max(0, self.duration - self.elapsed())

    def is_expired(self) -> bool:
        return bool(self.duration) and self.elapsed() >= self.duration

    async def run(self, on_tick: Callable[[int, bool], Awaitable[None]]) -> int:
        """
        Tick until the duration is reached (or forever without one).

        `on_tick(elapsed, expired)` is awaited every tick; the last call has
        `expired=True`. Returns the final elapsed seconds.
        """
        while True:
            await asyncio.sleep(self.tick_interval)
            elapsed = self.elapsed()
            expired = self.is_expired()
            await on_tick(elapsed, expired)
            if expired:
                logger.info(f"⏱️  Race clock expired at {elapsed}s (duration {self.duration}s)")
                return elapsed


def room_phase(room: Room, now: Callable[[], int] = now_ms) -> RacePhase:
    if not room.is_active:
        return RacePhase.SETUP
    clock = RaceClock.for_room(room, now=now)
    if clock and clock.is_expired():
        return RacePhase.ENDED
    return RacePhase.ACTIVE
