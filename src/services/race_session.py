"""
race_session.py — One client's live race
========================================
Glues the reconciler, the race clock and the room API together for a single
runner.

Three producers feed one queue, and a single consumer applies their events
to the runner list in arrival order:

    GPS fixes     → ("gps", GpsFix)         apply locally + push (fire-and-forget)
    poll results  → ("snapshot", Room)      merge other runners
    clock ticks   → ("tick", (elapsed, expired))

Polls are issued on a fixed interval without waiting for the previous one,
so a slow response can land after a newer one; it is merged anyway, the
next poll corrects it. A failed poll or push is logged and skipped.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from src.apps.rooms.models import Room, now_ms
from src.core.config import get_settings
from src.core.errors import RaceError
from src.core.race_clock import RaceClock
from src.services.race_client import RaceClient
from src.services.reconciler import GpsFix, Runner, apply_fix, finalize, merge_snapshot, rank

logger = logging.getLogger(__name__)


@dataclass
class RaceResult:
    room_id: str
    elapsed: int
    standings: list[Runner]

    @property
    def winner(self) -> Runner | None:
        return self.standings[0] if self.standings else None


class RaceSession:
    def __init__(
        self,
        client: RaceClient,
        room: Room,
        player_id: str,
        now: Callable[[], int] = now_ms,
        poll_interval: float | None = None,
        tick_interval: float | None = None,
    ):
        if room.start_time is None:
            raise ValueError(f"Room {room.id} has not started")
        settings = get_settings()
        if poll_interval is None:
            poll_interval = settings.POLL_INTERVAL_SEC
        if tick_interval is None:
            tick_interval = settings.CLOCK_TICK_SEC
        self.client = client
        self.room_id = room.id
        self.player_id = player_id
        self.now = now
        self.poll_interval = poll_interval
        self.clock = RaceClock(room.start_time, room.duration, now=now, tick_interval=tick_interval)
        self.runners: list[Runner] = [Runner.from_player(p) for p in room.players]
        self.result: RaceResult | None = None

        self._queue: asyncio.Queue = asyncio.Queue()
        self._loops: list[asyncio.Task] = []
        self._inflight: set[asyncio.Task] = set()

    # ── Public API ──────────────────────────────────────

    def submit_fix(self, fix: GpsFix) -> None:
        if self.result is None:
            self._queue.put_nowait(("gps", fix))

    def stop(self) -> None:
        """End the race now (e.g. the runner tapped "finish")."""
        self._queue.put_nowait(("stop", None))

    def leaderboard(self) -> list[Runner]:
        return rank(self.runners)

    @property
    def local_runner(self) -> Runner | None:
        for runner in self.runners:
            if runner.id == self.player_id:
                return runner
        return None

    async def run(self, gps: AsyncIterator[GpsFix] | None = None) -> RaceResult:
        """
        Race until the clock expires or `stop()` is called.

        Args:
            gps: optional stream of fixes (the device location watch)
        """
        self._loops = [
            asyncio.create_task(self._poll_loop()),
            asyncio.create_task(self.clock.run(self._on_tick)),
        ]
        if gps is not None:
            self._loops.append(asyncio.create_task(self._watch(gps)))
        logger.info(f"🏃 Race session started: {self.player_id} in {self.room_id}")
        try:
            return await self._consume()
        finally:
            await self._cancel_loops(drain=True)

    async def leave(self) -> None:
        """End the race if it is still running, stop polling and the GPS watch,
        then tell the room (best effort)."""
        if self.result is None:
            self.stop()
        await self._cancel_loops()
        try:
            await self.client.leave(self.room_id, self.player_id)
        except RaceError as e:
            logger.warning(f"Leave failed for {self.player_id}: {e.message}")

    # ── Consumer ────────────────────────────────────────

    async def _consume(self) -> RaceResult:
        while True:
            kind, payload = await self._queue.get()
            if kind == "gps":
                self._apply_gps(payload)
            elif kind == "snapshot":
                self.runners = merge_snapshot(self.runners, payload, self.player_id, self.now())
            elif kind == "tick":
                elapsed, expired = payload
                for runner in self.runners:
                    runner.time = elapsed
                if expired:
                    return self._finish(elapsed)
            elif kind == "stop":
                return self._finish(self.clock.elapsed())

    def _apply_gps(self, fix: GpsFix) -> None:
        runner = self.local_runner
        if runner is None:
            logger.warning(f"GPS fix ignored: {self.player_id} not among runners")
            return
        telemetry = apply_fix(runner, fix)
        self._spawn(self._push(telemetry))

    def _finish(self, elapsed: int) -> RaceResult:
        self.runners = finalize(self.runners, elapsed)
        self.result = RaceResult(self.room_id, elapsed, rank(self.runners))
        winner = self.result.winner
        logger.info(
            f"🏆 Race over in {self.room_id} after {elapsed}s, "
            f"winner: {winner.name if winner else 'nobody'}"
        )
        return self.result

    # ── Producers ───────────────────────────────────────

    async def _on_tick(self, elapsed: int, expired: bool) -> None:
        self._queue.put_nowait(("tick", (elapsed, expired)))

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            self._spawn(self._poll_once())

    async def _poll_once(self) -> None:
        try:
            room = await self.client.get_room(self.room_id)
        except RaceError as e:
            logger.warning(f"Poll failed for {self.room_id}: {e.message}")
            return
        self._queue.put_nowait(("snapshot", room))

    async def _push(self, telemetry: dict) -> None:
        try:
            await self.client.push_telemetry(self.room_id, self.player_id, telemetry)
        except RaceError as e:
            # dropped on purpose: the next fix carries newer totals
            logger.warning(f"Telemetry push failed for {self.player_id}: {e.message}")

    async def _watch(self, gps: AsyncIterator[GpsFix]) -> None:
        async for fix in gps:
            self.submit_fix(fix)

    # ── Task bookkeeping ────────────────────────────────

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _cancel_loops(self, drain: bool = False) -> None:
        """Cancel the producers. With drain=True in-flight pushes and polls are
        allowed to finish (each is bounded by the client timeout)."""
        for task in self._loops:
            task.cancel()
        pending = list(self._inflight)
        if not drain:
            for task in pending:
                task.cancel()
        await asyncio.gather(*self._loops, *pending, return_exceptions=True)
        self._loops = []
