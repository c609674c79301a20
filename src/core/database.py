"""
database.py — Room Store + eviction sweep
==========================================
Keyed record store for rooms. The lifecycle service only ever talks to the
`RoomStore` interface, so a durable backend can replace the in-memory one
without touching room logic.

Writes are whole-record upserts: callers read, modify and write back.
Nothing here arbitrates between two writers racing on the same room; the
last `set` wins.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as RecordError

from src.apps.rooms.models import Room, now_ms
from src.core.config import Settings

logger = logging.getLogger(__name__)


# ── Record serialization ─────────────────────────────

def to_record(model: BaseModel) -> dict[str, Any]:
    """
    Plain dict for a model, keyed by wire alias.

    A None field is written only if it was explicitly assigned, so an unset
    `code` and `code = None` come back out of the store as different things.
    """
    record: dict[str, Any] = {}
    for name, info in type(model).model_fields.items():
        value = getattr(model, name)
        if value is None and name not in model.model_fields_set:
            continue
        if isinstance(value, BaseModel):
            value = to_record(value)
        elif isinstance(value, list):
            value = [to_record(v) if isinstance(v, BaseModel) else v for v in value]
        record[info.alias or name] = value
    return record


def from_record(record: dict[str, Any]) -> Room:
    return Room.model_validate(record)


# ── Store interface ──────────────────────────────────

class RoomStore(ABC):
    """get / set / delete / list over rooms keyed by room id."""

    @abstractmethod
    async def get(self, room_id: str) -> Room | None: ...

    @abstractmethod
    async def set(self, room_id: str, room: Room) -> None: ...

    @abstractmethod
    async def delete(self, room_id: str) -> None: ...

    @abstractmethod
    async def list(self) -> list[tuple[str, Room]]: ...

    async def find_by_code(self, code: str) -> Room | None:
        """Code index. Backends with a real index should override the scan."""
        for _, room in await self.list():
            if room.code and room.code.upper() == code:
                return room
        return None


class InMemoryRoomStore(RoomStore):
    """Thread-safe in-process store. Holds serialized records, never live objects."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rooms: dict[str, dict[str, Any]] = {}
        self._codes: dict[str, str] = {}  # code -> room_id

    async def get(self, room_id: str) -> Room | None:
        with self._lock:
            record = self._rooms.get(room_id)
        return from_record(record) if record is not None else None

    async def set(self, room_id: str, room: Room) -> None:
        record = to_record(room)
        with self._lock:
            previous = self._rooms.get(room_id)
            if previous and previous.get("code") and previous.get("code") != room.code:
                self._codes.pop(previous["code"], None)
            self._rooms[room_id] = record
            if room.code:
                self._codes[room.code] = room_id
        logger.debug(f"Room saved: {room_id} code={room.code} players={len(room.players)} total={len(self._rooms)}")

    async def delete(self, room_id: str) -> None:
        with self._lock:
            record = self._rooms.pop(room_id, None)
            if record and record.get("code"):
                self._codes.pop(record["code"], None)

    async def list(self) -> list[tuple[str, Room]]:
        with self._lock:
            items = list(self._rooms.items())
        rooms = []
        for room_id, record in items:
            try:
                rooms.append((room_id, from_record(record)))
            except RecordError as e:
                logger.error(f"Skipping unreadable room record {room_id}: {e.error_count()} errors")
        return rooms

    async def find_by_code(self, code: str) -> Room | None:
        with self._lock:
            room_id = self._codes.get(code)
            record = self._rooms.get(room_id) if room_id else None
        return from_record(record) if record is not None else None

    def count(self) -> int:
        with self._lock:
            return len(self._rooms)

    def clear(self) -> None:
        with self._lock:
            self._rooms.clear()
            self._codes.clear()


# ── Eviction sweep ───────────────────────────────────

@dataclass
class SweepReport:
    players_evicted: int = 0
    rooms_deleted: list[str] = field(default_factory=list)
    rooms_failed: list[str] = field(default_factory=list)


class RoomSweeper:
    """
    Periodic cleanup owned by the app lifespan.

    - players silent for ACTIVE_PLAYER_TIMEOUT_SEC (racing) or
      SETUP_PLAYER_TIMEOUT_SEC (setup) are dropped
    - empty rooms older than EMPTY_ROOM_TTL_SEC are deleted
    - any room older than ROOM_MAX_AGE_SEC is deleted
    """

    def __init__(self, store: RoomStore, settings: Settings, clock: Callable[[], int] = now_ms):
        self.store = store
        self.settings = settings
        self.clock = clock
        self._task: asyncio.Task | None = None

    async def sweep_once(self) -> SweepReport:
        report = SweepReport()
        now = self.clock()
        for room_id, room in await self.store.list():
            try:
                await self._sweep_room(room_id, room, now, report)
            except Exception:
                logger.exception(f"Sweep failed for room {room_id}, skipping")
                report.rooms_failed.append(room_id)
        if report.players_evicted or report.rooms_deleted:
            logger.info(
                f"🧹 Sweep: {report.players_evicted} players evicted, "
                f"{len(report.rooms_deleted)} rooms deleted"
            )
        return report

    async def _sweep_room(self, room_id: str, room: Room, now: int, report: SweepReport) -> None:
        s = self.settings
        timeout_ms = (s.ACTIVE_PLAYER_TIMEOUT_SEC if room.is_active else s.SETUP_PLAYER_TIMEOUT_SEC) * 1000
        alive = [p for p in room.players if now - p.last_seen() < timeout_ms]
        evicted = len(room.players) - len(alive)

        age_ms = now - room.created_at
        if (not alive and age_ms > s.EMPTY_ROOM_TTL_SEC * 1000) or age_ms > s.ROOM_MAX_AGE_SEC * 1000:
            await self.store.delete(room_id)
            report.players_evicted += evicted
            report.rooms_deleted.append(room_id)
            return

        if evicted:
            room.players = alive
            await self.store.set(room_id, room)
            report.players_evicted += evicted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.settings.SWEEP_INTERVAL_SEC)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Room sweep crashed, retrying next interval")

    def start(self) -> None:
        if self._task and not self._task.done():
            logger.warning("Room sweeper already running")
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Room sweeper started (every {self.settings.SWEEP_INTERVAL_SEC}s)")

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Room sweeper stopped")
