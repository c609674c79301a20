"""
codes.py — Room Code Allocator
==============================
Short human-readable join codes (ABC234 format) and the one canonical
code → room lookup.
"""

import asyncio
import logging
import random
import re

from src.apps.rooms.models import Room
from src.core.database import RoomStore
from src.core.errors import CodeAllocationError, NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

# No 0/O or 1/I
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

_CODE_FORMAT = re.compile(r"^[A-Z0-9]{6}$")


def normalize_code(raw: str | None) -> str:
    """
    Uppercase + trim, then require exactly 6 alphanumerics.

    Raises:
        ValidationError: malformed code (distinct from an unknown one)
    """
    code = (raw or "").strip().upper()
    if not _CODE_FORMAT.match(code):
        raise ValidationError(
            "INVALID_ROOM_CODE",
            f'Invalid room code format. Code must be exactly 6 alphanumeric characters. Received: "{raw or "nothing"}"',
        )
    return code


class CodeAllocator:
    def __init__(
        self,
        store: RoomStore,
        length: int = 6,
        max_attempts: int = 100,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.length = length
        self.max_attempts = max_attempts
        self.rng = rng or random.Random()
        self._lock = asyncio.Lock()

    def generate_code(self) -> str:
        return "".join(self.rng.choices(CODE_ALPHABET, k=self.length))

    async def assign_code(self, room_id: str) -> str:
        """
        Give the room a code if it has none; return the room's code.

        The write is read back before returning so a code the store dropped
        is never handed to a client.

        Raises:
            NotFoundError: no such room
            CodeAllocationError: every attempt collided
            StorageError: the code did not survive the round trip
        """
        async with self._lock:
            room = await self.store.get(room_id)
            if room is None:
                raise NotFoundError("ROOM_NOT_FOUND", f"Room not found: {room_id}")
            if room.code:
                return room.code

            taken = {r.code for _, r in await self.store.list() if r.code}
            code = None
            for _ in range(self.max_attempts):
                candidate = self.generate_code()
                if candidate not in taken:
                    code = candidate
                    break
            if code is None:
                logger.error(f"Code space exhausted after {self.max_attempts} attempts ({len(taken)} codes in use)")
                raise CodeAllocationError(details={"room_id": room_id, "attempts": self.max_attempts})

            room.code = code
            await self.store.set(room_id, room)

            stored = await self.store.get(room_id)
            if stored is None or stored.code != code:
                logger.error(f"Room code {code} for {room_id} did not persist")
                raise StorageError("CODE_NOT_PERSISTED", "Room code could not be saved, please retry")

        logger.info(f"🔑 Room {room_id} assigned code {code}")
        return code

    async def resolve_code(self, raw_code: str | None) -> Room:
        code = normalize_code(raw_code)
        room = await self.store.find_by_code(code)
        if room is None:
            raise NotFoundError("ROOM_CODE_NOT_FOUND", "Room not found. Please check the code.")
        return room
