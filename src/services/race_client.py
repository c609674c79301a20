"""
race_client.py — HTTP client for the room API
=============================================
Thin async wrapper over the /api/rooms endpoints. Error envelopes come back
as the same exception classes the server raised; transport failures and
timeouts become NetworkError.

Usage:
    async with RaceClient("http://localhost:8000") as client:
        room = await client.create_or_join(player_id, profile, lat, lng)
        room = await client.start(room.id, player_id, duration=120)
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from src.apps.rooms.models import PlayerProfile, Room
from src.core.config import get_settings
from src.core.errors import NetworkError, NotFoundError, RaceError, error_from_envelope

logger = logging.getLogger(__name__)


class RaceClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.RACE_API_URL
        self.timeout = timeout if timeout is not None else settings.CLIENT_TIMEOUT_SEC
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )
        self._background: set[asyncio.Task] = set()

    async def __aenter__(self) -> RaceClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self._client.aclose()

    # ── Helpers ─────────────────────────────────────────

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {path} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.is_error or not body.get("success", False):
            raise error_from_envelope(resp.status_code, body if isinstance(body, dict) else {})
        return body

    async def _action(self, room_id: str, action: str, player_id: str, **fields: Any) -> Room:
        payload = {"action": action, "playerId": player_id}
        payload.update({k: v for k, v in fields.items() if v is not None})
        body = await self._request("POST", f"/api/rooms/{room_id}", json=payload)
        return Room.model_validate(body["room"])

    # ═══════════════════════════════════════════════════
    # ROOMS
    # ═══════════════════════════════════════════════════

    async def create_or_join(self, player_id: str, profile: PlayerProfile, lat: float, lng: float) -> Room:
        body = await self._request("POST", "/api/rooms", json={
            "playerId": player_id,
            "playerName": profile.name,
            "playerColor": profile.color,
            "playerAvatar": profile.avatar,
            "lat": lat,
            "lng": lng,
        })
        return Room.model_validate(body["room"])

    async def get_room(self, room_id: str) -> Room:
        body = await self._request("GET", f"/api/rooms/{room_id}")
        return Room.model_validate(body["room"])

    async def get_room_or_none(self, room_id: str) -> Room | None:
        """Lookup that never hangs or raises for a missing/offline room."""
        try:
            return await self.get_room(room_id)
        except (NotFoundError, NetworkError) as e:
            logger.info(f"Room {room_id} unavailable: {e.message}")
            return None

    async def join(
        self,
        room_id: str,
        player_id: str,
        profile: PlayerProfile,
        lat: float | None = None,
        lng: float | None = None,
    ) -> Room:
        return await self._action(
            room_id, "join", player_id,
            playerName=profile.name,
            playerColor=profile.color,
            playerAvatar=profile.avatar,
            lat=lat,
            lng=lng,
        )

    async def update_player(self, room_id: str, player_id: str, **fields: Any) -> Room:
        """fields: name, color, avatar, lat, lng"""
        return await self._action(
            room_id, "updatePlayer", player_id,
            playerName=fields.get("name"),
            playerColor=fields.get("color"),
            playerAvatar=fields.get("avatar"),
            lat=fields.get("lat"),
            lng=fields.get("lng"),
        )

    async def start(self, room_id: str, player_id: str, duration: int | None = None) -> Room:
        return await self._action(room_id, "start", player_id, duration=duration)

    async def push_telemetry(self, room_id: str, player_id: str, telemetry: dict[str, Any]) -> Room:
        return await self._action(room_id, "update", player_id, **telemetry)

    async def leave(self, room_id: str, player_id: str) -> Room:
        return await self._action(room_id, "leave", player_id)

    def leave_beacon(self, room_id: str, player_id: str) -> asyncio.Task:
        """
        Fire-and-forget leave for page close / app shutdown. Never blocks the
        caller; a failure is only logged.
        """
        async def _send():
            try:
                await self.leave(room_id, player_id)
            except RaceError as e:
                logger.warning(f"Leave beacon for {player_id} in {room_id} failed: {e.message}")

        task = asyncio.create_task(_send())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def resolve_code(self, code: str) -> dict[str, Any]:
        body = await self._request("GET", f"/api/rooms/code/{code.strip()}")
        return body["room"]

    async def join_by_code(self, code: str, player_id: str, profile: PlayerProfile) -> Room:
        summary = await self.resolve_code(code)
        return await self.join(summary["id"], player_id, profile)

    async def find_nearby(self, lat: float, lng: float, radius: float | None = None) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {"lat": lat, "lng": lng}
        if radius is not None:
            payload["radius"] = radius
        body = await self._request("POST", "/api/rooms/find", json=payload)
        return body["rooms"]

    # ═══════════════════════════════════════════════════
    # PLAYERS
    # ═══════════════════════════════════════════════════

    async def identity(self) -> str:
        body = await self._request("GET", "/api/players/identity")
        return body["playerId"]
