from collections.abc import Callable

from fastapi import Request

from src.apps.rooms.codes import CodeAllocator
from src.apps.rooms.models import now_ms
from src.apps.rooms.service import RoomService
from src.core.config import Settings, get_settings
from src.core.database import InMemoryRoomStore, RoomStore, RoomSweeper


def build_room_service(
    settings: Settings | None = None,
    store: RoomStore | None = None,
    clock: Callable[[], int] = now_ms,
) -> RoomService:
    """Wire store → allocator → service. App startup and tests both use this."""
    settings = settings or get_settings()
    store = store or InMemoryRoomStore()
    allocator = CodeAllocator(
        store,
        length=settings.ROOM_CODE_LENGTH,
        max_attempts=settings.ROOM_CODE_MAX_ATTEMPTS,
    )
    return RoomService(store, allocator, settings, clock=clock)


def build_sweeper(service: RoomService) -> RoomSweeper:
    return RoomSweeper(service.store, service.settings, clock=service.clock)


def get_room_service(request: Request) -> RoomService:
    """FastAPI dependency: the service instance created by the app factory."""
    return request.app.state.room_service
