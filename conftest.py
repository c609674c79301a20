"""Shared pytest fixtures: a controllable clock, a fresh store and an in-process app."""

import httpx
import pytest

from src.apps.rooms.models import PlayerProfile
from src.core.config import Settings
from src.core.database import InMemoryRoomStore
from src.core.dependencies import build_room_service
from src.main import create_app
from src.services.race_client import RaceClient

START_MS = 1_718_000_000_000
CENTER = (43.7735, -79.5019)


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


def make_profile(name: str, color: str | None = None, avatar: str = "🦖") -> PlayerProfile:
    return PlayerProfile(name=name, color=color, avatar=avatar)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def store():
    return InMemoryRoomStore()


@pytest.fixture
def service(settings, store, clock):
    return build_room_service(settings, store, clock)


@pytest.fixture
def app(settings, store, clock):
    return create_app(settings, store, clock, run_sweeper=False)


@pytest.fixture
async def api(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def race_clients(app):
    """Two independent clients talking to the same app."""
    a = RaceClient(base_url="http://test", transport=httpx.ASGITransport(app=app))
    b = RaceClient(base_url="http://test", transport=httpx.ASGITransport(app=app))
    yield a, b
    await a.aclose()
    await b.aclose()
