import pytest

from conftest import CENTER, START_MS, make_profile
from src.apps.rooms.models import AVAILABLE_COLORS
from src.core.errors import AuthorizationError, CapacityError, NotFoundError, ValidationError
from src.core.race_clock import RacePhase

LAT, LNG = CENTER


async def _room_with(service, *names):
    room = None
    for name in names:
        room = await service.create_or_join(LAT, LNG, name, make_profile(name))
    return room


# ── Create / join ────────────────────────────────────

async def test_first_player_creates_room_and_hosts(service):
    room = await service.create_or_join(LAT, LNG, "a", make_profile("Ada", color="#3B82F6"))

    assert room.id == "room-p43774-n79502"
    assert room.host_id == "a"
    assert not room.is_active
    assert room.start_time is None
    assert len(room.code) == 6
    assert room.created_at == START_MS
    [player] = room.players
    assert (player.name, player.color, player.avatar) == ("Ada", "#3B82F6", "🦖")
    assert (player.lat, player.lng) == (LAT, LNG)
    assert player.joined_at == START_MS


async def test_nearby_player_lands_in_same_room(service):
    first = await service.create_or_join(LAT, LNG, "a", make_profile("Ada"))
    second = await service.create_or_join(43.7744, -79.5024, "b", make_profile("Bo"))

    assert second.id == first.id
    assert second.code == first.code
    assert [p.id for p in second.players] == ["a", "b"]
    assert second.host_id == "a"


async def test_repeat_create_is_idempotent(service, store):
    await service.create_or_join(LAT, LNG, "a", make_profile("Ada"))
    again = await service.create_or_join(LAT, LNG, "a", make_profile("Ada"))

    assert len(again.players) == 1
    assert store.count() == 1


async def test_taken_color_gets_first_free(service):
    await service.create_or_join(LAT, LNG, "a", make_profile("Ada", color=AVAILABLE_COLORS[0]))
    room = await service.create_or_join(LAT, LNG, "b", make_profile("Bo", color=AVAILABLE_COLORS[0]))

    assert room.players[1].color == AVAILABLE_COLORS[1]


async def test_no_color_gets_first_free(service):
    room = await _room_with(service, "a", "b")
    assert [p.color for p in room.players] == AVAILABLE_COLORS[:2]


async def test_seventh_player_is_rejected(service):
    room = await _room_with(service, *"abcdef")
    assert len(room.players) == 6

    with pytest.raises(CapacityError) as exc:
        await service.create_or_join(LAT, LNG, "g", make_profile("G"))
    assert exc.value.code == "ROOM_FULL"
    assert exc.value.status == 400


async def test_join_after_start_is_rejected(service):
    room = await _room_with(service, "a", "b")
    await service.start(room.id, "a")

    with pytest.raises(CapacityError) as exc:
        await service.create_or_join(LAT, LNG, "c", make_profile("C"))
    assert exc.value.code == "RACE_IN_PROGRESS"

    with pytest.raises(CapacityError):
        await service.join(room.id, "c", make_profile("C"))


async def test_member_can_recreate_after_start(service):
    room = await _room_with(service, "a", "b")
    await service.start(room.id, "a")

    again = await service.create_or_join(LAT, LNG, "b", make_profile("Bo"))
    assert again.is_active
    assert len(again.players) == 2


@pytest.mark.parametrize("lat,lng", [(None, LNG), (LAT, None), (91.0, LNG), (LAT, 181.0)])
async def test_create_rejects_bad_location(service, lat, lng):
    with pytest.raises(ValidationError):
        await service.create_or_join(lat, lng, "a", make_profile("Ada"))


async def test_create_rejects_missing_player_id(service):
    with pytest.raises(ValidationError):
        await service.create_or_join(LAT, LNG, "", make_profile("Ada"))


async def test_explicit_join_and_rejoin_refreshes_profile(service):
    room = await _room_with(service, "a")

    joined = await service.join(room.id, "b", make_profile("Bo"), 43.7736, -79.5018)
    assert [p.id for p in joined.players] == ["a", "b"]

    rejoined = await service.join(room.id, "b", make_profile("Bobby", avatar="👻"))
    assert len(rejoined.players) == 2
    assert rejoined.players[1].name == "Bobby"
    assert rejoined.players[1].avatar == "👻"
    assert rejoined.players[1].lat == 43.7736


async def test_join_unknown_room(service):
    with pytest.raises(NotFoundError):
        await service.join("room-p0-p0", "a", make_profile("Ada"))


async def test_join_into_hostless_room_takes_host(service, store):
    room = await _room_with(service, "a")
    room.host_id = None
    room.players = []
    await store.set(room.id, room)

    joined = await service.join(room.id, "b", make_profile("Bo"))
    assert joined.host_id == "b"


# ── Updates ──────────────────────────────────────────

async def test_update_profile(service):
    room = await _room_with(service, "a", "b")

    updated = await service.update_profile(room.id, "b", {"name": "Bee", "avatar": "🤖", "color": "#A855F7"})

    player = updated.find_player("b")
    assert (player.name, player.avatar, player.color) == ("Bee", "🤖", "#A855F7")
    assert updated.find_player("a").name == "a"


async def test_update_profile_rejects_taken_color(service):
    room = await _room_with(service, "a", "b")

    with pytest.raises(ValidationError) as exc:
        await service.update_profile(room.id, "b", {"color": room.players[0].color})
    assert exc.value.code == "COLOR_TAKEN"


async def test_update_profile_keeps_own_color(service):
    room = await _room_with(service, "a")
    same = room.players[0].color
    updated = await service.update_profile(room.id, "a", {"color": same})
    assert updated.players[0].color == same


async def test_update_unknown_player(service):
    room = await _room_with(service, "a")
    with pytest.raises(NotFoundError):
        await service.update_telemetry(room.id, "ghost", {"distance": 1})


async def test_update_telemetry_merges_and_stamps(service, clock):
    room = await _room_with(service, "a", "b")
    clock.advance(5)

    updated = await service.update_telemetry(
        room.id, "a", {"lat": 43.7736, "lng": -79.5018, "distance": 0.5, "speed": 12.0, "points": 6}
    )

    a = updated.find_player("a")
    assert (a.lat, a.lng, a.distance, a.speed, a.points) == (43.7736, -79.5018, 0.5, 12.0, 6)
    assert a.last_update == clock()
    assert updated.updated_at == clock()
    assert updated.find_player("b").distance == 0


async def test_update_telemetry_partial_and_monotonic(service):
    room = await _room_with(service, "a")
    await service.update_telemetry(room.id, "a", {"distance": 1.0, "points": 10, "speed": 9.0})

    updated = await service.update_telemetry(room.id, "a", {"distance": 0.4, "points": 3, "speed": None})

    a = updated.find_player("a")
    assert a.distance == 1.0
    assert a.points == 10
    assert a.speed == 9.0


async def test_update_telemetry_without_fields_is_heartbeat(service, clock):
    room = await _room_with(service, "a")
    clock.advance(20)
    updated = await service.update_telemetry(room.id, "a", {})
    assert updated.find_player("a").last_update == clock()


# ── Start ────────────────────────────────────────────

async def test_host_starts_race(service, clock):
    room = await _room_with(service, "a", "b")
    clock.advance(3)

    started = await service.start(room.id, "a", duration=120)

    assert started.is_active
    assert started.start_time == clock()
    assert started.duration == 120
    assert service.phase(started) is RacePhase.ACTIVE

    clock.advance(120)
    assert service.phase(await service.get_room(room.id)) is RacePhase.ENDED


async def test_start_without_duration_leaves_it_unset(service, store):
    room = await _room_with(service, "a", "b")
    started = await service.start(room.id, "a")
    assert started.duration is None
    assert "duration" not in (await store.get(room.id)).model_fields_set


async def test_non_host_cannot_start(service):
    room = await _room_with(service, "a", "b")
    with pytest.raises(AuthorizationError) as exc:
        await service.start(room.id, "b")
    assert exc.value.status == 403
    assert not (await service.get_room(room.id)).is_active


async def test_start_needs_two_players(service):
    room = await _room_with(service, "a")
    with pytest.raises(CapacityError) as exc:
        await service.start(room.id, "a")
    assert exc.value.code == "NOT_ENOUGH_PLAYERS"


async def test_start_rejects_bad_duration(service):
    room = await _room_with(service, "a", "b")
    with pytest.raises(ValidationError):
        await service.start(room.id, "a", duration=0)


async def test_second_start_is_a_no_op(service, clock):
    room = await _room_with(service, "a", "b")
    first = await service.start(room.id, "a", duration=60)
    clock.advance(10)

    second = await service.start(room.id, "a", duration=300)

    assert second.start_time == first.start_time
    assert second.duration == 60


async def test_host_reelected_when_host_gone(service):
    room = await _room_with(service, "a", "b", "c")
    await service.leave(room.id, "a")

    with pytest.raises(AuthorizationError):
        await service.start(room.id, "c")
    assert (await service.get_room(room.id)).host_id == "b"

    started = await service.start(room.id, "b")
    assert started.is_active


# ── Leave ────────────────────────────────────────────

async def test_leave_keeps_host_and_race(service):
    room = await _room_with(service, "a", "b", "c")
    await service.start(room.id, "a")

    after = await service.leave(room.id, "a")

    assert [p.id for p in after.players] == ["b", "c"]
    assert after.host_id == "a"
    assert after.is_active


async def test_leave_unknown_player_is_harmless(service):
    room = await _room_with(service, "a")
    after = await service.leave(room.id, "nobody")
    assert [p.id for p in after.players] == ["a"]


# ── Discovery ────────────────────────────────────────

async def test_find_nearby(service):
    room = await _room_with(service, "a")
    far = await service.create_or_join(43.7835, -79.5019, "z", make_profile("Z"))

    found = await service.find_nearby(43.7736, -79.5019)

    assert [r["id"] for r in found] == [room.id]
    hit = found[0]
    assert hit["code"] == room.code
    assert hit["playerCount"] == 1
    assert hit["distance"] <= 0.1

    wide = await service.find_nearby(43.7736, -79.5019, radius_km=5)
    assert {r["id"] for r in wide} == {room.id, far.id}


async def test_find_nearby_skips_full_and_active(service):
    full = await _room_with(service, *"abcdef")
    racing_lat = 43.7790
    await service.create_or_join(racing_lat, LNG, "x", make_profile("X"))
    racing = await service.create_or_join(racing_lat, LNG, "y", make_profile("Y"))
    await service.start(racing.id, "x")

    found = await service.find_nearby(LAT, LNG, radius_km=1)
    ids = {r["id"] for r in found}
    assert full.id not in ids
    assert racing.id not in ids


async def test_lookup_code(service):
    room = await _room_with(service, "a")

    found = await service.lookup_code(room.code.lower())
    assert found.id == room.id

    await service.create_or_join(LAT, LNG, "b", make_profile("B"))
    await service.start(room.id, "a")
    with pytest.raises(CapacityError):
        await service.lookup_code(room.code)


async def test_lookup_code_full_room(service):
    room = await _room_with(service, *"abcdef")
    with pytest.raises(CapacityError) as exc:
        await service.lookup_code(room.code)
    assert exc.value.code == "ROOM_FULL"
