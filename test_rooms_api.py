"""
Room API over HTTP
==================
Drives the FastAPI app in-process (httpx + ASGITransport) and checks the
`{success, ...}` envelope on every endpoint.

Usage:
    pytest test_rooms_api.py
"""

import pytest

from conftest import CENTER

LAT, LNG = CENTER


def _create_body(player_id: str, name: str, **extra) -> dict:
    return {"playerId": player_id, "playerName": name, "lat": LAT, "lng": LNG, **extra}


async def _create(api, player_id: str, name: str, **extra) -> dict:
    resp = await api.post("/api/rooms", json=_create_body(player_id, name, **extra))
    assert resp.status_code == 200, resp.text
    return resp.json()["room"]


# ═══ SYSTEM ═══

async def test_health_and_root(api):
    health = await api.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert "X-Process-Time" in health.headers

    root = await api.get("/")
    assert root.json()["success"] is True


async def test_identity(api):
    resp = await api.get("/api/players/identity", headers={"x-forwarded-for": "10.0.0.7, 172.16.0.1"})
    body = resp.json()
    assert body["ip"] == "10.0.0.7"
    assert body["playerId"].startswith("player-10-0-0-7-")


# ═══ CREATE / JOIN ═══

async def test_create_room_envelope(api):
    resp = await api.post("/api/rooms", json=_create_body("a", "Ada", playerColor="#3B82F6", playerAvatar="🦖"))

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    room = body["room"]
    assert room["id"] == "room-p43774-n79502"
    assert room["hostId"] == "a"
    assert room["isActive"] is False
    assert room["startTime"] is None
    assert len(room["code"]) == 6
    player = room["players"][0]
    assert player["color"] == "#3B82F6"
    assert player["avatar"] == "🦖"
    assert "joinedAt" in player


@pytest.mark.parametrize("body", [
    {"playerName": "Ada", "lat": LAT, "lng": LNG},
    {"playerId": "a", "playerName": "Ada", "lat": LAT},
    {"playerId": "a", "playerName": "Ada", "lat": 123.0, "lng": LNG},
])
async def test_create_room_validation(api, body):
    resp = await api.post("/api/rooms", json=body)
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert resp.json()["code"] == "VALIDATION_ERROR"


async def test_room_full(api):
    for i in range(6):
        await _create(api, f"p{i}", f"P{i}")

    resp = await api.post("/api/rooms", json=_create_body("p6", "P6"))
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Room is full", "code": "ROOM_FULL"}


async def test_join_action(api):
    room = await _create(api, "a", "Ada")

    resp = await api.post(f"/api/rooms/{room['id']}", json={
        "action": "join", "playerId": "b", "playerName": "Bo", "playerAvatar": "👻",
    })

    assert resp.status_code == 200
    players = resp.json()["room"]["players"]
    assert [p["id"] for p in players] == ["a", "b"]
    assert players[1]["avatar"] == "👻"


async def test_unknown_action_and_room(api):
    room = await _create(api, "a", "Ada")

    bad = await api.post(f"/api/rooms/{room['id']}", json={"action": "dance", "playerId": "a"})
    assert bad.status_code == 400

    missing = await api.get("/api/rooms/room-p0-p0")
    assert missing.status_code == 404
    assert missing.json()["code"] == "ROOM_NOT_FOUND"


# ═══ START ═══

async def test_start_rules(api):
    room = await _create(api, "a", "Ada")
    url = f"/api/rooms/{room['id']}"

    lonely = await api.post(url, json={"action": "start", "playerId": "a"})
    assert lonely.status_code == 400
    assert lonely.json()["code"] == "NOT_ENOUGH_PLAYERS"

    await _create(api, "b", "Bo")
    not_host = await api.post(url, json={"action": "start", "playerId": "b"})
    assert not_host.status_code == 403
    assert not_host.json()["success"] is False

    started = await api.post(url, json={"action": "start", "playerId": "a", "duration": 120})
    assert started.status_code == 200
    assert started.json()["room"]["isActive"] is True
    assert started.json()["room"]["duration"] == 120

    late = await api.post("/api/rooms", json=_create_body("c", "Cy"))
    assert late.status_code == 400
    assert late.json()["code"] == "RACE_IN_PROGRESS"


# ═══ TELEMETRY ═══

async def test_update_and_poll(api, clock):
    room = await _create(api, "a", "Ada")
    clock.advance(2)

    resp = await api.post(f"/api/rooms/{room['id']}", json={
        "action": "update", "playerId": "a",
        "lat": 43.77352, "lng": -79.50188, "distance": 0.42, "speed": 11.3, "points": 6,
    })
    assert resp.status_code == 200

    polled = (await api.get(f"/api/rooms/{room['id']}")).json()["room"]
    me = polled["players"][0]
    assert (me["distance"], me["speed"], me["points"]) == (0.42, 11.3, 6)
    assert me["lastUpdate"] == clock()


async def test_update_player_color_conflict(api):
    room = await _create(api, "a", "Ada", playerColor="#EF4444")
    await _create(api, "b", "Bo", playerColor="#3B82F6")

    resp = await api.post(f"/api/rooms/{room['id']}", json={
        "action": "updatePlayer", "playerId": "b", "playerColor": "#EF4444",
    })
    assert resp.status_code == 400
    assert resp.json()["code"] == "COLOR_TAKEN"


async def test_leave(api):
    room = await _create(api, "a", "Ada")
    await _create(api, "b", "Bo")

    resp = await api.post(f"/api/rooms/{room['id']}", json={"action": "leave", "playerId": "a"})
    body = resp.json()["room"]
    assert [p["id"] for p in body["players"]] == ["b"]
    assert body["hostId"] == "a"


# ═══ DISCOVERY ═══

async def test_code_lookup(api):
    room = await _create(api, "a", "Ada")

    resp = await api.get(f"/api/rooms/code/{room['code'].lower()}")
    assert resp.status_code == 200
    summary = resp.json()["room"]
    assert summary["id"] == room["id"]
    assert summary["playerCount"] == 1

    malformed = await api.get("/api/rooms/code/ABC")
    assert malformed.status_code == 400
    assert malformed.json()["code"] == "INVALID_ROOM_CODE"

    unknown = await api.get("/api/rooms/code/ZZZ999")
    assert unknown.status_code == 404


async def test_find_rooms(api):
    room = await _create(api, "a", "Ada")

    near = await api.post("/api/rooms/find", json={"lat": LAT + 0.0001, "lng": LNG})
    rooms = near.json()["rooms"]
    assert [r["id"] for r in rooms] == [room["id"]]
    assert rooms[0]["playerCount"] == 1
    assert rooms[0]["code"] == room["code"]

    far = await api.post("/api/rooms/find", json={"lat": LAT + 0.01, "lng": LNG})
    assert far.json()["rooms"] == []


async def test_list_rooms(api):
    await _create(api, "a", "Ada")
    resp = await api.get("/api/rooms")
    assert [r["id"] for r in resp.json()["rooms"]] == ["room-p43774-n79502"]


async def test_update_player_rejects_empty_name(api):
    room = await _create(api, "a", "Ada")

    resp = await api.post(f"/api/rooms/{room['id']}", json={
        "action": "updatePlayer", "playerId": "a", "playerName": "",
    })
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"

    polled = (await api.get(f"/api/rooms/{room['id']}")).json()["room"]
    assert polled["players"][0]["name"] == "Ada"
