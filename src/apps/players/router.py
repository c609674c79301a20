from fastapi import APIRouter, Request

from src.apps.players.service import client_ip, derive_player_id

router = APIRouter(prefix="/api/players", tags=["players"])


@router.get("/identity")
async def identity_endpoint(request: Request):
    """Fresh player id for a client that has none stored yet."""
    ip = client_ip(request)
    return {"success": True, "ip": ip, "playerId": derive_player_id(ip)}
