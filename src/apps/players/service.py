"""
service.py — Player identity
============================
Accounts live elsewhere; the race core only needs a stable string per
runner. Anonymous clients get one derived from their IP the first time and
keep it in local storage afterwards.
"""

import secrets

from fastapi import Request

from src.apps.rooms.models import now_ms


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def derive_player_id(ip: str, stamp: int | None = None) -> str:
    """
    `player-10-0-0-7-1718000000000` for IP 10.0.0.7.

    Unknown IPs get a random token instead so two of them never collide.
    """
    stamp = now_ms() if stamp is None else stamp
    if not ip or ip == "unknown":
        return f"player-{secrets.token_hex(4)}-{stamp}"
    safe = ip.replace(".", "-").replace(":", "-")
    return f"player-{safe}-{stamp}"
