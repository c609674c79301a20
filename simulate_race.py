#!/usr/bin/env python3
"""
Simulated race against a running server
=======================================
Spawns N bot runners at the same spot, lets the first one host and start
a timed race, then runs one RaceSession per bot on synthetic GPS laps and
prints every bot's final standings.

Usage:
    uvicorn src.main:app            # in another terminal
    python simulate_race.py --runners 3 --duration 20
"""

import argparse
import asyncio
import logging
import time

from src.apps.rooms.models import AVAILABLE_COLORS, PlayerProfile
from src.services.gps_sim import DEFAULT_CENTER, stream_fixes
from src.services.race_client import RaceClient
from src.services.race_session import RaceSession

AVATARS = ["🦀", "🦖", "👻", "👽", "🤖", "🦄"]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="GPS race room simulator")
    p.add_argument("--base-url", default="http://localhost:8000")
    p.add_argument("--runners", type=int, default=2, choices=range(2, 7))
    p.add_argument("--duration", type=int, default=15, help="Race length in seconds")
    p.add_argument("--lat", type=float, default=DEFAULT_CENTER[0])
    p.add_argument("--lng", type=float, default=DEFAULT_CENTER[1])
    p.add_argument("--base-speed", type=float, default=9.0, help="km/h of the slowest bot")
    return p


async def main(args: argparse.Namespace) -> None:
    t0 = time.time()
    run_tag = int(t0)
    clients = [RaceClient(args.base_url) for _ in range(args.runners)]
    ids = [f"bot-{i}-{run_tag}" for i in range(args.runners)]

    try:
        room = None
        for i, (client, player_id) in enumerate(zip(clients, ids)):
            profile = PlayerProfile(name=f"Bot {i + 1}", color=AVAILABLE_COLORS[i], avatar=AVATARS[i])
            room = await client.create_or_join(player_id, profile, args.lat, args.lng)
            print(f"[{time.time() - t0:.1f}s] {player_id} joined {room.id} (code {room.code})")

        room = await clients[0].start(room.id, ids[0], duration=args.duration)
        print(f"[{time.time() - t0:.1f}s] Race started, auto-stop in {args.duration}s")

        sessions = [RaceSession(client, room, player_id) for client, player_id in zip(clients, ids)]
        results = await asyncio.gather(*[
            session.run(gps=stream_fixes(player_id, args.base_speed + 2 * i, center=(args.lat, args.lng)))
            for i, (session, player_id) in enumerate(zip(sessions, ids))
        ])

        for player_id, result in zip(ids, results):
            print(f"\n=== {player_id} sees ===")
            for place, runner in enumerate(result.standings, 1):
                print(f"  {place}. {runner.name:<8} {runner.points:>4} pts  {runner.distance:.3f} km")

        winners = {r.winner.id for r in results if r.winner}
        print(f"\nWinner agreement: {'yes' if len(winners) == 1 else 'NO'} {sorted(winners)}")

        for session in sessions:
            await session.leave()
    finally:
        for client in clients:
            await client.aclose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(main(build_parser().parse_args()))
