import argparse
import asyncio
import logging

from holdem.models import Pacing
from .server import LobbyConfig, LobbyServer

logging.basicConfig(level=logging.INFO)


def main() -> None:
    parser = argparse.ArgumentParser(description="Pokare Texas Hold'em lobby server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=3001)
    parser.add_argument(
        "--turn-timeout",
        type=int,
        default=60_000,
        help="Turn timeout in milliseconds before an idle player is folded (0 disables)",
    )
    parser.add_argument(
        "--phase-delay",
        type=int,
        default=1_200,
        help="Pause after dealing community cards, in milliseconds",
    )
    parser.add_argument("--bot-think", type=int, default=900, help="Bot decision delay in milliseconds")
    parser.add_argument(
        "--empty-room-ttl",
        type=float,
        default=60.0,
        help="Seconds a room may sit without human players before it is removed",
    )
    args = parser.parse_args()

    config = LobbyConfig(
        host=args.host,
        port=args.port,
        turn_timeout_ms=args.turn_timeout,
        bot_think_ms=args.bot_think,
        empty_room_ttl_s=args.empty_room_ttl,
        pacing=Pacing(phase_delay_ms=args.phase_delay),
    )
    asyncio.run(LobbyServer(config).start())


if __name__ == "__main__":
    main()
