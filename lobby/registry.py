from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Dict, List, Optional

from holdem.game import PokerRoom
from holdem.models import Pacing, RoomSettings

from .session import Deliver, RoomSession, SessionTiming

LOGGER = logging.getLogger("pokare_lobby")

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 5


class RoomRegistry:
    """Live rooms keyed by join code. One instance per server."""

    def __init__(
        self,
        deliver: Deliver,
        timing: Optional[SessionTiming] = None,
        empty_room_ttl_s: float = 60.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.deliver = deliver
        self.timing = timing or SessionTiming()
        self.empty_room_ttl_s = empty_room_ttl_s
        self.rng = rng or random.Random()
        self.sessions: Dict[str, RoomSession] = {}
        self.lock = asyncio.Lock()

    async def create(self, settings: RoomSettings, pacing: Optional[Pacing] = None) -> RoomSession:
        settings.validate()
        async with self.lock:
            code = self._generate_code()
            room = PokerRoom(code, settings, pacing=pacing)
            session = RoomSession(room, self.deliver, self.timing)
            self.sessions[code] = session
        LOGGER.info("Room %s created (%s rooms live)", code, len(self.sessions))
        return session

    def get(self, code: str) -> Optional[RoomSession]:
        return self.sessions.get(code.strip().upper())

    async def remove(self, code: str) -> None:
        async with self.lock:
            session = self.sessions.pop(code.strip().upper(), None)
        if session is not None:
            await session.close()
            LOGGER.info("Room %s removed", session.code)

    async def sweep(self, now: Optional[float] = None) -> List[str]:
        """Drop rooms that have had no human seated for longer than the TTL."""
        now = time.monotonic() if now is None else now
        expired = [
            code
            for code, session in self.sessions.items()
            if session.empty_since is not None and now - session.empty_since >= self.empty_room_ttl_s
        ]
        for code in expired:
            await self.remove(code)
        return expired

    def _generate_code(self) -> str:
        while True:
            code = "".join(self.rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
            if code not in self.sessions:
                return code
