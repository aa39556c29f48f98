from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set

from holdem.bots import BotStrategy, baseline_strategy
from holdem.game import PokerRoom
from holdem.models import ActionType, RoomError, Step

LOGGER = logging.getLogger("pokare_lobby")

# RoomSession is the only way into a PokerRoom. Every inbound command, timer
# and bot decision takes `self.lock`, so a room never sees two mutations
# interleave. Timers are plain asyncio tasks that carry the room generation
# they were scheduled for and bail out when the room has moved on.

Deliver = Callable[[str, str, Dict[str, object]], Awaitable[None]]
Event = Dict[str, object]

_RUNNABLE_STEPS = (Step.PROMPT, Step.ADVANCE, Step.BETTING)


@dataclass
class SessionTiming:
    turn_timeout_ms: int = 60_000
    bot_think_ms: int = 900


class RoomSession:
    def __init__(
        self,
        room: PokerRoom,
        deliver: Deliver,
        timing: Optional[SessionTiming] = None,
        bot_strategy: BotStrategy = baseline_strategy,
    ) -> None:
        self.room = room
        self.deliver = deliver
        self.timing = timing or SessionTiming()
        self.bot_strategy = bot_strategy
        self.lock = asyncio.Lock()
        self.timers: Set[asyncio.Task] = set()
        self.closed = False
        self.empty_since: Optional[float] = time.monotonic()
        self._scheduled_generation: Optional[int] = None
        self._bot_counter = 0

    @property
    def code(self) -> str:
        return self.room.code

    # Commands --------------------------------------------------------

    async def join(self, player_id: str, name: str, reply_type: str = "roomJoined") -> bool:
        async with self.lock:
            if self.closed:
                await self._send_error(player_id, "ROOM_NOT_FOUND", "Room not found")
                return False
            try:
                self.room.add_player(player_id, name)
            except RoomError as exc:
                await self._send_error(player_id, exc.code, exc.msg)
                return False
            LOGGER.info("%s (%s) joined room %s", name, player_id, self.code)
            self._touch_presence()
            await self.deliver(
                player_id,
                reply_type,
                {"code": self.code, "playerId": player_id, "settings": self.room.settings.to_payload()},
            )
            await self._publish([], roster_changed=True)
            return True

    async def leave(self, player_id: str) -> None:
        async with self.lock:
            if self.closed or self.room.find_player(player_id) is None:
                return
            events = self.room.remove_player(player_id)
            LOGGER.info("Player %s left room %s", player_id, self.code)
            self._touch_presence()
            await self._publish(events, roster_changed=True)

    async def add_bot(self, requester_id: str) -> bool:
        def operation() -> List[Event]:
            if requester_id != self.room.host_id:
                raise RoomError("NOT_HOST", "Only the host can add bots")
            self._bot_counter += 1
            self.room.add_player(f"bot-{self.code}-{self._bot_counter}", f"Bot {self._bot_counter}", is_bot=True)
            return []

        return await self._command(requester_id, operation, roster_changed=True)

    async def start_game(self, player_id: str) -> bool:
        started = await self._command(player_id, lambda: self.room.start_game(player_id), roster_changed=True)
        if started:
            LOGGER.info("Game started in room %s with %s players", self.code, len(self.room.players))
        return started

    async def next_round(self, player_id: str) -> bool:
        return await self._command(player_id, lambda: self.room.next_round(player_id))

    async def player_action(self, player_id: str, action: ActionType, amount: Optional[int] = None) -> bool:
        def operation() -> List[Event]:
            events = self.room.handle_action(player_id, action, amount)
            if events:
                LOGGER.debug(
                    "Applied action room=%s player=%s action=%s amount=%s",
                    self.code,
                    player_id,
                    action.value,
                    amount,
                )
            return events

        return await self._command(player_id, operation)

    async def use_ability(self, player_id: str, ability_id: object) -> bool:
        return await self._command(player_id, lambda: self.room.use_ability(player_id, ability_id))

    async def chat(self, player_id: str, text: str) -> None:
        async with self.lock:
            player = self.room.find_player(player_id)
            if self.closed or player is None or player.departed:
                return
            await self._broadcast({"type": "chat", "playerId": player_id, "name": player.name, "text": text[:200]})

    async def close(self) -> None:
        async with self.lock:
            self.closed = True
            self._cancel_timers()

    async def _command(self, requester: str, operation: Callable[[], List[Event]], roster_changed: bool = False) -> bool:
        async with self.lock:
            if self.closed:
                return False
            try:
                events = operation()
            except RoomError as exc:
                LOGGER.warning("Rejected request room=%s player=%s code=%s", self.code, requester, exc.code)
                await self._send_error(requester, exc.code, exc.msg)
                return False
            await self._publish(events, roster_changed=roster_changed)
            return True

    # Timers ----------------------------------------------------------

    async def _run_step(self, generation: int) -> None:
        async with self.lock:
            if self.closed or self.room.generation != generation:
                return
            events = self.room.run_step()
            await self._publish(events)

    async def _timer_expired(self, generation: int, player_id: str) -> None:
        async with self.lock:
            if self.closed or self.room.generation != generation or not self.room.awaiting(player_id):
                LOGGER.debug("Stale turn timer for %s in room %s ignored", player_id, self.code)
                return
            LOGGER.info("Player %s timed out in room %s; folding", player_id, self.code)
            events = self.room.handle_action(player_id, ActionType.FOLD)
            await self._publish(events)

    async def _bot_turn(self, generation: int, player_id: str) -> None:
        async with self.lock:
            if self.closed or self.room.generation != generation or not self.room.awaiting(player_id):
                return
            events = self._bot_decide(player_id)
            await self._publish(events)

    def _bot_decide(self, player_id: str) -> List[Event]:
        action, amount = self.bot_strategy(self.room, player_id)
        try:
            return self.room.handle_action(player_id, action, amount)
        except RoomError as exc:
            LOGGER.warning("Bot %s chose an illegal move (%s); folding", player_id, exc.code)
            return self.room.handle_action(player_id, ActionType.FOLD)

    def _reschedule(self) -> None:
        room = self.room
        if room.generation == self._scheduled_generation:
            return
        self._cancel_timers()
        self._scheduled_generation = room.generation

        if room.next_step in _RUNNABLE_STEPS:
            self._spawn(room.next_delay_ms, self._run_step, room.generation)
            return
        player = room.active_player()
        if player is None:
            return
        if player.is_bot:
            self._spawn(self.timing.bot_think_ms, self._bot_turn, room.generation, player.id)
        elif self.timing.turn_timeout_ms > 0:
            self._spawn(self.timing.turn_timeout_ms, self._timer_expired, room.generation, player.id)

    def _spawn(self, delay_ms: int, job: Callable[..., Awaitable[None]], *args: object) -> None:
        async def runner() -> None:
            await asyncio.sleep(delay_ms / 1000)
            try:
                await job(*args)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("Scheduled task failed in room %s: %s", self.code, exc)

        task = asyncio.create_task(runner())
        self.timers.add(task)
        task.add_done_callback(self.timers.discard)

    def _cancel_timers(self) -> None:
        current = asyncio.current_task()
        for task in list(self.timers):
            if task is not current:
                task.cancel()
                self.timers.discard(task)

    # Outbound --------------------------------------------------------

    async def _publish(self, events: List[Event], roster_changed: bool = False) -> None:
        """Send events, run zero-delay steps inline, then arm the next timer."""
        await self._dispatch(events)
        if roster_changed:
            await self._broadcast(self.room.room_state())
        await self._broadcast_game_state()

        room = self.room
        while not self.closed:
            if room.next_step in _RUNNABLE_STEPS and room.next_delay_ms <= 0:
                events = room.run_step()
            elif room.next_step is Step.AWAIT_ACTION and self.timing.bot_think_ms <= 0:
                player = room.active_player()
                if player is None or not player.is_bot:
                    break
                events = self._bot_decide(player.id)
            else:
                break
            await self._dispatch(events)
            await self._broadcast_game_state()
        self._reschedule()

    async def _dispatch(self, events: List[Event]) -> None:
        for event in events:
            payload = dict(event)
            target = payload.pop("to", None)
            if target is None:
                await self._broadcast(payload)
            else:
                await self._send_to(str(target), payload)
            if payload.get("type") == "roundEnd":
                LOGGER.info(
                    "Hand %s finished in room %s; winners=%s",
                    self.room.hand_number,
                    self.code,
                    [winner["id"] for winner in payload["winners"]],  # type: ignore[index]
                )
            elif payload.get("type") == "gameOver":
                LOGGER.info("Game over in room %s: %s", self.code, payload.get("winner"))

    async def _broadcast_game_state(self) -> None:
        if not self.room.game_started and self.room.hand_number == 0:
            return
        for player in self._recipients():
            await self._send_to(player, self.room.game_state_for(player))

    async def _broadcast(self, payload: Event) -> None:
        for player_id in self._recipients():
            await self._send_to(player_id, payload)

    def _recipients(self) -> List[str]:
        return [player.id for player in self.room.present_players() if not player.is_bot]

    async def _send_to(self, player_id: str, payload: Event) -> None:
        player = self.room.find_player(player_id)
        if player is None or player.is_bot or player.departed:
            return
        body = dict(payload)
        msg_type = str(body.pop("type"))
        await self.deliver(player_id, msg_type, body)

    async def _send_error(self, player_id: str, code: str, msg: str) -> None:
        await self.deliver(player_id, "error", {"code": code, "message": msg})

    def _touch_presence(self) -> None:
        if self.room.has_humans():
            self.empty_since = None
        elif self.empty_since is None:
            self.empty_since = time.monotonic()
