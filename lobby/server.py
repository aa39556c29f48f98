from __future__ import annotations

import asyncio
import itertools
import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

import websockets
from websockets.asyncio.server import ServerConnection

from holdem.models import ActionType, Pacing, RoomError, RoomSettings

from .registry import RoomRegistry
from .session import RoomSession, SessionTiming

LOGGER = logging.getLogger("pokare_lobby")

# LobbyServer owns the sockets. It decodes frames, keeps track of which room
# each connection sits in, and hands everything else to that room's session.

MAX_NAME_LENGTH = 20
MAX_CHAT_LENGTH = 200


@dataclass
class LobbyConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    turn_timeout_ms: int = 60_000
    bot_think_ms: int = 900
    empty_room_ttl_s: float = 60.0
    sweep_interval_s: float = 30.0
    pacing: Pacing = field(default_factory=Pacing)


@dataclass
class ClientSession:
    player_id: str
    websocket: ServerConnection
    name: str = "Player"
    room_code: Optional[str] = None


class LobbyServer:
    def __init__(self, config: Optional[LobbyConfig] = None, registry: Optional[RoomRegistry] = None) -> None:
        self.config = config or LobbyConfig()
        self.clients: Dict[str, ClientSession] = {}
        self.registry = registry or RoomRegistry(
            self.deliver,
            SessionTiming(turn_timeout_ms=self.config.turn_timeout_ms, bot_think_ms=self.config.bot_think_ms),
            empty_room_ttl_s=self.config.empty_room_ttl_s,
        )
        self._ids = itertools.count(1)

    async def start(self) -> None:
        async with websockets.serve(self._handle_connection, self.config.host, self.config.port):
            LOGGER.info("Lobby listening on %s:%s", self.config.host, self.config.port)
            sweeper = asyncio.create_task(self._sweep_forever())
            try:
                await asyncio.Future()
            finally:
                sweeper.cancel()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        client = self.register(websocket)
        await self._send_json(websocket, "welcome", {"playerId": client.player_id})
        try:
            async for raw in websocket:
                message = self._decode(raw)
                if message is None:
                    await self._send_error(websocket, "BAD_JSON", "Message must be a JSON object")
                    continue
                await self.handle_message(client, message)
        except websockets.ConnectionClosed:
            pass
        finally:
            await self.disconnect(client)

    def register(self, websocket: ServerConnection) -> ClientSession:
        player_id = f"p{next(self._ids)}"
        client = ClientSession(player_id=player_id, websocket=websocket)
        self.clients[player_id] = client
        LOGGER.info("Client %s connected", player_id)
        return client

    async def disconnect(self, client: ClientSession) -> None:
        await self._leave_room(client)
        self.clients.pop(client.player_id, None)
        LOGGER.info("Client %s disconnected", client.player_id)

    async def deliver(self, player_id: str, msg_type: str, payload: Dict[str, object]) -> None:
        client = self.clients.get(player_id)
        if client is not None:
            await self._send_json(client.websocket, msg_type, payload)

    async def handle_message(self, client: ClientSession, message: Dict[str, object]) -> None:
        msg_type = message.get("type")
        try:
            if msg_type == "setProfile":
                await self._set_profile(client, message)
            elif msg_type == "createRoom":
                await self._create_room(client, message)
            elif msg_type == "joinRoom":
                await self._join_room(client, message)
            elif msg_type == "leaveRoom":
                await self._leave_room(client)
                await self._send_json(client.websocket, "roomLeft", {})
            elif msg_type == "chatMessage":
                text = str(message.get("text") or "").strip()[:MAX_CHAT_LENGTH]
                if text:
                    await self._require_session(client).chat(client.player_id, text)
            elif msg_type == "addBot":
                await self._require_session(client).add_bot(client.player_id)
            elif msg_type == "startGame":
                await self._require_session(client).start_game(client.player_id)
            elif msg_type == "nextRound":
                await self._require_session(client).next_round(client.player_id)
            elif msg_type == "playerAction":
                await self._player_action(client, message)
            elif msg_type == "useAbility":
                ability = message.get("abilityId", message.get("ability"))
                await self._require_session(client).use_ability(client.player_id, ability)
            else:
                await self._send_error(client.websocket, "UNKNOWN_TYPE", f"Unknown message type: {msg_type}")
        except RoomError as exc:
            LOGGER.warning("Rejected %s from %s: %s", msg_type, client.player_id, exc.code)
            await self._send_error(client.websocket, exc.code, exc.msg)

    async def _set_profile(self, client: ClientSession, message: Dict[str, object]) -> None:
        name = str(message.get("name") or "").strip()[:MAX_NAME_LENGTH]
        client.name = name or "Player"
        await self._send_json(client.websocket, "profileSet", {"player": {"id": client.player_id, "name": client.name}})

    async def _create_room(self, client: ClientSession, message: Dict[str, object]) -> None:
        defaults = RoomSettings()
        settings = RoomSettings(
            starting_chips=_int_field(message, "startingChips", defaults.starting_chips),
            small_blind=_int_field(message, "smallBlind", defaults.small_blind),
            big_blind=_int_field(message, "bigBlind", defaults.big_blind),
            max_players=_int_field(message, "maxPlayers", defaults.max_players),
            abilities_enabled=bool(message.get("abilitiesEnabled", defaults.abilities_enabled)),
        )
        settings.validate()
        await self._leave_room(client)
        session = await self.registry.create(settings, self.config.pacing)
        if await session.join(client.player_id, client.name, reply_type="roomCreated"):
            client.room_code = session.code

    async def _join_room(self, client: ClientSession, message: Dict[str, object]) -> None:
        code = message.get("code")
        if not isinstance(code, str) or not code.strip():
            raise RoomError("BAD_SCHEMA", "joinRoom requires a room code")
        session = self.registry.get(code)
        if session is None:
            raise RoomError("ROOM_NOT_FOUND", "Room not found")
        if client.room_code == session.code:
            return
        await self._leave_room(client)
        if await session.join(client.player_id, client.name):
            client.room_code = session.code

    async def _player_action(self, client: ClientSession, message: Dict[str, object]) -> None:
        try:
            action = ActionType(str(message.get("action", "")).lower())
        except ValueError:
            raise RoomError("BAD_SCHEMA", f"Unknown action: {message.get('action')}") from None
        amount = message.get("amount")
        if amount is not None:
            amount = _as_int(amount, "amount")
        await self._require_session(client).player_action(client.player_id, action, amount)

    async def _leave_room(self, client: ClientSession) -> None:
        if client.room_code is None:
            return
        session = self.registry.get(client.room_code)
        client.room_code = None
        if session is not None:
            await session.leave(client.player_id)

    def _require_session(self, client: ClientSession) -> RoomSession:
        session = self.registry.get(client.room_code) if client.room_code else None
        if session is None:
            raise RoomError("NOT_IN_ROOM", "Join a room first")
        return session

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval_s)
            try:
                removed = await self.registry.sweep()
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("Room sweep failed: %s", exc)
                continue
            if removed:
                LOGGER.info("Swept %s empty room(s): %s", len(removed), ", ".join(removed))

    async def _send_json(self, websocket: ServerConnection, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: ServerConnection, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "message": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)

    def _decode(self, raw: object) -> Optional[Dict[str, object]]:
        try:
            message = json.loads(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        return message if isinstance(message, dict) else None


def _int_field(message: Dict[str, object], key: str, default: int) -> int:
    return _as_int(message.get(key, default), key)


def _as_int(value: object, key: str) -> int:
    # json.loads accepts 1e400, Infinity and NaN.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RoomError("BAD_SCHEMA", f"{key} must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise RoomError("BAD_SCHEMA", f"{key} must be a finite number")
    return int(value)
