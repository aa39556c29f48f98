"""WebSocket lobby that hosts many Hold'em rooms in one process."""

from .registry import RoomRegistry
from .server import ClientSession, LobbyConfig, LobbyServer
from .session import RoomSession, SessionTiming

__all__ = [
    "ClientSession",
    "LobbyConfig",
    "LobbyServer",
    "RoomRegistry",
    "RoomSession",
    "SessionTiming",
]
