from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .cards import Card


class Phase(str, Enum):
    WAITING = "waiting"
    PREFLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"
    SHOWDOWN = "showdown"
    GAME_OVER = "game_over"


BETTING_PHASES = (Phase.PREFLOP, Phase.FLOP, Phase.TURN, Phase.RIVER)


class ActionType(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    RAISE = "raise"
    ALL_IN = "allin"


class AbilityId(str, Enum):
    PEEK = "peek"
    SHIELD = "shield"
    INTIMIDATE = "intimidate"
    SWAP = "swap"
    DOUBLE_DOWN = "doubledown"


class Step(str, Enum):
    """What the room expects to happen next."""

    IDLE = "idle"
    PROMPT = "prompt"
    AWAIT_ACTION = "await_action"
    ADVANCE = "advance"
    BETTING = "betting"


class RoomError(Exception):
    """Rejected request. Raised before the room is mutated."""

    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


@dataclass
class RoomSettings:
    starting_chips: int = 1_000
    small_blind: int = 10
    big_blind: int = 20
    max_players: int = 5
    abilities_enabled: bool = True

    def validate(self) -> None:
        if self.starting_chips <= 0:
            raise RoomError("BAD_SETTINGS", "startingChips must be positive")
        if self.small_blind <= 0 or self.big_blind < self.small_blind:
            raise RoomError("BAD_SETTINGS", "Blinds must be positive with bigBlind >= smallBlind")
        if not 2 <= self.max_players <= 10:
            raise RoomError("BAD_SETTINGS", "maxPlayers must be between 2 and 10")

    def to_payload(self) -> Dict[str, object]:
        return {
            "startingChips": self.starting_chips,
            "smallBlind": self.small_blind,
            "bigBlind": self.big_blind,
            "maxPlayers": self.max_players,
            "abilitiesEnabled": self.abilities_enabled,
        }


@dataclass
class Pacing:
    # Presentation delays between machine steps, in milliseconds.
    action_delay_ms: int = 300
    advance_delay_ms: int = 800
    all_in_delay_ms: int = 500
    phase_delay_ms: int = 1_200

    @classmethod
    def instant(cls) -> "Pacing":
        return cls(action_delay_ms=0, advance_delay_ms=0, all_in_delay_ms=0, phase_delay_ms=0)

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class Player:
    id: str
    name: str
    chips: int = 0
    is_bot: bool = False
    hole_cards: List[Card] = field(default_factory=list)
    bet: int = 0
    total_bet: int = 0
    folded: bool = False
    all_in: bool = False
    last_action: str = ""
    needs_action: bool = False
    ability_cooldowns: Dict[AbilityId, int] = field(default_factory=dict)
    shielded: bool = False
    double_down: bool = False
    covered_at: Optional[int] = None
    eliminated: bool = False
    departed: bool = False

    def reset_for_hand(self) -> None:
        self.hole_cards = []
        self.bet = 0
        self.total_bet = 0
        self.folded = self.chips <= 0
        self.all_in = False
        self.last_action = "ELIMINATED" if self.chips <= 0 else ""
        self.needs_action = False
        self.shielded = False
        self.double_down = False
        self.covered_at = None

    def can_act(self) -> bool:
        return not self.folded and not self.all_in and self.chips > 0

    @property
    def covered(self) -> bool:
        return self.covered_at is not None

    def bet_to_match(self, current_bet: int) -> int:
        """A shield caps what this player owes at the bet that stood before the absorbed raise."""
        if self.covered_at is None:
            return current_bet
        return min(current_bet, self.covered_at)

    def cooldown(self, ability_id: AbilityId) -> int:
        return self.ability_cooldowns.get(ability_id, 0)

    def tick_cooldowns(self) -> None:
        for ability_id, remaining in self.ability_cooldowns.items():
            self.ability_cooldowns[ability_id] = max(0, remaining - 1)
