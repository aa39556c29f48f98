"""Texas Hold'em room engine shared by the lobby server and the tests."""

from .abilities import ABILITIES, Ability, AbilityRejected
from .bots import BotStrategy, baseline_strategy
from .cards import RANKS, SUITS, Card, Deck, parse_cards
from .evaluator import HandCategory, HandResult, compare, determine_winners, evaluate, evaluate5
from .game import PokerRoom
from .models import AbilityId, ActionType, Pacing, Phase, Player, RoomError, RoomSettings, Step

__all__ = [
    "ABILITIES",
    "Ability",
    "AbilityRejected",
    "BotStrategy",
    "baseline_strategy",
    "RANKS",
    "SUITS",
    "Card",
    "Deck",
    "parse_cards",
    "HandCategory",
    "HandResult",
    "compare",
    "determine_winners",
    "evaluate",
    "evaluate5",
    "PokerRoom",
    "AbilityId",
    "ActionType",
    "Pacing",
    "Phase",
    "Player",
    "RoomError",
    "RoomSettings",
    "Step",
]
