from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

RANKS = ["2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A"]
SUITS = ["hearts", "diamonds", "clubs", "spades"]

RANK_VALUE = {rank: idx for idx, rank in enumerate(RANKS, start=2)}
SUIT_SYMBOLS = {"hearts": "♥", "diamonds": "♦", "clubs": "♣", "spades": "♠"}
_SUIT_LETTERS = {"h": "hearts", "d": "diamonds", "c": "clubs", "s": "spades"}

DECK_SIZE = len(RANKS) * len(SUITS)


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANK_VALUE:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUIT_SYMBOLS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def value(self) -> int:
        return RANK_VALUE[self.rank]

    @property
    def label(self) -> str:
        return f"{self.rank}{SUIT_SYMBOLS[self.suit]}"

    def to_dict(self) -> Dict[str, str]:
        return {"rank": self.rank, "suit": self.suit}


class Deck:
    """Ordered stack of cards; the end of the list is the top of the deck."""

    def __init__(self, cards: Optional[Iterable[Card]] = None) -> None:
        self.cards: List[Card] = list(cards) if cards is not None else full_deck()

    @classmethod
    def shuffled(cls, rng: Optional[random.Random] = None) -> "Deck":
        deck = cls()
        deck.shuffle(rng or random.Random())
        return deck

    def shuffle(self, rng: random.Random) -> None:
        # Fisher-Yates, walking down from the top.
        cards = self.cards
        for i in range(len(cards) - 1, 0, -1):
            j = rng.randint(0, i)
            cards[i], cards[j] = cards[j], cards[i]

    def draw(self) -> Card:
        if not self.cards:
            raise ValueError("Not enough cards left in deck")
        return self.cards.pop()

    def draw_many(self, count: int) -> List[Card]:
        if len(self.cards) < count:
            raise ValueError("Not enough cards left in deck")
        return [self.cards.pop() for _ in range(count)]

    def peek(self) -> Optional[Card]:
        return self.cards[-1] if self.cards else None

    def put_back(self, card: Card) -> None:
        if card in self.cards:
            raise ValueError(f"Card already in deck: {card.label}")
        self.cards.append(card)

    @property
    def remaining(self) -> int:
        return len(self.cards)

    def __len__(self) -> int:
        return len(self.cards)


def full_deck() -> List[Card]:
    return [Card(rank, suit) for suit in SUITS for rank in RANKS]


def cards_to_dicts(cards: Iterable[Card]) -> List[Dict[str, str]]:
    return [card.to_dict() for card in cards]


def parse_label(label: str) -> Card:
    """Parse compact labels such as ``Ah``, ``Td`` or ``10c``."""
    text = label.strip()
    if len(text) < 2:
        raise ValueError(f"Invalid card label: {label}")
    rank, suit = text[:-1].upper(), text[-1].lower()
    if rank == "T":
        rank = "10"
    if suit not in _SUIT_LETTERS:
        raise ValueError(f"Invalid card label: {label}")
    return Card(rank, _SUIT_LETTERS[suit])


def parse_cards(labels: Iterable[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
