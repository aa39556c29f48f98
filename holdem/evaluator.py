from __future__ import annotations

import itertools
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

from .cards import Card

T = TypeVar("T")


class HandCategory(IntEnum):
    HIGH_CARD = 0
    ONE_PAIR = 1
    TWO_PAIR = 2
    THREE_OF_A_KIND = 3
    STRAIGHT = 4
    FLUSH = 5
    FULL_HOUSE = 6
    FOUR_OF_A_KIND = 7
    STRAIGHT_FLUSH = 8
    ROYAL_FLUSH = 9


HAND_NAMES = {
    HandCategory.HIGH_CARD: "High Card",
    HandCategory.ONE_PAIR: "Pair",
    HandCategory.TWO_PAIR: "Two Pair",
    HandCategory.THREE_OF_A_KIND: "Three of a Kind",
    HandCategory.STRAIGHT: "Straight",
    HandCategory.FLUSH: "Flush",
    HandCategory.FULL_HOUSE: "Full House",
    HandCategory.FOUR_OF_A_KIND: "Four of a Kind",
    HandCategory.STRAIGHT_FLUSH: "Straight Flush",
    HandCategory.ROYAL_FLUSH: "Royal Flush",
}


@dataclass(frozen=True, order=True)
class HandResult:
    # Field order matters: dataclass ordering compares category first, then
    # the tiebreak tuple lexicographically.
    category: HandCategory
    tiebreak: Tuple[int, ...]

    @property
    def name(self) -> str:
        return HAND_NAMES[self.category]


NO_HAND = HandResult(HandCategory.HIGH_CARD, (0,))


def evaluate(hole: Sequence[Card], community: Sequence[Card]) -> HandResult:
    """Return the best 5-card result from hole + community cards."""
    cards = list(hole) + list(community)
    if len(cards) < 5:
        return NO_HAND
    best: Optional[HandResult] = None
    for combo in itertools.combinations(cards, 5):
        result = evaluate5(combo)
        if best is None or result > best:
            best = result
    assert best is not None
    return best


def evaluate5(cards: Sequence[Card]) -> HandResult:
    values = sorted((card.value for card in cards), reverse=True)
    is_flush = len({card.suit for card in cards}) == 1
    straight_high = _straight_high(values)

    counts: Dict[int, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    groups = sorted(counts.items(), key=lambda item: (item[1], item[0]), reverse=True)
    group_sizes = [count for _, count in groups]
    group_values = tuple(value for value, _ in groups)

    if is_flush and straight_high:
        category = HandCategory.ROYAL_FLUSH if straight_high == 14 else HandCategory.STRAIGHT_FLUSH
        return HandResult(category, (straight_high,))
    if group_sizes[0] == 4:
        return HandResult(HandCategory.FOUR_OF_A_KIND, group_values)
    if group_sizes[0] == 3 and group_sizes[1] == 2:
        return HandResult(HandCategory.FULL_HOUSE, group_values)
    if is_flush:
        return HandResult(HandCategory.FLUSH, tuple(values))
    if straight_high:
        return HandResult(HandCategory.STRAIGHT, (straight_high,))
    if group_sizes[0] == 3:
        return HandResult(HandCategory.THREE_OF_A_KIND, group_values)
    if group_sizes[0] == 2 and group_sizes[1] == 2:
        return HandResult(HandCategory.TWO_PAIR, group_values)
    if group_sizes[0] == 2:
        return HandResult(HandCategory.ONE_PAIR, group_values)
    return HandResult(HandCategory.HIGH_CARD, tuple(values))


def _straight_high(values: List[int]) -> Optional[int]:
    unique = sorted(set(values), reverse=True)
    if len(unique) != 5:
        return None
    if unique[0] - unique[4] == 4:
        return unique[0]
    if unique == [14, 5, 4, 3, 2]:  # wheel: the ace plays low
        return 5
    return None


def compare(a: HandResult, b: HandResult) -> int:
    if a.category != b.category:
        return int(a.category) - int(b.category)
    for left, right in zip(a.tiebreak, b.tiebreak):
        if left != right:
            return left - right
    return 0


def determine_winners(results: Sequence[Tuple[T, HandResult]]) -> List[T]:
    """Every entry whose result ties the maximum wins (split pot)."""
    if not results:
        return []
    best = results[0][1]
    for _, result in results[1:]:
        if compare(result, best) > 0:
            best = result
    return [owner for owner, result in results if compare(result, best) == 0]
