from __future__ import annotations

import random
from typing import Callable, List, Optional, Tuple

from .cards import Card
from .evaluator import HandCategory, evaluate
from .game import PokerRoom
from .models import ActionType, Phase

BotStrategy = Callable[[PokerRoom, str], Tuple[ActionType, Optional[int]]]

_RNG = random.Random()


def _rough_hand_strength(hole: List[Card], community: List[Card]) -> int:
    """Very rough proxy for hand quality used to drive aggression choices."""
    if len(hole) < 2:
        return 0

    if len(community) >= 3:
        # Post-flop: lean on the made hand instead of the starting cards.
        result = evaluate(hole, community)
        return 10 + int(result.category) * 7 + (4 if result.category >= HandCategory.TWO_PAIR else 0)

    values = [card.value for card in hole]
    score = sum(values)
    if values[0] == values[1]:
        score += 14  # pairs are quite strong pre-flop
    else:
        gap = abs(values[0] - values[1])
        if gap == 1:
            score += 4
        elif gap == 2:
            score += 2
    if hole[0].suit == hole[1].suit:
        score += 3
    if min(values) >= 11:
        score += 2
    return score


def _should_raise(strength: int, phase: Phase, facing_bet: bool) -> bool:
    base = 0.1 if facing_bet else 0.2
    phase_bonus = {
        Phase.PREFLOP: 0.0,
        Phase.FLOP: 0.05,
        Phase.TURN: 0.08,
        Phase.RIVER: 0.1,
    }.get(phase, 0.0)
    scaled_strength = min(strength / 60.0, 0.45)
    probability = min(0.8, base + phase_bonus + scaled_strength)

    # Always attack with premium holdings.
    if strength >= 36:
        return True
    return _RNG.random() < probability


def _choose_raise_amount(min_raise_to: int, max_raise_to: int, pot: int, facing_bet: bool) -> int:
    if max_raise_to <= min_raise_to:
        return min_raise_to

    roll = _RNG.random()
    if roll < (0.3 if facing_bet else 0.45):
        return min_raise_to
    if roll > 0.95:
        return max_raise_to
    # Otherwise something around half the pot on top of the minimum.
    return min(max_raise_to, min_raise_to + _RNG.randint(0, max(pot // 2, 1)))


def baseline_strategy(room: PokerRoom, player_id: str) -> Tuple[ActionType, Optional[int]]:
    """House bot: calls light, raises with a bias toward stronger holdings."""
    legal, call_amount, min_raise_to, max_raise_to = room.legal_actions(player_id)
    player = room.find_player(player_id)
    assert player is not None

    strength = _rough_hand_strength(player.hole_cards, room.community)
    facing_bet = call_amount > 0

    if ActionType.RAISE in legal and _should_raise(strength, room.phase, facing_bet):
        return ActionType.RAISE, _choose_raise_amount(min_raise_to, max_raise_to, room.pot, facing_bet)

    if ActionType.CHECK in legal:
        return ActionType.CHECK, None

    # Give up weak hands against large bets.
    if facing_bet and call_amount > player.chips // 3 and strength < 22:
        return ActionType.FOLD, None
    return ActionType.CALL, None
