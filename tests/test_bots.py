from holdem.bots import _choose_raise_amount, _rough_hand_strength, baseline_strategy
from holdem.cards import parse_cards
from holdem.models import ActionType

from .helpers import act, create_room, start


def test_baseline_strategy_only_returns_legal_moves():
    for seed in range(30):
        room = create_room(seed=seed)
        start(room)
        for _ in range(6):
            player = room.active_player()
            if player is None:
                break
            legal, _, min_raise_to, max_raise_to = room.legal_actions(player.id)
            action, amount = baseline_strategy(room, player.id)
            assert action in legal
            if action is ActionType.RAISE:
                assert min_raise_to <= amount <= max_raise_to
            act(room, player.id, action, amount)


def test_pairs_score_above_unpaired_hands():
    pair = _rough_hand_strength(parse_cards(["9h", "9d"]), [])
    suited_connectors = _rough_hand_strength(parse_cards(["9h", "8h"]), [])
    junk = _rough_hand_strength(parse_cards(["7c", "2d"]), [])
    assert pair > suited_connectors > junk
    assert _rough_hand_strength([], []) == 0


def test_made_hands_drive_postflop_strength():
    board = parse_cards(["Ks", "Kd", "4c"])
    trips = _rough_hand_strength(parse_cards(["Kh", "2d"]), board)
    nothing = _rough_hand_strength(parse_cards(["7c", "8d"]), board)
    assert trips > nothing


def test_raise_amount_stays_within_bounds():
    for _ in range(100):
        amount = _choose_raise_amount(40, 500, 300, facing_bet=True)
        assert 40 <= amount <= 500
    assert _choose_raise_amount(80, 80, 300, facing_bet=False) == 80
