import pytest

from holdem.bots import baseline_strategy
from holdem.models import ActionType, Phase

from .helpers import act, auto_complete_hand, create_room, drive, start


def play_until_over(room, max_hands: int = 300) -> int:
    total = sum(player.chips for player in room.players)
    start(room)
    hands = 1
    while True:
        player = room.active_player()
        if player is not None:
            action, amount = baseline_strategy(room, player.id)
            act(room, player.id, action, amount)
            assert room.pot == sum(p.total_bet for p in room.players)
            assert sum(p.chips for p in room.players) + room.pot == total
            assert all(p.chips >= 0 for p in room.players)
            continue
        assert room.round_complete
        if room.phase is Phase.GAME_OVER or hands >= max_hands:
            return hands
        room.next_round(room.host_id)
        drive(room)
        if room.phase is Phase.GAME_OVER:
            return hands
        hands += 1


@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
def test_bot_tables_conserve_chips(seed):
    names = [f"Bot{idx}" for idx in range(2 + seed % 4)]
    room = create_room(names=names, starting_chips=500, small_blind=5, big_blind=10, abilities=False, seed=seed)
    total = 500 * len(names)

    hands = play_until_over(room)

    assert hands >= 1
    assert sum(player.chips for player in room.players) == total
    assert room.pot == 0


def test_short_stack_posts_partial_big_blind():
    room = create_room(names=("A", "B", "C"), starting_chips=1_000, abilities=False)
    start(room)
    act(room, "p1", ActionType.FOLD)
    act(room, "p2", ActionType.FOLD)
    room.players[1].chips = 7
    total = sum(player.chips for player in room.players)

    room.next_round("p0")
    drive(room)

    # Button moves to p2, so p0 posts the small blind and p1 the short big blind.
    bob = room.players[1]
    assert bob.bet == 7
    assert bob.all_in
    assert room.current_bet == 10
    assert room.pot == 17

    auto_complete_hand(room)
    assert room.round_complete
    assert sum(player.chips for player in room.players) == total


def test_game_runs_to_a_single_winner():
    room = create_room(names=("A", "B"), starting_chips=200, small_blind=10, big_blind=20, abilities=False, seed=11)
    hands = play_until_over(room, max_hands=2_000)

    alive = [player for player in room.players if player.chips > 0]
    if room.phase is Phase.GAME_OVER:
        assert len(alive) == 1
        assert alive[0].chips == 400
    else:
        assert hands == 2_000
