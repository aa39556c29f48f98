import pytest

from holdem.game import PokerRoom
from holdem.models import ActionType, Phase, RoomError, Step

from .helpers import act, auto_complete_hand, create_room, events_of, stacked_deck, start

# Seat order is p0 (Alice), p1 (Bob), p2 (Carol). The first hand deals the
# button to p1, so p2 posts the small blind, p0 the big blind and p1 opens.
SHOWDOWN_DECK = stacked_deck(
    "Kh", "7d",  # Alice: top pair once the king flops
    "Qc", "9s",  # Bob: high card
    "4h", "3c",  # Carol
    "Ks", "8h", "2d",  # flop
    "5c",  # turn
    "Jd",  # river
)


def assert_pot_conserved(room: PokerRoom) -> None:
    assert room.pot == sum(player.total_bet for player in room.players)


def test_start_game_posts_blinds_and_prompts_first_actor():
    room = create_room()
    events = start(room)

    assert [event["type"] for event in events[:3]] == ["gameStarted", "newRound", "blindsPosted"]
    assert events[1]["dealerIndex"] == 1
    blinds = events_of(events, "blindsPosted")[0]
    assert blinds["smallBlind"] == {"playerId": "p2", "amount": 10}
    assert blinds["bigBlind"] == {"playerId": "p0", "amount": 20}
    assert room.phase is Phase.PREFLOP
    assert room.pot == 30
    assert room.current_bet == 20
    assert_pot_conserved(room)

    turn = events_of(events, "yourTurn")[-1]
    assert turn["to"] == "p1"
    assert turn["canCheck"] is False
    assert turn["callAmount"] == 20
    assert turn["minRaise"] == 40
    assert turn["maxRaise"] == 1_000
    assert room.awaiting("p1")


def test_each_player_is_dealt_two_private_cards():
    room = create_room()
    events = start(room)
    private = events_of(events, "yourCards")
    assert sorted(event["to"] for event in private) == ["p0", "p1", "p2"]
    for player in room.players:
        assert len(player.hole_cards) == 2


def test_start_game_requires_host_and_two_players():
    room = create_room(names=("Solo",))
    with pytest.raises(RoomError) as exc:
        room.start_game("p0")
    assert exc.value.code == "NOT_ENOUGH_PLAYERS"

    room = create_room()
    with pytest.raises(RoomError) as exc:
        room.start_game("p1")
    assert exc.value.code == "NOT_HOST"
    assert not room.game_started

    start(room)
    with pytest.raises(RoomError) as exc:
        room.start_game("p0")
    assert exc.value.code == "GAME_IN_PROGRESS"


def test_out_of_turn_action_is_ignored():
    room = create_room()
    start(room)
    generation = room.generation

    assert room.handle_action("p2", ActionType.CALL) == []
    assert room.pot == 30
    assert room.generation == generation
    assert room.awaiting("p1")


def test_check_facing_bet_rejected_without_side_effects():
    room = create_room()
    start(room)
    bob = room.find_player("p1")
    assert bob is not None

    with pytest.raises(RoomError) as exc:
        room.handle_action("p1", ActionType.CHECK)
    assert exc.value.code == "CANNOT_CHECK"
    assert bob.bet == 0
    assert bob.needs_action is True
    assert room.awaiting("p1")


def test_raise_reopens_action_for_everyone_else():
    room = create_room()
    start(room)
    act(room, "p1", ActionType.RAISE, 60)

    alice, bob, carol = room.players
    assert room.current_bet == 60
    assert room.min_raise == 40
    assert bob.needs_action is False
    assert alice.needs_action is True
    assert carol.needs_action is True
    assert not room.is_betting_complete()
    assert room.awaiting("p2")
    assert_pot_conserved(room)


def test_raise_amount_is_clamped_to_legal_range():
    room = create_room()
    start(room)
    events = act(room, "p1", ActionType.RAISE, 25)
    assert events_of(events, "playerAction")[0]["amount"] == 40
    assert room.current_bet == 40

    events = act(room, "p2", ActionType.RAISE, 50_000)
    carol = room.find_player("p2")
    assert carol is not None
    assert carol.all_in is True
    assert carol.chips == 0
    assert room.current_bet == 1_000


def test_big_blind_gets_option_when_pot_is_limped():
    room = create_room()
    start(room)
    act(room, "p1", ActionType.CALL)
    events = act(room, "p2", ActionType.CALL)

    turn = events_of(events, "yourTurn")[-1]
    assert turn["to"] == "p0"
    assert turn["canCheck"] is True

    events = act(room, "p0", ActionType.CHECK)
    assert room.phase is Phase.FLOP
    assert len(room.community) == 3
    assert events_of(events, "phaseChange")[0]["phase"] == "flop"
    # Post-flop betting starts left of the button and the raise size resets.
    assert room.awaiting("p2")
    assert room.current_bet == 0
    assert room.min_raise == 20


def test_folds_to_one_player_award_pot_without_showdown():
    room = create_room()
    start(room)
    act(room, "p1", ActionType.FOLD)
    events = act(room, "p2", ActionType.FOLD)

    end = events_of(events, "roundEnd")[0]
    assert end["winners"][0]["id"] == "p0"
    assert end["winners"][0]["amount"] == 30
    assert end["allHands"] is None
    assert [p.chips for p in room.players] == [1_010, 1_000, 990]
    assert room.round_complete
    assert room.next_step is Step.IDLE
    assert room.pot == 0


def test_get_next_active_skips_folded_all_in_and_broke_seats():
    room = create_room(names=("A", "B", "C", "D"))
    start(room)
    room.players[1].folded = True
    room.players[2].all_in = True
    room.players[3].chips = 0

    assert room.get_next_active(0) == 0
    assert room.get_next_active(3) == 0

    room.players[0].folded = True
    # Nobody can act: the search must still terminate.
    assert room.get_next_active(2) == 2


def test_three_player_hand_plays_through_to_showdown():
    room = create_room(deck=SHOWDOWN_DECK)
    start(room)

    act(room, "p1", ActionType.CALL)
    assert_pot_conserved(room)
    act(room, "p2", ActionType.FOLD)
    act(room, "p0", ActionType.RAISE, 60)
    assert_pot_conserved(room)
    events = act(room, "p1", ActionType.CALL)
    assert room.phase is Phase.FLOP
    assert len(room.community) == 3
    assert room.pot == 130
    assert_pot_conserved(room)

    events += auto_complete_hand(room)
    actions = [(event["playerId"], event["action"]) for event in events_of(events, "playerAction")]
    assert actions[1:] == [
        ("p0", "check"),
        ("p1", "check"),
        ("p0", "check"),
        ("p1", "check"),
        ("p0", "check"),
        ("p1", "check"),
    ]

    end = events_of(events, "roundEnd")[0]
    assert [winner["id"] for winner in end["winners"]] == ["p0"]
    assert end["winners"][0]["amount"] == 130
    assert end["pot"] == 130
    hands = {hand["playerId"]: hand["handName"] for hand in end["allHands"]}
    assert hands == {"p0": "Pair", "p1": "High Card"}

    alice, bob, carol = room.players
    assert alice.chips == 1_070
    assert bob.chips == 940
    assert carol.chips == 990
    assert room.phase is Phase.SHOWDOWN
    assert room.pot == 0

    events = room.next_round("p0")
    assert events_of(events, "newRound")[0]["handNumber"] == 2
    assert room.dealer_index == 2
    assert room.pot == 30


def test_next_round_rejected_while_hand_running():
    room = create_room()
    start(room)
    with pytest.raises(RoomError) as exc:
        room.next_round("p0")
    assert exc.value.code == "ROUND_IN_PROGRESS"
    with pytest.raises(RoomError) as exc:
        room.next_round("p1")
    assert exc.value.code == "NOT_HOST"


def test_all_in_preflop_runs_out_the_board_and_ends_game():
    deck = stacked_deck("Ah", "Ad", "7c", "2d", "Ks", "8h", "3d", "5c", "Jd")
    room = create_room(names=("Alice", "Bob"), deck=deck)
    start(room)
    # Heads-up: button p1 posts the big blind here, p0 posts small and opens.
    assert room.awaiting("p0")

    act(room, "p0", ActionType.ALL_IN)
    events = act(room, "p1", ActionType.CALL)

    assert len(room.community) == 5
    assert [event["phase"] for event in events_of(events, "phaseChange")] == ["flop", "turn", "river"]
    end = events_of(events, "roundEnd")[0]
    assert end["winners"][0]["id"] == "p0"
    assert end["eliminated"] == [{"id": "p1", "name": "Bob"}]
    assert room.players[0].chips == 2_000

    events = room.next_round("p0")
    over = events_of(events, "gameOver")[0]
    assert over["winner"] == {"id": "p0", "name": "Alice", "chips": 2_000}
    assert room.phase is Phase.GAME_OVER
    assert not room.game_started


def test_joining_started_game_or_full_room_rejected():
    room = create_room()
    start(room)
    with pytest.raises(RoomError) as exc:
        room.add_player("late", "Late")
    assert exc.value.code == "GAME_IN_PROGRESS"

    room = create_room(names=("A", "B"))
    with pytest.raises(RoomError) as exc:
        room.add_player("p9", "Extra")
    assert exc.value.code == "ROOM_FULL"
