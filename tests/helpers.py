from __future__ import annotations

import random
from typing import Callable, Dict, List, Optional, Sequence

from holdem.cards import Deck, full_deck, parse_cards
from holdem.game import PokerRoom
from holdem.models import ActionType, Pacing, RoomSettings, Step

Event = Dict[str, object]

_RUNNABLE = (Step.PROMPT, Step.ADVANCE, Step.BETTING)


def create_room(
    names: Sequence[str] = ("Alice", "Bob", "Carol"),
    *,
    starting_chips: int = 1_000,
    small_blind: int = 10,
    big_blind: int = 20,
    abilities: bool = True,
    deck: Optional[Callable[[], Deck]] = None,
    seed: int = 7,
) -> PokerRoom:
    """Room with instant pacing and players p0..pN already seated (p0 hosts)."""
    room = PokerRoom(
        "TEST1",
        RoomSettings(
            starting_chips=starting_chips,
            small_blind=small_blind,
            big_blind=big_blind,
            max_players=max(len(names), 2),
            abilities_enabled=abilities,
        ),
        pacing=Pacing.instant(),
        rng=random.Random(seed),
        deck_factory=deck,
    )
    for idx, name in enumerate(names):
        room.add_player(f"p{idx}", name)
    return room


def stacked_deck(*labels: str) -> Callable[[], Deck]:
    """Deck factory whose first draws come out in the given order."""

    def factory() -> Deck:
        top = parse_cards(labels)
        rest = [card for card in full_deck() if card not in top]
        return Deck(rest + list(reversed(top)))

    return factory


def drive(room: PokerRoom) -> List[Event]:
    """Run scheduled steps until the room waits on a player or goes idle."""
    events: List[Event] = []
    while room.next_step in _RUNNABLE:
        events.extend(room.run_step())
    return events


def start(room: PokerRoom, host: str = "p0") -> List[Event]:
    events = room.start_game(host)
    events.extend(drive(room))
    return events


def act(room: PokerRoom, player_id: str, action: ActionType, amount: Optional[int] = None) -> List[Event]:
    events = room.handle_action(player_id, action, amount)
    events.extend(drive(room))
    return events


def auto_complete_hand(room: PokerRoom) -> List[Event]:
    """Check or call for whoever is up until the hand settles."""
    events: List[Event] = []
    while True:
        player = room.active_player()
        if player is None:
            break
        legal, *_ = room.legal_actions(player.id)
        action = ActionType.CHECK if ActionType.CHECK in legal else ActionType.CALL
        events.extend(act(room, player.id, action))
    return events


def events_of(events: List[Event], event_type: str) -> List[Event]:
    return [event for event in events if event["type"] == event_type]
