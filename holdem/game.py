from __future__ import annotations

import random
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .abilities import apply_ability, catalog_payload
from .cards import Card, Deck, cards_to_dicts
from .evaluator import HandResult, determine_winners, evaluate
from .models import (
    BETTING_PHASES,
    ActionType,
    Pacing,
    Phase,
    Player,
    RoomError,
    RoomSettings,
    Step,
)

# PokerRoom keeps all game truth for one room in memory. No networking and no
# clocks live here: the session scheduler reads `next_step`/`next_delay_ms`
# after every call and decides when to run the next step.

Event = Dict[str, object]


class PokerRoom:
    """Texas Hold'em state machine for a single room."""

    def __init__(
        self,
        code: str,
        settings: Optional[RoomSettings] = None,
        pacing: Optional[Pacing] = None,
        rng: Optional[random.Random] = None,
        deck_factory: Optional[Callable[[], Deck]] = None,
    ) -> None:
        self.code = code
        self.settings = settings or RoomSettings()
        self.pacing = pacing or Pacing()
        self.rng = rng or random.Random()
        self._deck_factory = deck_factory or (lambda: Deck.shuffled(self.rng))

        self.players: List[Player] = []
        self.host_id: Optional[str] = None
        self.game_started = False
        self.hand_number = 0

        self.phase = Phase.WAITING
        self.deck = Deck()
        self.community: List[Card] = []
        self.pot = 0
        self.current_bet = 0
        self.min_raise = 0
        self.dealer_index = 0
        self.sb_index = 0
        self.bb_index = 0
        self.active_index = 0
        self.round_complete = False

        self.next_step = Step.IDLE
        self.next_delay_ms = 0
        self.generation = 0

    # Seat management -------------------------------------------------

    def add_player(self, player_id: str, name: str, is_bot: bool = False) -> Player:
        existing = self.find_player(player_id)
        if existing and not existing.departed:
            return existing
        if self.game_started:
            raise RoomError("GAME_IN_PROGRESS", "Game already in progress")
        if len(self.present_players()) >= self.settings.max_players:
            raise RoomError("ROOM_FULL", "Room is full")

        player = Player(id=player_id, name=name, chips=self.settings.starting_chips, is_bot=is_bot)
        self.players.append(player)
        if self.host_id is None:
            self.host_id = player.id
        return player

    def remove_player(self, player_id: str) -> List[Event]:
        """Take a player out of the room; mid-hand this folds them first."""
        player = self.find_player(player_id)
        if player is None or player.departed:
            return []

        events: List[Event] = []
        if self.hand_in_progress() and not player.folded:
            events.extend(self.force_fold(player_id))

        if self.game_started:
            # Keep the seat until the hand is over so pot accounting stays whole.
            player.departed = True
            player.folded = True
            player.needs_action = False
            player.last_action = "LEFT"
        else:
            self.players.remove(player)

        if self.host_id == player_id:
            present = sorted(self.present_players(), key=lambda p: p.is_bot)
            self.host_id = present[0].id if present else None

        if self.game_started and len(self.present_players()) < 2:
            events.extend(self.end_game())
        return events

    def force_fold(self, player_id: str) -> List[Event]:
        """Fold a player regardless of whose turn it is (disconnect/leave)."""
        if self.awaiting(player_id):
            return self.handle_action(player_id, ActionType.FOLD)
        player = self.find_player(player_id)
        if player is None or player.folded or not self.hand_in_progress():
            return []
        player.folded = True
        player.needs_action = False
        player.last_action = "FOLD"
        events: List[Event] = [self._action_event(player, ActionType.FOLD)]
        remaining = [p for p in self.players if not p.folded]
        if len(remaining) == 1:
            events.extend(self._settle(remaining))
        return events

    def find_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def present_players(self) -> List[Player]:
        return [player for player in self.players if not player.departed]

    def has_humans(self) -> bool:
        return any(not player.is_bot for player in self.present_players())

    # Game lifecycle --------------------------------------------------

    def start_game(self, player_id: str) -> List[Event]:
        if player_id != self.host_id:
            raise RoomError("NOT_HOST", "Only the host can start the game")
        if self.game_started:
            raise RoomError("GAME_IN_PROGRESS", "Game already in progress")
        if len(self.present_players()) < 2:
            raise RoomError("NOT_ENOUGH_PLAYERS", "At least 2 players are required")

        self.game_started = True
        self.dealer_index = 0
        self.hand_number = 0
        for player in self.players:
            player.chips = self.settings.starting_chips
            player.eliminated = False
            player.ability_cooldowns = {}

        events: List[Event] = [{"type": "gameStarted"}]
        events.extend(self.start_new_round())
        return events

    def next_round(self, player_id: str) -> List[Event]:
        if player_id != self.host_id:
            raise RoomError("NOT_HOST", "Only the host can deal the next hand")
        if not self.game_started:
            raise RoomError("GAME_NOT_STARTED", "Game has not started")
        if not self.round_complete:
            raise RoomError("ROUND_IN_PROGRESS", "Current hand is still being played")
        return self.start_new_round()

    def start_new_round(self) -> List[Event]:
        self._purge_departed()
        self.deck = self._deck_factory()
        self.community = []
        self.pot = 0
        self.current_bet = 0
        self.min_raise = self.settings.big_blind
        self.round_complete = False

        for player in self.players:
            player.reset_for_hand()
            player.tick_cooldowns()

        eligible = [player for player in self.players if not player.folded]
        if len(eligible) < 2:
            return self.end_game()

        self.hand_number += 1
        self.dealer_index = self._next_seat(self.dealer_index, lambda p: not p.folded)
        events: List[Event] = [
            {
                "type": "newRound",
                "handNumber": self.hand_number,
                "dealerIndex": self.dealer_index,
                "dealerId": self.players[self.dealer_index].id,
            }
        ]
        events.extend(self.post_blinds())
        events.extend(self.deal_hole_cards())
        self.phase = Phase.PREFLOP
        events.extend(self.start_betting_round())
        return events

    def end_game(self) -> List[Event]:
        self._purge_departed()
        self.phase = Phase.GAME_OVER
        self.game_started = False
        self.round_complete = True
        self._set_step(Step.IDLE)

        alive = [player for player in self.players if player.chips > 0]
        winner = max(alive, key=lambda p: p.chips) if alive else None
        return [
            {
                "type": "gameOver",
                "winner": self._player_ref(winner, chips=True) if winner else None,
                "standings": [
                    self._player_ref(player, chips=True)
                    for player in sorted(self.players, key=lambda p: p.chips, reverse=True)
                ],
            }
        ]

    def post_blinds(self) -> List[Event]:
        self.sb_index = self.get_next_active(self.dealer_index)
        self.bb_index = self.get_next_active(self.sb_index)
        sb_player = self.players[self.sb_index]
        bb_player = self.players[self.bb_index]

        sb_amount = min(self.settings.small_blind, sb_player.chips)
        self._place_bet(sb_player, sb_amount)
        sb_player.last_action = f"SB {sb_amount}"
        bb_amount = min(self.settings.big_blind, bb_player.chips)
        self._place_bet(bb_player, bb_amount)
        bb_player.last_action = f"BB {bb_amount}"

        self.current_bet = max(sb_amount, bb_amount)
        self.min_raise = self.settings.big_blind
        return [
            {
                "type": "blindsPosted",
                "smallBlind": {"playerId": sb_player.id, "amount": sb_amount},
                "bigBlind": {"playerId": bb_player.id, "amount": bb_amount},
            }
        ]

    def deal_hole_cards(self) -> List[Event]:
        events: List[Event] = [{"type": "cardsDealt"}]
        for player in self.players:
            if player.folded:
                continue
            player.hole_cards = self.deck.draw_many(2)
            events.append({"type": "yourCards", "to": player.id, "cards": cards_to_dicts(player.hole_cards)})
        return events

    # Betting rounds --------------------------------------------------

    def start_betting_round(self) -> List[Event]:
        for player in self.players:
            player.covered_at = None
        if self.phase is not Phase.PREFLOP:
            for player in self.players:
                player.bet = 0
            self.current_bet = 0
            self.min_raise = self.settings.big_blind

        can_act = [player for player in self.players if player.can_act()]
        # A lone player still facing a bet has to answer it; otherwise nobody
        # has a decision left on this street.
        if not can_act or (len(can_act) == 1 and can_act[0].bet >= self.current_bet):
            self._set_step(Step.ADVANCE, self.pacing.all_in_delay_ms)
            return []

        if self.phase is Phase.PREFLOP:
            self.active_index = self.get_next_active(self.bb_index)
        else:
            self.active_index = self.get_next_active(self.dealer_index)

        for player in can_act:
            player.needs_action = True
        self._set_step(Step.PROMPT)
        return []

    def prompt_player(self) -> List[Event]:
        if self.round_complete or self.phase not in BETTING_PHASES:
            return []
        if self.is_betting_complete():
            return self.advance_phase()

        for _ in range(len(self.players)):
            if self._in_turn_order(self.players[self.active_index]):
                break
            self.active_index = self.get_next_active(self.active_index)
        player = self.players[self.active_index]
        if not self._in_turn_order(player):
            return self.advance_phase()

        legal, call_amount, min_raise_to, max_raise_to = self.legal_actions(player.id)
        self._set_step(Step.AWAIT_ACTION)
        return [
            {
                "type": "yourTurn",
                "to": player.id,
                "legal": [action.value for action in legal],
                "canCheck": ActionType.CHECK in legal,
                "canCall": ActionType.CALL in legal,
                "callAmount": call_amount,
                "minRaise": min_raise_to,
                "maxRaise": max_raise_to,
            }
        ]

    def legal_actions(self, player_id: str) -> Tuple[List[ActionType], int, int, int]:
        player = self.find_player(player_id)
        if player is None or player.folded:
            raise RoomError("NOT_IN_HAND", "Player is not in the hand")

        to_call = max(0, player.bet_to_match(self.current_bet) - player.bet)
        max_raise_to = player.chips + player.bet
        min_raise_to = min(self.current_bet + self.min_raise, max_raise_to)

        legal: List[ActionType] = [ActionType.FOLD]
        legal.append(ActionType.CALL if to_call > 0 else ActionType.CHECK)
        if max_raise_to > self.current_bet:
            legal.append(ActionType.RAISE)
        if player.chips > 0:
            legal.append(ActionType.ALL_IN)
        return legal, min(to_call, player.chips), min_raise_to, max_raise_to

    def handle_action(self, player_id: str, action: ActionType, amount: Optional[int] = None) -> List[Event]:
        """Apply an action from the awaited player. Anything else is a no-op."""
        if not self.awaiting(player_id):
            return []
        player = self.players[self.active_index]
        action = ActionType(action)
        if action is ActionType.CHECK and player.bet_to_match(self.current_bet) > player.bet:
            raise RoomError("CANNOT_CHECK", "Cannot check when facing a bet")

        events: List[Event] = []
        if action is ActionType.FOLD:
            player.folded = True
            player.last_action = "FOLD"
            events.append(self._action_event(player, action))
        elif action is ActionType.CHECK:
            player.last_action = "CHECK"
            events.append(self._action_event(player, action))
        elif action is ActionType.CALL:
            events.extend(self._call(player))
        elif action is ActionType.RAISE:
            target = amount if isinstance(amount, int) and not isinstance(amount, bool) else 0
            target = min(max(target, self.current_bet + self.min_raise), player.chips + player.bet)
            if target <= self.current_bet:
                events.extend(self._call(player))
            else:
                events.extend(self._raise_to(player, target))
                player.last_action = f"RAISE {target}"
                events.insert(0, self._action_event(player, action, target))
        elif action is ActionType.ALL_IN:
            total = player.bet + player.chips
            if total > self.current_bet:
                events.extend(self._raise_to(player, total))
            else:
                self._place_bet(player, player.chips)
            player.all_in = True
            player.last_action = f"ALL IN {total}"
            events.insert(0, self._action_event(player, action, total))
        else:
            raise RoomError("INVALID_ACTION", f"Unsupported action {action}")
        player.needs_action = False

        remaining = [p for p in self.players if not p.folded]
        if len(remaining) == 1:
            events.extend(self._settle(remaining))
        elif self.is_betting_complete():
            self._set_step(Step.ADVANCE, self.pacing.advance_delay_ms)
        else:
            self.active_index = self.get_next_active(self.active_index)
            self._set_step(Step.PROMPT, self.pacing.action_delay_ms)
        return events

    def _call(self, player: Player) -> List[Event]:
        amount = min(max(0, player.bet_to_match(self.current_bet) - player.bet), player.chips)
        self._place_bet(player, amount)
        player.last_action = f"CALL {amount}"
        return [self._action_event(player, ActionType.CALL, amount)]

    def _raise_to(self, raiser: Player, target: int) -> List[Event]:
        previous_bet = self.current_bet
        self.min_raise = target - self.current_bet
        self.current_bet = target
        self._place_bet(raiser, target - raiser.bet)
        raiser.covered_at = None
        return self._reopen_action(raiser, previous_bet)

    def _reopen_action(self, raiser: Player, previous_bet: int) -> List[Event]:
        events: List[Event] = []
        for player in self.players:
            if player is raiser or player.folded or player.all_in:
                continue
            if player.shielded and player.chips > 0:
                # Only this raise is soaked up; anything owed before it still has to be called.
                player.shielded = False
                player.covered_at = previous_bet
                player.needs_action = False
                events.append(
                    {
                        "type": "shieldAbsorbed",
                        "playerId": player.id,
                        "name": player.name,
                        "raiserId": raiser.id,
                        "owes": max(0, previous_bet - player.bet),
                    }
                )
                continue
            player.covered_at = None
            player.needs_action = True
        return events

    def is_betting_complete(self) -> bool:
        eligible = [player for player in self.players if player.can_act()]
        return all(p.bet >= p.bet_to_match(self.current_bet) for p in eligible) and not any(
            p.needs_action for p in eligible
        )

    def _in_turn_order(self, player: Player) -> bool:
        if not player.can_act():
            return False
        # Covered players sit out once they have matched what they owed.
        return not player.covered or player.needs_action or player.bet < player.bet_to_match(self.current_bet)

    def get_next_active(self, from_index: int) -> int:
        return self._next_seat(from_index, self._in_turn_order)

    def _next_seat(self, from_index: int, predicate: Callable[[Player], bool]) -> int:
        count = len(self.players)
        if count == 0:
            return from_index
        idx = (from_index + 1) % count
        for _ in range(count):
            if predicate(self.players[idx]):
                return idx
            idx = (idx + 1) % count
        return from_index

    def advance_phase(self) -> List[Event]:
        if self.round_complete or self.phase not in BETTING_PHASES:
            return []
        for player in self.players:
            player.needs_action = False

        if self.phase is Phase.PREFLOP:
            self.phase = Phase.FLOP
            self.community.extend(self.deck.draw_many(3))
        elif self.phase is Phase.FLOP:
            self.phase = Phase.TURN
            self.community.extend(self.deck.draw_many(1))
        elif self.phase is Phase.TURN:
            self.phase = Phase.RIVER
            self.community.extend(self.deck.draw_many(1))
        else:
            self.phase = Phase.SHOWDOWN
            return self.showdown()

        self._set_step(Step.BETTING, self.pacing.phase_delay_ms)
        return [
            {
                "type": "phaseChange",
                "phase": self.phase.value,
                "communityCards": cards_to_dicts(self.community),
            }
        ]

    def run_step(self) -> List[Event]:
        """Execute whatever the machine scheduled last."""
        step = self.next_step
        if step is Step.PROMPT:
            return self.prompt_player()
        if step is Step.ADVANCE:
            return self.advance_phase()
        if step is Step.BETTING:
            return self.start_betting_round()
        return []

    # Showdown & settlement -------------------------------------------

    def showdown(self) -> List[Event]:
        contenders = [player for player in self.players if not player.folded]
        results: List[Tuple[Player, HandResult]] = [
            (player, evaluate(player.hole_cards, self.community)) for player in contenders
        ]
        winners = determine_winners(results)
        hands = [
            {
                "playerId": player.id,
                "name": player.name,
                "cards": cards_to_dicts(player.hole_cards),
                "handName": result.name,
                "category": int(result.category),
            }
            for player, result in results
        ]
        return self._settle(winners, hands)

    def _settle(self, winners: List[Player], hands: Optional[List[Event]] = None) -> List[Event]:
        self.round_complete = True
        pre_pot = self.pot
        winner_ids = {player.id for player in winners}
        double_down = any(player.double_down for player in winners)
        total_pot = pre_pot * 2 if double_down else pre_pot

        share, remainder = divmod(total_pot, len(winners))
        awards: Dict[str, int] = {}
        for idx, player in enumerate(self._clockwise_from_dealer(winners)):
            payout = share + (1 if idx < remainder else 0)
            player.chips += payout
            awards[player.id] = payout

        penalties: Dict[str, int] = {}
        for player in self.players:
            if player.double_down and player.id not in winner_ids:
                penalty = min(player.chips, pre_pot)
                player.chips -= penalty
                penalties[player.id] = penalty
            player.double_down = False

        eliminated = [
            player
            for player in self.players
            if player.chips <= 0 and player.id not in winner_ids and not (player.eliminated or player.departed)
        ]
        for player in eliminated:
            player.eliminated = True

        self.pot = 0
        for player in self.players:
            player.bet = 0
            player.total_bet = 0
            player.needs_action = False
        self._set_step(Step.IDLE)

        return [
            {
                "type": "roundEnd",
                "winners": [
                    {"id": player.id, "name": player.name, "chips": player.chips, "amount": awards[player.id]}
                    for player in winners
                ],
                "pot": pre_pot,
                "totalPot": total_pot,
                "allHands": hands,
                "eliminated": [self._player_ref(player) for player in eliminated],
                "doubleDown": double_down,
                "penalties": penalties,
            }
        ]

    def _clockwise_from_dealer(self, players: Iterable[Player]) -> List[Player]:
        count = len(self.players)
        order = {player.id: idx for idx, player in enumerate(self.players)}
        return sorted(players, key=lambda p: (order[p.id] - self.dealer_index - 1) % count)

    # Abilities -------------------------------------------------------

    def use_ability(self, player_id: str, ability_id: object) -> List[Event]:
        player = self.find_player(player_id)
        if player is None or player.departed:
            raise RoomError("NOT_IN_ROOM", "Player is not in this room")
        events = apply_ability(self, player, ability_id)
        if self.next_step is Step.AWAIT_ACTION and not self.players[self.active_index].can_act():
            # The awaited player just spent their last chip; move the turn on.
            self._set_step(Step.PROMPT)
        return events

    # Helpers ---------------------------------------------------------

    def hand_in_progress(self) -> bool:
        return self.game_started and self.phase in BETTING_PHASES and not self.round_complete

    def awaiting(self, player_id: str) -> bool:
        if self.next_step is not Step.AWAIT_ACTION or self.round_complete:
            return False
        if not 0 <= self.active_index < len(self.players):
            return False
        return self.players[self.active_index].id == player_id

    def active_player(self) -> Optional[Player]:
        if self.next_step is not Step.AWAIT_ACTION or self.round_complete:
            return None
        return self.players[self.active_index]

    def _place_bet(self, player: Player, amount: int) -> None:
        actual = min(amount, player.chips)
        player.chips -= actual
        player.bet += actual
        player.total_bet += actual
        self.pot += actual
        if player.chips <= 0:
            player.all_in = True

    def _set_step(self, step: Step, delay_ms: int = 0) -> None:
        self.next_step = step
        self.next_delay_ms = delay_ms
        self.generation += 1

    def _purge_departed(self) -> None:
        idx = 0
        while idx < len(self.players):
            if self.players[idx].departed:
                self.players.pop(idx)
                if idx <= self.dealer_index:
                    self.dealer_index -= 1
            else:
                idx += 1
        self.dealer_index = self.dealer_index % len(self.players) if self.players else 0

    def _action_event(self, player: Player, action: ActionType, amount: Optional[int] = None) -> Event:
        event: Event = {"type": "playerAction", "playerId": player.id, "name": player.name, "action": action.value}
        if amount is not None:
            event["amount"] = amount
        return event

    def _player_ref(self, player: Player, chips: bool = False) -> Dict[str, object]:
        ref: Dict[str, object] = {"id": player.id, "name": player.name}
        if chips:
            ref["chips"] = player.chips
        return ref

    # Views -----------------------------------------------------------

    def room_state(self) -> Event:
        return {
            "type": "roomState",
            "code": self.code,
            "hostId": self.host_id,
            "players": [
                {"id": player.id, "name": player.name, "chips": player.chips, "isBot": player.is_bot}
                for player in self.present_players()
            ],
            "gameStarted": self.game_started,
            "settings": self.settings.to_payload(),
        }

    def game_state_for(self, viewer_id: str) -> Event:
        """Per-player view: only the viewer's hole cards, or non-folded hands at showdown."""
        viewer = self.find_player(viewer_id)
        active = self.active_player()
        return {
            "type": "gameState",
            "code": self.code,
            "handNumber": self.hand_number,
            "phase": self.phase.value,
            "pot": self.pot,
            "currentBet": self.current_bet,
            "minRaise": self.min_raise,
            "communityCards": cards_to_dicts(self.community),
            "dealerIndex": self.dealer_index,
            "activePlayerIndex": self.active_index if active else None,
            "activePlayerId": active.id if active else None,
            "roundComplete": self.round_complete,
            "players": [self._public_player(idx, player, viewer_id) for idx, player in enumerate(self.players)],
            "yourCards": cards_to_dicts(viewer.hole_cards) if viewer else [],
            "yourChips": viewer.chips if viewer else 0,
            "abilityCooldowns": (
                {ability.value: rounds for ability, rounds in viewer.ability_cooldowns.items()} if viewer else {}
            ),
            "abilities": catalog_payload() if self.settings.abilities_enabled else None,
        }

    def _public_player(self, idx: int, player: Player, viewer_id: str) -> Event:
        revealed = player.id == viewer_id or (self.phase is Phase.SHOWDOWN and not player.folded)
        active = self.active_player()
        return {
            "id": player.id,
            "name": player.name,
            "chips": player.chips,
            "bet": player.bet,
            "totalBet": player.total_bet,
            "folded": player.folded,
            "allIn": player.all_in,
            "lastAction": player.last_action,
            "isActive": active is player,
            "isDealer": idx == self.dealer_index and self.game_started,
            "isBot": player.is_bot,
            "hasCards": bool(player.hole_cards),
            "cards": cards_to_dicts(player.hole_cards) if revealed else None,
            "shielded": player.shielded,
            "doubleDownActive": player.double_down,
            "eliminated": player.eliminated,
        }
