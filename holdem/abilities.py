from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List

from .cards import cards_to_dicts
from .models import BETTING_PHASES, AbilityId, Player, RoomError

if TYPE_CHECKING:
    from .game import PokerRoom

Event = Dict[str, object]


class AbilityRejected(RoomError):
    """Economic or contextual refusal of an ability; the room is untouched."""


@dataclass(frozen=True)
class Ability:
    id: AbilityId
    name: str
    description: str
    cost: int
    cooldown: int


ABILITIES: Dict[AbilityId, Ability] = {
    ability.id: ability
    for ability in (
        Ability(AbilityId.PEEK, "Vision", "Secretly see the next community card", 100, 3),
        Ability(AbilityId.SHIELD, "Shield", "Absorb the next raise made against you", 150, 5),
        Ability(AbilityId.INTIMIDATE, "Intimidate", "Reveal the suit of an opponent's card", 75, 2),
        Ability(AbilityId.SWAP, "Swap", "Trade one of your cards for a new one", 200, 4),
        Ability(AbilityId.DOUBLE_DOWN, "Double or Nothing", "Double the pot if you win, pay it if you lose", 0, 6),
    )
}


def catalog_payload() -> Dict[str, Dict[str, object]]:
    return {
        ability.id.value: {
            "id": ability.id.value,
            "name": ability.name,
            "desc": ability.description,
            "cost": ability.cost,
            "cooldown": ability.cooldown,
        }
        for ability in ABILITIES.values()
    }


def resolve_ability(raw: object) -> AbilityId:
    if isinstance(raw, AbilityId):
        return raw
    if isinstance(raw, str):
        try:
            return AbilityId(raw.strip().lower())
        except ValueError:
            pass
    raise AbilityRejected("UNKNOWN_ABILITY", f"Unknown ability: {raw}")


def check_ability(room: "PokerRoom", player: Player, ability_id: AbilityId) -> Ability:
    """Validate a request without touching the room."""
    if not room.settings.abilities_enabled:
        raise AbilityRejected("ABILITIES_DISABLED", "Abilities are disabled in this room")
    if room.round_complete or room.phase not in BETTING_PHASES:
        raise AbilityRejected("NO_HAND", "No hand in progress")
    if player.folded or not player.hole_cards:
        raise AbilityRejected("NOT_IN_HAND", "You are not in this hand")

    ability = ABILITIES[ability_id]
    remaining = player.cooldown(ability_id)
    if remaining > 0:
        raise AbilityRejected("ON_COOLDOWN", f"Ability on cooldown ({remaining} rounds)")
    if player.chips < ability.cost:
        raise AbilityRejected("INSUFFICIENT_CHIPS", "Not enough chips")

    if ability_id is AbilityId.PEEK and (len(room.community) >= 5 or room.deck.peek() is None):
        raise AbilityRejected("NO_TARGET", "No community card left to peek at")
    if ability_id is AbilityId.INTIMIDATE and not _opponents(room, player):
        raise AbilityRejected("NO_TARGET", "No opponent to intimidate")
    if ability_id is AbilityId.SWAP and room.deck.remaining == 0:
        raise AbilityRejected("NO_TARGET", "Deck is empty")
    return ability


def apply_ability(room: "PokerRoom", player: Player, raw_id: object) -> List[Event]:
    ability_id = resolve_ability(raw_id)
    ability = check_ability(room, player, ability_id)

    player.chips -= ability.cost
    player.ability_cooldowns[ability_id] = ability.cooldown
    events = _EFFECTS[ability_id](room, player)
    if player.chips == 0:
        player.all_in = True

    events.append(
        {
            "type": "abilityUsed",
            "playerId": player.id,
            "name": player.name,
            "ability": ability_id.value,
            "abilityName": ability.name,
        }
    )
    return events


def _opponents(room: "PokerRoom", player: Player) -> List[Player]:
    return [p for p in room.players if p.id != player.id and not p.folded and p.hole_cards]


def _result(player: Player, ability_id: AbilityId, **payload: object) -> Event:
    return {"type": "abilityResult", "to": player.id, "ability": ability_id.value, **payload}


def _peek(room: "PokerRoom", player: Player) -> List[Event]:
    card = room.deck.peek()
    assert card is not None
    return [_result(player, AbilityId.PEEK, card=card.to_dict())]


def _shield(room: "PokerRoom", player: Player) -> List[Event]:
    player.shielded = True
    return [_result(player, AbilityId.SHIELD, active=True)]


def _intimidate(room: "PokerRoom", player: Player) -> List[Event]:
    target = room.rng.choice(_opponents(room, player))
    card = target.hole_cards[room.rng.randrange(len(target.hole_cards))]
    return [
        _result(
            player,
            AbilityId.INTIMIDATE,
            targetId=target.id,
            targetName=target.name,
            suit=card.suit,
        )
    ]


def _swap(room: "PokerRoom", player: Player) -> List[Event]:
    fresh = room.deck.draw()
    discarded = player.hole_cards[0]
    player.hole_cards[0] = fresh
    room.deck.put_back(discarded)
    return [_result(player, AbilityId.SWAP, newCards=cards_to_dicts(player.hole_cards))]


def _double_down(room: "PokerRoom", player: Player) -> List[Event]:
    player.double_down = True
    return [_result(player, AbilityId.DOUBLE_DOWN, active=True)]


_EFFECTS: Dict[AbilityId, Callable[["PokerRoom", Player], List[Event]]] = {
    AbilityId.PEEK: _peek,
    AbilityId.SHIELD: _shield,
    AbilityId.INTIMIDATE: _intimidate,
    AbilityId.SWAP: _swap,
    AbilityId.DOUBLE_DOWN: _double_down,
}
