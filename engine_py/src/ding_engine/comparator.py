"""
Rank comparison and trick resolution.
"""

from typing import Iterable, List, Optional, Sequence

from .constants import RANK_LABEL, RANKS, RED_SUITS, SUIT_ICON
from .models import Card, Player, TrickPlay


def compare_ranks(rank_a: int, rank_b: int) -> int:
    """
    Compare two ranks (2 < 3 < ... < 10 < J < Q < K < A).

    Returns:
        < 0 if rank_a is lower than rank_b
        0 if ranks are equal
        > 0 if rank_a is higher than rank_b
    """
    if rank_a not in RANKS or rank_b not in RANKS:
        raise ValueError(f"Invalid rank: {rank_a if rank_a not in RANKS else rank_b}")
    return rank_a - rank_b


def is_higher_rank(rank_a: int, rank_b: int) -> bool:
    """Check if rank_a is higher than rank_b."""
    return compare_ranks(rank_a, rank_b) > 0


def rank_label(rank: int) -> str:
    return RANK_LABEL.get(rank, str(rank))


def card_label(card: Card) -> str:
    """Human readable label, e.g. '10♠' or 'A♥'."""
    return f"{rank_label(card.rank)}{SUIT_ICON[card.suit]}"


def is_red_suit(suit: str) -> bool:
    return suit in RED_SUITS


def parse_card_id(card_id: str) -> Card:
    """
    Rebuild a Card from its id ("{rank}{suit}_{deck}").

    Raises:
        ValueError: If the id is malformed
    """
    try:
        face, _deck = card_id.split('_', 1)
        rank = int(face[:-1])
        suit = face[-1]
    except (ValueError, IndexError):
        raise ValueError(f"Invalid card ID format: {card_id}")
    if suit not in SUIT_ICON or rank not in RANKS:
        raise ValueError(f"Invalid card ID format: {card_id}")
    return Card(suit=suit, rank=rank, id=card_id)


def can_follow_suit(hand: Iterable[Card], suit: Optional[str]) -> bool:
    return any(card.suit == suit for card in hand)


def playable_cards(hand: List[Card], lead_suit: Optional[str], hyperrealistic: bool = False) -> List[Card]:
    """
    Cards the holder may legally play into the current trick.

    With no lead yet, or in hyperrealistic mode, anything goes. Otherwise a
    player holding the lead suit must follow it.
    """
    if not lead_suit or hyperrealistic:
        return list(hand)
    if can_follow_suit(hand, lead_suit):
        return [card for card in hand if card.suit == lead_suit]
    return list(hand)


def determine_trick_winner(
    plays: Sequence[TrickPlay],
    lead_suit: Optional[str],
    trump_suit: Optional[str]
) -> int:
    """
    Seat index of the trick winner.

    Highest trump wins if any trump was played, otherwise the highest card
    of the lead suit. Equal ranks (possible with two decks) go to the
    earliest play.
    """
    if not plays:
        raise ValueError("Cannot resolve an empty trick")

    trumps = [play for play in plays if trump_suit is not None and play.card.suit == trump_suit]
    candidates = trumps or [play for play in plays if play.card.suit == lead_suit]
    if not candidates:
        candidates = [plays[0]]

    best = candidates[0]
    for play in candidates[1:]:
        if is_higher_rank(play.card.rank, best.card.rank):
            best = play
    return best.player_index


def projected_score(player: Player) -> int:
    """Score the player would have after subtracting this hand's tricks."""
    return player.score - player.tricks_won_this_hand


def is_fast_track_win(player: Player) -> bool:
    return projected_score(player) <= 0
