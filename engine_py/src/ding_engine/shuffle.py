"""
Card shuffling and dealing utilities.
"""

import random
from typing import Dict, List, Optional, Sequence

from .constants import HAND_SIZE, RANKS, SUITS
from .models import Card


def make_decks(count: int = 1) -> List[Card]:
    """
    Build a shoe of `count` standard 52-card decks.

    The deck index is appended to every id so duplicate rank/suit pairs
    stay distinguishable in a multi-deck shoe.
    """
    deck = []
    for d in range(count):
        for suit in SUITS:
            for rank in RANKS:
                deck.append(Card(suit=suit, rank=rank, id=f"{rank}{suit}_{d}"))
    return deck


def shuffle_deck(deck: List[Card], seed: Optional[int] = None) -> List[Card]:
    """
    Shuffle a deck deterministically if seed is provided.

    Args:
        deck: Cards to shuffle
        seed: Optional seed for deterministic shuffling

    Returns:
        Shuffled copy of the deck
    """
    deck_copy = deck.copy()

    if seed is not None:
        rng = random.Random(seed)
        rng.shuffle(deck_copy)
    else:
        random.shuffle(deck_copy)

    return deck_copy


def deal_hands(
    deck: List[Card],
    seat_keys: Sequence[Optional[str]],
    hand_size: int = HAND_SIZE
) -> Dict[str, List[Card]]:
    """
    Deal round-robin from the top (end) of the deck.

    Seats are visited in seat order, `hand_size` rounds. A seat whose key
    is None is skipped. Cards are popped from `deck` in place; if the shoe
    runs dry the remaining seats simply get fewer cards.

    Returns:
        Dictionary mapping seat key to its dealt cards, in deal order
    """
    hands = {key: [] for key in seat_keys if key}

    for _ in range(hand_size):
        for key in seat_keys:
            if not key:
                continue
            if deck:
                hands[key].append(deck.pop())

    return hands
