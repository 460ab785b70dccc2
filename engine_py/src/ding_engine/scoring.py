# engine_py/src/ding_engine/scoring.py

from typing import List, Optional, Tuple

from .constants import DEALER_RULE_LAST_TRICK_WINNER, TRICKS_PER_HAND
from .models import GameState


def score_hand(state: GameState) -> Tuple[List[int], Optional[int]]:
    """
    Applies end-of-hand scoring to every player.

    Scores count down by tricks won. In a fully played hand an active
    player with no tricks is "dinged": reset to the starting score and
    their ding count goes up by one. Scores never drop below zero.

    This function mutates the state.

    Args:
        state: The GameState at the moment the hand ends.

    Returns:
        (indexes of dinged players, index of the game winner or None)
    """
    starting_score = state.settings.starting_score
    fully_played = state.trick_number >= TRICKS_PER_HAND and not state.hand_ended_by_folds

    dinged = []
    for idx, player in enumerate(state.players):
        if fully_played and player.tricks_won_this_hand == 0 and not player.folded:
            player.score = starting_score
            player.ding_count += 1
            dinged.append(idx)
        else:
            player.score = max(0, player.score - player.tricks_won_this_hand)

    winner_index = next((idx for idx, p in enumerate(state.players) if p.score <= 0), None)
    if winner_index is not None:
        state.players[winner_index].total_wins += 1
    return dinged, winner_index


def next_dealer(state: GameState) -> int:
    """Dealer for the next hand under the configured dealer rule."""
    if not state.players:
        return 0
    if state.settings.dealer_rule == DEALER_RULE_LAST_TRICK_WINNER:
        if state.last_trick_winner_index is not None:
            return state.last_trick_winner_index
        return state.dealer_index
    return (state.dealer_index + 1) % len(state.players)
