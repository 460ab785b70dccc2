"""
Action validation for every player-facing transition.
"""

from typing import List, Optional

from .comparator import can_follow_suit
from .constants import (
    ERROR_ALREADY_SWAPPED, ERROR_CARD_NOT_IN_HAND, ERROR_DEALER_CANNOT_FOLD,
    ERROR_GAME_OVER, ERROR_INVALID_SELECTION, ERROR_NOT_DEALER, ERROR_NOT_ENOUGH_PLAYERS,
    ERROR_NOT_HOST, ERROR_NOT_YOUR_TURN, ERROR_PLAYER_NOT_FOUND, ERROR_STALE_STATE,
    ERROR_SUIT_VIOLATION, ERROR_WRONG_PHASE, MAX_SWAP, MIN_PLAYERS, MODE_MULTI,
    PHASE_GAME_OVER, PHASE_HAND_END, PHASE_LOBBY, PHASE_SWAP, PHASE_TRICK, SUIT_ICON,
)
from .models import Card, GameState


class ValidationResult:
    """Result of action validation."""

    def __init__(
        self,
        valid: bool,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        player_index: Optional[int] = None,
        cards: Optional[List[Card]] = None
    ):
        self.valid = valid
        self.error_code = error_code
        self.error_message = error_message
        self.player_index = player_index
        self.cards = cards or []

    @classmethod
    def success(cls, player_index: Optional[int] = None, cards: Optional[List[Card]] = None) -> 'ValidationResult':
        """Create a successful validation result."""
        return cls(valid=True, player_index=player_index, cards=cards)

    @classmethod
    def error(cls, error_code: str, error_message: str) -> 'ValidationResult':
        """Create an error validation result."""
        return cls(valid=False, error_code=error_code, error_message=error_message)


def is_multiplayer(state: GameState) -> bool:
    return state.mode == MODE_MULTI


def resolve_turn_actor(state: GameState, actor_uid: Optional[str]) -> ValidationResult:
    """
    Work out which seat is acting and make sure it holds the turn.

    Hotseat actions (actor_uid None) always act for the seat at
    current_turn_index.
    """
    if not state.players or state.current_player is None:
        return ValidationResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found.")

    if actor_uid is None:
        if is_multiplayer(state):
            return ValidationResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found.")
        return ValidationResult.success(state.current_turn_index)

    index = state.index_of(actor_uid)
    if index is None:
        return ValidationResult.error(ERROR_PLAYER_NOT_FOUND, "Player not found.")
    if index != state.current_turn_index:
        return ValidationResult.error(ERROR_NOT_YOUR_TURN, "Not your turn.")
    return ValidationResult.success(index)


def validate_host(state: GameState, actor_uid: Optional[str], message: str) -> ValidationResult:
    """Host-only check; hotseat games have no host."""
    if not is_multiplayer(state):
        return ValidationResult.success()
    if not actor_uid or actor_uid != state.host_uid:
        return ValidationResult.error(ERROR_NOT_HOST, message)
    return ValidationResult.success(state.index_of(actor_uid))


def validate_start(state: GameState, actor_uid: Optional[str]) -> ValidationResult:
    if state.phase != PHASE_LOBBY:
        return ValidationResult.error(ERROR_WRONG_PHASE, "The game has already started.")
    host = validate_host(state, actor_uid, "Only the host can start the game.")
    if not host.valid:
        return host
    if len(state.players) < max(MIN_PLAYERS, state.settings.min_players):
        return ValidationResult.error(ERROR_NOT_ENOUGH_PLAYERS, "Need at least 2 players.")
    return ValidationResult.success()


def validate_new_game(state: GameState, actor_uid: Optional[str]) -> ValidationResult:
    if state.phase != PHASE_GAME_OVER:
        return ValidationResult.error(ERROR_WRONG_PHASE, "Game is not over yet.")
    host = validate_host(state, actor_uid, "Only the host can start a new game.")
    if not host.valid:
        return host
    if len(state.players) < max(MIN_PLAYERS, state.settings.min_players):
        return ValidationResult.error(ERROR_NOT_ENOUGH_PLAYERS, "Need at least 2 players.")
    return ValidationResult.success()


def validate_deal(state: GameState, actor_uid: Optional[str]) -> ValidationResult:
    if state.phase == PHASE_GAME_OVER:
        return ValidationResult.error(ERROR_GAME_OVER, "Game over. Start a new game.")
    if state.phase != PHASE_HAND_END:
        return ValidationResult.error(ERROR_WRONG_PHASE, "Can't deal: finish the current hand first.")
    if len(state.players) < MIN_PLAYERS:
        return ValidationResult.error(ERROR_NOT_ENOUGH_PLAYERS, "Need at least 2 players.")
    if is_multiplayer(state):
        index = state.index_of(actor_uid)
        if index is None or index != state.dealer_index:
            return ValidationResult.error(ERROR_NOT_DEALER, "Only the dealer can deal.")
    return ValidationResult.success(state.dealer_index)


def _hand_or_error(state: GameState, index: int):
    key = state.seat_key(index)
    if key not in state.hands:
        return None, ValidationResult.error(ERROR_STALE_STATE, "Hand not loaded.")
    return state.hands[key], None


def validate_swap(state: GameState, actor_uid: Optional[str], card_ids: List[str]) -> ValidationResult:
    """
    Validate a swap of 0-3 cards.

    Returns:
        ValidationResult carrying the acting seat and the discarded cards
    """
    if state.phase != PHASE_SWAP:
        return ValidationResult.error(ERROR_WRONG_PHASE, f"Not the swap phase (current: {state.phase}).")

    actor = resolve_turn_actor(state, actor_uid)
    if not actor.valid:
        return actor
    player = state.players[actor.player_index]

    if player.has_swapped:
        return ValidationResult.error(ERROR_ALREADY_SWAPPED, "You have already swapped this hand.")
    if len(card_ids) > MAX_SWAP:
        return ValidationResult.error(ERROR_INVALID_SELECTION, f"You can swap at most {MAX_SWAP} cards.")
    if len(set(card_ids)) != len(card_ids):
        return ValidationResult.error(ERROR_INVALID_SELECTION, "Each card can only be swapped once.")

    hand, error = _hand_or_error(state, actor.player_index)
    if error:
        return error

    by_id = {card.id: card for card in hand}
    discards = []
    for card_id in card_ids:
        if card_id not in by_id:
            return ValidationResult.error(ERROR_CARD_NOT_IN_HAND, "That card isn't in your hand.")
        discards.append(by_id[card_id])

    return ValidationResult.success(actor.player_index, discards)


def validate_fold(state: GameState, actor_uid: Optional[str]) -> ValidationResult:
    if state.phase != PHASE_SWAP:
        return ValidationResult.error(ERROR_WRONG_PHASE, "You can only fold during the swap phase.")

    actor = resolve_turn_actor(state, actor_uid)
    if not actor.valid:
        return actor
    player = state.players[actor.player_index]

    if player.folded:
        return ValidationResult.error(ERROR_WRONG_PHASE, "You have already folded.")
    if actor.player_index == state.dealer_index:
        return ValidationResult.error(ERROR_DEALER_CANNOT_FOLD, "Dealer cannot fold.")
    return ValidationResult.success(actor.player_index)


def validate_play(state: GameState, actor_uid: Optional[str], card_ids: List[str]) -> ValidationResult:
    """
    Validate a card play attempt.

    Args:
        state: Current room state
        actor_uid: Acting uid, or None for hotseat play
        card_ids: Selected card ids; exactly one is required

    Returns:
        ValidationResult with the acting seat and the card to play
    """
    if state.phase != PHASE_TRICK:
        return ValidationResult.error(ERROR_WRONG_PHASE, f"Not the trick phase (current: {state.phase}).")

    actor = resolve_turn_actor(state, actor_uid)
    if not actor.valid:
        return actor
    if state.players[actor.player_index].folded:
        return ValidationResult.error(ERROR_NOT_YOUR_TURN, "You folded this hand.")

    if len(card_ids) != 1:
        return ValidationResult.error(ERROR_INVALID_SELECTION, "Select exactly 1 card to play.")

    hand, error = _hand_or_error(state, actor.player_index)
    if error:
        return error

    card = next((c for c in hand if c.id == card_ids[0]), None)
    if card is None:
        return ValidationResult.error(ERROR_CARD_NOT_IN_HAND, "That card isn't in your hand.")

    lead = state.current_trick.lead_suit
    if lead and not state.settings.hyperrealistic:
        if can_follow_suit(hand, lead) and card.suit != lead:
            return ValidationResult.error(
                ERROR_SUIT_VIOLATION,
                f"You must follow suit ({SUIT_ICON[lead]}) if you can."
            )

    return ValidationResult.success(actor.player_index, [card])
