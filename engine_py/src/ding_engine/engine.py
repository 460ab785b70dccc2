"""
Ding game engine.

Every transition takes a GameState and returns an ActionResult holding a
new state; the input state is never mutated, so a rejected action leaves
the caller's state exactly as it was.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from .comparator import determine_trick_winner, is_fast_track_win
from .constants import (
    ERROR_INVALID_SELECTION, ERROR_NOT_HOST, ERROR_PLAYER_NOT_FOUND, ERROR_ROOM_FULL,
    ERROR_WRONG_PHASE, HAND_END_ALL_FOLDED, HAND_END_COMPLETE, MIN_PLAYERS,
    MODE_HOTSEAT, MODE_MULTI, PHASE_GAME_OVER, PHASE_HAND_END, PHASE_LOBBY,
    PHASE_SWAP, PHASE_TRICK, FOLD_PENALTY_INCREASE, TRICKS_PER_HAND,
)
from .models import Card, GameState, Player, Trick, TrickPlay
from .roomlog import CardRecord, FoldEntry, HandEndEntry, PlayEntry, ScoreLine, system_message
from .rooms import get_room_display_name, normalize_nickname, normalize_room_name
from .rules import RuleConfig, clamp_settings
from .scoring import next_dealer, score_hand
from .shuffle import deal_hands, make_decks, shuffle_deck
from .validate import (
    ValidationResult, is_multiplayer, validate_deal, validate_fold, validate_host,
    validate_new_game, validate_play, validate_start, validate_swap,
)

logger = logging.getLogger(__name__)


class ActionResult:
    """Outcome of a transition."""

    def __init__(
        self,
        success: bool,
        state: Optional[GameState] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        events: Optional[List[Any]] = None,
        info: Optional[Dict[str, Any]] = None
    ):
        self.success = success
        self.state = state
        self.error_code = error_code
        self.error_message = error_message
        self.events = events or []
        self.info = info or {}

    @classmethod
    def ok(cls, state: GameState, events: Optional[List[Any]] = None,
           info: Optional[Dict[str, Any]] = None) -> 'ActionResult':
        return cls(True, state=state, events=events, info=info)

    @classmethod
    def fail(cls, state: GameState, error_code: str, error_message: str) -> 'ActionResult':
        return cls(False, state=state, error_code=error_code, error_message=error_message)

    @classmethod
    def rejected(cls, state: GameState, validation: ValidationResult) -> 'ActionResult':
        return cls.fail(state, validation.error_code, validation.error_message)


# ---------------------------------------------------------------------------
# Players and rooms
# ---------------------------------------------------------------------------

def new_player(
    name: Optional[str],
    starting_score: int,
    uid: Optional[str] = None,
    seat_id: Optional[str] = None,
    seed: Optional[Player] = None
) -> Player:
    """Fresh player at the starting score; ding and win totals carry over from seed."""
    return Player(
        name=name or "Player",
        uid=uid,
        id=seat_id,
        score=starting_score,
        ding_count=seed.ding_count if seed else 0,
        total_wins=seed.total_wins if seed else 0,
    )


def create_room(
    room_id: str,
    host_uid: Optional[str] = None,
    host_name: Optional[str] = None,
    room_name: Optional[str] = None,
    settings: Optional[RuleConfig] = None
) -> GameState:
    """Create a multiplayer room in the LOBBY phase, seating the host if given."""
    rules = settings or RuleConfig()
    state = GameState(id=room_id, mode=MODE_MULTI, settings=rules)
    state.host_uid = host_uid
    state.room_name = get_room_display_name(room_name)
    if host_uid:
        state.players.append(new_player(normalize_nickname(host_name), rules.starting_score, uid=host_uid))
    return state


def create_hotseat_game(names: List[str], settings: Optional[RuleConfig] = None,
                        room_id: str = "HOTSEAT") -> GameState:
    """Create a single-device game; seats are keyed p0, p1, ..."""
    rules = settings or RuleConfig()
    state = GameState(id=room_id, mode=MODE_HOTSEAT, settings=rules)
    state.players = [
        new_player(name, rules.starting_score, seat_id=f"p{i}")
        for i, name in enumerate(names)
    ]
    return state


def join_room(state: GameState, uid: str, name: Optional[str]) -> ActionResult:
    """
    Seat a player. Rejoining is a no-op; joining mid-hand seats the player
    folded so they sit out until the next deal.
    """
    if state.index_of(uid) is not None:
        return ActionResult.ok(state)
    if len(state.players) >= state.settings.max_players:
        return ActionResult.fail(state, ERROR_ROOM_FULL, "Room is full.")

    new_state = copy.deepcopy(state)
    player = new_player(normalize_nickname(name) or "Player", new_state.settings.starting_score, uid=uid)
    events = []
    if new_state.phase in (PHASE_SWAP, PHASE_TRICK):
        player.folded = True
        player.has_swapped = True
        events.append(system_message(f"{player.name} has joined."))
    new_state.players.append(player)
    new_state.increment_version()
    logger.debug("room %s: %s joined as seat %d", state.id, uid, len(new_state.players) - 1)
    return ActionResult.ok(new_state, events)


def _adjust_index(value: Optional[int], leaving: int, remaining: int) -> Optional[int]:
    if value is None:
        return value
    if value > leaving:
        return value - 1
    if value == leaving:
        return value % remaining if remaining else 0
    return value


def remove_player(state: GameState, uid: str, actor_uid: Optional[str] = None) -> ActionResult:
    """
    Remove a seat: a host kick (actor_uid given) or a permanent leave.

    Seat pointers are re-indexed, the host moves to the next seated uid
    when the host leaves, and any cards the leaver held go to the discard
    pile, including a card already in the current trick. A pointer at the
    leaver passes to the seat after it; a trick that every remaining
    active player has played to is resolved at once.
    """
    leaving = state.index_of(uid)
    if leaving is None:
        return ActionResult.fail(state, ERROR_PLAYER_NOT_FOUND, "Player not found.")

    kicked = actor_uid is not None and actor_uid != uid
    if kicked:
        host = validate_host(state, actor_uid, "Only the host can kick players.")
        if not host.valid:
            return ActionResult.rejected(state, host)
        if uid == state.host_uid:
            return ActionResult.fail(state, ERROR_NOT_HOST, "The host cannot be kicked.")

    new_state = copy.deepcopy(state)
    leaver = new_state.players.pop(leaving)
    remaining = len(new_state.players)

    held = new_state.hands.pop(leaver.seat_key, [])
    new_state.discard_pile.extend(held)
    new_state.swap_counts.pop(leaver.seat_key, None)
    new_state.start_votes = [v for v in new_state.start_votes if v != uid]

    if new_state.host_uid == uid:
        new_state.host_uid = next((p.uid for p in new_state.players if p.uid), None)

    trick = new_state.current_trick
    dropped = [p for p in trick.plays if p.player_index == leaving]
    if dropped:
        new_state.discard_pile.extend(p.card for p in dropped)
        trick.plays = [p for p in trick.plays if p.player_index != leaving]
        trick.lead_suit = trick.plays[0].card.suit if trick.plays else None

    new_state.dealer_index = _adjust_index(new_state.dealer_index, leaving, remaining)
    new_state.leader_index = _adjust_index(new_state.leader_index, leaving, remaining)
    new_state.current_turn_index = _adjust_index(new_state.current_turn_index, leaving, remaining)
    for play in trick.plays:
        play.player_index = _adjust_index(play.player_index, leaving, remaining)

    if kicked:
        events = [system_message(f"{leaver.name} has been kicked.", actor_uid)]
    else:
        events = [system_message(f"{leaver.name} has permanently left the room.", uid)]

    info: Dict[str, Any] = {"removed_uid": uid, "removed_index": leaving}
    if new_state.phase in (PHASE_SWAP, PHASE_TRICK) and remaining:
        if new_state.active_count() < MIN_PLAYERS:
            _end_by_folds(new_state, events, info)
        elif new_state.phase == PHASE_SWAP and new_state.players[new_state.current_turn_index].has_swapped:
            _advance_swap_turn(new_state, from_index=new_state.current_turn_index - 1)
        elif new_state.phase == PHASE_TRICK:
            if trick.plays and len(trick.plays) >= new_state.active_count():
                _resolve_trick(new_state, events, info)
            elif new_state.players[new_state.current_turn_index].folded:
                new_state.current_turn_index = new_state.first_active_index(new_state.current_turn_index)

    new_state.increment_version()
    logger.info("room %s: removed %s (kicked=%s)", state.id, uid, kicked)
    return ActionResult.ok(new_state, events, info)


def promote_host(state: GameState, actor_uid: str, target_uid: str) -> ActionResult:
    host = validate_host(state, actor_uid, "Only the host can choose a new host.")
    if not host.valid:
        return ActionResult.rejected(state, host)
    target = state.index_of(target_uid)
    if target is None:
        return ActionResult.fail(state, ERROR_PLAYER_NOT_FOUND, "Player not found.")

    new_state = copy.deepcopy(state)
    new_state.host_uid = target_uid
    new_state.increment_version()
    name = new_state.players[target].name
    return ActionResult.ok(new_state, [system_message(f"{name} has been made host.", actor_uid)])


def rename_room(state: GameState, actor_uid: str, name: str) -> ActionResult:
    host = validate_host(state, actor_uid, "Only the host can rename this room.")
    if not host.valid:
        return ActionResult.rejected(state, host)
    clean = normalize_room_name(name)
    if not clean:
        return ActionResult.fail(state, ERROR_INVALID_SELECTION, "Room name can't be empty.")

    new_state = copy.deepcopy(state)
    new_state.room_name = clean
    new_state.increment_version()
    return ActionResult.ok(new_state)


def rename_player(state: GameState, uid: str, name: str) -> ActionResult:
    index = state.index_of(uid)
    if index is None:
        return ActionResult.fail(state, ERROR_PLAYER_NOT_FOUND, "Player not found.")
    clean = normalize_nickname(name)
    if not clean:
        return ActionResult.fail(state, ERROR_INVALID_SELECTION, "Nickname can't be empty.")
    if state.players[index].name == clean:
        return ActionResult.ok(state)

    new_state = copy.deepcopy(state)
    new_state.players[index].name = clean
    new_state.increment_version()
    return ActionResult.ok(new_state)


def update_settings(state: GameState, actor_uid: Optional[str], overrides: Dict[str, Any]) -> ActionResult:
    """Change house rules; host only, between games."""
    if state.phase not in (PHASE_LOBBY, PHASE_GAME_OVER):
        return ActionResult.fail(state, ERROR_WRONG_PHASE, "Settings can only change between games.")
    host = validate_host(state, actor_uid, "Only the host can change settings.")
    if not host.valid:
        return ActionResult.rejected(state, host)

    new_state = copy.deepcopy(state)
    merged = new_state.settings.model_dump()
    merged.update(overrides)
    new_state.settings = clamp_settings(merged)
    new_state.increment_version()
    return ActionResult.ok(new_state)


# ---------------------------------------------------------------------------
# Votes and game start
# ---------------------------------------------------------------------------

def normalize_votes(state: GameState) -> List[str]:
    """Unique votes from seated uids only, in cast order."""
    seated = set(state.seated_uids)
    votes = []
    for uid in state.start_votes:
        if uid and (not seated or uid in seated) and uid not in votes:
            votes.append(uid)
    return votes


def votes_complete(state: GameState) -> bool:
    eligible = state.seated_uids
    if len(eligible) < MIN_PLAYERS:
        return False
    votes = set(normalize_votes(state))
    return all(uid in votes for uid in eligible)


def cast_start_vote(state: GameState, uid: str) -> ActionResult:
    if state.phase not in (PHASE_LOBBY, PHASE_GAME_OVER):
        return ActionResult.fail(state, ERROR_WRONG_PHASE,
                                 "Voting is only available in the lobby or after game over.")
    if state.index_of(uid) is None:
        return ActionResult.fail(state, ERROR_PLAYER_NOT_FOUND, "Player not found.")

    votes = normalize_votes(state)
    if uid in votes:
        return ActionResult.ok(state, info={"all_voted": votes_complete(state)})

    new_state = copy.deepcopy(state)
    new_state.start_votes = votes + [uid]
    new_state.increment_version()
    return ActionResult.ok(new_state, info={"all_voted": votes_complete(new_state)})


def _clear_hand_state(state: GameState):
    state.trick_number = 0
    state.trump_card = None
    state.trump_suit = None
    state.current_trick = Trick()
    state.last_trick_winner_index = None
    state.last_completed_trick = None
    state.winner_index = None
    state.hand_ended_by_folds = False
    state.fold_win_index = None
    state.swap_counts = {}
    state.hands = {state.seat_key(i): [] for i in range(len(state.players))}


def _reset_for_new_game(state: GameState, keep_totals: bool = True):
    """Scores back to the starting value, dealer 0, nothing dealt."""
    starting_score = state.settings.starting_score
    state.players = [
        new_player(p.name, starting_score, uid=p.uid, seat_id=p.id, seed=p if keep_totals else None)
        for p in state.players
    ]
    state.dealer_index = 0
    state.leader_index = 0
    state.current_turn_index = 0
    state.hand_id = 0
    state.deck = []
    state.discard_pile = []
    state.played_cards = []
    state.start_votes = []
    _clear_hand_state(state)


def start_game(state: GameState, actor_uid: Optional[str] = None) -> ActionResult:
    """LOBBY -> HAND_END: everyone at the starting score, dealer is seat 0."""
    validation = validate_start(state, actor_uid)
    if not validation.valid:
        return ActionResult.rejected(state, validation)

    new_state = copy.deepcopy(state)
    _reset_for_new_game(new_state)
    new_state.game_id += 1
    new_state.phase = PHASE_HAND_END
    new_state.increment_version()
    logger.debug("room %s: game %d started", state.id, new_state.game_id)
    return ActionResult.ok(new_state)


def start_new_game(state: GameState, actor_uid: Optional[str] = None) -> ActionResult:
    """GAME_OVER -> HAND_END with a fresh game id."""
    validation = validate_new_game(state, actor_uid)
    if not validation.valid:
        return ActionResult.rejected(state, validation)

    new_state = copy.deepcopy(state)
    _reset_for_new_game(new_state)
    new_state.game_id += 1
    new_state.phase = PHASE_HAND_END
    new_state.increment_version()
    logger.debug("room %s: new game %d", state.id, new_state.game_id)
    return ActionResult.ok(new_state)


def start_from_votes(state: GameState, actor_uid: Optional[str] = None) -> ActionResult:
    """Start whichever game the vote was for: a first game from the lobby, or a new one."""
    if state.phase == PHASE_GAME_OVER:
        return start_new_game(state, actor_uid)
    return start_game(state, actor_uid)


# ---------------------------------------------------------------------------
# Dealing and swapping
# ---------------------------------------------------------------------------

def deal_hand(state: GameState, actor_uid: Optional[str] = None, seed: Optional[int] = None) -> ActionResult:
    """
    HAND_END -> SWAP.

    Five rounds of one card per seat in seat order. The dealer's last card
    fixes trump for the hand. Swapping starts left of the dealer; the
    dealer leads the first trick.
    """
    validation = validate_deal(state, actor_uid)
    if not validation.valid:
        return ActionResult.rejected(state, validation)

    new_state = copy.deepcopy(state)
    new_state.hand_id += 1
    _clear_hand_state(new_state)
    for player in new_state.players:
        player.tricks_won_this_hand = 0
        player.won_tricks = []
        player.has_swapped = False
        player.folded = False

    new_state.deck = shuffle_deck(make_decks(new_state.settings.decks), seed)
    new_state.discard_pile = []
    new_state.played_cards = []

    multi = is_multiplayer(new_state)
    seat_keys = [p.uid if multi else new_state.seat_key(i) for i, p in enumerate(new_state.players)]
    new_state.hands = deal_hands(new_state.deck, seat_keys)

    dealer_hand = new_state.hands.get(seat_keys[new_state.dealer_index] or "", [])
    if dealer_hand:
        new_state.trump_card = dealer_hand[-1]
        new_state.trump_suit = new_state.trump_card.suit

    new_state.phase = PHASE_SWAP
    new_state.current_turn_index = new_state.first_active_index(
        (new_state.dealer_index + 1) % len(new_state.players))
    new_state.leader_index = new_state.dealer_index
    new_state.trick_number = 0
    new_state.current_trick = Trick()
    new_state.increment_version()
    logger.debug("room %s: hand %d dealt, trump %s", state.id, new_state.hand_id, new_state.trump_suit)
    return ActionResult.ok(new_state)


def _advance_swap_turn(state: GameState, from_index: Optional[int] = None):
    """Next seat that hasn't swapped, or on to the first trick."""
    count = len(state.players)
    start = state.current_turn_index if from_index is None else from_index
    for k in range(1, count + 1):
        idx = (start + k) % count
        if not state.players[idx].has_swapped:
            state.current_turn_index = idx
            return

    state.phase = PHASE_TRICK
    state.trick_number = 1
    state.current_turn_index = state.first_active_index(state.leader_index)
    state.current_trick = Trick()


def swap_cards(state: GameState, actor_uid: Optional[str], card_ids: List[str]) -> ActionResult:
    """
    Discard 0-3 cards and draw replacements from the shoe.

    Replacements go back into the discarded positions in ascending index
    order. Once the shoe is empty the remaining positions are just removed.
    """
    validation = validate_swap(state, actor_uid, card_ids)
    if not validation.valid:
        return ActionResult.rejected(state, validation)

    new_state = copy.deepcopy(state)
    index = validation.player_index
    player = new_state.players[index]
    hand = new_state.hand_for(index)

    discard_ids = {card.id for card in validation.cards}
    positions = sorted(i for i, card in enumerate(hand) if card.id in discard_ids)
    drawn: List[Card] = []
    removed = 0
    for pos in positions:
        cur = pos - removed
        new_state.discard_pile.append(hand.pop(cur))
        if new_state.deck:
            card = new_state.deck.pop()
            hand.insert(cur, card)
            drawn.append(card)
        else:
            removed += 1

    new_state.swap_counts[new_state.seat_key(index)] = len(positions)
    player.has_swapped = True
    _advance_swap_turn(new_state)
    new_state.increment_version()
    logger.debug("room %s: seat %d swapped %d", state.id, index, len(positions))
    return ActionResult.ok(new_state, info={"player_index": index, "drawn": drawn, "count": len(positions)})


def fold_player(state: GameState, actor_uid: Optional[str] = None) -> ActionResult:
    """
    Fold during the swap phase.

    Below the fold threshold a penalty applies first. The folded hand goes
    to the discard pile. If only one active player is left the hand ends
    and that player takes all five tricks.
    """
    validation = validate_fold(state, actor_uid)
    if not validation.valid:
        return ActionResult.rejected(state, validation)

    new_state = copy.deepcopy(state)
    index = validation.player_index
    player = new_state.players[index]
    settings = new_state.settings

    if player.score < settings.fold_threshold:
        if settings.fold_penalty == FOLD_PENALTY_INCREASE:
            player.score += 1
        else:
            player.score = settings.fold_threshold

    player.folded = True
    player.has_swapped = True

    hand = new_state.hand_for(index)
    if new_state.trump_card and any(card.id == new_state.trump_card.id for card in hand):
        new_state.trump_card = None
        new_state.trump_suit = None
    new_state.discard_pile.extend(hand)
    new_state.hands[new_state.seat_key(index)] = []

    events: List[Any] = [FoldEntry(
        hand_id=new_state.hand_id,
        game_id=new_state.game_id,
        player_index=index,
        player_name=player.name,
    )]
    info: Dict[str, Any] = {"player_index": index}

    if new_state.active_count() < MIN_PLAYERS:
        _end_by_folds(new_state, events, info)
    else:
        _advance_swap_turn(new_state)

    new_state.increment_version()
    return ActionResult.ok(new_state, events, info)


def _end_by_folds(state: GameState, events: List[Any], info: Dict[str, Any]):
    remaining = state.first_active_index(0)
    if remaining is not None:
        state.players[remaining].tricks_won_this_hand = TRICKS_PER_HAND
        state.last_trick_winner_index = remaining
    state.hand_ended_by_folds = True
    state.fold_win_index = remaining
    _end_hand(state, events, info)


# ---------------------------------------------------------------------------
# Trick play
# ---------------------------------------------------------------------------

def play_cards(state: GameState, actor_uid: Optional[str], card_ids: List[str]) -> ActionResult:
    """
    Play exactly one card into the current trick.

    When every active player has played, the trick is resolved: the winner
    leads next. A winner whose projected score reaches zero ends the hand
    at once; otherwise the hand ends after the fifth trick.
    """
    validation = validate_play(state, actor_uid, card_ids)
    if not validation.valid:
        return ActionResult.rejected(state, validation)

    new_state = copy.deepcopy(state)
    index = validation.player_index
    card = validation.cards[0]
    player = new_state.players[index]

    hand = new_state.hand_for(index)
    hand[:] = [c for c in hand if c.id != card.id]
    trick = new_state.current_trick
    trick.plays.append(TrickPlay(player_index=index, card=card))
    if not trick.lead_suit:
        trick.lead_suit = card.suit
        new_state.last_completed_trick = None

    events: List[Any] = [PlayEntry(
        hand_id=new_state.hand_id,
        game_id=new_state.game_id,
        trick_number=new_state.trick_number,
        player_index=index,
        player_name=player.name,
        card=CardRecord.of(card),
    )]
    info: Dict[str, Any] = {"player_index": index, "card": card}

    if len(trick.plays) >= new_state.active_count():
        _resolve_trick(new_state, events, info)
    else:
        next_idx = new_state.next_active_index(new_state.current_turn_index)
        if next_idx is not None:
            new_state.current_turn_index = next_idx

    new_state.increment_version()
    return ActionResult.ok(new_state, events, info)


def play_card(state: GameState, actor_uid: Optional[str], card_id: str) -> ActionResult:
    return play_cards(state, actor_uid, [card_id])


def _resolve_trick(state: GameState, events: List[Any], info: Dict[str, Any]):
    """Award a full trick; the winner leads the next one unless the hand is over."""
    trick = state.current_trick
    winner_idx = determine_trick_winner(trick.plays, trick.lead_suit, state.trump_suit)
    winner = state.players[winner_idx]
    winner.tricks_won_this_hand += 1
    record = [TrickPlay(player_index=p.player_index, card=p.card) for p in trick.plays]
    winner.won_tricks.append(record)
    state.last_trick_winner_index = winner_idx
    state.last_completed_trick = record
    state.played_cards.extend(p.card for p in trick.plays)
    state.leader_index = winner_idx
    state.current_trick = Trick()
    info["trick_winner"] = winner_idx

    if is_fast_track_win(winner):
        info["fast_track"] = True
        _end_hand(state, events, info)
    elif state.trick_number >= TRICKS_PER_HAND:
        _end_hand(state, events, info)
    else:
        state.trick_number += 1
        state.current_turn_index = state.first_active_index(state.leader_index)


def _end_hand(state: GameState, events: List[Any], info: Dict[str, Any]):
    """Score the hand, pick the next dealer, and either wait for a deal or end the game."""
    state.phase = PHASE_HAND_END
    dinged, winner_index = score_hand(state)
    if winner_index is not None:
        state.winner_index = winner_index
        state.phase = PHASE_GAME_OVER
    else:
        state.winner_index = None

    winner_name = None
    if state.hand_ended_by_folds and state.fold_win_index is not None:
        winner_name = state.players[state.fold_win_index].name
    events.append(HandEndEntry(
        hand_id=state.hand_id,
        game_id=state.game_id,
        scores=[ScoreLine(name=p.name, score=p.score) for p in state.players],
        reason=HAND_END_ALL_FOLDED if state.hand_ended_by_folds else HAND_END_COMPLETE,
        winner_name=winner_name,
    ))

    state.dealer_index = next_dealer(state)

    for key, cards in state.hands.items():
        state.discard_pile.extend(cards)
        state.hands[key] = []
    state.discard_pile.extend(p.card for p in state.current_trick.plays)
    state.current_trick = Trick()
    state.trump_card = None
    state.trump_suit = None

    state.current_turn_index = state.dealer_index
    info["hand_ended"] = True
    info["dinged"] = dinged
    info["winner_index"] = winner_index
    logger.debug("room %s: hand %d ended (dinged=%s, winner=%s)", state.id, state.hand_id, dinged, winner_index)


# ---------------------------------------------------------------------------
# Host resets
# ---------------------------------------------------------------------------

def reset_hand(state: GameState, actor_uid: Optional[str] = None) -> ActionResult:
    """Abandon the current hand; the same dealer deals again."""
    host = validate_host(state, actor_uid, "Only the host can reset the hand.")
    if not host.valid:
        return ActionResult.rejected(state, host)
    if state.phase in (PHASE_LOBBY, PHASE_GAME_OVER):
        return ActionResult.fail(state, ERROR_WRONG_PHASE, "There is no hand to reset.")

    new_state = copy.deepcopy(state)
    for player in new_state.players:
        player.tricks_won_this_hand = 0
        player.won_tricks = []
        player.has_swapped = False
        player.folded = False
    _clear_hand_state(new_state)
    new_state.phase = PHASE_HAND_END
    new_state.leader_index = new_state.dealer_index
    new_state.current_turn_index = new_state.dealer_index
    new_state.deck = []
    new_state.discard_pile = []
    new_state.played_cards = []
    new_state.increment_version()
    return ActionResult.ok(new_state, [system_message("Host has reset hand.", actor_uid)])


def reset_room(state: GameState, actor_uid: Optional[str] = None) -> ActionResult:
    """Back to the lobby for everyone; win and ding totals are cleared."""
    host = validate_host(state, actor_uid, "Only the host can reset the room.")
    if not host.valid:
        return ActionResult.rejected(state, host)

    new_state = copy.deepcopy(state)
    _reset_for_new_game(new_state, keep_totals=False)
    new_state.phase = PHASE_LOBBY
    new_state.increment_version()
    return ActionResult.ok(new_state, [system_message("Host has reset game.", actor_uid)])


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def turn_key(state: GameState) -> str:
    """Identifies one pending action: hand, trick, seat and phase."""
    return f"{state.hand_id or 0}-{state.trick_number or 0}-{state.current_turn_index or 0}-{state.phase or ''}"


def turn_uid(state: GameState) -> Optional[str]:
    """Uid expected to act next, if any."""
    if state.phase not in (PHASE_SWAP, PHASE_TRICK, PHASE_HAND_END):
        return None
    player = state.current_player
    return player.uid if player else None


def card_conservation_ok(state: GameState) -> bool:
    """
    Every card of the shoe is in exactly one place.

    Only meaningful for a state that knows every hand (hotseat, or the
    dealer's copy right after a deal). The trump card normally sits in the
    dealer's hand and is only counted separately when it is nowhere else.
    """
    seen: List[str] = []
    for cards in state.hands.values():
        seen.extend(card.id for card in cards)
    seen.extend(card.id for card in state.deck)
    seen.extend(card.id for card in state.discard_pile)
    seen.extend(card.id for card in state.played_cards)
    seen.extend(play.card.id for play in state.current_trick.plays)
    if state.trump_card and state.trump_card.id not in seen:
        seen.append(state.trump_card.id)

    expected = sorted(card.id for card in make_decks(state.settings.decks))
    return sorted(seen) == expected
