"""
Record mapping between GameState and the shared store documents.

The shared room record never carries hands; each seat's cards live in
their own hand record.
"""

import time
from typing import Any, Dict, List, Optional, Tuple

from .comparator import parse_card_id
from .constants import MODE_MULTI, PHASE_LOBBY
from .engine import normalize_votes, turn_key, turn_uid
from .models import Card, GameState, Player, Trick, TrickPlay
from .rules import RuleConfig


def card_to_record(card: Optional[Card]) -> Optional[Dict[str, Any]]:
    if card is None:
        return None
    return {"suit": card.suit, "rank": card.rank, "id": card.id}


def card_from_record(data: Any) -> Optional[Card]:
    """Accepts a card record or a bare card id."""
    if not data:
        return None
    if isinstance(data, str):
        return parse_card_id(data)
    suit, rank = data.get("suit"), data.get("rank")
    if suit is None or rank is None:
        return parse_card_id(data.get("id", ""))
    card_id = data.get("id") or f"{rank}{suit}_0"
    return Card(suit=suit, rank=int(rank), id=card_id)


def _cards_to_records(cards: List[Card]) -> List[Dict[str, Any]]:
    return [card_to_record(c) for c in cards]


def _cards_from_records(data: Any) -> List[Card]:
    if not isinstance(data, list):
        return []
    cards = (card_from_record(item) for item in data)
    return [c for c in cards if c is not None]


def _plays_to_records(plays: List[TrickPlay]) -> List[Dict[str, Any]]:
    return [{"playerIndex": p.player_index, "card": card_to_record(p.card)} for p in plays]


def _plays_from_records(data: Any) -> List[TrickPlay]:
    plays = []
    for item in data or []:
        card = card_from_record(item.get("card"))
        if card is None:
            continue
        plays.append(TrickPlay(player_index=int(item.get("playerIndex", 0)), card=card))
    return plays


def player_to_record(player: Player) -> Dict[str, Any]:
    return {
        "name": player.name,
        "uid": player.uid,
        "id": player.id,
        "tricksWonThisHand": player.tricks_won_this_hand,
        "wonTricks": [{"plays": _plays_to_records(t)} for t in player.won_tricks],
        "score": player.score,
        "dingCount": player.ding_count,
        "totalWins": player.total_wins,
        "hasSwapped": player.has_swapped,
        "folded": player.folded,
    }


def player_from_record(data: Dict[str, Any], starting_score: int) -> Player:
    won = []
    for trick in data.get("wonTricks") or []:
        plays = trick.get("plays") if isinstance(trick, dict) else trick
        won.append(_plays_from_records(plays))
    return Player(
        name=data.get("name") or "Player",
        uid=data.get("uid"),
        id=data.get("id"),
        tricks_won_this_hand=int(data.get("tricksWonThisHand") or 0),
        won_tricks=won,
        score=int(data.get("score", starting_score)),
        ding_count=int(data.get("dingCount") or 0),
        total_wins=int(data.get("totalWins") or 0),
        has_swapped=bool(data.get("hasSwapped")),
        folded=bool(data.get("folded")),
    )


def room_to_record(state: GameState) -> Dict[str, Any]:
    """Public room record, camelCase keys, without any hand."""
    last = state.last_completed_trick
    return {
        "id": state.id,
        "mode": state.mode,
        "version": state.version,
        "phase": state.phase,
        "players": [player_to_record(p) for p in state.players],
        "hostUid": state.host_uid,
        "roomName": state.room_name,
        "dealerIndex": state.dealer_index,
        "leaderIndex": state.leader_index,
        "currentTurnIndex": state.current_turn_index,
        "trickNumber": state.trick_number,
        "handId": state.hand_id,
        "gameId": state.game_id,
        "deck": _cards_to_records(state.deck),
        "trumpCard": card_to_record(state.trump_card),
        "trumpSuit": state.trump_suit,
        "currentTrick": {
            "plays": _plays_to_records(state.current_trick.plays),
            "leadSuit": state.current_trick.lead_suit,
        },
        "discardPile": _cards_to_records(state.discard_pile),
        "playedCards": _cards_to_records(state.played_cards),
        "swapCounts": dict(state.swap_counts),
        "startVotes": list(state.start_votes),
        "settings": state.settings.to_record(),
        "lastTrickWinnerIndex": state.last_trick_winner_index,
        "lastCompletedTrick": {"plays": _plays_to_records(last)} if last is not None else None,
        "winnerIndex": state.winner_index,
        "handEndedByFolds": state.hand_ended_by_folds,
        "foldWinIndex": state.fold_win_index,
        "turnUid": turn_uid(state),
        "turnKey": turn_key(state),
    }


def room_from_record(
    data: Dict[str, Any],
    previous: Optional[GameState] = None,
    room_id: Optional[str] = None
) -> GameState:
    """
    Merge a remote room snapshot over the previously known state.

    Fields missing from the snapshot keep their previous values. Hands are
    never part of the room record, so the previous hands carry over.
    """
    merged: Dict[str, Any] = room_to_record(previous) if previous else {}
    merged.update({k: v for k, v in (data or {}).items() if v is not None or k in _NULLABLE})

    base_settings = previous.settings if previous else None
    settings = RuleConfig.from_record(merged.get("settings"), base_settings)

    state = GameState(
        id=merged.get("id") or room_id or (previous.id if previous else ""),
        mode=merged.get("mode") or MODE_MULTI,
        version=int(merged.get("version") or 0),
        phase=merged.get("phase") or PHASE_LOBBY,
        players=[player_from_record(p, settings.starting_score) for p in merged.get("players") or []],
        host_uid=merged.get("hostUid"),
        room_name=merged.get("roomName"),
        dealer_index=int(merged.get("dealerIndex") or 0),
        leader_index=int(merged.get("leaderIndex") or 0),
        current_turn_index=int(merged.get("currentTurnIndex") or 0),
        trick_number=int(merged.get("trickNumber") or 0),
        hand_id=int(merged.get("handId") or 0),
        game_id=int(merged.get("gameId") or 0),
        deck=_cards_from_records(merged.get("deck")),
        trump_card=card_from_record(merged.get("trumpCard")),
        trump_suit=merged.get("trumpSuit"),
        discard_pile=_cards_from_records(merged.get("discardPile")),
        played_cards=_cards_from_records(merged.get("playedCards")),
        swap_counts={k: int(v) for k, v in (merged.get("swapCounts") or {}).items()},
        start_votes=list(merged.get("startVotes") or []),
        settings=settings,
        last_trick_winner_index=merged.get("lastTrickWinnerIndex"),
        winner_index=merged.get("winnerIndex"),
        hand_ended_by_folds=bool(merged.get("handEndedByFolds")),
        fold_win_index=merged.get("foldWinIndex"),
    )

    trick = merged.get("currentTrick") or {}
    state.current_trick = Trick(plays=_plays_from_records(trick.get("plays")), lead_suit=trick.get("leadSuit"))
    last = merged.get("lastCompletedTrick")
    if last is not None:
        state.last_completed_trick = _plays_from_records(last.get("plays") if isinstance(last, dict) else last)

    if previous is not None:
        state.hands = {k: list(v) for k, v in previous.hands.items()}
    state.start_votes = normalize_votes(state)
    return state


# Fields where an explicit null in a snapshot clears the previous value.
_NULLABLE = {
    "trumpCard", "trumpSuit", "hostUid", "lastTrickWinnerIndex",
    "lastCompletedTrick", "winnerIndex", "foldWinIndex", "turnUid",
}


def hand_to_record(cards: List[Card], updated_at: Any = None,
                   hand_id: Optional[int] = None, game_id: Optional[int] = None) -> Dict[str, Any]:
    """updated_at may be a store sentinel such as SERVER_TIMESTAMP."""
    record = {
        "cards": _cards_to_records(cards),
        "updatedAt": updated_at if updated_at is not None else time.time(),
    }
    if hand_id is not None:
        record["handId"] = hand_id
    if game_id is not None:
        record["gameId"] = game_id
    return record


def hand_from_record(data: Optional[Dict[str, Any]]) -> List[Card]:
    """Cards from a hand record; older records used the key 'hand'."""
    if not data:
        return []
    return _cards_from_records(data.get("cards", data.get("hand")))


def hand_updated_at(data: Optional[Dict[str, Any]]) -> float:
    value = (data or {}).get("updatedAt")
    return float(value) if isinstance(value, (int, float)) else 0.0


def hand_generation(data: Optional[Dict[str, Any]]) -> Optional[Tuple[int, int]]:
    """(gameId, handId) of a hand record; None for records without a handId."""
    data = data or {}
    hand_id = data.get("handId")
    if not isinstance(hand_id, int):
        return None
    game_id = data.get("gameId")
    return (game_id if isinstance(game_id, int) else 0, hand_id)
