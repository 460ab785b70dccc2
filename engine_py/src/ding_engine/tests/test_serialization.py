"""
Record mapping, snapshot diff and room log tests.
"""

import pytest

from ding_engine.comparator import parse_card_id
from ding_engine.diff import diff_room_snapshots
from ding_engine.engine import create_room, deal_hand, join_room, start_game, swap_cards
from ding_engine.roomlog import (
    ChatEntry, ChatLikeEntry, build_chat_like_index, like_count, parse_log_entry, system_message,
)
from ding_engine.serialization import (
    card_from_record, hand_from_record, hand_generation, hand_to_record, hand_updated_at,
    room_from_record, room_to_record,
)


def dealt_room():
    state = create_room("ROOM1", "u0", "Ann", "Table")
    state = join_room(state, "u1", "Ben").state
    state = join_room(state, "u2", "Cat").state
    state = start_game(state, "u0").state
    return deal_hand(state, "u0", 4).state


def test_room_record_has_no_hands():
    state = dealt_room()
    record = room_to_record(state)
    assert "hands" not in record
    assert record["hostUid"] == "u0"
    assert record["roomName"] == "Table"
    assert record["turnUid"] == "u1"
    assert record["turnKey"] == "1-0-1-SWAP"
    assert record["trumpCard"]["id"] == state.trump_card.id
    assert record["settings"]["startingScore"] == 20


def test_room_record_round_trip():
    state = dealt_room()
    restored = room_from_record(room_to_record(state))
    assert restored.phase == state.phase
    assert restored.trump_card == state.trump_card
    assert restored.deck == state.deck
    assert [p.uid for p in restored.players] == ["u0", "u1", "u2"]
    assert restored.hands == {}


def test_partial_snapshot_keeps_previous_fields():
    """Fields missing from a snapshot keep their last known value; hands carry over."""
    previous = dealt_room()
    previous.hands = {"u1": list(previous.hands["u1"])}
    state = room_from_record({"currentTurnIndex": 2, "trumpCard": None}, previous)
    assert state.current_turn_index == 2
    assert state.phase == previous.phase
    assert state.room_name == "Table"
    assert state.trump_card is None
    assert state.hands == previous.hands


def test_snapshot_votes_are_filtered():
    previous = create_room("ROOM1", "u0", "Ann", None)
    state = room_from_record({"startVotes": ["u0", "ghost", "u0"]}, previous)
    assert state.start_votes == ["u0"]


def test_card_records():
    assert card_from_record("12D_1") == parse_card_id("12D_1")
    card = card_from_record({"suit": "H", "rank": 9})
    assert card.id == "9H_0"
    assert card_from_record(None) is None


def test_hand_records():
    cards = [parse_card_id("2C_0"), parse_card_id("14S_0")]
    record = hand_to_record(cards, updated_at=12.5, hand_id=3)
    assert record["updatedAt"] == 12.5
    assert record["handId"] == 3
    assert hand_from_record(record) == cards
    assert hand_from_record({"hand": ["2C_0"]}) == cards[:1]
    assert hand_from_record(None) == []
    assert hand_updated_at({"updatedAt": "soon"}) == 0.0


def test_hand_generation_orders_games_before_hands():
    first_game = hand_to_record([], updated_at=99.0, hand_id=7, game_id=1)
    second_game = hand_to_record([], updated_at=1.0, hand_id=1, game_id=2)
    assert hand_generation(first_game) == (1, 7)
    assert hand_generation(second_game) > hand_generation(first_game)
    assert hand_generation({"handId": 3}) == (0, 3)
    assert hand_generation({"cards": []}) is None


def test_diff_swap_notices_once_per_change():
    old = dealt_room()
    new = swap_cards(old, "u1", [old.hands["u1"][0].id]).state
    changes = diff_room_snapshots(old, new, "u0")
    assert changes.swap_notices == [(1, "u1", "Ben", 1)]
    assert changes.turn_changed
    assert not changes.hand_changed

    again = diff_room_snapshots(new, new, "u0")
    assert again.swap_notices == []
    assert not again.any


def test_diff_new_hand_resets_notices():
    old = dealt_room()
    old.swap_counts = {"u1": 2}
    new = room_from_record(room_to_record(old), old)
    new.hand_id = old.hand_id + 1
    changes = diff_room_snapshots(old, new, "u0")
    assert changes.hand_changed
    assert changes.swap_notices == [(2, "u1", "Ben", 2)]


def test_diff_detects_kick():
    old = dealt_room()
    record = room_to_record(old)
    record["players"] = [p for p in record["players"] if p["uid"] != "u2"]
    new = room_from_record(record, old)
    assert diff_room_snapshots(old, new, "u2").kicked
    changes = diff_room_snapshots(old, new, "u0")
    assert not changes.kicked
    assert changes.removed_uids == ["u2"]


def test_chat_like_index():
    """The latest like toggle per uid wins over likes stored on the entry."""
    entries = [
        {"id": "c1", "type": "chat", "message": "hi", "playerName": "Ann", "likes": ["u1", "u2"]},
        {"id": "l1", "type": "chat_like", "targetId": "c1", "playerUid": "u1", "liked": False,
         "createdAt": 5.0},
        {"id": "l2", "type": "chat_like", "targetId": "c1", "playerUid": "u3", "liked": True,
         "clientCreatedAt": 6.0},
        {"id": "l3", "type": "chat_like", "targetId": "c1", "playerUid": "u3", "liked": False,
         "createdAt": 4.0},
    ]
    index = build_chat_like_index(entries)
    assert index["c1"] == {"u1": False, "u2": True, "u3": True}
    assert like_count(index, "c1") == 2
    assert like_count(index, "missing") == 0


def test_log_entry_records():
    entry = ChatLikeEntry(target_id="c1", liked=True, player_uid="u1")
    record = entry.to_record()
    assert record["targetId"] == "c1"
    assert parse_log_entry({**record, "id": "x", "createdAt": 1.0}) == entry

    assert system_message("Ann has joined.").player_name == "System"
    with pytest.raises(ValueError):
        parse_log_entry({"type": "nope"})
    with pytest.raises(ValueError):
        parse_log_entry({"type": "chat", "message": "", "playerName": "Ann"})
    with pytest.raises(ValueError):
        ChatEntry(message="x" * 241, player_name="Ann")
