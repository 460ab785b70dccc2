"""
Multiplayer room tests: seating, host actions, votes and turn identity.
"""

from ding_engine.constants import (
    ERROR_NOT_DEALER, ERROR_NOT_HOST, ERROR_ROOM_FULL, ERROR_WRONG_PHASE,
    PHASE_GAME_OVER, PHASE_HAND_END, PHASE_LOBBY, PHASE_SWAP, PHASE_TRICK,
)
from ding_engine.engine import (
    card_conservation_ok, cast_start_vote, create_room, deal_hand, join_room, normalize_votes,
    play_card, promote_host,
    remove_player, rename_player, rename_room, reset_hand, reset_room, start_from_votes,
    start_game, swap_cards, turn_key, turn_uid, update_settings, votes_complete,
)
from ding_engine.rooms import (
    get_default_room_name, get_room_display_name, make_room_code, normalize_nickname,
    normalize_room_code,
)


def seated_room(count=3, host="u0"):
    state = create_room("ROOM1", host, "Host", "Friday Night")
    for i in range(1, count):
        state = join_room(state, f"u{i}", f"Player {i}").state
    return state


def dealt_room(count=3, seed=5):
    state = start_game(seated_room(count), "u0").state
    return deal_hand(state, "u0", seed).state


def trick_room(count=4, seed=5):
    """Dealer's copy of a room at the start of the first trick, seat 0 leading."""
    state = dealt_room(count, seed)
    while state.phase == PHASE_SWAP:
        result = swap_cards(state, turn_uid(state), [])
        assert result.success
        state = result.state
    state.leader_index = 0
    state.current_turn_index = 0
    return state


def play_turns(state, count):
    for _ in range(count):
        index = state.current_turn_index
        hand = state.hand_for(index)
        lead = state.current_trick.lead_suit
        card = next((c for c in hand if c.suit == lead), hand[0])
        state = play_card(state, state.players[index].uid, card.id).state
    return state


def test_create_room_seats_host():
    state = create_room("ROOM1", "u0", "  Host   Name ", None)
    assert state.host_uid == "u0"
    assert state.room_name == "Player's Lobby"
    assert state.players[0].name == "Host Name"
    assert state.phase == PHASE_LOBBY


def test_join_room_is_idempotent():
    state = seated_room(2)
    result = join_room(state, "u1", "Someone Else")
    assert result.success
    assert result.state is state
    assert len(state.players) == 2


def test_room_full():
    """Six seats at most."""
    state = seated_room(6)
    result = join_room(state, "u6", "Late")
    assert not result.success
    assert result.error_code == ERROR_ROOM_FULL
    assert "full" in result.error_message.lower()


def test_join_mid_hand_sits_out():
    """A player joining during a hand waits folded for the next deal."""
    state = dealt_room(2)
    result = join_room(state, "u9", "Newcomer")
    assert result.success
    newcomer = result.state.players[-1]
    assert newcomer.folded and newcomer.has_swapped
    assert result.events[0].message == "Newcomer has joined."
    assert result.state.active_count() == 2


def test_multiplayer_deal_by_dealer_only():
    state = start_game(seated_room(3), "u0").state
    result = deal_hand(state, "u1", 5)
    assert not result.success
    assert result.error_code == ERROR_NOT_DEALER

    dealt = deal_hand(state, "u0", 5).state
    assert dealt.phase == PHASE_SWAP
    assert set(dealt.hands) == {"u0", "u1", "u2"}
    assert dealt.trump_card == dealt.hands["u0"][-1]


def test_only_turn_holder_swaps():
    state = dealt_room(3)
    result = swap_cards(state, "u2", [])
    assert not result.success
    assert swap_cards(state, "u1", []).success


def test_kick_reindexes_seats():
    """Removing a seat shifts every pointer past it down by one."""
    state = seated_room(4)
    state.phase = PHASE_HAND_END
    state.dealer_index = 2
    state.leader_index = 3
    state.current_turn_index = 3
    result = remove_player(state, "u1", actor_uid="u0")
    assert result.success
    new_state = result.state
    assert [p.uid for p in new_state.players] == ["u0", "u2", "u3"]
    assert new_state.dealer_index == 1
    assert new_state.leader_index == 2
    assert new_state.current_turn_index == 2
    assert result.events[0].message == "Player 1 has been kicked."


def test_kick_requires_host():
    state = seated_room(3)
    result = remove_player(state, "u2", actor_uid="u1")
    assert not result.success
    assert result.error_code == ERROR_NOT_HOST
    host_kick = remove_player(state, "u0", actor_uid="u0")
    # removing yourself is a leave, not a kick
    assert host_kick.success


def test_host_leaving_hands_over_host():
    state = seated_room(3)
    result = remove_player(state, "u0")
    assert result.state.host_uid == "u1"
    assert result.events[0].message == "Host has permanently left the room."


def test_leave_mid_hand_with_one_left_ends_hand():
    """When a leave leaves a single active player, the hand ends as if everyone folded."""
    state = dealt_room(2)
    result = remove_player(state, "u1")
    assert result.success
    assert result.state.phase in (PHASE_HAND_END, PHASE_GAME_OVER)
    assert result.state.hand_ended_by_folds
    assert result.state.fold_win_index == 0


def test_turn_holder_leaving_completes_trick():
    """Everyone else has played, so the trick is settled among those seats."""
    state = play_turns(trick_room(4), 3)
    assert state.current_turn_index == 3
    leaver_cards = list(state.hand_for(3))

    result = remove_player(state, "u3")
    assert result.success
    new_state = result.state
    assert new_state.phase == PHASE_TRICK
    assert new_state.current_trick.plays == []
    assert new_state.trick_number == 2
    assert sorted(p.player_index for p in new_state.last_completed_trick) == [0, 1, 2]
    winner = new_state.last_trick_winner_index
    assert result.info["trick_winner"] == winner
    assert new_state.current_turn_index == winner
    assert new_state.leader_index == winner
    assert all(card in new_state.discard_pile for card in leaver_cards)
    assert card_conservation_ok(new_state)


def test_leaving_after_playing_discards_the_card():
    state = play_turns(trick_room(4), 2)
    played = state.current_trick.plays[1].card

    result = remove_player(state, "u1")
    new_state = result.state
    plays = new_state.current_trick.plays
    assert [p.player_index for p in plays] == [0]
    assert new_state.current_trick.lead_suit == plays[0].card.suit
    assert played in new_state.discard_pile
    # the seat that was up ("u2") keeps the turn under its new index
    assert new_state.current_turn_index == 1
    assert new_state.players[1].uid == "u2"
    assert card_conservation_ok(new_state)


def test_leaver_turn_passes_to_next_seat():
    state = play_turns(trick_room(4), 1)
    result = remove_player(state, "u1")
    new_state = result.state
    assert [p.player_index for p in new_state.current_trick.plays] == [0]
    assert new_state.players[new_state.current_turn_index].uid == "u2"


def test_leave_drops_vote():
    state = seated_room(3)
    state = cast_start_vote(state, "u2").state
    result = remove_player(state, "u2")
    assert result.state.start_votes == []


def test_votes_start_game():
    """Every seated uid voting completes the vote; duplicates and strangers don't count."""
    state = seated_room(3)
    state = cast_start_vote(state, "u0").state
    state = cast_start_vote(state, "u0").state
    assert state.start_votes == ["u0"]
    state = cast_start_vote(state, "u1").state
    assert not votes_complete(state)
    result = cast_start_vote(state, "u2")
    assert result.info["all_voted"]
    assert votes_complete(result.state)

    started = start_from_votes(result.state, "u0")
    assert started.success
    assert started.state.phase == PHASE_HAND_END
    assert started.state.start_votes == []


def test_normalize_votes_filters_stale_uids():
    state = seated_room(2)
    state.start_votes = ["u1", "gone", "u1", "u0"]
    assert normalize_votes(state) == ["u1", "u0"]


def test_vote_only_between_games():
    state = dealt_room(2)
    result = cast_start_vote(state, "u1")
    assert result.error_code == ERROR_WRONG_PHASE


def test_start_from_votes_after_game_over():
    state = seated_room(2)
    state.phase = PHASE_GAME_OVER
    state.game_id = 3
    state.players[1].score = 0
    result = start_from_votes(state, "u0")
    assert result.success
    assert result.state.game_id == 4
    assert result.state.phase == PHASE_HAND_END
    assert result.state.players[1].score == 20


def test_promote_and_rename():
    state = seated_room(2)
    promoted = promote_host(state, "u0", "u1")
    assert promoted.state.host_uid == "u1"
    assert promoted.events[0].message == "Player 1 has been made host."
    assert promote_host(state, "u1", "u1").error_code == ERROR_NOT_HOST

    renamed = rename_room(state, "u0", "   Game    Night  ")
    assert renamed.state.room_name == "Game Night"
    assert not rename_room(state, "u1", "Mine").success

    nick = rename_player(state, "u1", "x" * 30)
    assert nick.state.players[1].name == "x" * 18


def test_update_settings_host_only_between_games():
    state = seated_room(2)
    result = update_settings(state, "u0", {"starting_score": 99, "fold_threshold": 70})
    assert result.success
    assert result.state.settings.starting_score == 50
    assert result.state.settings.fold_threshold == 50
    assert update_settings(state, "u1", {"decks": 2}).error_code == ERROR_NOT_HOST

    dealt = dealt_room(2)
    assert update_settings(dealt, "u0", {"decks": 2}).error_code == ERROR_WRONG_PHASE


def test_reset_hand_keeps_dealer():
    state = dealt_room(3)
    result = reset_hand(state, "u0")
    assert result.success
    new_state = result.state
    assert new_state.phase == PHASE_HAND_END
    assert new_state.current_turn_index == new_state.dealer_index
    assert new_state.trump_card is None
    assert all(cards == [] for cards in new_state.hands.values())
    assert result.events[0].message == "Host has reset hand."
    assert reset_hand(state, "u1").error_code == ERROR_NOT_HOST


def test_reset_room_clears_totals():
    state = seated_room(2)
    state.players[0].ding_count = 3
    state.players[1].total_wins = 2
    state.phase = PHASE_GAME_OVER
    result = reset_room(state, "u0")
    assert result.state.phase == PHASE_LOBBY
    assert result.state.players[0].ding_count == 0
    assert result.state.players[1].total_wins == 0
    assert result.events[0].message == "Host has reset game."


def test_turn_identity():
    state = seated_room(3)
    assert turn_uid(state) is None

    started = start_game(state, "u0").state
    assert turn_uid(started) == "u0"

    dealt = deal_hand(started, "u0", 5).state
    assert turn_uid(dealt) == "u1"
    assert turn_key(dealt) == "1-0-1-SWAP"

    dealt.phase = PHASE_TRICK
    dealt.trick_number = 2
    assert turn_key(dealt) == "1-2-1-TRICK"


def test_room_helpers():
    assert normalize_room_code(" ab-c12xyz9 ") == "ABC12XYZ"
    assert get_room_display_name("   ") == "Player's Lobby"
    assert get_default_room_name("Jamie Lee") == "Jamie's Lobby"
    assert normalize_nickname("  a   b  ") == "a b"
    code = make_room_code()
    assert len(code) == 6
    assert all(ch in "ABCDEFGHJKMNPQRSTUVWXYZ23456789" for ch in code)
