"""
Hand flow tests for the Ding game engine (hotseat mode).
"""

import pytest
from ding_engine.comparator import parse_card_id, playable_cards
from ding_engine.constants import (
    ERROR_ALREADY_SWAPPED, ERROR_DEALER_CANNOT_FOLD, ERROR_INVALID_SELECTION,
    ERROR_NOT_ENOUGH_PLAYERS, ERROR_SUIT_VIOLATION, ERROR_WRONG_PHASE, HAND_END_ALL_FOLDED,
    PHASE_GAME_OVER, PHASE_HAND_END, PHASE_LOBBY, PHASE_SWAP, PHASE_TRICK,
)
from ding_engine.engine import (
    card_conservation_ok, create_hotseat_game, deal_hand, fold_player, play_card,
    play_cards, start_game, swap_cards,
)
from ding_engine.roomlog import FoldEntry, HandEndEntry, PlayEntry
from ding_engine.rules import create_rules


def cards(*ids):
    return [parse_card_id(card_id) for card_id in ids]


def dealt_game(names=("Ann", "Ben", "Cat"), seed=7, **rules):
    state = create_hotseat_game(list(names), create_rules(**rules) if rules else None)
    state = start_game(state).state
    return deal_hand(state, seed=seed).state


def trick_state(hands, trump_suit="C", scores=None, **rules):
    """A hand already in trick play with fixed hands; seat 0 deals and leads."""
    state = create_hotseat_game([f"P{i}" for i in range(len(hands))],
                                create_rules(**rules) if rules else None)
    state.phase = PHASE_TRICK
    state.hand_id = 1
    state.game_id = 1
    state.trick_number = 1
    state.trump_suit = trump_suit
    state.hands = {f"p{i}": cards(*hand) for i, hand in enumerate(hands)}
    for idx, player in enumerate(state.players):
        player.has_swapped = True
        if scores:
            player.score = scores[idx]
    return state


# P0 takes three spade tricks, P1 the two heart tricks, P2 nothing.
SCRIPTED_HANDS = [
    ["14S_0", "13S_0", "12S_0", "2H_0", "3H_0"],
    ["2S_0", "3S_0", "4S_0", "14H_0", "13H_0"],
    ["5S_0", "6S_0", "7S_0", "2D_0", "3D_0"],
]
SCRIPTED_PLAYS = [
    "14S_0", "2S_0", "5S_0",
    "13S_0", "3S_0", "6S_0",
    "12S_0", "4S_0", "7S_0",
    "2H_0", "14H_0", "2D_0",
    "13H_0", "3D_0", "3H_0",
]


def play_all(state, card_ids):
    for card_id in card_ids:
        result = play_card(state, None, card_id)
        assert result.success, result.error_message
        state = result.state
    return state


def test_create_hotseat_game():
    """Seats are keyed p0, p1, ... and start at the starting score."""
    state = create_hotseat_game(["Ann", "Ben"])
    assert state.phase == PHASE_LOBBY
    assert [state.seat_key(i) for i in range(2)] == ["p0", "p1"]
    assert all(p.score == 20 for p in state.players)


def test_start_game_requires_two_players():
    """A game needs at least two seats."""
    result = start_game(create_hotseat_game(["Solo"]))
    assert not result.success
    assert result.error_code == ERROR_NOT_ENOUGH_PLAYERS


def test_start_game_resets_scores():
    """Starting puts everyone back at the starting score with seat 0 dealing."""
    state = create_hotseat_game(["Ann", "Ben"], create_rules(starting_score=10, fold_threshold=3))
    state.players[0].score = 2
    result = start_game(state)
    assert result.success
    assert result.state.phase == PHASE_HAND_END
    assert result.state.dealer_index == 0
    assert result.state.game_id == 1
    assert [p.score for p in result.state.players] == [10, 10]
    # input untouched
    assert state.players[0].score == 2


def test_two_deck_deal():
    """Three players from a two-deck shoe: five cards each, 89 left, dealer's last card is trump."""
    state = dealt_game(decks=2)
    assert state.phase == PHASE_SWAP
    assert all(len(state.hands[f"p{i}"]) == 5 for i in range(3))
    assert len(state.deck) == 2 * 52 - 15
    assert state.trump_card == state.hands["p0"][-1]
    assert state.trump_suit == state.trump_card.suit
    assert state.current_turn_index == 1
    assert state.leader_index == 0
    assert state.trick_number == 0
    assert card_conservation_ok(state)


def test_deal_is_deterministic_with_seed():
    """Same seed, same hands."""
    a = dealt_game(seed=123)
    b = dealt_game(seed=123)
    assert a.hands == b.hands
    assert a.trump_card == b.trump_card


def test_deal_only_from_hand_end():
    """Dealing mid-hand is rejected and leaves the state alone."""
    state = dealt_game()
    result = deal_hand(state, seed=1)
    assert not result.success
    assert result.error_code == ERROR_WRONG_PHASE
    assert result.state is state


def test_swap_replaces_cards_in_place():
    """Drawn cards go back into the discarded positions."""
    state = dealt_game()
    hand = list(state.hands["p1"])
    top = state.deck[-1]
    result = swap_cards(state, None, [hand[2].id])
    assert result.success
    new_hand = result.state.hands["p1"]
    assert new_hand[2] == top
    assert new_hand[:2] == hand[:2] and new_hand[3:] == hand[3:]
    assert hand[2] in result.state.discard_pile
    assert result.state.swap_counts["p1"] == 1
    assert result.state.players[1].has_swapped
    assert result.state.current_turn_index == 2
    assert card_conservation_ok(result.state)


def test_swap_with_short_shoe():
    """Three discards with one card left: one slot refilled, the other two removed."""
    state = dealt_game()
    last = state.deck[-1]
    state.deck = [last]
    hand = list(state.hands["p1"])
    result = swap_cards(state, None, [hand[1].id, hand[3].id, hand[4].id])
    assert result.success
    assert result.state.hands["p1"] == [hand[0], last, hand[2]]
    assert result.state.deck == []
    assert result.info["count"] == 3
    assert result.info["drawn"] == [last]


def test_swap_rejects_bad_selections():
    """More than three cards, duplicates, or a second swap are refused."""
    state = dealt_game()
    hand = state.hands["p1"]
    too_many = swap_cards(state, None, [c.id for c in hand[:4]])
    assert too_many.error_code == ERROR_INVALID_SELECTION
    dupes = swap_cards(state, None, [hand[0].id, hand[0].id])
    assert dupes.error_code == ERROR_INVALID_SELECTION

    swapped = swap_cards(state, None, []).state
    swapped.current_turn_index = 1
    again = swap_cards(swapped, None, [])
    assert again.error_code == ERROR_ALREADY_SWAPPED


def test_swap_round_leads_into_tricks():
    """After every seat swaps the dealer leads trick one."""
    state = dealt_game()
    for _ in range(3):
        state = swap_cards(state, None, []).state
    assert state.phase == PHASE_TRICK
    assert state.trick_number == 1
    assert state.current_turn_index == state.dealer_index


def test_dealer_cannot_fold():
    """The dealer's swap turn comes last and folding is refused."""
    state = dealt_game()
    state = swap_cards(state, None, []).state
    state = swap_cards(state, None, []).state
    assert state.current_turn_index == 0
    result = fold_player(state, None)
    assert not result.success
    assert result.error_code == ERROR_DEALER_CANNOT_FOLD


def test_fold_penalty_increase():
    """Below the threshold with the increase penalty, a fold adds one point."""
    state = dealt_game(fold_threshold=5, fold_penalty="increase")
    state.players[1].score = 3
    held = list(state.hands["p1"])
    result = fold_player(state, None)
    assert result.success
    player = result.state.players[1]
    assert player.score == 4
    assert player.folded and player.has_swapped
    assert result.state.hands["p1"] == []
    assert all(card in result.state.discard_pile for card in held)
    assert result.state.current_turn_index == 2
    assert isinstance(result.events[0], FoldEntry)
    assert card_conservation_ok(result.state)


def test_fold_penalty_threshold():
    """The threshold penalty lifts the score to the threshold."""
    state = dealt_game(fold_threshold=5, fold_penalty="threshold")
    state.players[1].score = 2
    result = fold_player(state, None)
    assert result.state.players[1].score == 5


def test_fold_above_threshold_is_free():
    state = dealt_game()
    result = fold_player(state, None)
    assert result.state.players[1].score == 20


def test_last_fold_ends_hand():
    """With one active player left that player is credited with all five tricks."""
    state = dealt_game(names=("Ann", "Ben"))
    result = fold_player(state, None)
    assert result.success
    new_state = result.state
    assert new_state.phase == PHASE_HAND_END
    assert new_state.hand_ended_by_folds
    assert new_state.fold_win_index == 0
    assert new_state.players[0].score == 15
    assert new_state.players[1].score == 20
    assert new_state.players[1].ding_count == 0
    assert new_state.dealer_index == 1
    assert new_state.trump_card is None
    end = [e for e in result.events if isinstance(e, HandEndEntry)][0]
    assert end.reason == HAND_END_ALL_FOLDED
    assert end.winner_name == "Ann"
    assert card_conservation_ok(new_state)


def test_folded_player_is_skipped():
    """A folded seat gets no swap turn and no trick turn, and is back in next hand."""
    state = dealt_game()
    state = fold_player(state, None).state          # seat 1 folds
    assert state.current_turn_index == 2
    state = swap_cards(state, None, []).state       # seat 2
    state = swap_cards(state, None, []).state       # dealer
    assert state.phase == PHASE_TRICK

    lead = state.hands["p0"][0]
    state = play_card(state, None, lead.id).state
    assert state.current_turn_index == 2
    follow = playable_cards(state.hands["p2"], state.current_trick.lead_suit)[0]
    state = play_card(state, None, follow.id).state
    assert state.trick_number == 2
    assert state.last_completed_trick is not None
    assert all(play.player_index != 1 for play in state.last_completed_trick)


def test_must_follow_suit():
    """Holding the lead suit forces following it."""
    state = trick_state(SCRIPTED_HANDS)
    state = play_card(state, None, "14S_0").state
    result = play_card(state, None, "14H_0")
    assert not result.success
    assert result.error_code == ERROR_SUIT_VIOLATION
    assert result.state is state
    assert "14H_0" in [c.id for c in state.hands["p1"]]


def test_hyperrealistic_allows_any_card():
    state = trick_state(SCRIPTED_HANDS, hyperrealistic=True)
    state = play_card(state, None, "14S_0").state
    result = play_card(state, None, "14H_0")
    assert result.success


def test_play_requires_exactly_one_card():
    state = trick_state(SCRIPTED_HANDS)
    result = play_cards(state, None, ["14S_0", "13S_0"])
    assert result.error_code == ERROR_INVALID_SELECTION


def test_full_hand_scoring_and_ding():
    """Three tricks from 20 leaves 17; zero tricks in a full hand is a DING."""
    state = trick_state(SCRIPTED_HANDS)
    state = play_all(state, SCRIPTED_PLAYS)
    assert state.phase == PHASE_HAND_END
    assert [p.score for p in state.players] == [17, 18, 20]
    assert [p.ding_count for p in state.players] == [0, 0, 1]
    assert state.last_trick_winner_index == 1
    assert state.dealer_index == 1
    assert state.current_turn_index == 1
    assert state.trump_card is None and state.trump_suit is None
    assert len(state.played_cards) == 15


def test_ding_resets_any_score():
    """A ding always goes back to the starting score, even from a low score."""
    state = trick_state(SCRIPTED_HANDS, scores=[20, 20, 3])
    state = play_all(state, SCRIPTED_PLAYS)
    assert state.players[2].score == 20
    assert state.players[2].ding_count == 1


def test_last_trick_winner_deals_next():
    """Under the last-trick-winner rule the deal goes to whoever took trick five."""
    state = trick_state(SCRIPTED_HANDS, dealer_rule="last_trick_winner")
    state.dealer_index = 2
    state = play_all(state, SCRIPTED_PLAYS[:9])
    assert state.leader_index == 0
    state = play_all(state, SCRIPTED_PLAYS[9:])
    assert state.dealer_index == 1


def test_trick_turn_order_follows_leader():
    """Plays go clockwise from the leader."""
    state = trick_state(SCRIPTED_HANDS)
    state = play_all(state, SCRIPTED_PLAYS[:9])
    result = play_card(state, None, "2H_0")
    assert result.state.current_turn_index == 1
    state = play_all(result.state, ["14H_0", "2D_0"])
    assert state.current_turn_index == 1
    assert [p.player_index for p in state.players[1].won_tricks[0]] == [0, 1, 2]


def test_fast_track_ends_hand_and_game():
    """A trick winner whose score would reach zero ends the hand immediately."""
    state = trick_state(SCRIPTED_HANDS, scores=[1, 20, 20])
    result = play_card(play_card(play_card(state, None, "14S_0").state, None, "2S_0").state, None, "5S_0")
    assert result.success
    new_state = result.state
    assert result.info["fast_track"]
    assert new_state.phase == PHASE_GAME_OVER
    assert new_state.winner_index == 0
    assert new_state.players[0].score == 0
    assert new_state.players[0].total_wins == 1
    # not a full hand, so nobody is dinged
    assert [p.ding_count for p in new_state.players] == [0, 0, 0]
    assert [p.score for p in new_state.players[1:]] == [20, 20]


def test_play_emits_log_entries():
    state = trick_state(SCRIPTED_HANDS)
    result = play_card(state, None, "14S_0")
    entry = result.events[0]
    assert isinstance(entry, PlayEntry)
    assert entry.card.id == "14S_0"
    assert entry.trick_number == 1
    assert entry.to_record()["playerName"] == "P0"


@pytest.mark.parametrize("seed", [1, 2, 3, 11])
def test_card_conservation_through_a_hand(seed):
    """Every card stays in exactly one place for a whole hand."""
    state = dealt_game(seed=seed, decks=2)
    assert card_conservation_ok(state)

    first = state.hands["p1"]
    state = swap_cards(state, None, [first[0].id, first[1].id]).state
    assert card_conservation_ok(state)
    while state.phase == PHASE_SWAP:
        state = swap_cards(state, None, []).state
        assert card_conservation_ok(state)

    while state.phase == PHASE_TRICK:
        key = state.seat_key(state.current_turn_index)
        legal = playable_cards(state.hands[key], state.current_trick.lead_suit)
        result = play_card(state, None, legal[0].id)
        assert result.success, result.error_message
        state = result.state
        assert card_conservation_ok(state)

    assert state.phase in (PHASE_HAND_END, PHASE_GAME_OVER)
    for player in state.players:
        assert 0 <= player.score <= state.settings.starting_score


def test_next_deal_unfolds_players():
    state = dealt_game(names=("Ann", "Ben"))
    state = fold_player(state, None).state
    assert state.players[1].folded
    state = deal_hand(state, seed=3).state
    assert not any(p.folded or p.has_swapped for p in state.players)
    assert state.hand_id == 2
    assert state.dealer_index == 1
    assert state.trump_card == state.hands["p1"][-1]
