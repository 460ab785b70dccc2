"""Game models and data structures"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .constants import MODE_MULTI, PHASE_LOBBY
from .rules import RuleConfig


@dataclass(frozen=True)
class Card:
    suit: str  # C, D, H, S
    rank: int  # 2..14
    id: str    # "{rank}{suit}_{deck}", unique within a shoe


@dataclass
class TrickPlay:
    player_index: int
    card: Card


@dataclass
class Trick:
    plays: List[TrickPlay] = field(default_factory=list)
    lead_suit: Optional[str] = None  # set by the first play


@dataclass
class Player:
    name: str
    uid: Optional[str] = None      # multiplayer identity
    id: Optional[str] = None       # hotseat seat id (p0, p1, ...)
    tricks_won_this_hand: int = 0
    won_tricks: List[List[TrickPlay]] = field(default_factory=list)
    score: int = 20
    ding_count: int = 0
    total_wins: int = 0
    has_swapped: bool = False
    folded: bool = False

    @property
    def seat_key(self) -> Optional[str]:
        return self.uid or self.id


@dataclass
class GameState:
    """
    The room aggregate.

    Fields valid only in some phases:
      trump_card/trump_suit, deck, hands  -- SWAP and TRICK (cleared at hand end)
      current_trick.lead_suit             -- TRICK, once the first card of a trick is down
      winner_index                        -- GAME_OVER
      fold_win_index                      -- HAND_END/GAME_OVER after an all-folded hand
    """
    id: str
    mode: str = MODE_MULTI
    version: int = 0
    phase: str = PHASE_LOBBY
    players: List[Player] = field(default_factory=list)
    host_uid: Optional[str] = None
    room_name: Optional[str] = None
    dealer_index: int = 0
    leader_index: int = 0          # who leads the current trick
    current_turn_index: int = 0    # whose action is required (deal, swap or play)
    trick_number: int = 0
    hand_id: int = 0
    game_id: int = 0
    deck: List[Card] = field(default_factory=list)
    trump_card: Optional[Card] = None
    trump_suit: Optional[str] = None
    current_trick: Trick = field(default_factory=Trick)
    discard_pile: List[Card] = field(default_factory=list)
    played_cards: List[Card] = field(default_factory=list)
    swap_counts: Dict[str, int] = field(default_factory=dict)
    start_votes: List[str] = field(default_factory=list)
    settings: RuleConfig = field(default_factory=RuleConfig)
    # Private hands keyed by seat key. In multiplayer a client only knows its own.
    hands: Dict[str, List[Card]] = field(default_factory=dict)
    last_trick_winner_index: Optional[int] = None
    last_completed_trick: Optional[List[TrickPlay]] = None
    winner_index: Optional[int] = None
    hand_ended_by_folds: bool = False
    fold_win_index: Optional[int] = None

    def increment_version(self):
        self.version += 1

    def seat_key(self, index: int) -> str:
        player = self.players[index]
        return player.seat_key or f"p{index}"

    def index_of(self, uid: Optional[str]) -> Optional[int]:
        if uid is None:
            return None
        for idx, player in enumerate(self.players):
            if player.uid == uid:
                return idx
        return None

    def hand_for(self, index: int) -> List[Card]:
        return self.hands.setdefault(self.seat_key(index), [])

    def active_count(self) -> int:
        return sum(0 if p.folded else 1 for p in self.players)

    def first_active_index(self, start: int) -> Optional[int]:
        """First non-folded seat at or after start."""
        count = len(self.players)
        for k in range(count):
            idx = (start + k) % count
            if not self.players[idx].folded:
                return idx
        return None

    def next_active_index(self, index: int) -> Optional[int]:
        """Next non-folded seat strictly after index."""
        count = len(self.players)
        for k in range(1, count + 1):
            idx = (index + k) % count
            if not self.players[idx].folded:
                return idx
        return None

    @property
    def current_player(self) -> Optional[Player]:
        if 0 <= self.current_turn_index < len(self.players):
            return self.players[self.current_turn_index]
        return None

    @property
    def seated_uids(self) -> List[str]:
        return [p.uid for p in self.players if p.uid]
