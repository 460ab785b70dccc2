"""
Change detection between two room snapshots.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .engine import turn_key
from .models import GameState

# (hand_id, seat_key, player_name, count)
SwapNotice = Tuple[int, str, str, int]


@dataclass
class RoomChanges:
    hand_changed: bool = False
    game_changed: bool = False
    phase_changed: bool = False
    turn_changed: bool = False
    swap_notices: List[SwapNotice] = field(default_factory=list)
    kicked: bool = False
    removed_uids: List[str] = field(default_factory=list)

    @property
    def any(self) -> bool:
        return (self.hand_changed or self.game_changed or self.phase_changed
                or self.turn_changed or bool(self.swap_notices) or self.kicked
                or bool(self.removed_uids))


def diff_room_snapshots(
    old_state: Optional[GameState],
    new_state: GameState,
    self_uid: Optional[str] = None
) -> RoomChanges:
    """
    Compare the previously known room with a newly received one.

    Args:
        old_state: Last applied state, or None for the first snapshot
        new_state: State built from the incoming snapshot
        self_uid: Local player's uid, used to detect a kick

    Returns:
        RoomChanges describing what the caller needs to react to
    """
    changes = RoomChanges()
    if old_state is None:
        changes.hand_changed = True
        changes.game_changed = True
        changes.phase_changed = True
        changes.turn_changed = True
        changes.swap_notices = _swap_notices({}, new_state)
        return changes

    changes.hand_changed = old_state.hand_id != new_state.hand_id
    changes.game_changed = old_state.game_id != new_state.game_id
    changes.phase_changed = old_state.phase != new_state.phase
    changes.turn_changed = turn_key(old_state) != turn_key(new_state)

    previous_counts = {} if (changes.hand_changed or changes.game_changed) else old_state.swap_counts
    changes.swap_notices = _swap_notices(previous_counts, new_state)

    new_uids = set(new_state.seated_uids)
    changes.removed_uids = [uid for uid in old_state.seated_uids if uid not in new_uids]
    changes.kicked = bool(self_uid) and self_uid in changes.removed_uids
    return changes


def _swap_notices(previous_counts, new_state: GameState) -> List[SwapNotice]:
    notices = []
    for idx, player in enumerate(new_state.players):
        key = new_state.seat_key(idx)
        if key not in new_state.swap_counts:
            continue
        count = new_state.swap_counts[key]
        if previous_counts.get(key) == count:
            continue
        notices.append((new_state.hand_id, key, player.name, count))
    return notices
