"""
Room log entry models and validation.

The room log is an append-only collection ordered by creation time. Game
transitions emit play/fold/hand_end entries; chat entries come from
players and the system.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import (
    HAND_END_COMPLETE, LOG_CHAT, LOG_CHAT_LIKE, LOG_CHAT_VOICE,
    LOG_FOLD, LOG_HAND_END, LOG_PLAY, SYSTEM_NAME,
)
from .models import Card


class LogModel(BaseModel):
    """Base model; records use camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class CardRecord(LogModel):
    suit: str
    rank: int
    id: str

    @classmethod
    def of(cls, card: Card) -> 'CardRecord':
        return cls(suit=card.suit, rank=card.rank, id=card.id)


class PlayEntry(LogModel):
    """A card played into a trick."""
    type: Literal['play'] = LOG_PLAY
    hand_id: int
    game_id: int
    trick_number: int
    player_index: int
    player_name: str
    card: CardRecord


class FoldEntry(LogModel):
    """A player folding during the swap phase."""
    type: Literal['fold'] = LOG_FOLD
    hand_id: int
    game_id: int
    player_index: int
    player_name: str


class ScoreLine(LogModel):
    name: str
    score: int


class HandEndEntry(LogModel):
    """Scores at the end of a hand."""
    type: Literal['hand_end'] = LOG_HAND_END
    hand_id: int
    game_id: int
    scores: List[ScoreLine]
    reason: Literal['complete', 'all_folded'] = HAND_END_COMPLETE
    winner_name: Optional[str] = None


class ChatEntry(LogModel):
    """Chat message; system notices use player_name 'System'."""
    type: Literal['chat'] = LOG_CHAT
    message: str = Field(..., min_length=1, max_length=240)
    player_name: str
    player_uid: Optional[str] = None
    likes: List[str] = Field(default_factory=list)


class ChatVoiceEntry(LogModel):
    """Voice clip stored as a data URL."""
    type: Literal['chat_voice'] = LOG_CHAT_VOICE
    voice: str
    duration_ms: Optional[int] = None
    player_name: str
    player_uid: Optional[str] = None
    likes: List[str] = Field(default_factory=list)


class ChatLikeEntry(LogModel):
    """Like toggle; the latest entry per (target, uid) wins."""
    type: Literal['chat_like'] = LOG_CHAT_LIKE
    target_id: str
    liked: bool = True
    player_uid: str
    player_name: Optional[str] = None
    client_created_at: Optional[float] = None


LogEntry = Union[PlayEntry, FoldEntry, HandEndEntry, ChatEntry, ChatVoiceEntry, ChatLikeEntry]


def system_message(message: str, player_uid: Optional[str] = None) -> ChatEntry:
    return ChatEntry(message=message, player_name=SYSTEM_NAME, player_uid=player_uid)


def parse_log_entry(data: Dict[str, Any]) -> LogEntry:
    """
    Parse a raw log record into its entry model.

    Raises:
        ValueError: If the entry type is unknown or the record is malformed
    """
    entry_type = data.get("type")
    if not entry_type:
        raise ValueError("Missing entry type")

    entry_map = {
        LOG_PLAY: PlayEntry,
        LOG_FOLD: FoldEntry,
        LOG_HAND_END: HandEndEntry,
        LOG_CHAT: ChatEntry,
        LOG_CHAT_VOICE: ChatVoiceEntry,
        LOG_CHAT_LIKE: ChatLikeEntry,
    }

    entry_class = entry_map.get(entry_type)
    if not entry_class:
        raise ValueError(f"Invalid entry type: {entry_type}")

    fields = {k: v for k, v in data.items() if k not in ("id", "createdAt")}
    try:
        return entry_class.model_validate(fields)
    except Exception as e:
        raise ValueError(f"Invalid entry data: {str(e)}")


def _entry_timestamp(entry: Dict[str, Any]) -> float:
    created = entry.get("createdAt")
    if isinstance(created, (int, float)):
        return float(created)
    client = entry.get("clientCreatedAt")
    if isinstance(client, (int, float)):
        return float(client)
    return 0.0


def build_chat_like_index(entries: List[Dict[str, Any]]) -> Dict[str, Dict[str, bool]]:
    """
    Resolve who currently likes which chat entry.

    Likes embedded on the chat entry itself seed the index; chat_like
    toggles then override per uid, latest timestamp first.

    Returns:
        target entry id -> {uid: liked}
    """
    index: Dict[str, Dict[str, tuple]] = {}

    for entry in entries:
        if entry.get("type") not in (LOG_CHAT, LOG_CHAT_VOICE) or not entry.get("id"):
            continue
        likes = entry.get("likes")
        if not isinstance(likes, list):
            continue
        per_entry = index.setdefault(entry["id"], {})
        for uid in likes:
            if uid and uid not in per_entry:
                per_entry[uid] = (True, 0.0)

    for entry in entries:
        if entry.get("type") != LOG_CHAT_LIKE:
            continue
        target, uid = entry.get("targetId"), entry.get("playerUid")
        if not target or not uid:
            continue
        ts = _entry_timestamp(entry)
        per_entry = index.setdefault(target, {})
        prev = per_entry.get(uid)
        if prev is None or ts >= prev[1]:
            per_entry[uid] = (entry.get("liked") is not False, ts)

    return {
        target: {uid: liked for uid, (liked, _ts) in per_entry.items()}
        for target, per_entry in index.items()
    }


def like_count(index: Dict[str, Dict[str, bool]], entry_id: str) -> int:
    return sum(1 for liked in index.get(entry_id, {}).values() if liked)
