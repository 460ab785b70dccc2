"""
Events the sync coordinator consumes, and the notices it emits.

Store callbacks never touch coordinator state directly; they only queue
one of these events for the reconciliation loop.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..store.base import CollectionSnapshot, Snapshot

SUBSCRIPTION_ROOM = "room"
SUBSCRIPTION_HAND = "hand"
SUBSCRIPTION_LOG = "log"
SUBSCRIPTION_CONNECTIVITY = "connectivity"


@dataclass
class RoomUpdated:
    snapshot: Snapshot


@dataclass
class HandUpdated:
    snapshot: Snapshot


@dataclass
class LogUpdated:
    snapshot: CollectionSnapshot


@dataclass
class SubscriptionFailed:
    subscription: str
    error: Exception


@dataclass
class ConnectivityChanged:
    connected: bool


NOTICE_SWAP = "swap"
NOTICE_KICKED = "kicked"
NOTICE_ERROR = "error"
NOTICE_GAME_OVER = "game_over"
NOTICE_DING = "ding"
NOTICE_CONNECTION = "connection"


@dataclass
class Notice:
    """Something the player should be shown."""
    kind: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self.data.get(key, default)
