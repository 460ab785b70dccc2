"""
Document store boundary.

Rooms, hands, the room log and user profiles live in an eventually
consistent document store addressed by slash-separated paths
("rooms/ABC123", "rooms/ABC123/hands/uid"). Reads may be served from a
local cache; snapshots report that through from_cache.
"""

import abc
import copy
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..constants import HAND_COLLECTION, LOG_COLLECTION, ROOM_COLLECTION, USER_COLLECTION

SOURCE_DEFAULT = "default"
SOURCE_SERVER = "server"


class StoreError(Exception):
    """A read or write could not reach the store."""


class ArrayUnion:
    def __init__(self, values):
        self.values = list(values)

    def __repr__(self):
        return f"ArrayUnion({self.values!r})"


class ArrayRemove:
    def __init__(self, values):
        self.values = list(values)

    def __repr__(self):
        return f"ArrayRemove({self.values!r})"


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def array_union(*values) -> ArrayUnion:
    return ArrayUnion(values)


def array_remove(*values) -> ArrayRemove:
    return ArrayRemove(values)


@dataclass
class Snapshot:
    path: str
    exists: bool
    data: Optional[Dict[str, Any]] = None
    from_cache: bool = False
    has_pending_writes: bool = False

    @property
    def stale(self) -> bool:
        """Served from cache with nothing of ours pending: may be out of date."""
        return self.from_cache and not self.has_pending_writes


@dataclass
class CollectionSnapshot:
    path: str
    docs: List[Dict[str, Any]] = field(default_factory=list)
    from_cache: bool = False


SnapshotCallback = Callable[[Snapshot], None]
CollectionCallback = Callable[[CollectionSnapshot], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class DocumentStore(abc.ABC):
    """Async document store used by the sync coordinator and the dispatcher."""

    @abc.abstractmethod
    async def get(self, path: str, source: str = SOURCE_DEFAULT) -> Snapshot:
        """Read one document. source="server" bypasses the cache."""

    @abc.abstractmethod
    async def set(self, path: str, data: Dict[str, Any], merge: bool = False):
        """Write a document, replacing it unless merge is set."""

    @abc.abstractmethod
    async def update(self, path: str, data: Dict[str, Any]):
        """Update fields of an existing document; dotted keys address nested fields."""

    @abc.abstractmethod
    async def delete(self, path: str):
        pass

    @abc.abstractmethod
    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Append a document with a generated id and a creation timestamp."""

    @abc.abstractmethod
    def subscribe(self, path: str, callback: SnapshotCallback,
                  on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        pass

    @abc.abstractmethod
    def subscribe_collection(self, collection: str, callback: CollectionCallback,
                             on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        pass

    @abc.abstractmethod
    async def enable_network(self):
        """Ask the store to reconnect and refresh its listeners."""

    async def close(self):
        pass


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def room_path(room_id: str) -> str:
    return f"{ROOM_COLLECTION}/{room_id}"


def hand_path(room_id: str, uid: str) -> str:
    return f"{ROOM_COLLECTION}/{room_id}/{HAND_COLLECTION}/{uid}"


def log_path(room_id: str) -> str:
    return f"{ROOM_COLLECTION}/{room_id}/{LOG_COLLECTION}"


def user_path(uid: str) -> str:
    return f"{USER_COLLECTION}/{uid}"


def parent_path(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


_PARAM = re.compile(r"\{(\w+)\}")


def match_path(pattern: str, path: str) -> Optional[Dict[str, str]]:
    """
    Match a path against a pattern such as "rooms/{roomId}".

    Returns:
        The captured parameters, or None if the path does not match
    """
    pattern_parts = pattern.split("/")
    path_parts = path.split("/")
    if len(pattern_parts) != len(path_parts):
        return None
    params = {}
    for expected, actual in zip(pattern_parts, path_parts):
        m = _PARAM.fullmatch(expected)
        if m:
            params[m.group(1)] = actual
        elif expected != actual:
            return None
    return params


# ---------------------------------------------------------------------------
# Write resolution
# ---------------------------------------------------------------------------

def _resolve_value(current: Any, value: Any, now: float) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, ArrayUnion):
        items = list(current) if isinstance(current, list) else []
        for v in value.values:
            if v not in items:
                items.append(v)
        return items
    if isinstance(value, ArrayRemove):
        items = list(current) if isinstance(current, list) else []
        return [v for v in items if v not in value.values]
    if isinstance(value, dict):
        return {k: _resolve_value(None, v, now) for k, v in value.items()}
    return copy.deepcopy(value)


def _merge_into(target: Dict[str, Any], data: Dict[str, Any], now: float):
    for key, value in data.items():
        existing = target.get(key)
        if isinstance(value, dict) and isinstance(existing, dict):
            _merge_into(existing, value, now)
        else:
            target[key] = _resolve_value(existing, value, now)


def apply_set(current: Optional[Dict[str, Any]], data: Dict[str, Any],
              merge: bool, now: float) -> Dict[str, Any]:
    """Resulting document of a set(); merge keeps fields the write leaves out."""
    result = copy.deepcopy(current) if (merge and current) else {}
    _merge_into(result, data, now)
    return result


def _split_field_path(key: str) -> Tuple[List[str], str]:
    parts = key.split(".")
    return parts[:-1], parts[-1]


def apply_update(current: Dict[str, Any], data: Dict[str, Any], now: float) -> Dict[str, Any]:
    """Resulting document of an update(); values replace whole fields."""
    result = copy.deepcopy(current)
    for key, value in data.items():
        parents, leaf = _split_field_path(key)
        target = result
        for part in parents:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[leaf] = _resolve_value(target.get(leaf), value, now)
    return result
