"""
Document store interface and implementations.
"""

from .base import (
    SERVER_TIMESTAMP, SOURCE_DEFAULT, SOURCE_SERVER, CollectionSnapshot, DocumentStore,
    Snapshot, StoreError, array_remove, array_union, hand_path, log_path, room_path, user_path,
)
from .memory import MemoryDocumentStore

__all__ = [
    "DocumentStore", "MemoryDocumentStore", "Snapshot", "CollectionSnapshot", "StoreError",
    "SERVER_TIMESTAMP", "SOURCE_DEFAULT", "SOURCE_SERVER", "array_union", "array_remove",
    "room_path", "hand_path", "log_path", "user_path",
]
