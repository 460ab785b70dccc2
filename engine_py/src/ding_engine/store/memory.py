"""
In-process document store.

Backs the websocket relay and the test suite. Going offline makes reads
come from the local cache and writes fail, the same way a real client
behaves during a network partition.
"""

import asyncio
import copy
import inspect
import itertools
import logging
import time
import uuid
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .base import (
    SERVER_TIMESTAMP, SOURCE_SERVER, CollectionCallback, CollectionSnapshot, DocumentStore,
    ErrorCallback, Snapshot, SnapshotCallback, StoreError, Unsubscribe,
    apply_set, apply_update, match_path, parent_path,
)

logger = logging.getLogger(__name__)

# handler(before, after, params)
TriggerHandler = Callable[[Dict[str, Any], Dict[str, Any], Dict[str, str]], Any]


class MemoryDocumentStore(DocumentStore):
    """Dictionary-backed store with listeners and update triggers."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._order: Dict[str, int] = {}
        self._seq = itertools.count()
        self._listeners: Dict[str, Dict[int, Tuple[SnapshotCallback, Optional[ErrorCallback]]]] = defaultdict(dict)
        self._collection_listeners: Dict[str, Dict[int, Tuple[CollectionCallback, Optional[ErrorCallback]]]] = defaultdict(dict)
        self._listener_ids = itertools.count(1)
        self._triggers: List[Tuple[str, TriggerHandler]] = []
        self._trigger_tasks: Set[asyncio.Task] = set()
        self.online = True
        self.enable_network_calls = 0

    # -- connectivity ---------------------------------------------------------

    def set_online(self, online: bool):
        """Flip connectivity; listeners get a cached or fresh snapshot of their documents."""
        if self.online == online:
            return
        self.online = online
        logger.info("memory store %s", "online" if online else "offline")
        self._redeliver_all()

    async def enable_network(self):
        self.enable_network_calls += 1
        if self.online:
            self._redeliver_all()

    def _redeliver_all(self):
        for path in list(self._listeners):
            self._notify(path)
        for collection in list(self._collection_listeners):
            self._notify_collection(collection)

    def _require_online(self, op: str, path: str):
        if not self.online:
            raise StoreError(f"{op} {path}: store is offline")

    # -- reads ------------------------------------------------------------------

    def _snapshot(self, path: str) -> Snapshot:
        data = self._docs.get(path)
        return Snapshot(
            path=path,
            exists=data is not None,
            data=copy.deepcopy(data) if data is not None else None,
            from_cache=not self.online,
        )

    async def get(self, path: str, source: str = "default") -> Snapshot:
        if source == SOURCE_SERVER:
            self._require_online("get", path)
        return self._snapshot(path)

    def peek(self, path: str) -> Optional[Dict[str, Any]]:
        """Current document contents without going through a snapshot."""
        data = self._docs.get(path)
        return copy.deepcopy(data) if data is not None else None

    def list_collection(self, collection: str) -> List[Dict[str, Any]]:
        paths = [p for p in self._docs if parent_path(p) == collection]
        paths.sort(key=lambda p: (self._docs[p].get("createdAt") or 0, self._order.get(p, 0)))
        docs = []
        for p in paths:
            doc = copy.deepcopy(self._docs[p])
            doc["id"] = p.rsplit("/", 1)[-1]
            docs.append(doc)
        return docs

    # -- writes -----------------------------------------------------------------

    async def set(self, path: str, data: Dict[str, Any], merge: bool = False):
        self._require_online("set", path)
        before = self._docs.get(path)
        after = apply_set(before, data, merge, self._clock())
        self._write(path, before, after)

    async def update(self, path: str, data: Dict[str, Any]):
        self._require_online("update", path)
        before = self._docs.get(path)
        if before is None:
            raise StoreError(f"update {path}: no such document")
        after = apply_update(before, data, self._clock())
        self._write(path, before, after)

    async def delete(self, path: str):
        self._require_online("delete", path)
        before = self._docs.pop(path, None)
        self._order.pop(path, None)
        if before is not None:
            self._notify(path)
            self._notify_collection(parent_path(path))

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        self._require_online("add", collection)
        doc_id = uuid.uuid4().hex[:20]
        payload = dict(data)
        payload.setdefault("createdAt", SERVER_TIMESTAMP)
        path = f"{collection}/{doc_id}"
        after = apply_set(None, payload, False, self._clock())
        self._write(path, None, after)
        return doc_id

    def _write(self, path: str, before: Optional[Dict[str, Any]], after: Dict[str, Any]):
        self._docs[path] = after
        if path not in self._order:
            self._order[path] = next(self._seq)
        self._notify(path)
        self._notify_collection(parent_path(path))
        if before is not None:
            self._fire_triggers(path, before, after)

    # -- listeners --------------------------------------------------------------

    def subscribe(self, path: str, callback: SnapshotCallback,
                  on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        listener_id = next(self._listener_ids)
        self._listeners[path][listener_id] = (callback, on_error)
        self._deliver(callback, on_error, self._snapshot(path))

        def unsubscribe():
            listeners = self._listeners.get(path)
            if listeners is not None:
                listeners.pop(listener_id, None)
                if not listeners:
                    del self._listeners[path]
        return unsubscribe

    def subscribe_collection(self, collection: str, callback: CollectionCallback,
                             on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        listener_id = next(self._listener_ids)
        self._collection_listeners[collection][listener_id] = (callback, on_error)
        self._deliver(callback, on_error, self._collection_snapshot(collection))

        def unsubscribe():
            listeners = self._collection_listeners.get(collection)
            if listeners is not None:
                listeners.pop(listener_id, None)
                if not listeners:
                    del self._collection_listeners[collection]
        return unsubscribe

    def fail_listeners(self, path: str, error: Exception):
        """Report a subscription failure to every listener on path."""
        for callback, on_error in list(self._listeners.get(path, {}).values()):
            if on_error:
                on_error(error)

    def listener_count(self, path: str) -> int:
        return len(self._listeners.get(path, {}))

    def _collection_snapshot(self, collection: str) -> CollectionSnapshot:
        return CollectionSnapshot(path=collection, docs=self.list_collection(collection),
                                  from_cache=not self.online)

    def _notify(self, path: str):
        for callback, on_error in list(self._listeners.get(path, {}).values()):
            self._deliver(callback, on_error, self._snapshot(path))

    def _notify_collection(self, collection: str):
        listeners = self._collection_listeners.get(collection)
        if not listeners:
            return
        for callback, on_error in list(listeners.values()):
            self._deliver(callback, on_error, self._collection_snapshot(collection))

    @staticmethod
    def _deliver(callback, on_error, snapshot):
        try:
            callback(snapshot)
        except Exception as e:
            logger.exception("listener failed for %s", snapshot.path)
            if on_error:
                on_error(e)

    # -- triggers ---------------------------------------------------------------

    def on_update(self, pattern: str, handler: TriggerHandler):
        """Run handler(before, after, params) after any update of a document matching pattern."""
        self._triggers.append((pattern, handler))

    def _fire_triggers(self, path: str, before: Dict[str, Any], after: Dict[str, Any]):
        for pattern, handler in self._triggers:
            params = match_path(pattern, path)
            if params is None:
                continue
            result = handler(copy.deepcopy(before), copy.deepcopy(after), params)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._trigger_tasks.add(task)
                task.add_done_callback(self._trigger_done)

    def _trigger_done(self, task: asyncio.Task):
        self._trigger_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("trigger failed: %s", task.exception())

    async def drain_triggers(self):
        """Wait for every trigger started so far."""
        while self._trigger_tasks:
            await asyncio.gather(*list(self._trigger_tasks), return_exceptions=True)

    async def close(self):
        for task in list(self._trigger_tasks):
            task.cancel()
        self._trigger_tasks.clear()
        self._listeners.clear()
        self._collection_listeners.clear()
