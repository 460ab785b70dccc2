"""
DocumentStore over the websocket relay.

Keeps the last snapshot of every followed document so that, while the
connection is down, listeners get cached snapshots (from_cache=True) and
the sync coordinator can tell it is looking at possibly stale state.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, Optional, Set

import orjson
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..store.base import (
    SOURCE_DEFAULT, SOURCE_SERVER, CollectionCallback, CollectionSnapshot, DocumentStore,
    ErrorCallback, Snapshot, SnapshotCallback, StoreError, Unsubscribe,
)
from .events import EventType, encode_value, loads, snapshot_from_wire

logger = logging.getLogger(__name__)


class RemoteDocumentStore(DocumentStore):
    """Client side of ws.server.RelayConnection."""

    def __init__(self, url: str, request_timeout: float = 10.0):
        self.url = url
        self.request_timeout = request_timeout
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._ids = itertools.count(1)
        self._pending: Dict[int, asyncio.Future] = {}
        # local id -> (path, collection, callback, on_error, remote id)
        self._subs: Dict[int, list] = {}
        self._remote_to_local: Dict[int, int] = {}
        self._cache: Dict[str, Any] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self):
        if self._ws is not None:
            return
        try:
            self._ws = await websockets.connect(self.url)
        except (OSError, WebSocketException) as e:
            raise StoreError(f"connect {self.url}: {e}") from e
        logger.info("connected to %s", self.url)
        self._reader = asyncio.ensure_future(self._read_loop())
        self._remote_to_local.clear()
        for local_id in list(self._subs):
            await self._send_subscribe(local_id)

    async def close(self):
        reader, self._reader = self._reader, None
        if reader:
            reader.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        self._fail_pending(StoreError("connection closed"))
        self._subs.clear()

    async def enable_network(self):
        await self.connect()

    # -- wire -------------------------------------------------------------------

    async def _read_loop(self):
        ws = self._ws
        try:
            async for raw in ws:
                try:
                    self._handle_message(loads(raw))
                except ValueError as e:
                    logger.warning("bad relay message: %s", e)
        except ConnectionClosed as e:
            logger.warning("relay connection lost: %s", e)
        finally:
            if self._ws is ws:
                self._ws = None
                self._fail_pending(StoreError("connection lost"))
                self._deliver_cached()

    def _handle_message(self, msg: Dict[str, Any]):
        kind = msg.get("type")
        if kind == "snapshot":
            local_id = self._remote_to_local.get(msg.get("subscription"))
            if local_id is not None:
                self._deliver_snapshot(local_id, msg)
            return
        future = self._pending.pop(msg.get("id"), None)
        if future is None or future.done():
            if kind == "error":
                logger.warning("relay error: %s", msg.get("message"))
            return
        if kind == "error":
            future.set_exception(StoreError(f"[{msg.get('code')}] {msg.get('message')}"))
        else:
            future.set_result(msg.get("value"))

    def _fail_pending(self, error: StoreError):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _request(self, event_type: EventType, **fields) -> Any:
        if self._ws is None:
            raise StoreError(f"{event_type.value}: not connected")
        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        payload = {"type": event_type.value, "id": request_id, **encode_value(fields)}
        try:
            await self._ws.send(orjson.dumps(payload).decode())
            return await asyncio.wait_for(future, self.request_timeout)
        except ConnectionClosed as e:
            raise StoreError(f"{event_type.value}: connection closed") from e
        except asyncio.TimeoutError as e:
            raise StoreError(f"{event_type.value}: timed out") from e
        finally:
            self._pending.pop(request_id, None)

    # -- reads and writes -------------------------------------------------------

    async def get(self, path: str, source: str = SOURCE_DEFAULT) -> Snapshot:
        if self._ws is None:
            if source == SOURCE_SERVER:
                raise StoreError(f"get {path}: not connected")
            return self._cached_snapshot(path)
        snap = snapshot_from_wire(await self._request(EventType.GET, path=path, source=source))
        self._cache[path] = snap.data if snap.exists else None
        return snap

    async def set(self, path: str, data: Dict[str, Any], merge: bool = False):
        await self._request(EventType.SET, path=path, data=data, merge=merge)

    async def update(self, path: str, data: Dict[str, Any]):
        await self._request(EventType.UPDATE, path=path, data=data)

    async def delete(self, path: str):
        await self._request(EventType.DELETE, path=path)

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        return await self._request(EventType.ADD, collection=collection, data=data)

    # -- listeners --------------------------------------------------------------

    def subscribe(self, path: str, callback: SnapshotCallback, on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        return self._add_subscription(path, False, callback, on_error)

    def subscribe_collection(self, collection: str, callback: CollectionCallback,
                             on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        return self._add_subscription(collection, True, callback, on_error)

    def _add_subscription(self, path, collection, callback, on_error) -> Unsubscribe:
        local_id = next(self._ids)
        self._subs[local_id] = [path, collection, callback, on_error, None]
        if self._ws is None:
            self._deliver_cached_one(local_id)
        else:
            self._spawn(self._send_subscribe(local_id))

        def unsubscribe():
            sub = self._subs.pop(local_id, None)
            if sub and sub[4] is not None:
                self._remote_to_local.pop(sub[4], None)
                if self._ws is not None:
                    self._spawn(self._request_quietly(EventType.UNSUBSCRIBE, subscription=sub[4]))
        return unsubscribe

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("relay request failed: %s", task.exception())

    async def _send_subscribe(self, local_id: int):
        sub = self._subs.get(local_id)
        if sub is None or self._ws is None:
            return
        remote_id = next(self._ids)
        sub[4] = remote_id
        self._remote_to_local[remote_id] = local_id
        payload = {"type": EventType.SUBSCRIBE.value, "id": remote_id, "path": sub[0], "collection": sub[1]}
        future = asyncio.get_running_loop().create_future()
        self._pending[remote_id] = future
        try:
            await self._ws.send(orjson.dumps(payload).decode())
            await asyncio.wait_for(future, self.request_timeout)
        except (ConnectionClosed, StoreError, asyncio.TimeoutError) as e:
            logger.warning("subscribe %s failed: %s", sub[0], e)
            if sub[3]:
                sub[3](StoreError(f"subscribe {sub[0]}: {e}"))
        finally:
            self._pending.pop(remote_id, None)

    async def _request_quietly(self, event_type: EventType, **fields):
        try:
            await self._request(event_type, **fields)
        except StoreError as e:
            logger.debug("%s failed: %s", event_type.value, e)

    def _deliver_snapshot(self, local_id: int, msg: Dict[str, Any]):
        sub = self._subs.get(local_id)
        if sub is None:
            return
        path, collection, callback = sub[0], sub[1], sub[2]
        if collection:
            docs = msg.get("docs") or []
            self._cache[path] = docs
            snap = CollectionSnapshot(path=path, docs=docs, from_cache=bool(msg.get("fromCache")))
        else:
            snap = snapshot_from_wire(msg)
            self._cache[path] = snap.data if snap.exists else None
        self._call(sub, snap)

    def _call(self, sub, snap):
        try:
            sub[2](snap)
        except Exception as e:
            logger.exception("listener failed for %s", sub[0])
            if sub[3]:
                sub[3](e)

    def _cached_snapshot(self, path: str) -> Snapshot:
        data = self._cache.get(path)
        return Snapshot(path=path, exists=data is not None, data=data, from_cache=True)

    def _deliver_cached_one(self, local_id: int):
        sub = self._subs.get(local_id)
        if sub is None:
            return
        path, collection = sub[0], sub[1]
        if collection:
            snap = CollectionSnapshot(path=path, docs=list(self._cache.get(path) or []), from_cache=True)
        else:
            snap = self._cached_snapshot(path)
        self._call(sub, snap)

    def _deliver_cached(self):
        for local_id in list(self._subs):
            self._deliver_cached_one(local_id)
