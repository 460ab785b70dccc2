"""
FastAPI WebSocket relay for the shared document store.

Remote clients read, write and subscribe to documents of one in-process
MemoryDocumentStore. Room updates fire the turn-notification trigger
when a push sender is configured.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Dict, Optional, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__, config
from ..constants import META_APP_PATH
from ..notify.dispatcher import NotificationDispatcher
from ..notify.push import PushSender
from ..store.base import StoreError
from ..store.memory import MemoryDocumentStore
from .events import (
    AddEvent, DeleteEvent, ErrorCode, GetEvent, InboundEvent, ResultEvent, SetEvent, SubscribeEvent,
    UnsubscribeEvent, UpdateEvent, create_error_event, decode_value, dumps, loads,
    parse_inbound_event, snapshot_event, snapshot_to_wire,
)

logger = logging.getLogger(__name__)


class RelayConnection:
    """One websocket client, its subscriptions, and an outbox drained by a writer task."""

    def __init__(self, websocket: WebSocket, store: MemoryDocumentStore):
        self.websocket = websocket
        self.store = store
        self.subscriptions: Dict[int, Callable[[], None]] = {}
        self.outbox: asyncio.Queue = asyncio.Queue()

    def send(self, event):
        self.outbox.put_nowait(dumps(event))

    async def _drain(self):
        while True:
            raw = await self.outbox.get()
            await self.websocket.send_text(raw.decode())

    async def serve(self):
        writer = asyncio.ensure_future(self._drain())
        try:
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text") or message.get("bytes")
                if raw:
                    await self.handle_raw(raw)
        except WebSocketDisconnect:
            pass
        finally:
            self.close()
            writer.cancel()

    def close(self):
        for unsubscribe in self.subscriptions.values():
            unsubscribe()
        self.subscriptions.clear()

    async def handle_raw(self, raw):
        request_id = None
        try:
            data = loads(raw)
            request_id = data.get("id") if isinstance(data.get("id"), int) else None
            event = parse_inbound_event(data)
        except ValueError as e:
            self.send(create_error_event(ErrorCode.INVALID_EVENT, str(e), request_id))
            return

        try:
            value = await self.handle(event)
        except StoreError as e:
            self.send(create_error_event(ErrorCode.STORE_ERROR, str(e), event.id))
            return
        except Exception as e:
            logger.exception("relay request %s failed", event.id)
            self.send(create_error_event(ErrorCode.INTERNAL, str(e), event.id))
            return
        self.send(ResultEvent(id=event.id, value=value))

    async def handle(self, event: InboundEvent):
        if isinstance(event, GetEvent):
            return snapshot_to_wire(await self.store.get(event.path, source=event.source))
        if isinstance(event, SetEvent):
            await self.store.set(event.path, decode_value(event.data), merge=event.merge)
        elif isinstance(event, UpdateEvent):
            await self.store.update(event.path, decode_value(event.data))
        elif isinstance(event, DeleteEvent):
            await self.store.delete(event.path)
        elif isinstance(event, AddEvent):
            return await self.store.add(event.collection, decode_value(event.data))
        elif isinstance(event, SubscribeEvent):
            self._subscribe(event)
        elif isinstance(event, UnsubscribeEvent):
            unsubscribe = self.subscriptions.pop(event.subscription, None)
            if unsubscribe:
                unsubscribe()
        return None

    def _subscribe(self, event: SubscribeEvent):
        sub_id = event.id
        if sub_id in self.subscriptions:
            self.subscriptions.pop(sub_id)()

        def deliver(snap):
            self.send(snapshot_event(sub_id, snap))

        # The first snapshot is queued before the result of the subscribe request.
        if event.collection:
            unsubscribe = self.store.subscribe_collection(event.path, deliver)
        else:
            unsubscribe = self.store.subscribe(event.path, deliver)
        self.subscriptions[sub_id] = unsubscribe


def create_app(
    store: Optional[MemoryDocumentStore] = None,
    sender: Optional[PushSender] = None,
    recheck_delay: float = config.NOTIFY_RECHECK_SECONDS
) -> FastAPI:
    store = store or MemoryDocumentStore()
    connections: Set[RelayConnection] = set()

    dispatcher = None
    if sender is not None:
        dispatcher = NotificationDispatcher(store, sender, recheck_delay=recheck_delay)
        dispatcher.register(store)
        logger.info("turn notifications enabled")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Connectivity marker that clients subscribe to.
        await store.set(META_APP_PATH, {"online": True}, merge=True)
        yield
        await store.close()

    app = FastAPI(title="DING Online Sync Relay", version=__version__, lifespan=lifespan)
    app.state.store = store
    app.state.dispatcher = dispatcher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {"message": "DING Online Sync Relay", "version": __version__}

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "connections": len(connections),
            "notifications": dispatcher is not None,
        }

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        connection = RelayConnection(websocket, store)
        connections.add(connection)
        logger.info("relay connection opened (%d open)", len(connections))
        try:
            await connection.serve()
        finally:
            connections.discard(connection)
            logger.info("relay connection closed (%d open)", len(connections))

    return app
