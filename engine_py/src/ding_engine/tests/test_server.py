"""
Relay server and relay client tests.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from ding_engine import __version__
from ding_engine.constants import META_APP_PATH
from ding_engine.notify import MulticastResult
from ding_engine.store import SERVER_TIMESTAMP, SOURCE_SERVER, MemoryDocumentStore, StoreError, array_union
from ding_engine.ws import create_app
from ding_engine.ws.client import RemoteDocumentStore
from ding_engine.ws.events import decode_value, encode_value, loads, parse_inbound_event


class NullSender:
    async def send_multicast(self, tokens, data):
        return MulticastResult()


class FakeSocket:
    """Records outbound relay messages; nothing is ever received."""

    def __init__(self):
        self.sent = []
        self.closed = False

    async def send(self, text):
        self.sent.append(loads(text))

    async def close(self):
        self.closed = True


@pytest.fixture
def store():
    return MemoryDocumentStore(clock=lambda: 42.0)


def test_root_and_health(store):
    with TestClient(create_app(store)) as client:
        assert client.get("/").json() == {"message": "DING Online Sync Relay", "version": __version__}
        assert client.get("/health").json() == {"status": "healthy", "connections": 0, "notifications": False}
        assert store.peek(META_APP_PATH) == {"online": True}


def test_notifications_enabled_with_sender(store):
    app = create_app(store, sender=NullSender(), recheck_delay=0)
    assert app.state.dispatcher is not None
    with TestClient(app) as client:
        assert client.get("/health").json()["notifications"] is True


def test_websocket_round_trip(store):
    """Writes, reads and subscriptions over one socket."""
    with TestClient(create_app(store)) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "set", "id": 1, "path": "rooms/A",
                          "data": {"phase": "LOBBY", "createdAt": {"__op": "serverTimestamp"}}})
            assert ws.receive_json() == {"type": "result", "id": 1, "value": None}

            ws.send_json({"type": "subscribe", "id": 2, "path": "rooms/A"})
            first = ws.receive_json()
            assert first["type"] == "snapshot"
            assert first["subscription"] == 2
            assert first["data"] == {"phase": "LOBBY", "createdAt": 42.0}
            assert first["fromCache"] is False
            assert ws.receive_json()["id"] == 2

            ws.send_json({"type": "update", "id": 3, "path": "rooms/A",
                          "data": {"startVotes": {"__op": "arrayUnion", "values": ["u1"]}}})
            snapshot = ws.receive_json()
            assert snapshot["data"]["startVotes"] == ["u1"]
            assert ws.receive_json() == {"type": "result", "id": 3, "value": None}

            ws.send_json({"type": "get", "id": 4, "path": "rooms/A", "source": "server"})
            value = ws.receive_json()["value"]
            assert value["exists"] is True
            assert value["hasPendingWrites"] is False

            ws.send_json({"type": "add", "id": 5, "collection": "rooms/A/roomLog",
                          "data": {"type": "chat", "message": "hi"}})
            doc_id = ws.receive_json()["value"]
            assert store.peek(f"rooms/A/roomLog/{doc_id}")["createdAt"] == 42.0

            ws.send_json({"type": "unsubscribe", "id": 6, "subscription": 2})
            assert ws.receive_json()["id"] == 6
            assert store.listener_count("rooms/A") == 0


def test_websocket_errors(store):
    with TestClient(create_app(store)) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "teleport", "id": 1})
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["id"] == 1
            assert error["code"] == "INVALID_EVENT"

            ws.send_text("not json")
            assert ws.receive_json()["code"] == "INVALID_EVENT"

            ws.send_json({"type": "update", "id": 2, "path": "rooms/missing", "data": {"a": 1}})
            error = ws.receive_json()
            assert error["code"] == "STORE_ERROR"
            assert error["id"] == 2


def test_sentinel_encoding():
    data = {"tokens": array_union("a", "b"), "at": SERVER_TIMESTAMP, "n": [1, {"x": 2}]}
    encoded = encode_value(data)
    assert encoded["tokens"] == {"__op": "arrayUnion", "values": ["a", "b"]}
    assert encoded["at"] == {"__op": "serverTimestamp"}
    decoded = decode_value(encoded)
    assert decoded["at"] is SERVER_TIMESTAMP
    assert decoded["tokens"].values == ["a", "b"]
    assert decoded["n"] == [1, {"x": 2}]


def test_parse_inbound_event():
    event = parse_inbound_event({"type": "subscribe", "id": 3, "path": "rooms/A/roomLog", "collection": True})
    assert event.collection
    with pytest.raises(ValueError):
        parse_inbound_event({"type": "get", "id": 1})
    with pytest.raises(ValueError):
        parse_inbound_event({"id": 1})


async def test_remote_store_offline_uses_cache():
    """Without a connection reads come from the cache and writes fail."""
    remote = RemoteDocumentStore("ws://127.0.0.1:9/ws")
    assert not remote.connected

    snap = await remote.get("rooms/A")
    assert snap.from_cache and not snap.exists
    with pytest.raises(StoreError):
        await remote.get("rooms/A", source=SOURCE_SERVER)
    with pytest.raises(StoreError):
        await remote.set("rooms/A", {"phase": "LOBBY"})

    seen = []
    unsubscribe = remote.subscribe("rooms/A", seen.append)
    assert len(seen) == 1 and seen[0].from_cache
    unsubscribe()

    with pytest.raises(StoreError):
        await remote.connect()


async def test_remote_store_resolves_requests():
    remote = RemoteDocumentStore("ws://127.0.0.1:9/ws")
    loop = asyncio.get_running_loop()
    ok, failed = loop.create_future(), loop.create_future()
    remote._pending[1] = ok
    remote._pending[2] = failed
    remote._handle_message({"type": "result", "id": 1, "value": "doc-1"})
    remote._handle_message({"type": "error", "id": 2, "code": "STORE_ERROR", "message": "nope"})
    assert ok.result() == "doc-1"
    with pytest.raises(StoreError):
        failed.result()


async def test_remote_store_keeps_background_requests():
    """Subscribe and unsubscribe sends are held until done and cancelled on close."""
    remote = RemoteDocumentStore("ws://127.0.0.1:9/ws")
    socket = FakeSocket()
    remote._ws = socket

    unsubscribe = remote.subscribe("rooms/A", lambda snap: None)
    assert len(remote._tasks) == 1
    await asyncio.sleep(0)
    request = socket.sent[0]
    assert request["type"] == "subscribe"
    assert request["path"] == "rooms/A"
    remote._handle_message({"type": "result", "id": request["id"], "value": None})
    await asyncio.gather(*list(remote._tasks))
    await asyncio.sleep(0)
    assert not remote._tasks

    unsubscribe()
    assert len(remote._tasks) == 1
    await remote.close()
    assert not remote._tasks
    assert socket.closed
