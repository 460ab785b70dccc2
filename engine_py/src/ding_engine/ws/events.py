"""
WebSocket message models for the document store relay.

Clients speak a small request/response protocol: every inbound message
carries an ``id`` that the matching ``result`` or ``error`` echoes back.
Subscriptions are keyed by the id of the ``subscribe`` request and
produce ``snapshot`` messages until unsubscribed.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..store.base import (
    SERVER_TIMESTAMP, SOURCE_DEFAULT, ArrayRemove, ArrayUnion, CollectionSnapshot, Snapshot,
)


class EventType(str, Enum):
    """Inbound event types."""
    GET = "get"
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"
    ADD = "add"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"


class OutboundEventType(str, Enum):
    """Outbound event types."""
    RESULT = "result"
    SNAPSHOT = "snapshot"
    ERROR = "error"


class ErrorCode(str, Enum):
    INVALID_EVENT = "INVALID_EVENT"
    STORE_ERROR = "STORE_ERROR"
    INTERNAL = "INTERNAL"


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Inbound event models
class BaseEvent(WireModel):
    type: EventType
    id: int


class GetEvent(BaseEvent):
    type: EventType = EventType.GET
    path: str = Field(..., min_length=1)
    source: str = SOURCE_DEFAULT


class SetEvent(BaseEvent):
    type: EventType = EventType.SET
    path: str = Field(..., min_length=1)
    data: Dict[str, Any]
    merge: bool = False


class UpdateEvent(BaseEvent):
    type: EventType = EventType.UPDATE
    path: str = Field(..., min_length=1)
    data: Dict[str, Any]


class DeleteEvent(BaseEvent):
    type: EventType = EventType.DELETE
    path: str = Field(..., min_length=1)


class AddEvent(BaseEvent):
    type: EventType = EventType.ADD
    collection: str = Field(..., min_length=1)
    data: Dict[str, Any]


class SubscribeEvent(BaseEvent):
    """Follow a document, or a whole collection when collection is set."""
    type: EventType = EventType.SUBSCRIBE
    path: str = Field(..., min_length=1)
    collection: bool = False


class UnsubscribeEvent(BaseEvent):
    type: EventType = EventType.UNSUBSCRIBE
    subscription: int


InboundEvent = Union[
    GetEvent,
    SetEvent,
    UpdateEvent,
    DeleteEvent,
    AddEvent,
    SubscribeEvent,
    UnsubscribeEvent,
]


# Outbound event models
class ResultEvent(WireModel):
    type: OutboundEventType = OutboundEventType.RESULT
    id: int
    value: Any = None


class SnapshotEvent(WireModel):
    type: OutboundEventType = OutboundEventType.SNAPSHOT
    subscription: int
    path: str
    exists: bool = True
    data: Optional[Dict[str, Any]] = None
    docs: Optional[List[Dict[str, Any]]] = None
    from_cache: bool = False
    has_pending_writes: bool = False


class ErrorEvent(WireModel):
    type: OutboundEventType = OutboundEventType.ERROR
    id: Optional[int] = None
    code: ErrorCode
    message: str


_EVENT_MAP = {
    EventType.GET: GetEvent,
    EventType.SET: SetEvent,
    EventType.UPDATE: UpdateEvent,
    EventType.DELETE: DeleteEvent,
    EventType.ADD: AddEvent,
    EventType.SUBSCRIBE: SubscribeEvent,
    EventType.UNSUBSCRIBE: UnsubscribeEvent,
}


def parse_inbound_event(data: Dict[str, Any]) -> InboundEvent:
    """
    Parse raw message data into the matching event model.

    Raises:
        ValueError: If the type is unknown or the payload is malformed
    """
    event_type = data.get("type")
    if not event_type:
        raise ValueError("Missing event type")
    try:
        event_type = EventType(event_type)
    except ValueError:
        raise ValueError(f"Invalid event type: {event_type}")

    try:
        return _EVENT_MAP[event_type].model_validate(data)
    except Exception as e:
        raise ValueError(f"Invalid event data: {e}")


# Write sentinels travel as tagged objects.
_OP_KEY = "__op"


def encode_value(value: Any) -> Any:
    if isinstance(value, ArrayUnion):
        return {_OP_KEY: "arrayUnion", "values": [encode_value(v) for v in value.values]}
    if isinstance(value, ArrayRemove):
        return {_OP_KEY: "arrayRemove", "values": [encode_value(v) for v in value.values]}
    if value is SERVER_TIMESTAMP:
        return {_OP_KEY: "serverTimestamp"}
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        op = value.get(_OP_KEY)
        if op == "arrayUnion":
            return ArrayUnion(decode_value(v) for v in value.get("values") or [])
        if op == "arrayRemove":
            return ArrayRemove(decode_value(v) for v in value.get("values") or [])
        if op == "serverTimestamp":
            return SERVER_TIMESTAMP
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def snapshot_event(subscription: int, snap: Union[Snapshot, CollectionSnapshot]) -> SnapshotEvent:
    if isinstance(snap, CollectionSnapshot):
        return SnapshotEvent(subscription=subscription, path=snap.path, docs=snap.docs,
                             from_cache=snap.from_cache)
    return SnapshotEvent(subscription=subscription, path=snap.path, exists=snap.exists, data=snap.data,
                         from_cache=snap.from_cache, has_pending_writes=snap.has_pending_writes)


def snapshot_to_wire(snap: Snapshot) -> Dict[str, Any]:
    return {
        "path": snap.path,
        "exists": snap.exists,
        "data": snap.data,
        "fromCache": snap.from_cache,
        "hasPendingWrites": snap.has_pending_writes,
    }


def snapshot_from_wire(data: Dict[str, Any]) -> Snapshot:
    return Snapshot(
        path=data["path"],
        exists=bool(data.get("exists")),
        data=data.get("data"),
        from_cache=bool(data.get("fromCache")),
        has_pending_writes=bool(data.get("hasPendingWrites")),
    )


def create_error_event(code: ErrorCode, message: str, request_id: Optional[int] = None) -> ErrorEvent:
    return ErrorEvent(id=request_id, code=code, message=message)


def dumps(event: BaseModel) -> bytes:
    return orjson.dumps(event.model_dump(mode="json", by_alias=True))


def loads(raw: Union[str, bytes]) -> Dict[str, Any]:
    data = orjson.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Message must be an object")
    return data
