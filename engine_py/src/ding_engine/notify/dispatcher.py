"""
Turn notifications.

Runs as a server-side trigger on room updates. When the turn moves to a
new player, that player's devices get a data-only push. After a delay the
room is read again and the push is repeated once if the player still
has not acted and has not acknowledged the turn.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .. import config
from ..constants import DEFAULT_ROOM_NAME
from ..store.base import (
    SERVER_TIMESTAMP, SOURCE_SERVER, DocumentStore, StoreError, array_remove, room_path, user_path,
)
from .push import ACTION_PRUNE, ACTION_RETRY, MulticastResult, PushSender, classify_error

logger = logging.getLogger(__name__)


def record_turn_key(record: Dict[str, Any]) -> str:
    """Turn key of a room record: handId-trickNumber-currentTurnIndex-phase."""
    if record.get("turnKey"):
        return record["turnKey"]
    return (f"{record.get('handId') or 0}-{record.get('trickNumber') or 0}-"
            f"{record.get('currentTurnIndex') or 0}-{record.get('phase') or ''}")


def unique_tokens(tokens: Any) -> List[str]:
    if not isinstance(tokens, list):
        return []
    seen = []
    for token in tokens:
        if isinstance(token, str) and token and token not in seen:
            seen.append(token)
    return seen


@dataclass
class DeliveryReport:
    delivered: int = 0
    pruned: List[str] = field(default_factory=list)
    retried: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)


@dataclass
class DispatchOutcome:
    room_id: str
    uid: str
    turn_key: str
    pushes: int = 0
    resent: bool = False
    skipped: Optional[str] = None
    reports: List[DeliveryReport] = field(default_factory=list)


class NotificationDispatcher:
    """Sends at most two pushes per turn key: one on the turn change and one reminder."""

    def __init__(
        self,
        store: DocumentStore,
        sender: PushSender,
        recheck_delay: float = config.NOTIFY_RECHECK_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        title: str = config.APP_TITLE
    ):
        self.store = store
        self.sender = sender
        self.recheck_delay = recheck_delay
        self.sleep = sleep
        self.title = title

    async def handle_room_update(
        self,
        room_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]]
    ) -> Optional[DispatchOutcome]:
        before = before or {}
        after = after or {}
        before_uid = before.get("turnUid") or None
        after_uid = after.get("turnUid") or None
        if not after_uid or before_uid == after_uid:
            return None

        key = record_turn_key(after)
        outcome = DispatchOutcome(room_id=room_id, uid=after_uid, turn_key=key)

        profile = await self._read_profile(after_uid)
        if profile.get("lastTurnAck") == key:
            outcome.skipped = "acknowledged"
            return outcome
        tokens = unique_tokens(profile.get("pushTokens"))
        if not tokens:
            outcome.skipped = "no_tokens"
            return outcome

        report = await self._deliver(room_id, after, after_uid, key, tokens)
        outcome.pushes += 1
        outcome.reports.append(report)

        await self.sleep(self.recheck_delay)

        if not await self._should_resend(room_id, after_uid, key):
            return outcome
        profile = await self._read_profile(after_uid)
        tokens = unique_tokens(profile.get("pushTokens"))
        if not tokens:
            return outcome
        logger.info("room %s: resending turn %s to %s", room_id, key, after_uid)
        report = await self._deliver(room_id, after, after_uid, key, tokens)
        outcome.pushes += 1
        outcome.resent = True
        outcome.reports.append(report)
        return outcome

    async def _read_profile(self, uid: str, source: str = "default") -> Dict[str, Any]:
        try:
            snap = await self.store.get(user_path(uid), source=source)
        except StoreError as e:
            logger.error("failed to read profile %s: %s", uid, e)
            return {}
        return snap.data or {}

    async def _should_resend(self, room_id: str, uid: str, key: str) -> bool:
        try:
            room = await self.store.get(room_path(room_id), source=SOURCE_SERVER)
        except StoreError as e:
            logger.error("recheck of room %s failed: %s", room_id, e)
            return False
        if not room.exists:
            return False
        data = room.data or {}
        if record_turn_key(data) != key or data.get("turnUid") != uid:
            return False
        profile = await self._read_profile(uid, source=SOURCE_SERVER)
        return profile.get("lastTurnAck") != key

    def build_payload(self, room_id: str, record: Dict[str, Any], key: str) -> Dict[str, str]:
        room_name = record.get("roomName") or DEFAULT_ROOM_NAME
        return {
            "roomId": room_id,
            "roomName": room_name,
            "title": self.title,
            "body": f"It's your turn in {room_name}",
            "turnKey": key,
        }

    async def _send(self, tokens: List[str], data: Dict[str, str]) -> MulticastResult:
        try:
            return await self.sender.send_multicast(tokens, data)
        except Exception:
            logger.exception("push send failed for %d token(s)", len(tokens))
            return MulticastResult()

    def _classify(self, tokens: List[str], result: MulticastResult, report: DeliveryReport) -> List[str]:
        retry = []
        for token, response in zip(tokens, result.responses):
            if response.success:
                report.delivered += 1
                continue
            action = classify_error(response.error_code)
            if action == ACTION_PRUNE:
                report.pruned.append(token)
            elif action == ACTION_RETRY:
                retry.append(token)
            else:
                logger.warning("dropping push error %s", response.error_code)
                report.dropped.append(token)
        return retry

    async def _deliver(self, room_id: str, record: Dict[str, Any], uid: str,
                       key: str, tokens: List[str]) -> DeliveryReport:
        data = self.build_payload(room_id, record, key)
        report = DeliveryReport()

        result = await self._send(tokens, data)
        retry = self._classify(tokens, result, report)
        if retry:
            logger.info("retrying %d token(s) for %s", len(retry), uid)
            report.retried = list(retry)
            retry_result = await self._send(retry, data)
            for token in self._classify(retry, retry_result, report):
                report.dropped.append(token)

        logger.info("room %s: turn %s pushed to %s (%d/%d delivered)",
                    room_id, key, uid, report.delivered, len(tokens))

        if report.pruned:
            logger.info("pruning %d token(s) for %s", len(report.pruned), uid)
            try:
                await self.store.update(user_path(uid), {"pushTokens": array_remove(*report.pruned)})
            except StoreError as e:
                logger.error("failed to prune tokens for %s: %s", uid, e)

        try:
            await self.store.set(user_path(uid), {
                "lastTurnNotification": key,
                "lastTurnNotificationAt": SERVER_TIMESTAMP,
            }, merge=True)
        except StoreError as e:
            logger.error("failed to record notification for %s: %s", uid, e)
        return report

    def register(self, store) -> None:
        """Attach to a store that supports update triggers (MemoryDocumentStore)."""
        async def on_room_update(before, after, params):
            await self.handle_room_update(params["roomId"], before, after)
        store.on_update("rooms/{roomId}", on_room_update)
