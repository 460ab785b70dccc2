"""
Client-side synchronization for multiplayer rooms.

A SyncCoordinator keeps one client's view of a room in step with the
shared store: a subscription to the public room record, one to the
player's own hand record and one to the room log. Every mutating action
goes through a write gate, runs the engine transition locally, and then
writes the result back.

Store callbacks only queue events. A single reconciliation loop applies
them under a lock, so applying a snapshot can never interleave with a
local action.
"""

import asyncio
import copy
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .. import config
from .. import engine
from ..constants import (
    ERROR_INTERNAL, ERROR_INVALID_SELECTION, ERROR_NOT_HOST, ERROR_NOT_SIGNED_IN,
    ERROR_ROOM_NOT_FOUND, META_APP_PATH, MODE_MULTI, PHASE_GAME_OVER, PHASE_HAND_END,
    PHASE_LOBBY, PHASE_SWAP, PHASE_TRICK,
)
from ..diff import diff_room_snapshots
from ..errors import ConnectivityError, GameError, StaleStateError
from ..models import Card, GameState
from ..roomlog import ChatEntry, ChatLikeEntry, build_chat_like_index
from ..rooms import get_default_room_name, get_room_display_name, make_room_code, normalize_nickname, normalize_room_code
from ..serialization import (
    hand_from_record, hand_generation, hand_to_record, hand_updated_at, room_from_record, room_to_record,
)
from ..store.base import (
    SERVER_TIMESTAMP, SOURCE_SERVER, DocumentStore, Snapshot, StoreError, array_remove,
    array_union, hand_path, log_path, room_path, user_path,
)
from .events import (
    NOTICE_CONNECTION, NOTICE_DING, NOTICE_ERROR, NOTICE_GAME_OVER, NOTICE_KICKED, NOTICE_SWAP,
    SUBSCRIPTION_CONNECTIVITY, SUBSCRIPTION_HAND, SUBSCRIPTION_LOG, SUBSCRIPTION_ROOM,
    ConnectivityChanged, HandUpdated, LogUpdated, Notice, RoomUpdated, SubscriptionFailed,
)
from .timers import SCOPE_HAND, SCOPE_ROOM, TimerRegistry

logger = logging.getLogger(__name__)

ROOM_CODE_ATTEMPTS = 5
MAX_CHAT_LENGTH = 240
SWAP_NOTICE_SECONDS = 2.5

# Seat-related fields rewritten when someone leaves or is kicked.
SEAT_FIELDS = ("players", "hostUid", "dealerIndex", "leaderIndex", "currentTurnIndex",
               "startVotes", "swapCounts", "turnUid", "turnKey")


class SyncCoordinator:
    """One client's membership in one multiplayer room at a time."""

    def __init__(
        self,
        store: DocumentStore,
        uid: Optional[str] = None,
        name: Optional[str] = None,
        on_notice: Optional[Callable[[Notice], None]] = None,
        resync_interval: float = config.RESYNC_INTERVAL_SECONDS,
        settings_debounce: float = config.SETTINGS_DEBOUNCE_SECONDS,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.uid = uid
        self.name = name
        self.on_notice = on_notice
        self.resync_interval = resync_interval
        self.settings_debounce = settings_debounce
        self.rng = rng or random.Random()
        self.clock = clock

        self.room_id: Optional[str] = None
        self.state: Optional[GameState] = None
        self.hand: List[Card] = []
        self.hand_updated_at = 0.0
        self.hand_generation: Optional[Tuple[int, int]] = None
        self._hand_write_pending = False
        self.log_entries: List[Dict[str, Any]] = []
        self.room_nicknames: Dict[str, str] = {}

        self.connected = True
        self.room_synced = False
        self.hand_synced = False
        self.last_turn_ack: Optional[str] = None
        self.active_swap_notice: Optional[Notice] = None

        self.events: asyncio.Queue = asyncio.Queue()
        self.timers = TimerRegistry()
        self._lock = asyncio.Lock()
        self._subscriptions: Dict[str, Callable[[], None]] = {}
        self._connectivity_unsub: Optional[Callable[[], None]] = None
        self._swap_notice_history: Set[str] = set()
        self._background: Set[asyncio.Task] = set()
        self._resync_task: Optional[asyncio.Task] = None
        self._runner: Optional[asyncio.Task] = None

    # -- lifecycle ------------------------------------------------------------

    async def sign_in(self, uid: str, name: Optional[str] = None):
        """Set the local identity and load per-room nicknames from the profile."""
        self.uid = uid
        self.name = name or self.name
        try:
            snap = await self.store.get(user_path(uid))
        except StoreError as e:
            logger.warning("profile read failed for %s: %s", uid, e)
            return
        if snap.exists and snap.data:
            self.room_nicknames = dict(snap.data.get("roomNicknames") or {})
            self.last_turn_ack = snap.data.get("lastTurnAck")

    def start(self, run_loop: bool = True):
        """Start the connectivity monitor, the resync loop and (optionally) the event loop."""
        if self._connectivity_unsub is None:
            self._connectivity_unsub = self.store.subscribe(
                META_APP_PATH,
                lambda snap: self.events.put_nowait(ConnectivityChanged(connected=not snap.from_cache)),
                lambda err: self.events.put_nowait(SubscriptionFailed(SUBSCRIPTION_CONNECTIVITY, err)),
            )
        if self._resync_task is None:
            self._resync_task = asyncio.ensure_future(self._resync_loop())
        if run_loop and self._runner is None:
            self._runner = asyncio.ensure_future(self.run())

    async def close(self):
        self.leave_room()
        if self._connectivity_unsub:
            self._connectivity_unsub()
            self._connectivity_unsub = None
        for task in (self._resync_task, self._runner, *self._background):
            if task:
                task.cancel()
        self._resync_task = None
        self._runner = None
        self._background.clear()
        self.timers.cancel_all()

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_background(self):
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _notify(self, kind: str, message: str, **data):
        notice = Notice(kind=kind, message=message, data=data)
        if self.on_notice:
            self.on_notice(notice)
        return notice

    # -- event loop -----------------------------------------------------------

    async def run(self):
        """Apply queued store events forever."""
        while True:
            event = await self.events.get()
            await self._dispatch(event)

    async def process_pending(self):
        """Apply every event queued so far."""
        while not self.events.empty():
            await self._dispatch(self.events.get_nowait())

    async def _dispatch(self, event):
        async with self._lock:
            auto_start = await self._handle(event)
        if auto_start:
            await self._maybe_auto_start()

    async def _handle(self, event) -> bool:
        if isinstance(event, RoomUpdated):
            return await self._apply_room_snapshot(event.snapshot)
        if isinstance(event, HandUpdated):
            self._apply_hand_snapshot(event.snapshot)
        elif isinstance(event, LogUpdated):
            if self.room_id and event.snapshot.path == log_path(self.room_id):
                self.log_entries = event.snapshot.docs
        elif isinstance(event, SubscriptionFailed):
            self._subscription_failed(event)
        elif isinstance(event, ConnectivityChanged):
            if event.connected != self.connected:
                self.connected = event.connected
                message = "" if event.connected else "Reconnecting to the database."
                self._notify(NOTICE_CONNECTION, message, connected=event.connected)
        return False

    def _subscription_failed(self, event: SubscriptionFailed):
        logger.error("%s subscription error: %s", event.subscription, event.error)
        if event.subscription == SUBSCRIPTION_ROOM:
            self.room_synced = False
            self._notify(NOTICE_ERROR, "Room sync failed.")
        elif event.subscription == SUBSCRIPTION_HAND:
            self.hand_synced = False
        if self.connected:
            self.connected = False
            self._notify(NOTICE_CONNECTION, "Reconnecting to the database.", connected=False)

    # -- applying remote state --------------------------------------------------

    async def _apply_room_snapshot(self, snap: Snapshot) -> bool:
        """Returns True when the host should try to start from votes."""
        if not self.room_id or snap.path != room_path(self.room_id):
            return False
        self.room_synced = not snap.stale
        if not snap.exists:
            self.room_synced = False
            self._notify(NOTICE_ERROR, "Room not found.")
            return False

        previous = self.state
        new_state = room_from_record(snap.data, previous, room_id=self.room_id)
        changes = diff_room_snapshots(previous, new_state, self.uid)

        if changes.hand_changed or changes.game_changed:
            self._swap_notice_history.clear()
            self.timers.cancel_scope(SCOPE_HAND)
            self.active_swap_notice = None
        elif changes.phase_changed:
            self.timers.cancel_scope(SCOPE_HAND)

        if self.uid:
            new_state.hands = {self.uid: list(self.hand)}
        self.state = new_state

        if changes.kicked:
            self._handle_kicked(new_state.room_name)
            return False

        if new_state.phase in (PHASE_SWAP, PHASE_TRICK):
            for hand_id, seat_key, player_name, count in changes.swap_notices:
                self._announce_swap(hand_id, seat_key, player_name, count)

        if previous is not None and changes.phase_changed:
            self._notify_hand_result(previous, new_state)

        await self.ack_turn_if_needed()
        return engine.votes_complete(new_state) and new_state.host_uid == self.uid

    def _announce_swap(self, hand_id: int, seat_key: str, player_name: str, count: int):
        notice_key = f"{hand_id}-{seat_key}"
        if notice_key in self._swap_notice_history:
            return
        self._swap_notice_history.add(notice_key)
        label = "card" if count == 1 else "cards"
        self.active_swap_notice = self._notify(
            NOTICE_SWAP, f"{player_name} swapped {count} {label}.",
            hand_id=hand_id, seat_key=seat_key, count=count,
        )
        self.timers.schedule("swap_notice", SWAP_NOTICE_SECONDS, self._clear_swap_notice, scope=SCOPE_HAND)

    def _clear_swap_notice(self):
        self.active_swap_notice = None

    def _notify_hand_result(self, previous: GameState, state: GameState):
        if state.phase not in (PHASE_HAND_END, PHASE_GAME_OVER) or previous.phase != PHASE_TRICK:
            if state.phase == PHASE_GAME_OVER and previous.phase != PHASE_GAME_OVER:
                self._notify_game_over(state)
            return
        before = {p.seat_key: p.ding_count for p in previous.players}
        for idx, player in enumerate(state.players):
            if player.ding_count > before.get(player.seat_key, player.ding_count):
                self._notify(NOTICE_DING, f"{player.name} got DINGED!", player_index=idx)
        if state.phase == PHASE_GAME_OVER:
            self._notify_game_over(state)

    def _notify_game_over(self, state: GameState):
        winner = state.players[state.winner_index] if state.winner_index is not None \
            and state.winner_index < len(state.players) else None
        message = f"{winner.name} wins!" if winner else "Game over."
        self._notify(NOTICE_GAME_OVER, message, winner_index=state.winner_index)

    def _apply_hand_snapshot(self, snap: Snapshot):
        if not self.room_id or not self.uid or snap.path != hand_path(self.room_id, self.uid):
            return
        self.hand_synced = not snap.stale
        if not snap.exists:
            self._set_hand([], 0.0, None)
            return
        generation = hand_generation(snap.data)
        updated_at = hand_updated_at(snap.data)
        if self._hand_snapshot_is_older(generation, updated_at):
            logger.debug("ignoring hand snapshot %s@%.3f (local %s@%.3f)",
                         generation, updated_at, self.hand_generation, self.hand_updated_at)
            return
        self._set_hand(hand_from_record(snap.data), updated_at, generation)

    def _hand_snapshot_is_older(self, generation: Optional[Tuple[int, int]], updated_at: float) -> bool:
        """
        Order hand records by (gameId, handId), then by store write time.

        Write times come from the store, so they only compare within one
        deal; a record from a newer deal always wins. A re-delivery stamped
        with the time already held is ignored while a local write is in
        flight.
        """
        if generation is not None and self.hand_generation is not None and generation != self.hand_generation:
            return generation < self.hand_generation
        if updated_at < self.hand_updated_at:
            return True
        return self._hand_write_pending and updated_at == self.hand_updated_at

    def _set_hand(self, cards: List[Card], updated_at: float, generation: Optional[Tuple[int, int]]):
        self.hand = list(cards)
        self.hand_updated_at = updated_at
        self.hand_generation = generation
        self._hand_write_pending = False
        if self.state is not None and self.uid:
            self.state.hands = {self.uid: list(cards)}

    def _handle_kicked(self, room_name: Optional[str]):
        name = get_room_display_name(room_name)
        logger.info("%s was removed from room %s", self.uid, self.room_id)
        room_id = self.room_id
        self.leave_room()
        self._notify(NOTICE_KICKED, f"You have been kicked from {name}.", room_id=room_id)

    # -- reads ------------------------------------------------------------------

    async def refresh_room(self) -> bool:
        """Re-read the room from the server, bypassing the cache."""
        room_id = self.room_id
        if not room_id:
            return False
        try:
            snap = await self.store.get(room_path(room_id), source=SOURCE_SERVER)
        except StoreError as e:
            logger.error("failed to refresh room %s: %s", room_id, e)
            return False
        if self.room_id != room_id or not snap.exists:
            return False
        async with self._lock:
            auto_start = await self._apply_room_snapshot(snap)
            self.room_synced = True
        if auto_start:
            await self._maybe_auto_start()
        return True

    async def refresh_hand(self) -> bool:
        room_id, uid = self.room_id, self.uid
        if not room_id or not uid:
            return False
        try:
            snap = await self.store.get(hand_path(room_id, uid), source=SOURCE_SERVER)
        except StoreError as e:
            logger.error("failed to refresh hand: %s", e)
            return False
        if self.room_id != room_id or self.uid != uid:
            return False
        async with self._lock:
            self._apply_hand_snapshot(snap)
            self.hand_synced = True
        return True

    @property
    def synced(self) -> bool:
        if not self.room_id:
            return self.connected
        return self.connected and self.room_synced and self.hand_synced

    async def resync_once(self) -> bool:
        """One pass of the reconnect loop; returns True if it had work to do."""
        if self.synced:
            return False
        try:
            await self.store.enable_network()
        except StoreError as e:
            logger.warning("enable_network failed: %s", e)
        if self.room_id:
            if not self.room_synced:
                await self.refresh_room()
            if not self.hand_synced:
                await self.refresh_hand()
        return True

    async def _resync_loop(self):
        while True:
            await asyncio.sleep(self.resync_interval)
            try:
                await self.resync_once()
            except Exception:
                logger.exception("resync failed")

    # -- write gate -------------------------------------------------------------

    def ensure_ready(self, require_hand: bool = False):
        """
        Refuse to act on state that may be out of date.

        Raises:
            GameError: not signed in
            ConnectivityError: the store is unreachable
            StaleStateError: a forced re-read was scheduled; retry shortly
        """
        if not self.uid:
            raise GameError(ERROR_NOT_SIGNED_IN, "Sign in first.")
        if not self.connected:
            raise ConnectivityError("Reconnecting...")
        if not self.room_synced:
            self._spawn(self.refresh_room())
            raise StaleStateError("Syncing game state. Try again in a moment.")
        if require_hand and (not self.hand_synced or self._hand_behind_room()):
            self._spawn(self.refresh_hand())
            raise StaleStateError("Syncing your hand. Try again in a moment.")

    def _hand_behind_room(self) -> bool:
        """The room already shows a newer deal than the hand record we hold."""
        if self.state is None or self.hand_generation is None:
            return False
        room_generation = (self.state.game_id, self.state.hand_id)
        return self.state.phase in (PHASE_SWAP, PHASE_TRICK) and self.hand_generation < room_generation

    def _require_room(self) -> GameState:
        if not self.room_id or self.state is None:
            raise GameError(ERROR_ROOM_NOT_FOUND, "Join a room first.")
        return self.state

    def _require_signed_in(self):
        if not self.uid:
            raise GameError(ERROR_NOT_SIGNED_IN, "Sign in first.")

    @property
    def self_index(self) -> Optional[int]:
        return self.state.index_of(self.uid) if self.state else None

    @property
    def is_host(self) -> bool:
        return bool(self.state and self.uid and self.state.host_uid == self.uid)

    def _self_room_name(self, room_id: str) -> str:
        return normalize_nickname(self.room_nicknames.get(room_id)) or normalize_nickname(self.name) or "Player"

    # -- writes -----------------------------------------------------------------

    async def _write(self, op: str, coro):
        try:
            return await coro
        except StoreError as e:
            logger.error("failed to sync %s: %s", op, e)
            self.room_synced = False
            if self.connected:
                self.connected = False
                self._notify(NOTICE_CONNECTION, "Reconnecting to the database.", connected=False)
            raise ConnectivityError("Failed to sync room state.") from e

    async def _log_events(self, room_id: str, events: List[Any]):
        for entry in events:
            try:
                await self.store.add(log_path(room_id), entry.to_record())
            except StoreError as e:
                logger.error("failed to write log entry: %s", e)

    async def _commit(
        self,
        result: engine.ActionResult,
        reason: str,
        write_own_hand: bool = False,
        write_all_hands: bool = False,
        clear_all_hands: bool = False
    ) -> engine.ActionResult:
        """Apply a transition locally, then write the room record, hands and log entries."""
        if not result.success:
            raise GameError(result.error_code, result.error_message)

        room_id = self.room_id
        new_state = result.state
        dealt_hands = copy.deepcopy(new_state.hands) if write_all_hands else {}
        if self.uid:
            own = new_state.hands.get(self.uid, self.hand if not (write_all_hands or clear_all_hands) else [])
            self.hand = list(own)
            new_state.hands = {self.uid: list(own)}
        self.state = new_state
        logger.debug("room %s: writing %s (version %d)", room_id, reason, new_state.version)

        write_all = write_all_hands or clear_all_hands
        if write_all or (write_own_hand and self.uid):
            self._mark_local_hand((new_state.game_id, new_state.hand_id))

        await self._write(reason, self.store.update(room_path(room_id), room_to_record(new_state)))

        if write_all:
            for uid in new_state.seated_uids:
                cards = dealt_hands.get(uid, []) if write_all_hands else []
                record = hand_to_record(cards, SERVER_TIMESTAMP, new_state.hand_id, new_state.game_id)
                await self._write(reason, self.store.set(hand_path(room_id, uid), record))
        elif write_own_hand and self.uid:
            record = hand_to_record(self.hand, SERVER_TIMESTAMP, new_state.hand_id, new_state.game_id)
            await self._write(reason, self.store.set(hand_path(room_id, self.uid), record))

        await self._log_events(room_id, result.events)
        return result

    def _mark_local_hand(self, generation: Tuple[int, int]):
        """The local hand is now ahead of the store until our write echoes back."""
        if generation != self.hand_generation:
            self.hand_generation = generation
            self.hand_updated_at = 0.0
            self._hand_write_pending = False
        else:
            self._hand_write_pending = True

    async def _update_profile(self, data: Dict[str, Any]):
        if not self.uid:
            return
        try:
            await self.store.set(user_path(self.uid), data, merge=True)
        except StoreError as e:
            logger.error("failed to update profile: %s", e)

    # -- rooms ------------------------------------------------------------------

    async def create_room(self, room_name: Optional[str] = None) -> str:
        self._require_signed_in()
        name = get_room_display_name(room_name or get_default_room_name(self.name))
        room_id = ""
        for _ in range(ROOM_CODE_ATTEMPTS):
            candidate = make_room_code(self.rng)
            snap = await self._write("create", self.store.get(room_path(candidate)))
            if not snap.exists:
                room_id = candidate
                break
        if not room_id:
            raise GameError(ERROR_INTERNAL, "Couldn't create a room. Try again.")

        state = engine.create_room(room_id, self.uid, self._self_room_name(room_id), name)
        record = room_to_record(state)
        record["createdAt"] = SERVER_TIMESTAMP
        await self._write("create", self.store.set(room_path(room_id), record))
        await self._update_profile({"rooms": array_union(room_id), "lastRoomId": room_id})
        self._enter_room(room_id)
        logger.info("%s created room %s", self.uid, room_id)
        return room_id

    async def join_room(self, code: str) -> str:
        self._require_signed_in()
        room_id = normalize_room_code(code)
        if not room_id:
            raise GameError(ERROR_INVALID_SELECTION, "Enter a valid room code.")
        snap = await self._write("join", self.store.get(room_path(room_id)))
        if not snap.exists:
            raise GameError(ERROR_ROOM_NOT_FOUND, "Room not found.")

        state = room_from_record(snap.data, room_id=room_id)
        result = engine.join_room(state, self.uid, self._self_room_name(room_id))
        if not result.success:
            raise GameError(result.error_code, result.error_message)
        if result.state is not state:
            players = room_to_record(result.state)["players"]
            await self._write("join", self.store.update(room_path(room_id), {"players": players}))
            await self._log_events(room_id, result.events)

        await self._update_profile({"rooms": array_union(room_id), "lastRoomId": room_id})
        self._enter_room(room_id)
        logger.info("%s joined room %s", self.uid, room_id)
        return room_id

    def _enter_room(self, room_id: str):
        self.leave_room()
        self.room_id = room_id
        self.state = None
        self.hand = []
        self.hand_updated_at = 0.0
        self.hand_generation = None
        self._hand_write_pending = False
        self.log_entries = []
        self.room_synced = False
        self.hand_synced = False
        q = self.events
        self._subscriptions[SUBSCRIPTION_ROOM] = self.store.subscribe(
            room_path(room_id),
            lambda snap: q.put_nowait(RoomUpdated(snap)),
            lambda err: q.put_nowait(SubscriptionFailed(SUBSCRIPTION_ROOM, err)),
        )
        self._subscriptions[SUBSCRIPTION_HAND] = self.store.subscribe(
            hand_path(room_id, self.uid),
            lambda snap: q.put_nowait(HandUpdated(snap)),
            lambda err: q.put_nowait(SubscriptionFailed(SUBSCRIPTION_HAND, err)),
        )
        self._subscriptions[SUBSCRIPTION_LOG] = self.store.subscribe_collection(
            log_path(room_id),
            lambda snap: q.put_nowait(LogUpdated(snap)),
            lambda err: q.put_nowait(SubscriptionFailed(SUBSCRIPTION_LOG, err)),
        )

    def leave_room(self):
        """Stop following the current room without giving up the seat."""
        for unsubscribe in self._subscriptions.values():
            unsubscribe()
        self._subscriptions.clear()
        self.timers.cancel_all()
        self._swap_notice_history.clear()
        self.active_swap_notice = None
        self.room_id = None
        self.state = None
        self.hand = []
        self.hand_updated_at = 0.0
        self.hand_generation = None
        self._hand_write_pending = False
        self.log_entries = []
        self.room_synced = False
        self.hand_synced = False

    async def _remove_seat(self, room_id: str, target_uid: str, actor_uid: Optional[str]) -> bool:
        snap = await self._write("remove", self.store.get(room_path(room_id)))
        if not snap.exists:
            return False
        state = room_from_record(snap.data, room_id=room_id)
        if state.index_of(target_uid) is None:
            return False
        result = engine.remove_player(state, target_uid, actor_uid)
        if not result.success:
            raise GameError(result.error_code, result.error_message)

        record = room_to_record(result.state)
        if state.phase not in (PHASE_SWAP, PHASE_TRICK):
            record = {k: record[k] for k in SEAT_FIELDS}
        # mid-hand a leave can also settle the trick or end the hand
        await self._write("remove", self.store.update(room_path(room_id), record))
        try:
            await self.store.delete(hand_path(room_id, target_uid))
        except StoreError as e:
            logger.warning("failed to delete hand of %s: %s", target_uid, e)
        await self._log_events(room_id, result.events)
        return True

    async def leave_room_permanently(self, room_id: Optional[str] = None):
        """Give up the seat, drop the room from the profile and stop following it."""
        self._require_signed_in()
        code = normalize_room_code(room_id or self.room_id or "")
        if not code:
            raise GameError(ERROR_ROOM_NOT_FOUND, "Join a room first.")
        await self._remove_seat(code, self.uid, None)
        await self._update_profile({"rooms": array_remove(code), "lastRoomId": None})
        if self.room_id == code:
            self.leave_room()
        logger.info("%s left room %s", self.uid, code)

    async def kick_player(self, target_uid: str):
        async with self._lock:
            self.ensure_ready()
            state = self._require_room()
            if not self.is_host:
                raise GameError(ERROR_NOT_HOST, "Only the host can kick players.")
            if target_uid in (self.uid, state.host_uid):
                raise GameError(ERROR_INVALID_SELECTION, "You can't kick that player.")
            await self._remove_seat(self.room_id, target_uid, self.uid)
            logger.info("%s kicked %s from %s", self.uid, target_uid, self.room_id)

    async def make_host(self, target_uid: str):
        async with self._lock:
            self.ensure_ready()
            self._require_room()
            snap = await self._write("make-host", self.store.get(room_path(self.room_id)))
            if not snap.exists:
                raise GameError(ERROR_ROOM_NOT_FOUND, "Room not found.")
            state = room_from_record(snap.data, room_id=self.room_id)
            result = engine.promote_host(state, self.uid, target_uid)
            if not result.success:
                raise GameError(result.error_code, result.error_message)
            await self._write("make-host", self.store.update(room_path(self.room_id), {"hostUid": target_uid}))
            await self._log_events(self.room_id, result.events)

    async def rename_room(self, name: str):
        async with self._lock:
            self.ensure_ready()
            result = engine.rename_room(self._require_room(), self.uid, name)
            if not result.success:
                raise GameError(result.error_code, result.error_message)
            self.state.room_name = result.state.room_name
            await self._write("rename", self.store.update(room_path(self.room_id),
                                                          {"roomName": result.state.room_name}))

    async def set_nickname(self, name: str):
        """Per-room nickname: saved on the profile and applied to the seat."""
        self._require_signed_in()
        clean = normalize_nickname(name)
        if not clean:
            raise GameError(ERROR_INVALID_SELECTION, "Nickname can't be empty.")
        if not self.room_id:
            self.name = clean
            return
        self.room_nicknames[self.room_id] = clean
        await self._update_profile({"roomNicknames": {self.room_id: clean}})
        async with self._lock:
            state = self._require_room()
            result = engine.rename_player(state, self.uid, clean)
            if not result.success:
                raise GameError(result.error_code, result.error_message)
            if result.state is not state:
                self.state = result.state
                self.state.hands = {self.uid: list(self.hand)}
                players = room_to_record(result.state)["players"]
                await self._write("nickname", self.store.update(room_path(self.room_id), {"players": players}))

    async def update_settings(self, **overrides):
        """Apply settings locally now; the write is debounced."""
        async with self._lock:
            state = self._require_room()
            result = engine.update_settings(state, self.uid, overrides)
            if not result.success:
                raise GameError(result.error_code, result.error_message)
            self.state = result.state
            self.timers.schedule("settings", self.settings_debounce, self._flush_settings, scope=SCOPE_ROOM)

    async def _flush_settings(self):
        if not self.room_id or self.state is None:
            return
        try:
            await self._write("settings", self.store.update(room_path(self.room_id),
                                                            {"settings": self.state.settings.to_record()}))
        except ConnectivityError as e:
            self._notify(NOTICE_ERROR, e.message)

    # -- game flow --------------------------------------------------------------

    async def vote_to_start(self):
        async with self._lock:
            state = self._require_room()
            self.ensure_ready()
            result = engine.cast_start_vote(state, self.uid)
            if not result.success:
                raise GameError(result.error_code, result.error_message)
            if result.state is not state:
                self.state = result.state
                self.state.hands = {self.uid: list(self.hand)}
                await self._write("vote-start", self.store.update(
                    room_path(self.room_id), {"startVotes": array_union(self.uid)}))
        await self._maybe_auto_start()

    async def _maybe_auto_start(self):
        state = self.state
        if state is None or state.mode != MODE_MULTI or not self.uid:
            return
        if state.phase not in (PHASE_LOBBY, PHASE_GAME_OVER) or state.host_uid != self.uid:
            return
        if not engine.votes_complete(state):
            return
        try:
            if state.phase == PHASE_GAME_OVER:
                await self.start_new_game()
            else:
                await self.start_game()
        except GameError as e:
            logger.warning("auto-start failed: %s", e)
            self._notify(NOTICE_ERROR, e.message)

    async def start_game(self):
        async with self._lock:
            state = self._require_room()
            self.ensure_ready()
            return await self._commit(engine.start_game(state, self.uid), "start", clear_all_hands=True)

    async def start_new_game(self):
        async with self._lock:
            state = self._require_room()
            self.ensure_ready()
            return await self._commit(engine.start_new_game(state, self.uid), "new-game", clear_all_hands=True)

    async def deal(self, seed: Optional[int] = None):
        """The dealer deals and writes every seat's hand."""
        async with self._lock:
            state = self._require_room()
            self.ensure_ready()
            return await self._commit(engine.deal_hand(state, self.uid, seed), "deal", write_all_hands=True)

    async def swap(self, card_ids: List[str]):
        async with self._lock:
            state = self._require_room()
            self.ensure_ready(require_hand=True)
            result = await self._commit(engine.swap_cards(state, self.uid, card_ids), "swap", write_own_hand=True)
            player = result.state.players[result.info["player_index"]]
            self._announce_swap(result.state.hand_id, self.uid, player.name, result.info["count"])
            return result

    async def fold(self):
        async with self._lock:
            state = self._require_room()
            self.ensure_ready(require_hand=True)
            return await self._commit(engine.fold_player(state, self.uid), "fold", write_own_hand=True)

    async def play(self, card_id: str):
        async with self._lock:
            state = self._require_room()
            self.ensure_ready(require_hand=True)
            return await self._commit(engine.play_card(state, self.uid, card_id), "play", write_own_hand=True)

    async def reset_hand(self):
        async with self._lock:
            state = self._require_room()
            self.ensure_ready()
            return await self._commit(engine.reset_hand(state, self.uid), "reset-hand", clear_all_hands=True)

    async def reset_room(self):
        async with self._lock:
            state = self._require_room()
            self.ensure_ready()
            return await self._commit(engine.reset_room(state, self.uid), "reset-room", clear_all_hands=True)

    # -- chat and profile -------------------------------------------------------

    def _display_name(self) -> str:
        idx = self.self_index
        if idx is not None and idx >= 0:
            return self.state.players[idx].name
        return self.name or "Player"

    async def send_chat(self, message: str) -> Optional[str]:
        self._require_room()
        self.ensure_ready()
        text = (message or "").strip()
        if not text:
            return None
        entry = ChatEntry(message=text[:MAX_CHAT_LENGTH], player_name=self._display_name(), player_uid=self.uid)
        return await self._write("chat", self.store.add(log_path(self.room_id), entry.to_record()))

    async def toggle_chat_like(self, entry_id: str) -> bool:
        """Flip this player's like on a chat entry; returns the new liked value."""
        self._require_room()
        self.ensure_ready()
        index = build_chat_like_index(self.log_entries)
        liked = not index.get(entry_id, {}).get(self.uid, False)
        entry = ChatLikeEntry(
            target_id=entry_id,
            liked=liked,
            player_uid=self.uid,
            player_name=self._display_name(),
            client_created_at=self.clock(),
        )
        await self._write("chat-like", self.store.add(log_path(self.room_id), entry.to_record()))
        return liked

    async def register_push_token(self, token: str):
        self._require_signed_in()
        if token:
            await self._update_profile({"pushTokens": array_union(token)})

    async def ack_turn_if_needed(self) -> bool:
        """Record on the profile that this client has seen its turn."""
        state = self.state
        if state is None or not self.uid or state.mode != MODE_MULTI:
            return False
        if engine.turn_uid(state) != self.uid:
            return False
        key = engine.turn_key(state)
        if key == self.last_turn_ack:
            return False
        try:
            await self.store.set(user_path(self.uid), {
                "lastTurnAck": key,
                "lastTurnAckAt": SERVER_TIMESTAMP,
            }, merge=True)
        except StoreError as e:
            logger.error("failed to ack turn notification: %s", e)
            return False
        self.last_turn_ack = key
        return True
