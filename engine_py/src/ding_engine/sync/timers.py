"""
Named cancelable timers.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

SCOPE_HAND = "hand"
SCOPE_ROOM = "room"


class TimerRegistry:
    """
    One pending callback per name.

    Scheduling a name that is already pending replaces it, which gives
    debouncing for free. Timers carry a scope so everything tied to a hand
    or a room can be dropped at once.
    """

    def __init__(self):
        self._timers: Dict[str, Tuple[asyncio.Task, str]] = {}

    def schedule(self, name: str, delay: float, callback: Callable[[], Any], scope: str = SCOPE_ROOM):
        self.cancel(name)
        task = asyncio.ensure_future(self._run(name, delay, callback))
        self._timers[name] = (task, scope)
        return task

    async def _run(self, name: str, delay: float, callback: Callable[[], Any]):
        await asyncio.sleep(delay)
        current = self._timers.get(name)
        if current and current[0] is asyncio.current_task():
            del self._timers[name]
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("timer %s failed", name)

    def cancel(self, name: str) -> bool:
        entry = self._timers.pop(name, None)
        if entry is None:
            return False
        entry[0].cancel()
        return True

    def cancel_scope(self, scope: str) -> List[str]:
        names = [name for name, (_task, s) in self._timers.items() if s == scope]
        for name in names:
            self.cancel(name)
        return names

    def cancel_all(self):
        for name in list(self._timers):
            self.cancel(name)

    def active(self, name: str) -> bool:
        return name in self._timers

    @property
    def names(self) -> List[str]:
        return list(self._timers)
