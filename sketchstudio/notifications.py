"""Transient user notifications with auto-dismiss deadlines."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

Clock = Callable[[], float]

NO_TIMEOUT = -1


@dataclass
class Notification:
    id: str
    message: str
    closing: bool = False
    key: Optional[str] = None
    error: bool = False


class NotificationCenter:
    """Keeps the visible notifications and their dismiss timers.

    Timers are plain deadlines checked by :meth:`tick`, which the hosting shell
    calls from its UI loop.  A timer firing for a notification that is already
    closing or gone does nothing.
    """

    def __init__(self, *, timeout: float = 2.0, grace: float = 0.5, clock: Clock = time.monotonic) -> None:
        self.timeout = timeout
        self.grace = grace
        self.clock = clock
        self.items: List[Notification] = []
        self._timers: List[Tuple[float, str, str]] = []
        self._last_id = 0

    # ------------------------------------------------------------------
    def _new_id(self) -> str:
        stamp = time.time_ns()
        if stamp <= self._last_id:
            stamp = self._last_id + 1
        self._last_id = stamp
        return str(stamp)

    def find(self, notification_id: str) -> Optional[Notification]:
        for item in self.items:
            if item.id == notification_id:
                return item
        return None

    @property
    def messages(self) -> List[str]:
        return [item.message for item in self.items if not item.closing]

    # ------------------------------------------------------------------
    def add(
        self,
        message: str,
        *,
        timeout: Optional[float] = None,
        key: Optional[str] = None,
        error: bool = False,
    ) -> Notification:
        if key is not None:
            self.items = [item for item in self.items if item.key != key]
        notification = Notification(id=self._new_id(), message=message, key=key, error=error)
        self.items.append(notification)

        delay = self.timeout if timeout is None else timeout
        if delay != NO_TIMEOUT:
            self._timers.append((self.clock() + delay, notification.id, "close"))
        return notification

    def close(self, notification_id: str, *, now: Optional[float] = None) -> None:
        item = self.find(notification_id)
        if item is None or item.closing:
            return
        item.closing = True
        start = self.clock() if now is None else now
        self._timers.append((start + self.grace, notification_id, "remove"))

    def tick(self, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        due = [timer for timer in self._timers if timer[0] <= now]
        if not due:
            return
        self._timers = [timer for timer in self._timers if timer[0] > now]
        for _, notification_id, action in sorted(due):
            if action == "close":
                self.close(notification_id, now=now)
            else:
                self.items = [item for item in self.items if item.id != notification_id]
        # a close that came due may itself have a zero grace period
        if any(timer[0] <= now for timer in self._timers):
            self.tick(now)

    def clear(self) -> None:
        self.items.clear()
        self._timers.clear()
