"""
De-duplicating, rate-limited notifications.

A ToastManager suppresses an identical (message, type) pair shown within the
type's debounce window and caps how many notifications of each type are
active at once, force-dismissing the oldest when the cap would be exceeded.
Notifications without an explicit duration expire after their type's default
lifetime; loading notifications stay until dismissed.
The NotificationCenter keeps one manager per audience (a user id, or
"system" for service-wide messages).

Request handlers run on a thread pool, so every manager guards its state
with a lock.
"""
import itertools
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

DEBOUNCE_WINDOWS = {"success": 1.5, "error": 2.5, "loading": 3.0, "default": 1.5}
MAX_ACTIVE = {"success": 3, "error": 2, "loading": 1, "default": 3}
DEFAULT_DURATIONS = {"success": 2.0, "error": 4.0, "loading": None, "default": 4.0}
ERROR_DURATION = DEFAULT_DURATIONS["error"]

SYSTEM_AUDIENCE = "system"


@dataclass
class Notification:
    id: str
    message: str
    type: str
    created_at: float
    expires_at: Optional[float] = None

    def to_dict(self):
        return {"id": self.id, "message": self.message, "type": self.type}


class ToastManager:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._active: "OrderedDict[str, Notification]" = OrderedDict()
        self._recent: Dict[str, float] = {}
        self._ids = itertools.count(1)

    def show(self, message: str, type: str = "default", duration: Optional[float] = None) -> Optional[str]:
        """Show a notification; returns its id, or None if it was a duplicate."""
        if type not in DEBOUNCE_WINDOWS:
            type = "default"
        if duration is None:
            duration = DEFAULT_DURATIONS[type]

        with self._lock:
            now = self._clock()
            self._expire(now)

            key = f"{message}-{type}"
            if key in self._recent:
                return None
            self._recent[key] = now + DEBOUNCE_WINDOWS[type]

            same_type = [n.id for n in self._active.values() if n.type == type]
            while len(same_type) >= MAX_ACTIVE[type]:
                del self._active[same_type.pop(0)]

            notification = Notification(
                id=f"toast-{next(self._ids)}",
                message=message,
                type=type,
                created_at=now,
                expires_at=now + duration if duration is not None else None,
            )
            self._active[notification.id] = notification
            return notification.id

    def success(self, message: str, duration: Optional[float] = None) -> Optional[str]:
        return self.show(message, "success", duration)

    def error(self, message: str, duration: Optional[float] = None) -> Optional[str]:
        return self.show(message, "error", duration)

    def loading(self, message: str, duration: Optional[float] = None) -> Optional[str]:
        return self.show(message, "loading", duration)

    def dismiss(self, notification_id: Optional[str]) -> None:
        if notification_id:
            with self._lock:
                self._active.pop(notification_id, None)

    def dismiss_errors(self) -> None:
        with self._lock:
            for notification_id in [n.id for n in self._active.values() if n.type == "error"]:
                del self._active[notification_id]
            for key in [k for k in self._recent if k.endswith("-error")]:
                del self._recent[key]

    def dismiss_all(self) -> None:
        with self._lock:
            self._active.clear()
            self._recent.clear()

    def active(self, type: Optional[str] = None) -> List[Notification]:
        with self._lock:
            self._expire(self._clock())
            return [n for n in self._active.values() if type is None or n.type == type]

    def _expire(self, now: float) -> None:
        # caller holds the lock
        for key in [k for k, until in self._recent.items() if now >= until]:
            del self._recent[key]
        for notification_id in [
            n.id for n in self._active.values() if n.expires_at is not None and now >= n.expires_at
        ]:
            del self._active[notification_id]


class NotificationCenter:
    """One ToastManager per audience."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._managers: Dict[str, ToastManager] = {}

    def for_audience(self, audience) -> ToastManager:
        key = str(audience)
        with self._lock:
            manager = self._managers.get(key)
            if manager is None:
                manager = ToastManager(clock=self._clock)
                self._managers[key] = manager
            return manager

    @property
    def system(self) -> ToastManager:
        return self.for_audience(SYSTEM_AUDIENCE)

    def discard(self, audience) -> None:
        with self._lock:
            self._managers.pop(str(audience), None)
