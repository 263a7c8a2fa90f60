"""
Time-based cache for read queries.

Entries are keyed by table name plus the query's filter parameters, so the
same filter set always lands on the same entry regardless of argument order.
There is no size bound: every distinct parameter combination queried within
the expiry window holds an entry until it is read after expiring or cleared.
"""
import json
import threading
import time
from typing import Any, Callable, Dict, Optional


class QueryCache:
    def __init__(self, max_age: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.max_age = max_age
        self._clock = clock

    @staticmethod
    def generate_key(table: str, params: Optional[Dict[str, Any]] = None) -> str:
        """Stable key for a table and its parameters; key order does not matter."""
        params_str = ""
        if params:
            params_str = "&".join(
                f"{key}={json.dumps(value, sort_keys=True, default=str)}"
                for key, value in sorted(params.items())
            )
        return f"{table}:{params_str}"

    def get(self, table: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """Return cached data, or None when missing or expired (expired entries are dropped)."""
        key = self.generate_key(table, params)
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None

            if self._clock() - item["timestamp"] > self.max_age:
                self._entries.pop(key, None)
                return None

            return item["data"]

    def set(self, table: str, params: Optional[Dict[str, Any]], data: Any) -> None:
        key = self.generate_key(table, params)
        with self._lock:
            self._entries[key] = {"data": data, "timestamp": self._clock()}

    def clear(self, table: Optional[str] = None) -> None:
        """Clear one table's entries, or everything when no table is given."""
        with self._lock:
            if table is None:
                self._entries.clear()
                return

            prefix = f"{table}:"
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]

    def stats(self) -> Dict[str, int]:
        with self._lock:
            now = self._clock()
            timestamps = [item["timestamp"] for item in self._entries.values()]
        expired = sum(1 for timestamp in timestamps if now - timestamp > self.max_age)
        return {"total": len(timestamps), "expired": expired, "active": len(timestamps) - expired}

    def __len__(self):
        with self._lock:
            return len(self._entries)
