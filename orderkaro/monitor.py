"""
Connection health monitoring.

The monitor pings the database on a fixed interval and keeps a rolling log
of recent query and ping outcomes for diagnostics. Repeated ping failures
raise a single user-facing notification and pause pinging for a cool-down
period. Nothing here raises to callers or gates real requests. The logs are
appended to from request threads and read under the same lock.
"""
import asyncio
import logging
import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from orderkaro.config import LOCAL_THRESHOLDS, PRODUCTION_THRESHOLDS, Thresholds

logger = logging.getLogger(__name__)

UNSTABLE_CONNECTION_MESSAGE = "Connection to the store is unstable. Some data may be out of date."


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_info(error) -> Optional[Dict[str, Any]]:
    if error is None:
        return None
    return {
        "message": getattr(error, "message", None) or str(error),
        "code": getattr(error, "code", None),
    }


class ConnectionMonitor:
    max_queries = 50
    max_ping_results = 20
    max_consecutive_failures = 3
    error_notification_interval = 300.0  # 5 min between user-facing notifications
    pause_duration = 300.0

    def __init__(
        self,
        ping: Callable[[], Awaitable[Any]],
        notifier=None,
        environment: str = "localhost",
        thresholds: Optional[Thresholds] = None,
        clock: Callable[[], float] = time.monotonic,
        ping_timeout: float = 5.0,
    ):
        self._ping = ping
        self._notifier = notifier
        self.environment = environment
        self.is_localhost = environment != "production"
        if thresholds is None:
            thresholds = LOCAL_THRESHOLDS if self.is_localhost else PRODUCTION_THRESHOLDS
        self.thresholds = thresholds
        self._clock = clock
        self.ping_timeout = ping_timeout

        self._lock = threading.Lock()
        self.queries = deque(maxlen=self.max_queries)
        self.ping_results = deque(maxlen=self.max_ping_results)
        self.consecutive_failures = 0
        self.ping_paused = False
        self.paused_until: Optional[float] = None
        self.last_notification_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

        logger.info("Connection monitor initialized for %s", self.environment)

    # ------------------------------------------------------------------
    # Query log
    # ------------------------------------------------------------------

    def log_query(self, table: str, operation: str, start: float, end: float, success: bool, error=None) -> Dict[str, Any]:
        duration = end - start
        query_info = {
            "table": table,
            "operation": operation,
            "duration": duration,
            "success": success,
            "error": _error_info(error),
            "timestamp": _now_iso(),
            "environment": self.environment,
        }
        with self._lock:
            self.queries.appendleft(query_info)

        if not success:
            logger.error("Query failed: %s.%s (%dms) %s", table, operation, duration * 1000, query_info["error"])
        elif duration > self.thresholds.slow_query:
            logger.warning("Slow query: %s.%s (%dms)", table, operation, duration * 1000)

        return query_info

    # ------------------------------------------------------------------
    # Ping loop
    # ------------------------------------------------------------------

    async def ping_once(self) -> bool:
        start = self._clock()
        success = False
        error = None
        try:
            result = await asyncio.wait_for(self._ping(), timeout=self.ping_timeout)
            success = bool(result)
            if not success:
                error = "Ping reported failure"
        except asyncio.TimeoutError:
            error = f"Ping timed out after {self.ping_timeout}s"
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__

        duration = self._clock() - start
        sample = {
            "timestamp": _now_iso(),
            "duration": duration,
            "success": success,
            "error": error,
            "environment": self.environment,
        }
        with self._lock:
            self.ping_results.appendleft(sample)

        if success:
            self.consecutive_failures = 0
            if duration > self.thresholds.slow_ping:
                logger.warning("Slow database connection: %dms ping time", duration * 1000)
        else:
            self._record_failure(error)
        return success

    def _record_failure(self, error: Optional[str]) -> None:
        self.consecutive_failures += 1
        logger.warning("Database connection check failed: %s", error or "Unknown error")

        if self.consecutive_failures < self.max_consecutive_failures:
            return

        now = self._clock()
        if self.last_notification_at is not None and now - self.last_notification_at < self.error_notification_interval:
            return

        self.last_notification_at = now
        if self._notifier is not None:
            self._notifier.error(UNSTABLE_CONNECTION_MESSAGE)
        self.ping_paused = True
        self.paused_until = now + self.pause_duration
        logger.warning(
            "Pausing connection checks for %ds after %d consecutive failures",
            self.pause_duration, self.consecutive_failures,
        )

    async def tick(self) -> Optional[bool]:
        """Run one scheduled check; returns None when paused."""
        if self.ping_paused:
            if self._clock() < self.paused_until:
                return None
            self.ping_paused = False
            self.paused_until = None
            self.consecutive_failures = 0
            logger.info("Resuming connection checks")
        return await self.ping_once()

    async def _run(self) -> None:
        logger.debug("Started pinging every %ss", self.thresholds.ping_interval)
        while True:
            await self.tick()
            await asyncio.sleep(self.thresholds.ping_interval)

    def start(self) -> None:
        """Start the ping loop on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        query_stats = self.analyze_queries()
        ping_stats = self.analyze_pings()
        return {
            "queries": query_stats,
            "connection": ping_stats,
            "environment": self.environment,
            "ping_paused": self.ping_paused,
            "consecutive_failures": self.consecutive_failures,
            "recommendations": self.generate_recommendations(query_stats, ping_stats),
        }

    def analyze_queries(self) -> Dict[str, Any]:
        with self._lock:
            queries = list(self.queries)
        stats = _summarize(queries)
        stats["slow_queries"] = sum(1 for q in queries if q["duration"] > self.thresholds.slow_query)
        return stats

    def analyze_pings(self) -> Dict[str, Any]:
        with self._lock:
            pings = list(self.ping_results)
        return _summarize(pings)

    def generate_recommendations(self, query_stats: Dict[str, Any], ping_stats: Dict[str, Any]) -> List[str]:
        recommendations = []
        ping_avg = ping_stats["avg_duration_ms"] / 1000
        query_avg = query_stats["avg_duration_ms"] / 1000

        # Connection issues
        if ping_stats["success_rate"] < 100:
            recommendations.append("Network connectivity issues detected. Check your internet connection.")

        if ping_avg > self.thresholds.high_latency:
            if self.is_localhost:
                recommendations.append("High network latency detected even on localhost. Check if the database is under high load.")
            else:
                recommendations.append("High network latency detected. This can cause timeouts with the database.")

        # Query performance
        if query_stats["success_rate"] < 90:
            recommendations.append("High query failure rate. Consider implementing more robust retry logic.")

        if query_stats["slow_queries"] > 5:
            recommendations.append("Multiple slow queries detected. Consider optimizing queries or adding indices.")

        if query_avg > 2.0:
            if self.is_localhost:
                recommendations.append("Slow average query time on localhost. Check for complex queries or database load.")
            else:
                recommendations.append("Slow average query time. Consider implementing more aggressive caching.")

        if self.is_localhost and ping_avg > 0.5:
            recommendations.append("Localhost connection is surprisingly slow. Check for other processes using resources.")

        if not self.is_localhost and ping_avg > 2.0:
            recommendations.append("Production connection is very slow. Hosting tier limits or server load may be affecting performance.")

        return recommendations


def _summarize(samples) -> Dict[str, Any]:
    if not samples:
        return {"count": 0, "avg_duration_ms": 0, "max_duration_ms": 0, "success_rate": 100}

    durations = [s["duration"] for s in samples]
    successes = sum(1 for s in samples if s["success"])
    return {
        "count": len(samples),
        "avg_duration_ms": round(sum(durations) / len(durations) * 1000),
        "max_duration_ms": round(max(durations) * 1000),
        "success_rate": round(successes / len(samples) * 100),
    }
