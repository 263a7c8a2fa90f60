"""
Retry with exponential backoff, and the one-time initializer built on it.
"""
import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryBackoff:
    """Attempt budget and delay schedule: delay(n) = min(base * factor ** n, cap)."""
    max_attempts: int = 3
    base_delay: float = 1.5
    cap_delay: float = 10.0
    factor: float = 1.5

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * self.factor ** attempt, self.cap_delay)

    def delays(self) -> List[float]:
        """Delays slept between attempts, one fewer than max_attempts."""
        return [self.delay(attempt) for attempt in range(self.max_attempts - 1)]


FailureHook = Callable[[int, BaseException, bool], None]


async def with_retry_backoff(
    fn: Callable[[], Any],
    backoff: RetryBackoff,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_failure: Optional[FailureHook] = None,
    retry_if: Optional[Callable[[BaseException], bool]] = None,
) -> Any:
    """
    Call fn (sync or async) until it succeeds or the attempt budget runs out.

    on_failure(attempt, error, will_retry) is called after every failed
    attempt; attempts are numbered from 1. The last error is re-raised.
    """
    for attempt in range(backoff.max_attempts):
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as error:
            will_retry = attempt + 1 < backoff.max_attempts and (retry_if is None or retry_if(error))
            if on_failure is not None:
                on_failure(attempt + 1, error, will_retry)
            if not will_retry:
                raise
            await sleep(backoff.delay(attempt))


def retry_call(
    fn: Callable[[], Any],
    backoff: RetryBackoff,
    *,
    sleep: Callable[[float], None] = time.sleep,
    retry_if: Optional[Callable[[BaseException], bool]] = None,
) -> Any:
    """Blocking counterpart of with_retry_backoff for synchronous callers."""
    for attempt in range(backoff.max_attempts):
        try:
            return fn()
        except Exception as error:
            if attempt + 1 >= backoff.max_attempts or (retry_if is not None and not retry_if(error)):
                raise
            logger.info("Retrying after %s (attempt %d/%d)", error, attempt + 1, backoff.max_attempts)
            sleep(backoff.delay(attempt))


class Initializer:
    """
    One-time setup routine with retry/backoff.

    Holds {initialized, initializing, error}. run() is a no-op while a run is
    in flight or after success. A user-facing notification is raised only for
    the first failed attempt and when the attempts are exhausted, never once
    per retry.
    """

    def __init__(
        self,
        name: str,
        setup: Callable[[], Any],
        backoff: RetryBackoff = RetryBackoff(),
        notifier=None,
        failure_message: str = "Setup failed. Some features may not work correctly.",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.name = name
        self._setup = setup
        self.backoff = backoff
        self._notifier = notifier
        self._failure_message = failure_message
        self._sleep = sleep
        self.initialized = False
        self.initializing = False
        self.error: Optional[BaseException] = None
        self.attempts = 0

    @property
    def state(self) -> Dict[str, Any]:
        return {
            "initialized": self.initialized,
            "initializing": self.initializing,
            "error": str(self.error) if self.error else None,
            "attempts": self.attempts,
        }

    async def run(self) -> bool:
        if self.initializing or self.initialized:
            return self.initialized

        self.initializing = True
        self.error = None
        self.attempts = 0
        try:
            await with_retry_backoff(
                self._setup, self.backoff, sleep=self._sleep, on_failure=self._on_failure
            )
            self.initialized = True
            logger.info("%s initialized", self.name)
        except Exception as error:
            self.error = error
        finally:
            self.initializing = False
        return self.initialized

    def reset(self) -> None:
        """Forget a previous outcome so the next run() starts over."""
        if self.initializing:
            return
        self.initialized = False
        self.error = None
        self.attempts = 0

    def _on_failure(self, attempt: int, error: BaseException, will_retry: bool) -> None:
        self.attempts = attempt
        if will_retry:
            logger.warning("%s failed (attempt %d/%d): %s", self.name, attempt, self.backoff.max_attempts, error)
        else:
            logger.error("%s failed after %d attempts: %s", self.name, attempt, error)

        if self._notifier is not None and (attempt == 1 or not will_retry):
            self._notifier.error(self._failure_message)
