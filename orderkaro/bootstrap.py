"""
One-time setup routines: database bootstrap at startup and per-user account
setup after sign-in. Both run through Initializer for retry/backoff.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict

from orderkaro.client import DataClient
from orderkaro.database import init_schema
from orderkaro.notifications import NotificationCenter
from orderkaro.retry import Initializer, RetryBackoff
from orderkaro.seed import seed_sample_data

logger = logging.getLogger(__name__)

DATABASE_BACKOFF = RetryBackoff(max_attempts=3, base_delay=1.5, cap_delay=10.0)
ACCOUNT_BACKOFF = RetryBackoff(max_attempts=3, base_delay=1.0, cap_delay=5.0)


class DatabaseBootstrap:
    """Verify connectivity, create missing tables and load sample data."""

    def __init__(
        self,
        data: DataClient,
        notifier=None,
        seed: bool = False,
        backoff: RetryBackoff = DATABASE_BACKOFF,
        sleep=asyncio.sleep,
    ):
        self._data = data
        self._seed = seed
        self.initializer = Initializer(
            "Database setup",
            lambda: asyncio.to_thread(self.setup),
            backoff=backoff,
            notifier=notifier,
            failure_message="Database setup issue. Some features may not work correctly.",
            sleep=sleep,
        )

    def setup(self) -> None:
        self._data.ping()
        init_schema(self._data.engine)
        if self._seed:
            seed_sample_data(self._data)

    @property
    def state(self) -> Dict[str, Any]:
        return self.initializer.state

    async def run(self) -> bool:
        return await self.initializer.run()

    async def retry(self) -> bool:
        """Explicit re-initialization requested by an operator."""
        logger.info("Retrying database initialization")
        self.initializer.reset()
        return await self.initializer.run()


class AccountSetup:
    """
    Per-user setup run once per process after sign-in.

    Fills a blank display name and repairs users left with more than one
    default address. After a user's attempts are exhausted, further runs are
    refused until the cooldown has passed.
    """

    cooldown = 60.0

    def __init__(
        self,
        data: DataClient,
        notifications: NotificationCenter,
        backoff: RetryBackoff = ACCOUNT_BACKOFF,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
    ):
        self._data = data
        self._notifications = notifications
        self.backoff = backoff
        self._clock = clock
        self._sleep = sleep
        self._initializers: Dict[int, Initializer] = {}
        self._last_run: Dict[int, float] = {}

    def state(self, user_id: int) -> Dict[str, Any]:
        initializer = self._initializers.get(user_id)
        if initializer is None:
            return {"initialized": False, "initializing": False, "error": None, "attempts": 0}
        return initializer.state

    async def run(self, user_id: int) -> bool:
        now = self._clock()
        initializer = self._initializers.get(user_id)
        if initializer is None:
            initializer = Initializer(
                f"Account setup for user {user_id}",
                lambda: asyncio.to_thread(self.setup, user_id),
                backoff=self.backoff,
                notifier=self._notifications.for_audience(user_id),
                failure_message="Error setting up your account. Some features may not work correctly.",
                sleep=self._sleep,
            )
            self._initializers[user_id] = initializer
        elif initializer.error is not None:
            if now - self._last_run[user_id] < self.cooldown:
                logger.warning("Too many account setup attempts for user %s, cooling down", user_id)
                return False
            initializer.reset()

        self._last_run[user_id] = now
        return await initializer.run()

    def setup(self, user_id: int) -> None:
        user = self._data.table("users").eq("id", user_id).single()
        if not user["name"].strip():
            self._data.table("users").eq("id", user_id).update({"name": user["email"].split("@")[0]})

        defaults = (
            self._data.table("addresses")
            .eq("user_id", user_id)
            .eq("is_default", True)
            .order("updated_at", ascending=False)
            .order("id", ascending=False)
            .select()
        )
        if len(defaults) > 1:
            keep = defaults[0]["id"]
            logger.warning("User %s had %d default addresses, keeping %s", user_id, len(defaults), keep)
            (
                self._data.table("addresses")
                .eq("user_id", user_id)
                .eq("is_default", True)
                .neq("id", keep)
                .update({"is_default": False})
            )

    def forget(self, user_id: int) -> None:
        self._initializers.pop(user_id, None)
        self._last_run.pop(user_id, None)
