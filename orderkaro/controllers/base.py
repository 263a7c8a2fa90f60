import logging
from contextlib import contextmanager

from orderkaro.client import DataClient
from orderkaro.errors import ErrorKind, RemoteError
from orderkaro.notifications import NotificationCenter

logger = logging.getLogger(__name__)


class Controller:
    def __init__(self, data: DataClient, notifications: NotificationCenter):
        self._data = data
        self._notifications = notifications

    def notify(self, user_id, message: str, type: str = "success") -> None:
        self._notifications.for_audience(user_id).show(message, type)

    @contextmanager
    def reporting(self, user_id, failure_message: str, context: str):
        """
        Log remote failures and tell the user once; the error still propagates.
        Validation errors are reported inline by the caller instead.
        """
        try:
            yield
        except RemoteError as error:
            if error.kind is not ErrorKind.VALIDATION:
                logger.warning("Error in %s: %s (%s)", context, error.message, error.kind.value)
                self._notifications.for_audience(user_id).error(failure_message)
            raise
