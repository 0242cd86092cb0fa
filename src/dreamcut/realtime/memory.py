"""In-process notifier."""

import threading
from collections import defaultdict
from uuid import UUID

from dreamcut.logging import get_logger
from dreamcut.realtime.base import (
    ChangeEvent,
    ChangeHandler,
    ErrorHandler,
    Notifier,
    Subscription,
)

logger = get_logger(__name__)


class InMemoryNotifier(Notifier):
    """Synchronous fan-out to subscribers living in the same process.

    Events are delivered on the publishing thread, in publish order, so
    per-entity ordering follows the store's write order.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "memory"

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = list(self._subscriptions.get(event.query_id, ()))
        for subscription in targets:
            subscription.deliver(event)

    def subscribe(
        self,
        query_id: UUID | str,
        on_query_update: ChangeHandler | None = None,
        on_asset_update: ChangeHandler | None = None,
        on_new_message: ChangeHandler | None = None,
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        key = str(query_id)
        subscription = Subscription(
            key,
            on_query_update=on_query_update,
            on_asset_update=on_asset_update,
            on_new_message=on_new_message,
            on_error=on_error,
        )

        def release() -> None:
            with self._lock:
                subs = self._subscriptions.get(key, [])
                if subscription in subs:
                    subs.remove(subscription)
                if not subs:
                    self._subscriptions.pop(key, None)

        subscription.bind_release(release)
        with self._lock:
            self._subscriptions[key].append(subscription)

        logger.debug("subscription_opened", query_id=key, notifier=self.name)
        return subscription

    def subscriber_count(self, query_id: UUID | str) -> int:
        with self._lock:
            return len(self._subscriptions.get(str(query_id), ()))
