"""Redis pub/sub notifier for API and worker running in separate processes."""

import json
import time
from typing import Any
from uuid import UUID

import redis

from dreamcut.logging import get_logger
from dreamcut.realtime.base import (
    ChangeEvent,
    ChangeHandler,
    ErrorHandler,
    Notifier,
    Subscription,
    channel_for,
    channel_names,
)

logger = get_logger(__name__)


class RedisNotifier(Notifier):
    """Publishes change events to per-query Redis channels.

    Each subscription owns a pub/sub connection and a listener thread.
    ``subscribe`` returns once Redis has confirmed every channel, so events
    published afterwards reach the handlers. If confirmation takes longer
    than ``subscribe_timeout`` the subscription is returned anyway and events
    published in that window may be missed. If the connection drops, the
    subscriber's error handler is called and the subscription is closed;
    events published meanwhile are not replayed.
    """

    def __init__(
        self,
        url: str,
        client: redis.Redis | None = None,
        poll_interval: float = 0.01,
        subscribe_timeout: float = 5.0,
    ) -> None:
        self.url = url
        self._client = client or redis.Redis.from_url(url)
        self.poll_interval = poll_interval
        self.subscribe_timeout = subscribe_timeout

    @property
    def name(self) -> str:
        return "redis"

    def publish(self, event: ChangeEvent) -> None:
        channel = channel_for(event)
        receivers = self._client.publish(channel, json.dumps(event.to_dict()))
        logger.debug(
            "change_event_published",
            channel=channel,
            event_type=str(event.event_type),
            receivers=receivers,
        )

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

        def on_message(message: dict[str, Any]) -> None:
            try:
                event = ChangeEvent.from_dict(json.loads(message["data"]))
            except (ValueError, KeyError) as e:
                logger.warning("change_event_decode_failed", query_id=key, error=str(e))
                subscription.report_error(e)
                return
            subscription.deliver(event)

        handlers = {channel: on_message for channel in channel_names(key).values()}
        pubsub = self._client.pubsub()
        pubsub.subscribe(**handlers)
        self._await_confirmations(pubsub, key, len(handlers))

        def on_transport_error(error: Exception, _pubsub: Any, _thread: Any) -> None:
            logger.error("subscription_transport_failed", query_id=key, error=str(error))
            subscription.fail(error)

        thread = pubsub.run_in_thread(
            sleep_time=self.poll_interval,
            daemon=True,
            exception_handler=on_transport_error,
        )

        def release() -> None:
            thread.stop()
            pubsub.close()

        subscription.bind_release(release)
        logger.debug("subscription_opened", query_id=key, notifier=self.name)
        return subscription

    def close(self) -> None:
        self._client.close()

    def health_check(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.error("redis_health_check_failed", error=str(e))
            return False

    def _await_confirmations(self, pubsub: Any, key: str, expected: int) -> None:
        deadline = time.monotonic() + self.subscribe_timeout
        confirmed = 0
        while confirmed < expected:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(
                    "subscription_unconfirmed", query_id=key, confirmed=confirmed, expected=expected
                )
                return
            message = pubsub.get_message(timeout=remaining)
            if message and message.get("type") == "subscribe":
                confirmed += 1
