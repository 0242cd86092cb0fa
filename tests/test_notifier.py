"""Tests for realtime notifiers and subscriptions."""

import json
from unittest.mock import MagicMock

import redis

from dreamcut.domain.enums import ChangeTable, ChangeType, Intent, MessageType
from dreamcut.realtime.base import ChangeEvent, channel_for, channel_names
from dreamcut.realtime.redis_notifier import RedisNotifier


def make_event(query_id: str, table: ChangeTable = ChangeTable.QUERIES) -> ChangeEvent:
    return ChangeEvent(
        table=table,
        event_type=ChangeType.UPDATE,
        query_id=query_id,
        record={"progress": 25},
    )


class TestChannels:
    """Tests for channel naming."""

    def test_channel_names(self) -> None:
        names = channel_names("abc")
        assert names == {
            "query": "dreamcut_queries:abc",
            "assets": "dreamcut_assets:abc",
            "messages": "dreamcut_messages:abc",
        }

    def test_channel_for_event(self) -> None:
        assert channel_for(make_event("abc", ChangeTable.ASSETS)) == "dreamcut_assets:abc"

    def test_event_dict_roundtrip(self) -> None:
        event = make_event("abc", ChangeTable.MESSAGES)
        restored = ChangeEvent.from_dict(json.loads(json.dumps(event.to_dict())))
        assert restored == event


class TestInMemoryNotifier:
    """Tests for the in-process notifier."""

    def test_routes_events_by_table(self, notifier) -> None:
        queries, assets, messages = [], [], []
        notifier.subscribe(
            "q1",
            on_query_update=queries.append,
            on_asset_update=assets.append,
            on_new_message=messages.append,
        )

        notifier.publish(make_event("q1", ChangeTable.QUERIES))
        notifier.publish(make_event("q1", ChangeTable.ASSETS))
        notifier.publish(make_event("q1", ChangeTable.MESSAGES))

        assert len(queries) == 1
        assert len(assets) == 1
        assert len(messages) == 1

    def test_events_scoped_to_query(self, notifier) -> None:
        received: list = []
        notifier.subscribe("q1", on_query_update=received.append)

        notifier.publish(make_event("q2"))

        assert received == []

    def test_every_subscriber_receives(self, notifier) -> None:
        first, second = [], []
        notifier.subscribe("q1", on_query_update=first.append)
        notifier.subscribe("q1", on_query_update=second.append)

        notifier.publish(make_event("q1"))

        assert len(first) == len(second) == 1

    def test_unsubscribe_is_idempotent(self, notifier) -> None:
        received: list = []
        subscription = notifier.subscribe("q1", on_query_update=received.append)
        assert notifier.subscriber_count("q1") == 1

        subscription.unsubscribe()
        subscription.unsubscribe()
        notifier.publish(make_event("q1"))

        assert received == []
        assert notifier.subscriber_count("q1") == 0
        assert subscription.active is False

    def test_handler_error_goes_to_on_error(self, notifier) -> None:
        errors: list[Exception] = []
        delivered: list = []

        def broken(_event: ChangeEvent) -> None:
            raise RuntimeError("render failed")

        notifier.subscribe("q1", on_query_update=broken, on_error=errors.append)
        notifier.subscribe("q1", on_query_update=delivered.append)

        notifier.publish(make_event("q1"))

        assert [str(e) for e in errors] == ["render failed"]
        assert len(delivered) == 1

    def test_fail_reports_and_releases(self, notifier) -> None:
        errors: list[Exception] = []
        subscription = notifier.subscribe("q1", on_error=errors.append)

        subscription.fail(ConnectionError("dropped"))
        subscription.fail(ConnectionError("dropped again"))

        assert len(errors) == 1
        assert notifier.subscriber_count("q1") == 0

    def test_store_mutations_reach_subscribers(self, store, notifier) -> None:
        query_id = store.create_query("user-1", "Make a video", Intent.VIDEO, [])
        updates, messages = [], []
        notifier.subscribe(query_id, on_query_update=updates.append, on_new_message=messages.append)

        store.update_query_progress(query_id, 20)
        store.add_message(query_id, MessageType.STATUS, "Working on it")

        assert updates[0].record["progress"] == 20
        assert messages[0].record["content"] == "Working on it"
        assert messages[0].event_type == ChangeType.INSERT

    def test_late_subscriber_misses_earlier_events(self, store, notifier) -> None:
        query_id = store.create_query("user-1", "Make a video", Intent.VIDEO, [])
        store.update_query_progress(query_id, 20)
        updates: list = []

        notifier.subscribe(query_id, on_query_update=updates.append)
        store.update_query_progress(query_id, 30)

        assert [e.record["progress"] for e in updates] == [30]
        # Resync happens through a snapshot read
        assert store.get_query(query_id).query.progress == 30

    def test_publish_failure_does_not_undo_write(self, store) -> None:
        store.notifier = MagicMock()
        store.notifier.publish.side_effect = ConnectionError("down")

        query_id = store.create_query("user-1", "Make a video", Intent.VIDEO, [])
        store.update_query_progress(query_id, 20)

        assert store.get_query(query_id).query.progress == 20


def redis_client() -> MagicMock:
    """Mocked redis client whose pub/sub confirms every subscription."""
    client = MagicMock()
    client.pubsub.return_value.get_message.return_value = {"type": "subscribe"}
    return client


class TestRedisNotifier:
    """Tests for the Redis notifier against a mocked client."""

    def test_publish_serializes_to_channel(self) -> None:
        client = MagicMock()
        client.publish.return_value = 1
        notifier = RedisNotifier(url="redis://localhost:6379/1", client=client)

        notifier.publish(make_event("q1", ChangeTable.ASSETS))

        channel, body = client.publish.call_args.args
        assert channel == "dreamcut_assets:q1"
        assert json.loads(body)["record"] == {"progress": 25}

    def test_subscribe_listens_on_three_channels(self) -> None:
        client = redis_client()
        pubsub = client.pubsub.return_value
        notifier = RedisNotifier(url="redis://localhost:6379/1", client=client)

        subscription = notifier.subscribe("q1")

        channels = set(pubsub.subscribe.call_args.kwargs)
        assert channels == set(channel_names("q1").values())
        pubsub.run_in_thread.assert_called_once()

        subscription.unsubscribe()
        pubsub.run_in_thread.return_value.stop.assert_called_once()
        pubsub.close.assert_called_once()

    def test_incoming_message_is_delivered(self) -> None:
        client = redis_client()
        pubsub = client.pubsub.return_value
        notifier = RedisNotifier(url="redis://localhost:6379/1", client=client)
        received: list = []
        notifier.subscribe("q1", on_new_message=received.append)

        handlers = pubsub.subscribe.call_args.kwargs
        event = make_event("q1", ChangeTable.MESSAGES)
        handlers["dreamcut_messages:q1"]({"data": json.dumps(event.to_dict())})

        assert received == [event]

    def test_undecodable_message_reports_error(self) -> None:
        client = redis_client()
        pubsub = client.pubsub.return_value
        notifier = RedisNotifier(url="redis://localhost:6379/1", client=client)
        errors: list[Exception] = []
        notifier.subscribe("q1", on_error=errors.append)

        handlers = pubsub.subscribe.call_args.kwargs
        handlers["dreamcut_queries:q1"]({"data": "not json"})

        assert len(errors) == 1

    def test_transport_error_closes_subscription(self) -> None:
        client = redis_client()
        pubsub = client.pubsub.return_value
        notifier = RedisNotifier(url="redis://localhost:6379/1", client=client)
        errors: list[Exception] = []
        subscription = notifier.subscribe("q1", on_error=errors.append)

        exception_handler = pubsub.run_in_thread.call_args.kwargs["exception_handler"]
        exception_handler(ConnectionError("lost"), pubsub, None)

        assert subscription.active is False
        assert len(errors) == 1

    def test_subscribe_waits_for_confirmations(self) -> None:
        client = MagicMock()
        pubsub = client.pubsub.return_value
        order: list[str] = []
        replies = iter([None, {"type": "subscribe"}, {"type": "subscribe"}, {"type": "subscribe"}])

        def get_message(timeout=None):
            order.append("get_message")
            return next(replies)

        pubsub.get_message.side_effect = get_message
        pubsub.run_in_thread.side_effect = lambda **kwargs: order.append("listen")
        notifier = RedisNotifier(url="redis://localhost:6379/1", client=client)

        notifier.subscribe("q1")

        assert order == ["get_message"] * 4 + ["listen"]

    def test_unconfirmed_subscribe_still_returns(self) -> None:
        client = MagicMock()
        pubsub = client.pubsub.return_value
        pubsub.get_message.return_value = None
        notifier = RedisNotifier(
            url="redis://localhost:6379/1", client=client, subscribe_timeout=0.01
        )

        subscription = notifier.subscribe("q1")

        assert subscription.active is True
        pubsub.run_in_thread.assert_called_once()

    def test_client_is_built_from_given_url(self, monkeypatch) -> None:
        from_url = MagicMock()
        monkeypatch.setattr(redis.Redis, "from_url", from_url)

        notifier = RedisNotifier("redis://cache.internal:6379/2")

        from_url.assert_called_once_with("redis://cache.internal:6379/2")
        assert notifier.url == "redis://cache.internal:6379/2"
