"""Change events, subscriptions and the notifier interface."""

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from dreamcut.domain.enums import ChangeTable, ChangeType
from dreamcut.logging import get_logger

logger = get_logger(__name__)

ChangeHandler = Callable[["ChangeEvent"], None]
ErrorHandler = Callable[[Exception], None]


@dataclass
class ChangeEvent:
    """A committed row mutation in the progress store."""

    table: ChangeTable
    event_type: ChangeType
    query_id: str
    record: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": str(self.table),
            "event_type": str(self.event_type),
            "query_id": self.query_id,
            "record": self.record,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeEvent":
        return cls(
            table=ChangeTable(data["table"]),
            event_type=ChangeType(data["event_type"]),
            query_id=data["query_id"],
            record=data.get("record") or {},
        )


def channel_names(query_id: UUID | str) -> dict[str, str]:
    """Logical channel names for a query, keyed by entity kind."""
    return {
        "query": f"{ChangeTable.QUERIES}:{query_id}",
        "assets": f"{ChangeTable.ASSETS}:{query_id}",
        "messages": f"{ChangeTable.MESSAGES}:{query_id}",
    }


def channel_for(event: ChangeEvent) -> str:
    return f"{event.table}:{event.query_id}"


class Subscription:
    """Handle for one consumer's subscription to a query's three channels."""

    def __init__(
        self,
        query_id: str,
        on_query_update: ChangeHandler | None = None,
        on_asset_update: ChangeHandler | None = None,
        on_new_message: ChangeHandler | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self.query_id = query_id
        self._handlers: dict[ChangeTable, ChangeHandler | None] = {
            ChangeTable.QUERIES: on_query_update,
            ChangeTable.ASSETS: on_asset_update,
            ChangeTable.MESSAGES: on_new_message,
        }
        self._on_error = on_error
        self._release: Callable[[], None] | None = None
        self._lock = threading.Lock()
        self.active = True

    def bind_release(self, release: Callable[[], None]) -> None:
        """Register the transport cleanup run on unsubscribe."""
        self._release = release

    def deliver(self, event: ChangeEvent) -> None:
        """Route an event to the matching handler. Handler errors go to on_error."""
        if not self.active:
            return
        handler = self._handlers.get(event.table)
        if handler is None:
            return
        try:
            handler(event)
        except Exception as e:
            logger.warning(
                "subscription_handler_failed",
                query_id=self.query_id,
                table=str(event.table),
                error=str(e),
            )
            self.report_error(e)

    def report_error(self, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.error("subscription_error_handler_failed", query_id=self.query_id, error=str(e))

    def fail(self, error: Exception) -> None:
        """Transport dropped: report once and release. Missed events are not replayed."""
        if not self.active:
            return
        self.report_error(error)
        self.unsubscribe()

    def unsubscribe(self) -> None:
        """Release all channel resources. Safe to call more than once."""
        with self._lock:
            if not self.active:
                return
            self.active = False
            release, self._release = self._release, None
        if release is not None:
            release()
        logger.debug("subscription_closed", query_id=self.query_id)


class Notifier(ABC):
    """Delivers progress store mutations to subscribed consumers.

    Implementations:
    - InMemoryNotifier: in-process fan-out
    - RedisNotifier: Redis pub/sub for API and worker in separate processes
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Notifier name identifier."""
        ...

    @abstractmethod
    def publish(self, event: ChangeEvent) -> None:
        """Send one change event to the subscribers of its query."""
        ...

    @abstractmethod
    def subscribe(
        self,
        query_id: UUID | str,
        on_query_update: ChangeHandler | None = None,
        on_asset_update: ChangeHandler | None = None,
        on_new_message: ChangeHandler | None = None,
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        """Subscribe to the query, asset and message channels of one query.

        Mutations applied after this call returns are delivered. A transport
        that cannot confirm the subscription in time logs it and returns
        anyway, in which case early events may be missed.
        """
        ...

    def close(self) -> None:
        """Release transport resources."""
        return None

    def health_check(self) -> bool:
        return True
