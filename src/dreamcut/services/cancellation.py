"""Cooperative cancellation for running pipelines."""

import threading
from uuid import UUID

from dreamcut.errors import PipelineCancelledError

CANCELLED_MESSAGE = "Cancelled"


class CancellationToken:
    """Set once; checked by the orchestrator at every stage boundary."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = CANCELLED_MESSAGE

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = CANCELLED_MESSAGE) -> None:
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self, stage: str | None = None) -> None:
        if self._event.is_set():
            raise PipelineCancelledError(self.reason, stage=stage)


class CancellationRegistry:
    """Tokens for pipelines running in this process, keyed by query id."""

    def __init__(self) -> None:
        self._tokens: dict[UUID, CancellationToken] = {}
        self._lock = threading.Lock()

    def register(self, query_id: UUID) -> CancellationToken:
        with self._lock:
            token = self._tokens.get(query_id)
            if token is None:
                token = CancellationToken()
                self._tokens[query_id] = token
            return token

    def cancel(self, query_id: UUID, reason: str = CANCELLED_MESSAGE) -> bool:
        """Cancel a local pipeline. Returns False if none is running here."""
        with self._lock:
            token = self._tokens.get(query_id)
        if token is None:
            return False
        token.cancel(reason)
        return True

    def release(self, query_id: UUID) -> None:
        with self._lock:
            self._tokens.pop(query_id, None)

    def __contains__(self, query_id: UUID) -> bool:
        with self._lock:
            return query_id in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
