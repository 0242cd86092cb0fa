"""Progress store interface and the transition rules every backend enforces."""

from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

from dreamcut.domain.enums import (
    AssetStatus,
    ChangeTable,
    ChangeType,
    Intent,
    MessageType,
    QueryStage,
    QueryStatus,
)
from dreamcut.domain.models import (
    AssetDescriptor,
    AssetPatch,
    AssetRecord,
    MessageRecord,
    QueryMetrics,
    QueryRecord,
    QuerySnapshot,
    utcnow,
)
from dreamcut.errors import InvalidTransitionError, ValidationError
from dreamcut.logging import get_logger
from dreamcut.realtime.base import ChangeEvent, Notifier

logger = get_logger(__name__)

STAGE_ORDER = [QueryStage.INIT, QueryStage.ANALYZING, QueryStage.MERGING, QueryStage.DONE]
MAX_ASSETS_PER_QUERY = 20


def _check_progress(progress: int) -> int:
    if not 0 <= progress <= 100:
        raise ValidationError(f"Progress must be within 0-100, got {progress}")
    return int(progress)


def apply_query_progress(query: QueryRecord, progress: int, stage: QueryStage | None) -> bool:
    """Advance progress/stage in place. Lower values are ignored.

    Returns:
        True if the record changed
    """
    if query.is_terminal:
        raise InvalidTransitionError(
            f"Query {query.id} is {query.status}; progress updates are rejected"
        )
    progress = _check_progress(progress)
    changed = False
    if progress > query.progress:
        query.progress = progress
        changed = True
    if stage is not None and STAGE_ORDER.index(stage) > STAGE_ORDER.index(query.stage):
        query.stage = stage
        changed = True
    if changed:
        query.updated_at = utcnow()
    return changed


def apply_asset_patch(asset: AssetRecord, progress: int, patch: AssetPatch | None) -> None:
    """Merge a progress update into an asset in place."""
    if asset.is_terminal:
        raise InvalidTransitionError(
            f"Asset {asset.id} is {asset.status}; further updates are rejected"
        )
    progress = _check_progress(progress)
    patch = patch or AssetPatch()

    if patch.status is not None:
        if patch.status == AssetStatus.PENDING and asset.status != AssetStatus.PENDING:
            raise InvalidTransitionError(f"Asset {asset.id} cannot return to pending")
        asset.status = patch.status
    asset.progress = max(asset.progress, progress)

    for name in (
        "analysis",
        "worker_id",
        "model_used",
        "processing_time_ms",
        "error_message",
        "quality_score",
        "confidence_score",
    ):
        value = getattr(patch, name)
        if value is not None:
            setattr(asset, name, value)

    now = utcnow()
    asset.updated_at = now
    if asset.status == AssetStatus.COMPLETED:
        asset.progress = 100
        asset.analyzed_at = now


def apply_completion(query: QueryRecord, payload: dict[str, Any], metrics: QueryMetrics) -> None:
    if query.status != QueryStatus.PROCESSING:
        raise InvalidTransitionError(f"Query {query.id} is {query.status}; cannot complete")
    now = utcnow()
    query.status = QueryStatus.COMPLETED
    query.stage = QueryStage.DONE
    query.progress = 100
    query.payload = payload
    query.error_message = None
    query.processing_time_ms = metrics.processing_time_ms
    query.models_used = list(metrics.models_used)
    query.cost_estimate = metrics.cost_estimate
    query.updated_at = now
    query.completed_at = now


def apply_failure(query: QueryRecord, message: str) -> None:
    if query.status != QueryStatus.PROCESSING:
        raise InvalidTransitionError(f"Query {query.id} is {query.status}; cannot fail")
    now = utcnow()
    query.status = QueryStatus.FAILED
    query.payload = None
    query.error_message = message or "Unknown error"
    query.updated_at = now
    query.completed_at = now


def validate_new_query(prompt: str, assets: list[AssetDescriptor]) -> None:
    if not prompt or not prompt.strip():
        raise ValidationError("Query prompt must not be empty")
    if len(prompt) > 5000:
        raise ValidationError("Query prompt must be at most 5000 characters")
    if len(assets) > MAX_ASSETS_PER_QUERY:
        raise ValidationError(f"At most {MAX_ASSETS_PER_QUERY} assets are allowed per query")


class ProgressStore(ABC):
    """Durable state for queries, assets and messages.

    Every committed mutation is published as a ChangeEvent to the attached
    notifier. The store does not track who is subscribed.

    Implementations:
    - DatabaseProgressStore: SQLAlchemy/PostgreSQL
    - InMemoryProgressStore: process-local, for tests and the CLI
    """

    def __init__(self, notifier: Notifier | None = None) -> None:
        self.notifier = notifier

    @property
    @abstractmethod
    def name(self) -> str:
        """Store name identifier."""
        ...

    @abstractmethod
    def create_query(
        self,
        user_id: str,
        prompt: str,
        intent: Intent,
        assets: list[AssetDescriptor],
        options: dict[str, Any] | None = None,
    ) -> UUID:
        """Atomically create a query row and one pending asset row per descriptor.

        Raises:
            ValidationError: If the prompt or asset list is out of bounds
            PersistenceError: If the write is rejected; nothing is visible to readers
        """
        ...

    @abstractmethod
    def update_query_progress(
        self,
        query_id: UUID,
        progress: int,
        stage: QueryStage | None = None,
    ) -> QueryRecord:
        """Raise the query's progress and/or advance its stage while processing."""
        ...

    @abstractmethod
    def update_asset_progress(
        self,
        asset_id: UUID,
        progress: int,
        patch: AssetPatch | None = None,
    ) -> AssetRecord:
        """Merge status/analysis/model fields into an asset and set its progress.

        Raises:
            InvalidTransitionError: If the asset is already completed or failed
        """
        ...

    @abstractmethod
    def complete_query(
        self,
        query_id: UUID,
        payload: dict[str, Any],
        metrics: QueryMetrics,
    ) -> QueryRecord:
        """Mark a processing query completed with its payload and metrics."""
        ...

    @abstractmethod
    def fail_query(self, query_id: UUID, message: str) -> QueryRecord:
        """Mark a processing query failed with a human-readable message."""
        ...

    @abstractmethod
    def add_message(
        self,
        query_id: UUID,
        type: MessageType,
        content: str,
        emoji: str | None = None,
        asset_id: UUID | None = None,
        data: dict[str, Any] | None = None,
    ) -> MessageRecord:
        """Append a narration message. Write failures are raised, never swallowed."""
        ...

    @abstractmethod
    def get_query(self, query_id: UUID) -> QuerySnapshot:
        """Full state of a query, assets and messages in creation order.

        Raises:
            NotFoundError: If the query does not exist
        """
        ...

    @abstractmethod
    def get_asset(self, asset_id: UUID) -> AssetRecord:
        """Single asset row."""
        ...

    @abstractmethod
    def list_user_queries(
        self,
        user_id: str,
        limit: int = 10,
        offset: int = 0,
        status: QueryStatus | None = None,
    ) -> list[QueryRecord]:
        """A user's queries, newest first."""
        ...

    def health_check(self) -> bool:
        return True

    def _emit(
        self,
        table: ChangeTable,
        event_type: ChangeType,
        query_id: UUID,
        record: dict[str, Any],
    ) -> None:
        if self.notifier is None:
            return
        event = ChangeEvent(
            table=table, event_type=event_type, query_id=str(query_id), record=record
        )
        try:
            self.notifier.publish(event)
        except Exception as e:
            # The row is committed; subscribers recover through get_query
            logger.error(
                "change_event_publish_failed",
                query_id=str(query_id),
                table=str(table),
                error=str(e),
            )
