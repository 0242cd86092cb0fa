"""Domain models - pure Python classes independent of database."""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse
from uuid import UUID

from dreamcut.domain.enums import (
    AssetStatus,
    Intent,
    MediaType,
    MessageType,
    QueryStage,
    QueryStatus,
)


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


def to_jsonable(value: Any) -> Any:
    """Convert ids and timestamps inside nested structures to JSON-friendly values."""
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass
class AssetDescriptor:
    """A user-supplied media input, as received with the request."""

    url: str
    type: MediaType
    filename: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    file_size_bytes: int | None = None

    @property
    def display_name(self) -> str:
        """Filename, falling back to the last path segment of the URL."""
        if self.filename:
            return self.filename
        path = urlparse(self.url).path
        name = path.rstrip("/").rsplit("/", 1)[-1]
        return name or "unknown"


@dataclass
class QueryRecord:
    """One end-to-end user request and its lifecycle state."""

    id: UUID
    user_id: str
    user_prompt: str
    intent: Intent
    options: dict[str, Any] = field(default_factory=dict)
    status: QueryStatus = QueryStatus.PROCESSING
    stage: QueryStage = QueryStage.INIT
    progress: int = 0
    payload: dict[str, Any] | None = None
    error_message: str | None = None
    processing_time_ms: int | None = None
    models_used: list[str] = field(default_factory=list)
    cost_estimate: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (QueryStatus.COMPLETED, QueryStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(asdict(self))


@dataclass
class AssetRecord:
    """One media input belonging to a query, with its analysis state."""

    id: UUID
    query_id: UUID
    url: str
    type: MediaType
    filename: str | None = None
    user_description: str | None = None
    file_size_bytes: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    status: AssetStatus = AssetStatus.PENDING
    progress: int = 0
    analysis: dict[str, Any] | None = None
    worker_id: str | None = None
    model_used: str | None = None
    processing_time_ms: int | None = None
    error_message: str | None = None
    quality_score: float | None = None
    confidence_score: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    analyzed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (AssetStatus.COMPLETED, AssetStatus.FAILED)

    def descriptor(self) -> AssetDescriptor:
        """Rebuild the request-side descriptor for stage input."""
        return AssetDescriptor(
            url=self.url,
            type=self.type,
            filename=self.filename,
            description=self.user_description,
            metadata=dict(self.metadata),
            file_size_bytes=self.file_size_bytes,
        )

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(asdict(self))


@dataclass
class MessageRecord:
    """An append-only narration event for a query."""

    id: UUID
    query_id: UUID
    type: MessageType
    content: str
    emoji: str | None = None
    asset_id: UUID | None = None
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(asdict(self))


@dataclass
class AssetPatch:
    """Fields merged into an asset row by a progress update."""

    status: AssetStatus | None = None
    analysis: dict[str, Any] | None = None
    worker_id: str | None = None
    model_used: str | None = None
    processing_time_ms: int | None = None
    error_message: str | None = None
    quality_score: float | None = None
    confidence_score: float | None = None


@dataclass
class QueryMetrics:
    """Aggregate metrics stored when a query completes."""

    processing_time_ms: int
    models_used: list[str] = field(default_factory=list)
    cost_estimate: float = 0.0


@dataclass
class QuerySnapshot:
    """Point-in-time view of a query with its assets and messages."""

    query: QueryRecord
    assets: list[AssetRecord] = field(default_factory=list)
    messages: list[MessageRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query.to_dict(),
            "assets": [a.to_dict() for a in self.assets],
            "messages": [m.to_dict() for m in self.messages],
        }
