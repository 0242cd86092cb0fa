"""Process-local progress store."""

import copy
import threading
from typing import Any
from uuid import UUID, uuid4

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
from dreamcut.errors import NotFoundError
from dreamcut.logging import get_logger
from dreamcut.realtime.base import Notifier
from dreamcut.store.base import (
    ProgressStore,
    apply_asset_patch,
    apply_completion,
    apply_failure,
    apply_query_progress,
    validate_new_query,
)

logger = get_logger(__name__)


class InMemoryProgressStore(ProgressStore):
    """Thread-safe dict-backed store. Reads return copies."""

    def __init__(self, notifier: Notifier | None = None) -> None:
        super().__init__(notifier)
        self._lock = threading.RLock()
        self._queries: dict[UUID, QueryRecord] = {}
        self._assets: dict[UUID, AssetRecord] = {}
        self._asset_ids: dict[UUID, list[UUID]] = {}
        self._messages: dict[UUID, list[MessageRecord]] = {}

    @property
    def name(self) -> str:
        return "memory"

    def create_query(
        self,
        user_id: str,
        prompt: str,
        intent: Intent,
        assets: list[AssetDescriptor],
        options: dict[str, Any] | None = None,
    ) -> UUID:
        validate_new_query(prompt, assets)
        now = utcnow()
        query = QueryRecord(
            id=uuid4(),
            user_id=user_id,
            user_prompt=prompt,
            intent=Intent(intent),
            options=dict(options or {}),
            created_at=now,
            updated_at=now,
        )
        asset_records = [
            AssetRecord(
                id=uuid4(),
                query_id=query.id,
                url=d.url,
                type=d.type,
                filename=d.display_name,
                user_description=d.description,
                file_size_bytes=d.file_size_bytes,
                metadata=dict(d.metadata),
                status=AssetStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            for d in assets
        ]

        with self._lock:
            self._queries[query.id] = query
            self._asset_ids[query.id] = [a.id for a in asset_records]
            self._messages[query.id] = []
            for asset in asset_records:
                self._assets[asset.id] = asset
            query_dict = query.to_dict()
            asset_dicts = [a.to_dict() for a in asset_records]

        logger.info("query_created", query_id=str(query.id), asset_count=len(asset_records))
        self._emit(ChangeTable.QUERIES, ChangeType.INSERT, query.id, query_dict)
        for asset_dict in asset_dicts:
            self._emit(ChangeTable.ASSETS, ChangeType.INSERT, query.id, asset_dict)
        return query.id

    def _query(self, query_id: UUID) -> QueryRecord:
        query = self._queries.get(query_id)
        if query is None:
            raise NotFoundError(f"Query not found: {query_id}")
        return query

    def _asset(self, asset_id: UUID) -> AssetRecord:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise NotFoundError(f"Asset not found: {asset_id}")
        return asset

    def update_query_progress(
        self,
        query_id: UUID,
        progress: int,
        stage: QueryStage | None = None,
    ) -> QueryRecord:
        with self._lock:
            query = self._query(query_id)
            changed = apply_query_progress(query, progress, stage)
            snapshot = copy.deepcopy(query)
            # Emit under the lock so per-entity order matches write order
            if changed:
                self._emit(ChangeTable.QUERIES, ChangeType.UPDATE, query_id, snapshot.to_dict())
        return snapshot

    def update_asset_progress(
        self,
        asset_id: UUID,
        progress: int,
        patch: AssetPatch | None = None,
    ) -> AssetRecord:
        with self._lock:
            asset = self._asset(asset_id)
            apply_asset_patch(asset, progress, patch)
            snapshot = copy.deepcopy(asset)
            self._emit(ChangeTable.ASSETS, ChangeType.UPDATE, asset.query_id, snapshot.to_dict())
        return snapshot

    def complete_query(
        self,
        query_id: UUID,
        payload: dict[str, Any],
        metrics: QueryMetrics,
    ) -> QueryRecord:
        with self._lock:
            query = self._query(query_id)
            apply_completion(query, copy.deepcopy(payload), metrics)
            snapshot = copy.deepcopy(query)
            self._emit(ChangeTable.QUERIES, ChangeType.UPDATE, query_id, snapshot.to_dict())
        logger.info("query_completed", query_id=str(query_id))
        return snapshot

    def fail_query(self, query_id: UUID, message: str) -> QueryRecord:
        with self._lock:
            query = self._query(query_id)
            apply_failure(query, message)
            snapshot = copy.deepcopy(query)
            self._emit(ChangeTable.QUERIES, ChangeType.UPDATE, query_id, snapshot.to_dict())
        logger.info("query_failed", query_id=str(query_id), error=message)
        return snapshot

    def add_message(
        self,
        query_id: UUID,
        type: MessageType,
        content: str,
        emoji: str | None = None,
        asset_id: UUID | None = None,
        data: dict[str, Any] | None = None,
    ) -> MessageRecord:
        with self._lock:
            self._query(query_id)
            message = MessageRecord(
                id=uuid4(),
                query_id=query_id,
                type=MessageType(type),
                content=content,
                emoji=emoji,
                asset_id=asset_id,
                data=copy.deepcopy(data or {}),
                created_at=utcnow(),
            )
            self._messages[query_id].append(message)
            snapshot = copy.deepcopy(message)
            self._emit(ChangeTable.MESSAGES, ChangeType.INSERT, query_id, snapshot.to_dict())
        return snapshot

    def get_query(self, query_id: UUID) -> QuerySnapshot:
        with self._lock:
            query = self._query(query_id)
            assets = [self._assets[a] for a in self._asset_ids.get(query_id, [])]
            return QuerySnapshot(
                query=copy.deepcopy(query),
                assets=copy.deepcopy(assets),
                messages=copy.deepcopy(self._messages.get(query_id, [])),
            )

    def get_asset(self, asset_id: UUID) -> AssetRecord:
        with self._lock:
            return copy.deepcopy(self._asset(asset_id))

    def list_user_queries(
        self,
        user_id: str,
        limit: int = 10,
        offset: int = 0,
        status: QueryStatus | None = None,
    ) -> list[QueryRecord]:
        with self._lock:
            matches = [
                q
                for q in self._queries.values()
                if q.user_id == user_id and (status is None or q.status == status)
            ]
            # dict preserves insertion order; newest first
            matches.reverse()
            return copy.deepcopy(matches[offset : offset + limit])
