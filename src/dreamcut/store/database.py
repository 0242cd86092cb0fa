"""SQLAlchemy-backed progress store."""

from collections.abc import Callable
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dreamcut.db.models import AssetModel, MessageModel, QueryModel
from dreamcut.db.session import check_connection, get_session_context, make_session_factory
from dreamcut.domain.enums import (
    AssetStatus,
    ChangeTable,
    ChangeType,
    Intent,
    MediaType,
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
)
from dreamcut.errors import DreamCutError, NotFoundError, PersistenceError
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

T = TypeVar("T")


def query_to_record(model: QueryModel) -> QueryRecord:
    return QueryRecord(
        id=model.id,
        user_id=model.user_id,
        user_prompt=model.user_prompt,
        intent=Intent(model.intent),
        options=dict(model.options or {}),
        status=QueryStatus(model.status),
        stage=QueryStage(model.stage),
        progress=model.progress or 0,
        payload=model.payload,
        error_message=model.error_message,
        processing_time_ms=model.processing_time_ms,
        models_used=list(model.models_used or []),
        cost_estimate=model.cost_estimate,
        created_at=model.created_at,
        updated_at=model.updated_at,
        completed_at=model.completed_at,
    )


def asset_to_record(model: AssetModel) -> AssetRecord:
    return AssetRecord(
        id=model.id,
        query_id=model.query_id,
        url=model.url,
        type=MediaType(model.type),
        filename=model.filename,
        user_description=model.user_description,
        file_size_bytes=model.file_size_bytes,
        metadata=dict(model.metadata_ or {}),
        status=AssetStatus(model.status),
        progress=model.progress or 0,
        analysis=model.analysis,
        worker_id=model.worker_id,
        model_used=model.model_used,
        processing_time_ms=model.processing_time_ms,
        error_message=model.error_message,
        quality_score=model.quality_score,
        confidence_score=model.confidence_score,
        created_at=model.created_at,
        updated_at=model.updated_at,
        analyzed_at=model.analyzed_at,
    )


def message_to_record(model: MessageModel) -> MessageRecord:
    return MessageRecord(
        id=model.id,
        query_id=model.query_id,
        type=MessageType(model.type),
        content=model.content,
        emoji=model.emoji,
        asset_id=model.asset_id,
        data=dict(model.data or {}),
        created_at=model.created_at,
    )


def _write_query(model: QueryModel, record: QueryRecord) -> None:
    model.status = str(record.status)
    model.stage = str(record.stage)
    model.progress = record.progress
    model.payload = record.payload
    model.error_message = record.error_message
    model.processing_time_ms = record.processing_time_ms
    model.models_used = list(record.models_used)
    model.cost_estimate = record.cost_estimate
    model.completed_at = record.completed_at


def _write_asset(model: AssetModel, record: AssetRecord) -> None:
    model.status = str(record.status)
    model.progress = record.progress
    model.analysis = record.analysis
    model.worker_id = record.worker_id
    model.model_used = record.model_used
    model.processing_time_ms = record.processing_time_ms
    model.error_message = record.error_message
    model.quality_score = record.quality_score
    model.confidence_score = record.confidence_score
    model.analyzed_at = record.analyzed_at


class DatabaseProgressStore(ProgressStore):
    """Progress store over the dreamcut_* tables.

    Each operation runs in its own transaction; change events are published
    only after the commit succeeds. Rows being mutated are locked with
    SELECT ... FOR UPDATE so concurrent writers to one row serialize.
    """

    def __init__(
        self,
        notifier: Notifier | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        super().__init__(notifier)
        self.session_factory = session_factory or make_session_factory()

    @property
    def name(self) -> str:
        return "database"

    def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        try:
            with get_session_context(self.session_factory) as session:
                return work(session)
        except DreamCutError:
            raise
        except SQLAlchemyError as e:
            logger.error("progress_store_write_failed", operation=operation, error=str(e))
            raise PersistenceError(f"{operation} failed: {e}") from e

    def _locked_query(self, session: Session, query_id: UUID) -> QueryModel:
        model = session.execute(
            select(QueryModel).where(QueryModel.id == query_id).with_for_update()
        ).scalar_one_or_none()
        if model is None:
            raise NotFoundError(f"Query not found: {query_id}")
        return model

    def create_query(
        self,
        user_id: str,
        prompt: str,
        intent: Intent,
        assets: list[AssetDescriptor],
        options: dict[str, Any] | None = None,
    ) -> UUID:
        validate_new_query(prompt, assets)

        def work(session: Session) -> tuple[QueryRecord, list[AssetRecord]]:
            query = QueryModel(
                user_id=user_id,
                user_prompt=prompt,
                intent=str(Intent(intent)),
                options=dict(options or {}),
                status=str(QueryStatus.PROCESSING),
                stage=str(QueryStage.INIT),
                progress=0,
                models_used=[],
            )
            session.add(query)
            session.flush()
            asset_models = [
                AssetModel(
                    query_id=query.id,
                    url=d.url,
                    filename=d.display_name,
                    type=str(d.type),
                    user_description=d.description,
                    file_size_bytes=d.file_size_bytes,
                    metadata_=dict(d.metadata),
                    status=str(AssetStatus.PENDING),
                    progress=0,
                    position=index,
                )
                for index, d in enumerate(assets)
            ]
            session.add_all(asset_models)
            session.flush()
            for m in [query, *asset_models]:
                session.refresh(m)
            return query_to_record(query), [asset_to_record(a) for a in asset_models]

        query, asset_records = self._run("create_query", work)
        logger.info("query_created", query_id=str(query.id), asset_count=len(asset_records))
        self._emit(ChangeTable.QUERIES, ChangeType.INSERT, query.id, query.to_dict())
        for asset in asset_records:
            self._emit(ChangeTable.ASSETS, ChangeType.INSERT, query.id, asset.to_dict())
        return query.id

    def update_query_progress(
        self,
        query_id: UUID,
        progress: int,
        stage: QueryStage | None = None,
    ) -> QueryRecord:
        def work(session: Session) -> tuple[QueryRecord, bool]:
            model = self._locked_query(session, query_id)
            record = query_to_record(model)
            changed = apply_query_progress(record, progress, stage)
            if changed:
                _write_query(model, record)
            return record, changed

        record, changed = self._run("update_query_progress", work)
        if changed:
            self._emit(ChangeTable.QUERIES, ChangeType.UPDATE, query_id, record.to_dict())
        return record

    def update_asset_progress(
        self,
        asset_id: UUID,
        progress: int,
        patch: AssetPatch | None = None,
    ) -> AssetRecord:
        def work(session: Session) -> AssetRecord:
            model = session.execute(
                select(AssetModel).where(AssetModel.id == asset_id).with_for_update()
            ).scalar_one_or_none()
            if model is None:
                raise NotFoundError(f"Asset not found: {asset_id}")
            record = asset_to_record(model)
            apply_asset_patch(record, progress, patch)
            _write_asset(model, record)
            return record

        record = self._run("update_asset_progress", work)
        self._emit(ChangeTable.ASSETS, ChangeType.UPDATE, record.query_id, record.to_dict())
        return record

    def complete_query(
        self,
        query_id: UUID,
        payload: dict[str, Any],
        metrics: QueryMetrics,
    ) -> QueryRecord:
        def work(session: Session) -> QueryRecord:
            model = self._locked_query(session, query_id)
            record = query_to_record(model)
            apply_completion(record, payload, metrics)
            _write_query(model, record)
            return record

        record = self._run("complete_query", work)
        logger.info("query_completed", query_id=str(query_id))
        self._emit(ChangeTable.QUERIES, ChangeType.UPDATE, query_id, record.to_dict())
        return record

    def fail_query(self, query_id: UUID, message: str) -> QueryRecord:
        def work(session: Session) -> QueryRecord:
            model = self._locked_query(session, query_id)
            record = query_to_record(model)
            apply_failure(record, message)
            _write_query(model, record)
            return record

        record = self._run("fail_query", work)
        logger.info("query_failed", query_id=str(query_id), error=message)
        self._emit(ChangeTable.QUERIES, ChangeType.UPDATE, query_id, record.to_dict())
        return record

    def add_message(
        self,
        query_id: UUID,
        type: MessageType,
        content: str,
        emoji: str | None = None,
        asset_id: UUID | None = None,
        data: dict[str, Any] | None = None,
    ) -> MessageRecord:
        def work(session: Session) -> MessageRecord:
            model = MessageModel(
                query_id=query_id,
                type=str(MessageType(type)),
                content=content,
                emoji=emoji,
                asset_id=asset_id,
                data=dict(data or {}),
            )
            session.add(model)
            session.flush()
            session.refresh(model)
            return message_to_record(model)

        record = self._run("add_message", work)
        self._emit(ChangeTable.MESSAGES, ChangeType.INSERT, query_id, record.to_dict())
        return record

    def get_query(self, query_id: UUID) -> QuerySnapshot:
        def work(session: Session) -> QuerySnapshot:
            model = session.get(QueryModel, query_id)
            if model is None:
                raise NotFoundError(f"Query not found: {query_id}")
            assets = session.execute(
                select(AssetModel)
                .where(AssetModel.query_id == query_id)
                .order_by(AssetModel.position)
            ).scalars()
            messages = session.execute(
                select(MessageModel)
                .where(MessageModel.query_id == query_id)
                .order_by(MessageModel.seq)
            ).scalars()
            return QuerySnapshot(
                query=query_to_record(model),
                assets=[asset_to_record(a) for a in assets],
                messages=[message_to_record(m) for m in messages],
            )

        return self._run("get_query", work)

    def get_asset(self, asset_id: UUID) -> AssetRecord:
        def work(session: Session) -> AssetRecord:
            model = session.get(AssetModel, asset_id)
            if model is None:
                raise NotFoundError(f"Asset not found: {asset_id}")
            return asset_to_record(model)

        return self._run("get_asset", work)

    def list_user_queries(
        self,
        user_id: str,
        limit: int = 10,
        offset: int = 0,
        status: QueryStatus | None = None,
    ) -> list[QueryRecord]:
        def work(session: Session) -> list[QueryRecord]:
            stmt = select(QueryModel).where(QueryModel.user_id == user_id)
            if status is not None:
                stmt = stmt.where(QueryModel.status == str(status))
            stmt = stmt.order_by(QueryModel.created_at.desc()).offset(offset).limit(limit)
            return [query_to_record(q) for q in session.execute(stmt).scalars()]

        return self._run("list_user_queries", work)

    def health_check(self) -> bool:
        bind = self.session_factory.kw.get("bind")
        try:
            return check_connection(bind)
        except SQLAlchemyError as e:
            logger.error("database_health_check_failed", error=str(e))
            return False
