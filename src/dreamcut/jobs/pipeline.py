"""Celery tasks for running DreamCut pipelines in the worker."""

from functools import lru_cache
from typing import Any
from uuid import UUID

from dreamcut.adapters.llm.stub import StubLLMProvider
from dreamcut.config import settings
from dreamcut.context import PipelineContext, build_context
from dreamcut.domain.enums import Intent, MediaType
from dreamcut.domain.models import AssetDescriptor
from dreamcut.logging import get_logger
from dreamcut.realtime.memory import InMemoryNotifier
from dreamcut.services.orchestrator import PipelineOrchestrator
from dreamcut.store.memory import InMemoryProgressStore
from dreamcut.utils import run_async
from dreamcut.worker import celery_app

logger = get_logger(__name__)


@lru_cache
def get_worker_context() -> PipelineContext:
    """Context shared by every task in this worker process."""
    return build_context(settings)


@celery_app.task(bind=True, name="dreamcut.run_pipeline")
def run_pipeline_task(self: Any, query_id: str) -> dict[str, Any]:
    """Run the full pipeline for a query created by the API.

    Args:
        query_id: UUID of the query to process

    Returns:
        Dict with the terminal status of the query
    """
    task_id = self.request.id
    logger.info("run_pipeline_started", task_id=task_id, query_id=query_id)

    orchestrator = PipelineOrchestrator(get_worker_context())
    record = run_async(orchestrator.run(UUID(query_id)))

    result = {
        "query_id": query_id,
        "status": str(record.status),
        "progress": record.progress,
        "error_message": record.error_message,
    }
    logger.info("run_pipeline_finished", task_id=task_id, **result)
    return result


@celery_app.task(bind=True, name="dreamcut.smoke_test")
def smoke_test_task(self: Any) -> dict[str, Any]:
    """Smoke test task to verify the job queue is working.

    Runs a two-asset pipeline against the stub model and an in-memory store.
    """
    task_id = self.request.id
    logger.info("smoke_test_started", task_id=task_id)

    notifier = InMemoryNotifier()
    context = build_context(
        settings,
        store=InMemoryProgressStore(notifier),
        notifier=notifier,
        llm=StubLLMProvider(),
    )
    query_id = context.store.create_query(
        "smoke-test",
        "Create a short cinematic video about a mountain sunrise",
        Intent.VIDEO,
        [
            AssetDescriptor(url="https://example.com/sunrise.jpg", type=MediaType.IMAGE),
            AssetDescriptor(url="https://example.com/ambient.mp3", type=MediaType.AUDIO),
        ],
    )
    try:
        record = run_async(PipelineOrchestrator(context).run(query_id))
    except Exception as e:
        logger.error("smoke_test_failed", task_id=task_id, error=str(e))
        raise

    result = {
        "success": record.error_message is None,
        "task_id": task_id,
        "query_id": str(query_id),
        "status": str(record.status),
    }
    logger.info("smoke_test_completed", **result)
    return result
