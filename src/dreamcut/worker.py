"""Celery app that runs DreamCut pipelines off the API process."""

from celery import Celery

from dreamcut.config import Settings, settings
from dreamcut.logging import setup_logging

setup_logging(role="worker")

PIPELINE_QUEUE = "high"
DEFAULT_QUEUE = "default"


def pipeline_time_limit(config: Settings) -> int:
    """Hard limit for one pipeline task: every stage timing out on every attempt."""
    per_attempt = (
        config.query_analysis_timeout_seconds
        + config.asset_analysis_timeout_seconds
        + config.synthesis_timeout_seconds
        + config.script_generation_timeout_seconds
    )
    retry_waits = config.stage_retry_backoff_max_seconds * config.stage_retry_attempts
    return int(per_attempt * config.stage_retry_attempts + retry_waits) + 60


celery_app = Celery(
    "dreamcut",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

_time_limit = pipeline_time_limit(settings)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # A pipeline that dies with its worker is redelivered; the orchestrator
    # returns early for terminal queries and keeps already settled assets
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=_time_limit,
    task_soft_time_limit=_time_limit - 30,
    worker_prefetch_multiplier=1,
    result_expires=86400,
    task_default_queue=DEFAULT_QUEUE,
    task_routes={
        "dreamcut.run_pipeline": {"queue": PIPELINE_QUEUE},
        "dreamcut.smoke_test": {"queue": DEFAULT_QUEUE},
    },
)

celery_app.autodiscover_tasks(["dreamcut.jobs"])
