"""Celery job definitions."""

from dreamcut.jobs.pipeline import run_pipeline_task, smoke_test_task

__all__ = [
    "run_pipeline_task",
    "smoke_test_task",
]
