"""Application services."""

from dreamcut.services.cancellation import CancellationRegistry, CancellationToken
from dreamcut.services.director import Director
from dreamcut.services.orchestrator import PipelineOrchestrator

__all__ = [
    "CancellationRegistry",
    "CancellationToken",
    "Director",
    "PipelineOrchestrator",
]
