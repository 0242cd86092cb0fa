"""Explicit wiring of the store, notifier and model provider.

Built once per process (API app, celery worker, CLI run) and passed to the
orchestrator instead of reaching for module-level clients.
"""

from dataclasses import dataclass, field

from dreamcut.adapters.llm import get_llm_provider
from dreamcut.adapters.llm.base import LLMProvider
from dreamcut.config import Settings, get_settings
from dreamcut.logging import get_logger
from dreamcut.realtime.base import Notifier
from dreamcut.realtime.memory import InMemoryNotifier
from dreamcut.services.cancellation import CancellationRegistry
from dreamcut.store.base import ProgressStore
from dreamcut.store.memory import InMemoryProgressStore

logger = get_logger(__name__)


@dataclass
class PipelineContext:
    """Everything a pipeline run needs."""

    settings: Settings
    store: ProgressStore
    notifier: Notifier
    llm: LLMProvider
    cancellations: CancellationRegistry = field(default_factory=CancellationRegistry)

    def close(self) -> None:
        self.notifier.close()


def build_notifier(settings: Settings) -> Notifier:
    if settings.notifier_backend == "redis":
        from dreamcut.realtime.redis_notifier import RedisNotifier

        return RedisNotifier(settings.redis_url)
    return InMemoryNotifier()


def build_store(settings: Settings, notifier: Notifier) -> ProgressStore:
    if settings.progress_store_backend == "database":
        from dreamcut.store.database import DatabaseProgressStore

        return DatabaseProgressStore(notifier)
    return InMemoryProgressStore(notifier)


def build_context(
    settings: Settings | None = None,
    store: ProgressStore | None = None,
    notifier: Notifier | None = None,
    llm: LLMProvider | None = None,
) -> PipelineContext:
    """Build a context from settings; explicit arguments win."""
    settings = settings or get_settings()
    if store is not None:
        notifier = notifier or store.notifier or build_notifier(settings)
        if store.notifier is None:
            store.notifier = notifier
    else:
        notifier = notifier or build_notifier(settings)
        store = build_store(settings, notifier)
    llm = llm or get_llm_provider(config=settings)

    logger.info(
        "pipeline_context_built",
        store=store.name,
        notifier=notifier.name,
        llm=llm.name,
    )
    return PipelineContext(settings=settings, store=store, notifier=notifier, llm=llm)
