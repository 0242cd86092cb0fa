"""Health and readiness probes."""

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from dreamcut import __version__
from dreamcut.api.deps import ContextDep
from dreamcut.logging import get_logger

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    status: str
    version: str
    components: dict[str, str]
    active_pipelines: int


class ReadinessResponse(BaseModel):
    """Result of probing each backend the pipeline writes through."""

    ready: bool
    store: bool
    notifier: bool
    llm: bool


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Reports the configured backends without probing them.",
)
async def health_check(context: ContextDep) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=__version__,
        components={
            "progress_store": context.store.name,
            "notifier": context.notifier.name,
            "pipeline_executor": context.settings.pipeline_executor,
            "llm": context.llm.name,
        },
        active_pipelines=len(context.cancellations),
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Probes the progress store, notifier and model provider; 503 when any is down.",
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
async def readiness_check(context: ContextDep, response: Response) -> ReadinessResponse:
    probes = ReadinessResponse(
        ready=False,
        store=context.store.health_check(),
        notifier=context.notifier.health_check(),
        llm=await context.llm.health_check(),
    )
    probes.ready = probes.store and probes.notifier and probes.llm

    if not probes.ready:
        logger.warning(
            "readiness_check_degraded", store=probes.store, notifier=probes.notifier, llm=probes.llm
        )
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return probes


@router.get("/health/live", summary="Liveness probe")
async def liveness_check() -> dict[str, str]:
    """The process is up and serving requests."""
    return {"status": "alive"}
