"""DreamCut query endpoints: submit, inspect, list and cancel."""

from typing import Any
from uuid import UUID, uuid4

from fastapi import APIRouter, BackgroundTasks, Query, Request, status
from pydantic import BaseModel, Field, field_validator

from dreamcut.api.deps import ContextDep, StoreDep
from dreamcut.context import PipelineContext
from dreamcut.domain.enums import Intent, MediaType, QueryStatus
from dreamcut.domain.models import AssetDescriptor
from dreamcut.logging import get_logger
from dreamcut.presets.profiles import PROFILES
from dreamcut.realtime.base import channel_names
from dreamcut.services.cancellation import CANCELLED_MESSAGE
from dreamcut.services.director import Director
from dreamcut.services.orchestrator import PipelineOrchestrator
from dreamcut.stages.query_analysis import infer_intent

router = APIRouter(prefix="/dreamcut", tags=["DreamCut"])
logger = get_logger(__name__)

BASE_ESTIMATE_SECONDS = 45
PER_ASSET_ESTIMATE_SECONDS = 15


class AssetInput(BaseModel):
    """One media input attached to a query."""

    url: str = Field(..., min_length=1, max_length=2048)
    type: MediaType
    filename: str | None = Field(None, max_length=255)
    description: str | None = Field(None, max_length=2000)
    metadata: dict[str, Any] = Field(default_factory=dict)
    file_size_bytes: int | None = Field(None, ge=0)


class CreateQueryRequest(BaseModel):
    """Request to analyze a creative prompt and its assets."""

    query: str = Field(..., min_length=1, max_length=5000, description="Creative prompt")
    assets: list[AssetInput] = Field(default_factory=list, max_length=20)
    intent: Intent | None = Field(None, description="Declared output type")
    options: dict[str, Any] = Field(default_factory=dict)
    user_id: str = Field(..., min_length=1, max_length=255)

    @field_validator("options")
    @classmethod
    def validate_options(cls, value: dict[str, Any]) -> dict[str, Any]:
        profile = value.get("profile")
        if profile is not None and not isinstance(profile, str):
            raise ValueError("options.profile must be a profile name string")
        script = value.get("generate_script")
        if script is not None and not isinstance(script, bool):
            raise ValueError("options.generate_script must be a boolean")
        return value


class CreateQueryResponse(BaseModel):
    """Response when a query is accepted."""

    success: bool
    query_id: str
    request_id: str
    realtime_channels: dict[str, str]
    estimated_duration_seconds: int


class QuerySnapshotResponse(BaseModel):
    """Full state of a query."""

    query: dict[str, Any]
    assets: list[dict[str, Any]]
    messages: list[dict[str, Any]]


class QueryListResponse(BaseModel):
    """A page of a user's queries."""

    user_id: str
    queries: list[dict[str, Any]]
    limit: int
    offset: int


class CancelResponse(BaseModel):
    """Response after cancelling a query."""

    success: bool
    query_id: str
    status: str


class ProfileResponse(BaseModel):
    """A creative profile summary."""

    name: str
    display_name: str
    description: str
    platforms: list[str]
    pacing: str
    audio_style: str
    priority: int


async def run_pipeline_inline(context: PipelineContext, query_id: UUID) -> None:
    """Background task for the in-process executor."""
    await PipelineOrchestrator(context).run(query_id)


@router.post(
    "/queries",
    response_model=CreateQueryResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a creative query",
    description="Create a query with its assets and start the analysis pipeline.",
)
async def create_query(
    request: CreateQueryRequest,
    context: ContextDep,
    background_tasks: BackgroundTasks,
    http_request: Request,
) -> CreateQueryResponse:
    """Create the query rows and dispatch the pipeline."""
    request_id = getattr(http_request.state, "request_id", None) or uuid4().hex
    options = dict(request.options)
    options["intent_source"] = "user" if request.intent is not None else "inferred"
    intent = request.intent or infer_intent(request.query)

    query_id = context.store.create_query(
        request.user_id,
        request.query,
        intent,
        [
            AssetDescriptor(
                url=a.url,
                type=a.type,
                filename=a.filename,
                description=a.description,
                metadata=dict(a.metadata),
                file_size_bytes=a.file_size_bytes,
            )
            for a in request.assets
        ],
        options,
    )

    if context.settings.pipeline_executor == "celery":
        from dreamcut.jobs.pipeline import run_pipeline_task

        task = run_pipeline_task.delay(str(query_id))
        logger.info("pipeline_enqueued", query_id=str(query_id), task_id=task.id)
    else:
        context.cancellations.register(query_id)
        background_tasks.add_task(run_pipeline_inline, context, query_id)
        logger.info("pipeline_scheduled_inline", query_id=str(query_id))

    logger.info(
        "query_accepted",
        query_id=str(query_id),
        request_id=request_id,
        user_id=request.user_id,
        assets=len(request.assets),
        intent=str(intent),
    )
    return CreateQueryResponse(
        success=True,
        query_id=str(query_id),
        request_id=request_id,
        realtime_channels=channel_names(query_id),
        estimated_duration_seconds=BASE_ESTIMATE_SECONDS
        + PER_ASSET_ESTIMATE_SECONDS * len(request.assets),
    )


@router.get(
    "/queries/{query_id}",
    response_model=QuerySnapshotResponse,
    summary="Get query state",
    description="Current query row, its assets and its messages in creation order.",
)
async def get_query(query_id: UUID, store: StoreDep) -> QuerySnapshotResponse:
    """Fetch a full snapshot; used by clients to resync after reconnecting."""
    snapshot = store.get_query(query_id).to_dict()
    return QuerySnapshotResponse(**snapshot)


@router.get(
    "/users/{user_id}/queries",
    response_model=QueryListResponse,
    summary="List a user's queries",
)
async def list_user_queries(
    user_id: str,
    store: StoreDep,
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    status_filter: QueryStatus | None = Query(default=None, alias="status"),
) -> QueryListResponse:
    """Query history, newest first."""
    records = store.list_user_queries(user_id, limit=limit, offset=offset, status=status_filter)
    return QueryListResponse(
        user_id=user_id,
        queries=[r.to_dict() for r in records],
        limit=limit,
        offset=offset,
    )


@router.post(
    "/queries/{query_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel a running query",
)
async def cancel_query(query_id: UUID, context: ContextDep) -> CancelResponse:
    """Stop a processing query at its next stage boundary.

    The query is failed immediately; a pipeline running in another process
    notices the terminal status at its next checkpoint.
    """
    snapshot = context.store.get_query(query_id)
    local = context.cancellations.cancel(query_id)
    if not snapshot.query.is_terminal:
        Director(context.store, query_id).cancelled()
    record = context.store.fail_query(query_id, CANCELLED_MESSAGE)

    logger.info("query_cancelled", query_id=str(query_id), local=local)
    return CancelResponse(success=True, query_id=str(query_id), status=str(record.status))


@router.get(
    "/profiles",
    response_model=list[ProfileResponse],
    summary="List creative profiles",
)
async def list_profiles() -> list[ProfileResponse]:
    """Creative profiles available to script generation."""
    return [
        ProfileResponse(
            name=p.name,
            display_name=p.display_name,
            description=p.description,
            platforms=list(p.platforms),
            pacing=p.pacing,
            audio_style=p.audio_style,
            priority=p.priority,
        )
        for p in PROFILES.values()
    ]
