"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from dreamcut.context import PipelineContext, build_context
from dreamcut.store.base import ProgressStore


def get_context(request: Request) -> PipelineContext:
    """The process-wide pipeline context, built by the app lifespan."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        context = build_context()
        request.app.state.context = context
    return context


ContextDep = Annotated[PipelineContext, Depends(get_context)]


def get_store(context: ContextDep) -> ProgressStore:
    return context.store


StoreDep = Annotated[ProgressStore, Depends(get_store)]
