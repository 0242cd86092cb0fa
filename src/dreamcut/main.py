"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dreamcut import __version__
from dreamcut.api.routes import health, queries
from dreamcut.config import settings
from dreamcut.context import build_context
from dreamcut.errors import DreamCutError, InvalidTransitionError, NotFoundError, ValidationError
from dreamcut.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ERROR_STATUS: dict[type[DreamCutError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("application_starting", version=__version__)

    context = build_context(settings)
    app.state.context = context
    if not context.store.health_check():
        # Don't raise - let health checks report the issue
        logger.error("progress_store_unavailable", store=context.store.name)

    yield

    logger.info("application_shutting_down")
    context.close()


app = FastAPI(
    title="DreamCut",
    description="Realtime creative analysis pipeline for prompts and media assets",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_id(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line of a request, and the response, with one request id."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    request.state.request_id = request_id
    with structlog.contextvars.bound_contextvars(request_id=request_id):
        response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def error_response(status_code: int, error: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "error_code": error_code},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        f"{location}: {message}" if location else message,
        ValidationError.error_code,
    )


@app.exception_handler(DreamCutError)
async def dreamcut_error_handler(request: Request, exc: DreamCutError) -> JSONResponse:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return error_response(status_code, exc.message, exc.error_code)
    logger.error("request_failed", path=request.url.path, error_code=exc.error_code, error=exc.message)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message, "INTERNAL_ERROR")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_crashed", path=request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "INTERNAL_ERROR"
    )


# Register routers
app.include_router(health.router)
app.include_router(queries.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint redirect to docs."""
    return {
        "name": "DreamCut",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dreamcut.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
