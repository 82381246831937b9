"""
Exception handlers: serialize domain errors into HTTP responses.

Routes never catch domain errors themselves; they propagate here.
Bodies are plain text, and step failures include the step's stderr
verbatim.
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import PlainTextResponse

from dataset_gateway.core.logging import get_logger
from dataset_gateway.pipeline.errors import (
    ArtifactNotFoundError,
    PipelineError,
    StepFailure,
    StorageError,
)

logger = get_logger(__name__)


async def step_failure_handler(request: Request, exc: StepFailure) -> PlainTextResponse:
    logger.error(
        "Request failed in pipeline step",
        path=request.url.path,
        run_id=exc.run_id,
        step_name=exc.step_name,
        exit_code=exc.exit_code,
        timed_out=exc.timed_out,
    )
    return PlainTextResponse(exc.to_text(), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def storage_error_handler(request: Request, exc: StorageError) -> PlainTextResponse:
    logger.error("Storage failure", path=request.url.path, error=str(exc))
    return PlainTextResponse(f"Storage error: {exc}", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def not_found_handler(request: Request, exc: ArtifactNotFoundError) -> PlainTextResponse:
    logger.info("Artifact not found", filename=exc.filename)
    return PlainTextResponse(str(exc), status_code=status.HTTP_404_NOT_FOUND)


async def pipeline_error_handler(request: Request, exc: PipelineError) -> PlainTextResponse:
    logger.error("Unhandled pipeline error", path=request.url.path, error=str(exc))
    return PlainTextResponse(str(exc), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain error handlers to ``app``."""
    app.add_exception_handler(StepFailure, step_failure_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(ArtifactNotFoundError, not_found_handler)
    app.add_exception_handler(PipelineError, pipeline_error_handler)
