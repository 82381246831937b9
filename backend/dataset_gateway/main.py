"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dataset_gateway import __version__
from dataset_gateway.api.errors import register_exception_handlers
from dataset_gateway.api.schemas.uploads import HealthResponse
from dataset_gateway.api.v1 import downloads, uploads
from dataset_gateway.core.config import settings
from dataset_gateway.core.constants import API_PREFIX
from dataset_gateway.core.logging import get_logger, setup_logging
from dataset_gateway.storage.local import ArtifactStorage


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging(settings.log_level, json_logs=settings.LOG_JSON)
    logger = get_logger("startup")

    root = ArtifactStorage(settings.UPLOAD_DIR).ensure_root()
    app.state.workspace_lock = asyncio.Lock()

    logger.info(
        "Application starting",
        env=settings.APP_ENV,
        upload_dir=str(root),
        isolate_runs=settings.ISOLATE_RUNS,
        step_timeout=settings.STEP_TIMEOUT_SECONDS,
    )
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="Dataset Gateway API",
    description="Upload text files and turn them into smart and fine-tune JSONL datasets",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(uploads.router, prefix=API_PREFIX)
app.include_router(downloads.router, prefix=API_PREFIX)


@app.get(f"{API_PREFIX}/health", tags=["Health"], response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness probe."""
    return HealthResponse()
