"""
Upload endpoint: upload → combine → two-step pipeline → download references.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, File, UploadFile

from dataset_gateway.api.deps import (
    get_flow,
    get_runner,
    get_storage,
    get_workspace_lock,
)
from dataset_gateway.api.schemas.uploads import UploadResponse
from dataset_gateway.core.config import Settings, get_settings
from dataset_gateway.core.constants import DOWNLOAD_ROUTE, UPLOAD_FIELD_NAME
from dataset_gateway.core.logging import get_logger
from dataset_gateway.pipeline.context import RunContext, new_run_id
from dataset_gateway.pipeline.engine import PipelineRunner
from dataset_gateway.pipeline.flows import FINETUNE_STEP_NAME, SMART_STEP_NAME
from dataset_gateway.pipeline.step import PipelineStep
from dataset_gateway.storage.local import ArtifactStorage

logger = get_logger(__name__)

router = APIRouter(tags=["Uploads"])


async def _process_upload(
    files: list[UploadFile],
    *,
    storage: ArtifactStorage,
    runner: PipelineRunner,
    flow: list[PipelineStep],
    isolate: bool,
) -> UploadResponse:
    run_id = new_run_id()
    workspace = storage.allocate_workspace(run_id if isolate else None)
    ctx = RunContext(workdir=workspace, run_id=run_id)
    log = logger.bind(run_id=run_id, workspace=str(workspace))

    # ── Persist every part before touching the pipeline ──
    saved = []
    for upload in files:
        saved.append(
            await storage.save_upload(upload.filename, await upload.read(), workspace=workspace)
        )
    log.info(
        "Upload received",
        files=[u.original_name for u in saved],
        total_bytes=sum(u.size for u in saved),
    )

    combined = await storage.combine([u.stored_path for u in saved], workspace=workspace)

    # ── Run the flow; failures surface via exception handlers ──
    result = await runner.run(flow, combined, ctx)
    result.raise_for_status()

    by_step = {
        step.name: output for step, output in zip(flow, result.outputs)
    }
    return UploadResponse(
        smart=f"{DOWNLOAD_ROUTE}/{storage.download_name(by_step[SMART_STEP_NAME])}",
        finetune=f"{DOWNLOAD_ROUTE}/{storage.download_name(by_step[FINETUNE_STEP_NAME])}",
        run_id=run_id,
    )


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    files: list[UploadFile] = File(..., alias=UPLOAD_FIELD_NAME),
    settings: Settings = Depends(get_settings),
    storage: ArtifactStorage = Depends(get_storage),
    runner: PipelineRunner = Depends(get_runner),
    flow: list[PipelineStep] = Depends(get_flow),
    workspace_lock: asyncio.Lock = Depends(get_workspace_lock),
) -> UploadResponse:
    """
    Accept one or more files, run the dataset flow over them and return
    download references for the smart and fine-tune JSONL artifacts.

    With ISOLATE_RUNS=false all uploads share fixed paths in the root
    workspace, so they are processed one at a time.
    """
    if settings.ISOLATE_RUNS:
        return await _process_upload(
            files, storage=storage, runner=runner, flow=flow, isolate=True,
        )

    async with workspace_lock:
        return await _process_upload(
            files, storage=storage, runner=runner, flow=flow, isolate=False,
        )
