"""Artifact download endpoints."""

from __future__ import annotations

import mimetypes
from pathlib import Path

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from dataset_gateway.api.deps import get_storage
from dataset_gateway.storage.local import ArtifactStorage

router = APIRouter(prefix="/download", tags=["Downloads"])


def _attachment(path: Path) -> FileResponse:
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(path, media_type=media_type, filename=path.name)


@router.get("/{filename}")
async def download_artifact(
    filename: str,
    storage: ArtifactStorage = Depends(get_storage),
) -> FileResponse:
    """Download an artifact stored at the root of the working directory."""
    return _attachment(storage.locate(filename))


@router.get("/{run_id}/{filename}")
async def download_run_artifact(
    run_id: str,
    filename: str,
    storage: ArtifactStorage = Depends(get_storage),
) -> FileResponse:
    """Download an artifact produced by one isolated run."""
    return _attachment(storage.locate(f"{run_id}/{filename}"))
