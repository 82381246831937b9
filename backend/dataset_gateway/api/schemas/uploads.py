"""Upload request/response schemas."""

from __future__ import annotations

from pydantic import BaseModel


class UploadResponse(BaseModel):
    """Download references for the artifacts produced by one upload."""

    smart: str
    finetune: str
    run_id: str


class HealthResponse(BaseModel):
    status: str = "ok"
