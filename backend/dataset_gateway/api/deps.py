"""Shared dependencies for API routes."""

from __future__ import annotations

import asyncio

from fastapi import Depends, Request

from dataset_gateway.core.config import Settings, get_settings
from dataset_gateway.pipeline.engine import PipelineRunner
from dataset_gateway.pipeline.flows import build_dataset_flow, build_runner
from dataset_gateway.pipeline.step import PipelineStep
from dataset_gateway.storage.local import ArtifactStorage


def get_storage(settings: Settings = Depends(get_settings)) -> ArtifactStorage:
    """Storage rooted at the configured working directory."""
    return ArtifactStorage(settings.UPLOAD_DIR)


def get_runner(settings: Settings = Depends(get_settings)) -> PipelineRunner:
    return build_runner(settings)


def get_flow(settings: Settings = Depends(get_settings)) -> list[PipelineStep]:
    return build_dataset_flow(settings)


def get_workspace_lock(request: Request) -> asyncio.Lock:
    """Lock serializing uploads that share the root workspace."""
    return request.app.state.workspace_lock
