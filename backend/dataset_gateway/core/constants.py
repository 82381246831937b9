"""Shared constants and enums used across the application."""

from enum import StrEnum


class PipelineStatus(StrEnum):
    """Overall status of a pipeline execution."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StepStatus(StrEnum):
    """Status of an individual pipeline step."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


# ─── Upload form ──────────────────────────────────────────
UPLOAD_FIELD_NAME = "files"

# ─── Artifact names (fixed per workspace) ─────────────────
COMBINED_INPUT_NAME = "data.txt"
SMART_OUTPUT_NAME = "memories.jsonl"
FINETUNE_OUTPUT_NAME = "finetune_data.jsonl"

# Appended after every uploaded file when building the combined input
ARTIFACT_SEPARATOR = b"\n\n"

API_PREFIX = "/api"
DOWNLOAD_ROUTE = f"{API_PREFIX}/download"
