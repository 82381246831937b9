"""
The dataset flow: the two external scripts the gateway runs per upload.

    data.txt ──generate_jsonl_smart──▶ memories.jsonl
             ──prepare_finetune_dataset──▶ finetune_data.jsonl

Both scripts are opaque: they take ``--input`` and ``--output`` paths,
exit 0 on success and write diagnostics to stderr otherwise.
"""

from __future__ import annotations

from dataset_gateway.core.config import Settings
from dataset_gateway.core.constants import FINETUNE_OUTPUT_NAME, SMART_OUTPUT_NAME
from dataset_gateway.pipeline.engine import PipelineRunner
from dataset_gateway.pipeline.step import ExternalScriptStep, PipelineStep

SMART_STEP_NAME = "generate_jsonl_smart"
FINETUNE_STEP_NAME = "prepare_finetune_dataset"


def build_dataset_flow(settings: Settings) -> list[PipelineStep]:
    """Build the ordered step list from the configured interpreter and scripts."""
    return [
        ExternalScriptStep(
            name=SMART_STEP_NAME,
            description="Generate smart JSONL memories from combined text",
            program=(settings.PYTHON_PATH, settings.SMART_SCRIPT),
            output_name=SMART_OUTPUT_NAME,
            failure_message="Error generating smart JSONL",
            cwd=settings.SCRIPTS_DIR,
        ),
        ExternalScriptStep(
            name=FINETUNE_STEP_NAME,
            description="Prepare fine-tune dataset from smart JSONL",
            program=(settings.PYTHON_PATH, settings.FINETUNE_SCRIPT),
            output_name=FINETUNE_OUTPUT_NAME,
            failure_message="Error preparing fine-tune JSONL",
            cwd=settings.SCRIPTS_DIR,
        ),
    ]


def build_runner(settings: Settings) -> PipelineRunner:
    """PipelineRunner configured with the step execution settings."""
    return PipelineRunner(
        timeout=settings.STEP_TIMEOUT_SECONDS,
        kill_grace=settings.STEP_KILL_GRACE_SECONDS,
        verify_outputs=settings.VERIFY_STEP_OUTPUTS,
    )
