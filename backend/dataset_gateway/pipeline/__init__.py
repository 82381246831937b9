"""
Pipeline Runner: sequential orchestration of external transformation steps.

Each step is an out-of-process program that reads one file and writes
another.  Steps run strictly in order inside one run workdir and the
run stops at the first non-zero exit.
"""

from dataset_gateway.pipeline.context import RunContext, StepResult
from dataset_gateway.pipeline.engine import PipelineResult, PipelineRunner
from dataset_gateway.pipeline.errors import StepFailure
from dataset_gateway.pipeline.step import ExternalScriptStep, PipelineStep

__all__ = [
    "PipelineRunner",
    "PipelineResult",
    "RunContext",
    "StepResult",
    "PipelineStep",
    "ExternalScriptStep",
    "StepFailure",
]
