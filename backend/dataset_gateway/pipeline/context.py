"""
RunContext: the explicit per-run state handed to the pipeline runner.

A run owns one working directory.  Every step reads its input from and
writes its output to that directory, so two runs with different
workdirs never touch each other's artifacts.  The gateway allocates a
fresh workdir per upload unless ISOLATE_RUNS is disabled, in which case
all runs share the storage root (the original fixed-path layout).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


def new_run_id() -> str:
    return uuid.uuid4().hex


# ═══════════════════════════════════════════════════════════
#  StepResult
# ═══════════════════════════════════════════════════════════

@dataclass
class StepResult:
    """Outcome of a single step execution."""

    step_name: str
    index: int
    status: str                     # StepStatus value
    command: list[str] = field(default_factory=list)
    exit_code: int | None = None
    output_path: Path | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    error: str | None = None


# ═══════════════════════════════════════════════════════════
#  RunContext
# ═══════════════════════════════════════════════════════════

@dataclass
class RunContext:
    """Carries the workdir and execution tracking for one pipeline run."""

    workdir: Path
    run_id: str = field(default_factory=new_run_id)

    # ─── Execution tracking ────────────────────────────
    current_step_index: int = 0
    total_steps: int = 0
    step_results: list[StepResult] = field(default_factory=list)

    def output_path(self, name: str) -> Path:
        """Absolute path of an artifact inside this run's workdir."""
        return self.workdir / name
