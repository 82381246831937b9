"""
PipelineRunner: the orchestrator that runs external steps sequentially.

Responsibilities:
    - Chain steps by file path: step N's output is step N+1's input
    - Spawn each step's process and await it without blocking the loop
    - Stop at the first failure (no retry, no cleanup of earlier outputs)
    - Optionally verify that a successful step actually wrote its output
    - Return a complete PipelineResult
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import structlog

from dataset_gateway.core.constants import PipelineStatus, StepStatus
from dataset_gateway.pipeline.context import RunContext, StepResult
from dataset_gateway.pipeline.errors import (
    MissingOutputError,
    StepFailure,
    StepTimeoutError,
)
from dataset_gateway.pipeline.process import ProcessRunner, run_process
from dataset_gateway.pipeline.step import PipelineStep


@dataclass
class PipelineResult:
    """Final outcome of a pipeline execution."""

    run_id: str
    status: str                     # PipelineStatus value
    outputs: list[Path] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_duration_ms: int = 0
    steps_completed: int = 0
    total_steps: int = 0
    step_results: list[StepResult] = field(default_factory=list)
    error: StepFailure | None = None

    @property
    def ok(self) -> bool:
        return self.status == PipelineStatus.COMPLETED

    @property
    def final_output(self) -> Path | None:
        return self.outputs[-1] if self.outputs else None

    def raise_for_status(self) -> None:
        """Raise the captured StepFailure, if any."""
        if self.error is not None:
            raise self.error


class PipelineRunner:
    """
    Runs an ordered list of PipelineStep objects over one RunContext.

    Usage::

        runner = PipelineRunner(timeout=600)
        result = await runner.run(steps, workdir / "data.txt")
        result.raise_for_status()
        print(result.final_output)
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        kill_grace: float = 5.0,
        verify_outputs: bool = False,
        process_runner: ProcessRunner = run_process,
    ) -> None:
        self.timeout = timeout
        self.kill_grace = kill_grace
        self.verify_outputs = verify_outputs
        self.process_runner = process_runner
        self.logger = structlog.get_logger("pipeline.runner")

    async def run(
        self,
        steps: Sequence[PipelineStep],
        input_path: Path,
        ctx: RunContext | None = None,
    ) -> PipelineResult:
        """
        Execute ``steps`` in order, starting from ``input_path``.

        Outputs are written into ``ctx.workdir``; without a context the
        input file's directory is used.  The returned result carries
        every output path on success, or the StepFailure that stopped
        the run.
        """
        input_path = Path(input_path)
        if ctx is None:
            ctx = RunContext(workdir=input_path.parent)

        started_at = _now()
        ctx.total_steps = len(steps)

        log = self.logger.bind(run_id=ctx.run_id, total_steps=len(steps))
        log.info("Pipeline started", input_path=str(input_path))

        if not steps:
            log.info("Pipeline has no steps, input passes through")
            return self._finalise(
                ctx, started_at, PipelineStatus.COMPLETED, outputs=[input_path],
            )

        outputs: list[Path] = []
        current_input = input_path

        for index, step in enumerate(steps):
            ctx.current_step_index = index
            step_log = log.bind(
                step_name=step.name,
                step_index=index + 1,
                step_description=step.description,
            )
            step_log.info(f"Step {index + 1}/{len(steps)}: {step.description}")

            output_path = ctx.output_path(step.output_name)
            failure, result = await self._execute(step, index, current_input, output_path, ctx)
            ctx.step_results.append(result)

            if failure is not None:
                step_log.error(
                    "Step failed, pipeline stopping",
                    exit_code=failure.exit_code,
                    timed_out=failure.timed_out,
                    diagnostic=failure.diagnostic,
                    duration_ms=result.duration_ms,
                )
                return self._finalise(
                    ctx, started_at, PipelineStatus.FAILED,
                    outputs=outputs, error=failure,
                )

            step_log.info(
                "Step completed",
                output_path=str(output_path),
                duration_ms=result.duration_ms,
            )
            outputs.append(output_path)
            current_input = output_path

        result = self._finalise(ctx, started_at, PipelineStatus.COMPLETED, outputs=outputs)
        log.info(
            "Pipeline finished",
            status=result.status,
            steps_completed=result.steps_completed,
            duration_ms=result.total_duration_ms,
        )
        return result

    async def _execute(
        self,
        step: PipelineStep,
        index: int,
        input_path: Path,
        output_path: Path,
        ctx: RunContext,
    ) -> tuple[StepFailure | None, StepResult]:
        """Spawn one step and translate its outcome into a StepResult."""
        command = step.build_command(input_path, output_path)
        started_at = _now()
        failure_kwargs = dict(
            index=index, command=command, run_id=ctx.run_id, step_name=step.name,
        )

        try:
            outcome = await self.process_runner(
                command,
                cwd=step.cwd,
                timeout=self.timeout,
                kill_grace=self.kill_grace,
            )
        except OSError as exc:
            failure = StepFailure(step.failure_message, diagnostic=str(exc), **failure_kwargs)
            return failure, _failed_result(step, index, started_at, command, f"Spawn failed: {exc}")

        if outcome.timed_out:
            failure = StepTimeoutError(
                step.failure_message,
                diagnostic=outcome.diagnostic,
                exit_code=outcome.exit_code,
                details={"timeout": self.timeout},
                **failure_kwargs,
            )
            return failure, _failed_result(
                step, index, started_at, command, f"Timed out after {self.timeout}s",
                exit_code=outcome.exit_code, timed_out=True,
            )

        if outcome.exit_code != 0:
            failure = StepFailure(
                step.failure_message,
                diagnostic=outcome.diagnostic,
                exit_code=outcome.exit_code,
                **failure_kwargs,
            )
            return failure, _failed_result(
                step, index, started_at, command, f"Exited with code {outcome.exit_code}",
                exit_code=outcome.exit_code,
            )

        if self.verify_outputs and not _has_content(output_path):
            diagnostic = outcome.diagnostic or f"Expected output not written: {output_path}"
            failure = MissingOutputError(
                step.failure_message,
                diagnostic=diagnostic,
                exit_code=outcome.exit_code,
                details={"output_path": str(output_path)},
                **failure_kwargs,
            )
            return failure, _failed_result(
                step, index, started_at, command, f"Missing or empty output: {output_path}",
                exit_code=outcome.exit_code,
            )

        return None, _step_result(
            step, index, StepStatus.COMPLETED, started_at, command,
            exit_code=outcome.exit_code, output_path=output_path,
        )

    def _finalise(
        self,
        ctx: RunContext,
        started_at: datetime,
        status: str,
        *,
        outputs: list[Path],
        error: StepFailure | None = None,
    ) -> PipelineResult:
        completed_at = _now()
        return PipelineResult(
            run_id=ctx.run_id,
            status=status,
            outputs=outputs,
            started_at=started_at,
            completed_at=completed_at,
            total_duration_ms=int((completed_at - started_at).total_seconds() * 1000),
            steps_completed=len(outputs) if ctx.total_steps else 0,
            total_steps=ctx.total_steps,
            step_results=list(ctx.step_results),
            error=error,
        )


def _has_content(path: Path) -> bool:
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _step_result(
    step: PipelineStep,
    index: int,
    status: str,
    started_at: datetime,
    command: list[str],
    *,
    exit_code: int | None = None,
    output_path: Path | None = None,
    error: str | None = None,
) -> StepResult:
    """Build a StepResult with timing."""
    completed_at = _now()
    return StepResult(
        step_name=step.name,
        index=index,
        status=status,
        command=command,
        exit_code=exit_code,
        output_path=output_path,
        started_at=started_at,
        completed_at=completed_at,
        duration_ms=int((completed_at - started_at).total_seconds() * 1000),
        error=error,
    )


def _failed_result(
    step: PipelineStep,
    index: int,
    started_at: datetime,
    command: list[str],
    error: str,
    *,
    exit_code: int | None = None,
    timed_out: bool = False,
) -> StepResult:
    status = StepStatus.TIMED_OUT if timed_out else StepStatus.FAILED
    return _step_result(
        step, index, status, started_at, command, exit_code=exit_code, error=error,
    )
