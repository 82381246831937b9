"""
Domain-specific exception hierarchy for the gateway.

All exceptions inherit from PipelineError so callers can catch broadly
or narrowly as needed.  Each exception carries structured context
(run ID, step name, etc.) for logging and for the HTTP error mapping
in ``dataset_gateway.api.errors``.
"""

from __future__ import annotations

from typing import Sequence


class PipelineError(Exception):
    """Base exception for all gateway errors."""

    def __init__(
        self,
        message: str,
        *,
        run_id: str | None = None,
        step_name: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message
        self.run_id = run_id
        self.step_name = step_name
        self.details = details or {}
        super().__init__(message)


class StepFailure(PipelineError):
    """
    An external step did not succeed.

    ``diagnostic`` holds everything the process wrote to stderr, verbatim.
    ``exit_code`` is None when the process could not be spawned at all.
    """

    def __init__(
        self,
        message: str,
        *,
        index: int,
        command: Sequence[str],
        diagnostic: str = "",
        exit_code: int | None = None,
        timed_out: bool = False,
        **kwargs,
    ) -> None:
        self.index = index
        self.command = list(command)
        self.diagnostic = diagnostic
        self.exit_code = exit_code
        self.timed_out = timed_out
        super().__init__(message, **kwargs)

    def to_text(self) -> str:
        """Plain-text body returned to HTTP clients."""
        return f"{self.message}:\n{self.diagnostic}"


class StepTimeoutError(StepFailure):
    """A step exceeded its time budget and was killed."""

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault("timed_out", True)
        super().__init__(message, **kwargs)


class MissingOutputError(StepFailure):
    """A step exited 0 but its declared output file is missing or empty."""
    pass


class StorageError(PipelineError):
    """Reading or writing an artifact in the working directory failed."""
    pass


class ArtifactNotFoundError(PipelineError):
    """The requested artifact does not exist (or its name is not allowed)."""

    def __init__(self, filename: str, **kwargs) -> None:
        self.filename = filename
        super().__init__(f"File not found: {filename}", **kwargs)
