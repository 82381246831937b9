"""
Async execution of a single external process.

The child's stderr is drained by a reader task that runs concurrently
with the process, never after it exits.  A child that fills its stderr
pipe while nobody reads it blocks forever, so the reader must be live
for the entire lifetime of the process.  Stdout is discarded.

On timeout the child gets SIGTERM, then SIGKILL once the grace period
runs out.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from dataset_gateway.core.logging import get_logger

logger = get_logger(__name__)

_READ_CHUNK = 64 * 1024
_EXIT_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class ProcessOutcome:
    """Exit status and captured stderr of one finished process."""

    exit_code: int | None
    diagnostic: str
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


ProcessRunner = Callable[..., Awaitable[ProcessOutcome]]


async def _drain(stream: asyncio.StreamReader, chunks: list[bytes]) -> None:
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        chunks.append(chunk)


async def _wait_for_exit(process: asyncio.subprocess.Process) -> int:
    """
    Wait until the child itself has exited.

    ``Process.wait()`` also waits for every pipe to close, which never
    happens while a grandchild holds the inherited stderr open.
    ``returncode`` is set as soon as the child is reaped.
    """
    while process.returncode is None:
        await asyncio.sleep(_EXIT_POLL_INTERVAL)
    return process.returncode


async def _terminate(process: asyncio.subprocess.Process, grace: float) -> None:
    """SIGTERM, wait ``grace`` seconds, then SIGKILL."""
    if process.returncode is not None:
        return

    with contextlib.suppress(ProcessLookupError):
        process.terminate()
    try:
        await asyncio.wait_for(_wait_for_exit(process), timeout=grace)
        return
    except TimeoutError:
        logger.warning("Process ignored SIGTERM, killing", pid=process.pid)

    with contextlib.suppress(ProcessLookupError):
        process.kill()
    await _wait_for_exit(process)


async def run_process(
    command: Sequence[str],
    *,
    cwd: str | Path | None = None,
    timeout: float | None = None,
    kill_grace: float = 5.0,
) -> ProcessOutcome:
    """
    Run ``command`` to completion and capture its stderr.

    Completion means the child process has exited; its exit code alone
    decides the outcome.  Stderr written after that by processes it left
    behind is read for at most ``kill_grace`` seconds.

    Raises OSError if the executable cannot be spawned.  A timeout is
    reported through ``ProcessOutcome.timed_out``, not raised.
    """
    process = await asyncio.create_subprocess_exec(
        *command,
        cwd=str(cwd) if cwd is not None else None,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    assert process.stderr is not None

    chunks: list[bytes] = []
    reader = asyncio.create_task(_drain(process.stderr, chunks))
    timed_out = False

    try:
        await asyncio.wait_for(_wait_for_exit(process), timeout=timeout)
    except TimeoutError:
        timed_out = True
        logger.warning("Process timed out", pid=process.pid, timeout=timeout)
        await _terminate(process, kill_grace)
    except asyncio.CancelledError:
        await _terminate(process, kill_grace)
        reader.cancel()
        raise

    try:
        await asyncio.wait_for(reader, timeout=kill_grace)
    except TimeoutError:
        logger.warning("stderr still open after exit, abandoning reader", pid=process.pid)

    return ProcessOutcome(
        exit_code=process.returncode,
        diagnostic=b"".join(chunks).decode("utf-8", errors="replace"),
        timed_out=timed_out,
    )
