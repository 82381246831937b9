"""Tests for single-process execution and stderr capture."""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import sys
from pathlib import Path

import pytest

from dataset_gateway.pipeline.process import ProcessOutcome, run_process


async def test_captures_stderr_and_discards_stdout(make_script):
    script = make_script("both.py", """
        import sys

        print("to stdout")
        sys.stderr.write("to stderr")
    """)

    outcome = await run_process([sys.executable, str(script)])

    assert outcome == ProcessOutcome(exit_code=0, diagnostic="to stderr", timed_out=False)
    assert outcome.succeeded


async def test_large_stdout_does_not_block(make_script):
    script = make_script("chatty.py", """
        import sys

        sys.stdout.write("o" * 5_000_000)
    """)

    outcome = await run_process([sys.executable, str(script)], timeout=30)

    assert outcome.succeeded
    assert outcome.diagnostic == ""


async def test_nonzero_exit_is_reported(make_script):
    script = make_script("exit7.py", "import sys\nsys.exit(7)\n")

    outcome = await run_process([sys.executable, str(script)])

    assert outcome.exit_code == 7
    assert not outcome.succeeded


async def test_runs_in_given_cwd(make_script, tmp_path):
    script = make_script("cwd.py", """
        import os
        import sys

        sys.stderr.write(os.getcwd())
    """)

    outcome = await run_process([sys.executable, str(script)], cwd=tmp_path)

    assert Path(outcome.diagnostic).resolve() == tmp_path.resolve()


async def test_timeout_marks_outcome(make_script):
    script = make_script("sleepy.py", "import time\ntime.sleep(60)\n")

    outcome = await run_process([sys.executable, str(script)], timeout=0.5, kill_grace=0.5)

    assert outcome.timed_out
    assert not outcome.succeeded


async def test_missing_executable_raises_oserror(tmp_path):
    with pytest.raises(OSError):
        await run_process([str(tmp_path / "does-not-exist")])


@pytest.mark.parametrize("timeout", [None, 5.0])
async def test_exit_is_not_held_up_by_lingering_grandchild(make_script, tmp_path, timeout):
    pid_file = tmp_path / "grandchild.pid"
    script = make_script("spawner.py", f"""
        import subprocess
        import sys

        child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
        with open({str(pid_file)!r}, "w") as fh:
            fh.write(str(child.pid))
        sys.stderr.write("parent done")
        sys.stderr.flush()
        sys.exit(0)
    """)

    loop = asyncio.get_running_loop()
    started = loop.time()
    try:
        outcome = await asyncio.wait_for(
            run_process([sys.executable, str(script)], timeout=timeout, kill_grace=0.5),
            timeout=10,
        )
    finally:
        if pid_file.exists():
            with contextlib.suppress(ProcessLookupError):
                os.kill(int(pid_file.read_text()), signal.SIGKILL)

    assert outcome == ProcessOutcome(exit_code=0, diagnostic="parent done", timed_out=False)
    assert outcome.succeeded
    assert loop.time() - started < 5
