"""
Shared pytest fixtures for the test suite.

Fake pipeline steps are tiny Python scripts written into a temporary
directory and run with the current interpreter, so the tests exercise
real subprocesses end to end.
"""

from __future__ import annotations

import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

from dataset_gateway.core.config import settings
from dataset_gateway.pipeline.step import ExternalScriptStep

COPY_BODY = """
    import argparse
    import shutil

    parser = argparse.ArgumentParser()
    parser.add_argument("--input", required=True)
    parser.add_argument("--output", required=True)
    args = parser.parse_args()
    shutil.copyfile(args.input, args.output)
"""


# ============================================================
# SCRIPT FIXTURES
# ============================================================

@pytest.fixture
def scripts_dir(tmp_path: Path) -> Path:
    path = tmp_path / "scripts"
    path.mkdir()
    return path


@pytest.fixture
def make_script(scripts_dir: Path) -> Callable[[str, str], Path]:
    """Write a Python script into ``scripts_dir`` and return its path."""

    def _make(name: str, body: str) -> Path:
        path = scripts_dir / name
        path.write_text(textwrap.dedent(body), encoding="utf-8")
        return path

    return _make


@pytest.fixture
def copy_script(make_script) -> Path:
    """Identity step: copies --input to --output unchanged."""
    return make_script("copy_step.py", COPY_BODY)


@pytest.fixture
def counting_copy_script(make_script, tmp_path: Path) -> tuple[Path, Path]:
    """Identity step that also appends one line per invocation to a counter file."""
    counter = tmp_path / "invocations.log"
    body = COPY_BODY + f"""
    with open({str(counter)!r}, "a") as fh:
        fh.write("called\\n")
    """
    return make_script("counting_copy_step.py", body), counter


@pytest.fixture
def failing_script(make_script) -> Callable[..., Path]:
    """Factory for a step that writes ``chunks`` to stderr and exits ``code``."""

    def _make(chunks: list[str], code: int = 1, name: str = "failing_step.py") -> Path:
        body = f"""
        import sys

        for chunk in {chunks!r}:
            sys.stderr.write(chunk)
            sys.stderr.flush()
        sys.exit({code})
        """
        return make_script(name, body)

    return _make


# ============================================================
# STEP FIXTURES
# ============================================================

@pytest.fixture
def make_step() -> Callable[..., ExternalScriptStep]:
    """Build an ExternalScriptStep running ``script`` with this interpreter."""

    def _make(
        script: Path,
        name: str = "step",
        output_name: str = "out.txt",
        failure_message: str = "Step failed",
    ) -> ExternalScriptStep:
        return ExternalScriptStep(
            name=name,
            description=f"Run {script.name}",
            program=(sys.executable, str(script)),
            output_name=output_name,
            failure_message=failure_message,
        )

    return _make


# ============================================================
# API FIXTURES
# ============================================================

@pytest.fixture
def gateway_settings(monkeypatch, tmp_path: Path, scripts_dir: Path, copy_script: Path):
    """Point the process-wide settings at temp dirs and identity scripts."""
    upload_dir = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(upload_dir))
    monkeypatch.setattr(settings, "PYTHON_PATH", sys.executable)
    monkeypatch.setattr(settings, "SCRIPTS_DIR", str(scripts_dir))
    monkeypatch.setattr(settings, "SMART_SCRIPT", copy_script.name)
    monkeypatch.setattr(settings, "FINETUNE_SCRIPT", copy_script.name)
    monkeypatch.setattr(settings, "STEP_TIMEOUT_SECONDS", 30.0)
    monkeypatch.setattr(settings, "ISOLATE_RUNS", True)
    monkeypatch.setattr(settings, "VERIFY_STEP_OUTPUTS", False)
    return settings


@pytest.fixture
def client(gateway_settings):
    from dataset_gateway.main import app

    with TestClient(app) as test_client:
        yield test_client
