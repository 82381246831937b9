"""
PipelineStep: abstract base class for all pipeline steps.

A step is a declaration, not a running thing: it knows how to build the
command line for one external program given an input path and an output
path.  The runner spawns the process, records timing and logging, and
decides success from the exit code.  Steps are immutable and defined
once at startup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

DEFAULT_ARGS_TEMPLATE: tuple[str, ...] = ("--input", "{input}", "--output", "{output}")


class PipelineStep(ABC):
    """
    Base class for every pipeline step.

    Subclasses MUST provide:
        - name (str)  unique identifier, e.g. "generate_jsonl_smart"
        - description (str)  human-readable label for logs
        - output_name (str)  artifact filename written into the run workdir
        - failure_message (str)  prefix of the error body shown to clients
        - cwd (str | None)  working directory of the process
        - build_command(in, out)  argv for the external process
    """

    # No defaults: dataclass subclasses would pick them up as field defaults
    name: str
    description: str
    output_name: str
    failure_message: str
    cwd: str | None

    @abstractmethod
    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        """Return the argv that reads ``input_path`` and writes ``output_path``."""
        ...


@dataclass(frozen=True)
class ExternalScriptStep(PipelineStep):
    """
    Runs ``program`` followed by the formatted ``args_template``.

    ``program`` is the argv prefix, typically ``(interpreter, script)``.
    ``{input}`` and ``{output}`` in the template are replaced with the
    absolute artifact paths.
    """

    name: str
    description: str
    program: tuple[str, ...]
    output_name: str
    failure_message: str
    cwd: str | None = None
    args_template: tuple[str, ...] = DEFAULT_ARGS_TEMPLATE

    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        args = [
            arg.format(input=str(input_path), output=str(output_path))
            for arg in self.args_template
        ]
        return [*self.program, *args]
