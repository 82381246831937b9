"""
ArtifactStorage: local working-directory storage for uploads and step outputs.

Layout::

    <UPLOAD_DIR>/
        <run_id>/                       # one per upload (ISOLATE_RUNS=true)
            1718000000000-notes.txt     # uploaded parts, timestamp-prefixed
            data.txt                    # combined input artifact
            memories.jsonl              # step 1 output
            finetune_data.jsonl         # step 2 output

With ISOLATE_RUNS=false every run writes straight into <UPLOAD_DIR>.

Artifacts are never deleted by the gateway; ``prune`` exists for
operators (see ``manage.py clean``).
"""

from __future__ import annotations

import itertools
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from typing import Iterable

import aiofiles

from dataset_gateway.core.constants import ARTIFACT_SEPARATOR, COMBINED_INPUT_NAME
from dataset_gateway.core.logging import get_logger
from dataset_gateway.pipeline.errors import ArtifactNotFoundError, StorageError

logger = get_logger(__name__)


@dataclass
class UploadedFile:
    """One uploaded part, persisted immediately and never modified."""

    original_name: str
    stored_path: Path
    size: int
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def is_safe_segment(name: str) -> bool:
    """True if ``name`` is a plain basename that cannot escape its directory."""
    if not name or name in (".", ".."):
        return False
    if "/" in name or "\\" in name or "\x00" in name:
        return False
    return True


def safe_basename(name: str | None, fallback: str = "upload") -> str:
    """Reduce a client-supplied filename to its last path component."""
    base = (name or "").replace("\\", "/").rsplit("/", 1)[-1].replace("\x00", "")
    return base if is_safe_segment(base) else fallback


class ArtifactStorage:
    """Saves and retrieves artifacts relative to one root directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    # ─── Directories ──────────────────────────────────

    def ensure_root(self) -> Path:
        """Create the working directory if it does not exist yet."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create working directory {self.root}: {exc}") from exc
        return self.root

    def allocate_workspace(self, run_id: str | None = None) -> Path:
        """
        Return the directory a run should write into.

        With a run id a fresh ``<root>/<run_id>`` directory is created;
        without one the shared root is returned.
        """
        if run_id is None:
            return self.ensure_root()
        if not is_safe_segment(run_id):
            raise StorageError(f"Invalid run id: {run_id!r}", run_id=run_id)

        workspace = self.root / run_id
        try:
            workspace.mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            raise StorageError(f"Cannot create run workspace: {exc}", run_id=run_id) from exc
        return workspace

    # ─── Writes ───────────────────────────────────────

    async def save(
        self,
        name: str,
        data: bytes,
        *,
        workspace: Path | None = None,
        exclusive: bool = False,
    ) -> Path:
        """
        Write ``data`` to ``name`` inside ``workspace`` (default: root).

        With ``exclusive`` an existing file is never replaced;
        FileExistsError is raised instead.
        """
        if not is_safe_segment(name):
            raise StorageError(f"Invalid artifact name: {name!r}")

        path = (workspace or self.root) / name
        try:
            async with aiofiles.open(path, "xb" if exclusive else "wb") as fh:
                await fh.write(data)
        except FileExistsError:
            raise
        except OSError as exc:
            raise StorageError(f"Failed to save {name}: {exc}") from exc

        logger.debug("Artifact saved", path=str(path), size=len(data))
        return path

    async def save_upload(
        self,
        original_name: str | None,
        data: bytes,
        *,
        workspace: Path | None = None,
    ) -> UploadedFile:
        """
        Persist one uploaded part as ``<epoch-millis>-<basename>``.

        Parts sharing a basename and a millisecond get a counter,
        ``<epoch-millis>-<n>-<basename>``, so no part overwrites another.
        """
        base = safe_basename(original_name)
        stamp = int(time.time() * 1000)
        for attempt in itertools.count():
            stored_name = f"{stamp}-{base}" if attempt == 0 else f"{stamp}-{attempt}-{base}"
            try:
                path = await self.save(stored_name, data, workspace=workspace, exclusive=True)
            except FileExistsError:
                continue
            return UploadedFile(original_name=base, stored_path=path, size=len(data))

    async def combine(
        self,
        parts: Iterable[Path],
        *,
        workspace: Path | None = None,
        name: str = COMBINED_INPUT_NAME,
    ) -> Path:
        """Concatenate ``parts`` in order, each followed by a blank line."""
        path = (workspace or self.root) / name
        try:
            async with aiofiles.open(path, "wb") as out:
                for part in parts:
                    async with aiofiles.open(part, "rb") as src:
                        await out.write(await src.read())
                    await out.write(ARTIFACT_SEPARATOR)
        except OSError as exc:
            raise StorageError(f"Failed to build {name}: {exc}") from exc
        return path

    # ─── Reads ────────────────────────────────────────

    def locate(self, name: str) -> Path:
        """
        Resolve a download name (``file`` or ``run_id/file``) to a path.

        Raises ArtifactNotFoundError for unsafe names and missing files.
        """
        segments = name.split("/")
        if len(segments) > 2 or not all(is_safe_segment(s) for s in segments):
            raise ArtifactNotFoundError(name)

        path = self.root.joinpath(*segments)
        if not path.is_file():
            raise ArtifactNotFoundError(name)
        return path

    async def retrieve(self, name: str) -> bytes:
        """Read an artifact's bytes."""
        path = self.locate(name)
        try:
            async with aiofiles.open(path, "rb") as fh:
                return await fh.read()
        except FileNotFoundError:
            raise ArtifactNotFoundError(name) from None
        except OSError as exc:
            raise StorageError(f"Failed to read {name}: {exc}") from exc

    def download_name(self, path: Path) -> str:
        """Name under which ``path`` can be retrieved again."""
        return PurePosixPath(Path(path).resolve().relative_to(self.root)).as_posix()

    # ─── Maintenance ──────────────────────────────────

    def prune(self, older_than: timedelta) -> list[Path]:
        """Delete run workspaces last modified before ``now - older_than``."""
        if not self.root.is_dir():
            return []

        cutoff = time.time() - older_than.total_seconds()
        removed: list[Path] = []
        for entry in self.root.iterdir():
            if entry.is_dir() and entry.stat().st_mtime < cutoff:
                shutil.rmtree(entry)
                removed.append(entry)
                logger.info("Run workspace removed", path=str(entry))
        return removed
