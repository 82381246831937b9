#!/usr/bin/env python3
"""
Dataset Gateway: Management Tool

Single entry point for serving the API and operating the dataset pipeline.
Usage: python manage.py <command> [options]
"""

import asyncio
import json
import logging
import os
import shutil
import sys
import urllib.request
from datetime import datetime, timedelta
from pathlib import Path
from typing import List


# ═══════════════════════════════════════════════════════════
#  Logging Setup
# ═══════════════════════════════════════════════════════════

class ColorFormatter(logging.Formatter):
    """Console formatter with ANSI colors and level symbols."""

    COLORS = {
        "INFO": "\033[96m",        # Cyan
        "SUCCESS": "\033[92m",     # Green
        "WARNING": "\033[93m",     # Yellow
        "ERROR": "\033[91m",       # Red
        "HEADER": "\033[95m",      # Magenta
        "BOLD": "\033[1m",
        "RESET": "\033[0m",
    }

    SYMBOLS = {
        "INFO": "→",
        "SUCCESS": "✓",
        "WARNING": "⚠",
        "ERROR": "✗",
        "STEP": "▶",
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.platform != "win32"

    def _colorize(self, text: str, color_name: str) -> str:
        if not self.use_colors:
            return text
        color = self.COLORS.get(color_name, "")
        return f"{color}{text}{self.COLORS['RESET']}" if color else text

    def format(self, record: logging.LogRecord) -> str:
        msg = str(record.msg)

        # Detect custom markers in the message
        if "[SUCCESS]" in msg:
            symbol, color = self.SYMBOLS["SUCCESS"], "SUCCESS"
        elif "[ERROR]" in msg:
            symbol, color = self.SYMBOLS["ERROR"], "ERROR"
        elif "[STEP]" in msg:
            symbol, color = self.SYMBOLS["STEP"], "INFO"
        else:
            symbol, color = self.SYMBOLS.get(record.levelname, ""), record.levelname

        if symbol and not msg.startswith(("===", " ")):
            record.msg = f"{symbol} {msg}"

        if self.use_colors:
            if msg.startswith("==="):
                record.msg = self._colorize(str(record.msg), "HEADER")
            else:
                record.msg = self._colorize(str(record.msg), color)

        return super().format(record)


# --- Bootstrap logger --------------------------------------------------------
_log_dir = "logs"
os.makedirs(_log_dir, exist_ok=True)
_log_file = os.path.join(_log_dir, f"manage-{datetime.now():%Y%m%d}.log")

_file_handler = logging.FileHandler(_log_file, encoding="utf-8")
_file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))

_console_handler = logging.StreamHandler()
_console_handler.setFormatter(ColorFormatter())

logging.basicConfig(level=logging.INFO, handlers=[_file_handler, _console_handler])
logger = logging.getLogger("manage")


# ═══════════════════════════════════════════════════════════
#  Gateway Manager
# ═══════════════════════════════════════════════════════════

class GatewayManager:
    """Serves the API and runs the dataset pipeline from the command line."""

    def __init__(self) -> None:
        from dataset_gateway.core.config import settings
        from dataset_gateway.core.logging import setup_logging

        self.settings = settings
        # Route the gateway's structlog output through the handlers above
        setup_logging(settings.log_level, attach_handler=False)

    @property
    def base_url(self) -> str:
        host = "localhost" if self.settings.HOST in ("0.0.0.0", "") else self.settings.HOST
        return f"http://{host}:{self.settings.PORT}"

    # ─── Server ───────────────────────────────────────────
    def serve(self, reload: bool = False) -> None:
        """Run the API with uvicorn."""
        import uvicorn

        logger.info("\n=== Starting Dataset Gateway ===")
        logger.info(f"[STEP] Listening on {self.settings.HOST}:{self.settings.PORT}")
        uvicorn.run(
            "dataset_gateway.main:app",
            host=self.settings.HOST,
            port=self.settings.PORT,
            reload=reload,
            log_config=None,
        )

    # ─── Offline pipeline run ─────────────────────────────
    def run(self, files: List[str]) -> bool:
        """Combine ``files`` and run the dataset flow without the HTTP layer."""
        logger.info("\n=== Offline Pipeline Run ===")
        if not files:
            logger.error("[ERROR] No input files given")
            return False

        missing = [f for f in files if not os.path.isfile(f)]
        if missing:
            for f in missing:
                logger.error(f"[ERROR] Not a file: {f}")
            return False

        result = asyncio.run(self._run_pipeline([Path(f) for f in files]))
        if not result.ok:
            failure = result.error
            logger.error(f"[ERROR] {failure.message} (exit {failure.exit_code})")
            for line in failure.diagnostic.splitlines():
                logger.error(f"  {line}")
            return False

        logger.info(f"[SUCCESS] Pipeline completed in {result.total_duration_ms} ms")
        for path in result.outputs:
            logger.info(f"  • {path}")
        return True

    async def _run_pipeline(self, files: List[Path]):
        from dataset_gateway.pipeline.context import RunContext, new_run_id
        from dataset_gateway.pipeline.flows import build_dataset_flow, build_runner
        from dataset_gateway.storage.local import ArtifactStorage

        storage = ArtifactStorage(self.settings.UPLOAD_DIR)
        storage.ensure_root()

        run_id = new_run_id()
        workspace = storage.allocate_workspace(run_id if self.settings.ISOLATE_RUNS else None)
        logger.info(f"[STEP] Workspace: {workspace}")

        saved = []
        for f in files:
            saved.append(await storage.save_upload(f.name, f.read_bytes(), workspace=workspace))
        combined = await storage.combine([u.stored_path for u in saved], workspace=workspace)
        logger.info(f"[STEP] Combined {len(saved)} file(s) into {combined.name}")

        runner = build_runner(self.settings)
        ctx = RunContext(workdir=workspace, run_id=run_id)
        return await runner.run(build_dataset_flow(self.settings), combined, ctx)

    # ─── Environment check ────────────────────────────────
    def check(self) -> bool:
        """Verify interpreter, scripts and working directory."""
        logger.info("\n=== Environment Check ===")
        ok = True

        interpreter = shutil.which(self.settings.PYTHON_PATH) or (
            self.settings.PYTHON_PATH if os.path.isfile(self.settings.PYTHON_PATH) else None
        )
        if interpreter:
            logger.info(f"[SUCCESS] Interpreter: {interpreter}")
        else:
            logger.error(f"[ERROR] Interpreter not found: {self.settings.PYTHON_PATH}")
            ok = False

        scripts_dir = Path(self.settings.SCRIPTS_DIR)
        for label, script in (
            ("smart", self.settings.SMART_SCRIPT),
            ("finetune", self.settings.FINETUNE_SCRIPT),
        ):
            path = scripts_dir / script
            if path.is_file():
                logger.info(f"[SUCCESS] {label} script: {path}")
            else:
                logger.error(f"[ERROR] {label} script missing: {path}")
                ok = False

        upload_dir = Path(self.settings.UPLOAD_DIR)
        try:
            upload_dir.mkdir(parents=True, exist_ok=True)
            probe = upload_dir / ".write-probe"
            probe.write_bytes(b"")
            probe.unlink()
            logger.info(f"[SUCCESS] Upload dir writable: {upload_dir.resolve()}")
        except OSError as exc:
            logger.error(f"[ERROR] Upload dir not writable: {exc}")
            ok = False

        timeout = self.settings.STEP_TIMEOUT_SECONDS
        logger.info(f"  step timeout: {timeout if timeout is not None else 'disabled'}")
        logger.info(f"  isolate runs: {self.settings.ISOLATE_RUNS}")
        logger.info(f"  verify outputs: {self.settings.VERIFY_STEP_OUTPUTS}")
        return ok

    # ─── Smoke test ───────────────────────────────────────
    def test(self) -> bool:
        """Probe the health endpoint of a running server."""
        url = f"{self.base_url}/api/health"
        logger.info("\n=== Health Probe ===")
        try:
            logger.info(f"[STEP] GET {url}")
            resp = urllib.request.urlopen(url, timeout=10)
            data = json.loads(resp.read().decode())
            logger.info(f"[SUCCESS] Gateway: status={data.get('status')}")
            return True
        except Exception as exc:
            logger.error(f"[ERROR] Health check failed: {exc}")
            return False

    # ─── Cleanup ──────────────────────────────────────────
    def clean(self, older_than_days: float) -> None:
        """Remove run workspaces older than the given age."""
        from dataset_gateway.storage.local import ArtifactStorage

        logger.info("\n=== Workspace Cleanup ===")
        removed = ArtifactStorage(self.settings.UPLOAD_DIR).prune(
            timedelta(days=older_than_days)
        )
        logger.info(f"[SUCCESS] Removed {len(removed)} run workspace(s)")

    # ─── URLs ─────────────────────────────────────────────
    def urls(self) -> None:
        """Print access URLs for every endpoint."""
        logger.info("\n=== Access URLs ===")
        logger.info(f"🔧  API:              {self.base_url}/api")
        logger.info(f"📖  Swagger Docs:     {self.base_url}/docs")
        logger.info(f"❤️   Health Check:     {self.base_url}/api/health")
        logger.info(f"📤  Upload:           POST {self.base_url}/api/upload")
        logger.info(f"📥  Download:         GET  {self.base_url}/api/download/<name>")


# ═══════════════════════════════════════════════════════════
#  CLI
# ═══════════════════════════════════════════════════════════

USAGE = f"""
{ColorFormatter.COLORS['HEADER']}Dataset Gateway: Management{ColorFormatter.COLORS['RESET']}
{'═' * 50}

{ColorFormatter.COLORS['BOLD']}Usage:{ColorFormatter.COLORS['RESET']} python manage.py <command> [options]

{ColorFormatter.COLORS['BOLD']}Commands:{ColorFormatter.COLORS['RESET']}
    {ColorFormatter.COLORS['INFO']}serve{ColorFormatter.COLORS['RESET']}           Run the API (--reload for development)
    {ColorFormatter.COLORS['INFO']}run{ColorFormatter.COLORS['RESET']}             Run the pipeline over local files
    {ColorFormatter.COLORS['INFO']}check{ColorFormatter.COLORS['RESET']}           Verify interpreter, scripts and upload dir
    {ColorFormatter.COLORS['INFO']}test{ColorFormatter.COLORS['RESET']}            Probe /api/health of a running server
    {ColorFormatter.COLORS['WARNING']}clean{ColorFormatter.COLORS['RESET']}           Remove old run workspaces (--older-than=DAYS)
    {ColorFormatter.COLORS['INFO']}urls{ColorFormatter.COLORS['RESET']}            Show access URLs

{ColorFormatter.COLORS['BOLD']}Examples:{ColorFormatter.COLORS['RESET']}
    python manage.py serve --reload
    python manage.py run notes1.txt notes2.txt
    python manage.py clean --older-than=7
"""


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(USAGE)
        sys.exit(0)

    command = sys.argv[1]
    opts = sys.argv[2:]

    try:
        mgr = GatewayManager()
        if command == "serve":
            mgr.serve(reload="--reload" in opts)
        elif command == "run":
            if not mgr.run([o for o in opts if not o.startswith("--")]):
                sys.exit(1)
        elif command == "check":
            if not mgr.check():
                sys.exit(1)
        elif command == "test":
            if not mgr.test():
                sys.exit(1)
        elif command == "clean":
            days = 7.0
            for o in opts:
                if o.startswith("--older-than="):
                    days = float(o.split("=", 1)[1])
            mgr.clean(days)
        elif command == "urls":
            mgr.urls()
        else:
            logger.error(f"Unknown command: {command}")
            print(USAGE)
            sys.exit(1)
    except Exception as exc:
        logger.error(f"Operation failed: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
