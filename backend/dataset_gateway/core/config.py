"""
Pydantic Settings: centralized configuration loaded from environment variables.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_JSON: bool = False

    # ── Server ────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 4000
    CORS_ALLOW_ORIGINS: list[str] = ["*"]

    # ── Working Directory ─────────────────────
    UPLOAD_DIR: str = "uploads"
    ISOLATE_RUNS: bool = True

    # ── External Scripts ──────────────────────
    PYTHON_PATH: str = "python3"
    SCRIPTS_DIR: str = "."
    SMART_SCRIPT: str = "scripts/generate_jsonl_smart.py"
    FINETUNE_SCRIPT: str = "scripts/prepare_finetune_dataset.py"

    # ── Step Execution ────────────────────────
    STEP_TIMEOUT_SECONDS: float | None = 600.0
    STEP_KILL_GRACE_SECONDS: float = 5.0
    VERIFY_STEP_OUTPUTS: bool = False

    model_config = {
        "env_file": ["../.env", ".env"],
        "extra": "ignore",
        "env_parse_none_str": "none",
    }

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.APP_ENV == "development" else "INFO"


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings."""
    return settings
