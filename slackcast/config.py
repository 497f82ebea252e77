"""Pydantic settings loaded from .env, with conf.json overlay."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent

# ---------------------------------------------------------------------------
# conf.json: deployment runtime config (separate from .env secrets)
# ---------------------------------------------------------------------------


def get_slackcast_dir() -> Path:
    """Resolve the slackcast data directory. SLACKCAST_DIR env var or ~/.config/slackcast."""
    d = os.environ.get("SLACKCAST_DIR", "")
    return Path(d).expanduser() if d else Path.home() / ".config" / "slackcast"


class SlackcastConfig(BaseModel):
    database_url: str = ""
    warehouse_url: str = ""
    redis_url: str = ""
    queue_name: str = ""
    log_level: str = ""
    log_file: str = ""
    worker_concurrency: int | None = None
    object_store_bucket: str = ""
    object_store_public_base_url: str = ""


_logger = logging.getLogger(__name__)


def load_conf() -> SlackcastConfig:
    """Load conf.json from the slackcast data directory."""
    conf_path = get_slackcast_dir() / "conf.json"
    if conf_path.exists():
        try:
            return SlackcastConfig.model_validate_json(conf_path.read_text())
        except Exception:
            _logger.warning("Failed to parse %s, using defaults", conf_path, exc_info=True)
    return SlackcastConfig()


# ---------------------------------------------------------------------------
# Bootstrap: load .env, load conf.json
# ---------------------------------------------------------------------------

_env_file = BASE_DIR.parent / ".env"
load_dotenv(_env_file)
_conf = load_conf()

# ---------------------------------------------------------------------------
# Settings (pydantic-settings): .env / env vars override conf.json defaults
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    DEBUG: bool = False

    # Bearer secret for /jobs and /execute-now. Empty = auth disabled.
    API_SECRET: str = ""

    DATABASE_URL: str = _conf.database_url or f"sqlite:///{BASE_DIR.parent / 'slackcast.sqlite3'}"
    REDIS_URL: str = _conf.redis_url or "redis://localhost:6379/0"
    QUEUE_NAME: str = _conf.queue_name or "slack-jobs"
    WORKER_CONCURRENCY: int = (
        _conf.worker_concurrency if _conf.worker_concurrency is not None else 5
    )
    JOB_TIMEOUT_SECONDS: int = 600

    # Query engine
    WAREHOUSE_URL: str = _conf.warehouse_url or ""
    QUERY_TIMEOUT_MS: int = 30_000
    QUERY_POLL_INTERVAL_MS: int = 250
    QUERY_MAX_POLL_MS: int = 60_000

    # Headless renderer
    RENDER_TIMEOUT_MS: int = 90_000
    RENDER_PAGE_TIMEOUT_MS: int = 60_000
    RENDER_MAX_DIMENSION: int = 2200
    CHROMIUM_EXECUTABLE_PATH: str = ""

    # Object store (S3-compatible)
    OBJECT_STORE_BUCKET: str = _conf.object_store_bucket or "slackcast-images"
    OBJECT_STORE_REGION: str = "us-east-1"
    OBJECT_STORE_ENDPOINT_URL: str = ""
    OBJECT_STORE_PUBLIC_BASE_URL: str = _conf.object_store_public_base_url or ""

    # Slack
    SLACK_API_BASE_URL: str = "https://slack.com/api"
    SLACK_TIMEOUT_SECONDS: float = 15.0
    SLACK_PROBE_TIMEOUT_SECONDS: float = 3.0
    SLACK_TOKEN_TTL_SECONDS: int = 60

    LOG_LEVEL: str = _conf.log_level or "INFO"
    LOG_FILE: str = _conf.log_file or ""
    LOG_MAX_BYTES: int = 10_485_760
    LOG_BACKUP_COUNT: int = 5

    model_config = ConfigDict(
        env_file=str(BASE_DIR.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
