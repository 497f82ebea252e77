"""Centralised logging configuration for the API server and RQ workers.

Usage:
    from slackcast.logging_config import setup_logging, run_id_var, schedule_id_var

    # At process startup:
    setup_logging("Server")        # or "Worker-{pid}"

    # Inside the job processor:
    run_id_var.set("1a2b3c4d-...")
    schedule_id_var.set("S1")

Plain ``logging.getLogger(__name__).info(...)`` calls need no changes; the
ContextFilter injects run/schedule context automatically.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from contextvars import ContextVar
from pathlib import Path

# ── Context variables (set per job in RQ workers) ──────────────────────────

run_id_var: ContextVar[str] = ContextVar("run_id_var", default="")
schedule_id_var: ContextVar[str] = ContextVar("schedule_id_var", default="")


# ── Filter: stamps context onto every LogRecord ────────────────────────────

class ContextFilter(logging.Filter):
    """Injects ``role``, ``run_id``, and ``schedule_id`` onto each record."""

    def __init__(self, role: str) -> None:
        super().__init__()
        self.role = role

    def filter(self, record: logging.LogRecord) -> bool:
        record.role = self.role  # type: ignore[attr-defined]
        record.run_id = run_id_var.get("")  # type: ignore[attr-defined]
        record.schedule_id = schedule_id_var.get("")  # type: ignore[attr-defined]
        return True


# ── Formatter: builds [Role][Run][Sched][LEVEL] prefix ─────────────────────

class ContextFormatter(logging.Formatter):
    """Produces lines like:

    2026-10-18 14:30:00 [Server][INFO] slackcast.api.jobs:61 - Registered schedule S1
    2026-10-18 14:30:01 [Worker-9821][Run 1a2b3c4d][Sched S1][INFO] slackcast.services.processor:140 - Posted parent
    """

    def format(self, record: logging.LogRecord) -> str:
        role = getattr(record, "role", "")
        run_id = getattr(record, "run_id", "")
        schedule_id = getattr(record, "schedule_id", "")

        parts = [f"[{role}]"] if role else []
        if run_id:
            parts.append(f"[Run {run_id[:8]}]")
        if schedule_id:
            parts.append(f"[Sched {schedule_id}]")
        parts.append(f"[{record.levelname}]")

        prefix = "".join(parts)
        timestamp = self.formatTime(record, self.datefmt)
        location = f"{record.name}:{record.lineno}"
        message = record.getMessage()

        formatted = f"{timestamp} {prefix} {location} - {message}"
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            formatted += "\n" + record.exc_text
        if record.stack_info:
            formatted += "\n" + record.stack_info
        return formatted


# ── Setup function ─────────────────────────────────────────────────────────

def setup_logging(role: str) -> None:
    """Configure the root logger for *role* (e.g. ``"Server"`` or ``"Worker-1234"``).

    - Adds a stderr StreamHandler (always).
    - Adds a RotatingFileHandler when ``settings.LOG_FILE`` is set.
    - Tames noisy third-party loggers (Slack, S3 and RQ job chatter).

    Safe to call multiple times (idempotent via handler name check).
    """
    from slackcast.config import settings

    root = logging.getLogger()

    if any(getattr(h, "name", None) == "_slackcast_stream" for h in root.handlers):
        return

    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    ctx_filter = ContextFilter(role)
    formatter = ContextFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.name = "_slackcast_stream"
    stream_handler.addFilter(ctx_filter)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.name = "_slackcast_file"
        file_handler.addFilter(ctx_filter)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for name in ("urllib3", "botocore", "boto3", "s3transfer", "rq.worker"):
        logging.getLogger(name).setLevel(logging.WARNING)
