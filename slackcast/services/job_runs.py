"""Job Run Tracker — the pending -> running -> completed|failed state machine.

Each write opens its own short session and commits immediately, so the row
reflects progress even if the worker dies mid-run. Transitions are monotonic:
a write against a terminal run is refused and logged, never applied.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session, sessionmaker

from slackcast import metrics
from slackcast.errors import NotFoundError, describe_error
from slackcast.models.job_run import (
    RUN_COMPLETED,
    RUN_FAILED,
    RUN_PENDING,
    RUN_RUNNING,
    TERMINAL_STATUSES,
    JobRun,
)
from slackcast.models.schedule import Schedule
from slackcast.services.cron import next_run_at, utcnow

logger = logging.getLogger(__name__)


class JobRunTracker:
    def __init__(
        self,
        session_factory: sessionmaker | Callable[[], Session],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock

    def log_queued(self, schedule_id: str, run_at: datetime | None = None) -> str:
        db = self.session_factory()
        try:
            run = JobRun(schedule_id=schedule_id, status=RUN_PENDING, run_at=run_at or self.clock())
            db.add(run)
            db.commit()
            metrics.jobs_queued.inc()
            return run.id
        except Exception:
            db.rollback()
            logger.exception("Failed to record queued run for schedule %s", schedule_id)
            raise
        finally:
            db.close()

    def mark_running(self, run_id: str) -> bool:
        return self._transition(
            run_id, RUN_RUNNING, allowed_from={RUN_PENDING}, started_at=self.clock()
        )

    def mark_completed(
        self,
        run_id: str,
        *,
        duration_ms: int,
        slack_ts: str = "",
        slack_channel: str = "",
        message_id: str | None = None,
    ) -> bool:
        return self._transition(
            run_id,
            RUN_COMPLETED,
            allowed_from={RUN_PENDING, RUN_RUNNING},
            completed_at=self.clock(),
            duration_ms=duration_ms,
            slack_ts=slack_ts or "",
            slack_channel=slack_channel or "",
            message_id=message_id,
            error_message=None,
        )

    def mark_failed(self, run_id: str, error: object, duration_ms: int | None = None) -> bool:
        return self._transition(
            run_id,
            RUN_FAILED,
            allowed_from={RUN_PENDING, RUN_RUNNING},
            completed_at=self.clock(),
            duration_ms=duration_ms,
            error_message=error if isinstance(error, str) else describe_error(error),
        )

    def bump_schedule_times(
        self,
        schedule_id: str,
        cron_expr: str | None,
        tz_name: str | None,
        as_of: datetime | None = None,
    ) -> None:
        """Advance last/next run. Applies after failures too, so a broken
        schedule keeps moving forward instead of re-firing immediately."""
        as_of = as_of or self.clock()
        db = self.session_factory()
        try:
            schedule = db.get(Schedule, schedule_id)
            if schedule is None:
                logger.warning("Cannot bump run times: schedule %s not found", schedule_id)
                return
            schedule.last_run_at = as_of
            if cron_expr:
                schedule.next_run_at = next_run_at(cron_expr, tz_name, as_of)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _transition(self, run_id: str, status: str, *, allowed_from: set[str], **fields) -> bool:
        db = self.session_factory()
        try:
            run = db.get(JobRun, run_id)
            if run is None:
                raise NotFoundError(f"Job run not found: {run_id}")
            if run.status not in allowed_from:
                level = logging.WARNING if run.status in TERMINAL_STATUSES else logging.INFO
                logger.log(level, "Refusing %s -> %s for run %s", run.status, status, run_id)
                return False
            run.status = status
            for name, value in fields.items():
                setattr(run, name, value)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if status == RUN_RUNNING:
            metrics.jobs_running.inc()
        elif status == RUN_COMPLETED:
            metrics.jobs_completed.inc()
        elif status == RUN_FAILED:
            metrics.jobs_failed.inc()
        return True
