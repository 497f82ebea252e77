"""RQ failure callback for delivery jobs.

The processor has already marked the run failed and bumped the schedule by
the time RQ sees the exception; this only records the job-level outcome so
a failed delivery is traceable from the RQ side (job id, schedule id, error).
Jobs that die without raising (worker OOM, host reboot) stay in RQ's
StartedJobRegistry and are handled by RQ's own cleanup.
"""

from __future__ import annotations

import logging

from slackcast.errors import describe_error

logger = logging.getLogger(__name__)


def on_job_failure(job, connection, exc_type, exc_value, traceback) -> None:
    schedule_id = None
    try:
        if job.args and isinstance(job.args[0], dict):
            schedule_id = job.args[0].get("scheduleId")
    except Exception:
        logger.debug("Could not read job args for %s", job.id, exc_info=True)

    error_type = exc_type.__name__ if exc_type is not None else "Error"
    logger.error(
        "RQ job %s (schedule %s) failed: %s: %s",
        job.id,
        schedule_id or "unknown",
        error_type,
        describe_error(exc_value),
    )
