"""Schedule registration and one-shot execution endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from slackcast.auth import require_api_secret
from slackcast.database import get_db
from slackcast.errors import ValidationError
from slackcast.models.schedule import Schedule
from slackcast.schemas.jobs import ExecuteNowIn, ScheduleJobIn, SlackJob
from slackcast.services.queue import RepeatStore, get_repeat_store
from slackcast.services.registry import ScheduleRegistry

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_api_secret)])


def get_store() -> RepeatStore:
    return get_repeat_store()


def get_registry(store: RepeatStore = Depends(get_store)) -> ScheduleRegistry:
    return ScheduleRegistry(store)


@router.post("/jobs")
def upsert_schedule_job(
    body: ScheduleJobIn,
    db: Session = Depends(get_db),
    registry: ScheduleRegistry = Depends(get_registry),
):
    schedule = db.get(Schedule, body.schedule_id)
    template_ref = body.payload.message_id if body.payload else None
    if template_ref is None and schedule is not None:
        template_ref = schedule.message_id

    try:
        registration = registry.set_schedule(
            body.schedule_id,
            cron=body.cron,
            timezone=body.timezone,
            enabled=body.status == "enabled",
            template_ref=template_ref,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if schedule is not None:
        schedule.status = body.status
        if body.cron:
            schedule.cron_expr = body.cron
        if body.timezone:
            schedule.timezone = body.timezone
        schedule.next_run_at = registration.next_run_at
        db.commit()
    else:
        logger.info("Schedule %s has no stored row; registration only", body.schedule_id)

    return {
        "scheduleId": body.schedule_id,
        "status": body.status,
        "key": registration.key,
        "removed": registration.removed,
        "nextRunAt": registration.next_run_at.isoformat() if registration.next_run_at else None,
    }


@router.post("/execute-now", status_code=202)
def execute_now(
    body: ExecuteNowIn,
    store: RepeatStore = Depends(get_store),
):
    job_data = SlackJob(scheduleId=body.schedule_id, payload=body.payload).to_job_data()
    job = store.enqueue_delivery(job_data)
    logger.info("Queued one-shot delivery %s for schedule %s", job.id, body.schedule_id)
    return {"scheduleId": body.schedule_id, "jobId": job.id}
