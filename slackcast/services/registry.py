"""Schedule Registry — upserts and removes recurring registrations.

Keys are deterministic (``scheduleId@cron@timezone``) so a repeated
registration is a no-op overwrite, but a cron or timezone edit produces a new
key. Every upsert therefore sweeps all keys belonging to the schedule before
registering, otherwise the old and new registrations would both fire.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from slackcast.errors import ValidationError
from slackcast.services.cron import DEFAULT_TIMEZONE, next_run_at, utcnow, validate_cron
from slackcast.services.queue import RepeatEntry, RepeatStore

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "@"


def repeat_key(schedule_id: str, cron_expr: str, tz_name: str) -> str:
    return KEY_SEPARATOR.join((schedule_id, cron_expr, tz_name))


def belongs_to(key: str, schedule_id: str) -> bool:
    return key == schedule_id or key.startswith(schedule_id + KEY_SEPARATOR)


@dataclass
class Registration:
    schedule_id: str
    key: str | None
    removed: int
    next_run_at: datetime | None = None


class ScheduleRegistry:
    def __init__(self, store: RepeatStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    def registrations_for(self, schedule_id: str) -> list[str]:
        return [k for k in self.store.keys() if belongs_to(k, schedule_id)]

    def remove_schedule(self, schedule_id: str) -> int:
        removed = 0
        for key in self.registrations_for(schedule_id):
            if self.store.delete(key):
                removed += 1
        if removed:
            logger.info("Removed %d registration(s) for schedule %s", removed, schedule_id)
        return removed

    def set_schedule(
        self,
        schedule_id: str,
        cron: str | None = None,
        timezone: str | None = DEFAULT_TIMEZONE,
        enabled: bool = True,
        template_ref: str | None = None,
    ) -> Registration:
        if not enabled:
            return Registration(schedule_id, None, self.remove_schedule(schedule_id))

        if not cron:
            raise ValidationError("cron is required to enable a schedule")
        tz_name = timezone or DEFAULT_TIMEZONE
        validate_cron(cron, tz_name)

        removed = self.remove_schedule(schedule_id)
        key = repeat_key(schedule_id, cron, tz_name)
        entry = RepeatEntry(
            key=key,
            schedule_id=schedule_id,
            template_ref=template_ref,
            cron=cron,
            timezone=tz_name,
        )
        fire_at = next_run_at(cron, tz_name, self.clock())
        self.store.schedule_fire(entry, fire_at)
        logger.info("Registered %s, first fire at %s", key, fire_at.isoformat())
        return Registration(schedule_id, key, removed, fire_at)

    def fire(self, key: str) -> str | None:
        """Run one fire of *key*: schedule the successor, then enqueue the delivery.

        Returns the delivery job id, or None when the registration was swept.
        """
        entry = self.store.get(key)
        if entry is None:
            logger.info("Registration %s no longer exists, dropping fire", key)
            return None

        successor = self.store.schedule_fire(
            entry, next_run_at(entry.cron, entry.timezone, self.clock()), only_if_present=True
        )
        if successor is None:
            logger.info("Registration %s was swept during fire, dropping it", key)
            return None
        job = self.store.enqueue_delivery(entry.job_payload)
        logger.info("Fired %s as delivery job %s", key, job.id)
        return job.id

    def recover(self, db: Session) -> int:
        """Re-register every enabled schedule, so a wiped queue heals itself."""
        from slackcast.models.schedule import SCHEDULE_ENABLED, Schedule

        schedules = (
            db.query(Schedule)
            .filter(Schedule.status == SCHEDULE_ENABLED, Schedule.cron_expr.isnot(None))
            .all()
        )
        recovered = 0
        for schedule in schedules:
            try:
                self.set_schedule(
                    schedule.id,
                    schedule.cron_expr,
                    schedule.timezone,
                    enabled=True,
                    template_ref=schedule.message_id,
                )
                recovered += 1
            except Exception:
                logger.exception("Failed to recover registration for schedule %s", schedule.id)
        return recovered


def recover_registrations() -> int:
    """Startup hook: returns the number of schedules re-registered."""
    from slackcast.database import SessionLocal
    from slackcast.services.queue import get_repeat_store

    db = SessionLocal()
    try:
        return ScheduleRegistry(get_repeat_store()).recover(db)
    except Exception:
        logger.exception("Error recovering schedule registrations")
        return 0
    finally:
        db.close()
