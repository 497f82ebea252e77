"""Redis/RQ plumbing: the delivery queue and the recurring-registration store.

RQ has no native cron-style repeatable jobs, so a recurring registration is
two things:

- an entry in the ``slackcast:repeatable`` Redis hash, keyed by the
  deterministic ``scheduleId@cron@timezone`` string;
- exactly one delayed RQ job (the next fire) whose job id is derived from the
  key and the fire instant, so enqueueing the same fire twice overwrites
  instead of duplicating.

The fire job re-enqueues its successor before dispatching the delivery
(self-rescheduling, like ``enqueue_in`` loops), and does nothing once its key
has been swept from the hash.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

import redis
from rq import Queue

from slackcast.config import settings

logger = logging.getLogger(__name__)

REPEATABLE_HASH = "slackcast:repeatable"


def get_connection() -> redis.Redis:
    return redis.from_url(settings.REDIS_URL)


def get_queue(connection: redis.Redis | None = None) -> Queue:
    return Queue(settings.QUEUE_NAME, connection=connection or get_connection())


def fire_job_id(key: str, fire_at: datetime) -> str:
    """RQ job id for one fire of a registration: stable for (key, instant)."""
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
    return f"repeat-{digest}-{int(fire_at.replace(tzinfo=timezone.utc).timestamp())}"


@dataclass
class RepeatEntry:
    key: str
    schedule_id: str
    template_ref: str | None
    cron: str
    timezone: str
    rq_job_id: str = ""
    next_run_at: str = ""  # ISO, naive UTC

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | bytes) -> "RepeatEntry":
        return cls(**json.loads(raw))

    @property
    def job_payload(self) -> dict:
        """Delivery job data for a scheduled fire: content is resolved at run time."""
        payload: dict = {"parentBlocks": []}
        if self.template_ref:
            payload["messageId"] = self.template_ref
        return {"scheduleId": self.schedule_id, "payload": payload}


class RepeatStore:
    """Recurring registrations, kept in a Redis hash and materialised in RQ."""

    def __init__(self, connection: redis.Redis, queue: Queue) -> None:
        self.connection = connection
        self.queue = queue

    def keys(self) -> list[str]:
        raw = self.connection.hkeys(REPEATABLE_HASH)
        return sorted(k.decode() if isinstance(k, bytes) else k for k in raw)

    def get(self, key: str) -> RepeatEntry | None:
        raw = self.connection.hget(REPEATABLE_HASH, key)
        if raw is None:
            return None
        return RepeatEntry.from_json(raw)

    def save(self, entry: RepeatEntry) -> None:
        self.connection.hset(REPEATABLE_HASH, entry.key, entry.to_json())

    def delete(self, key: str) -> bool:
        """Remove a registration and cancel its pending fire. True if it existed."""
        entry = self.get(key)
        removed = bool(self.connection.hdel(REPEATABLE_HASH, key))
        if entry and entry.rq_job_id:
            self._cancel_fire(entry.rq_job_id)
        return removed

    def save_if_present(self, entry: RepeatEntry) -> bool:
        """Overwrite *entry* only while its key is still registered."""
        with self.connection.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(REPEATABLE_HASH)
                    if not pipe.hexists(REPEATABLE_HASH, entry.key):
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.hset(REPEATABLE_HASH, entry.key, entry.to_json())
                    pipe.execute()
                    return True
                except redis.WatchError:
                    continue

    def schedule_fire(
        self, entry: RepeatEntry, fire_at: datetime, *, only_if_present: bool = False
    ) -> str | None:
        """Enqueue the fire at *fire_at* (naive UTC) and record it on the entry.

        With *only_if_present*, a key swept in the meantime is not written
        back; the just-enqueued fire is cancelled and None is returned.
        """
        from slackcast.tasks import fire_repeatable_task

        job_id = fire_job_id(entry.key, fire_at)
        self.queue.enqueue_at(
            fire_at.replace(tzinfo=timezone.utc),
            fire_repeatable_task,
            entry.key,
            job_id=job_id,
            job_timeout=settings.JOB_TIMEOUT_SECONDS,
        )
        entry.rq_job_id = job_id
        entry.next_run_at = fire_at.isoformat()
        if not only_if_present:
            self.save(entry)
        elif not self.save_if_present(entry):
            self._cancel_fire(job_id)
            return None
        return job_id

    def enqueue_delivery(self, job_data: dict, *, job_id: str | None = None):
        from slackcast.services.execution_recovery import on_job_failure
        from slackcast.tasks import process_slack_message_task

        return self.queue.enqueue(
            process_slack_message_task,
            job_data,
            job_id=job_id,
            job_timeout=settings.JOB_TIMEOUT_SECONDS,
            on_failure=on_job_failure,
        )

    def _cancel_fire(self, job_id: str) -> None:
        try:
            self.queue.scheduled_job_registry.remove(job_id, delete_job=True)
        except Exception:
            logger.warning("Could not cancel pending fire %s (non-fatal)", job_id, exc_info=True)


def get_repeat_store() -> RepeatStore:
    conn = get_connection()
    return RepeatStore(conn, get_queue(conn))
