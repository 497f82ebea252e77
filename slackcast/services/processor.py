"""SlackJobProcessor — runs one delivery job end to end.

Flow for one job::

    parse payload -> log_queued -> mark_running -> load schedule/message/children
    -> token -> visualization -> resolve parent -> deliver -> children
    -> mark sent -> mark_completed -> bump schedule times

Any exception after the run row exists marks it failed, still bumps the
schedule's run times, and is re-raised so RQ records the failure as well.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from slackcast import metrics
from slackcast.config import settings
from slackcast.errors import DependencyError, NotFoundError, ValidationError, describe_error
from slackcast.logging_config import run_id_var, schedule_id_var
from slackcast.schemas.jobs import MessagePayload, SlackJob
from slackcast.services.cron import utcnow
from slackcast.services.delivery import (
    ChildResult,
    DeliveryEngine,
    DeliveryImage,
    DeliveryResult,
)
from slackcast.services.job_runs import JobRunTracker
from slackcast.services.pipeline import ContentResolver, ResolvedContent
from slackcast.services.records import (
    MessageSpec,
    ScheduleSpec,
    get_active_schedule,
    get_message,
    get_schedule_timing,
    mark_messages_sent,
)
from slackcast.services.slack_api import TOKEN_ERRORS
from slackcast.services.token_cache import TokenCache

logger = logging.getLogger(__name__)


def parse_job(job_data: Any) -> SlackJob:
    try:
        return SlackJob.model_validate(job_data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid slack job payload: {exc}") from exc


class SlackJobProcessor:
    def __init__(
        self,
        tracker: JobRunTracker,
        token_cache: TokenCache,
        resolver: ContentResolver,
        engine: DeliveryEngine,
        session_factory: Callable[[], Session],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.tracker = tracker
        self.token_cache = token_cache
        self.resolver = resolver
        self.engine = engine
        self.session_factory = session_factory
        self.clock = clock

    def process(self, job_data: Any, run_at: datetime | None = None) -> dict[str, Any]:
        job = parse_job(job_data)
        run_id = self.tracker.log_queued(job.schedule_id, run_at)
        run_token = run_id_var.set(run_id)
        sched_token = schedule_id_var.set(job.schedule_id)
        started = time.monotonic()
        logger.info("Slack job started for schedule %s", job.schedule_id)
        try:
            try:
                result = self._run(run_id, job, started)
            except Exception as exc:
                duration_ms = _elapsed_ms(started)
                logger.error("Slack job failed after %dms: %s", duration_ms, describe_error(exc))
                metrics.job_duration_histogram.labels("failed").observe(duration_ms / 1000)
                self._record_failure(run_id, job.schedule_id, exc, duration_ms)
                raise
            logger.info(
                "Slack job completed: ts=%s channel=%s children=%d",
                result.parent_timestamp,
                result.channel,
                len(result.child_results),
            )
            metrics.job_duration_histogram.labels("completed").observe(time.monotonic() - started)
            return result.to_dict()
        finally:
            run_id_var.reset(run_token)
            schedule_id_var.reset(sched_token)

    # ── Steps ──────────────────────────────────────────────────────────────

    def _run(self, run_id: str, job: SlackJob, started: float) -> DeliveryResult:
        self.tracker.mark_running(run_id)
        schedule, parent, children = self._load(job)
        token = self.token_cache.get(parent.workspace_id)
        channel = schedule.channel_id or parent.channel_id

        content = self.resolver.resolve(parent, job.payload, channel)
        image = self._visualization(job.payload, parent, channel, content)
        replies = [self.resolver.finalize(blocks, content) for blocks in job.payload.reply_blocks or []]

        try:
            receipt = self.engine.deliver(token, channel, content.text, content.blocks, replies, image)
        except DependencyError as exc:
            if exc.code in TOKEN_ERRORS:
                self.token_cache.invalidate(parent.workspace_id)
            raise
        result = DeliveryResult(channel=receipt.channel, parent_timestamp=receipt.timestamp)

        for child in children:
            result.child_results.append(self._deliver_child(token, child, receipt.channel, receipt.timestamp))

        sent = [parent.id] + [c.message_id for c in result.child_results if c.success]
        db = self.session_factory()
        try:
            mark_messages_sent(db, sent)
        finally:
            db.close()

        self.tracker.mark_completed(
            run_id,
            duration_ms=_elapsed_ms(started),
            slack_ts=receipt.timestamp,
            slack_channel=receipt.channel,
            message_id=parent.id,
        )
        self.tracker.bump_schedule_times(schedule.id, schedule.cron_expr, schedule.timezone, self.clock())
        return result

    def _load(self, job: SlackJob) -> tuple[ScheduleSpec, MessageSpec, list[MessageSpec]]:
        db = self.session_factory()
        try:
            schedule = get_active_schedule(db, job.schedule_id)
            message_id = job.payload.message_id or schedule.message_id
            if not message_id:
                raise NotFoundError(f"Schedule {schedule.id} has no message")
            parent, children = get_message(db, message_id)
        finally:
            db.close()
        return schedule, parent, children

    def _visualization(
        self,
        payload: MessagePayload,
        parent: MessageSpec,
        channel: str,
        content: ResolvedContent,
    ) -> DeliveryImage | None:
        viz = payload.visualization
        if viz is not None and viz.html:
            file_name = viz.file_name or f"{parent.name}_visualization.png"
            artifact = self.resolver.render_visualization(viz.html, file_name, parent.id, channel)
            if artifact is not None:
                return DeliveryImage(url=artifact.public_url, data=artifact.data, file_name=file_name, alt=viz.alt)
        if viz is not None and viz.image_url:
            return DeliveryImage(url=viz.image_url, file_name=viz.file_name or "visualization.png", alt=viz.alt)
        # Rendered for a placeholder but never got a public URL: attach the bytes instead.
        if content.artifact is not None and not content.artifact.public_url:
            return DeliveryImage(data=content.artifact.data, file_name=content.artifact.file_name)
        return None

    def _deliver_child(self, token: str, child: MessageSpec, channel: str, thread_ts: str) -> ChildResult:
        try:
            content = self.resolver.resolve_child(child, channel)
            response = self.engine.post_reply(token, channel, thread_ts, content.text, content.blocks)
            return ChildResult(message_id=child.id, success=True, timestamp=response.ts)
        except Exception as exc:
            logger.error("Child message %s failed: %s", child.id, describe_error(exc))
            return ChildResult(message_id=child.id, success=False, error=describe_error(exc))

    def _record_failure(self, run_id: str, schedule_id: str, exc: Exception, duration_ms: int) -> None:
        try:
            self.tracker.mark_failed(run_id, exc, duration_ms)
        except Exception:
            logger.exception("Failed to mark run %s as failed", run_id)

        try:
            db = self.session_factory()
            try:
                timing = get_schedule_timing(db, schedule_id)
            finally:
                db.close()
            if timing is None:
                return
            self.tracker.bump_schedule_times(schedule_id, timing.cron_expr, timing.timezone, self.clock())
        except Exception:
            logger.exception("Failed to bump run times for schedule %s", schedule_id)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def build_processor() -> SlackJobProcessor:
    from slackcast.database import SessionLocal
    from slackcast.services.object_store import ObjectStore
    from slackcast.services.renderer import render_html_to_png
    from slackcast.services.slack_api import SlackClient
    from slackcast.services.token_cache import load_token_from_store
    from slackcast.services.warehouse import WarehouseClient

    return SlackJobProcessor(
        tracker=JobRunTracker(SessionLocal),
        token_cache=TokenCache(load_token_from_store, ttl=settings.SLACK_TOKEN_TTL_SECONDS),
        resolver=ContentResolver(WarehouseClient(), render_html_to_png, ObjectStore()),
        engine=DeliveryEngine(SlackClient()),
        session_factory=SessionLocal,
    )


@lru_cache(maxsize=1)
def processor_for_process() -> SlackJobProcessor:
    """One processor (and so one token cache) per worker process."""
    return build_processor()
