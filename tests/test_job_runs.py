"""Tests for the job run tracker state machine and schedule bookkeeping."""

from __future__ import annotations

from datetime import datetime

import pytest

from slackcast.errors import DependencyError, NotFoundError
from slackcast.models import JobRun, Schedule
from slackcast.services.job_runs import JobRunTracker

NOW = datetime(2026, 10, 18, 12, 0, 0)


@pytest.fixture
def tracker(session_factory):
    return JobRunTracker(session_factory, clock=lambda: NOW)


def _run(db, run_id) -> JobRun:
    db.expire_all()
    return db.get(JobRun, run_id)


class TestTransitions:
    def test_log_queued_sets_pending_and_run_at(self, db, tracker):
        run_id = tracker.log_queued("S1")
        run = _run(db, run_id)
        assert run.status == "pending"
        assert run.run_at == NOW

    def test_log_queued_keeps_explicit_run_at(self, db, tracker):
        at = datetime(2026, 10, 18, 11, 55)
        run = _run(db, tracker.log_queued("S1", at))
        assert run.run_at == at

    def test_happy_path(self, db, tracker):
        run_id = tracker.log_queued("S1")
        assert tracker.mark_running(run_id) is True
        assert tracker.mark_completed(
            run_id, duration_ms=42, slack_ts="1700000000.000100", slack_channel="C123", message_id="M1"
        ) is True

        run = _run(db, run_id)
        assert run.status == "completed"
        assert run.started_at == NOW
        assert run.completed_at == NOW
        assert run.duration_ms == 42
        assert run.slack_ts == "1700000000.000100"
        assert run.slack_channel == "C123"
        assert run.message_id == "M1"
        assert run.error_message is None

    def test_failed_directly_from_pending(self, db, tracker):
        run_id = tracker.log_queued("S1")
        assert tracker.mark_failed(run_id, "boom") is True
        assert _run(db, run_id).status == "failed"

    def test_terminal_run_is_never_rewritten(self, db, tracker):
        run_id = tracker.log_queued("S1")
        tracker.mark_running(run_id)
        tracker.mark_completed(run_id, duration_ms=10, slack_ts="1.2", slack_channel="C123")

        assert tracker.mark_failed(run_id, "late failure") is False
        assert tracker.mark_running(run_id) is False
        assert tracker.mark_completed(run_id, duration_ms=99) is False

        run = _run(db, run_id)
        assert run.status == "completed"
        assert run.duration_ms == 10
        assert run.error_message is None

    def test_failed_then_completed_refused(self, db, tracker):
        run_id = tracker.log_queued("S1")
        tracker.mark_failed(run_id, "first")
        assert tracker.mark_completed(run_id, duration_ms=1) is False
        assert _run(db, run_id).error_message == "first"

    def test_running_only_from_pending(self, db, tracker):
        run_id = tracker.log_queued("S1")
        assert tracker.mark_running(run_id) is True
        assert tracker.mark_running(run_id) is False

    def test_error_is_described(self, db, tracker):
        run_id = tracker.log_queued("S1")
        tracker.mark_failed(run_id, DependencyError("slack", "channel_not_found"), duration_ms=5)
        run = _run(db, run_id)
        assert run.error_message == "slack: channel_not_found"
        assert run.duration_ms == 5

    def test_unknown_run(self, tracker):
        with pytest.raises(NotFoundError):
            tracker.mark_running("missing")


class TestBumpScheduleTimes:
    def test_sets_last_and_next(self, db, tracker, schedule):
        tracker.bump_schedule_times("S1", "*/5 * * * *", "UTC", NOW)
        db.expire_all()
        sched = db.get(Schedule, "S1")
        assert sched.last_run_at == NOW
        assert sched.next_run_at == datetime(2026, 10, 18, 12, 5)
        assert sched.next_run_at > sched.last_run_at

    def test_without_cron_only_last_run(self, db, tracker, schedule):
        tracker.bump_schedule_times("S1", None, None, NOW)
        db.expire_all()
        sched = db.get(Schedule, "S1")
        assert sched.last_run_at == NOW
        assert sched.next_run_at is None

    def test_timezone_defaults_to_utc(self, db, tracker, schedule):
        tracker.bump_schedule_times("S1", "0 13 * * *", None, NOW)
        db.expire_all()
        assert db.get(Schedule, "S1").next_run_at == datetime(2026, 10, 18, 13, 0)

    def test_respects_timezone(self, db, tracker, schedule):
        # 09:00 in New York is 13:00 UTC during daylight saving time
        tracker.bump_schedule_times("S1", "0 9 * * *", "America/New_York", NOW)
        db.expire_all()
        assert db.get(Schedule, "S1").next_run_at == datetime(2026, 10, 18, 13, 0)

    def test_unknown_schedule_is_ignored(self, tracker):
        tracker.bump_schedule_times("missing", "*/5 * * * *", "UTC", NOW)
