"""Tests for cron validation and next-run computation."""

from __future__ import annotations

from datetime import datetime

import pytest

from slackcast.errors import ValidationError
from slackcast.services.cron import next_run_at, resolve_timezone, validate_cron


def test_next_run_is_strictly_after():
    assert next_run_at("*/5 * * * *", "UTC", datetime(2026, 10, 18, 12, 5)) == datetime(2026, 10, 18, 12, 10)


def test_next_run_in_timezone_returns_naive_utc():
    # 09:00 Europe/Paris in October (CEST, UTC+2) is 07:00 UTC
    nxt = next_run_at("0 9 * * *", "Europe/Paris", datetime(2026, 10, 18, 6, 0))
    assert nxt == datetime(2026, 10, 18, 7, 0)
    assert nxt.tzinfo is None


def test_none_timezone_means_utc():
    assert next_run_at("0 9 * * *", None, datetime(2026, 10, 18, 6, 0)) == datetime(2026, 10, 18, 9, 0)


@pytest.mark.parametrize("expr", ["", None, "not cron", "61 * * * *"])
def test_invalid_cron(expr):
    with pytest.raises(ValidationError):
        validate_cron(expr, "UTC")


def test_invalid_timezone():
    with pytest.raises(ValidationError):
        resolve_timezone("Nowhere/Special")
