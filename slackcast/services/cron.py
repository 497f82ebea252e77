"""Cron expression -> next UTC instant, via croniter."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from slackcast.errors import ValidationError

DEFAULT_TIMEZONE = "UTC"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def resolve_timezone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {name!r}") from exc


def validate_cron(cron_expr: str | None, tz_name: str | None = None) -> None:
    if not cron_expr or not croniter.is_valid(cron_expr):
        raise ValidationError(f"Invalid cron expression: {cron_expr!r}")
    resolve_timezone(tz_name)


def next_run_at(cron_expr: str, tz_name: str | None, after: datetime | None = None) -> datetime:
    """Next fire strictly after *after* (naive UTC), evaluated in *tz_name*.

    Returns a naive UTC datetime, matching how timestamps are stored.
    """
    validate_cron(cron_expr, tz_name)
    tz = resolve_timezone(tz_name)
    base = (after or utcnow()).replace(tzinfo=timezone.utc).astimezone(tz)
    nxt = croniter(cron_expr, base).get_next(datetime)
    return nxt.astimezone(timezone.utc).replace(tzinfo=None)
