"""Record store lookups used by the job processor.

Rows are copied into plain dataclasses so the pipeline never touches a
session (or lazy-loads) after the lookup session is closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from slackcast.errors import NotFoundError
from slackcast.models.message import Message
from slackcast.models.schedule import Schedule
from slackcast.models.workspace import SlackToken, Workspace

logger = logging.getLogger(__name__)


@dataclass
class ScheduleSpec:
    id: str
    workspace_id: str
    channel_id: str
    message_id: str | None
    cron_expr: str | None
    timezone: str | None


@dataclass
class MessageSpec:
    id: str
    name: str
    workspace_id: str
    company_id: str
    channel_id: str
    sql_text: str | None = None
    blocks: list[dict[str, Any]] = field(default_factory=list)
    viz_config: dict | None = None
    is_parent: bool = False
    position: int | None = None

    @property
    def has_query(self) -> bool:
        return bool(self.sql_text and self.sql_text.strip())


@dataclass
class TokenRecord:
    access_token: str
    expires_at: datetime | None = None


def get_active_schedule(db: Session, schedule_id: str) -> ScheduleSpec:
    schedule = db.get(Schedule, schedule_id)
    if schedule is None:
        raise NotFoundError(f"Schedule not found: {schedule_id}")
    if not schedule.is_active:
        raise NotFoundError(f"Schedule {schedule_id} is not active")
    return _schedule_spec(schedule)


def get_schedule_timing(db: Session, schedule_id: str) -> ScheduleSpec | None:
    """Schedule regardless of status; used for bookkeeping on failure paths."""
    schedule = db.get(Schedule, schedule_id)
    return _schedule_spec(schedule) if schedule else None


def get_message(db: Session, message_id: str) -> tuple[MessageSpec, list[MessageSpec]]:
    """Message plus its children in delivery order (position, then id)."""
    message = db.get(Message, message_id)
    if message is None or message.template is None:
        raise NotFoundError(f"Message not found: {message_id}")
    parent = _message_spec(message)

    children: list[MessageSpec] = []
    if message.is_parent:
        rows = (
            db.query(Message)
            .filter(Message.parent_message_id == message.id)
            .order_by(Message.position.asc(), Message.id.asc())
            .all()
        )
        children = [_message_spec(c, parent.company_id) for c in rows if c.template is not None]
    return parent, children


def get_workspace_token(db: Session, workspace_id: str) -> TokenRecord:
    token = (
        db.query(SlackToken)
        .filter(SlackToken.workspace_id == workspace_id)
        .order_by(SlackToken.updated_at.desc(), SlackToken.id.desc())
        .first()
    )
    if token is None or not token.access_token:
        raise NotFoundError(f"No Slack token for workspace {workspace_id}")
    return TokenRecord(token.access_token, token.expires_at)


def mark_messages_sent(db: Session, message_ids: list[str]) -> None:
    if not message_ids:
        return
    try:
        db.query(Message).filter(Message.id.in_(message_ids)).update(
            {Message.status: "sent"}, synchronize_session=False
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("Failed to mark messages %s as sent", message_ids, exc_info=True)


def _schedule_spec(schedule: Schedule) -> ScheduleSpec:
    return ScheduleSpec(
        id=schedule.id,
        workspace_id=schedule.workspace_id,
        channel_id=schedule.channel_id,
        message_id=schedule.message_id,
        cron_expr=schedule.cron_expr,
        timezone=schedule.timezone,
    )


def _message_spec(message: Message, company_id: str | None = None) -> MessageSpec:
    template = message.template
    workspace: Workspace | None = message.workspace
    return MessageSpec(
        id=message.id,
        name=template.name,
        workspace_id=message.workspace_id,
        company_id=company_id or message.company_id or (workspace.company_id if workspace else ""),
        channel_id=message.slack_channel_id,
        sql_text=template.sql_text,
        blocks=list(template.slack_blocks or []),
        viz_config=template.viz_config_json,
        is_parent=message.is_parent,
        position=message.position,
    )
