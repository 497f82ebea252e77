"""Schedule model — durable definition of a recurring delivery."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slackcast.database import Base

SCHEDULE_ENABLED = "enabled"
SCHEDULE_DISABLED = "disabled"


class Schedule(Base):
    __tablename__ = "slack_schedules"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("slack_workspaces.id", ondelete="CASCADE"), index=True
    )
    channel_id: Mapped[str] = mapped_column(String(64), default="")
    channel_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # templateRef: the parent message whose template is resolved at run time
    message_id: Mapped[str | None] = mapped_column(
        ForeignKey("slack_messages.id", ondelete="SET NULL"), nullable=True
    )

    cron_expr: Mapped[str | None] = mapped_column(String(120), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=SCHEDULE_ENABLED, index=True)  # enabled | disabled

    last_run_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    message: Mapped["Message | None"] = relationship("Message")  # noqa: F821

    @property
    def is_active(self) -> bool:
        return self.status == SCHEDULE_ENABLED

    def __repr__(self):
        return f"<Schedule {self.id} ({self.status})>"
