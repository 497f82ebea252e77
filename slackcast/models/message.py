"""Template and Message models — the read-only content side of a delivery."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slackcast.database import Base


class Template(Base):
    __tablename__ = "slack_templates"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255))
    sql_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    slack_blocks: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    viz_config_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<Template {self.id} ({self.name})>"


class Message(Base):
    __tablename__ = "slack_messages"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    company_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("slack_workspaces.id", ondelete="CASCADE"), index=True
    )
    slack_channel_id: Mapped[str] = mapped_column(String(64))
    template_id: Mapped[str] = mapped_column(ForeignKey("slack_templates.id", ondelete="CASCADE"))

    # Threading: a parent owns ordered children delivered as replies
    is_parent: Mapped[bool] = mapped_column(Boolean, default=False)
    parent_message_id: Mapped[str | None] = mapped_column(
        ForeignKey("slack_messages.id", ondelete="CASCADE"), nullable=True, index=True
    )
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft | sent

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    template: Mapped[Template] = relationship("Template")
    workspace: Mapped["Workspace"] = relationship("Workspace")  # noqa: F821

    def __repr__(self):
        return f"<Message {self.id} ({self.status})>"
