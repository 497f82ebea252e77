"""Queue job payload and HTTP request schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VisualizationIn(_CamelModel):
    image_url: str | None = Field(default=None, alias="imageUrl")
    html: str | None = None
    file_name: str | None = Field(default=None, alias="fileName")
    alt: str | None = None

    @field_validator("image_url")
    @classmethod
    def image_url_is_http(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("imageUrl must be an http(s) URL")
        return v


class MessagePayload(_CamelModel):
    parent_text: str | None = Field(default=None, alias="parentText")
    parent_blocks: list[dict[str, Any]] = Field(default_factory=list, alias="parentBlocks")
    reply_blocks: list[list[dict[str, Any]]] | None = Field(default=None, alias="replyBlocks")
    visualization: VisualizationIn | None = None
    message_id: str | None = Field(default=None, alias="messageId")

    @property
    def has_live_content(self) -> bool:
        return bool(self.parent_text) or bool(self.parent_blocks)


class SlackJob(_CamelModel):
    """What sits in the queue for one delivery: ``{scheduleId, payload}``."""

    schedule_id: str = Field(alias="scheduleId", min_length=1)
    payload: MessagePayload = Field(default_factory=MessagePayload)

    def to_job_data(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ScheduleJobIn(_CamelModel):
    """POST /jobs body — register, re-register or cancel a schedule."""

    schedule_id: str = Field(alias="scheduleId", min_length=1)
    cron: str | None = None
    timezone: str | None = None
    status: Literal["enabled", "disabled"] = "enabled"
    payload: MessagePayload | None = None


class ExecuteNowIn(_CamelModel):
    """POST /execute-now body — one-shot delivery with the scheduled payload shape."""

    schedule_id: str = Field(alias="scheduleId", min_length=1)
    payload: MessagePayload = Field(default_factory=MessagePayload)
