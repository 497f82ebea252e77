"""Delivery Engine — parent post, threaded replies, visualization attachment."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from slackcast.errors import DependencyError, describe_error
from slackcast.services.placeholders import ensure_image_in_blocks
from slackcast.services.slack_api import SlackClient, SlackResponse, explain_error

logger = logging.getLogger(__name__)


@dataclass
class DeliveryImage:
    """A visualization to attach: an embeddable URL, raw PNG bytes, or both."""

    url: str | None = None
    data: bytes | None = None
    file_name: str = "visualization.png"
    alt: str | None = None


@dataclass
class DeliveryReceipt:
    channel: str
    timestamp: str


@dataclass
class ChildResult:
    message_id: str
    success: bool
    timestamp: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"messageId": self.message_id, "success": self.success}
        if self.success:
            data["timestamp"] = self.timestamp
        else:
            data["error"] = self.error
        return data


@dataclass
class DeliveryResult:
    channel: str
    parent_timestamp: str
    child_results: list[ChildResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "parentTimestamp": self.parent_timestamp,
            "childResults": [c.to_dict() for c in self.child_results],
        }


class DeliveryEngine:
    def __init__(self, slack: SlackClient) -> None:
        self.slack = slack

    def deliver(
        self,
        token: str,
        channel: str,
        parent_text: str,
        parent_blocks: list[dict[str, Any]],
        reply_blocks_list: list[list[dict[str, Any]]] | None = None,
        image: DeliveryImage | None = None,
    ) -> DeliveryReceipt:
        """Post the parent message, attach *image*, then post replies in order.

        Raises DependencyError when Slack rejects the parent. Everything after
        the parent is best-effort.
        """
        blocks = list(parent_blocks or [])
        embedded = False
        if image is not None and image.url and self.slack.probe_image(image.url):
            blocks = ensure_image_in_blocks(blocks, image.url, image.alt)
            # An existing image block wins; ours then goes to the thread.
            embedded = any(
                isinstance(b, dict) and b.get("type") == "image" and b.get("image_url") == image.url
                for b in blocks
            )

        response = self.slack.post_message(token, channel, parent_text, blocks or None)
        if not response.ok or not response.ts:
            raise DependencyError("slack", explain_error(response), code=response.error)
        receipt = DeliveryReceipt(channel=response.channel or channel, timestamp=response.ts)
        logger.info("Posted parent message to %s (ts=%s)", receipt.channel, receipt.timestamp)

        if image is not None and not embedded:
            self._attach_file(token, receipt, image)

        for index, reply_blocks in enumerate(reply_blocks_list or []):
            try:
                self.post_reply(token, receipt.channel, receipt.timestamp, parent_text, reply_blocks)
            except Exception as exc:
                logger.warning("Reply %d to %s failed: %s", index, receipt.timestamp, describe_error(exc))
        return receipt

    def post_reply(
        self,
        token: str,
        channel: str,
        thread_ts: str,
        text: str,
        blocks: list[dict[str, Any]] | None = None,
    ) -> SlackResponse:
        response = self.slack.post_message(token, channel, text, blocks or None, thread_ts=thread_ts)
        if not response.ok:
            raise DependencyError("slack", explain_error(response), code=response.error)
        return response

    def _attach_file(self, token: str, receipt: DeliveryReceipt, image: DeliveryImage) -> None:
        try:
            data = image.data
            if data is None and image.url:
                data = self.slack.download(image.url)
            if not data:
                return
            self.slack.upload_file(
                token,
                receipt.channel,
                receipt.timestamp,
                data,
                image.file_name,
                title=image.alt or image.file_name,
            )
            logger.info("Uploaded %s to thread %s", image.file_name, receipt.timestamp)
        except Exception as exc:
            logger.warning("Visualization upload to Slack failed: %s", describe_error(exc))
