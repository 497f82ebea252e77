"""SlackClient — thin, time-bounded wrapper over the Slack Web API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from slackcast import metrics
from slackcast.config import settings
from slackcast.errors import DependencyError

logger = logging.getLogger(__name__)

_ERROR_HINTS = {
    "invalid_blocks": "There are issues with the message blocks (likely invalid image URLs).",
    "channel_not_found": "The specified channel was not found or the bot is not a member.",
    "not_in_channel": "The bot is not a member of the specified channel.",
    "invalid_auth": "The Slack token is invalid or expired.",
}

# A cached token that Slack answers with one of these is not worth reusing
TOKEN_ERRORS = frozenset({"invalid_auth", "not_authed", "token_revoked", "token_expired", "account_inactive"})


@dataclass
class SlackResponse:
    ok: bool
    ts: str | None = None
    channel: str | None = None
    error: str | None = None
    raw: dict[str, Any] | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "SlackResponse":
        return cls(
            ok=bool(data.get("ok")),
            ts=data.get("ts"),
            channel=data.get("channel"),
            error=data.get("error"),
            raw=data,
        )


def explain_error(response: SlackResponse) -> str:
    message = f"Failed to send message: {response.error}"
    hint = _ERROR_HINTS.get(response.error or "")
    return f"{message}. {hint}" if hint else message


class SlackClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        probe_timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or settings.SLACK_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.SLACK_TIMEOUT_SECONDS
        self.probe_timeout = probe_timeout or settings.SLACK_PROBE_TIMEOUT_SECONDS
        self.http = session or requests.Session()

    # ── Messages ───────────────────────────────────────────────────────────

    def post_message(
        self,
        token: str,
        channel: str,
        text: str,
        blocks: list[dict[str, Any]] | None = None,
        thread_ts: str | None = None,
    ) -> SlackResponse:
        payload: dict[str, Any] = {"channel": channel, "text": text}
        if blocks:
            payload["blocks"] = blocks
        if thread_ts:
            payload["thread_ts"] = thread_ts
        data = self._call(token, "chat.postMessage", json=payload)
        response = SlackResponse.from_json(data)
        if not response.ok:
            logger.error("Slack API error for channel %s: %s", channel, response.error)
        return response

    # ── Files ──────────────────────────────────────────────────────────────

    def upload_file(
        self,
        token: str,
        channel: str,
        thread_ts: str | None,
        data: bytes,
        filename: str,
        title: str | None = None,
    ) -> dict[str, Any]:
        """Attach *data* to a channel/thread via the external upload flow."""
        ticket = self._call(
            token,
            "files.getUploadURLExternal",
            data={"filename": filename, "length": str(len(data))},
        )
        if not ticket.get("ok"):
            raise DependencyError("slack", f"files.getUploadURLExternal: {ticket.get('error')}",
                                  code=ticket.get("error"))

        try:
            resp = self.http.post(
                ticket["upload_url"],
                files={"file": (filename, data, "image/png")},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            metrics.dependency_failures.labels("slack").inc()
            raise DependencyError("slack", f"File upload failed: {exc}") from exc

        complete: dict[str, Any] = {
            "files": [{"id": ticket["file_id"], "title": title or filename}],
            "channel_id": channel,
        }
        if thread_ts:
            complete["thread_ts"] = thread_ts
        result = self._call(token, "files.completeUploadExternal", json=complete)
        if not result.get("ok"):
            raise DependencyError("slack", f"files.completeUploadExternal: {result.get('error')}",
                                  code=result.get("error"))
        return result

    # ── Image URLs ─────────────────────────────────────────────────────────

    def probe_image(self, url: str) -> bool:
        """True if *url* answers with an image content type within the probe timeout.

        HEAD first; servers that refuse HEAD get a one-byte ranged GET. Any
        error or timeout means "not embeddable".
        """
        try:
            resp = self.http.head(url, allow_redirects=True, timeout=self.probe_timeout)
            if resp.ok and _is_image(resp):
                return True
            resp = self.http.get(
                url,
                headers={"Range": "bytes=0-0"},
                stream=True,
                allow_redirects=True,
                timeout=self.probe_timeout,
            )
            try:
                return resp.status_code in (200, 206) and _is_image(resp)
            finally:
                resp.close()
        except requests.RequestException:
            logger.info("Image probe failed for %s, treating as not embeddable", url)
            return False

    def download(self, url: str) -> bytes:
        try:
            resp = self.http.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise DependencyError("image_source", f"Download of {url} failed: {exc}") from exc
        return resp.content

    # ── Internals ──────────────────────────────────────────────────────────

    def _call(self, token: str, method: str, **kwargs) -> dict[str, Any]:
        try:
            resp = self.http.post(
                f"{self.base_url}/{method}",
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
                **kwargs,
            )
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as exc:
            metrics.dependency_failures.labels("slack").inc()
            raise DependencyError("slack", f"{method} request failed: {exc}") from exc
        except ValueError as exc:
            metrics.dependency_failures.labels("slack").inc()
            raise DependencyError("slack", f"{method} returned invalid JSON") from exc


def _is_image(resp: requests.Response) -> bool:
    return resp.headers.get("Content-Type", "").lower().startswith("image/")
