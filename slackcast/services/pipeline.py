"""Content Resolution Pipeline — query, visualize, substitute, validate.

Every external step degrades instead of aborting: a failed query becomes "no
data", a failed render or upload becomes "no visualization". Only delivery
itself (see ``services.delivery``) can fail a run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from slackcast.config import settings
from slackcast.errors import describe_error
from slackcast.schemas.jobs import MessagePayload
from slackcast.services.placeholders import (
    VISUALIZATION_KEY,
    build_context,
    contains_placeholder,
    finalize_blocks,
)
from slackcast.services.records import MessageSpec
from slackcast.services.table_renderer import render_table_html

logger = logging.getLogger(__name__)

ADD_BLOCKS_HINT = "_Add Slack blocks to your template with {{visualization_url}} for table visualizations!_"


class QueryEngine(Protocol):
    def execute(self, sql_text: str, scope_id: str | None, timeout_ms: int | None = None) -> list[dict] | None: ...


class ImageStore(Protocol):
    def upload_image(self, data: bytes, name_hint: str = ..., message_id: str | None = ...,
                     channel_id: str | None = ...) -> str: ...


@dataclass
class RenderArtifact:
    data: bytes
    file_name: str
    public_url: str | None = None


@dataclass
class ResolvedContent:
    text: str
    blocks: list[dict[str, Any]] = field(default_factory=list)
    rows: list[dict[str, Any]] | None = None
    artifact: RenderArtifact | None = None
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return len(self.rows or [])


class ContentResolver:
    def __init__(
        self,
        query_engine: QueryEngine,
        render_html: Callable[[str], bytes],
        image_store: ImageStore,
        query_timeout_ms: int | None = None,
    ) -> None:
        self.query_engine = query_engine
        self.render_html = render_html
        self.image_store = image_store
        self.query_timeout_ms = query_timeout_ms or settings.QUERY_TIMEOUT_MS

    def resolve(
        self,
        message: MessageSpec,
        live: MessagePayload | None = None,
        channel_id: str | None = None,
    ) -> ResolvedContent:
        """Parent content: live payload first, then template blocks, then fallback text.

        *channel_id* is the channel actually delivered to; it defaults to the
        message's own channel.
        """
        logger.info("Resolving message %s (%s)", message.name, message.id)
        use_live = live is not None and live.has_live_content
        source_blocks = live.parent_blocks if use_live else message.blocks
        default_text = f"Message from {message.name}"
        if use_live and live.parent_text:
            default_text = live.parent_text
        return self._resolve(message, source_blocks, default_text, channel_id, force_text=use_live)

    def resolve_child(self, child: MessageSpec, channel_id: str | None = None) -> ResolvedContent:
        return self._resolve(child, child.blocks, f"Reply from {child.name}", channel_id)

    def finalize(self, blocks: list[Any], content: ResolvedContent) -> list[dict[str, Any]]:
        """Substitute and validate extra blocks (e.g. live replies) against *content*'s context."""
        url = content.artifact.public_url if content.artifact else None
        return finalize_blocks(blocks, content.context, url)

    def render_visualization(
        self, html: str, file_name: str, message_id: str | None, channel_id: str | None
    ) -> RenderArtifact | None:
        """Render *html* and persist it; None on any failure."""
        try:
            data = self.render_html(html)
        except Exception as exc:
            logger.warning("Visualization render failed: %s", describe_error(exc))
            return None
        artifact = RenderArtifact(data=data, file_name=file_name)
        try:
            artifact.public_url = self.image_store.upload_image(data, file_name, message_id, channel_id)
        except Exception as exc:
            logger.warning("Visualization upload failed: %s", describe_error(exc))
        return artifact

    # ── Internals ──────────────────────────────────────────────────────────

    def _resolve(
        self,
        message: MessageSpec,
        source_blocks: list[Any],
        default_text: str,
        channel_id: str | None = None,
        force_text: bool = False,
    ) -> ResolvedContent:
        channel_id = channel_id or message.channel_id
        rows = self._run_query(message)
        context = build_context(
            template_name=message.name,
            workspace_id=message.workspace_id,
            company_id=message.company_id,
            channel_id=channel_id,
            first_row=rows[0] if rows else None,
        )
        content = ResolvedContent(text=default_text, rows=rows, context=context)

        if source_blocks and rows and contains_placeholder(source_blocks, VISUALIZATION_KEY):
            html = render_table_html(rows, message.viz_config, title=message.name)
            if html:
                content.artifact = self.render_visualization(
                    html, f"{message.name}_table.png", message.id, channel_id
                )

        if source_blocks:
            content.blocks = self.finalize(source_blocks, content)
        elif not force_text:
            content.text = self._fallback_text(message, rows)
        return content

    def _run_query(self, message: MessageSpec) -> list[dict[str, Any]] | None:
        if not message.has_query:
            return None
        try:
            return self.query_engine.execute(message.sql_text, message.company_id, self.query_timeout_ms)
        except Exception as exc:
            logger.error("SQL execution failed for %s: %s", message.id, describe_error(exc))
            return None

    @staticmethod
    def _fallback_text(message: MessageSpec, rows: list[dict[str, Any]] | None) -> str:
        text = message.name
        if rows:
            text += f"\n\nQuery returned {len(rows)} row(s)."
            text += f"\n\n{ADD_BLOCKS_HINT}"
        elif message.has_query:
            text += "\n\nQuery executed but returned no data."
        return text
