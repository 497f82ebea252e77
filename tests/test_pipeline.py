"""Tests for content resolution — precedence, query degradation, visualization."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from slackcast.errors import DependencyError
from slackcast.schemas.jobs import MessagePayload
from slackcast.services.pipeline import ContentResolver
from slackcast.services.records import MessageSpec

VIZ_BLOCKS = [
    {"type": "section", "text": {"type": "mrkdwn", "text": "Revenue for {{company_id}}: {{revenue}}"}},
    {"type": "image", "image_url": "{{visualization_url}}", "alt_text": "table"},
]


def _message(**overrides) -> MessageSpec:
    fields = dict(
        id="M1",
        name="Weekly",
        workspace_id="W1",
        company_id="C1",
        channel_id="C123",
        sql_text=None,
        blocks=[],
    )
    fields.update(overrides)
    return MessageSpec(**fields)


@pytest.fixture
def warehouse():
    wh = MagicMock()
    wh.execute.return_value = None
    return wh


@pytest.fixture
def render():
    return MagicMock(return_value=b"\x89PNG")


@pytest.fixture
def store():
    s = MagicMock()
    s.upload_image.return_value = "https://cdn.example/slack-images/t.png"
    return s


@pytest.fixture
def resolver(warehouse, render, store):
    return ContentResolver(warehouse, render, store, query_timeout_ms=1000)


class TestPrecedence:
    def test_live_blocks_win_over_template(self, resolver):
        msg = _message(blocks=[{"type": "divider"}])
        live = MessagePayload(parentText="Hello", parentBlocks=[{"type": "header", "text": {"type": "plain_text", "text": "{{template_name}}"}}])
        content = resolver.resolve(msg, live)
        assert content.text == "Hello"
        assert content.blocks == [{"type": "header", "text": {"type": "plain_text", "text": "Weekly"}}]

    def test_live_text_only(self, resolver):
        content = resolver.resolve(_message(blocks=[{"type": "divider"}]), MessagePayload(parentText="Just text"))
        assert content.text == "Just text"
        assert content.blocks == []

    def test_template_blocks_used_when_payload_empty(self, resolver):
        msg = _message(blocks=[{"type": "section", "text": {"type": "mrkdwn", "text": "Report for {{workspace_id}}"}}])
        content = resolver.resolve(msg, MessagePayload())
        assert content.text == "Message from Weekly"
        assert content.blocks[0]["text"]["text"] == "Report for W1"

    def test_fallback_text_without_blocks_or_query(self, resolver):
        assert resolver.resolve(_message()).text == "Weekly"

    def test_fallback_text_with_rows(self, resolver, warehouse):
        warehouse.execute.return_value = [{"a": 1}, {"a": 2}]
        content = resolver.resolve(_message(sql_text="select 1"))
        assert content.text.startswith("Weekly\n\nQuery returned 2 row(s).")
        assert content.row_count == 2

    def test_fallback_text_no_data(self, resolver):
        content = resolver.resolve(_message(sql_text="select 1"))
        assert content.text == "Weekly\n\nQuery executed but returned no data."

    def test_child_default_text(self, resolver):
        child = _message(id="M2", name="Details", blocks=[{"type": "divider"}])
        assert resolver.resolve_child(child).text == "Reply from Details"


class TestQuery:
    def test_query_scoped_to_company(self, resolver, warehouse):
        resolver.resolve(_message(sql_text="select * from t where company_id = :company_id"))
        warehouse.execute.assert_called_once_with(
            "select * from t where company_id = :company_id", "C1", 1000
        )

    def test_blank_sql_is_not_run(self, resolver, warehouse):
        resolver.resolve(_message(sql_text="   "))
        warehouse.execute.assert_not_called()

    def test_query_failure_degrades_to_no_data(self, resolver, warehouse):
        warehouse.execute.side_effect = DependencyError("warehouse", "timed out")
        content = resolver.resolve(_message(sql_text="select 1", blocks=VIZ_BLOCKS))
        assert content.rows is None
        # no rows: no visualization, image block dropped, unknown keys blank
        assert content.blocks == [
            {"type": "section", "text": {"type": "mrkdwn", "text": "Revenue for C1: "}}
        ]

    def test_first_row_fills_placeholders(self, resolver, warehouse, render):
        warehouse.execute.return_value = [{"revenue": "1200"}]
        content = resolver.resolve(_message(sql_text="select 1", blocks=VIZ_BLOCKS))
        assert content.blocks[0]["text"]["text"] == "Revenue for C1: 1200"


class TestVisualization:
    def test_rendered_and_uploaded_when_placeholder_and_rows(self, resolver, warehouse, render, store):
        warehouse.execute.return_value = [{"revenue": 10}]
        content = resolver.resolve(_message(sql_text="select 1", blocks=VIZ_BLOCKS))

        render.assert_called_once()
        assert "<table>" in render.call_args.args[0]
        store.upload_image.assert_called_once_with(b"\x89PNG", "Weekly_table.png", "M1", "C123")
        assert content.blocks[1] == {
            "type": "image",
            "image_url": "https://cdn.example/slack-images/t.png",
            "alt_text": "table",
        }
        assert content.artifact.public_url == "https://cdn.example/slack-images/t.png"

    def test_delivery_channel_overrides_message_channel(self, resolver, warehouse, store):
        warehouse.execute.return_value = [{"revenue": 10}]
        blocks = VIZ_BLOCKS + [{"type": "context", "elements": [{"type": "mrkdwn", "text": "{{channel_id}}"}]}]
        content = resolver.resolve(_message(sql_text="select 1", blocks=blocks), channel_id="C777")

        assert content.context["channel_id"] == "C777"
        assert content.blocks[-1]["elements"][0]["text"] == "C777"
        assert store.upload_image.call_args.args[3] == "C777"

    def test_not_rendered_without_placeholder(self, resolver, warehouse, render):
        warehouse.execute.return_value = [{"revenue": 10}]
        resolver.resolve(_message(sql_text="select 1", blocks=[{"type": "divider"}]))
        render.assert_not_called()

    def test_render_failure_degrades(self, resolver, warehouse, render, store):
        warehouse.execute.return_value = [{"revenue": 10}]
        render.side_effect = DependencyError("renderer", "browser crashed")
        content = resolver.resolve(_message(sql_text="select 1", blocks=VIZ_BLOCKS))

        store.upload_image.assert_not_called()
        assert content.artifact is None
        assert [b["type"] for b in content.blocks] == ["section"]

    def test_upload_failure_keeps_bytes_but_drops_image_block(self, resolver, warehouse, store):
        warehouse.execute.return_value = [{"revenue": 10}]
        store.upload_image.side_effect = DependencyError("object_store", "denied")
        content = resolver.resolve(_message(sql_text="select 1", blocks=VIZ_BLOCKS))

        assert content.artifact.data == b"\x89PNG"
        assert content.artifact.public_url is None
        assert [b["type"] for b in content.blocks] == ["section"]

    def test_finalize_extra_blocks_against_context(self, resolver):
        content = resolver.resolve(_message(blocks=[{"type": "divider"}]))
        replies = resolver.finalize([{"type": "section", "text": {"type": "mrkdwn", "text": "{{channel_id}}"}}], content)
        assert replies[0]["text"]["text"] == "C123"
