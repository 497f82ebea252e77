"""Tests for placeholder substitution, block validation and image embedding."""

from __future__ import annotations

from slackcast.schemas.blocks import is_valid_image_url, parse_block
from slackcast.services.placeholders import (
    build_context,
    contains_placeholder,
    ensure_image_in_blocks,
    finalize_blocks,
    substitute,
    substitute_text,
    validate_blocks,
)

CTX = build_context(
    template_name="Weekly",
    workspace_id="W1",
    company_id="C1",
    channel_id="C123",
    first_row={"total": 42, "region": "EU"},
)


class TestSubstitution:
    def test_workspace_id(self):
        assert substitute_text("Report for {{workspace_id}}", CTX) == "Report for W1"

    def test_unknown_key_becomes_empty(self):
        assert substitute_text("x{{missing}}y", CTX) == "xy"

    def test_whitespace_inside_braces(self):
        assert substitute_text("{{ total }} in {{region }}", CTX) == "42 in EU"

    def test_visualization_url(self):
        assert substitute_text("{{visualization_url}}", CTX, "https://img/x.png") == "https://img/x.png"
        assert substitute_text("{{visualization_url}}", CTX, None) == ""

    def test_walks_only_string_leaves(self):
        blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": "{{region}}"}, "n": 3}]
        assert substitute(blocks, CTX) == [{"type": "section", "text": {"type": "mrkdwn", "text": "EU"}, "n": 3}]

    def test_row_value_with_quotes_does_not_break_structure(self):
        ctx = build_context(
            template_name="t", workspace_id="W1", company_id=None, channel_id="C", first_row={"q": 'a"b}'}
        )
        out = substitute([{"type": "section", "text": {"type": "plain_text", "text": "{{q}}"}}], ctx)
        assert out[0]["text"]["text"] == 'a"b}'

    def test_context_includes_row_columns(self):
        assert CTX["template_name"] == "Weekly"
        assert CTX["total"] == 42

    def test_contains_placeholder(self):
        blocks = [{"type": "image", "image_url": "{{ visualization_url }}"}]
        assert contains_placeholder(blocks, "visualization_url")
        assert not contains_placeholder([{"type": "divider"}], "visualization_url")


class TestValidation:
    def test_empty_url_image_dropped(self):
        assert validate_blocks([{"type": "image", "image_url": "", "alt_text": "x"}]) == []

    def test_valid_image_kept(self):
        block = {"type": "image", "image_url": "https://example.com/a.png", "alt_text": "chart"}
        assert validate_blocks([block]) == [block]

    def test_non_http_image_dropped(self):
        assert validate_blocks([{"type": "image", "image_url": "ftp://x/a.png"}]) == []

    def test_section_image_accessory_removed_but_section_kept(self):
        block = {
            "type": "section",
            "text": {"type": "mrkdwn", "text": "hi"},
            "accessory": {"type": "image", "image_url": "", "alt_text": "a"},
        }
        assert validate_blocks([block]) == [{"type": "section", "text": {"type": "mrkdwn", "text": "hi"}}]

    def test_section_button_accessory_untouched(self):
        block = {"type": "section", "text": {"type": "mrkdwn", "text": "hi"}, "accessory": {"type": "button"}}
        assert validate_blocks([block]) == [block]

    def test_context_image_elements_filtered(self):
        block = {
            "type": "context",
            "elements": [
                {"type": "image", "image_url": "", "alt_text": "a"},
                {"type": "mrkdwn", "text": "note"},
            ],
        }
        assert validate_blocks([block]) == [{"type": "context", "elements": [{"type": "mrkdwn", "text": "note"}]}]

    def test_context_left_empty_is_dropped(self):
        block = {"type": "context", "elements": [{"type": "image", "image_url": "nope"}]}
        assert validate_blocks([block]) == []

    def test_unknown_block_types_pass_through(self):
        blocks = [{"type": "divider"}, {"type": "header", "text": {"type": "plain_text", "text": "H"}}]
        assert validate_blocks(blocks) == blocks

    def test_garbage_entries_dropped(self):
        assert validate_blocks(["nope", {"no_type": True}, {"type": "divider"}]) == [{"type": "divider"}]

    def test_not_a_list(self):
        assert validate_blocks("nope") == []

    def test_parse_block_models(self):
        assert parse_block({"type": "image", "image_url": "https://a/b.png"}).image_url == "https://a/b.png"
        assert parse_block({"type": "divider", "x": 1}).model_dump() == {"type": "divider", "x": 1}

    def test_is_valid_image_url(self):
        assert is_valid_image_url("https://a.example/x.png")
        assert not is_valid_image_url("  ")
        assert not is_valid_image_url("https://")
        assert not is_valid_image_url(None)


class TestFinalize:
    def test_unresolved_visualization_image_is_dropped(self):
        blocks = [
            {"type": "section", "text": {"type": "mrkdwn", "text": "Report for {{workspace_id}}"}},
            {"type": "image", "image_url": "{{visualization_url}}", "alt_text": "table"},
        ]
        assert finalize_blocks(blocks, CTX, None) == [
            {"type": "section", "text": {"type": "mrkdwn", "text": "Report for W1"}}
        ]

    def test_resolved_visualization_image_kept(self):
        blocks = [{"type": "image", "image_url": "{{visualization_url}}", "alt_text": "table"}]
        assert finalize_blocks(blocks, CTX, "https://cdn/x.png") == [
            {"type": "image", "image_url": "https://cdn/x.png", "alt_text": "table"}
        ]


class TestEnsureImage:
    def test_empty_list_gets_single_image(self):
        assert ensure_image_in_blocks([], "https://x/img.png") == [
            {"type": "image", "image_url": "https://x/img.png", "alt_text": "Visualization"}
        ]

    def test_custom_alt(self):
        out = ensure_image_in_blocks([{"type": "divider"}], "https://x/img.png", "Chart")
        assert out[-1] == {"type": "image", "image_url": "https://x/img.png", "alt_text": "Chart"}

    def test_existing_image_unchanged(self):
        blocks = [{"type": "image", "image_url": "https://x/other.png", "alt_text": "o"}]
        assert ensure_image_in_blocks(blocks, "https://x/img.png") == blocks
