"""Placeholder substitution and Slack block validation.

``{{key}}`` tokens are replaced inside string values only, by walking the
block tree; dict keys and JSON structure are never rewritten, so a value like
``"a\\"b"`` from a query row cannot break the payload.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from slackcast.schemas.blocks import (
    Block,
    ContextBlock,
    ImageBlock,
    SectionBlock,
    dump_blocks,
    is_valid_image_url,
    parse_blocks,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")
VISUALIZATION_KEY = "visualization_url"


def contains_placeholder(blocks: Any, key: str) -> bool:
    """True if any string leaf in *blocks* references ``{{key}}``."""
    if isinstance(blocks, str):
        return any(m.group(1).strip() == key for m in PLACEHOLDER_RE.finditer(blocks))
    if isinstance(blocks, Mapping):
        return any(contains_placeholder(v, key) for v in blocks.values())
    if isinstance(blocks, (list, tuple)):
        return any(contains_placeholder(v, key) for v in blocks)
    return False


def build_context(
    *,
    template_name: str,
    workspace_id: str,
    company_id: str | None,
    channel_id: str,
    first_row: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    context: dict[str, Any] = {
        "template_name": template_name,
        "workspace_id": workspace_id,
        "company_id": company_id,
        "channel_id": channel_id,
    }
    if first_row:
        context.update(first_row)
    return context


def substitute_text(text: str, context: Mapping[str, Any], visualization_url: str | None = None) -> str:
    def _replace(match: re.Match) -> str:
        key = match.group(1).strip()
        if key == VISUALIZATION_KEY:
            if visualization_url:
                return visualization_url
            logger.warning("No visualization available for {{%s}} placeholder", VISUALIZATION_KEY)
            return ""
        value = context.get(key)
        return "" if value is None else _stringify(value)

    return PLACEHOLDER_RE.sub(_replace, text)


def substitute(value: Any, context: Mapping[str, Any], visualization_url: str | None = None) -> Any:
    """Return a copy of *value* with placeholders replaced in every string leaf."""
    if isinstance(value, str):
        return substitute_text(value, context, visualization_url)
    if isinstance(value, Mapping):
        return {k: substitute(v, context, visualization_url) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute(v, context, visualization_url) for v in value]
    return value


def validate_blocks(raw_blocks: list[Any]) -> list[dict[str, Any]]:
    """Drop image references Slack would reject the whole payload for."""
    kept: list[Block] = []
    for index, block in enumerate(parse_blocks(raw_blocks)):
        checked = _validate_block(block, index)
        if checked is not None:
            kept.append(checked)
    return dump_blocks(kept)


def ensure_image_in_blocks(
    blocks: list[dict[str, Any]], image_url: str, alt_text: str | None = None
) -> list[dict[str, Any]]:
    """Append an image block for *image_url* unless the blocks already carry one."""
    if any(isinstance(b, dict) and b.get("type") == "image" for b in blocks):
        return blocks
    return [*blocks, {"type": "image", "image_url": image_url, "alt_text": alt_text or "Visualization"}]


def finalize_blocks(
    blocks: list[Any], context: Mapping[str, Any], visualization_url: str | None = None
) -> list[dict[str, Any]]:
    return validate_blocks(substitute(blocks, context, visualization_url))


def _validate_block(block: Block, index: int) -> Block | None:
    if isinstance(block, ImageBlock):
        if not is_valid_image_url(block.image_url):
            logger.warning("Invalid or empty image URL in block %d: %r", index, block.image_url)
            return None
        return block

    if isinstance(block, SectionBlock) and block.accessory is not None:
        accessory = block.accessory
        if accessory.get("type") == "image" and not is_valid_image_url(accessory.get("image_url")):
            logger.warning("Invalid accessory image URL in block %d: %r", index, accessory.get("image_url"))
            data = block.model_dump(exclude_unset=True)
            data.pop("accessory", None)
            return SectionBlock.model_validate(data)
        return block

    if isinstance(block, ContextBlock):
        elements = [
            e for e in block.elements
            if not (isinstance(e, dict) and e.get("type") == "image" and not is_valid_image_url(e.get("image_url")))
        ]
        if not elements:
            logger.warning("Context block %d has no valid elements, removing block", index)
            return None
        if len(elements) != len(block.elements):
            block.elements = elements
        return block

    return block


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
