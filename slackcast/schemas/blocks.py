"""Slack blocks as a closed tagged union.

Only the kinds the pipeline inspects are modelled (``section``, ``image``,
``context``); everything else is an :class:`OpaqueBlock`. All models keep
unknown fields, so ``dump_blocks(parse_blocks(raw)) == raw`` for any
structurally sound input.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


class _Block(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str


class ImageBlock(_Block):
    type: Literal["image"]
    image_url: str | None = None
    alt_text: str | None = None


class SectionBlock(_Block):
    type: Literal["section"]
    accessory: dict[str, Any] | None = None


class ContextBlock(_Block):
    type: Literal["context"]
    elements: list[dict[str, Any]] = []


class OpaqueBlock(_Block):
    pass


Block = Union[ImageBlock, SectionBlock, ContextBlock, OpaqueBlock]

_KINDS: dict[str, type[_Block]] = {
    "image": ImageBlock,
    "section": SectionBlock,
    "context": ContextBlock,
}


def parse_block(raw: dict[str, Any]) -> Block | None:
    """Parse one raw block; returns None when it is not a usable block at all."""
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        return None
    model = _KINDS.get(raw["type"], OpaqueBlock)
    try:
        return model.model_validate(raw)
    except PydanticValidationError:
        logger.warning("Malformed %s block dropped", raw["type"])
        return None


def parse_blocks(raw_blocks: list[Any]) -> list[Block]:
    if not isinstance(raw_blocks, list):
        logger.warning("Slack blocks is not a list, using no blocks")
        return []
    parsed = (parse_block(b) for b in raw_blocks)
    return [b for b in parsed if b is not None]


def dump_blocks(blocks: list[Block]) -> list[dict[str, Any]]:
    return [b.model_dump(exclude_unset=True) for b in blocks]


def is_valid_image_url(url: object) -> bool:
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
