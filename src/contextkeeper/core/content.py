"""Transcript payload variants and their canonical text form."""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str = ""


class BlocksContent(BaseModel):
    """A list of content blocks (``{"type": "text", "text": ...}`` and friends)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["blocks"] = "blocks"
    blocks: list[Any] = Field(default_factory=list)


class RawContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["raw"] = "raw"
    value: Any = None


Content = Annotated[Union[TextContent, BlocksContent, RawContent], Field(discriminator="kind")]


def wrap_content(value: Any) -> TextContent | BlocksContent | RawContent:
    """Wrap an untyped payload into its ``Content`` variant."""
    if isinstance(value, (TextContent, BlocksContent, RawContent)):
        return value
    if value is None:
        return TextContent(text="")
    if isinstance(value, str):
        return TextContent(text=value)
    if isinstance(value, (list, tuple)):
        return BlocksContent(blocks=list(value))
    if isinstance(value, dict) and value.get("kind") in ("text", "blocks", "raw"):
        try:
            return _VARIANTS[value["kind"]].model_validate(value)
        except ValueError:
            pass
    return RawContent(value=value)


def coerce_text(content: Any) -> str:
    """Return the canonical text of any payload. Never raises."""
    content = wrap_content(content)
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, BlocksContent):
        parts = [_block_text(block) for block in content.blocks]
        return "\n".join(p for p in parts if p)
    return stringify(content.value)


def stringify(value: Any) -> str:
    """JSON-dump non-string values, falling back to ``str``."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def _block_text(block: Any) -> str:
    if isinstance(block, str):
        return block
    if isinstance(block, dict):
        if isinstance(block.get("text"), str):
            return block["text"]
        inner = block.get("content")
        if isinstance(inner, str):
            return inner
        if isinstance(inner, list):
            return coerce_text(inner)
        if block.get("type") == "tool_use":
            return stringify(block.get("input"))
    return stringify(block)


_VARIANTS: dict[str, type[BaseModel]] = {
    "text": TextContent,
    "blocks": BlocksContent,
    "raw": RawContent,
}
