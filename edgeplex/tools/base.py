from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from mcp.types import ImageContent, TextContent, Tool

from edgeplex.core.errors import EdgeplexError

ToolPayload = dict[str, Any]
ContentBlock = TextContent | ImageContent
ToolHandler = Callable[[ToolPayload], Awaitable[list[ContentBlock]]]


class ToolFailure(EdgeplexError):
    """Whole-call failure; the message is returned to the client as an error result."""


@dataclass(frozen=True)
class ToolBinding:
    tool: Tool
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.tool.name


def text_block(text: str) -> TextContent:
    return TextContent(type="text", text=text)


def png_block(image: bytes) -> ImageContent:
    return ImageContent(type="image", data=base64.b64encode(image).decode("ascii"), mimeType="image/png")
