# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Tool records and result coercion for the engine."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import json
from typing import Any

from mcp import types


ToolHandler = Callable[[types.CallToolRequest], Any]
"""Receives the full ``tools/call`` request; may be sync or async."""

ToolMiddleware = Callable[[ToolHandler], ToolHandler]


@dataclass(frozen=True, slots=True)
class ServerTool:
    """A tool definition paired with the handler that executes it."""

    tool: types.Tool
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.tool.name


def apply_middlewares(handler: ToolHandler, middlewares: Iterable[ToolMiddleware]) -> ToolHandler:
    """Wrap *handler* so the first middleware is the outermost layer."""
    for middleware in reversed(list(middlewares)):
        handler = middleware(handler)
    return handler


def normalize_tool_result(value: Any) -> types.CallToolResult:
    """Coerce handler output into ``CallToolResult``.

    Accepts a ready ``CallToolResult``, a string, a single content block, or an
    iterable of those.  Mappings become structured content with a JSON text
    rendering alongside.
    """
    if isinstance(value, types.CallToolResult):
        return value
    if isinstance(value, dict):
        return types.CallToolResult(content=[_as_text(value)], structuredContent=value)
    return types.CallToolResult(content=_content_blocks(value))


def error_result(message: str) -> types.CallToolResult:
    return types.CallToolResult(content=[types.TextContent(type="text", text=message)], isError=True)


def _content_blocks(value: Any) -> list[types.ContentBlock]:
    if value is None:
        return []
    if isinstance(value, (str, types.TextContent, types.ImageContent, types.AudioContent, types.EmbeddedResource)):
        return [_as_text(value) if isinstance(value, str) else value]
    if isinstance(value, Iterable) and not isinstance(value, (bytes, bytearray, dict)):
        blocks: list[types.ContentBlock] = []
        for item in value:
            blocks.extend(_content_blocks(item))
        return blocks
    return [_as_text(value)]


def _as_text(value: Any) -> types.TextContent:
    if isinstance(value, str):
        return types.TextContent(type="text", text=value)
    try:
        text = json.dumps(value, ensure_ascii=False)
    except TypeError:
        text = str(value)
    return types.TextContent(type="text", text=text)


__all__ = [
    "ServerTool",
    "ToolHandler",
    "ToolMiddleware",
    "apply_middlewares",
    "error_result",
    "normalize_tool_result",
]
