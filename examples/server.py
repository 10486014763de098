# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Mount MCP next to ordinary routes of an existing Starlette app.

Run with::

    $ uv run python examples/server.py

Clients connect to ``http://127.0.0.1:8000/api/mcp/sse``; ``/ping`` keeps
answering as before.
"""

from __future__ import annotations

import logging

from mcp import types
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
import uvicorn

from mcpmount import MCPHandler, with_base_path, with_engine_options
from mcpmount.engine import with_instructions, with_tool_capabilities
from mcpmount.utils import get_logger, setup_logger


setup_logger(level=logging.INFO)
log = get_logger("examples.server")


async def ping(request: Request) -> PlainTextResponse:
    return PlainTextResponse("pong")


def hello(request: types.CallToolRequest) -> str:
    name = (request.params.arguments or {}).get("name", "world")
    log.info("hello called", extra={"event": "example.hello", "name": name})
    return f"Hello, {name}!"


HELLO = types.Tool(
    name="hello",
    description="Greet someone by name.",
    inputSchema={"type": "object", "properties": {"name": {"type": "string"}}},
)


app = Starlette()
app.add_route("/ping", ping, methods=["GET"])

handler = MCPHandler(
    "example-server",
    "1.0.0",
    with_base_path("/api/mcp"),
    with_engine_options(with_tool_capabilities(True), with_instructions("Say hello.")),
)
handler.add_tool(HELLO, hello)
handler.register(app)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
