# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Shared test helpers for mount, engine and transport tests."""

from __future__ import annotations

from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream
from mcp import types
from mcp.shared.message import SessionMessage
from starlette.types import ASGIApp, Message

from mcpmount.engine import EngineSession, MCPEngine


def make_tool(name: str, description: str | None = None) -> types.Tool:
    return types.Tool(
        name=name,
        description=description,
        inputSchema={"type": "object", "properties": {}},
    )


def initialize_request(request_id: int = 1) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "protocolVersion": types.LATEST_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": "pytest", "version": "0.0.0"},
        },
    }


INITIALIZED_NOTIFICATION = {"jsonrpc": "2.0", "method": "notifications/initialized"}


def attach_session(
    engine: MCPEngine, session_id: str = "session-1", *, initialized: bool = True, buffer: int = 10
) -> tuple[EngineSession, MemoryObjectReceiveStream[SessionMessage]]:
    """Register a session whose outbound queue the test reads directly."""
    send, receive = anyio.create_memory_object_stream[SessionMessage](buffer)
    session = EngineSession(session_id=session_id, outbound=send, initialized=initialized)
    engine.register_session(session)
    return session, receive


def drain(receive: MemoryObjectReceiveStream[SessionMessage]) -> list[Any]:
    """Return the JSON-RPC payloads currently queued on *receive*."""
    messages: list[Any] = []
    while True:
        try:
            item = receive.receive_nowait()
        except (anyio.WouldBlock, anyio.EndOfStream):
            return messages
        messages.append(item.message.root)


def _parse_event(block: str) -> tuple[str, str] | None:
    event = "message"
    data: list[str] = []
    seen = False
    for line in block.split("\n"):
        if not line or line.startswith(":"):
            continue
        key, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if key == "event":
            event, seen = value, True
        elif key == "data":
            data.append(value)
            seen = True
    return (event, "\n".join(data)) if seen else None


class SSEProbe:
    """Drive a streaming ASGI endpoint in-process and collect its SSE events.

    ``httpx.ASGITransport`` buffers the whole response body, which never
    completes for an event stream, so the probe speaks ASGI directly.  The
    client side stays connected until :meth:`disconnect` is called.
    """

    def __init__(self, app: ASGIApp, path: str, *, headers: dict[str, str] | None = None) -> None:
        self.app = app
        self.path = path
        self.headers = headers or {}
        self.status: int | None = None
        self.response_headers: dict[str, str] = {}
        self._buffer = ""
        self._disconnected = anyio.Event()
        self._events_in, self._events_out = anyio.create_memory_object_stream[tuple[str, str]](100)

    def _scope(self) -> dict[str, Any]:
        path, _, query = self.path.partition("?")
        headers = [(b"host", b"testserver"), (b"accept", b"text/event-stream")]
        headers.extend((key.lower().encode(), value.encode()) for key, value in self.headers.items())
        return {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "server": ("testserver", 80),
            "client": ("127.0.0.1", 50000),
            "root_path": "",
            "path": path,
            "raw_path": path.encode(),
            "query_string": query.encode(),
            "headers": headers,
        }

    async def run(self) -> None:
        try:
            await self.app(self._scope(), self._receive, self._send)
        finally:
            self._events_in.close()

    def disconnect(self) -> None:
        self._disconnected.set()

    async def next_event(self, timeout: float = 5.0) -> tuple[str, str]:
        with anyio.fail_after(timeout):
            return await self._events_out.receive()

    async def _receive(self) -> Message:
        await self._disconnected.wait()
        return {"type": "http.disconnect"}

    async def _send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.response_headers = {key.decode().lower(): value.decode() for key, value in message.get("headers", [])}
            return
        if message["type"] != "http.response.body":
            return

        self._buffer = (self._buffer + message.get("body", b"").decode()).replace("\r\n", "\n")
        while "\n\n" in self._buffer:
            block, self._buffer = self._buffer.split("\n\n", 1)
            event = _parse_event(block)
            if event is not None:
                await self._events_in.send(event)
