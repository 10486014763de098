# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""MCPHandler forwards tool and notification calls to its engine unchanged."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import threading
from typing import Any

import anyio
import pytest
from starlette.applications import Starlette

from mcpmount import (
    MCPEngine,
    MCPHandler,
    ServerTool,
    SessionNotFoundError,
    SessionNotInitializedError,
    with_engine_factory,
    with_engine_options,
)
from mcpmount.engine import with_tool_capabilities
from tests.helpers import attach_session, drain, make_tool


class RecordingEngine:
    """Engine double that records every forwarded call."""

    def __init__(self, name: str, version: str, *options: Any) -> None:
        self.name = name
        self.version = version
        self.options = options
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.known_sessions = {"live"}
        self._lock = threading.Lock()

    def _record(self, method: str, *args: Any) -> dict[str, Any]:
        with self._lock:
            self.calls.append((method, args))
        return {"handled": method}

    def _require(self, session_id: str) -> None:
        if session_id not in self.known_sessions:
            raise SessionNotFoundError(session_id)

    def add_tool(self, tool, handler) -> dict[str, Any]:
        return self._record("add_tool", tool, handler)

    def add_tools(self, *tools) -> dict[str, Any]:
        return self._record("add_tools", *tools)

    def add_session_tool(self, session_id, tool, handler) -> dict[str, Any]:
        self._require(session_id)
        return self._record("add_session_tool", session_id, tool, handler)

    def add_session_tools(self, session_id, *tools) -> dict[str, Any]:
        self._require(session_id)
        return self._record("add_session_tools", session_id, *tools)

    def delete_session_tools(self, session_id, *names) -> dict[str, Any]:
        self._require(session_id)
        return self._record("delete_session_tools", session_id, *names)

    def notify_all(self, method, params=None) -> dict[str, Any]:
        return self._record("notify_all", method, params)

    def notify_session(self, session_id, method, params=None) -> dict[str, Any]:
        self._require(session_id)
        return self._record("notify_session", session_id, method, params)


def _handler(*options: Any) -> tuple[MCPHandler, RecordingEngine]:
    handler = MCPHandler("svc", "2.0", with_engine_factory(RecordingEngine), *options)
    engine = handler.engine
    assert isinstance(engine, RecordingEngine)
    return handler, engine


def test_engine_factory_receives_identity_and_options() -> None:
    marker = object()
    _, engine = _handler(with_engine_options(marker))

    assert (engine.name, engine.version) == ("svc", "2.0")
    assert engine.options == (marker,)


def test_pass_throughs_forward_arguments() -> None:
    handler, engine = _handler()
    tool = make_tool("t")
    entry = ServerTool(make_tool("u"), lambda r: None)

    def run(request):
        return None

    results = [
        handler.add_tool(tool, run),
        handler.add_tools(entry),
        handler.add_session_tool("live", tool, run),
        handler.add_session_tools("live", entry),
        handler.delete_session_tools("live", "t", "u"),
        handler.notify_all("notifications/custom", {"a": 1}),
        handler.notify_session("live", "notifications/custom"),
    ]

    assert engine.calls == [
        ("add_tool", (tool, run)),
        ("add_tools", (entry,)),
        ("add_session_tool", ("live", tool, run)),
        ("add_session_tools", ("live", entry)),
        ("delete_session_tools", ("live", "t", "u")),
        ("notify_all", ("notifications/custom", {"a": 1})),
        ("notify_session", ("live", "notifications/custom", None)),
    ]
    assert results == [{"handled": method} for method, _ in engine.calls]


@pytest.mark.parametrize(
    "call",
    [
        lambda h: h.add_session_tool("ghost", make_tool("t"), lambda r: None),
        lambda h: h.add_session_tools("ghost"),
        lambda h: h.delete_session_tools("ghost", "t"),
        lambda h: h.notify_session("ghost", "notifications/custom"),
    ],
)
def test_unknown_session_errors_propagate(call) -> None:
    handler, engine = _handler()

    with pytest.raises(SessionNotFoundError):
        call(handler)
    assert engine.calls == []


def test_pass_throughs_work_after_register() -> None:
    handler, engine = _handler()
    handler.register(Starlette())

    handler.notify_all("notifications/custom")

    assert engine.calls == [("notify_all", ("notifications/custom", None))]


def test_concurrent_add_tool_from_threads() -> None:
    handler, engine = _handler()
    tools = [make_tool(f"tool-{index}") for index in range(32)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda tool: handler.add_tool(tool, lambda r: None), tools))

    recorded = {args[0].name for method, args in engine.calls if method == "add_tool"}
    assert recorded == {tool.name for tool in tools}


def test_concurrent_add_tool_on_real_engine_keeps_all_tools() -> None:
    handler = MCPHandler("svc", "1.0")
    names = [f"tool-{index}" for index in range(32)]

    def add(name: str) -> None:
        handler.add_tool(make_tool(name), lambda request: request.params.name)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(add, names))

    assert handler.engine.tool_names == sorted(names)

    async def invoke_all() -> list[str]:
        results = [await handler.engine.invoke_tool(name) for name in names]
        return [result.content[0].text for result in results]

    assert anyio.run(invoke_all) == names


def test_notify_session_on_real_engine() -> None:
    handler = MCPHandler("svc", "1.0", with_engine_options(with_tool_capabilities(True)))
    engine = handler.engine
    assert isinstance(engine, MCPEngine)
    _, live = attach_session(engine, "live")
    attach_session(engine, "pending", initialized=False)

    handler.add_session_tool("live", make_tool("private"), lambda r: None)
    handler.notify_session("live", "notifications/custom", {"x": 1})

    assert [message.method for message in drain(live)] == ["notifications/tools/list_changed", "notifications/custom"]
    with pytest.raises(SessionNotInitializedError):
        handler.notify_session("pending", "notifications/custom")
