# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Session-aware MCP engine built on the reference SDK's low-level server.

:class:`MCPEngine` keeps three registries: global tools, live sessions and
per-session tools.  It answers ``tools/list`` and ``tools/call`` itself so a
session's private tools can shadow global ones, and it pushes arbitrary
notifications straight into a session's outbound queue.

Registry mutation is guarded by a re-entrant lock so tools can be added from
any thread.  Notification delivery never blocks: a full queue drops the
message for broadcasts and raises for targeted sends.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import threading
from typing import TYPE_CHECKING, Any

import anyio
from mcp import types
from mcp.server.lowlevel.server import NotificationOptions, Server
from mcp.shared.exceptions import McpError
from mcp.shared.message import SessionMessage

from .errors import NotificationQueueFullError, SessionError, SessionNotFoundError, SessionNotInitializedError
from .session import EngineSession, activate_session, current_session, reset_session
from .tools import (
    ServerTool,
    ToolHandler,
    ToolMiddleware,
    apply_middlewares,
    error_result,
    normalize_tool_result,
)
from ..utils import get_logger, maybe_await


if TYPE_CHECKING:
    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream


TOOLS_LIST_CHANGED = "notifications/tools/list_changed"
DEFAULT_EVENT_QUEUE_SIZE = 100


@dataclass(slots=True)
class EngineSettings:
    """Construction-time settings accumulated from :data:`EngineOption` calls."""

    tools_list_changed: bool = False
    instructions: str | None = None
    logging: bool = False
    tool_middlewares: list[ToolMiddleware] = field(default_factory=list)
    event_queue_size: int = DEFAULT_EVENT_QUEUE_SIZE


EngineOption = Callable[[EngineSettings], None]


def with_tool_capabilities(list_changed: bool) -> EngineOption:
    """Advertise ``tools.listChanged`` and notify clients when tools change."""

    def apply(settings: EngineSettings) -> None:
        settings.tools_list_changed = list_changed

    return apply


def with_instructions(instructions: str) -> EngineOption:
    def apply(settings: EngineSettings) -> None:
        settings.instructions = instructions

    return apply


def with_logging() -> EngineOption:
    """Advertise the logging capability and accept ``logging/setLevel``."""

    def apply(settings: EngineSettings) -> None:
        settings.logging = True

    return apply


def with_tool_middleware(*middlewares: ToolMiddleware) -> EngineOption:
    """Wrap every tool handler; earlier middlewares run first."""

    def apply(settings: EngineSettings) -> None:
        settings.tool_middlewares.extend(middlewares)

    return apply


def with_event_queue_size(size: int) -> EngineOption:
    """Bound each session's outbound queue (responses and notifications)."""

    def apply(settings: EngineSettings) -> None:
        settings.event_queue_size = size

    return apply


class MCPEngine(Server[Any, Any]):
    """Low-level MCP server with session-scoped tools and notifications."""

    def __init__(self, name: str, version: str, *options: EngineOption) -> None:
        settings = EngineSettings()
        for option in options:
            option(settings)
        self.settings = settings

        super().__init__(name, version=version, instructions=settings.instructions)
        self._logger = get_logger(f"mcpmount.engine.{name}")
        self._lock = threading.RLock()
        self._tools: dict[str, ServerTool] = {}
        self._sessions: dict[str, EngineSession] = {}
        self.client_log_level: types.LoggingLevel | None = None

        self.request_handlers[types.ListToolsRequest] = self._handle_list_tools
        self.request_handlers[types.CallToolRequest] = self._handle_call_tool
        if settings.logging:
            self.request_handlers[types.SetLevelRequest] = self._handle_set_level
        self.notification_handlers[types.InitializedNotification] = self._handle_initialized

    # //////////////////////////////////////////////////////////////////
    # Global tools
    # //////////////////////////////////////////////////////////////////

    @property
    def tool_names(self) -> list[str]:
        with self._lock:
            return sorted(self._tools)

    def add_tool(self, tool: types.Tool, handler: ToolHandler) -> None:
        self.add_tools(ServerTool(tool, handler))

    def add_tools(self, *tools: ServerTool) -> None:
        with self._lock:
            for entry in tools:
                self._tools[entry.name] = entry
        self._logger.debug("tools added", extra={"event": "engine.tools.add", "tools": [t.name for t in tools]})
        self._broadcast_list_changed()

    def delete_tools(self, *names: str) -> None:
        with self._lock:
            for name in names:
                self._tools.pop(name, None)
        self._broadcast_list_changed()

    # //////////////////////////////////////////////////////////////////
    # Sessions
    # //////////////////////////////////////////////////////////////////

    @property
    def sessions(self) -> tuple[EngineSession, ...]:
        with self._lock:
            return tuple(self._sessions.values())

    def register_session(self, session: EngineSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session
        self._logger.debug("session registered", extra={"event": "engine.session.open", "session_id": session.session_id})

    def unregister_session(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()
            self._logger.debug("session closed", extra={"event": "engine.session.close", "session_id": session_id})

    def get_session(self, session_id: str) -> EngineSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def create_streams(
        self,
    ) -> tuple[
        tuple[MemoryObjectSendStream[SessionMessage | Exception], MemoryObjectReceiveStream[SessionMessage | Exception]],
        tuple[MemoryObjectSendStream[SessionMessage], MemoryObjectReceiveStream[SessionMessage]],
    ]:
        """Return ``(inbound, outbound)`` stream pairs sized for one session."""
        inbound = anyio.create_memory_object_stream[SessionMessage | Exception](0)
        outbound = anyio.create_memory_object_stream[SessionMessage](self.settings.event_queue_size)
        return inbound, outbound

    async def run_session(
        self,
        session: EngineSession,
        read_stream: MemoryObjectReceiveStream[SessionMessage | Exception],
        write_stream: MemoryObjectSendStream[SessionMessage],
    ) -> None:
        """Serve one client over the given streams until they close.

        Handlers spawned by the SDK inherit the active session from this
        task's context.
        """
        token = activate_session(session)
        try:
            options = self.create_initialization_options(
                notification_options=NotificationOptions(tools_changed=self.settings.tools_list_changed),
                experimental_capabilities={},
            )
            await self.run(read_stream, write_stream, options)
        finally:
            reset_session(token)

    # //////////////////////////////////////////////////////////////////
    # Session tools
    # //////////////////////////////////////////////////////////////////

    def add_session_tool(self, session_id: str, tool: types.Tool, handler: ToolHandler) -> None:
        self.add_session_tools(session_id, ServerTool(tool, handler))

    def add_session_tools(self, session_id: str, *tools: ServerTool) -> None:
        with self._lock:
            session = self.get_session(session_id)
            for entry in tools:
                session.tools[entry.name] = entry
        self._notify_session_list_changed(session)

    def delete_session_tools(self, session_id: str, *names: str) -> None:
        with self._lock:
            session = self.get_session(session_id)
            for name in names:
                session.tools.pop(name, None)
        self._notify_session_list_changed(session)

    def tools_for(self, session: EngineSession | None) -> dict[str, ServerTool]:
        """Return the tools visible to *session*; its own tools win on name clashes."""
        with self._lock:
            visible = dict(self._tools)
            if session is not None:
                visible.update(session.tools)
        return visible

    async def invoke_tool(
        self, name: str, arguments: dict[str, Any] | None = None, *, session_id: str | None = None
    ) -> types.CallToolResult:
        """Run a tool exactly as ``tools/call`` would for *session_id*."""
        session = self.get_session(session_id) if session_id is not None else None
        request = types.CallToolRequest(
            method="tools/call", params=types.CallToolRequestParams(name=name, arguments=arguments)
        )
        return await self._execute_tool(request, session)

    # //////////////////////////////////////////////////////////////////
    # Notifications
    # //////////////////////////////////////////////////////////////////

    def notify_all(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Queue a notification for every initialized session.

        Sessions whose queue is full or closed are skipped with a warning.
        """
        for session in self.sessions:
            if not session.initialized:
                continue
            try:
                session.enqueue_notification(method, params)
            except (anyio.WouldBlock, anyio.ClosedResourceError, anyio.BrokenResourceError):
                self._logger.warning(
                    "dropping notification for session",
                    extra={"event": "engine.notify.drop", "session_id": session.session_id, "method": method},
                )

    def notify_session(self, session_id: str, method: str, params: dict[str, Any] | None = None) -> None:
        session = self.get_session(session_id)
        if not session.initialized:
            raise SessionNotInitializedError(session_id)
        try:
            session.enqueue_notification(method, params)
        except (anyio.WouldBlock, anyio.ClosedResourceError, anyio.BrokenResourceError) as exc:
            raise NotificationQueueFullError(session_id) from exc

    def _broadcast_list_changed(self) -> None:
        if self.settings.tools_list_changed:
            self.notify_all(TOOLS_LIST_CHANGED)

    def _notify_session_list_changed(self, session: EngineSession) -> None:
        if not (self.settings.tools_list_changed and session.initialized):
            return
        try:
            self.notify_session(session.session_id, TOOLS_LIST_CHANGED)
        except SessionError as exc:
            # The registry change already happened; the client just misses the hint.
            self._logger.warning(
                "tools/list_changed not delivered",
                extra={"event": "engine.notify.drop", "session_id": session.session_id, "reason": str(exc)},
            )

    # //////////////////////////////////////////////////////////////////
    # Protocol handlers
    # //////////////////////////////////////////////////////////////////

    async def _handle_list_tools(self, _request: types.ListToolsRequest) -> types.ServerResult:
        visible = self.tools_for(current_session())
        tools = [visible[name].tool for name in sorted(visible)]
        return types.ServerResult(types.ListToolsResult(tools=tools))

    async def _handle_call_tool(self, request: types.CallToolRequest) -> types.ServerResult:
        return types.ServerResult(await self._execute_tool(request, current_session()))

    async def _handle_set_level(self, request: types.SetLevelRequest) -> types.ServerResult:
        self.client_log_level = request.params.level
        return types.ServerResult(types.EmptyResult())

    async def _handle_initialized(self, _notification: types.InitializedNotification) -> None:
        session = current_session()
        if session is not None:
            session.initialized = True

    async def _execute_tool(self, request: types.CallToolRequest, session: EngineSession | None) -> types.CallToolResult:
        name = request.params.name
        entry = self.tools_for(session).get(name)
        if entry is None:
            raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=f"tool {name!r} not found"))

        handler = apply_middlewares(entry.handler, self.settings.tool_middlewares)
        token = activate_session(session)
        try:
            result = await maybe_await(handler(request))
        except McpError:
            raise
        except Exception as exc:
            self._logger.exception("tool failed", extra={"event": "engine.tool.error", "tool": name})
            return error_result(str(exc) or type(exc).__name__)
        finally:
            reset_session(token)

        try:
            return normalize_tool_result(result)
        except (TypeError, ValueError) as exc:
            return error_result(f"tool {name!r} returned an unsupported result: {exc}")


__all__ = [
    "DEFAULT_EVENT_QUEUE_SIZE",
    "EngineOption",
    "EngineSettings",
    "MCPEngine",
    "TOOLS_LIST_CHANGED",
    "with_event_queue_size",
    "with_instructions",
    "with_logging",
    "with_tool_capabilities",
    "with_tool_middleware",
]
