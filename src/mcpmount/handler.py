# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Mount an MCP engine onto an existing Starlette-compatible router.

Typical use::

    from starlette.applications import Starlette

    from mcpmount import MCPHandler, with_base_path

    app = Starlette()
    handler = MCPHandler("example-server", "1.0.0", with_base_path("/api/mcp"))
    handler.add_tool(hello_tool, hello)
    handler.register(app)  # GET /api/mcp/sse, POST /api/mcp/message

The handler has two phases.  While configuring, options shape a
:class:`~mcpmount.options.HandlerConfig`.  :meth:`MCPHandler.register` builds
the transport, installs exactly two routes and freezes the configuration;
afterwards only the tool and notification pass-throughs are meant to be used.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from starlette.routing import Route

from .engine import MCPEngine
from .options import HandlerConfig, HandlerOption
from .paths import join_paths, normalize_base_path
from .transports.sse import (
    SSETransport,
    with_base_url,
    with_dynamic_base_path,
    with_http_context_func,
    with_message_endpoint,
    with_sse_endpoint,
    with_static_base_path,
)
from .utils import get_logger


if TYPE_CHECKING:
    from mcp import types

    from .engine import ServerTool, ToolHandler
    from .transports.sse import SSEOption


class RegistrationError(RuntimeError):
    """Raised when :meth:`MCPHandler.register` cannot mount the routes."""


def _route_table(router: Any) -> list[Any]:
    """Return the mutable route list of a Starlette app, router or FastAPI router."""
    routes = getattr(router, "routes", None)
    if not isinstance(routes, list):
        inner = getattr(router, "router", None)
        routes = getattr(inner, "routes", None)
    if not isinstance(routes, list):
        raise RegistrationError(f"{type(router).__name__} does not expose a mutable route list")
    return routes


def _route_suffix(value: str, label: str) -> str:
    if not value:
        raise RegistrationError(f"{label} route must not be empty")
    return value if value.startswith("/") else "/" + value


class MCPHandler:
    """Configure, mount and drive an MCP engine behind a host router."""

    def __init__(self, name: str, version: str, *options: HandlerOption) -> None:
        self.config = HandlerConfig()
        for option in options:
            option(self.config)

        factory = self.config.engine_factory or MCPEngine
        self._engine: MCPEngine = factory(name, version, *self.config.engine_options)
        self._transport: SSETransport | None = None
        self._logger = get_logger(f"mcpmount.handler.{name}")

    @property
    def engine(self) -> MCPEngine:
        return self._engine

    @property
    def transport(self) -> SSETransport | None:
        """The transport built by :meth:`register`, or ``None`` before it."""
        return self._transport

    @property
    def registered(self) -> bool:
        return self._transport is not None

    # //////////////////////////////////////////////////////////////////
    # Registration
    # //////////////////////////////////////////////////////////////////

    def register(self, router: Any) -> tuple[Route, Route]:
        """Install ``GET <base><sse_route>`` and ``POST <base><message_route>`` on *router*.

        *router* may be a :class:`~starlette.applications.Starlette` app, a
        :class:`~starlette.routing.Router`, or anything else exposing a
        ``routes`` list (FastAPI apps and ``APIRouter`` included).  Call it once,
        before the server starts taking traffic.

        Returns:
            The stream route and the message route, in that order.

        Raises:
            RegistrationError: On a second call, when a route suffix is empty,
                or when *router* has no route list.
        """
        if self.registered:
            raise RegistrationError("register() was already called for this handler")

        config = self.config
        sse_route = _route_suffix(config.sse_route, "SSE")
        message_route = _route_suffix(config.message_route, "message")
        routes = _route_table(router)
        config.base_path = normalize_base_path(config.base_path)

        transport = SSETransport(self._engine, *self._transport_options(sse_route, message_route))
        if transport.dynamic:
            stream_endpoint: Any = transport.sse_handler()
            message_endpoint: Any = transport.message_handler()
        else:
            stream_endpoint = message_endpoint = transport

        stream = Route(join_paths(config.base_path, sse_route), stream_endpoint, methods=["GET"])
        message = Route(join_paths(config.base_path, message_route), message_endpoint, methods=["POST"])
        routes.extend((stream, message))

        self._transport = transport
        config.freeze()
        self._logger.info(
            "Mounted MCP endpoints at %s and %s",
            stream.path,
            message.path,
            extra={"event": "handler.register", "dynamic": transport.dynamic},
        )
        return stream, message

    def _transport_options(self, sse_route: str, message_route: str) -> list[SSEOption]:
        config = self.config
        options = list(config.sse_options)
        if config.dynamic_base_path is not None:
            options.append(with_dynamic_base_path(config.dynamic_base_path))
        else:
            options.append(with_static_base_path(config.base_path))
        options.extend((with_sse_endpoint(sse_route), with_message_endpoint(message_route)))
        if config.base_url:
            options.append(with_base_url(config.base_url))
        if config.context_func is not None:
            options.append(with_http_context_func(config.context_func))
        return options

    # //////////////////////////////////////////////////////////////////
    # Engine pass-throughs
    # //////////////////////////////////////////////////////////////////

    # Each call returns the engine's result and lets its errors propagate unchanged.

    def add_tool(self, tool: types.Tool, handler: ToolHandler) -> Any:
        return self._engine.add_tool(tool, handler)

    def add_tools(self, *tools: ServerTool) -> Any:
        return self._engine.add_tools(*tools)

    def add_session_tool(self, session_id: str, tool: types.Tool, handler: ToolHandler) -> Any:
        """Raises :class:`~mcpmount.engine.SessionNotFoundError` for unknown sessions."""
        return self._engine.add_session_tool(session_id, tool, handler)

    def add_session_tools(self, session_id: str, *tools: ServerTool) -> Any:
        return self._engine.add_session_tools(session_id, *tools)

    def delete_session_tools(self, session_id: str, *names: str) -> Any:
        return self._engine.delete_session_tools(session_id, *names)

    def notify_all(self, method: str, params: dict[str, Any] | None = None) -> Any:
        return self._engine.notify_all(method, params)

    def notify_session(self, session_id: str, method: str, params: dict[str, Any] | None = None) -> Any:
        """Raises a :class:`~mcpmount.engine.SessionError` subclass when delivery is impossible."""
        return self._engine.notify_session(session_id, method, params)


__all__ = ["MCPHandler", "RegistrationError"]
