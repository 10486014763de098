# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""HTTP+SSE transport for :class:`~mcpmount.engine.MCPEngine`.

A client opens ``GET <mount><sse_endpoint>`` and first receives an
``endpoint`` event naming the URL it must ``POST`` messages to, including its
``sessionId``.  Every JSON-RPC message the engine produces for that session,
responses and notifications alike, follows as a ``message`` event.

The advertised mount path is either static or computed per connection by a
dynamic resolver, which lets one engine serve several tenants whose routes
share a single pattern such as ``/tenants/{tenant}/mcp``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import anyio
from mcp import types
from mcp.shared.message import ServerMessageMetadata, SessionMessage
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from .base import BaseTransport, EndpointHandler
from ..context import CONTEXT_SCOPE_KEY, AccessDenied, HTTPContextFunc, resolve_context
from ..engine import EngineSession, SessionNotFoundError
from ..paths import join_paths, normalize_base_path
from ..utils import get_logger


if TYPE_CHECKING:
    from anyio.streams.memory import MemoryObjectSendStream
    from starlette.types import Receive, Scope, Send

    from ..engine import MCPEngine


DynamicBasePathFunc = Callable[[Request, str], str]
"""``(request, session_id) -> mount path`` evaluated for every connection."""

SESSION_QUERY_PARAM = "sessionId"


@dataclass(slots=True)
class SSESettings:
    """Transport settings accumulated from :data:`SSEOption` calls."""

    static_base_path: str = ""
    dynamic_base_path: DynamicBasePathFunc | None = None
    sse_endpoint: str = "/sse"
    message_endpoint: str = "/message"
    base_url: str | None = None
    use_full_url: bool = True
    context_func: HTTPContextFunc | None = None
    keep_alive_interval: float | None = None


SSEOption = Callable[[SSESettings], None]


def with_static_base_path(path: str) -> SSEOption:
    def apply(settings: SSESettings) -> None:
        settings.static_base_path = normalize_base_path(path)

    return apply


def with_dynamic_base_path(resolver: DynamicBasePathFunc) -> SSEOption:
    """Compute the advertised mount path per connection.

    A transport configured this way must be mounted through
    :meth:`SSETransport.sse_handler` and :meth:`SSETransport.message_handler`.
    """

    def apply(settings: SSESettings) -> None:
        settings.dynamic_base_path = resolver

    return apply


def with_sse_endpoint(endpoint: str) -> SSEOption:
    def apply(settings: SSESettings) -> None:
        settings.sse_endpoint = endpoint

    return apply


def with_message_endpoint(endpoint: str) -> SSEOption:
    def apply(settings: SSESettings) -> None:
        settings.message_endpoint = endpoint

    return apply


def with_base_url(base_url: str) -> SSEOption:
    """Prefix advertised message endpoints with an absolute origin."""

    def apply(settings: SSESettings) -> None:
        settings.base_url = base_url

    return apply


def with_use_full_url(enabled: bool) -> SSEOption:
    """Toggle whether the base URL is included in advertised endpoints."""

    def apply(settings: SSESettings) -> None:
        settings.use_full_url = enabled

    return apply


def with_http_context_func(func: HTTPContextFunc) -> SSEOption:
    def apply(settings: SSESettings) -> None:
        settings.context_func = func

    return apply


def with_keep_alive_interval(seconds: float) -> SSEOption:
    """Send an SSE comment every *seconds* to keep idle proxies from closing the stream."""

    def apply(settings: SSESettings) -> None:
        settings.keep_alive_interval = seconds

    return apply


def _local_path(scope: Scope) -> str:
    """Return the request path relative to the application's mount point."""
    path = scope.get("path", "")
    root = scope.get("root_path", "")
    if root and path.startswith(root):
        path = path[len(root) :]
    return path or "/"


class SSETransport(BaseTransport):
    """Serve an :class:`~mcpmount.engine.MCPEngine` over HTTP with Server-Sent Events."""

    TRANSPORT = ("sse", "SSE", "Server-Sent Events")

    def __init__(self, engine: MCPEngine, *options: SSEOption) -> None:
        super().__init__(engine)
        settings = SSESettings()
        for option in options:
            option(settings)
        self.settings = settings
        self._writers: dict[str, MemoryObjectSendStream[SessionMessage | Exception]] = {}
        self._logger = get_logger("mcpmount.transport.sse")

    # //////////////////////////////////////////////////////////////////
    # Paths
    # //////////////////////////////////////////////////////////////////

    @property
    def dynamic(self) -> bool:
        return self.settings.dynamic_base_path is not None

    @property
    def sse_endpoint_path(self) -> str:
        """Static stream path; meaningless when a dynamic resolver is set."""
        return join_paths(normalize_base_path(self.settings.static_base_path), self.settings.sse_endpoint)

    @property
    def message_endpoint_path(self) -> str:
        return join_paths(normalize_base_path(self.settings.static_base_path), self.settings.message_endpoint)

    def mount_path_for(self, request: Request, session_id: str) -> str:
        """Return the normalized mount path advertised to this connection."""
        resolver = self.settings.dynamic_base_path
        base = resolver(request, session_id) if resolver is not None else self.settings.static_base_path
        return normalize_base_path(base)

    def message_endpoint_for_client(self, request: Request, session_id: str) -> str:
        return self._endpoint_url(request, self.mount_path_for(request, session_id), session_id)

    def _endpoint_url(self, request: Request, mount_path: str, session_id: str) -> str:
        path = join_paths(mount_path, self.settings.message_endpoint)
        root_path = str(request.scope.get("root_path", "")).rstrip("/")
        url = root_path + path
        if self.settings.use_full_url and self.settings.base_url:
            url = self.settings.base_url.rstrip("/") + url
        return f"{url}?{SESSION_QUERY_PARAM}={session_id}"

    # //////////////////////////////////////////////////////////////////
    # ASGI entry points
    # //////////////////////////////////////////////////////////////////

    def sse_handler(self) -> EndpointHandler:
        return EndpointHandler(handler=self.handle_sse, transport_label="SSE stream endpoint")

    def message_handler(self) -> EndpointHandler:
        return EndpointHandler(handler=self.handle_message, transport_label="SSE message endpoint")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            raise TypeError(f"SSE transport only handles ASGI scopes: http (got {scope.get('type')!r}).")

        if self.dynamic:
            self._logger.error(
                "unified handler used with a dynamic base path", extra={"event": "transport.sse.misconfigured"}
            )
            response: Response = PlainTextResponse(
                "Unified handler cannot be used with a dynamic base path; "
                "mount sse_handler() and message_handler() instead.",
                status_code=500,
            )
            await response(scope, receive, send)
            return

        path = _local_path(scope)
        if path == self.sse_endpoint_path:
            await self.handle_sse(scope, receive, send)
        elif path == self.message_endpoint_path:
            await self.handle_message(scope, receive, send)
        else:
            await PlainTextResponse("Not Found", status_code=404)(scope, receive, send)

    async def handle_sse(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        if request.method not in ("GET", "HEAD"):
            await PlainTextResponse("Method Not Allowed", status_code=405)(scope, receive, send)
            return

        try:
            context = await resolve_context(self.settings.context_func, request)
        except AccessDenied as exc:
            await self._denied(exc)(scope, receive, send)
            return

        if request.method == "HEAD":
            # Stream headers only; no session is opened.
            headers = {"Cache-Control": "no-store", "X-Accel-Buffering": "no"}
            await Response(media_type="text/event-stream", headers=headers)(scope, receive, send)
            return

        session_id = uuid4().hex
        (inbound_writer, inbound_reader), (outbound_writer, outbound_reader) = self.engine.create_streams()
        mount_path = self.mount_path_for(request, session_id)
        session = EngineSession(
            session_id=session_id, outbound=outbound_writer.clone(), context=context, mount_path=mount_path
        )
        endpoint = self._endpoint_url(request, mount_path, session_id)

        async def events() -> AsyncIterator[dict[str, Any]]:
            yield {"event": "endpoint", "data": endpoint}
            async with outbound_reader:
                async for message in outbound_reader:
                    yield {
                        "event": "message",
                        "data": message.message.model_dump_json(by_alias=True, exclude_none=True),
                    }

        self._writers[session_id] = inbound_writer
        self.engine.register_session(session)
        self._logger.info(
            "client stream opened", extra={"event": "transport.sse.open", "session_id": session_id, "endpoint": endpoint}
        )
        response = EventSourceResponse(events(), ping=self.settings.keep_alive_interval)
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self.engine.run_session, session, inbound_reader, outbound_writer)
                await response(scope, receive, send)
                tg.cancel_scope.cancel()
        finally:
            self._writers.pop(session_id, None)
            inbound_writer.close()
            self.engine.unregister_session(session_id)
            self._logger.info("client stream closed", extra={"event": "transport.sse.close", "session_id": session_id})

    async def handle_message(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        if request.method != "POST":
            await PlainTextResponse("Method Not Allowed", status_code=405)(scope, receive, send)
            return

        session_id = request.query_params.get(SESSION_QUERY_PARAM)
        if not session_id:
            await PlainTextResponse(f"Missing {SESSION_QUERY_PARAM}", status_code=400)(scope, receive, send)
            return

        writer = self._writers.get(session_id)
        if writer is None:
            await PlainTextResponse("Could not find session", status_code=404)(scope, receive, send)
            return

        if self.dynamic and not self._opened_under(request, session_id):
            self._logger.warning(
                "message posted outside its stream mount",
                extra={"event": "transport.sse.mount_mismatch", "session_id": session_id, "path": request.url.path},
            )
            await PlainTextResponse("Could not find session", status_code=404)(scope, receive, send)
            return

        try:
            context = await resolve_context(self.settings.context_func, request)
        except AccessDenied as exc:
            await self._denied(exc)(scope, receive, send)
            return

        body = await request.body()
        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except ValidationError as exc:
            self._logger.warning(
                "rejected unparseable message", extra={"event": "transport.sse.parse_error", "session_id": session_id}
            )
            await PlainTextResponse(f"Could not parse message: {exc.error_count()} error(s)", status_code=400)(
                scope, receive, send
            )
            return

        scope[CONTEXT_SCOPE_KEY] = context
        metadata = ServerMessageMetadata(request_context=request)
        try:
            await writer.send(SessionMessage(message=message, metadata=metadata))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            await PlainTextResponse("Could not find session", status_code=404)(scope, receive, send)
            return

        await PlainTextResponse("Accepted", status_code=202)(scope, receive, send)

    # //////////////////////////////////////////////////////////////////
    # Internal helpers
    # //////////////////////////////////////////////////////////////////

    def _opened_under(self, request: Request, session_id: str) -> bool:
        try:
            session = self.engine.get_session(session_id)
        except SessionNotFoundError:
            return False
        return session.mount_path == self.mount_path_for(request, session_id)

    def _denied(self, exc: AccessDenied) -> Response:
        self._logger.warning("request denied", extra={"event": "transport.sse.denied", "reason": exc.detail})
        return JSONResponse({"error": "unauthorized", "detail": exc.detail}, status_code=401)


__all__ = [
    "SESSION_QUERY_PARAM",
    "DynamicBasePathFunc",
    "SSEOption",
    "SSESettings",
    "SSETransport",
    "with_base_url",
    "with_dynamic_base_path",
    "with_http_context_func",
    "with_keep_alive_interval",
    "with_message_endpoint",
    "with_sse_endpoint",
    "with_static_base_path",
    "with_use_full_url",
]
