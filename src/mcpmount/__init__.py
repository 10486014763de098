# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Mount an SSE-based MCP endpoint onto a Starlette-compatible router."""

from __future__ import annotations

from . import engine, transports
from .context import AccessDenied, HTTPContextFunc, get_request_values
from .engine import (
    EngineSession,
    MCPEngine,
    NotificationQueueFullError,
    ServerTool,
    SessionError,
    SessionNotFoundError,
    SessionNotInitializedError,
    current_session,
)
from .handler import MCPHandler, RegistrationError
from .options import (
    ConfigFrozenError,
    HandlerConfig,
    HandlerOption,
    with_auth,
    with_base_path,
    with_base_url,
    with_context_func,
    with_dynamic_base_path,
    with_engine_factory,
    with_engine_options,
    with_message_route,
    with_path_param,
    with_sse_options,
    with_sse_route,
)
from .paths import join_paths, normalize_base_path


__all__ = [
    "AccessDenied",
    "ConfigFrozenError",
    "EngineSession",
    "HTTPContextFunc",
    "HandlerConfig",
    "HandlerOption",
    "MCPEngine",
    "MCPHandler",
    "NotificationQueueFullError",
    "RegistrationError",
    "ServerTool",
    "SessionError",
    "SessionNotFoundError",
    "SessionNotInitializedError",
    "current_session",
    "engine",
    "get_request_values",
    "join_paths",
    "normalize_base_path",
    "transports",
    "with_auth",
    "with_base_path",
    "with_base_url",
    "with_context_func",
    "with_dynamic_base_path",
    "with_engine_factory",
    "with_engine_options",
    "with_message_route",
    "with_path_param",
    "with_sse_options",
    "with_sse_route",
]
