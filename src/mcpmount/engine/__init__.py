# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Protocol engine mounted by :class:`mcpmount.MCPHandler`.

The engine owns tool registries, client sessions and notification delivery.
The mount layer only constructs it and forwards calls to it.
"""

from __future__ import annotations

from .core import (
    DEFAULT_EVENT_QUEUE_SIZE,
    TOOLS_LIST_CHANGED,
    EngineOption,
    EngineSettings,
    MCPEngine,
    with_event_queue_size,
    with_instructions,
    with_logging,
    with_tool_capabilities,
    with_tool_middleware,
)
from .errors import NotificationQueueFullError, SessionError, SessionNotFoundError, SessionNotInitializedError
from .session import EngineSession, current_session
from .tools import ServerTool, ToolHandler, ToolMiddleware


__all__ = [
    "DEFAULT_EVENT_QUEUE_SIZE",
    "TOOLS_LIST_CHANGED",
    "EngineOption",
    "EngineSession",
    "EngineSettings",
    "MCPEngine",
    "NotificationQueueFullError",
    "ServerTool",
    "SessionError",
    "SessionNotFoundError",
    "SessionNotInitializedError",
    "ToolHandler",
    "ToolMiddleware",
    "current_session",
    "with_event_queue_size",
    "with_instructions",
    "with_logging",
    "with_tool_capabilities",
    "with_tool_middleware",
]
