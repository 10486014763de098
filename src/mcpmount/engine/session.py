# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Per-client session state tracked by :class:`~mcpmount.engine.MCPEngine`.

A session is created by the transport when a client opens its event stream
and lives until that stream closes.  It owns a clone of the stream's outbound
queue so the engine can push notifications without going through the SDK's
``ServerSession``; the transport drains the same queue into SSE events.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mcp import types
from mcp.shared.message import SessionMessage

from .tools import ServerTool


if TYPE_CHECKING:
    from anyio.streams.memory import MemoryObjectSendStream


_CURRENT_SESSION: ContextVar[EngineSession | None] = ContextVar("mcpmount_current_session", default=None)


@dataclass(slots=True, eq=False)
class EngineSession:
    """State of one connected client."""

    session_id: str
    outbound: MemoryObjectSendStream[SessionMessage]
    context: dict[str, Any] = field(default_factory=dict)
    tools: dict[str, ServerTool] = field(default_factory=dict)
    initialized: bool = False
    mount_path: str | None = None
    """Mount path advertised when the stream opened; messages must arrive under it."""

    def enqueue_notification(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Queue a JSON-RPC notification without waiting.

        Raises:
            anyio.WouldBlock: The outbound queue is full.
            anyio.ClosedResourceError: The session was closed locally.
            anyio.BrokenResourceError: The stream reader went away.
        """
        notification = types.JSONRPCNotification(jsonrpc="2.0", method=method, params=params)
        self.outbound.send_nowait(SessionMessage(message=types.JSONRPCMessage(notification)))

    def close(self) -> None:
        self.outbound.close()


def current_session() -> EngineSession | None:
    """Return the session whose stream is running the current task, if any."""
    return _CURRENT_SESSION.get()


def activate_session(session: EngineSession | None) -> Token[EngineSession | None]:
    return _CURRENT_SESSION.set(session)


def reset_session(token: Token[EngineSession | None]) -> None:
    _CURRENT_SESSION.reset(token)


__all__ = ["EngineSession", "activate_session", "current_session", "reset_session"]
