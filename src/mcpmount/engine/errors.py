# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Errors surfaced by session-scoped engine operations.

Callers of :class:`~mcpmount.handler.MCPHandler` receive these unchanged.  They
describe one session only; the engine and every other session keep working.
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for failures tied to a single client session."""

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(message)
        self.session_id = session_id


class SessionNotFoundError(SessionError, LookupError):
    """No live session is registered under the given identifier."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"session {session_id!r} not found")


class SessionNotInitializedError(SessionError):
    """The session exists but has not completed the initialize handshake."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"session {session_id!r} is not initialized")


class NotificationQueueFullError(SessionError):
    """The session's outbound queue is full or already closed."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"notification queue for session {session_id!r} is full or closed")


__all__ = [
    "NotificationQueueFullError",
    "SessionError",
    "SessionNotFoundError",
    "SessionNotInitializedError",
]
