# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Shared transport primitives for :mod:`mcpmount.transports`.

A transport turns raw ASGI exchanges into engine traffic.  The mount layer
installs router routes whose endpoints are :class:`EndpointHandler` instances,
so the router hands over ``(scope, receive, send)`` untouched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from starlette.types import Receive, Scope, Send

    from ..engine import MCPEngine


ASGIHandler = Callable[["Scope", "Receive", "Send"], Awaitable[None]]


@dataclass(slots=True)
class EndpointHandler:
    """ASGI endpoint that forwards one route to a transport handler.

    Starlette wraps plain functions and bound methods as request/response
    endpoints; an instance of this class is treated as a raw ASGI app instead.
    """

    handler: ASGIHandler
    transport_label: str
    allowed_scopes: tuple[str, ...] = ("http",)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        scope_type = scope.get("type")
        if scope_type not in self.allowed_scopes:
            allowed = ", ".join(self.allowed_scopes)
            message = f"{self.transport_label} only handles ASGI scopes: {allowed} (got {scope_type!r})."
            raise TypeError(message)

        await self.handler(scope, receive, send)


class BaseTransport(ABC):
    """Common base for transports bound to an :class:`~mcpmount.engine.MCPEngine`."""

    def __init__(self, engine: MCPEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> MCPEngine:
        return self._engine

    @abstractmethod
    def sse_handler(self) -> EndpointHandler:
        """Endpoint for the long-lived event stream."""

    @abstractmethod
    def message_handler(self) -> EndpointHandler:
        """Endpoint for client-to-server messages."""

    @abstractmethod
    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Unified ASGI entry point dispatching on the request path."""


__all__ = ["ASGIHandler", "BaseTransport", "EndpointHandler"]
