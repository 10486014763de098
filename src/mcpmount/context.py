# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Bridge router-level request data into the engine's per-connection context.

A context function receives the values gathered so far and the Starlette
:class:`~starlette.requests.Request` that reached the mounted route, and
returns the values tool handlers should see.  Path parameters, ``request.state``
entries set by upstream middleware and headers are all reachable from the
request passed in, so nothing has to be smuggled through hidden storage.

The transport runs the function twice per exchange kind:

* when a client opens its event stream, the result is stored on the session;
* when a client posts a message, the result is attached to that request's
  scope under :data:`CONTEXT_SCOPE_KEY`.

Inside a tool handler :func:`get_request_values` returns both merged, the
per-message values winning.

Raising :class:`AccessDenied` from a context function rejects the exchange with
``401``; :func:`auth_gate` builds such a function from a boolean predicate.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

from mcp.server.lowlevel.server import request_ctx

from .engine.session import current_session
from .utils import maybe_await_with_args


if TYPE_CHECKING:
    from starlette.requests import Request


CONTEXT_SCOPE_KEY = "mcpmount.context"

HTTPContextFunc = Callable[
    [dict[str, Any], "Request"], "Mapping[str, Any] | Awaitable[Mapping[str, Any]]"
]
AuthPredicate = Callable[["Request"], "bool | Awaitable[bool]"]


class AccessDenied(Exception):
    """Raised by a context function to refuse a stream or message."""

    def __init__(self, detail: str = "access denied") -> None:
        super().__init__(detail)
        self.detail = detail


def auth_gate(predicate: AuthPredicate, inner: HTTPContextFunc | None = None) -> HTTPContextFunc:
    """Return a context function that only propagates context when *predicate* holds.

    When *predicate* is false the returned function raises :class:`AccessDenied`
    and *inner* never runs.  Otherwise the values flow through *inner*, or
    unchanged when there is none.
    """

    async def gated(values: dict[str, Any], request: Request) -> Mapping[str, Any]:
        if not await maybe_await_with_args(predicate, request):
            raise AccessDenied("request rejected by authorization predicate")
        if inner is None:
            return values
        return await maybe_await_with_args(inner, values, request)

    return gated


async def resolve_context(func: HTTPContextFunc | None, request: Request) -> dict[str, Any]:
    """Run *func* for *request* starting from an empty carrier.

    Raises:
        AccessDenied: Propagated from *func*.
    """
    if func is None:
        return {}
    values = await maybe_await_with_args(func, {}, request)
    return dict(values or {})


def get_request_values() -> dict[str, Any]:
    """Return the bridged values visible to the running tool handler.

    Outside of a session or request the result is empty.
    """
    values: dict[str, Any] = {}
    session = current_session()
    if session is not None:
        values.update(session.context)

    try:
        request = request_ctx.get().request
    except LookupError:
        return values

    scope = getattr(request, "scope", None)
    if isinstance(scope, Mapping):
        values.update(scope.get(CONTEXT_SCOPE_KEY) or {})
    return values


__all__ = [
    "CONTEXT_SCOPE_KEY",
    "AccessDenied",
    "AuthPredicate",
    "HTTPContextFunc",
    "auth_gate",
    "get_request_values",
    "resolve_context",
]
