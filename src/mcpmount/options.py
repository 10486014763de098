# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Configuration record and option functions for :class:`~mcpmount.MCPHandler`.

Options are plain callables that mutate a :class:`HandlerConfig`.  The handler
applies them in the order given, so when two options touch the same field the
later one wins; options on different fields never interact.  The list-valued
options (:func:`with_engine_options`, :func:`with_sse_options`) append instead
of replacing.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
import re
from typing import TYPE_CHECKING, Any

from .context import AuthPredicate, HTTPContextFunc, auth_gate
from .paths import normalize_base_path


if TYPE_CHECKING:
    from starlette.requests import Request

    from .engine import EngineOption, MCPEngine
    from .transports.sse import DynamicBasePathFunc, SSEOption


EngineFactory = Callable[..., "MCPEngine"]
"""``factory(name, version, *engine_options)`` returning the engine to mount."""

DEFAULT_BASE_PATH = "/mcp"
DEFAULT_SSE_ROUTE = "/sse"
DEFAULT_MESSAGE_ROUTE = "/message"

_PATH_PARAM = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)(?::[A-Za-z_][A-Za-z0-9_]*)?\}")


class ConfigFrozenError(RuntimeError):
    """Raised when a handler's configuration is modified after registration."""


@dataclass(slots=True)
class HandlerConfig:
    """Everything :meth:`MCPHandler.register` needs to build and mount the transport.

    When ``dynamic_base_path`` is set it decides the advertised mount path and
    ``base_path`` serves as the route pattern and as the resolver's fallback.
    """

    base_path: str = DEFAULT_BASE_PATH
    sse_route: str = DEFAULT_SSE_ROUTE
    message_route: str = DEFAULT_MESSAGE_ROUTE
    dynamic_base_path: DynamicBasePathFunc | None = None
    context_func: HTTPContextFunc | None = None
    engine_options: Sequence[EngineOption] = field(default_factory=list)
    sse_options: Sequence[SSEOption] = field(default_factory=list)
    base_url: str | None = None
    engine_factory: EngineFactory | None = None
    _frozen: bool = field(default=False, init=False, repr=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise ConfigFrozenError(f"cannot set {name!r}: configuration is frozen after register()")
        object.__setattr__(self, name, value)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Reject further changes, including in-place edits of the option lists."""
        self.engine_options = tuple(self.engine_options)
        self.sse_options = tuple(self.sse_options)
        self._frozen = True


HandlerOption = Callable[[HandlerConfig], None]


def with_base_path(path: str) -> HandlerOption:
    """Mount the protocol routes under *path*; normalized at registration."""

    def apply(config: HandlerConfig) -> None:
        config.base_path = path

    return apply


def with_dynamic_base_path(resolver: DynamicBasePathFunc) -> HandlerOption:
    """Advertise a per-connection mount path computed by *resolver*."""

    def apply(config: HandlerConfig) -> None:
        config.dynamic_base_path = resolver

    return apply


def with_sse_route(route: str) -> HandlerOption:
    def apply(config: HandlerConfig) -> None:
        config.sse_route = route

    return apply


def with_message_route(route: str) -> HandlerOption:
    def apply(config: HandlerConfig) -> None:
        config.message_route = route

    return apply


def with_base_url(base_url: str) -> HandlerOption:
    """Advertise absolute message URLs starting with *base_url*."""

    def apply(config: HandlerConfig) -> None:
        config.base_url = base_url

    return apply


def with_context_func(func: HTTPContextFunc) -> HandlerOption:
    def apply(config: HandlerConfig) -> None:
        config.context_func = func

    return apply


def with_engine_options(*options: EngineOption) -> HandlerOption:
    def apply(config: HandlerConfig) -> None:
        config.engine_options = [*config.engine_options, *options]

    return apply


def with_sse_options(*options: SSEOption) -> HandlerOption:
    def apply(config: HandlerConfig) -> None:
        config.sse_options = [*config.sse_options, *options]

    return apply


def with_engine_factory(factory: EngineFactory) -> HandlerOption:
    """Build the engine with *factory* instead of :class:`~mcpmount.engine.MCPEngine`."""

    def apply(config: HandlerConfig) -> None:
        config.engine_factory = factory

    return apply


def with_auth(predicate: AuthPredicate) -> HandlerOption:
    """Refuse streams and messages whose request fails *predicate*.

    Wraps whatever context function is configured at this point; a later
    :func:`with_context_func` replaces the gate along with it.
    """

    def apply(config: HandlerConfig) -> None:
        config.context_func = auth_gate(predicate, config.context_func)

    return apply


def with_path_param(param_name: str, path_format: str | None = None) -> HandlerOption:
    """Derive the advertised mount path from a router path parameter.

    Every ``{name}`` or ``{name:convertor}`` placeholder in *path_format* is
    replaced with the matching value from ``request.path_params``.  Without a
    *path_format* the configured base path is used, which is also the route
    pattern, e.g. ``/tenants/{tenant}/mcp``.  When *param_name* is missing or
    empty the normalized static base path is returned instead.
    """

    def apply(config: HandlerConfig) -> None:
        def resolve(request: Request, session_id: str) -> str:
            params = request.path_params
            if not params.get(param_name):
                return normalize_base_path(config.base_path)

            template = path_format if path_format is not None else config.base_path

            def substitute(match: re.Match[str]) -> str:
                value = params.get(match.group(1))
                return match.group(0) if value in (None, "") else str(value)

            return _PATH_PARAM.sub(substitute, template)

        config.dynamic_base_path = resolve

    return apply


__all__ = [
    "DEFAULT_BASE_PATH",
    "DEFAULT_MESSAGE_ROUTE",
    "DEFAULT_SSE_ROUTE",
    "ConfigFrozenError",
    "EngineFactory",
    "HandlerConfig",
    "HandlerOption",
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
