# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Helpers for callables that may be either sync or async."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import inspect
from typing import Any, TypeVar


T = TypeVar("T")


async def maybe_await(value: T | Awaitable[T] | Callable[[], T | Awaitable[T]]) -> T:
    """Resolve *value* to a plain result.

    Zero-argument callables are invoked first; awaitables are awaited; anything
    else is returned unchanged.
    """
    if callable(value) and not inspect.isawaitable(value):
        value = value()
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


async def maybe_await_with_args(fn: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *fn* with the given arguments and await the result when needed.

    Already-created coroutines are awaited as they are and plain values are
    returned unchanged; the arguments only apply to callables.
    """
    if inspect.isawaitable(fn):
        return await fn
    if callable(fn):
        return await maybe_await(fn(*args, **kwargs))
    return fn


__all__ = ["maybe_await", "maybe_await_with_args"]
