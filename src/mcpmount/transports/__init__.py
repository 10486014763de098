# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Transports that expose an :class:`~mcpmount.engine.MCPEngine` over HTTP."""

from __future__ import annotations

from .base import BaseTransport, EndpointHandler
from .sse import (
    DynamicBasePathFunc,
    SSEOption,
    SSESettings,
    SSETransport,
    with_base_url,
    with_dynamic_base_path,
    with_http_context_func,
    with_keep_alive_interval,
    with_message_endpoint,
    with_sse_endpoint,
    with_static_base_path,
    with_use_full_url,
)


__all__ = [
    "BaseTransport",
    "DynamicBasePathFunc",
    "EndpointHandler",
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
