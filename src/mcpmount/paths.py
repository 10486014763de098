# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""URL path helpers for mount prefixes and route suffixes."""

from __future__ import annotations


def normalize_base_path(path: str) -> str:
    """Return *path* with a leading ``/`` and no trailing ``/``.

    ``"/"`` is the only result that ends with a slash; the empty string and
    slash-only strings map to it.  Every trailing slash is removed so that
    normalizing twice never changes the result::

        >>> normalize_base_path("api/mcp/")
        '/api/mcp'
        >>> normalize_base_path("")
        '/'
    """
    if not path.startswith("/"):
        path = "/" + path
    return path.rstrip("/") or "/"


def join_paths(base: str, suffix: str) -> str:
    """Append a route *suffix* to a normalized *base* path.

    This is plain concatenation except under the root prefix, where
    ``join_paths("/", "/sse")`` yields ``"/sse"`` instead of ``"//sse"``.
    """
    if base == "/" and suffix.startswith("/"):
        return suffix
    return base + suffix


__all__ = ["join_paths", "normalize_base_path"]
