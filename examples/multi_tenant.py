# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""One engine, many tenants: the mount path comes from a path parameter.

Each tenant connects to ``/tenants/<tenant>/mcp/sse`` with an
``X-API-Key`` header.  The tenant name travels from the router into tool
handlers through the context bridge, and the first ``whoami`` call unlocks a
tenant-private tool for that session only.

Run with::

    $ MCPMOUNT_LOG_JSON=1 uv run python examples/multi_tenant.py
"""

from __future__ import annotations

import os
from typing import Any

from mcp import types
from starlette.applications import Starlette
from starlette.requests import Request
import uvicorn

from mcpmount import (
    MCPHandler,
    current_session,
    get_request_values,
    with_auth,
    with_base_path,
    with_context_func,
    with_engine_options,
    with_path_param,
)
from mcpmount.engine import with_tool_capabilities


API_KEYS = {"acme": os.getenv("ACME_KEY", "acme-dev"), "globex": os.getenv("GLOBEX_KEY", "globex-dev")}


def tenant_context(values: dict[str, Any], request: Request) -> dict[str, Any]:
    return {**values, "tenant": request.path_params.get("tenant")}


def has_tenant_key(request: Request) -> bool:
    tenant = request.path_params.get("tenant")
    return tenant in API_KEYS and request.headers.get("x-api-key") == API_KEYS[tenant]


def _tool(name: str, description: str) -> types.Tool:
    return types.Tool(name=name, description=description, inputSchema={"type": "object", "properties": {}})


def whoami(request: types.CallToolRequest) -> dict[str, Any]:
    tenant = get_request_values().get("tenant")
    session = current_session()
    if session is not None and "tenant_report" not in session.tools:
        handler.add_session_tool(
            session.session_id,
            _tool("tenant_report", f"Private report for {tenant}."),
            lambda _request: f"report for {tenant}",
        )
    return {"tenant": tenant}


handler = MCPHandler(
    "multi-tenant",
    "1.0.0",
    with_base_path("/tenants/{tenant}/mcp"),
    with_path_param("tenant"),
    with_context_func(tenant_context),
    with_auth(has_tenant_key),
    with_engine_options(with_tool_capabilities(True)),
)
handler.add_tool(_tool("whoami", "Report the tenant this session belongs to."), whoami)

app = Starlette()
handler.register(app)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
