# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Router-to-engine context propagation and the authorization gate."""

from __future__ import annotations

import json
from typing import Any

import anyio
import httpx
import pytest
from mcp import types
from starlette.applications import Starlette
from starlette.requests import Request

from mcpmount import (
    AccessDenied,
    MCPHandler,
    get_request_values,
    with_auth,
    with_base_path,
    with_context_func,
    with_path_param,
)
from mcpmount.context import auth_gate, resolve_context
from mcpmount.engine import EngineSession, MCPEngine
from mcpmount.engine.session import activate_session, reset_session
from tests.helpers import INITIALIZED_NOTIFICATION, SSEProbe, initialize_request, make_tool


def _request(headers: dict[str, str] | None = None) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "query_string": b"",
            "headers": [(key.encode(), value.encode()) for key, value in (headers or {}).items()],
        }
    )


# //////////////////////////////////////////////////////////////////
# Gate and resolver
# //////////////////////////////////////////////////////////////////


@pytest.mark.anyio
async def test_auth_gate_denies_when_predicate_false() -> None:
    gate = auth_gate(lambda request: False)

    with pytest.raises(AccessDenied):
        await gate({}, _request())


@pytest.mark.anyio
async def test_auth_gate_passes_values_through_inner() -> None:
    async def allow(request: Request) -> bool:
        return request.headers.get("x-token") == "ok"

    def inner(values: dict[str, Any], request: Request) -> dict[str, Any]:
        return {**values, "token": request.headers["x-token"]}

    gate = auth_gate(allow, inner)

    assert await gate({"seed": 1}, _request({"x-token": "ok"})) == {"seed": 1, "token": "ok"}
    with pytest.raises(AccessDenied):
        await gate({}, _request({"x-token": "nope"}))


@pytest.mark.anyio
async def test_auth_gate_skips_inner_when_denied() -> None:
    calls: list[str] = []

    def inner(values: dict[str, Any], request: Request) -> dict[str, Any]:
        calls.append("inner")
        return values

    with pytest.raises(AccessDenied):
        await auth_gate(lambda request: False, inner)({}, _request())
    assert calls == []


@pytest.mark.anyio
async def test_resolve_context_without_function_is_empty() -> None:
    assert await resolve_context(None, _request()) == {}


@pytest.mark.anyio
async def test_resolve_context_accepts_async_function() -> None:
    async def func(values: dict[str, Any], request: Request) -> dict[str, Any]:
        return {"method": request.method}

    assert await resolve_context(func, _request()) == {"method": "GET"}


def test_get_request_values_outside_session_is_empty() -> None:
    assert get_request_values() == {}


def test_get_request_values_reads_session_context() -> None:
    send, _receive = anyio.create_memory_object_stream(1)
    session = EngineSession(session_id="s", outbound=send, context={"tenant": "acme"})

    token = activate_session(session)
    try:
        assert get_request_values() == {"tenant": "acme"}
    finally:
        reset_session(token)


def test_with_auth_wraps_existing_context_func() -> None:
    def base(values: dict[str, Any], request: Request) -> dict[str, Any]:
        return values

    handler = MCPHandler("svc", "1.0", with_context_func(base), with_auth(lambda request: True))

    assert handler.config.context_func is not base


# //////////////////////////////////////////////////////////////////
# Over HTTP
# //////////////////////////////////////////////////////////////////


def _token_required(request: Request) -> bool:
    return request.headers.get("authorization") == "Bearer secret"


@pytest.mark.anyio
async def test_denied_stream_returns_401() -> None:
    app = Starlette()
    handler = MCPHandler("svc", "1.0", with_auth(_token_required))
    handler.register(app)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        response = await client.get("/mcp/sse")

    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"
    assert handler.engine.sessions == ()


@pytest.mark.anyio
async def test_denied_message_returns_401_and_is_not_delivered() -> None:
    app = Starlette()
    handler = MCPHandler("svc", "1.0", with_auth(_token_required))
    handler.register(app)
    transport = handler.transport
    assert transport is not None

    send, receive = anyio.create_memory_object_stream(1)
    transport._writers["abc"] = send  # noqa: SLF001

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        denied = await client.post("/mcp/message?sessionId=abc", json=INITIALIZED_NOTIFICATION)
        accepted = await client.post(
            "/mcp/message?sessionId=abc",
            json=INITIALIZED_NOTIFICATION,
            headers={"Authorization": "Bearer secret"},
        )

    assert denied.status_code == 401
    assert accepted.status_code == 202
    delivered = receive.receive_nowait()
    assert isinstance(delivered.message.root, types.JSONRPCNotification)
    with pytest.raises(anyio.WouldBlock):
        receive.receive_nowait()


@pytest.mark.anyio
async def test_tool_sees_stream_and_message_context() -> None:
    app = Starlette()

    def stream_context(values: dict[str, Any], request: Request) -> dict[str, Any]:
        if request.method == "GET":
            return {**values, "tenant": request.path_params["tenant"], "origin": "stream"}
        return {**values, "origin": "message", "trace": request.headers.get("x-trace")}

    handler = MCPHandler(
        "svc",
        "1.0",
        with_base_path("/tenants/{tenant}/mcp"),
        with_path_param("tenant"),
        with_context_func(stream_context),
        with_auth(lambda request: request.headers.get("x-key") == "k"),
    )
    handler.add_tool(make_tool("whoami"), lambda request: get_request_values())
    handler.register(app)

    probe = SSEProbe(app, "/tenants/acme/mcp/sse", headers={"x-key": "k"})
    async with anyio.create_task_group() as tg:
        tg.start_soon(probe.run)
        _, endpoint = await probe.next_event()

        headers = {"x-key": "k", "x-trace": "t-1"}
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
            assert (await client.post(endpoint, json=initialize_request(), headers=headers)).status_code == 202
            await probe.next_event()
            assert (await client.post(endpoint, json=INITIALIZED_NOTIFICATION, headers=headers)).status_code == 202
            call = {"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "whoami", "arguments": {}}}
            assert (await client.post(endpoint, json=call, headers=headers)).status_code == 202

            _, data = await probe.next_event()

        probe.disconnect()

    result = json.loads(data)["result"]
    assert result["isError"] is False
    assert result["structuredContent"] == {"tenant": "acme", "origin": "message", "trace": "t-1"}


def test_engine_without_session_has_no_context() -> None:
    engine = MCPEngine("svc", "1.0")
    engine.add_tool(make_tool("ctx"), lambda request: get_request_values())

    result = anyio.run(engine.invoke_tool, "ctx")

    assert result.structuredContent == {}
