"""Tests for the HTTP and SSE web application."""

from unittest.mock import AsyncMock

import httpx
import pytest
from starlette.testclient import TestClient

from stability_mcp.app import _stream, create_app
from stability_mcp.config import Settings
from stability_mcp.connections import format_sse
from stability_mcp.registry import ToolRegistry

ECHO_SCHEMA = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
}


async def _echo(arguments):
    return arguments["text"]


def _app(transport="sse", **overrides):
    settings = Settings(api_key="test-key", **overrides)
    registry = ToolRegistry()
    registry.register("echo", "Echo text back", ECHO_SCHEMA, _echo)
    return create_app(settings, registry, transport)


def _client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestCommonRoutes:
    """Tests for /health and /metrics."""

    @pytest.mark.asyncio
    async def test_health(self):
        async with _client(_app()) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "timestamp" in response.json()

    @pytest.mark.asyncio
    async def test_metrics(self):
        app = _app()
        app.state.metrics.tool_calls = 3

        async with _client(app) as client:
            response = await client.get("/metrics")

        body = response.json()
        assert body["tools"]["calls"] == 3
        assert body["connections"]["active"] == 0


class TestHttpTransport:
    """Tests for POST /mcp."""

    @pytest.mark.asyncio
    async def test_tool_call(self):
        frame = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": "echo", "arguments": {"text": "hi"}},
        }
        async with _client(_app("http")) as client:
            response = await client.post("/mcp", json=frame)

        assert response.status_code == 200
        assert response.json() == {"jsonrpc": "2.0", "id": 1, "result": "hi"}

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        async with _client(_app("http")) as client:
            response = await client.post("/mcp", content=b"{oops")

        assert response.json()["error"]["code"] == -32700

    @pytest.mark.asyncio
    async def test_notification_is_accepted(self):
        async with _client(_app("http")) as client:
            response = await client.post(
                "/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"}
            )

        assert response.status_code == 202

    @pytest.mark.asyncio
    async def test_sse_routes_not_mounted(self):
        async with _client(_app("http")) as client:
            response = await client.get("/sse")

        assert response.status_code == 404


class TestSseTransport:
    """Tests for GET /sse and POST /messages."""

    @pytest.mark.asyncio
    async def test_connection_limit_rejected_with_503(self):
        app = _app(max_connections=2)
        existing = [app.state.connections.open() for _ in range(2)]

        async with _client(app) as client:
            response = await client.get("/sse")

        assert response.status_code == 503
        assert response.headers["content-type"].startswith("text/event-stream")
        assert '"code":-32000' in response.text
        assert '"status":503' in response.text
        assert all(c.id in app.state.connections for c in existing)
        assert app.state.metrics.connections_rejected == 1

    @pytest.mark.asyncio
    async def test_message_is_delivered_to_connection(self):
        app = _app()
        connection = app.state.connections.open()
        frame = {
            "jsonrpc": "2.0",
            "id": "abc",
            "method": "tools/call",
            "params": {"name": "echo", "arguments": {"text": "hello"}},
        }

        async with _client(app) as client:
            response = await client.post(f"/messages?session_id={connection.id}", json=frame)

        assert response.status_code == 202
        connection.close()
        frames = [f async for f in connection.frames()]
        assert frames == [format_sse({"jsonrpc": "2.0", "id": "abc", "result": "hello"})]

    @pytest.mark.asyncio
    async def test_message_for_unknown_session(self):
        async with _client(_app()) as client:
            response = await client.post("/messages?session_id=nope", json={"jsonrpc": "2.0"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_stream_announces_endpoint_and_cleans_up(self):
        """The stream starts with the endpoint event and unregisters on close."""
        app = _app()
        connections = app.state.connections
        connection = connections.open()

        stream = _stream(connection, connections)
        first = await stream.__anext__()
        assert first == f"event: endpoint\ndata: /messages?session_id={connection.id}\n\n"

        connection.send("data: queued\n\n")
        connection.close()
        rest = [frame async for frame in stream]

        assert rest == ["data: queued\n\n"]
        assert connection.id not in connections
        assert connection.close_count == 1


class TestLifespan:
    """Tests for startup and shutdown."""

    def test_shutdown_closes_connections_and_client(self):
        settings = Settings(api_key="test-key")
        on_shutdown = AsyncMock()
        app = create_app(settings, ToolRegistry(), "sse", on_shutdown=on_shutdown)

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            connection = app.state.connections.open()

        assert connection.closed
        assert len(app.state.connections) == 0
        on_shutdown.assert_awaited_once()
