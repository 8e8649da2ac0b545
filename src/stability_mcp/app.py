"""Starlette application for the HTTP and SSE transports."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone

from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from .config import Settings, Transport
from .connections import Connection, ConnectionManager, format_sse
from .dispatcher import EXECUTION_ERROR, Dispatcher, error_response
from .errors import ConnectionLimitError
from .metrics import ServerMetrics
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

MESSAGES_PATH = "/messages"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}


def create_app(
    settings: Settings,
    registry: ToolRegistry,
    transport: Transport = "sse",
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> Starlette:
    """Build the web application for ``transport`` ("http" or "sse").

    Args:
        settings: Server settings (limits, timeouts, paths)
        registry: Tools to expose
        transport: Which JSON-RPC route set to mount
        on_shutdown: Awaited after connections are closed at shutdown

    Returns:
        Starlette app; ``app.state`` holds the dispatcher, connections and metrics
    """
    metrics = ServerMetrics()
    dispatcher = Dispatcher(
        registry,
        server_name=settings.server_name,
        server_version=settings.server_version,
        tool_timeout=settings.tool_timeout,
        max_connections=settings.max_connections,
        metrics=metrics,
    )
    connections = ConnectionManager(
        max_connections=settings.max_connections,
        inactivity_timeout=settings.inactivity_timeout,
        heartbeat_interval=settings.heartbeat_interval,
        metrics=metrics,
    )

    async def health(_request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})

    async def metrics_endpoint(_request: Request) -> JSONResponse:
        return JSONResponse(metrics.snapshot())

    async def sse_endpoint(_request: Request) -> Response:
        try:
            connection = connections.open()
        except ConnectionLimitError as e:
            frame = format_sse(error_response(None, EXECUTION_ERROR, str(e), {"status": 503}))
            return Response(frame, status_code=503, media_type="text/event-stream")

        return StreamingResponse(
            _stream(connection, connections),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    async def messages_endpoint(request: Request) -> Response:
        session_id = request.query_params.get("session_id", "")
        connection = connections.touch(session_id)
        if connection is None:
            return JSONResponse({"error": f"Unknown session: {session_id}"}, status_code=404)

        body = await request.body()

        async def deliver() -> None:
            response = await dispatcher.handle_raw(body)
            if response is not None and not connection.send_message(response):
                logger.info("Dropped response for closed connection %s", connection.id)

        return Response(status_code=202, background=BackgroundTask(deliver))

    async def mcp_endpoint(request: Request) -> Response:
        response = await dispatcher.handle_raw(await request.body())
        if response is None:
            return Response(status_code=202)
        return JSONResponse(response)

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        logger.info("Starting %s transport with %d tools", transport, len(registry))
        heartbeat = asyncio.create_task(connections.run_heartbeat())
        try:
            yield
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat
            connections.close_all()
            if on_shutdown is not None:
                await on_shutdown()
            logger.info("Server stopped")

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/metrics", metrics_endpoint, methods=["GET"]),
    ]
    if transport == "sse":
        routes.append(Route(settings.sse_path, sse_endpoint, methods=["GET"]))
        routes.append(Route(MESSAGES_PATH, messages_endpoint, methods=["POST"]))
    else:
        routes.append(Route("/mcp", mcp_endpoint, methods=["POST"]))

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.connections = connections
    app.state.metrics = metrics
    return app


async def _stream(connection: Connection, connections: ConnectionManager) -> AsyncIterator[str]:
    try:
        yield format_sse(f"{MESSAGES_PATH}?session_id={connection.id}", event="endpoint")
        async for frame in connection.frames():
            yield frame
    except Exception as e:
        logger.warning("Connection %s failed: %s", connection.id, e)
    finally:
        connections.remove(connection.id)
