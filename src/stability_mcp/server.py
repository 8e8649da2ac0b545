#!/usr/bin/env python3
"""
Stability AI MCP Server

Exposes Stability AI image generation and editing endpoints as MCP tools:
- generate-image, generate-image-sd35: text-to-image
- remove-background, outpaint, search-and-replace, search-and-recolor,
  erase, inpaint, replace-background-and-relight: editing
- upscale-fast, upscale-conservative, upscale-creative: upscaling
- control-sketch, control-structure, control-style: guided generation

Transports (STABILITY_TRANSPORT):
- stdio: official MCP SDK server over stdin/stdout (default)
- sse:   GET /sse stream + POST /messages?session_id=...
- http:  POST /mcp, one JSON-RPC frame per request

API Reference: https://platform.stability.ai/docs/api-reference
"""

import asyncio
import logging
import sys
from typing import Any

import uvicorn
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import ImageContent, TextContent, Tool

from .app import create_app
from .client import StabilityClient
from .config import Settings, get_settings
from .registry import ToolRegistry
from .tools import build_registry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Log to stderr; stdout carries the stdio protocol."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


# --- MCP Server ---


async def list_tools(registry: ToolRegistry) -> list[Tool]:
    """List available tools."""
    return registry.to_mcp_tools()


async def call_tool(
    registry: ToolRegistry,
    name: str,
    arguments: dict[str, Any] | None,
    timeout: float = 30.0,
) -> list[ImageContent | TextContent]:
    """Execute a tool.

    Args:
        registry: Registry to look the tool up in
        name: Tool name to execute
        arguments: Tool arguments
        timeout: Seconds before the call is cancelled

    Returns:
        Image and text content produced by the tool

    Raises:
        ValueError: If the tool is unknown
        TimeoutError: If the tool does not finish in time
    """
    tool = registry.lookup(name)
    if tool is None:
        raise ValueError(f"Unknown tool: {name}")
    try:
        return await asyncio.wait_for(tool.handler(arguments or {}), timeout=timeout)
    except asyncio.TimeoutError:
        raise TimeoutError(f"Tool execution timed out after {timeout}s") from None


def create_server(registry: ToolRegistry, settings: Settings) -> Server:
    """Build the MCP SDK server backed by ``registry``."""
    server = Server(settings.server_name, version=settings.server_version)

    @server.list_tools()
    async def _list_tools() -> list[Tool]:
        return await list_tools(registry)

    @server.call_tool()
    async def _call_tool(name: str, arguments: dict[str, Any]) -> list[ImageContent | TextContent]:
        return await call_tool(registry, name, arguments, settings.tool_timeout)

    return server


def main():
    """Run the MCP server on the configured transport."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(
        "Starting %s v%s (%s, %s transport)",
        settings.server_name,
        settings.server_version,
        settings.environment,
        settings.transport,
    )

    if settings.transport == "stdio":
        asyncio.run(_run_stdio(settings))
    else:
        _run_web(settings)


async def _run_stdio(settings: Settings):
    """Async stdio server runner."""
    async with StabilityClient(settings) as client:
        registry = build_registry(client, settings)
        server = create_server(registry, settings)
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())


def _run_web(settings: Settings):
    """HTTP/SSE runner; the client is closed when the app shuts down."""
    client = StabilityClient(settings)
    registry = build_registry(client, settings)
    app = create_app(settings, registry, settings.transport, on_shutdown=client.close)
    logger.info(
        "Listening on http://%s:%d%s",
        settings.host,
        settings.port,
        settings.sse_path if settings.transport == "sse" else "/mcp",
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
