"""Minimal JSON-RPC 2.0 dispatcher for the HTTP and SSE transports.

Speaks the MCP subset this server needs: ``initialize``, ``tools/list``,
``tools/call`` and ``ping``. Every failure is turned into a JSON-RPC error
object; nothing raised by a frame or a tool escapes :meth:`Dispatcher.handle_raw`.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ValidationError

from .errors import JsonRpcError
from .metrics import ServerMetrics
from .models import JsonRpcMessage
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26")

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
UNSUPPORTED_PROTOCOL_VERSION = -32002
EXECUTION_ERROR = -32000


def error_response(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": JsonRpcError(code, message, data).to_dict()}


def success_response(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _recover_id(frame: Any) -> Any:
    """Best-effort id for an invalid frame; null unless it is a string or number."""
    if isinstance(frame, dict):
        request_id = frame.get("id")
        if isinstance(request_id, (str, int, float)) and not isinstance(request_id, bool):
            return request_id
    return None


class Dispatcher:
    """Routes JSON-RPC frames to the tool registry."""

    def __init__(
        self,
        registry: ToolRegistry,
        server_name: str = "stability-ai-mcp-server",
        server_version: str = "0.1.0",
        tool_timeout: float = 30.0,
        max_connections: int = 100,
        metrics: ServerMetrics | None = None,
    ):
        self.registry = registry
        self.server_name = server_name
        self.server_version = server_version
        self.tool_timeout = tool_timeout
        self.max_connections = max_connections
        self.metrics = metrics or ServerMetrics()

    async def handle_raw(self, raw: str | bytes) -> dict[str, Any] | None:
        """Parse and handle one frame.

        Returns:
            The response object, or None for notifications
        """
        try:
            frame = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            return self._parse_error(None, "Parse error: invalid JSON")
        return await self.handle(frame)

    async def handle(self, frame: Any) -> dict[str, Any] | None:
        """Handle one decoded frame."""
        if not isinstance(frame, dict):
            return self._parse_error(None, "Parse error: frame must be a JSON object")
        try:
            message = JsonRpcMessage.model_validate(frame)
        except ValidationError as e:
            return self._parse_error(_recover_id(frame), "Parse error: invalid JSON-RPC frame", e)

        if message.method is None:
            # A response from the client; nothing to answer
            return None

        try:
            result = await self._dispatch(message)
        except JsonRpcError as e:
            self.metrics.record_error(e.code)
            if message.is_notification:
                return None
            return {"jsonrpc": "2.0", "id": message.id, "error": e.to_dict()}

        if message.is_notification:
            return None
        return success_response(message.id, result)

    def _parse_error(
        self, request_id: Any, message: str, error: ValidationError | None = None
    ) -> dict[str, Any]:
        self.metrics.record_error(PARSE_ERROR)
        data = None
        if error is not None:
            data = [f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in error.errors()]
        return error_response(request_id, PARSE_ERROR, message, data)

    async def _dispatch(self, message: JsonRpcMessage) -> Any:
        method = message.method
        params = message.params if isinstance(message.params, dict) else {}

        if method == "initialize":
            return self._initialize(params)
        if method == "tools/list":
            return {"tools": self._tool_descriptors()}
        if method == "tools/call":
            return await self._call_tool(message.params)
        if method == "ping":
            return self._ping()
        if method is not None and method.startswith("notifications/"):
            return None
        raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {method}")

    def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        version = params.get("protocolVersion")
        if not isinstance(version, str):
            raise JsonRpcError(INVALID_PARAMS, "Missing protocolVersion")
        if version not in SUPPORTED_PROTOCOL_VERSIONS:
            raise JsonRpcError(
                UNSUPPORTED_PROTOCOL_VERSION,
                f"Unsupported protocol version: {version}",
                {"supported": list(SUPPORTED_PROTOCOL_VERSIONS)},
            )
        return {
            "protocolVersion": version,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self.server_name, "version": self.server_version},
            "tools": self._tool_descriptors(),
            "limits": {
                "maxConnections": self.max_connections,
                "toolTimeoutSeconds": self.tool_timeout,
            },
        }

    def _ping(self) -> dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server": self.server_name,
        }

    def _tool_descriptors(self) -> list[dict[str, Any]]:
        return [
            tool.model_dump(by_alias=True, exclude_none=True)
            for tool in self.registry.to_mcp_tools()
        ]

    async def _call_tool(self, params: Any) -> Any:
        if not isinstance(params, dict) or not isinstance(params.get("name"), str):
            raise JsonRpcError(INVALID_PARAMS, "tools/call requires params.name")
        name = params["name"]
        arguments = params.get("arguments", {})
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise JsonRpcError(INVALID_PARAMS, "params.arguments must be an object")

        tool = self.registry.lookup(name)
        if tool is None:
            raise JsonRpcError(METHOD_NOT_FOUND, f"Tool not found: {name}")

        missing = tool.missing_arguments(arguments)
        if missing:
            raise JsonRpcError(
                INVALID_PARAMS,
                f"Missing required arguments for {name}: {', '.join(missing)}",
                {"tool": name, "missing": missing},
            )

        self.metrics.tool_calls += 1
        logger.info("Calling tool %s", name)
        try:
            result = await asyncio.wait_for(tool.handler(arguments), timeout=self.tool_timeout)
        except asyncio.TimeoutError:
            self.metrics.tool_timeouts += 1
            logger.warning("Tool %s timed out after %ss", name, self.tool_timeout)
            raise JsonRpcError(
                EXECUTION_ERROR,
                f"Tool execution timed out after {self.tool_timeout}s",
                {"tool": name},
            ) from None
        except Exception as e:
            self.metrics.tool_failures += 1
            logger.error("Tool %s failed: %s", name, e)
            raise JsonRpcError(EXECUTION_ERROR, str(e), {"tool": name}) from e

        return _serialize_result(result)


def _serialize_result(result: Any) -> Any:
    """MCP content lists become ``{content, isError}``; anything else passes through."""
    if isinstance(result, list) and result and all(isinstance(item, BaseModel) for item in result):
        return {
            "content": [item.model_dump(by_alias=True, exclude_none=True) for item in result],
            "isError": False,
        }
    if isinstance(result, BaseModel):
        return result.model_dump(by_alias=True, exclude_none=True)
    return result
