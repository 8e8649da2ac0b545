"""Tool registry shared by every transport."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from mcp.types import Tool

from .errors import DuplicateToolError, InvalidToolNameError

ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]

TOOL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_\-/]+$")


@dataclass(frozen=True)
class ToolDefinition:
    """One callable capability."""

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler

    @property
    def required(self) -> list[str]:
        return list(self.input_schema.get("required", []))

    def missing_arguments(self, arguments: dict[str, Any]) -> list[str]:
        """Required schema properties absent from ``arguments``."""
        return [name for name in self.required if arguments.get(name) is None]

    def to_mcp_tool(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)


class ToolRegistry:
    """Static mapping of tool name to definition."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        handler: ToolHandler,
    ) -> ToolDefinition:
        """Add a tool.

        Raises:
            InvalidToolNameError: If the name has characters outside [A-Za-z0-9_-/]
            DuplicateToolError: If the name is already registered
        """
        if not TOOL_NAME_PATTERN.match(name):
            raise InvalidToolNameError(name)
        if name in self._tools:
            raise DuplicateToolError(name)
        tool = ToolDefinition(name, description, input_schema, handler)
        self._tools[name] = tool
        return tool

    def lookup(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def list(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def to_mcp_tools(self) -> list[Tool]:
        return [tool.to_mcp_tool() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
