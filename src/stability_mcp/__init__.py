"""Stability AI MCP Server - Stability AI image generation and editing tools over MCP."""

from .client import StabilityClient, get_client
from .config import Settings, get_settings
from .keys import ApiKeyPool, execute_with_fallback
from .registry import ToolDefinition, ToolRegistry
from .server import main

__version__ = "0.1.0"
__all__ = [
    "ApiKeyPool",
    "Settings",
    "StabilityClient",
    "ToolDefinition",
    "ToolRegistry",
    "execute_with_fallback",
    "get_client",
    "get_settings",
    "main",
]
