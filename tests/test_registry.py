"""Unit tests for the tool registry and tool definitions."""

from unittest.mock import AsyncMock

import pytest
from mcp.types import Tool

from stability_mcp.client import StabilityClient
from stability_mcp.config import Settings
from stability_mcp.errors import DuplicateToolError, InvalidToolNameError
from stability_mcp.registry import ToolRegistry
from stability_mcp.tools import build_registry

SCHEMA = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
}

EXPECTED_TOOLS = [
    "generate-image",
    "generate-image-sd35",
    "remove-background",
    "outpaint",
    "search-and-replace",
    "search-and-recolor",
    "erase",
    "inpaint",
    "replace-background-and-relight",
    "upscale-fast",
    "upscale-conservative",
    "upscale-creative",
    "control-sketch",
    "control-structure",
    "control-style",
]


class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_register_and_lookup(self):
        registry = ToolRegistry()
        handler = AsyncMock()
        tool = registry.register("echo", "Echo text", SCHEMA, handler)

        assert registry.lookup("echo") is tool
        assert "echo" in registry
        assert len(registry) == 1
        assert tool.handler is handler

    def test_lookup_unknown(self):
        assert ToolRegistry().lookup("missing") is None

    @pytest.mark.parametrize("name", ["echo", "generate-image", "ns/tool_2", "A-Z"])
    def test_valid_names(self, name):
        registry = ToolRegistry()
        registry.register(name, "desc", SCHEMA, AsyncMock())
        assert name in registry

    @pytest.mark.parametrize("name", ["", "has space", "dot.name", "semi;colon"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidToolNameError):
            ToolRegistry().register(name, "desc", SCHEMA, AsyncMock())

    def test_duplicate_name_rejected(self):
        """Registering the same name twice is an error; the first stays."""
        registry = ToolRegistry()
        first = registry.register("echo", "first", SCHEMA, AsyncMock())

        with pytest.raises(DuplicateToolError, match="echo"):
            registry.register("echo", "second", SCHEMA, AsyncMock())

        assert registry.lookup("echo") is first

    def test_missing_arguments(self):
        """Required properties that are absent or null are reported."""
        tool = ToolRegistry().register("echo", "Echo", SCHEMA, AsyncMock())
        assert tool.missing_arguments({}) == ["text"]
        assert tool.missing_arguments({"text": None}) == ["text"]
        assert tool.missing_arguments({"text": "hi"}) == []

    def test_to_mcp_tools(self):
        registry = ToolRegistry()
        registry.register("echo", "Echo text", SCHEMA, AsyncMock())

        tools = registry.to_mcp_tools()

        assert len(tools) == 1
        assert isinstance(tools[0], Tool)
        assert tools[0].name == "echo"
        assert tools[0].inputSchema == SCHEMA


class TestStabilityTools:
    """Tests for the registered Stability AI tools."""

    def test_all_tools_registered_in_order(self):
        registry = build_registry(StabilityClient("test-key"))
        assert [tool.name for tool in registry.list()] == EXPECTED_TOOLS

    def test_tools_have_descriptions_and_object_schemas(self):
        registry = build_registry(StabilityClient("test-key"))
        for tool in registry.list():
            assert tool.description
            assert tool.input_schema["type"] == "object"
            for name in tool.required:
                assert name in tool.input_schema["properties"]

    def test_image_tools_require_image(self):
        registry = build_registry(StabilityClient("test-key"))
        for name in EXPECTED_TOOLS[2:]:
            assert "image" in registry.lookup(name).required, name

    def test_generation_tools_require_prompt(self):
        registry = build_registry(StabilityClient("test-key"))
        assert registry.lookup("generate-image").required == ["prompt"]
        assert registry.lookup("generate-image-sd35").required == ["prompt"]

    def test_mask_tools_require_mask(self):
        registry = build_registry(StabilityClient("test-key"))
        assert "mask" in registry.lookup("erase").required
        assert "mask" in registry.lookup("inpaint").required

    def test_generation_handlers_receive_settings(self):
        """Generation handlers are bound to the settings they report."""
        settings = Settings(api_key="test-key")
        registry = build_registry(StabilityClient(settings), settings)
        handler = registry.lookup("generate-image").handler
        assert handler.keywords["defaults"] is settings
