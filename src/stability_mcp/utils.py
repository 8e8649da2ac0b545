"""Utility functions for image handling and response formatting."""

import base64
import binascii
import re
from pathlib import Path
from typing import Any

from mcp.types import ImageContent, TextContent

from .models import ImagePayload

_DATA_URI_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")


def is_local_file(image_input: str) -> bool:
    """Check if input is a local file path (not base64 or a data URI).

    Args:
        image_input: String that could be a file path or base64 data

    Returns:
        True if input is an existing local file path
    """
    if image_input.startswith("data:"):
        return False
    # Base64 strings are typically very long with no path separators after initial chars
    if len(image_input) > 500 and "/" not in image_input[10:]:
        return False
    try:
        return Path(image_input).is_file()
    except OSError:
        # Names too long for the filesystem are base64, not paths
        return False


def strip_data_uri(data: str) -> str:
    """Remove a leading ``data:image/...;base64,`` prefix if present."""
    return _DATA_URI_PREFIX.sub("", data.strip(), count=1)


def base64_to_bytes(data: str) -> bytes:
    """Decode base64 image data, with or without a data URI prefix.

    Raises:
        ValueError: If the data is not valid base64
    """
    try:
        return base64.b64decode(strip_data_uri(data), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Image must be a local file path or base64-encoded data") from e


def sniff_image_type(data: bytes) -> tuple[str, str]:
    """Guess (extension, MIME type) from magic bytes, defaulting to PNG."""
    if data.startswith(b"\xff\xd8\xff"):
        return "jpg", "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp", "image/webp"
    return "png", "image/png"


def read_image_input(image_input: str) -> bytes:
    """Load image bytes from a local file path or base64 data.

    Args:
        image_input: Image path, base64 string or data URI

    Returns:
        Raw image bytes ready for a multipart upload

    Raises:
        ValueError: If the input is neither a file nor valid base64
    """
    if is_local_file(image_input):
        return Path(image_input).read_bytes()
    return base64_to_bytes(image_input)


def truncate_prompt(prompt: str, max_length: int = 100) -> tuple[str, str]:
    """Truncate a prompt for display.

    Args:
        prompt: The prompt text
        max_length: Maximum length before truncation

    Returns:
        Tuple of (truncated_prompt, suffix) where suffix is "..." if truncated
    """
    if len(prompt) > max_length:
        return prompt[:max_length], "..."
    return prompt, ""


def to_image_content(payload: ImagePayload) -> ImageContent:
    """Wrap an image payload as MCP image content."""
    return ImageContent(type="image", data=payload.to_base64(), mimeType=payload.mime_type)


def format_summary(
    title: str,
    payload: ImagePayload,
    prompt: str | None = None,
    parameters: dict[str, Any] | None = None,
) -> TextContent:
    """Format the text block that accompanies a returned image.

    Args:
        title: Summary title (e.g., "Image generated successfully!")
        payload: Image returned by the API
        prompt: Prompt or instruction used
        parameters: Effective request parameters to list

    Returns:
        Formatted TextContent
    """
    lines = [f"{title}\n"]

    if prompt:
        prompt_display, suffix = truncate_prompt(prompt)
        lines.append(f"**Prompt:** {prompt_display}{suffix}")

    for key, value in (parameters or {}).items():
        if value is not None:
            lines.append(f"**{key}:** {value}")

    if payload.seed is not None:
        lines.append(f"**Seed:** {payload.seed}")
    lines.append(f"**Format:** {payload.mime_type} ({len(payload.data) / 1024:.1f} KB)")

    if payload.content_filtered:
        lines.append("")
        lines.append("Warning: the result was flagged by the content filter and may be blurred.")

    return TextContent(type="text", text="\n".join(lines))
