"""MCP tool definitions for the Stability AI API."""

from functools import partial
from typing import Any

from . import handlers
from .client import StabilityClient
from .config import Settings
from .models import ASPECT_RATIOS, OUTPUT_FORMATS, SD3_MODELS
from .registry import ToolRegistry

# Common schema fragments
IMAGE_INPUT_SCHEMA = {
    "type": "string",
    "description": "Image: local file path, base64-encoded data, or data URI",
}

MASK_INPUT_SCHEMA = {
    "type": "string",
    "description": "Mask image (white = area to change): local file path or base64-encoded data",
}

PROMPT_SCHEMA = {
    "type": "string",
    "description": "Text description of the desired output",
}

NEGATIVE_PROMPT_SCHEMA = {
    "type": "string",
    "description": "What you do not want to see in the output (optional)",
}

ASPECT_RATIO_SCHEMA = {
    "type": "string",
    "description": "Aspect ratio (default: 1:1)",
    "enum": list(ASPECT_RATIOS),
    "default": "1:1",
}

SEED_SCHEMA = {
    "type": "integer",
    "description": "Seed for reproducibility (0 = random)",
    "minimum": 0,
    "maximum": 4294967294,
}

OUTPUT_FORMAT_SCHEMA = {
    "type": "string",
    "description": "Output format (default: png)",
    "enum": list(OUTPUT_FORMATS),
    "default": "png",
}

CREATIVITY_SCHEMA = {
    "type": "number",
    "description": "How much the model may invent (0-1)",
    "minimum": 0,
    "maximum": 1,
}

GROW_MASK_SCHEMA = {
    "type": "integer",
    "description": "Pixels to grow the mask edges by (0-100, default: 5)",
    "minimum": 0,
    "maximum": 100,
}

CONTROL_STRENGTH_SCHEMA = {
    "type": "number",
    "description": "How strongly the input image guides the result (0-1, default: 0.7)",
    "minimum": 0,
    "maximum": 1,
}


def _schema(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


def _direction(name: str) -> dict[str, Any]:
    return {
        "type": "integer",
        "description": f"Pixels to add {name} (0-2000)",
        "minimum": 0,
        "maximum": 2000,
        "default": 0,
    }


GENERATE_IMAGE_SCHEMA = _schema(
    {
        "prompt": PROMPT_SCHEMA,
        "negative_prompt": NEGATIVE_PROMPT_SCHEMA,
        "aspect_ratio": ASPECT_RATIO_SCHEMA,
        "style_preset": {
            "type": "string",
            "description": "Style preset (e.g. photographic, anime, digital-art)",
        },
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["prompt"],
)

GENERATE_IMAGE_SD35_SCHEMA = _schema(
    {
        "prompt": PROMPT_SCHEMA,
        "negative_prompt": NEGATIVE_PROMPT_SCHEMA,
        "model": {
            "type": "string",
            "description": "Model to use (default: sd3.5-medium)",
            "enum": list(SD3_MODELS),
            "default": "sd3.5-medium",
        },
        "aspect_ratio": ASPECT_RATIO_SCHEMA,
        "cfg_scale": {
            "type": "number",
            "description": "Prompt adherence 1-10 (default: STABILITY_CFG_SCALE)",
            "minimum": 1,
            "maximum": 10,
        },
        "seed": SEED_SCHEMA,
        "output_format": {**OUTPUT_FORMAT_SCHEMA, "enum": ["png", "jpeg"]},
    },
    ["prompt"],
)

REMOVE_BACKGROUND_SCHEMA = _schema(
    {
        "image": IMAGE_INPUT_SCHEMA,
        "output_format": {**OUTPUT_FORMAT_SCHEMA, "enum": ["png", "webp"]},
    },
    ["image"],
)

OUTPAINT_SCHEMA = _schema(
    {
        "image": IMAGE_INPUT_SCHEMA,
        "prompt": {**PROMPT_SCHEMA, "description": "Optional text to guide the new content"},
        "left": _direction("to the left"),
        "right": _direction("to the right"),
        "up": _direction("to the top"),
        "down": _direction("to the bottom"),
        "creativity": CREATIVITY_SCHEMA,
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["image"],
)

SEARCH_AND_REPLACE_SCHEMA = _schema(
    {
        "image": IMAGE_INPUT_SCHEMA,
        "prompt": {**PROMPT_SCHEMA, "description": "What to put in place of the found object"},
        "search_prompt": {"type": "string", "description": "Short description of what to find"},
        "negative_prompt": NEGATIVE_PROMPT_SCHEMA,
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["image", "prompt", "search_prompt"],
)

SEARCH_AND_RECOLOR_SCHEMA = _schema(
    {
        "image": IMAGE_INPUT_SCHEMA,
        "prompt": {**PROMPT_SCHEMA, "description": "Desired colors, e.g. 'a bright red car'"},
        "select_prompt": {"type": "string", "description": "Short description of what to recolor"},
        "negative_prompt": NEGATIVE_PROMPT_SCHEMA,
        "grow_mask": GROW_MASK_SCHEMA,
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["image", "prompt", "select_prompt"],
)

ERASE_SCHEMA = _schema(
    {
        "image": IMAGE_INPUT_SCHEMA,
        "mask": MASK_INPUT_SCHEMA,
        "grow_mask": GROW_MASK_SCHEMA,
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["image", "mask"],
)

INPAINT_SCHEMA = _schema(
    {
        "image": IMAGE_INPUT_SCHEMA,
        "mask": MASK_INPUT_SCHEMA,
        "prompt": {**PROMPT_SCHEMA, "description": "What to paint into the masked area"},
        "negative_prompt": NEGATIVE_PROMPT_SCHEMA,
        "grow_mask": GROW_MASK_SCHEMA,
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["image", "mask", "prompt"],
)

REPLACE_BACKGROUND_SCHEMA = _schema(
    {
        "image": {**IMAGE_INPUT_SCHEMA, "description": "Subject image to keep"},
        "background_prompt": {"type": "string", "description": "Description of the new background"},
        "light_source_direction": {
            "type": "string",
            "description": "Direction of the new light source",
            "enum": ["left", "right", "above", "below"],
        },
        "light_source_strength": {
            "type": "number",
            "description": "Light source strength (0-1)",
            "minimum": 0,
            "maximum": 1,
        },
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["image", "background_prompt"],
)

UPSCALE_FAST_SCHEMA = _schema(
    {"image": IMAGE_INPUT_SCHEMA, "output_format": OUTPUT_FORMAT_SCHEMA},
    ["image"],
)

UPSCALE_PROMPTED_SCHEMA = _schema(
    {
        "image": IMAGE_INPUT_SCHEMA,
        "prompt": {**PROMPT_SCHEMA, "description": "Description of the image content"},
        "negative_prompt": NEGATIVE_PROMPT_SCHEMA,
        "creativity": CREATIVITY_SCHEMA,
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["image", "prompt"],
)

CONTROL_SCHEMA = _schema(
    {
        "image": IMAGE_INPUT_SCHEMA,
        "prompt": PROMPT_SCHEMA,
        "negative_prompt": NEGATIVE_PROMPT_SCHEMA,
        "control_strength": CONTROL_STRENGTH_SCHEMA,
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["image", "prompt"],
)

CONTROL_STYLE_SCHEMA = _schema(
    {
        "image": {**IMAGE_INPUT_SCHEMA, "description": "Style reference image"},
        "prompt": PROMPT_SCHEMA,
        "negative_prompt": NEGATIVE_PROMPT_SCHEMA,
        "aspect_ratio": ASPECT_RATIO_SCHEMA,
        "fidelity": {
            "type": "number",
            "description": "How closely to follow the reference style (0-1, default: 0.5)",
            "minimum": 0,
            "maximum": 1,
        },
        "seed": SEED_SCHEMA,
        "output_format": OUTPUT_FORMAT_SCHEMA,
    },
    ["image", "prompt"],
)


def register_stability_tools(
    registry: ToolRegistry, client: StabilityClient, settings: Settings | None = None
) -> ToolRegistry:
    """Register every Stability AI tool, binding handlers to ``client``.

    Args:
        registry: Registry to populate
        client: Client shared by all handlers
        settings: Settings providing generation defaults

    Returns:
        The populated registry
    """
    tools = [
        (
            "generate-image",
            "Generate an image from a text prompt with Stable Image Core. "
            "Fast and affordable; returns the image inline.",
            GENERATE_IMAGE_SCHEMA,
            partial(handlers.handle_generate_image, client, defaults=settings),
        ),
        (
            "generate-image-sd35",
            "Generate a high-quality image with Stable Diffusion 3.5, Stability AI's "
            "most advanced text-to-image model with strong prompt adherence.",
            GENERATE_IMAGE_SD35_SCHEMA,
            partial(handlers.handle_generate_image_sd35, client, defaults=settings),
        ),
        (
            "remove-background",
            "Detect and remove the background of an image, returning the isolated "
            "foreground on a transparent background.",
            REMOVE_BACKGROUND_SCHEMA,
            partial(handlers.handle_remove_background, client),
        ),
        (
            "outpaint",
            "Extend an image in any direction (left, right, up, down) with "
            "AI-generated content that blends with the original.",
            OUTPAINT_SCHEMA,
            partial(handlers.handle_outpaint, client),
        ),
        (
            "search-and-replace",
            "Find an object described in natural language and replace it with "
            "new content described by the prompt. No mask required.",
            SEARCH_AND_REPLACE_SCHEMA,
            partial(handlers.handle_search_and_replace, client),
        ),
        (
            "search-and-recolor",
            "Find an object described in natural language and change its colors. "
            "No mask required.",
            SEARCH_AND_RECOLOR_SCHEMA,
            partial(handlers.handle_search_and_recolor, client),
        ),
        (
            "erase",
            "Remove unwanted objects marked by a mask, filling the area with "
            "matching background.",
            ERASE_SCHEMA,
            partial(handlers.handle_erase, client),
        ),
        (
            "inpaint",
            "Fill or replace the masked area of an image with content described by the prompt.",
            INPAINT_SCHEMA,
            partial(handlers.handle_inpaint, client),
        ),
        (
            "replace-background-and-relight",
            "Replace the background behind a subject and relight the scene to match. "
            "Runs asynchronously upstream; may take up to a minute.",
            REPLACE_BACKGROUND_SCHEMA,
            partial(handlers.handle_replace_background_and_relight, client),
        ),
        (
            "upscale-fast",
            "Upscale an image 4x quickly while preserving detail.",
            UPSCALE_FAST_SCHEMA,
            partial(handlers.handle_upscale_fast, client),
        ),
        (
            "upscale-conservative",
            "Upscale an image up to 4K with minimal alterations to the original.",
            UPSCALE_PROMPTED_SCHEMA,
            partial(handlers.handle_upscale_conservative, client),
        ),
        (
            "upscale-creative",
            "Upscale a low-resolution image up to 4K, adding detail guided by the prompt. "
            "Runs asynchronously upstream; may take up to a minute.",
            UPSCALE_PROMPTED_SCHEMA,
            partial(handlers.handle_upscale_creative, client),
        ),
        (
            "control-sketch",
            "Turn a rough sketch into a finished image that follows its outlines.",
            CONTROL_SCHEMA,
            partial(handlers.handle_control_sketch, client),
        ),
        (
            "control-structure",
            "Generate a new image that keeps the structure and composition of the input image.",
            CONTROL_SCHEMA,
            partial(handlers.handle_control_structure, client),
        ),
        (
            "control-style",
            "Generate an image in the style of a reference image.",
            CONTROL_STYLE_SCHEMA,
            partial(handlers.handle_control_style, client),
        ),
    ]

    for name, description, schema, handler in tools:
        registry.register(name, description, schema, handler)
    return registry


def build_registry(client: StabilityClient, settings: Settings | None = None) -> ToolRegistry:
    """Create a registry holding all Stability AI tools."""
    return register_stability_tools(ToolRegistry(), client, settings)
