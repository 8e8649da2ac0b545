"""Tool handler implementations for Stability AI MCP."""

import logging
from typing import Any

from mcp.types import ImageContent, TextContent

from .client import FileField, StabilityClient
from .config import Settings
from .errors import ToolExecutionError
from .models import (
    CONTROL_ENDPOINTS,
    EDIT_ENDPOINTS,
    GENERATION_ENDPOINTS,
    UPSCALE_ENDPOINTS,
    ImagePayload,
)
from .utils import format_summary, read_image_input, sniff_image_type, to_image_content

logger = logging.getLogger(__name__)

ToolContent = list[ImageContent | TextContent]

OUTPAINT_DIRECTIONS = ("left", "right", "up", "down")


def _pick(args: dict[str, Any], *names: str) -> dict[str, Any]:
    return {name: args[name] for name in names if args.get(name) is not None}


def _image_file(
    args: dict[str, Any], arg: str, action: str, field: str | None = None
) -> dict[str, FileField]:
    """Load an image argument as a multipart file field."""
    try:
        data = read_image_input(args[arg])
    except (OSError, ValueError) as e:
        raise ToolExecutionError(f"Failed to {action}: invalid {arg}: {e}") from e
    extension, mime_type = sniff_image_type(data)
    return {field or arg: (f"{arg}.{extension}", data, mime_type)}


async def _post(
    client: StabilityClient,
    action: str,
    endpoint: str,
    fields: dict[str, Any],
    files: dict[str, FileField] | None = None,
) -> ImagePayload:
    logger.info("Calling %s to %s", endpoint, action)
    try:
        return await client.post_image(endpoint, fields, files)
    except Exception as e:
        raise ToolExecutionError(f"Failed to {action}: {e}") from e


async def _submit_and_wait(
    client: StabilityClient,
    action: str,
    endpoint: str,
    fields: dict[str, Any],
    files: dict[str, FileField],
) -> ImagePayload:
    logger.info("Submitting %s to %s", endpoint, action)
    try:
        generation_id = await client.submit(endpoint, fields, files)
        return await client.wait_for_completion(generation_id)
    except Exception as e:
        raise ToolExecutionError(f"Failed to {action}: {e}") from e


def _result(
    title: str,
    payload: ImagePayload,
    prompt: str | None = None,
    parameters: dict[str, Any] | None = None,
) -> ToolContent:
    return [to_image_content(payload), format_summary(title, payload, prompt, parameters)]


# --- Generation ---


async def handle_generate_image(
    client: StabilityClient, args: dict[str, Any], defaults: Settings | None = None
) -> ToolContent:
    """Handle generate-image (Stable Image Core).

    Args:
        client: Stability API client
        args: Tool arguments
        defaults: Settings supplying the reported engine defaults

    Returns:
        Generated image followed by a summary
    """
    fields: dict[str, Any] = {
        "prompt": args["prompt"],
        "output_format": args.get("output_format", "png"),
    }
    fields.update(_pick(args, "negative_prompt", "aspect_ratio", "seed", "style_preset"))

    payload = await _post(client, "generate image", GENERATION_ENDPOINTS["core"], fields)

    parameters: dict[str, Any] = {"Aspect ratio": args.get("aspect_ratio", "1:1")}
    if defaults is not None:
        parameters.update(
            {
                "Engine": defaults.engine,
                "Width": defaults.width,
                "Height": defaults.height,
                "Steps": defaults.steps,
                "CFG scale": defaults.cfg_scale,
                "Sampler": defaults.sampler,
            }
        )
    return _result("Image generated successfully!", payload, args["prompt"], parameters)


async def handle_generate_image_sd35(
    client: StabilityClient, args: dict[str, Any], defaults: Settings | None = None
) -> ToolContent:
    """Handle generate-image-sd35 (Stable Diffusion 3.5)."""
    model = args.get("model", "sd3.5-medium")
    fields: dict[str, Any] = {
        "prompt": args["prompt"],
        "model": model,
        "output_format": args.get("output_format", "png"),
    }
    fields.update(_pick(args, "negative_prompt", "aspect_ratio", "seed"))

    cfg_scale = args.get("cfg_scale")
    if cfg_scale is None and defaults is not None:
        cfg_scale = defaults.cfg_scale
    fields["cfg_scale"] = cfg_scale

    payload = await _post(client, "generate image with SD3.5", GENERATION_ENDPOINTS["sd3"], fields)

    parameters = {
        "Model": model,
        "Aspect ratio": args.get("aspect_ratio", "1:1"),
        "CFG scale": cfg_scale,
    }
    return _result("Image generated successfully!", payload, args["prompt"], parameters)


# --- Editing ---


async def handle_remove_background(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle remove-background."""
    action = "remove background"
    files = _image_file(args, "image", action)
    fields = {"output_format": args.get("output_format", "png")}

    payload = await _post(client, action, EDIT_ENDPOINTS["remove-background"], fields, files)
    return _result("Background removed successfully!", payload)


async def handle_outpaint(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle outpaint: extend the canvas in one or more directions."""
    action = "outpaint image"
    directions = {d: args[d] for d in OUTPAINT_DIRECTIONS if (args.get(d) or 0) > 0}
    if not directions:
        raise ToolExecutionError(
            f"Failed to {action}: at least one direction (left, right, up, down) must be > 0"
        )

    files = _image_file(args, "image", action)
    fields: dict[str, Any] = dict(directions)
    fields.update(_pick(args, "prompt", "creativity", "seed", "output_format"))

    payload = await _post(client, action, EDIT_ENDPOINTS["outpaint"], fields, files)

    expansion = ", ".join(f"{d}: {px}px" for d, px in directions.items())
    return _result(
        "Image outpainted successfully!", payload, args.get("prompt"), {"Expansion": expansion}
    )


async def handle_search_and_replace(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle search-and-replace."""
    action = "search and replace"
    files = _image_file(args, "image", action)
    fields: dict[str, Any] = {"prompt": args["prompt"], "search_prompt": args["search_prompt"]}
    fields.update(_pick(args, "negative_prompt", "seed", "output_format"))

    payload = await _post(client, action, EDIT_ENDPOINTS["search-and-replace"], fields, files)
    return _result(
        "Objects replaced successfully!",
        payload,
        args["prompt"],
        {"Search": args["search_prompt"]},
    )


async def handle_search_and_recolor(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle search-and-recolor."""
    action = "search and recolor"
    files = _image_file(args, "image", action)
    fields: dict[str, Any] = {"prompt": args["prompt"], "select_prompt": args["select_prompt"]}
    fields.update(_pick(args, "negative_prompt", "grow_mask", "seed", "output_format"))

    payload = await _post(client, action, EDIT_ENDPOINTS["search-and-recolor"], fields, files)
    return _result(
        "Objects recolored successfully!",
        payload,
        args["prompt"],
        {"Selection": args["select_prompt"]},
    )


async def handle_erase(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle erase: remove the masked region."""
    action = "erase objects"
    files = _image_file(args, "image", action)
    files.update(_image_file(args, "mask", action))
    fields = _pick(args, "grow_mask", "seed", "output_format")

    payload = await _post(client, action, EDIT_ENDPOINTS["erase"], fields, files)
    return _result("Objects erased successfully!", payload)


async def handle_inpaint(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle inpaint: regenerate the masked region from a prompt."""
    action = "inpaint"
    files = _image_file(args, "image", action)
    files.update(_image_file(args, "mask", action))
    fields: dict[str, Any] = {"prompt": args["prompt"]}
    fields.update(_pick(args, "negative_prompt", "grow_mask", "seed", "output_format"))

    payload = await _post(client, action, EDIT_ENDPOINTS["inpaint"], fields, files)
    return _result("Image inpainted successfully!", payload, args["prompt"])


async def handle_replace_background_and_relight(
    client: StabilityClient, args: dict[str, Any]
) -> ToolContent:
    """Handle replace-background-and-relight (asynchronous upstream)."""
    action = "replace background and relight"
    files = _image_file(args, "image", action, field="subject_image")
    fields: dict[str, Any] = {"background_prompt": args["background_prompt"]}
    fields.update(
        _pick(args, "light_source_direction", "light_source_strength", "seed", "output_format")
    )

    payload = await _submit_and_wait(
        client, action, EDIT_ENDPOINTS["replace-background-and-relight"], fields, files
    )
    return _result("Background replaced successfully!", payload, args["background_prompt"])


# --- Upscaling ---


async def handle_upscale_fast(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle upscale-fast (4x)."""
    action = "upscale image (fast)"
    files = _image_file(args, "image", action)
    fields = {"output_format": args.get("output_format", "png")}

    payload = await _post(client, action, UPSCALE_ENDPOINTS["fast"], fields, files)
    return _result("Image upscaled successfully!", payload, parameters={"Mode": "fast (4x)"})


async def handle_upscale_conservative(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle upscale-conservative."""
    action = "upscale image (conservative)"
    files = _image_file(args, "image", action)
    fields: dict[str, Any] = {"prompt": args["prompt"]}
    fields.update(_pick(args, "negative_prompt", "creativity", "seed", "output_format"))

    payload = await _post(client, action, UPSCALE_ENDPOINTS["conservative"], fields, files)
    return _result(
        "Image upscaled successfully!", payload, args["prompt"], {"Mode": "conservative"}
    )


async def handle_upscale_creative(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle upscale-creative: submit, then poll for the result."""
    action = "upscale image (creative)"
    files = _image_file(args, "image", action)
    fields: dict[str, Any] = {"prompt": args["prompt"]}
    fields.update(_pick(args, "negative_prompt", "creativity", "seed", "output_format"))

    payload = await _submit_and_wait(client, action, UPSCALE_ENDPOINTS["creative"], fields, files)
    return _result("Image upscaled successfully!", payload, args["prompt"], {"Mode": "creative"})


# --- Control ---


async def _handle_control(
    client: StabilityClient,
    args: dict[str, Any],
    kind: str,
    action: str,
    title: str,
    extra: tuple[str, ...],
) -> ToolContent:
    files = _image_file(args, "image", action)
    fields: dict[str, Any] = {"prompt": args["prompt"]}
    fields.update(_pick(args, "negative_prompt", "seed", "output_format", *extra))

    payload = await _post(client, action, CONTROL_ENDPOINTS[kind], fields, files)
    return _result(title, payload, args["prompt"])


async def handle_control_sketch(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle control-sketch: sketch to finished image."""
    return await _handle_control(
        client,
        args,
        "sketch",
        "process sketch",
        "Sketch rendered successfully!",
        ("control_strength",),
    )


async def handle_control_structure(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle control-structure: keep the reference's composition."""
    return await _handle_control(
        client,
        args,
        "structure",
        "maintain structure",
        "Image generated from structure successfully!",
        ("control_strength",),
    )


async def handle_control_style(client: StabilityClient, args: dict[str, Any]) -> ToolContent:
    """Handle control-style: generate in the reference's style."""
    return await _handle_control(
        client,
        args,
        "style",
        "apply style",
        "Image generated from style successfully!",
        ("aspect_ratio", "fidelity"),
    )
