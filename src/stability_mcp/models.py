"""Pydantic models for API payloads, responses and JSON-RPC frames."""

import base64
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr

# --- Endpoint Mappings ---

GENERATION_ENDPOINTS = {
    "core": "v2beta/stable-image/generate/core",
    "sd3": "v2beta/stable-image/generate/sd3",
}

EDIT_ENDPOINTS = {
    "remove-background": "v2beta/stable-image/edit/remove-background",
    "outpaint": "v2beta/stable-image/edit/outpaint",
    "search-and-replace": "v2beta/stable-image/edit/search-and-replace",
    "search-and-recolor": "v2beta/stable-image/edit/search-and-recolor",
    "erase": "v2beta/stable-image/edit/erase",
    "inpaint": "v2beta/stable-image/edit/inpaint",
    "replace-background-and-relight": "v2beta/stable-image/edit/replace-background-and-relight",
}

UPSCALE_ENDPOINTS = {
    "fast": "v2beta/stable-image/upscale/fast",
    "conservative": "v2beta/stable-image/upscale/conservative",
    "creative": "v2beta/stable-image/upscale/creative",
}

CONTROL_ENDPOINTS = {
    "sketch": "v2beta/stable-image/control/sketch",
    "structure": "v2beta/stable-image/control/structure",
    "style": "v2beta/stable-image/control/style",
}

RESULTS_ENDPOINT = "v2beta/results"

SD3_MODELS = ("sd3.5-large", "sd3.5-large-turbo", "sd3.5-medium", "sd3-large", "sd3-medium")

ASPECT_RATIOS = ("16:9", "1:1", "21:9", "2:3", "3:2", "4:5", "5:4", "9:16", "9:21")

OUTPUT_FORMATS = ("png", "jpeg", "webp")


# --- API Response Models ---


class ImagePayload(BaseModel):
    """Binary image returned by Stability AI."""

    data: bytes
    mime_type: str = "image/png"
    seed: int | None = None
    finish_reason: str | None = None

    @property
    def content_filtered(self) -> bool:
        return self.finish_reason == "CONTENT_FILTERED"

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class StabilityErrorBody(BaseModel):
    """JSON error body: {id, name, errors[]}."""

    id: str | None = None
    name: str = "error"
    errors: list[str] = []

    def describe(self) -> str:
        if self.errors:
            return f"{self.name}: {'; '.join(self.errors)}"
        return self.name


class GenerationSubmission(BaseModel):
    """Response from an asynchronous endpoint."""

    id: str


# --- JSON-RPC ---


class JsonRpcMessage(BaseModel):
    """One incoming JSON-RPC 2.0 frame."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"]
    id: StrictStr | StrictInt | StrictFloat | None = None
    method: StrictStr | None = None
    params: dict[str, Any] | list[Any] | None = None

    @property
    def is_notification(self) -> bool:
        return self.id is None and "id" not in self.model_fields_set
