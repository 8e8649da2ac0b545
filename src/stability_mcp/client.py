"""Async HTTP client for the Stability AI REST API."""

import asyncio
import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from .config import Settings, get_settings
from .errors import StabilityAPIError, StabilityTimeoutError
from .keys import ApiKeyPool, execute_with_fallback
from .models import RESULTS_ENDPOINT, GenerationSubmission, ImagePayload, StabilityErrorBody

logger = logging.getLogger(__name__)

# (filename, bytes, content type)
FileField = tuple[str, bytes, str]


class StabilityClient:
    """Async client for the Stability AI API."""

    def __init__(
        self,
        settings_or_api_key: Settings | str | None = None,
        key_pool: ApiKeyPool | None = None,
    ):
        """Initialize client with settings or API key.

        Args:
            settings_or_api_key: Settings instance, API key string, or None to load from env.
            key_pool: Pre-built key pool; overrides the keys from settings.
        """
        if isinstance(settings_or_api_key, str):
            keys = [settings_or_api_key]
            self._api_base_url = "https://api.stability.ai"
            self._timeout = 60.0
            self._poll_interval = 5.0
            self._max_wait_time = 300
            self._max_attempts = None
        else:
            settings = settings_or_api_key or get_settings()
            keys = settings.api_keys
            self._api_base_url = settings.api_base_url
            self._timeout = settings.timeout
            self._poll_interval = settings.poll_interval
            self._max_wait_time = settings.max_wait_time
            self._max_attempts = settings.max_attempts

        self.key_pool = key_pool or ApiKeyPool(keys)
        self.client = httpx.AsyncClient(base_url=self._api_base_url, timeout=self._timeout)

    @property
    def api_key(self) -> str:
        """The key the next request will use."""
        return self.key_pool.current_key

    async def post_image(
        self,
        endpoint: str,
        fields: dict[str, Any],
        files: dict[str, FileField] | None = None,
    ) -> ImagePayload:
        """POST a multipart form to a synchronous endpoint and return the image.

        Args:
            endpoint: API endpoint path (e.g., "v2beta/stable-image/generate/core")
            fields: Form fields; None values are skipped
            files: Binary form fields

        Returns:
            The returned image with its MIME type, seed and finish reason
        """

        async def _call(api_key: str) -> ImagePayload:
            response = await self.client.post(
                f"/{endpoint}",
                data=_form_data(fields),
                files=_form_files(files),
                headers=_headers(api_key, "image/*"),
            )
            _raise_for_status(response)
            return _to_payload(response)

        return await execute_with_fallback(self.key_pool, _call, self._max_attempts)

    async def submit(
        self,
        endpoint: str,
        fields: dict[str, Any],
        files: dict[str, FileField] | None = None,
    ) -> str:
        """POST a multipart form to an asynchronous endpoint.

        Returns:
            Generation ID to poll with get_result
        """

        async def _call(api_key: str) -> str:
            response = await self.client.post(
                f"/{endpoint}",
                data=_form_data(fields),
                files=_form_files(files),
                headers=_headers(api_key, "application/json"),
            )
            _raise_for_status(response)
            return GenerationSubmission.model_validate(response.json()).id

        return await execute_with_fallback(self.key_pool, _call, self._max_attempts)

    async def get_result(self, generation_id: str) -> ImagePayload | None:
        """Fetch the result of an asynchronous generation.

        Returns:
            The image, or None while the generation is still in progress
        """

        async def _call(api_key: str) -> ImagePayload | None:
            response = await self.client.get(
                f"/{RESULTS_ENDPOINT}/{generation_id}",
                headers=_headers(api_key, "image/*"),
            )
            if response.status_code == 202:
                return None
            _raise_for_status(response)
            return _to_payload(response)

        return await execute_with_fallback(self.key_pool, _call, self._max_attempts)

    async def wait_for_completion(self, generation_id: str) -> ImagePayload:
        """Poll until an asynchronous generation is complete.

        Raises:
            StabilityTimeoutError: If the result is not ready within max_wait_time
        """
        start_time = time.monotonic()

        while time.monotonic() - start_time < self._max_wait_time:
            result = await self.get_result(generation_id)
            if result is not None:
                return result
            logger.debug("Generation %s still in progress", generation_id)
            await asyncio.sleep(self._poll_interval)

        raise StabilityTimeoutError(generation_id, self._max_wait_time)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "StabilityClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _headers(api_key: str, accept: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}", "Accept": accept}


def _form_data(fields: dict[str, Any]) -> dict[str, str]:
    data = {}
    for name, value in fields.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = str(value).lower()
        data[name] = str(value)
    return data


def _form_files(files: dict[str, FileField] | None) -> dict[str, Any]:
    # An empty file part forces multipart/form-data for text-only requests
    return dict(files) if files else {"none": ""}


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    text = response.text
    try:
        message = StabilityErrorBody.model_validate(response.json()).describe()
    except (ValueError, ValidationError):
        message = text or response.reason_phrase
    raise StabilityAPIError(response.status_code, message, text)


def _to_payload(response: httpx.Response) -> ImagePayload:
    seed = response.headers.get("seed")
    return ImagePayload(
        data=response.content,
        mime_type=response.headers.get("content-type", "image/png").split(";")[0].strip(),
        seed=int(seed) if seed and seed.isdigit() else None,
        finish_reason=response.headers.get("finish-reason"),
    )


def get_client() -> StabilityClient:
    """Get a new Stability client instance.

    Returns:
        Configured StabilityClient

    Raises:
        ValueError: If STABILITY_API_KEY is not set
    """
    return StabilityClient()
