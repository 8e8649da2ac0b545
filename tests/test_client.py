"""Unit tests for the Stability AI client."""

import os
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from stability_mcp.client import StabilityClient, get_client
from stability_mcp.config import Settings
from stability_mcp.errors import StabilityAPIError, StabilityTimeoutError
from stability_mcp.keys import ApiKeyPool
from stability_mcp.models import ImagePayload

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


def _image_response(content=PNG_BYTES, **headers):
    headers.setdefault("content-type", "image/png")
    return httpx.Response(200, content=content, headers=headers)


class TestStabilityClient:
    """Tests for StabilityClient."""

    def test_init_with_api_key(self):
        """A plain key builds a single-key pool."""
        client = StabilityClient("test-key")
        assert client.api_key == "test-key"
        assert len(client.key_pool) == 1
        assert str(client.client.base_url).startswith("https://api.stability.ai")

    def test_init_with_settings_uses_both_keys(self):
        """The alternate key becomes the fallback."""
        settings = Settings(api_key="primary", api_key_alt="backup")
        client = StabilityClient(settings)
        assert client.api_key == "primary"
        assert len(client.key_pool) == 2

    @pytest.mark.asyncio
    async def test_post_image_sends_multipart_with_bearer_auth(self):
        """post_image posts form data with auth and image accept headers."""
        client = StabilityClient("test-key")

        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = _image_response(seed="42", **{"finish-reason": "SUCCESS"})
            result = await client.post_image(
                "v2beta/stable-image/generate/core",
                {"prompt": "a cat", "seed": 7, "negative_prompt": None},
            )

        call_args = mock_post.call_args
        assert call_args[0][0] == "/v2beta/stable-image/generate/core"
        assert call_args[1]["data"] == {"prompt": "a cat", "seed": "7"}
        assert call_args[1]["files"] == {"none": ""}
        assert call_args[1]["headers"] == {
            "Authorization": "Bearer test-key",
            "Accept": "image/*",
        }
        assert result.data == PNG_BYTES
        assert result.mime_type == "image/png"
        assert result.seed == 42
        assert result.finish_reason == "SUCCESS"

    @pytest.mark.asyncio
    async def test_post_image_forwards_files(self):
        """Binary fields are sent as multipart files."""
        client = StabilityClient("test-key")
        files = {"image": ("image.png", PNG_BYTES, "image/png")}

        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = _image_response()
            await client.post_image("v2beta/stable-image/upscale/fast", {}, files)

        assert mock_post.call_args[1]["files"] == files

    @pytest.mark.asyncio
    async def test_boolean_fields_are_lowercased(self):
        client = StabilityClient("test-key")

        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = _image_response()
            await client.post_image("endpoint", {"flag": True})

        assert mock_post.call_args[1]["data"] == {"flag": "true"}

    @pytest.mark.asyncio
    async def test_error_body_is_described(self):
        """JSON error bodies are summarised in the raised error."""
        client = StabilityClient("test-key")
        response = httpx.Response(
            400,
            json={"id": "abc", "name": "bad_request", "errors": ["prompt: cannot be empty"]},
        )

        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = response
            with pytest.raises(StabilityAPIError) as exc_info:
                await client.post_image("endpoint", {"prompt": ""})

        assert exc_info.value.status_code == 400
        assert "bad_request: prompt: cannot be empty" in str(exc_info.value)
        assert str(exc_info.value).startswith("Stability AI API error: 400")

    @pytest.mark.asyncio
    async def test_non_json_error_uses_text(self):
        client = StabilityClient("test-key")

        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(502, text="upstream unavailable")
            with pytest.raises(StabilityAPIError, match="upstream unavailable"):
                await client.post_image("endpoint", {})

    @pytest.mark.asyncio
    async def test_auth_error_falls_back_to_alternate_key(self):
        """A 401 with the primary key retries with the alternate key."""
        client = StabilityClient("unused", key_pool=ApiKeyPool(["bad-key", "good-key"]))

        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.side_effect = [
                httpx.Response(401, json={"name": "unauthorized", "errors": ["bad key"]}),
                _image_response(),
            ]
            result = await client.post_image("endpoint", {"prompt": "x"})

        assert result.data == PNG_BYTES
        assert client.api_key == "good-key"
        auth_headers = [c[1]["headers"]["Authorization"] for c in mock_post.call_args_list]
        assert auth_headers == ["Bearer bad-key", "Bearer good-key"]

    @pytest.mark.asyncio
    async def test_submit_returns_generation_id(self):
        client = StabilityClient("test-key")

        with patch.object(client.client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = httpx.Response(200, json={"id": "gen-123"})
            generation_id = await client.submit("v2beta/stable-image/upscale/creative", {})

        assert generation_id == "gen-123"
        assert mock_post.call_args[1]["headers"]["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_get_result_in_progress(self):
        """A 202 means the generation is still running."""
        client = StabilityClient("test-key")

        with patch.object(client.client, "get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = httpx.Response(202, json={"id": "gen-123"})
            result = await client.get_result("gen-123")

        mock_get.assert_called_once()
        assert mock_get.call_args[0][0] == "/v2beta/results/gen-123"
        assert result is None

    @pytest.mark.asyncio
    async def test_wait_for_completion_polls_until_ready(self):
        client = StabilityClient("test-key")
        client._poll_interval = 0

        with patch.object(client, "get_result", new_callable=AsyncMock) as mock_get_result:
            mock_get_result.side_effect = [None, None, ImagePayload(data=PNG_BYTES)]
            result = await client.wait_for_completion("gen-123")

        assert mock_get_result.await_count == 3
        assert result.data == PNG_BYTES

    @pytest.mark.asyncio
    async def test_wait_for_completion_times_out(self):
        client = StabilityClient("test-key")
        client._poll_interval = 0
        client._max_wait_time = 0

        with pytest.raises(StabilityTimeoutError, match="gen-123"):
            await client.wait_for_completion("gen-123")

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self):
        client = StabilityClient("test-key")
        async with client:
            pass
        assert client.client.is_closed


class TestGetClient:
    """Tests for get_client."""

    def test_get_client_requires_api_key(self):
        """get_client raises when STABILITY_API_KEY is not set."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="STABILITY_API_KEY"):
                get_client()

    def test_get_client_with_api_key(self):
        """get_client reads both keys from the environment."""
        env = {"STABILITY_API_KEY": "env-key", "STABILITY_API_KEY_ALT": "env-alt"}
        with patch.dict(os.environ, env, clear=True):
            client = get_client()
        assert client.api_key == "env-key"
        assert len(client.key_pool) == 2
