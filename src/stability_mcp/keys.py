"""API key pool with rotation on authentication failure and retry with backoff."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import httpx

from .errors import AllAttemptsFailedError, ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ApiKeyPool:
    """Ordered Stability AI keys with a wrapping current index."""

    def __init__(self, keys: Sequence[str]):
        keys = [key for key in keys if key]
        if not keys:
            raise ConfigurationError("No Stability AI API keys configured")
        self._keys = tuple(keys)
        self._index = 0

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_key(self) -> str:
        return self._keys[self._index]

    def rotate(self, failed_key: str | None = None) -> str:
        """Advance to the next key and return it.

        When ``failed_key`` is given the pool only advances if that key is still
        current, so concurrent failures on one key rotate once.
        """
        if len(self._keys) <= 1:
            return self.current_key
        if failed_key is not None and failed_key != self.current_key:
            return self.current_key
        self._index = (self._index + 1) % len(self._keys)
        return self.current_key


def is_auth_error(error: BaseException) -> bool:
    """True for HTTP 401/403 rejections."""
    status = getattr(error, "status_code", None)
    if status is None and isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
    return status in (401, 403)


async def execute_with_fallback(
    pool: ApiKeyPool,
    call: Callable[[str], Awaitable[T]],
    max_attempts: int | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``call`` with the pool's current key, rotating and retrying on failure.

    Args:
        pool: Key pool to draw from
        call: Coroutine function taking an API key
        max_attempts: Attempt budget (default: number of keys)
        sleep: Awaitable used for backoff delays

    Returns:
        The first successful result

    Raises:
        The last error observed, or AllAttemptsFailedError if none was recorded
    """
    attempts = len(pool) if max_attempts is None else max_attempts
    last_error: Exception | None = None

    for attempt in range(attempts):
        key = pool.current_key
        try:
            return await call(key)
        except Exception as e:
            last_error = e

            if is_auth_error(e):
                if len(pool) <= 1:
                    logger.warning("API key rejected and no fallback key is configured")
                    raise
                logger.warning(
                    "API key rejected, rotating to next key (attempt %d/%d)",
                    attempt + 1,
                    attempts,
                )
                pool.rotate(failed_key=key)
                continue

            logger.warning(
                "API call failed (attempt %d/%d): %s", attempt + 1, attempts, e
            )
            if attempt < attempts - 1:
                await sleep(2**attempt)

    if last_error is not None:
        raise last_error
    raise AllAttemptsFailedError()
