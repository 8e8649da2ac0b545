"""Shared error types."""

from typing import Any


class StabilityMCPError(Exception):
    """Base error for all server failures."""


class ConfigurationError(StabilityMCPError):
    """Settings are missing or inconsistent."""


class StabilityAPIError(StabilityMCPError):
    """Stability AI answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Stability AI API error: {status_code} - {message}")

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


class StabilityTimeoutError(StabilityMCPError):
    """An asynchronous generation did not finish in time."""

    def __init__(self, generation_id: str, timeout: float) -> None:
        self.generation_id = generation_id
        self.timeout = timeout
        super().__init__(f"Generation {generation_id} not ready after {timeout}s")


class AllAttemptsFailedError(StabilityMCPError):
    """The key fallback ran out of attempts without recording an error."""

    def __init__(self) -> None:
        super().__init__("All API key attempts failed")


class ToolExecutionError(StabilityMCPError):
    """A tool handler failed; the message carries a descriptive prefix."""


class InvalidToolNameError(StabilityMCPError):
    """Tool name contains characters outside [A-Za-z0-9_-/]."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid tool name: {name!r}")


class DuplicateToolError(StabilityMCPError):
    """A tool with the same name is already registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool already registered: {name}")


class ConnectionLimitError(StabilityMCPError):
    """The SSE connection cap has been reached."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Too many connections (limit {limit})")


class JsonRpcError(StabilityMCPError):
    """A failure that maps onto a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error
