"""Configuration management using pydantic-settings."""

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

Transport = Literal["stdio", "http", "sse"]


class Settings(BaseSettings):
    """Stability MCP server settings.

    Settings are read from environment variables with the STABILITY_ prefix
    (STABILITY_API_KEY, STABILITY_TOOL_TIMEOUT, ...). HOST, PORT and NODE_ENV
    are also accepted without the prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="STABILITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Required
    api_key: str
    api_key_alt: str | None = None

    # API Configuration
    api_base_url: str = "https://api.stability.ai"
    timeout: float = 60.0
    max_attempts: int | None = None  # defaults to the number of keys

    # Polling Configuration (asynchronous endpoints)
    poll_interval: float = 5.0
    max_wait_time: int = 300

    # Generation defaults, reported alongside generated images
    engine: str = "stable-diffusion-xl-1024-v1-0"
    width: int = 1024
    height: int = 1024
    steps: int = 50
    cfg_scale: float = 7.0
    sampler: str = "k_lms"

    # Server
    transport: Transport = "stdio"
    host: str = Field(default="0.0.0.0", validation_alias=AliasChoices("HOST", "STABILITY_HOST"))
    port: int = Field(default=8080, validation_alias=AliasChoices("PORT", "STABILITY_PORT"))
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("NODE_ENV", "STABILITY_ENVIRONMENT"),
    )
    server_name: str = "stability-ai-mcp-server"
    server_version: str = "0.1.0"
    sse_path: str = "/sse"
    max_connections: int = Field(default=100, ge=1)
    heartbeat_interval: float = 15.0
    inactivity_timeout: float = 30.0
    tool_timeout: float = 30.0
    log_level: str = "INFO"

    @property
    def api_keys(self) -> list[str]:
        """Configured keys in fallback order, blanks dropped."""
        return [key for key in (self.api_key, self.api_key_alt) if key]


def get_settings() -> Settings:
    """Get settings instance, raising helpful error if API key is missing."""
    try:
        return Settings()  # type: ignore[call-arg]
    except Exception as e:
        if "api_key" in str(e).lower():
            raise ValueError(
                "STABILITY_API_KEY environment variable is required. "
                "Get your key at https://platform.stability.ai/account/keys"
            ) from e
        raise
