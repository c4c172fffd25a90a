"""Settings and configuration management for MCP Sandbox Exec."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # E2B configuration
    e2b_api_key: str | None = Field(
        default=None,
        description="API key used to create and connect to E2B sandboxes",
    )

    e2b_template: str = Field(
        default="base",
        description="E2B template id (docker-style e2b/<name>[:tag] is accepted)",
    )

    sandbox_timeout_s: int = Field(
        default=600,
        description="Default lifetime in seconds for newly created sandboxes",
    )

    command_timeout_s: float = Field(
        default=60,
        description="Connection timeout in seconds for a command run (0 disables it)",
    )

    # Command artifact configuration
    artifact_root: str = Field(
        default="/tmp/mcp-sandbox-exec",
        description="Directory inside the sandbox holding command metadata and logs",
    )

    tail_poll_interval_ms: int = Field(
        default=500,
        description="Polling interval in milliseconds for log tailing",
    )

    tail_settle_ms: int = Field(
        default=1000,
        description="How long a finished tail waits for a late log write when it saw no output",
    )

    background_mode: Literal["local", "delegated"] = Field(
        default="delegated",
        description="Background strategy: start in the sandbox (local) or hand off to a worker",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    log_format: str = Field(
        default="json",
        description="Log format (json or text)",
    )

    # Server configuration
    host: str = Field(
        default="0.0.0.0",
        description="Server host to bind to",
    )

    port: int = Field(
        default=8000,
        description="Server port to bind to",
    )

    # Transport configuration
    transport_mode: Literal["stdio", "sse", "streamable-http"] = Field(
        default="streamable-http",
        description="Transport protocol for MCP server (stdio, sse, or streamable-http)",
    )

    path: str = Field(
        default="/mcp",
        description="Path for HTTP-based transports (sse or streamable-http)",
    )

    # Authentication configuration
    auth_mode: Literal["none", "bearer"] = Field(
        default="none",
        description="Authentication mode (none or bearer)",
    )

    bearer_token: str | None = Field(
        default=None,
        description="Bearer token for bearer authentication mode",
    )

    @property
    def normalized_e2b_template(self) -> str:
        """Template id as expected by the E2B SDK."""
        trimmed = self.e2b_template.strip()
        if not trimmed:
            return "base"

        # Docs sometimes refer to templates as e2b/<name>[:tag]
        if trimmed.startswith("e2b/"):
            without_tag = trimmed[len("e2b/"):].split(":")[0]
            if without_tag:
                return without_tag

        return trimmed

    @property
    def tail_poll_interval_s(self) -> float:
        """Polling interval in seconds."""
        return self.tail_poll_interval_ms / 1000

    @property
    def tail_settle_s(self) -> float:
        """Settle window in seconds."""
        return self.tail_settle_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
