"""Authentication provider factory for MCP Sandbox Exec."""

from typing import Any

from mcp_sandbox_exec.config import get_settings
from mcp_sandbox_exec.utils import get_logger

logger = get_logger(__name__)


def create_auth_provider() -> Any | None:
    """
    Create authentication provider based on configuration.

    Returns:
        Authentication provider instance or None for no authentication

    Raises:
        ValueError: If bearer mode is configured without a token
    """
    settings = get_settings()

    if settings.auth_mode == "none":
        logger.info("No authentication configured")
        return None

    if not settings.bearer_token:
        raise ValueError("Bearer token authentication requires MCP_BEARER_TOKEN to be set")

    from fastmcp.server.auth import StaticTokenVerifier

    logger.info("Configuring bearer token authentication with StaticTokenVerifier")

    tokens = {settings.bearer_token: {"sub": "api-client", "scope": "api:full"}}
    return StaticTokenVerifier(tokens=tokens)
