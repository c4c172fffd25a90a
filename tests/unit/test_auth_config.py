"""Tests for authentication and configuration."""

from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from mcp_sandbox_exec.auth import create_auth_provider
from mcp_sandbox_exec.config import get_settings
from mcp_sandbox_exec.config.settings import Settings


class TestSettings:
    """Test configuration settings."""

    def test_default_settings(self, monkeypatch):
        """Test default settings values."""
        monkeypatch.delenv("MCP_E2B_TEMPLATE", raising=False)
        settings = Settings()

        assert settings.transport_mode == "streamable-http"
        assert settings.auth_mode == "none"
        assert settings.background_mode == "delegated"
        assert settings.tail_poll_interval_ms == 500
        assert settings.tail_poll_interval_s == 0.5
        assert settings.normalized_e2b_template == "base"

    def test_env_prefix(self, monkeypatch):
        """Test settings are read from MCP_ variables."""
        monkeypatch.setenv("MCP_BACKGROUND_MODE", "local")
        monkeypatch.setenv("MCP_ARTIFACT_ROOT", "/var/cmds")

        settings = get_settings()

        assert settings.background_mode == "local"
        assert settings.artifact_root == "/var/cmds"

    def test_invalid_background_mode(self):
        """Test unknown background modes are rejected."""
        with pytest.raises(ValidationError):
            Settings(background_mode="remote")

    @pytest.mark.parametrize(
        "template,expected",
        [
            ("e2b/code-interpreter:latest", "code-interpreter"),
            ("e2b/nextjs", "nextjs"),
            ("  my-template  ", "my-template"),
            ("", "base"),
            ("   ", "base"),
            ("e2b/", "e2b/"),
            ("e2b/:tag", "e2b/:tag"),
        ],
    )
    def test_template_normalization(self, template, expected):
        """Test docker-style template names are reduced to the template id."""
        assert Settings(e2b_template=template).normalized_e2b_template == expected


class TestAuthProvider:
    """Test authentication provider creation."""

    @patch("mcp_sandbox_exec.auth.get_settings")
    def test_no_auth(self, mock_get_settings):
        """Test no authentication."""
        mock_settings = MagicMock()
        mock_settings.auth_mode = "none"
        mock_get_settings.return_value = mock_settings

        assert create_auth_provider() is None

    @patch("mcp_sandbox_exec.auth.get_settings")
    def test_bearer_auth(self, mock_get_settings):
        """Test bearer token authentication."""
        mock_settings = MagicMock()
        mock_settings.auth_mode = "bearer"
        mock_settings.bearer_token = "test-token-123"
        mock_get_settings.return_value = mock_settings

        auth = create_auth_provider()

        from fastmcp.server.auth import StaticTokenVerifier

        assert isinstance(auth, StaticTokenVerifier)

    @patch("mcp_sandbox_exec.auth.get_settings")
    def test_bearer_auth_missing_token(self, mock_get_settings):
        """Test bearer authentication without token raises error."""
        mock_settings = MagicMock()
        mock_settings.auth_mode = "bearer"
        mock_settings.bearer_token = None
        mock_get_settings.return_value = mock_settings

        with pytest.raises(ValueError, match="Bearer token authentication requires"):
            create_auth_provider()
