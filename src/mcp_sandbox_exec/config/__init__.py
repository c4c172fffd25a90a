"""Configuration module for MCP Sandbox Exec."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
